"""Startup loader that reads a directory of HTML files into an immutable route table."""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType

from response import HTML_CONTENT_TYPE

logger = logging.getLogger(__name__)

HTML_SUFFIX = ".html"
SAFE_FILENAME = re.compile(r"^[A-Za-z0-9_.-]+\.html$")
SAFE_ROUTE_NAME = re.compile(r"^[A-Za-z0-9_-]+$")
LIST_ROUTES_THRESHOLD = 5

ContentTable = Mapping[str, "ContentEntry"]


class ContentLoadError(Exception):
    """Raised when the content directory cannot be served safely."""


@dataclass(frozen=True, slots=True)
class ContentEntry:
    route: str
    body: bytes
    source: Path
    content_type: str = HTML_CONTENT_TYPE


def _check_filename(name: str, base_dir: Path) -> Path:
    if "/" in name or "\\" in name or ".." in name or not SAFE_FILENAME.match(name):
        raise ContentLoadError(f"Unsafe HTML filename: {name!r}")

    resolved = (base_dir / name).resolve()
    try:
        resolved.relative_to(base_dir)
    except ValueError as exc:
        raise ContentLoadError(f"HTML file resolves outside {base_dir}: {name!r}") from exc
    return resolved


def load_content(directory: str | Path) -> ContentTable:
    """Read every ``*.html`` file directly inside ``directory``.

    Returns a read-only mapping of route name (filename without ``.html``) to
    its entry. Any unsafe filename, a missing directory, or an empty result
    raises :class:`ContentLoadError`; nothing is served in that case.
    """
    base_dir = Path(directory)
    if not base_dir.is_dir():
        raise ContentLoadError(f"Public directory does not exist: {base_dir}")
    base_dir = base_dir.resolve()

    candidates = sorted(
        child.name
        for child in base_dir.iterdir()
        if child.name.endswith(HTML_SUFFIX) and not child.is_dir()
    )
    if not candidates:
        raise ContentLoadError(f"No valid HTML files found in {base_dir}")

    entries: dict[str, ContentEntry] = {}
    seen_routes: dict[str, str] = {}
    for name in candidates:
        resolved = _check_filename(name, base_dir)
        route = name[: -len(HTML_SUFFIX)]
        if not SAFE_ROUTE_NAME.match(route):
            raise ContentLoadError(f"Invalid route name: {route!r}")

        folded = route.lower()
        if folded in seen_routes:
            raise ContentLoadError(
                f"Routes {seen_routes[folded]!r} and {route!r} differ only in case"
            )
        seen_routes[folded] = route

        try:
            body = resolved.read_bytes()
        except OSError as exc:
            raise ContentLoadError(f"Could not read {name}: {exc}") from exc
        entries[route] = ContentEntry(route=route, body=body, source=resolved)

    _log_summary(entries)
    return MappingProxyType(entries)


def _log_summary(entries: Mapping[str, ContentEntry]) -> None:
    if len(entries) <= LIST_ROUTES_THRESHOLD:
        for route in entries:
            logger.info("/%s", route)
    else:
        logger.info("Loading %d HTML files...", len(entries))
    logger.info("%d HTML files loaded into memory", len(entries))
