"""Route handlers for preloaded pages, static assets and the fixed API endpoints."""

from __future__ import annotations

import hmac
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from email.utils import formatdate, parsedate_to_datetime
from pathlib import Path

import psutil

from config import ASSETS_MAX_AGE_SECS, ASSETS_PREFIX, DEFAULT_HEALTH_CHECK_API_KEY
from content import ContentEntry, ContentTable
from request import HTTPRequest
from response import (
    HTTPError,
    HTTPResponse,
    html_response,
    json_response,
    not_found_response,
    text_response,
)
from utils import format_megabytes, format_uptime, get_content_type, resolve_static_file

HELLO_WORLD_TEXT = "Hello World!"
HELLO_WORLD_ROUTE = "helloworld"
INDEX_ROUTE = "index"
API_ENDPOINTS = ("/helloworld", "/health")
ASSETS_CACHE_CONTROL = f"public, max-age={ASSETS_MAX_AGE_SECS}, immutable"


def hello_world(request: HTTPRequest) -> HTTPResponse:
    _ = request
    return text_response(HELLO_WORLD_TEXT)


@dataclass(frozen=True, slots=True)
class PageHandler:
    """Serves one preloaded HTML entry, byte for byte."""

    entry: ContentEntry

    def __call__(self, _request: HTTPRequest) -> HTTPResponse:
        return html_response(self.entry.body)


@dataclass(frozen=True, slots=True)
class HelloWorldHeavyHandler:
    entry: ContentEntry | None

    def __call__(self, _request: HTTPRequest) -> HTTPResponse:
        if self.entry is None:
            return html_response("HTML file not found")
        return html_response(self.entry.body)


def _process_memory() -> dict[str, int]:
    memory = psutil.Process().memory_info()
    return {"rss": memory.rss, "vms": memory.vms}


@dataclass(frozen=True, slots=True)
class HealthHandler:
    """API-key protected status report.

    The key comes from the ``x-api-key`` header or the ``key`` query
    parameter. While the server still runs with the shipped default key every
    caller gets 403, whatever key they send.
    """

    api_key: str
    loaded_count: int
    started_at: float
    clock: Callable[[], float] = time.time
    memory_reader: Callable[[], dict[str, int]] = field(default=_process_memory)

    def __call__(self, request: HTTPRequest) -> HTTPResponse:
        if self.api_key == DEFAULT_HEALTH_CHECK_API_KEY:
            return text_response(
                "403 Forbidden - Change default API key in HEALTH_CHECK_API_KEY",
                status_code=403,
            )

        supplied_key = request.headers.get("x-api-key") or request.query_value("key")
        if not supplied_key or not hmac.compare_digest(
            supplied_key.encode("utf-8"), self.api_key.encode("utf-8")
        ):
            return text_response("401 Unauthorized", status_code=401)

        memory = {name: format_megabytes(value) for name, value in self.memory_reader().items()}
        return json_response(
            {
                "status": "healthy",
                "uptime": format_uptime(max(0.0, self.clock() - self.started_at)),
                "memory": memory,
                "loadedHtmlFiles": self.loaded_count,
            }
        )


@dataclass(frozen=True, slots=True)
class RootHandler:
    server_name: str
    content: ContentTable

    def __call__(self, _request: HTTPRequest) -> HTTPResponse:
        index_entry = self.content.get(INDEX_ROUTE)
        if index_entry is not None:
            return html_response(index_entry.body)

        return json_response(
            {
                "server": self.server_name,
                "htmlPages": [f"/{route}" for route in self.content],
                "apiEndpoints": list(API_ENDPOINTS),
                "staticAssets": f"{ASSETS_PREFIX}*",
            }
        )


@dataclass(frozen=True, slots=True)
class AssetHandler:
    """Static passthrough for ``/assets/*`` with long-lived cache headers."""

    assets_dir: Path

    def __call__(self, request: HTTPRequest) -> HTTPResponse:
        asset_path = resolve_static_file(request.path, self.assets_dir, ASSETS_PREFIX)
        if asset_path is None:
            raise HTTPError(403)

        if not asset_path.is_file():
            return not_found_response()

        file_stat = asset_path.stat()
        etag = f'W/"{file_stat.st_mtime_ns:x}-{file_stat.st_size:x}"'
        last_modified = formatdate(file_stat.st_mtime, usegmt=True)
        validators = {
            "ETag": etag,
            "Last-Modified": last_modified,
            "Cache-Control": ASSETS_CACHE_CONTROL,
        }

        if _is_not_modified(request, etag, file_stat.st_mtime):
            return HTTPResponse(status_code=304, headers=validators)

        return HTTPResponse(
            status_code=200,
            headers={"Content-Type": get_content_type(asset_path), **validators},
            file_path=asset_path,
        )


def _is_not_modified(request: HTTPRequest, etag: str, mtime: float) -> bool:
    if_none_match = request.headers.get("if-none-match")
    if if_none_match is not None:
        return if_none_match.strip() == etag

    if_modified_since = request.headers.get("if-modified-since")
    if if_modified_since is None:
        return False
    try:
        since_ts = parsedate_to_datetime(if_modified_since).timestamp()
    except (TypeError, ValueError, OverflowError):
        return False
    return int(mtime) <= int(since_ts)
