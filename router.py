"""Routing table for method/path handlers."""

from collections.abc import Callable

from request import HTTPRequest
from response import HTTPResponse

Handler = Callable[[HTTPRequest], HTTPResponse]


def normalize_path(path: str) -> str:
    """Lower-case a path and drop a trailing slash (``/About/`` -> ``/about``)."""
    normalized = path.lower()
    if len(normalized) > 1:
        normalized = normalized.rstrip("/") or "/"
    return normalized


class Router:
    """Exact-path routes plus prefix routes, matched case-insensitively."""

    def __init__(self) -> None:
        self._routes: dict[tuple[str, str], Handler] = {}
        self._prefix_routes: list[tuple[str, str, Handler]] = []

    def add_route(self, method: str, path: str, handler: Handler) -> None:
        normalized_method = method.upper().strip()
        if not normalized_method:
            raise ValueError("method cannot be empty")
        if not path.startswith("/"):
            raise ValueError("path must start with '/'")
        self._routes[(normalized_method, normalize_path(path))] = handler

    def add_prefix_route(self, method: str, prefix: str, handler: Handler) -> None:
        normalized_method = method.upper().strip()
        if not prefix.startswith("/") or not prefix.endswith("/"):
            raise ValueError("prefix must start and end with '/'")
        self._prefix_routes.append((normalized_method, prefix.lower(), handler))

    def has_route(self, method: str, path: str) -> bool:
        return (method.upper().strip(), normalize_path(path)) in self._routes

    def resolve(self, method: str, path: str) -> Handler | None:
        normalized_method = method.upper().strip()
        handler = self._routes.get((normalized_method, normalize_path(path)))
        if handler is not None:
            return handler

        lowered = path.lower()
        for route_method, prefix, prefix_handler in self._prefix_routes:
            if route_method == normalized_method and lowered.startswith(prefix):
                return prefix_handler
        return None

    def paths(self, method: str = "GET") -> list[str]:
        normalized_method = method.upper().strip()
        return sorted(path for route_method, path in self._routes if route_method == normalized_method)
