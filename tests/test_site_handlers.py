"""Unit tests for the page and fixed-endpoint handlers."""

import json
from pathlib import Path
from types import MappingProxyType

from config import DEFAULT_HEALTH_CHECK_API_KEY
from content import ContentEntry
from handlers.site_handlers import (
    HealthHandler,
    HelloWorldHeavyHandler,
    PageHandler,
    RootHandler,
    hello_world,
)
from request import HTTPRequest


def _build_request(
    path: str,
    headers: dict[str, str] | None = None,
    query_params: dict[str, list[str]] | None = None,
) -> HTTPRequest:
    return HTTPRequest(
        method="GET",
        path=path,
        http_version="HTTP/1.1",
        headers={"host": "localhost", **(headers or {})},
        query_params=query_params or {},
    )


def _entry(route: str, body: bytes) -> ContentEntry:
    return ContentEntry(route=route, body=body, source=Path(f"{route}.html"))


def _health(api_key: str = "s3cret") -> HealthHandler:
    return HealthHandler(
        api_key=api_key,
        loaded_count=3,
        started_at=1000.0,
        clock=lambda: 1090.0,
        memory_reader=lambda: {"rss": 50 * 1024 * 1024, "vms": 1536 * 1024},
    )


def test_hello_world_is_constant_plain_text() -> None:
    response = hello_world(_build_request("/helloworld"))

    assert response.status_code == 200
    assert response.body == b"Hello World!"
    assert response.headers["Content-Type"] == "text/plain; charset=utf-8"


def test_page_handler_returns_stored_bytes() -> None:
    handler = PageHandler(_entry("about", b"<h1>About</h1>"))

    first = handler(_build_request("/about", query_params={"x": ["1"]}))
    second = handler(_build_request("/about"))

    assert first.status_code == 200
    assert first.body == second.body == b"<h1>About</h1>"
    assert first.headers["Content-Type"] == "text/html; charset=utf-8"


def test_helloworld_heavy_serves_entry_when_loaded() -> None:
    handler = HelloWorldHeavyHandler(_entry("helloworld", b"<h1>Hello</h1>"))

    response = handler(_build_request("/helloworld-heavy"))

    assert response.body == b"<h1>Hello</h1>"
    assert response.headers["Content-Type"] == "text/html; charset=utf-8"


def test_helloworld_heavy_fallback() -> None:
    response = HelloWorldHeavyHandler(None)(_build_request("/helloworld-heavy"))

    assert response.status_code == 200
    assert response.body == b"HTML file not found"


def test_health_without_key_is_401() -> None:
    response = _health()(_build_request("/health"))

    assert response.status_code == 401
    assert response.body == b"401 Unauthorized"


def test_health_with_wrong_key_is_401() -> None:
    response = _health()(_build_request("/health", headers={"x-api-key": "nope"}))

    assert response.status_code == 401


def test_health_with_default_key_is_403() -> None:
    handler = _health(api_key=DEFAULT_HEALTH_CHECK_API_KEY)

    response = handler(
        _build_request("/health", headers={"x-api-key": DEFAULT_HEALTH_CHECK_API_KEY})
    )

    assert response.status_code == 403
    assert response.body.startswith(b"403 Forbidden")


def test_health_with_header_key_reports_status() -> None:
    response = _health()(_build_request("/health", headers={"x-api-key": "s3cret"}))

    assert response.status_code == 200
    assert response.headers["Content-Type"] == "application/json; charset=utf-8"
    payload = json.loads(response.body)
    assert payload == {
        "status": "healthy",
        "uptime": "1 min 30 sec",
        "memory": {"rss": "50 MB", "vms": "1.5 MB"},
        "loadedHtmlFiles": 3,
    }


def test_health_accepts_query_key() -> None:
    response = _health()(_build_request("/health", query_params={"key": ["s3cret"]}))

    assert response.status_code == 200


def test_root_serves_index_when_present() -> None:
    content = MappingProxyType(
        {
            "index": _entry("index", b"<h1>Home</h1>"),
            "about": _entry("about", b"<h1>About</h1>"),
        }
    )

    response = RootHandler("test-server", content)(_build_request("/"))

    assert response.body == b"<h1>Home</h1>"
    assert response.headers["Content-Type"] == "text/html; charset=utf-8"


def test_root_lists_routes_without_index() -> None:
    content = MappingProxyType(
        {
            "about": _entry("about", b"a"),
            "faq": _entry("faq", b"f"),
        }
    )

    response = RootHandler("test-server", content)(_build_request("/"))

    assert response.headers["Content-Type"] == "application/json; charset=utf-8"
    assert json.loads(response.body) == {
        "server": "test-server",
        "htmlPages": ["/about", "/faq"],
        "apiEndpoints": ["/helloworld", "/health"],
        "staticAssets": "/assets/*",
    }
