"""HTTP response model, serializer and plain-text error bodies."""

import json
from dataclasses import dataclass, field
from email.utils import formatdate
from pathlib import Path
from typing import Any

TEXT_CONTENT_TYPE = "text/plain; charset=utf-8"
HTML_CONTENT_TYPE = "text/html; charset=utf-8"
JSON_CONTENT_TYPE = "application/json; charset=utf-8"

REASON_PHRASES: dict[int, str] = {
    200: "OK",
    204: "No Content",
    304: "Not Modified",
    400: "Bad Request",
    401: "Unauthorized",
    403: "Forbidden",
    404: "Not Found",
    408: "Request Timeout",
    413: "Payload Too Large",
    414: "URI Too Long",
    431: "Request Header Fields Too Large",
    500: "Internal Server Error",
    501: "Not Implemented",
    503: "Service Unavailable",
    505: "HTTP Version Not Supported",
}


class HTTPError(Exception):
    """Raised by handlers to answer with a status-coded error body."""

    def __init__(self, status_code: int, message: str | None = None) -> None:
        super().__init__(message or REASON_PHRASES.get(status_code, "Error"))
        self.status_code = status_code


@dataclass(slots=True)
class PreparedResponse:
    head: bytes
    body: bytes | None = None
    file_path: Path | None = None


@dataclass(slots=True)
class HTTPResponse:
    status_code: int
    reason_phrase: str | None = None
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes | str = b""
    file_path: Path | None = None
    content_length_override: int | None = None

    def __post_init__(self) -> None:
        if isinstance(self.body, str):
            self.body = self.body.encode("utf-8")
        if self.file_path is not None and self.body:
            raise ValueError("Response cannot set both body and file_path")

    def to_bytes(self) -> bytes:
        """Serialize the response into HTTP/1.1 wire format bytes."""
        prepared = prepare_response(self)
        if prepared.body is not None:
            return prepared.head + prepared.body
        if prepared.file_path is not None:
            return prepared.head + prepared.file_path.read_bytes()
        return prepared.head


def prepare_response(response: HTTPResponse) -> PreparedResponse:
    reason = response.reason_phrase or REASON_PHRASES.get(response.status_code, "Unknown")
    normalized_headers = dict(response.headers)
    normalized_headers.setdefault(
        "Date",
        formatdate(timeval=None, localtime=False, usegmt=True),
    )
    normalized_headers.setdefault("Content-Type", TEXT_CONTENT_TYPE)

    body: bytes | None = None
    file_path: Path | None = None
    content_length = response.content_length_override
    if response.file_path is not None:
        file_path = response.file_path
        if content_length is None:
            content_length = file_path.stat().st_size
    else:
        body = response.body
        if content_length is None:
            content_length = len(body)
    normalized_headers["Content-Length"] = str(content_length)

    header_lines = [f"HTTP/1.1 {response.status_code} {reason}"]
    header_lines.extend(f"{key}: {value}" for key, value in normalized_headers.items())
    head = "\r\n".join(header_lines).encode("iso-8859-1") + b"\r\n\r\n"
    return PreparedResponse(head=head, body=body, file_path=file_path)


def text_response(body: str, status_code: int = 200) -> HTTPResponse:
    return HTTPResponse(
        status_code=status_code,
        headers={"Content-Type": TEXT_CONTENT_TYPE},
        body=body,
    )


def html_response(body: bytes | str, status_code: int = 200) -> HTTPResponse:
    return HTTPResponse(
        status_code=status_code,
        headers={"Content-Type": HTML_CONTENT_TYPE},
        body=body,
    )


def json_response(payload: Any, status_code: int = 200) -> HTTPResponse:
    return HTTPResponse(
        status_code=status_code,
        headers={"Content-Type": JSON_CONTENT_TYPE},
        body=json.dumps(payload),
    )


def not_found_response() -> HTTPResponse:
    return text_response("404 Not Found", status_code=404)


def error_response(status_code: int) -> HTTPResponse:
    """Plain-text error body: fixed wording for 500/503, ``"{status} Error"`` otherwise."""
    if status_code == 503:
        body = "503 Service Unavailable"
    elif status_code == 500:
        body = "500 Internal Server Error"
    else:
        body = f"{status_code} Error"
    return text_response(body, status_code=status_code)
