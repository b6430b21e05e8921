"""Low-level socket read/write utilities."""

from __future__ import annotations

import socket
import time
from dataclasses import dataclass

from config import BODY_LIMIT, MAX_HEADER_BYTES, READ_CHUNK_SIZE
from response import HTTPResponse, prepare_response


class HTTPReadError(Exception):
    """Raised when a client request cannot be safely read from the socket."""

    status_code = 400


class MalformedRequestError(HTTPReadError):
    """Raised when socket bytes do not form a complete HTTP request."""


class HeaderTooLargeError(HTTPReadError):
    """Raised when HTTP headers exceed configured maximum size."""

    status_code = 431


class PayloadTooLargeError(HTTPReadError):
    """Raised when a request body exceeds the configured body limit."""

    status_code = 413


class UnsupportedTransferError(HTTPReadError):
    """Raised for request bodies framed with Transfer-Encoding."""

    status_code = 501


class SocketTimeoutError(HTTPReadError):
    """Raised when a client stalls partway through sending a request."""

    status_code = 408


@dataclass(frozen=True, slots=True)
class ReadLimits:
    body_limit: int = BODY_LIMIT
    max_header_bytes: int = MAX_HEADER_BYTES


@dataclass(slots=True)
class RequestHeadInfo:
    header_end_index: int
    expected_body_length: int


def _head_fields(header_bytes: bytes) -> dict[str, str]:
    fields: dict[str, str] = {}
    for line in header_bytes.decode("iso-8859-1").split("\r\n")[1:]:
        if not line:
            continue
        if ":" not in line:
            raise MalformedRequestError("Malformed header while reading request")
        name, value = line.split(":", 1)
        fields[name.strip().lower()] = value.strip()
    return fields


def inspect_http_request_head(
    buffer: bytes,
    limits: ReadLimits = ReadLimits(),
) -> RequestHeadInfo | None:
    """Inspect request headers from an in-memory buffer, if complete."""
    header_end_index = buffer.find(b"\r\n\r\n")
    if header_end_index == -1:
        if len(buffer) > limits.max_header_bytes:
            raise HeaderTooLargeError("Headers exceeded MAX_HEADER_BYTES")
        return None

    if header_end_index + 4 > limits.max_header_bytes:
        raise HeaderTooLargeError("Headers exceeded MAX_HEADER_BYTES")

    fields = _head_fields(bytes(buffer[:header_end_index]))
    if "transfer-encoding" in fields:
        raise UnsupportedTransferError("Transfer-Encoding request bodies are not supported")

    expected_body_length = 0
    if "content-length" in fields:
        try:
            expected_body_length = int(fields["content-length"])
        except ValueError as exc:
            raise MalformedRequestError("Invalid Content-Length header") from exc
        if expected_body_length < 0:
            raise MalformedRequestError("Negative Content-Length header")
        if expected_body_length > limits.body_limit:
            raise PayloadTooLargeError("Body exceeded BODY_LIMIT")

    return RequestHeadInfo(
        header_end_index=header_end_index,
        expected_body_length=expected_body_length,
    )


def extract_http_request_message(
    buffer: bytes,
    limits: ReadLimits = ReadLimits(),
) -> tuple[bytes, bytes] | None:
    """Extract one complete HTTP request from a bytes buffer."""
    head_info = inspect_http_request_head(buffer, limits)
    if head_info is None:
        return None

    request_length = head_info.header_end_index + 4 + head_info.expected_body_length
    if len(buffer) < request_length:
        return None
    return buffer[:request_length], buffer[request_length:]


def read_http_request_message(
    client_socket: socket.socket,
    initial_buffer: bytes = b"",
    *,
    limits: ReadLimits = ReadLimits(),
    idle_timeout: float = 5.0,
    request_timeout: float = 30.0,
) -> tuple[bytes, bytes]:
    """Read one request and return (request_bytes, leftover_bytes).

    ``idle_timeout`` bounds the wait for the first byte; once a request has
    started, the whole message must arrive within ``request_timeout``. An idle
    connection that times out returns ``(b"", b"")``.
    """
    buffer = bytearray(initial_buffer)
    deadline = time.monotonic() + request_timeout if buffer else None

    while True:
        extracted = extract_http_request_message(bytes(buffer), limits)
        if extracted is not None:
            return extracted

        if deadline is None:
            client_socket.settimeout(idle_timeout)
        else:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise SocketTimeoutError("Timed out waiting for request bytes")
            client_socket.settimeout(remaining)

        try:
            chunk = client_socket.recv(READ_CHUNK_SIZE)
        except socket.timeout as exc:
            if not buffer:
                return b"", b""
            raise SocketTimeoutError("Timed out waiting for request bytes") from exc

        if not chunk:
            if not buffer:
                return b"", b""
            raise MalformedRequestError("Connection closed before request completed")

        if deadline is None:
            deadline = time.monotonic() + request_timeout
        buffer.extend(chunk)


def write_http_response_message(client_socket: socket.socket, response: HTTPResponse) -> int:
    """Write an HTTPResponse; file-backed bodies go through ``socket.sendfile``."""
    prepared = prepare_response(response)
    client_socket.sendall(prepared.head)
    bytes_sent = len(prepared.head)

    if prepared.body:
        client_socket.sendall(prepared.body)
        return bytes_sent + len(prepared.body)

    if prepared.file_path is not None:
        with prepared.file_path.open("rb") as file_obj:
            bytes_sent += client_socket.sendfile(file_obj)
    return bytes_sent
