"""HTTP server for preloaded pages, plus the process bootstrap entry point."""

from __future__ import annotations

import argparse
import errno
import json
import logging
import os
import signal
import socket
import sys
import threading
import time

from app import Site, build_router
from config import (
    DRAIN_TIMEOUT_SECS,
    MAX_KEEPALIVE_REQUESTS,
    PORT_RETRY_ATTEMPTS,
    REQUEST_QUEUE_SIZE,
    Settings,
    load_env_file,
)
from content import ContentLoadError
from dashboard import render_dashboard
from request import HTTPRequest, HTTPRequestParseError
from response import HTTPError, HTTPResponse, error_response, not_found_response
from router import Router
from socket_handler import (
    HTTPReadError,
    ReadLimits,
    read_http_request_message,
    write_http_response_message,
)
from thread_pool import ThreadPool

logger = logging.getLogger(__name__)

LISTEN_BACKLOG = 511
MAX_PORT = 65_535
CORS_ALLOWED_METHODS = "GET, HEAD"


class PortUnavailableError(Exception):
    """Raised when every port in the retry window is already in use."""


def bind_listener(
    host: str,
    port: int,
    attempts: int = PORT_RETRY_ATTEMPTS,
) -> socket.socket:
    """Bind a listening socket on ``port`` or the next free port in the window.

    Only ``EADDRINUSE`` moves on to the next port; other bind errors propagate.
    Port 0 asks the OS for an ephemeral port and is tried once.
    """
    last_port = min(port + attempts - 1, MAX_PORT)
    candidates = [0] if port == 0 else range(port, last_port + 1)
    for candidate in candidates:
        listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        if os.name != "nt":
            listener.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            listener.bind((host, candidate))
        except OSError as exc:
            listener.close()
            if exc.errno != errno.EADDRINUSE:
                raise
            if candidate == port:
                logger.warning("Port %s in use, searching for available port...", port)
            continue
        listener.listen(LISTEN_BACKLOG)
        return listener

    raise PortUnavailableError(
        f"Could not find available port in range {port}-{last_port}"
    )


class HTTPServer:
    def __init__(
        self,
        router: Router,
        settings: Settings | None = None,
        *,
        host: str | None = None,
        port: int | None = None,
        worker_count: int | None = None,
        request_queue_size: int = REQUEST_QUEUE_SIZE,
        port_attempts: int = PORT_RETRY_ATTEMPTS,
        drain_timeout_secs: float = DRAIN_TIMEOUT_SECS,
    ) -> None:
        self.settings = settings or Settings()
        self.router = router
        self.host = host if host is not None else self.settings.host
        self.port = port if port is not None else self.settings.port
        self.worker_count = worker_count or self.settings.thread_pool_size
        self.request_queue_size = request_queue_size
        self.port_attempts = port_attempts
        self.drain_timeout_secs = drain_timeout_secs
        self.bound = threading.Event()

        self._limits = ReadLimits(body_limit=self.settings.body_limit)
        self._server_socket: socket.socket | None = None
        self._pool: ThreadPool | None = None
        self._running = False

    def bind(self) -> int:
        """Bind the listener (with port retry) and return the port actually used."""
        self._server_socket = bind_listener(self.host, self.port, self.port_attempts)
        self._server_socket.settimeout(0.2)
        self.port = self._server_socket.getsockname()[1]
        self._running = True
        self.bound.set()
        return self.port

    def start(self) -> None:
        """Bind if needed, then serve until :meth:`stop` is called."""
        if self._server_socket is None:
            self.bind()
        self.serve_forever()

    def serve_forever(self) -> None:
        if self._server_socket is None:
            raise RuntimeError("bind() must be called before serve_forever()")

        server_socket = self._server_socket
        self._pool = ThreadPool(
            worker_count=self.worker_count,
            queue_size=self.request_queue_size,
            handler=self._handle_client,
        )
        self._pool.start()
        try:
            while self._running:
                try:
                    client_socket, address = server_socket.accept()
                except socket.timeout:
                    continue
                except OSError:
                    break

                if not self._pool.submit(client_socket, address):
                    self._send_overloaded_response(client_socket)
        finally:
            server_socket.close()
            self._server_socket = None
            self._pool.shutdown(drain_timeout=self.drain_timeout_secs)
            self._pool = None

    def stop(self) -> None:
        self._running = False
        if self._server_socket is not None:
            self._server_socket.close()

    def _send_overloaded_response(self, client_socket: socket.socket) -> None:
        with client_socket:
            response = error_response(503)
            response.headers["Connection"] = "close"
            try:
                write_http_response_message(client_socket, response)
            except OSError:
                return

    def _handle_client(self, client_socket: socket.socket, address: tuple[str, int]) -> None:
        with client_socket:
            served = 0
            carry = b""
            while served < MAX_KEEPALIVE_REQUESTS:
                idle_timeout_ms = (
                    self.settings.connection_timeout_ms
                    if served == 0
                    else self.settings.keep_alive_timeout_ms
                )
                started_at = time.perf_counter()
                try:
                    raw_request, carry = read_http_request_message(
                        client_socket,
                        carry,
                        limits=self._limits,
                        idle_timeout=idle_timeout_ms / 1000,
                        request_timeout=self.settings.request_timeout_ms / 1000,
                    )
                except HTTPReadError as exc:
                    self._reject(client_socket, address, exc.status_code, started_at)
                    return
                except OSError:
                    return

                if not raw_request:
                    return

                try:
                    request = HTTPRequest.from_bytes(
                        raw_request,
                        body_limit=self.settings.body_limit,
                    )
                except HTTPRequestParseError as exc:
                    self._reject(client_socket, address, exc.status_code, started_at)
                    return

                served += 1
                response = self._dispatch(request)
                should_close = (
                    not request.keep_alive
                    or served >= MAX_KEEPALIVE_REQUESTS
                    or not self._running
                )
                if should_close:
                    response.headers["Connection"] = "close"
                else:
                    response.headers["Connection"] = "keep-alive"
                    response.headers["Keep-Alive"] = (
                        f"timeout={self.settings.keep_alive_timeout_ms // 1000}"
                    )

                try:
                    bytes_sent = write_http_response_message(client_socket, response)
                except OSError:
                    return

                self._log_access(request, address, response, bytes_sent, started_at)
                if should_close:
                    return

    def _reject(
        self,
        client_socket: socket.socket,
        address: tuple[str, int],
        status_code: int,
        started_at: float,
    ) -> None:
        response = error_response(status_code)
        response.headers["Connection"] = "close"
        try:
            bytes_sent = write_http_response_message(client_socket, response)
        except OSError:
            return
        self._log_access(None, address, response, bytes_sent, started_at)

    def _dispatch(self, request: HTTPRequest) -> HTTPResponse:
        origin = request.headers.get("origin")
        if (
            request.method == "OPTIONS"
            and origin is not None
            and "access-control-request-method" in request.headers
        ):
            response = HTTPResponse(
                status_code=204,
                headers={"Access-Control-Allow-Methods": CORS_ALLOWED_METHODS},
            )
        else:
            method = "GET" if request.method == "HEAD" else request.method
            response = self._call_handler(request, method)
            if request.method == "HEAD":
                response = _as_head_response(response)

        if origin is not None:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Access-Control-Allow-Credentials"] = "true"
            response.headers["Vary"] = "Origin"
        response.headers.setdefault("Server", self.settings.server_name)
        return response

    def _call_handler(self, request: HTTPRequest, method: str) -> HTTPResponse:
        handler = self.router.resolve(method, request.path)
        if handler is None:
            return not_found_response()
        try:
            return handler(request)
        except HTTPError as exc:
            return error_response(exc.status_code)
        except Exception:
            logger.exception("Unhandled error in route handler for %s", request.path)
            return error_response(500)

    def _client_address(self, request: HTTPRequest | None, address: tuple[str, int]) -> str:
        if self.settings.trust_proxy and request is not None:
            forwarded_for = request.headers.get("x-forwarded-for")
            if forwarded_for:
                return forwarded_for.split(",", 1)[0].strip()
        return address[0]

    def _log_access(
        self,
        request: HTTPRequest | None,
        address: tuple[str, int],
        response: HTTPResponse,
        bytes_sent: int,
        started_at: float,
    ) -> None:
        if not self.settings.enable_logging:
            return

        duration_ms = (time.perf_counter() - started_at) * 1000
        event = {
            "client": self._client_address(request, address),
            "method": request.method if request is not None else "-",
            "path": request.path if request is not None else "-",
            "status": response.status_code,
            "bytes_out": bytes_sent,
            "latency_ms": round(duration_ms, 3),
        }
        if self.settings.log_format == "json":
            logger.info(json.dumps(event, sort_keys=True))
            return

        logger.info(
            "client=%s method=%s path=%s status=%s bytes_out=%s duration_ms=%.2f",
            event["client"],
            event["method"],
            event["path"],
            event["status"],
            event["bytes_out"],
            duration_ms,
        )


def _as_head_response(get_response: HTTPResponse) -> HTTPResponse:
    if get_response.file_path is not None:
        body_size = get_response.file_path.stat().st_size
    else:
        body_size = len(get_response.body)
    return HTTPResponse(
        status_code=get_response.status_code,
        reason_phrase=get_response.reason_phrase,
        headers=dict(get_response.headers),
        body=b"",
        content_length_override=body_size,
    )


def install_fault_handlers() -> None:
    """Terminate the process on any uncaught exception, in any thread."""

    def _thread_fault(args: threading.ExceptHookArgs) -> None:
        thread_name = args.thread.name if args.thread is not None else "unknown"
        logger.critical(
            "Uncaught exception in thread %s",
            thread_name,
            exc_info=(args.exc_type, args.exc_value, args.exc_traceback),
        )
        os._exit(1)

    def _main_fault(exc_type, exc_value, exc_traceback) -> None:
        logger.critical("Uncaught exception", exc_info=(exc_type, exc_value, exc_traceback))
        os._exit(1)

    threading.excepthook = _thread_fault
    sys.excepthook = _main_fault


def install_signal_handlers(server: HTTPServer) -> None:
    def _shutdown(signum: int, _frame: object) -> None:
        logger.info("Received %s, shutting down", signal.Signals(signum).name)
        server.stop()

    signal.signal(signal.SIGTERM, _shutdown)
    signal.signal(signal.SIGINT, _shutdown)


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Serve preloaded HTML pages")
    parser.add_argument("port", nargs="?", type=int, default=None)
    parser.add_argument("--host", default=None)
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    logging.basicConfig(level=logging.INFO)
    load_env_file()
    settings = Settings.from_env(port=args.port)

    try:
        site = Site.load(settings)
    except ContentLoadError as exc:
        logger.error("Could not load HTML files: %s", exc)
        return 1

    if settings.uses_default_health_key:
        logger.warning("HEALTH_CHECK_API_KEY is not set; /health answers 403 until it is")

    server = HTTPServer(build_router(site), settings, host=args.host)
    install_fault_handlers()
    install_signal_handlers(server)
    try:
        port = server.bind()
    except PortUnavailableError as exc:
        logger.error("%s", exc)
        return 1

    print(render_dashboard(site, port), flush=True)
    server.serve_forever()
    logger.info("%s stopped", settings.server_name)
    return 0


if __name__ == "__main__":
    sys.exit(main())
