"""Tests for binding the listener with port retry."""

import logging
import socket

import pytest

from router import Router
from server import HTTPServer, PortUnavailableError, bind_listener


def _occupied_port() -> socket.socket:
    blocker = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    blocker.bind(("127.0.0.1", 0))
    blocker.listen(1)
    return blocker


def test_bind_listener_skips_occupied_port(caplog: pytest.LogCaptureFixture) -> None:
    blocker = _occupied_port()
    port = blocker.getsockname()[1]
    try:
        with caplog.at_level(logging.WARNING, logger="server"):
            try:
                listener = bind_listener("127.0.0.1", port, attempts=10)
            except PortUnavailableError:
                pytest.skip("no free port above the blocked one")
        with listener:
            bound_port = listener.getsockname()[1]
    finally:
        blocker.close()

    assert port < bound_port < port + 10
    assert any("in use" in message for message in caplog.messages)


def test_bind_listener_gives_up_after_attempts() -> None:
    blocker = _occupied_port()
    port = blocker.getsockname()[1]
    try:
        with pytest.raises(PortUnavailableError, match=f"range {port}-{port}"):
            bind_listener("127.0.0.1", port, attempts=1)
    finally:
        blocker.close()


def test_port_zero_binds_ephemeral_port() -> None:
    with bind_listener("127.0.0.1", 0) as listener:
        assert listener.getsockname()[1] != 0


def test_server_bind_reports_actual_port() -> None:
    server = HTTPServer(Router(), host="127.0.0.1", port=0)

    port = server.bind()
    server.stop()

    assert port == server.port
    assert port != 0
    assert server.bound.is_set()


def test_bind_listener_window_stops_at_highest_port() -> None:
    blocker = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    try:
        try:
            blocker.bind(("127.0.0.1", 65535))
            blocker.listen(1)
        except OSError:
            pytest.skip("port 65535 is not available for blocking")

        with pytest.raises(PortUnavailableError, match="range 65535-65535"):
            bind_listener("127.0.0.1", 65535, attempts=10)
    finally:
        blocker.close()
