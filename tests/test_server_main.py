"""Tests for the server bootstrap: fatal startup errors and signal shutdown."""

import os
import signal
import subprocess
import sys
import time
from pathlib import Path

import pytest

import server

PROJECT_ROOT = Path(__file__).resolve().parents[1]


def test_main_exits_1_when_public_dir_is_missing(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("PUBLIC_DIR", str(tmp_path / "missing"))

    assert server.main(["0", "--host", "127.0.0.1"]) == 1


def test_main_exits_1_on_unsafe_filename(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    (tmp_path / "about.html").write_text("ok")
    (tmp_path / "bad name.html").write_text("nope")
    monkeypatch.setenv("PUBLIC_DIR", str(tmp_path))

    assert server.main(["0", "--host", "127.0.0.1"]) == 1


def test_main_exits_1_when_no_port_is_free(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    (tmp_path / "about.html").write_text("ok")
    monkeypatch.setenv("PUBLIC_DIR", str(tmp_path))

    def _no_port(*_args, **_kwargs):
        raise server.PortUnavailableError("Could not find available port in range 3000-3009")

    monkeypatch.setattr(server, "bind_listener", _no_port)
    monkeypatch.setattr(server, "install_signal_handlers", lambda _server: None)
    monkeypatch.setattr(server, "install_fault_handlers", lambda: None)

    assert server.main(["3000"]) == 1


def _spawn(public_dir: Path) -> subprocess.Popen:
    env = {**os.environ, "PUBLIC_DIR": str(public_dir), "HOST": "127.0.0.1"}
    return subprocess.Popen(
        [sys.executable, "-m", "server", "0"],
        cwd=PROJECT_ROOT,
        env=env,
        stdout=subprocess.PIPE,
        stderr=subprocess.STDOUT,
        text=True,
    )


def test_subprocess_exits_1_on_bad_content(tmp_path: Path) -> None:
    child = _spawn(tmp_path / "missing")

    output, _ = child.communicate(timeout=15)

    assert child.returncode == 1
    assert "Public directory does not exist" in output


@pytest.mark.skipif(sys.platform == "win32", reason="SIGTERM delivery differs on Windows")
def test_sigterm_stops_server_cleanly(tmp_path: Path) -> None:
    (tmp_path / "about.html").write_text("ok")
    child = _spawn(tmp_path)
    try:
        deadline = time.time() + 15
        seen_banner = False
        while time.time() < deadline:
            line = child.stdout.readline()
            if not line:
                break
            if "Press Ctrl+C to stop" in line:
                seen_banner = True
                break
        assert seen_banner

        child.send_signal(signal.SIGTERM)
        child.communicate(timeout=15)
    finally:
        if child.poll() is None:
            child.kill()
            child.wait()

    assert child.returncode == 0


FAULT_SCRIPT = """
import threading
import time

import server

server.install_fault_handlers()

def crash():
    raise RuntimeError("worker blew up")

threading.Thread(target=crash, name="page-worker-0").start()
time.sleep(10)
"""


def test_uncaught_thread_fault_terminates_process_with_status_1() -> None:
    child = subprocess.run(
        [sys.executable, "-c", FAULT_SCRIPT],
        cwd=PROJECT_ROOT,
        capture_output=True,
        text=True,
        timeout=15,
    )

    assert child.returncode == 1
    assert "Uncaught exception in thread page-worker-0" in child.stderr
    assert "worker blew up" in child.stderr
