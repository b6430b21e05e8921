"""Tests for the launcher's mode selection and CPU pinning."""

import sys

import psutil
import pytest

import launcher
from config import Settings


class FakeProcess:
    pinned: list[tuple[int, list[int]]] = []

    def __init__(self, pid: int) -> None:
        self.pid = pid

    def cpu_affinity(self, cores: list[int]) -> None:
        FakeProcess.pinned.append((self.pid, cores))


class FailingProcess:
    def __init__(self, pid: int) -> None:
        self.pid = pid

    def cpu_affinity(self, _cores: list[int]) -> None:
        raise psutil.AccessDenied(pid=self.pid)


class FakePopen:
    launched: list[list[str]] = []

    def __init__(self, command: list[str]) -> None:
        FakePopen.launched.append(command)
        self.pid = 4242

    def wait(self) -> int:
        return 0


@pytest.fixture(autouse=True)
def _reset_fakes() -> None:
    FakeProcess.pinned = []
    FakePopen.launched = []


def test_apply_cpu_affinity_pins_single_core(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(launcher.psutil, "Process", FakeProcess)

    assert launcher.apply_cpu_affinity(123, 2) is True
    assert FakeProcess.pinned == [(123, [2])]


def test_apply_cpu_affinity_failure_is_not_fatal(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(launcher.psutil, "Process", FailingProcess)

    assert launcher.apply_cpu_affinity(123, 0) is False


def test_apply_cpu_affinity_unsupported_platform(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(launcher, "affinity_supported", lambda: False)

    assert launcher.apply_cpu_affinity(123, 0) is False


def test_schedule_cpu_affinity_runs_in_background(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(launcher.psutil, "Process", FakeProcess)

    timer = launcher.schedule_cpu_affinity(99, 1, delay_secs=0)
    timer.join(timeout=2)

    assert FakeProcess.pinned == [(99, [1])]


def test_server_command_passes_port() -> None:
    assert launcher.server_command(3001) == [sys.executable, "-m", "server", "3001"]
    assert launcher.server_command(None) == [sys.executable, "-m", "server"]


def test_run_api_pins_child_in_single_core_mode(monkeypatch: pytest.MonkeyPatch) -> None:
    scheduled: list[tuple[int, int]] = []
    monkeypatch.setattr(launcher.subprocess, "Popen", FakePopen)
    monkeypatch.setattr(
        launcher,
        "schedule_cpu_affinity",
        lambda pid, core: scheduled.append((pid, core)),
    )

    exit_code = launcher.run_api(Settings(single_core_mode=True, cpu_core_number=3), 3005)

    assert exit_code == 0
    assert FakePopen.launched == [[sys.executable, "-m", "server", "3005"]]
    assert scheduled == [(4242, 3)]


def test_run_api_without_single_core_mode(monkeypatch: pytest.MonkeyPatch) -> None:
    scheduled: list[tuple[int, int]] = []
    monkeypatch.setattr(launcher.subprocess, "Popen", FakePopen)
    monkeypatch.setattr(
        launcher,
        "schedule_cpu_affinity",
        lambda pid, core: scheduled.append((pid, core)),
    )

    launcher.run_api(Settings(), None)

    assert scheduled == []


def test_main_benchmark_mode(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(launcher.subprocess, "Popen", FakePopen)

    assert launcher.main(["benchmark"]) == 0
    assert FakePopen.launched == [[sys.executable, "-m", "tools.benchmark"]]


def test_main_rejects_unknown_mode() -> None:
    with pytest.raises(SystemExit):
        launcher.main(["turbo"])
