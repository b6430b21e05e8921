"""Tests for the benchmark driver and its report."""

import asyncio
import threading
from pathlib import Path

import pytest

from app import Site, build_router
from config import Settings
from router import Router
from server import HTTPServer
from tools.benchmark import (
    BenchmarkError,
    MemoryRecord,
    PerformanceBenchmark,
    Phase,
    main,
    performance_rating,
)

TINY_PHASE = Phase(path="/helloworld", connections=2, duration_secs=0.2, pipelining=2)
TINY_PHASES = {name: TINY_PHASE for name in ("basic", "endpoint", "mixed", "stress")}


def _start_server(public_dir: Path) -> tuple[HTTPServer, threading.Thread]:
    (public_dir / "about.html").write_text("<h1>About</h1>")
    settings = Settings(host="127.0.0.1", port=0, public_dir=str(public_dir))
    server = HTTPServer(build_router(Site.load(settings)), settings)
    thread = threading.Thread(target=server.start, daemon=True)
    thread.start()

    if not server.bound.wait(timeout=2):
        raise RuntimeError("Server did not bind to a port")
    return server, thread


def _stop_server(server: HTTPServer, thread: threading.Thread) -> None:
    server.stop()
    thread.join(timeout=2)


def _closed_port() -> int:
    server = HTTPServer(Router(), host="127.0.0.1", port=0)
    port = server.bind()
    server.stop()
    return port


@pytest.mark.parametrize(
    ("requests_per_sec", "label"),
    [
        (60_000, "EXTREME PERFORMANCE"),
        (50_000, "EXCELLENT PERFORMANCE"),
        (20_000, "VERY GOOD PERFORMANCE"),
        (9_000, "GOOD PERFORMANCE"),
        (3_001, "AVERAGE PERFORMANCE"),
        (3_000, "NEEDS OPTIMIZATION"),
    ],
)
def test_performance_rating_thresholds(requests_per_sec: float, label: str) -> None:
    assert performance_rating(requests_per_sec) == label


def test_summary_without_results() -> None:
    assert PerformanceBenchmark().summary() == "No tests run"


def test_memory_measurement_is_recorded() -> None:
    benchmark = PerformanceBenchmark()

    record = benchmark.measure_memory_usage(iterations=1000)

    assert isinstance(record, MemoryRecord)
    assert record.rss_before > 0
    assert benchmark.results == [record]


def test_custom_run_against_live_server(tmp_path: Path) -> None:
    server, thread = _start_server(tmp_path)
    benchmark = PerformanceBenchmark(server.host, server.port)
    try:
        record = asyncio.run(benchmark.run_custom("About page", Phase("/about", 2, 0.2, 1)))
    finally:
        _stop_server(server, thread)

    assert record.total_requests > 0
    assert record.result.status_counts.get("200", 0) > 0
    assert "About page" in benchmark.generate_report()


def test_full_suite_runs_every_phase(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    server, thread = _start_server(tmp_path)
    benchmark = PerformanceBenchmark(
        server.host,
        server.port,
        phases=TINY_PHASES,
        phase_delay_secs=0,
    )
    try:
        report = asyncio.run(benchmark.run_full_suite())
    finally:
        _stop_server(server, thread)

    assert [record.name for record in benchmark.results] == [
        "Basic Load Test",
        "Endpoint Test",
        "Mixed Concurrent Load",
        "Memory Usage Test",
        "High Concurrency Stress Test",
    ]
    assert "Total Tests: 5" in report
    assert "PERFORMANCE BENCHMARK REPORT" in capsys.readouterr().out


def test_unreachable_server_fails_the_run() -> None:
    port = _closed_port()
    benchmark = PerformanceBenchmark("127.0.0.1", port, phases=TINY_PHASES, phase_delay_secs=0)

    with pytest.raises(BenchmarkError):
        asyncio.run(benchmark.run_full_suite())

    assert benchmark.results == []


def test_main_exit_codes(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("tools.benchmark.DEFAULT_PHASES", TINY_PHASES)
    port = _closed_port()

    assert main(["memory", "--port", str(port)]) == 0
    assert main(["basic", "--port", str(port), "--delay", "0"]) == 1
