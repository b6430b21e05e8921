"""Benchmark driver: sequential load-test phases against a running server, with a report."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone

import psutil

from tools.loadgen import LoadResult, percentile, run_load

logger = logging.getLogger(__name__)

MIXED_PATHS = ("/", "/helloworld", "/helloworld-heavy", "/health")
MEMORY_TEST_ITERATIONS = 100_000
RATINGS = (
    (50_000, "EXTREME PERFORMANCE"),
    (30_000, "EXCELLENT PERFORMANCE"),
    (15_000, "VERY GOOD PERFORMANCE"),
    (8_000, "GOOD PERFORMANCE"),
    (3_000, "AVERAGE PERFORMANCE"),
)


class BenchmarkError(Exception):
    """Raised when a load-test run gets no successful response at all."""


@dataclass(frozen=True, slots=True)
class Phase:
    path: str
    connections: int
    duration_secs: float
    pipelining: int


DEFAULT_PHASES: dict[str, Phase] = {
    "basic": Phase(path="/", connections=100, duration_secs=30, pipelining=10),
    "endpoint": Phase(path="/helloworld", connections=200, duration_secs=30, pipelining=10),
    "mixed": Phase(path="/", connections=50, duration_secs=20, pipelining=5),
    "stress": Phase(path="/", connections=500, duration_secs=60, pipelining=20),
}


@dataclass(slots=True)
class RunRecord:
    name: str
    timestamp: str
    phase: Phase
    result: LoadResult

    @property
    def total_requests(self) -> int:
        return self.result.total_requests

    @property
    def requests_per_sec(self) -> float:
        return self.result.requests_per_sec


@dataclass(slots=True)
class MixedRecord:
    name: str
    timestamp: str
    runs: list[RunRecord] = field(default_factory=list)

    @property
    def total_requests(self) -> int:
        return sum(run.total_requests for run in self.runs)

    @property
    def requests_per_sec(self) -> float:
        return sum(run.requests_per_sec for run in self.runs)

    @property
    def mean_latency_ms(self) -> float:
        if not self.runs:
            return 0.0
        return sum(run.result.mean_latency_ms for run in self.runs) / len(self.runs)


@dataclass(slots=True)
class MemoryRecord:
    name: str
    timestamp: str
    duration_ms: float
    rss_before: int
    rss_after: int
    iterations: int

    @property
    def total_requests(self) -> int:
        return 0

    @property
    def requests_per_sec(self) -> float:
        return 0.0


Record = RunRecord | MixedRecord | MemoryRecord


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def performance_rating(requests_per_sec: float) -> str:
    for threshold, label in RATINGS:
        if requests_per_sec > threshold:
            return label
    return "NEEDS OPTIMIZATION"


class PerformanceBenchmark:
    """Runs load-test phases one after another and keeps their results."""

    def __init__(
        self,
        host: str = "127.0.0.1",
        port: int = 3000,
        *,
        phases: dict[str, Phase] | None = None,
        phase_delay_secs: float = 2.0,
        timeout_secs: float = 5.0,
    ) -> None:
        self.host = host
        self.port = port
        self.phases = {**DEFAULT_PHASES, **(phases or {})}
        self.phase_delay_secs = phase_delay_secs
        self.timeout_secs = timeout_secs
        self.results: list[Record] = []

    async def _load(self, name: str, phase: Phase) -> RunRecord:
        result = await run_load(
            self.host,
            self.port,
            phase.path,
            concurrency=phase.connections,
            duration_secs=phase.duration_secs,
            timeout_secs=self.timeout_secs,
            pipeline_depth=phase.pipelining,
            headers={"Accept": "text/html,application/json"},
        )
        if result.successes == 0:
            raise BenchmarkError(
                f"{name}: no successful responses from {self.host}:{self.port}{phase.path}"
            )
        return RunRecord(name=name, timestamp=_now(), phase=phase, result=result)

    async def run_basic(self) -> RunRecord:
        logger.info("Running basic performance benchmark...")
        record = await self._load("Basic Load Test", self.phases["basic"])
        self.results.append(record)
        return record

    async def run_endpoint(self) -> RunRecord:
        logger.info("Running endpoint benchmark...")
        record = await self._load("Endpoint Test", self.phases["endpoint"])
        self.results.append(record)
        return record

    async def run_mixed(self, paths: tuple[str, ...] = MIXED_PATHS) -> MixedRecord:
        """Load several paths at once; the record is added after every run finishes."""
        logger.info("Running mixed concurrent load test...")
        template = self.phases["mixed"]
        runs = await asyncio.gather(
            *(
                self._load(
                    f"Mixed {path}",
                    Phase(path, template.connections, template.duration_secs, template.pipelining),
                )
                for path in paths
            )
        )
        record = MixedRecord(name="Mixed Concurrent Load", timestamp=_now(), runs=list(runs))
        self.results.append(record)
        return record

    async def run_stress(self) -> RunRecord:
        logger.info("Running stress test with high concurrency...")
        record = await self._load("High Concurrency Stress Test", self.phases["stress"])
        self.results.append(record)
        return record

    async def run_custom(self, name: str, phase: Phase) -> RunRecord:
        logger.info("Running custom benchmark: %s...", name)
        record = await self._load(name, phase)
        self.results.append(record)
        return record

    def measure_memory_usage(self, iterations: int = MEMORY_TEST_ITERATIONS) -> MemoryRecord:
        """Resident memory of this process around a fixed busy loop."""
        logger.info("Measuring memory usage...")
        process = psutil.Process()
        rss_before = process.memory_info().rss
        started = time.perf_counter()
        scratch = [index * 1.5 for index in range(iterations)]
        duration_ms = (time.perf_counter() - started) * 1000
        rss_after = process.memory_info().rss
        del scratch

        record = MemoryRecord(
            name="Memory Usage Test",
            timestamp=_now(),
            duration_ms=duration_ms,
            rss_before=rss_before,
            rss_after=rss_after,
            iterations=iterations,
        )
        self.results.append(record)
        return record

    async def run_full_suite(self) -> str:
        """Run every phase in order; the first failure stops the suite and is re-raised."""
        steps = (
            self.run_basic,
            self.run_endpoint,
            self.run_mixed,
            self._measure_memory_async,
            self.run_stress,
        )
        try:
            for index, step in enumerate(steps):
                if index:
                    await asyncio.sleep(self.phase_delay_secs)
                await step()
        except BenchmarkError:
            logger.error("Benchmark failed after %d runs", len(self.results))
            raise
        return self.generate_report()

    async def _measure_memory_async(self) -> MemoryRecord:
        return self.measure_memory_usage()

    def summary(self) -> str:
        if not self.results:
            return "No tests run"

        total_requests = sum(record.total_requests for record in self.results)
        throughputs = [record.requests_per_sec for record in self.results]
        average = sum(throughputs) / len(throughputs)
        best = max(throughputs)
        return "\n".join(
            [
                f"Total Tests: {len(self.results)}",
                f"Total Requests Processed: {total_requests:,}",
                f"Average Throughput: {average:,.0f} req/sec",
                f"Best Throughput: {best:,.0f} req/sec",
                f"Server Performance: {performance_rating(best)}",
            ]
        )

    def generate_report(self) -> str:
        sections = ["PERFORMANCE BENCHMARK REPORT", "=" * 28]
        for index, record in enumerate(self.results, start=1):
            sections.append("")
            sections.append(f"{index}. {record.name}")
            sections.append(f"   Time: {record.timestamp}")
            sections.append(format_record(record))
        sections.extend(["", "SUMMARY", "=" * 7, self.summary()])
        report = "\n".join(sections)
        print(report)
        return report


def format_record(record: Record) -> str:
    if isinstance(record, MemoryRecord):
        delta_mb = (record.rss_after - record.rss_before) / 1024 / 1024
        return (
            f"   Iterations: {record.iterations:,}\n"
            f"   Duration: {record.duration_ms:.2f}ms\n"
            f"   RSS delta: {delta_mb:.2f} MB"
        )

    if isinstance(record, MixedRecord):
        lines = [
            f"   Endpoints: {len(record.runs)}",
            f"   Total Requests: {record.total_requests:,}",
            f"   Combined Requests/sec: {record.requests_per_sec:,.0f}",
            f"   Latency (avg): {record.mean_latency_ms:.2f}ms",
        ]
        lines.extend(f"   - {run.phase.path}: {run.requests_per_sec:,.0f} req/sec" for run in record.runs)
        return "\n".join(lines)

    result = record.result
    return "\n".join(
        [
            f"   Requests/sec: {result.requests_per_sec:,.0f}",
            f"   Total Requests: {result.total_requests:,}",
            f"   Throughput: {result.megabytes_per_sec:.2f} MB/s",
            f"   Latency (avg): {result.mean_latency_ms:.2f}ms",
            f"   Latency (p99): {percentile(result.latencies_ms, 99):.2f}ms",
            f"   Duration: {result.duration_secs:.1f}s",
            f"   Connections: {record.phase.connections}",
            f"   Errors: {result.errors}",
        ]
    )


async def run_selected(benchmark: PerformanceBenchmark, test_type: str) -> str:
    if test_type == "full":
        return await benchmark.run_full_suite()
    if test_type == "memory":
        benchmark.measure_memory_usage()
    else:
        runner = {
            "basic": benchmark.run_basic,
            "endpoint": benchmark.run_endpoint,
            "mixed": benchmark.run_mixed,
            "stress": benchmark.run_stress,
        }[test_type]
        await runner()
    return benchmark.generate_report()


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Benchmark a running preload server")
    parser.add_argument(
        "test_type",
        nargs="?",
        default="full",
        choices=["full", "basic", "endpoint", "mixed", "stress", "memory"],
    )
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=3000)
    parser.add_argument("--delay", type=float, default=2.0)
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(level=logging.INFO)
    benchmark = PerformanceBenchmark(args.host, args.port, phase_delay_secs=args.delay)
    try:
        asyncio.run(run_selected(benchmark, args.test_type))
    except BenchmarkError as exc:
        logger.error("Benchmark failed: %s", exc)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
