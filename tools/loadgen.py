"""Async load generator: keep-alive connections with optional HTTP pipelining."""

from __future__ import annotations

import argparse
import asyncio
import json
import time
from collections import Counter
from dataclasses import dataclass, field


@dataclass(slots=True)
class LoadResult:
    total_requests: int
    errors: int
    status_counts: dict[str, int]
    latencies_ms: list[float] = field(default_factory=list)
    duration_secs: float = 0.0
    bytes_received: int = 0

    @property
    def successes(self) -> int:
        return self.total_requests - self.errors

    @property
    def requests_per_sec(self) -> float:
        return self.total_requests / self.duration_secs if self.duration_secs > 0 else 0.0

    @property
    def megabytes_per_sec(self) -> float:
        if self.duration_secs <= 0:
            return 0.0
        return self.bytes_received / 1024 / 1024 / self.duration_secs

    @property
    def mean_latency_ms(self) -> float:
        if not self.latencies_ms:
            return 0.0
        return sum(self.latencies_ms) / len(self.latencies_ms)

    def summary(self) -> dict[str, float | int | dict[str, int]]:
        error_rate = self.errors / self.total_requests if self.total_requests > 0 else 0.0
        return {
            "requests": self.total_requests,
            "errors": self.errors,
            "error_rate": round(error_rate, 6),
            "rps": round(self.requests_per_sec, 2),
            "mb_per_sec": round(self.megabytes_per_sec, 2),
            "avg_ms": round(self.mean_latency_ms, 2),
            "p50_ms": round(percentile(self.latencies_ms, 50), 2),
            "p95_ms": round(percentile(self.latencies_ms, 95), 2),
            "p99_ms": round(percentile(self.latencies_ms, 99), 2),
            "status_counts": self.status_counts,
        }


def _build_request(host: str, port: int, path: str, headers: dict[str, str]) -> bytes:
    lines = [f"GET {path} HTTP/1.1", f"Host: {host}:{port}", "Connection: keep-alive"]
    lines.extend(f"{name}: {value}" for name, value in headers.items())
    return ("\r\n".join(lines) + "\r\n\r\n").encode("ascii")


async def run_load(
    host: str,
    port: int,
    path: str,
    *,
    concurrency: int,
    duration_secs: float,
    timeout_secs: float,
    pipeline_depth: int = 1,
    headers: dict[str, str] | None = None,
) -> LoadResult:
    """Drive ``concurrency`` persistent connections at ``path`` for ``duration_secs``.

    Each connection writes up to ``pipeline_depth`` requests before reading
    the responses back in order. A failed exchange counts one error per
    outstanding request and the connection is reopened.
    """
    status_counts: Counter[str] = Counter()
    latencies_ms: list[float] = []
    totals = {"requests": 0, "errors": 0, "bytes": 0}
    stop_at = time.perf_counter() + duration_secs
    depth = max(1, pipeline_depth)
    request_bytes = _build_request(host, port, path, headers or {})

    def record(status: int, latency_ms: float, size: int) -> None:
        totals["requests"] += 1
        latencies_ms.append(latency_ms)
        totals["bytes"] += size
        status_counts[str(status)] += 1

    def record_errors(count: int) -> None:
        totals["requests"] += count
        totals["errors"] += count

    async def worker() -> None:
        reader: asyncio.StreamReader | None = None
        writer: asyncio.StreamWriter | None = None
        try:
            while time.perf_counter() < stop_at:
                if writer is None or writer.is_closing():
                    try:
                        reader, writer = await asyncio.wait_for(
                            asyncio.open_connection(host, port),
                            timeout=timeout_secs,
                        )
                    except (OSError, asyncio.TimeoutError):
                        record_errors(1)
                        await asyncio.sleep(0.01)
                        continue

                sent_at = time.perf_counter()
                writer.write(request_bytes * depth)
                answered = 0
                try:
                    await writer.drain()
                    while answered < depth:
                        status, size, keep_open = await _read_response(reader, timeout=timeout_secs)
                        record(status, (time.perf_counter() - sent_at) * 1000, size)
                        answered += 1
                        if not keep_open and answered < depth:
                            raise ConnectionResetError("Server closed a pipelined connection")
                    if not keep_open:
                        await _close(writer)
                        reader = None
                        writer = None
                except (OSError, ValueError, asyncio.TimeoutError, asyncio.IncompleteReadError):
                    record_errors(depth - answered)
                    await _close(writer)
                    reader = None
                    writer = None
        finally:
            if writer is not None:
                await _close(writer)

    started = time.perf_counter()
    await asyncio.gather(*(worker() for _ in range(concurrency)))
    duration = time.perf_counter() - started

    return LoadResult(
        total_requests=totals["requests"],
        errors=totals["errors"],
        status_counts=dict(status_counts),
        latencies_ms=latencies_ms,
        duration_secs=duration,
        bytes_received=totals["bytes"],
    )


async def _close(writer: asyncio.StreamWriter) -> None:
    writer.close()
    try:
        await writer.wait_closed()
    except OSError:
        pass


async def _read_response(
    reader: asyncio.StreamReader,
    timeout: float,
) -> tuple[int, int, bool]:
    """Read one response; return (status, bytes on the wire, connection still open)."""
    status_line = await asyncio.wait_for(reader.readline(), timeout=timeout)
    if not status_line.startswith(b"HTTP/"):
        raise ValueError("Invalid status line")
    parts = status_line.decode("iso-8859-1").strip().split(" ")
    if len(parts) < 2:
        raise ValueError("Malformed status line")
    status = int(parts[1])
    size = len(status_line)

    headers: dict[str, str] = {}
    while True:
        line = await asyncio.wait_for(reader.readline(), timeout=timeout)
        size += len(line)
        if line in {b"\r\n", b"\n", b""}:
            break
        if b":" not in line:
            raise ValueError("Malformed header line")
        key, value = line.decode("iso-8859-1").strip().split(":", 1)
        headers[key.strip().lower()] = value.strip()

    content_length = int(headers.get("content-length", "0"))
    if content_length > 0:
        await asyncio.wait_for(reader.readexactly(content_length), timeout=timeout)
        size += content_length

    return status, size, headers.get("connection", "").lower() != "close"


def percentile(values: list[float], pct: int) -> float:
    if not values:
        return 0.0
    if pct <= 0:
        return min(values)
    if pct >= 100:
        return max(values)

    ordered = sorted(values)
    rank = (len(ordered) - 1) * (pct / 100)
    lower = int(rank)
    upper = min(lower + 1, len(ordered) - 1)
    weight = rank - lower
    return ordered[lower] * (1 - weight) + ordered[upper] * weight


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run HTTP load against a running server")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=3000)
    parser.add_argument("--path", default="/")
    parser.add_argument("--concurrency", type=int, default=100)
    parser.add_argument("--duration", type=float, default=10.0)
    parser.add_argument("--timeout", type=float, default=2.0)
    parser.add_argument("--pipeline-depth", type=int, default=1)
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    result = asyncio.run(
        run_load(
            host=args.host,
            port=args.port,
            path=args.path,
            concurrency=args.concurrency,
            duration_secs=args.duration,
            timeout_secs=args.timeout,
            pipeline_depth=args.pipeline_depth,
        )
    )
    print(json.dumps(result.summary(), indent=2, sort_keys=True))


if __name__ == "__main__":
    main()
