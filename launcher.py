"""Launcher: runs the server (optionally pinned to one CPU core) or the benchmark suite."""

from __future__ import annotations

import argparse
import logging
import subprocess
import sys
import threading

import psutil

from config import AFFINITY_DELAY_SECS, Settings, load_env_file

logger = logging.getLogger(__name__)

MODES = ("api", "benchmark")


def affinity_supported() -> bool:
    return hasattr(psutil.Process, "cpu_affinity")


def apply_cpu_affinity(pid: int, core: int) -> bool:
    """Pin ``pid`` to a single core. Failures are logged and reported as False."""
    if not affinity_supported():
        logger.warning("CPU affinity not supported on %s", sys.platform)
        return False
    try:
        psutil.Process(pid).cpu_affinity([core])
    except (psutil.Error, ValueError, OSError) as exc:
        logger.warning("Could not set CPU affinity: %s", exc)
        return False
    logger.info("CPU affinity set to core %s (%s)", core, sys.platform)
    return True


def schedule_cpu_affinity(
    pid: int,
    core: int,
    delay_secs: float = AFFINITY_DELAY_SECS,
) -> threading.Timer:
    """Apply affinity after ``delay_secs`` without blocking the caller."""
    timer = threading.Timer(delay_secs, apply_cpu_affinity, args=(pid, core))
    timer.daemon = True
    timer.start()
    return timer


def server_command(port: int | None) -> list[str]:
    command = [sys.executable, "-m", "server"]
    if port is not None:
        command.append(str(port))
    return command


def benchmark_command() -> list[str]:
    return [sys.executable, "-m", "tools.benchmark"]


def _wait_for_child(child: subprocess.Popen) -> int:
    try:
        return child.wait()
    except KeyboardInterrupt:
        child.terminate()
        return child.wait()


def run_api(settings: Settings, port: int | None) -> int:
    logger.info("Starting preload server...")
    child = subprocess.Popen(server_command(port))

    if settings.single_core_mode:
        logger.info("Single-core mode: using CPU core %s", settings.cpu_core_number)
        logger.info("Thread pool size: %s", settings.thread_pool_size)
        schedule_cpu_affinity(child.pid, settings.cpu_core_number)

    return _wait_for_child(child)


def run_benchmark() -> int:
    logger.info("Running performance benchmark...")
    return _wait_for_child(subprocess.Popen(benchmark_command()))


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Preload server launcher",
        epilog=(
            "examples: launcher.py | launcher.py api 3001 | launcher.py benchmark"
        ),
    )
    parser.add_argument("mode", nargs="?", choices=MODES, default="api")
    parser.add_argument("port", nargs="?", type=int, default=None)
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    logging.basicConfig(level=logging.INFO)
    load_env_file()
    if args.mode == "benchmark":
        return run_benchmark()
    return run_api(Settings.from_env(), args.port)


if __name__ == "__main__":
    sys.exit(main())
