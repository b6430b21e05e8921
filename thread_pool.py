"""Fixed-size worker pool serving accepted client connections."""

from __future__ import annotations

import logging
import queue
import socket
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

ClientAddress = tuple[str, int]
ClientHandler = Callable[[socket.socket, ClientAddress], None]

logger = logging.getLogger(__name__)

WORKER_POLL_SECS = 0.2


@dataclass(slots=True)
class AcceptedClient:
    sock: socket.socket
    address: ClientAddress


class ThreadPool:
    """Worker threads fed by a bounded queue of accepted connections.

    Handler exceptions are not caught here: they end the worker thread and
    reach ``threading.excepthook``, which the server bootstrap turns into a
    process exit.
    """

    def __init__(self, worker_count: int, queue_size: int, handler: ClientHandler) -> None:
        if worker_count <= 0:
            raise ValueError("worker_count must be positive")
        if queue_size <= 0:
            raise ValueError("queue_size must be positive")

        self._handler = handler
        self._worker_count = worker_count
        self._jobs: queue.Queue[AcceptedClient | None] = queue.Queue(maxsize=queue_size)
        self._threads: list[threading.Thread] = []
        self._busy = 0
        self._idle = threading.Condition()
        self._closed = False

    @property
    def worker_count(self) -> int:
        return self._worker_count

    @property
    def threads(self) -> list[threading.Thread]:
        return list(self._threads)

    @property
    def busy_workers(self) -> int:
        with self._idle:
            return self._busy

    def start(self) -> None:
        for index in range(self._worker_count):
            worker = threading.Thread(
                target=self._run_worker,
                name=f"page-worker-{index}",
                daemon=True,
            )
            self._threads.append(worker)
            worker.start()

    def submit(self, client_socket: socket.socket, address: ClientAddress) -> bool:
        """Queue a connection; False when the pool is closed or the queue is full."""
        if self._closed:
            return False
        try:
            self._jobs.put_nowait(AcceptedClient(client_socket, address))
        except queue.Full:
            return False
        return True

    def wait_until_idle(self, timeout: float) -> bool:
        deadline = time.monotonic() + timeout
        with self._idle:
            while self._busy or not self._jobs.empty():
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return False
                self._idle.wait(timeout=min(remaining, 0.1))
        return True

    def shutdown(self, *, drain_timeout: float = 0.0) -> None:
        if self._closed:
            return
        self._closed = True
        if drain_timeout > 0:
            self.wait_until_idle(drain_timeout)

        dropped = self._close_pending()
        if dropped:
            logger.warning("Closed %d queued connections that were never served", dropped)

        for _ in self._threads:
            try:
                self._jobs.put_nowait(None)
            except queue.Full:
                break
        for thread in self._threads:
            thread.join(timeout=1.0)
        self._threads.clear()

    def _close_pending(self) -> int:
        dropped = 0
        while True:
            try:
                job = self._jobs.get_nowait()
            except queue.Empty:
                return dropped
            if job is not None:
                job.sock.close()
                dropped += 1

    def _run_worker(self) -> None:
        while True:
            try:
                job = self._jobs.get(timeout=WORKER_POLL_SECS)
            except queue.Empty:
                if self._closed:
                    return
                continue
            if job is None:
                return
            with self._idle:
                self._busy += 1
            try:
                self._handler(job.sock, job.address)
            finally:
                with self._idle:
                    self._busy -= 1
                    self._idle.notify_all()
