from __future__ import annotations

import queue
import threading
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any


class JobTally:
    """
    Run-scoped count of finished job tasks (success or failure).

    Each job task drops one event into a SimpleQueue from its `finally` path; the
    orchestrator reads the size once every task has been joined. No shared integer
    is ever read-modify-written across threads.
    """

    def __init__(self) -> None:
        self._events: queue.SimpleQueue[bool] = queue.SimpleQueue()

    def record(self, *, ok: bool) -> None:
        self._events.put(ok)

    @property
    def count(self) -> int:
        return self._events.qsize()

    def reset(self) -> None:
        """Only call while no job task is running (run setup)."""
        self._events = queue.SimpleQueue()

    def drain(self) -> tuple[int, int]:
        """Consume all events; return (total, failed)."""
        total = failed = 0
        while True:
            try:
                ok = self._events.get_nowait()
            except queue.Empty:
                return total, failed
            total += 1
            if not ok:
                failed += 1


class JobPool:
    """
    Bounded pool for per-job work.

    max_workers threads execute tasks; at most max_in_flight tasks may be queued
    or running at once. submit() blocks the caller (a page fetch) while the pool
    is full, so a huge page cannot grow the backlog without bound.
    """

    def __init__(self, max_workers: int, max_in_flight: int, *, thread_name_prefix: str = "harvest-job") -> None:
        if max_in_flight < max_workers:
            max_in_flight = max_workers
        self.max_workers = max_workers
        self.max_in_flight = max_in_flight
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix=thread_name_prefix)
        self._slots = threading.BoundedSemaphore(max_in_flight)
        self._lock = threading.Lock()
        self._closed = False

    def submit(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Future:
        self._slots.acquire()
        try:
            fut = self._executor.submit(fn, *args, **kwargs)
        except BaseException:
            self._slots.release()
            raise
        fut.add_done_callback(lambda _f: self._slots.release())
        return fut

    def shutdown(self) -> None:
        """Idempotent; waits for running tasks."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
        self._executor.shutdown(wait=True)
