"""Serialized print job execution.

Both transports are single-client serial links, so every print goes through
one FIFO chain: a job starts only after the previous one has settled, and a
failing job does not stop the ones behind it.
"""
from __future__ import annotations

import asyncio
import concurrent.futures
import logging
import threading
from typing import Any, Awaitable, Callable, Optional

from common.events import emit

LOGGER = logging.getLogger(__name__)

Job = Callable[[], Awaitable[Any]]


class PrintJobQueue:
    def __init__(self) -> None:
        self._lock: Optional[asyncio.Lock] = None
        self._sequence = 0

    async def enqueue(self, job: Job, name: str = "") -> Any:
        """Run ``job`` after every job enqueued before it; returns its result."""
        if self._lock is None:
            self._lock = asyncio.Lock()
        self._sequence += 1
        label = name or f"job-{self._sequence}"
        async with self._lock:
            emit(LOGGER, "queue.start", job=label)
            try:
                result = await job()
            except Exception as exc:
                emit(LOGGER, "queue.failed", logging.ERROR, job=label, error=str(exc))
                raise
            emit(LOGGER, "queue.done", job=label)
            return result


class BackgroundPrintQueue:
    """Hosts a :class:`PrintJobQueue` on its own event loop thread.

    Synchronous callers such as Flask views submit coroutine factories and
    get a ``concurrent.futures.Future`` back.
    """

    def __init__(self, name: str = "print-queue") -> None:
        self.name = name
        self.queue = PrintJobQueue()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None
        self._ready = threading.Event()
        self._start_lock = threading.Lock()

    def start(self) -> None:
        with self._start_lock:
            if self._thread is not None and self._thread.is_alive():
                return
            self._ready.clear()
            self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
            self._thread.start()
        self._ready.wait()

    def _run(self) -> None:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        self._loop = loop
        self._ready.set()
        try:
            loop.run_forever()
        finally:
            loop.run_until_complete(loop.shutdown_asyncgens())
            loop.close()
            LOGGER.debug("Print queue loop %s stopped", self.name)

    def submit(self, job: Job, name: str = "") -> concurrent.futures.Future:
        self.start()
        assert self._loop is not None
        return asyncio.run_coroutine_threadsafe(self.queue.enqueue(job, name), self._loop)

    def run(self, job: Job, name: str = "", timeout: Optional[float] = None) -> Any:
        """Submit ``job`` and block until it settles."""
        return self.submit(job, name).result(timeout=timeout)

    def call(self, job: Job, timeout: Optional[float] = None) -> Any:
        """Run ``job`` on the queue's loop without joining the print chain."""
        self.start()
        assert self._loop is not None
        return asyncio.run_coroutine_threadsafe(job(), self._loop).result(timeout=timeout)

    def stop(self, timeout: float = 5.0) -> None:
        loop, thread = self._loop, self._thread
        if loop is None or thread is None:
            return
        loop.call_soon_threadsafe(loop.stop)
        thread.join(timeout)
        self._loop = None
        self._thread = None


__all__ = ["BackgroundPrintQueue", "Job", "PrintJobQueue"]
