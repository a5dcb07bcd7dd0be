"""
Concurrency primitives used by the streaming engine.

  - ``RWLock``    — reader/writer lock for fields read by health checks
  - ``Once``      — run-at-most-once latch guarding one-shot signals
  - ``WaitGroup`` — join point for a dynamically growing set of tasks
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Callable, Coroutine, Iterator
from contextlib import contextmanager
from typing import Any

logger = logging.getLogger(__name__)


class RWLock:
    """Many concurrent readers or one writer.

    Thread-based rather than asyncio-based: readers may be health checks
    running outside the event loop thread.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False

    @contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            while self._writer:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._readers:
                self._cond.wait()
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


class Once:
    """Latch that runs a callable at most once, whoever calls it first."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._done = False

    def do(self, fn: Callable[[], Any]) -> bool:
        """Run ``fn`` if this is the first call. Returns True if it ran."""
        with self._lock:
            if self._done:
                return False
            self._done = True
        fn()
        return True

    @property
    def done(self) -> bool:
        return self._done


class WaitGroup:
    """Tracks every task spawned through it, including ones spawned late.

    A file stream hands off to a fresh task on rotation while its old task
    is still running, so ``wait()`` keeps waiting until the set is empty
    rather than joining a snapshot taken when it was called.

    Usage::

        group = WaitGroup()
        group.spawn(stream_loop(), name="filestream-/var/log/app.log")
        await group.wait()
    """

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task[Any]] = set()

    def spawn(
        self, coro: Coroutine[Any, Any, Any], *, name: str | None = None
    ) -> asyncio.Task[Any]:
        """Schedule ``coro`` on the running loop and track it."""
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    async def wait(self) -> None:
        """Block until no tracked task is left running."""
        while self._tasks:
            await asyncio.wait(list(self._tasks))

    def __len__(self) -> int:
        return len(self._tasks)

    def _on_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "WaitGroup: task %s crashed", task.get_name(), exc_info=exc
            )
