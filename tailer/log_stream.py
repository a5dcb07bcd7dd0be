"""
LogStream — common capability of every tailed source.

Every stream follows the same lifecycle:
  1. created by a factory, which opens the source and spawns its task
  2. the task reads until the source is exhausted, then parks on the waker
  3. ``stop()`` or the shared shutdown event ends it; ``is_complete()``
     turns true once the task has exited for good

Streams are:
  - Independent (one asyncio task per open descriptor)
  - Non-blocking (syscalls run on the shared I/O pool, never on the loop)
  - Isolated (I/O errors end one stream and are only logged and counted)
"""

from __future__ import annotations

import asyncio
import io
import logging
import os
from datetime import datetime, timezone
from typing import Any

from core.sync import Once, RWLock, WaitGroup
from events.line_queue import LineQueue
from monitoring.metrics_collector import StreamMetrics, get_metrics
from tailer.decode import PartialBuffer, send_line
from tailer.waker import Waker

logger = logging.getLogger(__name__)


def open_nonblocking(path: str, flags: int) -> int:
    """``open()`` opener adding O_NONBLOCK; opening a FIFO then never waits for a writer."""
    return os.open(path, flags | os.O_NONBLOCK)


class LogStream:
    """Base class for file and pipe streams.

    Only ``last_read_time`` and ``completed`` are shared with other threads,
    and only they sit behind the reader/writer lock. Everything else is
    owned by the stream's task.
    """

    kind = "stream"

    def __init__(
        self,
        shutdown: asyncio.Event,
        group: WaitGroup,
        waker: Waker,
        pathname: str,
        lines: LineQueue,
        *,
        metrics: StreamMetrics | None = None,
    ) -> None:
        self._shutdown = shutdown
        self._group = group
        self._waker = waker
        self._pathname = pathname
        self._lines = lines
        self._metrics = metrics if metrics is not None else get_metrics()
        self._loop = asyncio.get_running_loop()

        self._lock = RWLock()  # protects the two fields below
        self._last_read_time = datetime.now(timezone.utc)
        self._completed = False

        self._stop_once = Once()
        self._stop_event = asyncio.Event()

    # ── Public API ──────────────────────────────────────────────────────

    @property
    def pathname(self) -> str:
        return self._pathname

    def last_read_time(self) -> datetime:
        """Time of the most recent non-empty read (creation time before that)."""
        with self._lock.read():
            return self._last_read_time

    def is_complete(self) -> bool:
        """True once the stream's task has exited; never reverts."""
        with self._lock.read():
            return self._completed

    def stop(self) -> None:
        """Ask the stream to finish reading and exit. Safe to call repeatedly."""
        if self._stop_once.do(self._close_stop):
            logger.info("%s: stopping at next EOF", self._pathname)

    def get_stats(self) -> dict[str, Any]:
        """Return stream statistics."""
        return {
            "pathname": self._pathname,
            "kind": self.kind,
            "complete": self.is_complete(),
            "stop_requested": self._stop_once.done,
            "last_read_time": self.last_read_time().isoformat(),
        }

    # ── Internal ────────────────────────────────────────────────────────

    def _close_stop(self) -> None:
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is self._loop:
            self._stop_event.set()
        else:
            self._loop.call_soon_threadsafe(self._stop_event.set)

    def _stop_requested(self) -> bool:
        return self._stop_event.is_set() or self._shutdown.is_set()

    def _touch(self) -> None:
        now = datetime.now(timezone.utc)
        with self._lock.write():
            if now > self._last_read_time:
                self._last_read_time = now

    def _mark_completed(self) -> None:
        with self._lock.write():
            self._completed = True

    async def _flush(self, partial: PartialBuffer) -> None:
        await send_line(self._lines, self._pathname, partial, self._metrics)

    async def _idle_wait(self) -> None:
        """Park until stop, shutdown or the waker fires, whichever comes first."""
        waiters = [
            asyncio.ensure_future(self._stop_event.wait()),
            asyncio.ensure_future(self._shutdown.wait()),
            asyncio.ensure_future(self._waker.wake()),
        ]
        try:
            await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for waiter in waiters:
                waiter.cancel()

    def _close(self, fh: io.FileIO) -> None:
        logger.debug("%s: closing file descriptor %d", self._pathname, fh.fileno())
        try:
            fh.close()
        except OSError as exc:
            self._metrics.record_error(self._pathname)
            logger.warning("%s: close failed: %s", self._pathname, exc)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self._pathname!r} complete={self.is_complete()}>"
