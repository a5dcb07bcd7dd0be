"""
StreamSupervisor — owner of a set of streams and their shared shutdown.

Responsibilities:
  - Create streams for paths it is handed (it does not discover paths)
  - Hold the shutdown event every stream watches, and the join group
  - Hand back completed streams so the caller can decide what to reopen
  - Provide aggregated stream statistics
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from config.settings import get_settings
from core.sync import WaitGroup
from events.line_queue import LineQueue
from monitoring.metrics_collector import StreamMetrics, get_metrics
from tailer.factory import create_stream
from tailer.log_stream import LogStream
from tailer.waker import TimedWaker, Waker

logger = logging.getLogger(__name__)


class StreamSupervisor:
    """Manages the lifecycle of all streams feeding one line queue.

    Usage::

        supervisor = StreamSupervisor(lines)
        supervisor.tail("/var/log/syslog")

        # Periodically re-evaluate finished paths
        for path in supervisor.reap_completed():
            ...

        await supervisor.shutdown(timeout=5.0)
    """

    def __init__(
        self,
        lines: LineQueue,
        waker: Waker | None = None,
        *,
        metrics: StreamMetrics | None = None,
    ) -> None:
        self._settings = get_settings()
        self._lines = lines
        self._waker = waker or TimedWaker()
        self._metrics = metrics if metrics is not None else get_metrics()
        self._shutdown = asyncio.Event()
        self._group = WaitGroup()
        self._streams: dict[str, LogStream] = {}
        self._loop = asyncio.get_running_loop()

    def tail(self, pathname: str, *, start_at_end: bool | None = None) -> LogStream:
        """Return the live stream for ``pathname``, creating it if needed.

        Raises ``StreamOpenError`` or ``UnsupportedSourceError``.
        """
        existing = self._streams.get(pathname)
        if existing is not None and not existing.is_complete():
            return existing

        if start_at_end is None:
            start_at_end = self._settings.START_AT_END
        stream = create_stream(
            self._shutdown, self._group, self._waker, pathname, self._lines,
            start_at_end=start_at_end, metrics=self._metrics,
        )
        self._streams[pathname] = stream
        return stream

    def stop_stream(self, pathname: str) -> bool:
        """Gracefully stop one stream. Returns False if it is not known."""
        stream = self._streams.get(pathname)
        if stream is None:
            return False
        stream.stop()
        return True

    def reap_completed(self) -> list[str]:
        """Forget completed streams and return their pathnames."""
        done = [path for path, stream in self._streams.items() if stream.is_complete()]
        for path in done:
            del self._streams[path]
        if done:
            logger.info("StreamSupervisor: reaped %d completed stream(s)", len(done))
        return done

    def cancel(self) -> None:
        """Fire the shared shutdown signal. Safe from any thread, any number of times."""
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is self._loop:
            self._shutdown.set()
        else:
            self._loop.call_soon_threadsafe(self._shutdown.set)

    async def shutdown(self, timeout: float | None = None) -> bool:
        """Cancel every stream and wait for all of them to exit.

        Returns False if ``timeout`` expired first.
        """
        self.cancel()
        try:
            await asyncio.wait_for(self._group.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "StreamSupervisor: %d stream task(s) still running after %.1fs",
                len(self._group), timeout,
            )
            return False
        logger.info(
            "StreamSupervisor stopped (streams=%d, lines_enqueued=%d)",
            len(self._streams), self._lines.metrics().enqueued,
        )
        return True

    @property
    def streams(self) -> dict[str, LogStream]:
        return dict(self._streams)

    @property
    def group(self) -> WaitGroup:
        return self._group

    def get_stats(self) -> dict[str, Any]:
        """Return aggregated stream statistics."""
        return {
            "cancelled": self._shutdown.is_set(),
            "stream_count": len(self._streams),
            "running_tasks": len(self._group),
            "streams": {path: s.get_stats() for path, s in self._streams.items()},
            "counters": self._metrics.snapshot(),
        }
