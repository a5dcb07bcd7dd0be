"""
LineQueue — the bounded line sink shared by all streams.

Wraps ``asyncio.Queue`` to provide:
  - Configurable max size; ``put`` blocks while full so a slow consumer
    throttles every producing stream instead of growing memory
  - Metrics tracking (enqueued, dequeued, peak depth)
  - Non-blocking ``drain_nowait`` for consumers that batch
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from config.settings import get_settings
from events.log_line import LogLine

logger = logging.getLogger(__name__)


@dataclass
class QueueMetrics:
    """Snapshot of queue health metrics."""

    enqueued: int = 0
    dequeued: int = 0
    peak_depth: int = 0
    current_depth: int = 0


class LineQueue:
    """Ordered, capacity-bounded queue of ``LogLine`` records.

    Usage::

        lines = LineQueue(max_size=1000)
        await lines.put(line)          # blocks if full
        line = await lines.get()       # blocks until available
        batch = lines.drain_nowait()   # everything queued right now
    """

    def __init__(self, max_size: int | None = None) -> None:
        settings = get_settings()
        self._max_size = max_size or settings.LINE_QUEUE_MAX_SIZE
        self._queue: asyncio.Queue[LogLine] = asyncio.Queue(maxsize=self._max_size)
        self._enqueued = 0
        self._dequeued = 0
        self._peak_depth = 0

    # ── Producer API ────────────────────────────────────────────────────

    async def put(self, item: LogLine) -> None:
        """Put a line, blocking while the queue is full."""
        if self._queue.full():
            logger.debug("LineQueue full (max=%d), producer blocked", self._max_size)
        await self._queue.put(item)
        self._enqueued += 1
        self._track_peak()

    # ── Consumer API ────────────────────────────────────────────────────

    async def get(self) -> LogLine:
        """Get the next line, blocking until available."""
        item = await self._queue.get()
        self._dequeued += 1
        return item

    def get_nowait(self) -> LogLine:
        """Get the next line or raise ``asyncio.QueueEmpty``."""
        item = self._queue.get_nowait()
        self._dequeued += 1
        return item

    def drain_nowait(self) -> list[LogLine]:
        """Remove and return every line currently queued."""
        items: list[LogLine] = []
        while True:
            try:
                items.append(self.get_nowait())
            except asyncio.QueueEmpty:
                return items

    def task_done(self) -> None:
        """Mark a dequeued line as processed."""
        self._queue.task_done()

    # ── Properties ──────────────────────────────────────────────────────

    @property
    def max_size(self) -> int:
        return self._max_size

    @property
    def depth(self) -> int:
        """Current queue depth."""
        return self._queue.qsize()

    @property
    def empty(self) -> bool:
        return self._queue.empty()

    @property
    def full(self) -> bool:
        return self._queue.full()

    def metrics(self) -> QueueMetrics:
        """Return a snapshot of queue metrics."""
        return QueueMetrics(
            enqueued=self._enqueued,
            dequeued=self._dequeued,
            peak_depth=self._peak_depth,
            current_depth=self.depth,
        )

    # ── Internal ────────────────────────────────────────────────────────

    def _track_peak(self) -> None:
        current = self.depth
        if current > self._peak_depth:
            self._peak_depth = current
