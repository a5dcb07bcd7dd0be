"""
PipeStream — tails a named pipe (FIFO).

A pipe only reports EOF once every writer has closed it, so an idle writer
looks like a read that never returns. Each read is therefore bounded by a
short deadline; a deadline expiring with no data is the normal "writer is
quiet" signal and sends the stream to the waker.

EOF or any other read error ends the stream for good: a pipe has no
rotation or truncation, and a recreated pipe needs a new stream.
"""

from __future__ import annotations

import asyncio
import io
import logging
import select

from config.settings import get_settings
from core.async_utils import get_io_pool
from core.exceptions import StreamOpenError
from core.sync import WaitGroup
from events.line_queue import LineQueue
from monitoring.metrics_collector import StreamMetrics
from tailer.decode import PartialBuffer, decode_and_send
from tailer.log_stream import LogStream, open_nonblocking
from tailer.waker import Waker

logger = logging.getLogger(__name__)


class PipeStream(LogStream):
    """Streams lines from a named pipe."""

    kind = "pipe"

    def __init__(
        self,
        shutdown: asyncio.Event,
        group: WaitGroup,
        waker: Waker,
        pathname: str,
        lines: LineQueue,
        *,
        metrics: StreamMetrics | None = None,
        read_buffer_size: int | None = None,
        read_timeout: float | None = None,
    ) -> None:
        super().__init__(shutdown, group, waker, pathname, lines, metrics=metrics)
        settings = get_settings()
        self._read_size = read_buffer_size or settings.READ_BUFFER_SIZE
        self._read_timeout = read_timeout or settings.PIPE_READ_TIMEOUT

    def open(self) -> None:
        """Open the pipe and spawn the reading task.

        Non-blocking, because the writing end may not exist yet.
        """
        try:
            fh = open(self._pathname, "rb", buffering=0, opener=open_nonblocking)
        except OSError as exc:
            self._metrics.record_error(self._pathname)
            raise StreamOpenError(self._pathname, exc) from exc
        logger.debug("%s: opened new pipe (fd=%d)", self._pathname, fh.fileno())
        self._group.spawn(self._read_loop(fh), name=f"pipestream-{self._pathname}")

    # ── Reading ─────────────────────────────────────────────────────────

    async def _read_loop(self, fh: io.FileIO) -> None:
        partial = PartialBuffer()
        try:
            await self._pump(fh, partial)
            # A trailing unterminated line is delivered on stop and EOF alike.
            await self._flush(partial)
        finally:
            self._mark_completed()
            self._close(fh)

    async def _pump(self, fh: io.FileIO, partial: PartialBuffer) -> None:
        """Read until stopped, cancelled, EOF or an error."""
        loop = asyncio.get_running_loop()
        pool = get_io_pool()
        while True:
            try:
                data = await loop.run_in_executor(pool, self._read_with_deadline, fh)
            except OSError as exc:
                self._metrics.record_error(self._pathname)
                logger.warning("%s: read failed: %s", self._pathname, exc)
                return

            if data == b"":
                # pipe(7): all write ends closed.
                logger.info("%s: all writers closed the pipe", self._pathname)
                return

            if data:
                await decode_and_send(
                    self._lines, self._pathname, data, partial, self._metrics
                )
                self._touch()
                if not self._stop_requested():
                    continue

            # Timed out with nothing to read: the writer is idle.
            if self._stop_requested():
                return
            await self._idle_wait()
            if self._stop_requested():
                logger.debug("%s: stream has been stopped, exiting", self._pathname)
                return

    def _read_with_deadline(self, fh: io.FileIO) -> bytes | None:
        """Read what is available within the deadline; None on timeout."""
        poller = select.poll()
        poller.register(fh.fileno(), select.POLLIN)
        if not poller.poll(max(1, int(self._read_timeout * 1000))):
            return None
        # None again if another reader drained the pipe first (EAGAIN).
        return fh.read(self._read_size)
