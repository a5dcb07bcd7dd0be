"""
FileStream — tails a regular file through rotation and truncation.

The file is appended to by another process and is eventually either
rotated or truncated:

  - rotation: a new file (new inode) appears under the same name. The old
    descriptor stays valid until EOF, so it is drained first; then a new
    task is spawned for the new file and the old one exits.
  - truncation: the same inode shrinks below our read offset. Anything
    written between the last read and the truncate is lost; we flush the
    pending partial line and restart from offset 0.

Both are only checked after a read returns EOF with no bytes.
"""

from __future__ import annotations

import asyncio
import enum
import io
import logging
import os
import stat

from config.settings import get_settings
from core.async_utils import get_io_pool
from core.exceptions import StreamOpenError, TailerBaseError, UnsupportedSourceError
from core.sync import WaitGroup
from events.line_queue import LineQueue
from monitoring.metrics_collector import StreamMetrics
from tailer.decode import PartialBuffer, decode_and_send
from tailer.log_stream import LogStream, open_nonblocking
from tailer.waker import Waker

logger = logging.getLogger(__name__)


class _AtEof(enum.Enum):
    IDLE = "idle"
    ROTATED = "rotated"
    TRUNCATED = "truncated"


class FileStream(LogStream):
    """Streams lines from a regular file.

    Usage::

        stream = FileStream(shutdown, group, waker, "/var/log/app.log", lines)
        stream.open(start_at_end=True)   # raises StreamOpenError
        ...
        stream.stop()
    """

    kind = "file"

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
    ) -> None:
        super().__init__(shutdown, group, waker, pathname, lines, metrics=metrics)
        self._read_size = read_buffer_size or get_settings().READ_BUFFER_SIZE

    def open(self, start_at_end: bool) -> None:
        """Open the current file at ``pathname`` and spawn a task reading it."""
        fh, identity = self._open_file(start_at_end)
        self._spawn(fh, identity)

    def _open_file(self, start_at_end: bool) -> tuple[io.FileIO, os.stat_result]:
        """Open and position the file; raises StreamOpenError or UnsupportedSourceError.

        Opened non-blocking so a FIFO swapped in at the path cannot hang the
        caller; the descriptor is switched back to blocking once it is known
        to be a regular file.
        """
        try:
            fh = open(self._pathname, "rb", buffering=0, opener=open_nonblocking)
        except OSError as exc:
            self._metrics.record_error(self._pathname)
            raise StreamOpenError(self._pathname, exc) from exc

        try:
            identity = os.fstat(fh.fileno())
            if stat.S_ISREG(identity.st_mode):
                os.set_blocking(fh.fileno(), True)
                if start_at_end:
                    fh.seek(0, os.SEEK_END)
                    logger.debug("%s: seeked to end", self._pathname)
        except OSError as exc:
            self._metrics.record_error(self._pathname)
            self._close(fh)
            raise StreamOpenError(self._pathname, exc) from exc

        if not stat.S_ISREG(identity.st_mode):
            self._metrics.record_error(self._pathname)
            self._close(fh)
            raise UnsupportedSourceError(self._pathname, identity.st_mode)

        logger.debug(
            "%s: opened new file (dev=%d ino=%d)",
            self._pathname, identity.st_dev, identity.st_ino,
        )
        return fh, identity

    def _spawn(self, fh: io.FileIO, identity: os.stat_result) -> None:
        self._group.spawn(
            self._read_loop(fh, identity),
            name=f"filestream-{self._pathname}",
        )

    # ── Reading ─────────────────────────────────────────────────────────

    async def _read_loop(self, fh: io.FileIO, identity: os.stat_result) -> None:
        loop = asyncio.get_running_loop()
        pool = get_io_pool()
        partial = PartialBuffer()
        try:
            while True:
                try:
                    data = await loop.run_in_executor(pool, self._read_chunk, fh)
                except OSError as exc:
                    self._fail("read", exc)
                    await self._flush(partial)
                    self._mark_completed()
                    return

                if data:
                    await decode_and_send(
                        self._lines, self._pathname, data, partial, self._metrics
                    )
                    self._touch()
                    # More may be waiting unless we are being shut down.
                    if not self._shutdown.is_set():
                        continue
                else:
                    try:
                        state = await loop.run_in_executor(
                            pool, self._check_at_eof, fh, identity
                        )
                    except OSError as exc:
                        self._fail("seek", exc)
                        await self._flush(partial)
                        self._mark_completed()
                        return

                    if state is _AtEof.ROTATED:
                        await self._rotate(partial)
                        return

                    if state is _AtEof.TRUNCATED:
                        # The bytes behind the old offset are gone; emit what we hold.
                        await self._flush(partial)
                        continue

                if self._stop_requested():
                    logger.debug("%s: stream finished, exiting", self._pathname)
                    await self._flush(partial)
                    self._mark_completed()
                    return

                # A stop or shutdown arriving while parked still gets one
                # more read, in case the file grew in the meantime.
                await self._idle_wait()
        except asyncio.CancelledError:
            self._mark_completed()
            raise
        finally:
            self._close(fh)

    def _read_chunk(self, fh: io.FileIO) -> bytes:
        return fh.read(self._read_size) or b""

    def _check_at_eof(self, fh: io.FileIO, identity: os.stat_result) -> _AtEof:
        """Classify an EOF: still growing, rotated away, or truncated.

        Runs on the I/O pool. Seek errors propagate; stat errors do not.
        """
        try:
            current = os.stat(self._pathname)
        except FileNotFoundError:
            # Deleted (we will be stopped) or mid-rotation between rename
            # and create (the next pass sees the new file).
            logger.debug("%s: no file at path, waiting", self._pathname)
            return _AtEof.IDLE
        except OSError as exc:
            self._fail("stat", exc)
            return _AtEof.IDLE

        if not os.path.samestat(identity, current):
            return _AtEof.ROTATED

        offset = fh.seek(0, os.SEEK_CUR)
        if offset != 0 and current.st_size < offset:
            logger.info(
                "%s: truncated (offset=%d size=%d), reading from start",
                self._pathname, offset, current.st_size,
            )
            fh.seek(0, os.SEEK_SET)
            self._metrics.record_truncation(self._pathname)
            return _AtEof.TRUNCATED

        return _AtEof.IDLE

    async def _rotate(self, partial: PartialBuffer) -> None:
        logger.info("%s: rotation detected, following new file", self._pathname)
        self._metrics.record_rotation(self._pathname)
        if partial:
            logger.debug(
                "%s: dropping %d unterminated byte(s) from rotated file",
                self._pathname, len(partial),
            )
        loop = asyncio.get_running_loop()
        try:
            fh, identity = await loop.run_in_executor(
                get_io_pool(), self._open_file, False
            )
        except TailerBaseError as exc:
            logger.warning("%s: cannot follow rotation: %s", self._pathname, exc.message)
            self._mark_completed()
            return
        self._spawn(fh, identity)

    def _fail(self, op: str, exc: OSError) -> None:
        self._metrics.record_error(self._pathname)
        logger.warning("%s: %s failed: %s", self._pathname, op, exc)
