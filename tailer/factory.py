"""
Stream constructors exposed to the discovery layer.

Each constructor opens the source, spawns the stream's task on ``group``
and returns the running stream, or raises ``StreamOpenError``. Nothing is
retried here; a failed path is picked up again on the next discovery pass.
"""

from __future__ import annotations

import asyncio
import logging
import os
import stat

from core.exceptions import StreamOpenError, UnsupportedSourceError
from core.sync import WaitGroup
from events.line_queue import LineQueue
from monitoring.metrics_collector import StreamMetrics, get_metrics
from tailer.file_stream import FileStream
from tailer.log_stream import LogStream
from tailer.pipe_stream import PipeStream
from tailer.waker import Waker

logger = logging.getLogger(__name__)


def _stat_source(pathname: str, metrics: StreamMetrics) -> os.stat_result:
    try:
        return os.stat(pathname)
    except OSError as exc:
        metrics.record_error(pathname)
        raise StreamOpenError(pathname, exc) from exc


def create_file_stream(
    shutdown: asyncio.Event,
    group: WaitGroup,
    waker: Waker,
    pathname: str,
    file_info: os.stat_result | None,
    lines: LineQueue,
    start_at_end: bool = False,
    *,
    metrics: StreamMetrics | None = None,
    read_buffer_size: int | None = None,
) -> FileStream:
    """Start tailing a regular file.

    ``start_at_end`` skips existing content. ``file_info`` is the stat the
    caller discovered the path with; it is taken fresh when omitted.
    """
    metrics = metrics if metrics is not None else get_metrics()
    if file_info is None:
        file_info = _stat_source(pathname, metrics)
    if not stat.S_ISREG(file_info.st_mode):
        raise UnsupportedSourceError(pathname, file_info.st_mode)

    stream = FileStream(
        shutdown, group, waker, pathname, lines,
        metrics=metrics, read_buffer_size=read_buffer_size,
    )
    stream.open(start_at_end=start_at_end)
    logger.info("Tailing file %s (start_at_end=%s)", pathname, start_at_end)
    return stream


def create_pipe_stream(
    shutdown: asyncio.Event,
    group: WaitGroup,
    waker: Waker,
    pathname: str,
    file_info: os.stat_result | None,
    lines: LineQueue,
    *,
    metrics: StreamMetrics | None = None,
    read_buffer_size: int | None = None,
    read_timeout: float | None = None,
) -> PipeStream:
    """Start tailing a named pipe."""
    metrics = metrics if metrics is not None else get_metrics()
    if file_info is None:
        file_info = _stat_source(pathname, metrics)
    if not stat.S_ISFIFO(file_info.st_mode):
        raise UnsupportedSourceError(pathname, file_info.st_mode)

    stream = PipeStream(
        shutdown, group, waker, pathname, lines,
        metrics=metrics, read_buffer_size=read_buffer_size, read_timeout=read_timeout,
    )
    stream.open()
    logger.info("Tailing pipe %s", pathname)
    return stream


def create_stream(
    shutdown: asyncio.Event,
    group: WaitGroup,
    waker: Waker,
    pathname: str,
    lines: LineQueue,
    *,
    start_at_end: bool = False,
    metrics: StreamMetrics | None = None,
) -> LogStream:
    """Stat ``pathname`` and start the stream matching its file type."""
    metrics = metrics if metrics is not None else get_metrics()
    file_info = _stat_source(pathname, metrics)
    if stat.S_ISFIFO(file_info.st_mode):
        return create_pipe_stream(
            shutdown, group, waker, pathname, file_info, lines, metrics=metrics
        )
    if stat.S_ISREG(file_info.st_mode):
        return create_file_stream(
            shutdown, group, waker, pathname, file_info, lines, start_at_end,
            metrics=metrics,
        )
    raise UnsupportedSourceError(pathname, file_info.st_mode)
