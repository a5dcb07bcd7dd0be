"""
Line splitting shared by file and pipe streams.

Reads arrive in arbitrary chunks; ``PartialBuffer`` turns them into whole
lines and holds the unterminated tail until the next chunk (or a forced
flush) completes it.

Line policy:
  - ``\\n`` terminates a line and is not part of the emitted text
  - a ``\\r`` right before the terminator (CRLF) is dropped as well
  - text is decoded as UTF-8 with replacement characters, one whole line
    at a time, so a multi-byte character split across reads survives
"""

from __future__ import annotations

import logging

from events.line_queue import LineQueue
from events.log_line import LogLine
from monitoring.metrics_collector import StreamMetrics

logger = logging.getLogger(__name__)

_NL = b"\n"


def _decode(raw: bytes) -> str:
    return raw.decode("utf-8", errors="replace")


def _decode_terminated(raw: bytes) -> str:
    # Only a \r followed by the \n is part of the terminator.
    if raw.endswith(b"\r"):
        raw = raw[:-1]
    return _decode(raw)


class PartialBuffer:
    """Accumulates bytes not yet terminated by a newline.

    Never holds a complete line: ``feed`` hands every terminated line back
    to the caller immediately.
    """

    def __init__(self) -> None:
        self._buf = bytearray()

    def feed(self, chunk: bytes) -> list[str]:
        """Append ``chunk`` and return the lines it completed, in order."""
        lines: list[str] = []
        start = 0
        while True:
            end = chunk.find(_NL, start)
            if end < 0:
                break
            if self._buf:
                self._buf += chunk[start:end]
                lines.append(_decode_terminated(bytes(self._buf)))
                self._buf.clear()
            else:
                lines.append(_decode_terminated(chunk[start:end]))
            start = end + 1
        self._buf += chunk[start:]
        return lines

    def flush(self) -> str | None:
        """Return the pending fragment as a line and clear it; None if empty."""
        if not self._buf:
            return None
        line = _decode(bytes(self._buf))
        self._buf.clear()
        return line

    @property
    def pending(self) -> bytes:
        return bytes(self._buf)

    def __len__(self) -> int:
        return len(self._buf)

    def __bool__(self) -> bool:
        return bool(self._buf)


async def decode_and_send(
    lines: LineQueue,
    pathname: str,
    chunk: bytes,
    partial: PartialBuffer,
    metrics: StreamMetrics,
) -> int:
    """Split ``chunk`` into lines and put each on the sink.

    Blocks while the sink is full. Returns the number of lines sent.
    """
    decoded = partial.feed(chunk)
    for text in decoded:
        await lines.put(LogLine(filename=pathname, line=text))
        metrics.record_line(pathname)
    return len(decoded)


async def send_line(
    lines: LineQueue,
    pathname: str,
    partial: PartialBuffer,
    metrics: StreamMetrics,
) -> bool:
    """Force the pending fragment onto the sink as a line.

    Used on truncation and shutdown. Returns False if nothing was pending.
    """
    text = partial.flush()
    if text is None:
        return False
    logger.debug("%s: flushing %d byte partial line", pathname, len(text))
    await lines.put(LogLine(filename=pathname, line=text))
    metrics.record_line(pathname)
    return True
