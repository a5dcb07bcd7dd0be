"""
StreamMetrics — per-source counters for the streaming engine.

Each counter is keyed by pathname, matching the exported variables of the
log tailer this engine grew out of:

  - ``log_errors_total``      — I/O errors (open, read, seek, stat, close)
  - ``log_lines_total``       — lines delivered to the sink
  - ``file_rotations_total``  — rotations detected on regular files
  - ``file_truncates_total``  — truncations detected on regular files

Counters are bumped both from the event loop and from I/O pool threads,
so every update takes a lock.
"""

from __future__ import annotations

import threading
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any

LOG_ERRORS = "log_errors_total"
LOG_LINES = "log_lines_total"
FILE_ROTATIONS = "file_rotations_total"
FILE_TRUNCATES = "file_truncates_total"

COUNTERS = (LOG_ERRORS, LOG_LINES, FILE_ROTATIONS, FILE_TRUNCATES)


class StreamMetrics:
    """Thread-safe per-pathname counters.

    Usage::

        metrics = StreamMetrics()
        metrics.record_line("/var/log/syslog")
        metrics.get(LOG_LINES, "/var/log/syslog")   # -> 1
        snapshot = metrics.snapshot()
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._started_at = datetime.now(timezone.utc)
        self._counters: dict[str, defaultdict[str, int]] = {
            name: defaultdict(int) for name in COUNTERS
        }

    # ── Recording ───────────────────────────────────────────────────────

    def record_error(self, pathname: str) -> None:
        self._add(LOG_ERRORS, pathname)

    def record_line(self, pathname: str) -> None:
        self._add(LOG_LINES, pathname)

    def record_rotation(self, pathname: str) -> None:
        self._add(FILE_ROTATIONS, pathname)

    def record_truncation(self, pathname: str) -> None:
        self._add(FILE_TRUNCATES, pathname)

    # ── Queries ─────────────────────────────────────────────────────────

    def get(self, counter: str, pathname: str) -> int:
        """Current value of one counter for one pathname (0 if never bumped)."""
        with self._lock:
            return self._counters[counter].get(pathname, 0)

    def snapshot(self) -> dict[str, Any]:
        """Build a complete metrics snapshot."""
        with self._lock:
            counters = {name: dict(values) for name, values in self._counters.items()}
        return {
            "started_at": self._started_at.isoformat(),
            **counters,
        }

    # ── Internal ────────────────────────────────────────────────────────

    def _add(self, counter: str, pathname: str, n: int = 1) -> None:
        with self._lock:
            self._counters[counter][pathname] += n


_default: StreamMetrics | None = None
_default_lock = threading.Lock()


def get_metrics() -> StreamMetrics:
    """Return the process-wide default metrics instance."""
    global _default
    with _default_lock:
        if _default is None:
            _default = StreamMetrics()
        return _default
