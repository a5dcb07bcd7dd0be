"""
Custom exception hierarchy for the log stream tailer.

Only stream creation raises: once a stream's task is running, failures are
logged and counted, and surface through ``LogStream.is_complete()``.
"""

from __future__ import annotations


class TailerBaseError(Exception):
    """Root exception for the tailer."""

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class StreamOpenError(TailerBaseError):
    """Raised when a source cannot be opened or positioned at creation time."""

    def __init__(self, pathname: str, cause: OSError) -> None:
        self.pathname = pathname
        self.cause = cause
        super().__init__(
            f"cannot open {pathname}: {cause.strerror or cause}",
            {"pathname": pathname, "errno": cause.errno},
        )


class UnsupportedSourceError(TailerBaseError):
    """Raised when a path is neither a regular file nor a named pipe."""

    def __init__(self, pathname: str, mode: int) -> None:
        self.pathname = pathname
        self.mode = mode
        super().__init__(
            f"{pathname}: unsupported file type (mode={oct(mode)})",
            {"pathname": pathname, "mode": mode},
        )
