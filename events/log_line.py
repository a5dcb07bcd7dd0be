"""
LogLine — the record streams deliver to the line sink.

Immutable, no parsing: the text is exactly what was read between two
terminators, decoded as UTF-8.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any


@dataclass(frozen=True)
class LogLine:
    """One decoded line from a tailed source.

    Attributes:
        filename: Pathname of the stream that read the line.
        line: Decoded text, without the line terminator.
        timestamp: When the line was read (UTC).
    """

    filename: str
    line: str
    timestamp: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    def to_dict(self) -> dict[str, Any]:
        return {
            "filename": self.filename,
            "line": self.line,
            "timestamp": self.timestamp.isoformat(),
        }
