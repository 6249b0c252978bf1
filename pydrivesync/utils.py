"""Utility functions and value types shared across pydrivesync."""

import re
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

# =============================================================================
# Constants
# =============================================================================

NANOS_PER_SECOND: int = 1_000_000_000

# RFC 3339 timestamps as returned by the remote API, e.g.
# "2024-01-15T10:30:00.123Z" or "2024-01-15T10:30:00+02:00"
_ISO_PATTERN = re.compile(
    r"^(?P<base>\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2})"
    r"(?:\.(?P<frac>\d+))?"
    r"(?P<tz>Z|[+-]\d{2}:\d{2})?$"
)


# =============================================================================
# Timestamps
# =============================================================================


@dataclass(frozen=True, order=True)
class Timestamp:
    """A point in time with nanosecond resolution.

    Used as the sync watermark and for local/remote modification times.
    Ordering compares seconds first, then nanoseconds.
    """

    sec: int = 0
    """Whole seconds since the Unix epoch"""

    nsec: int = 0
    """Nanoseconds within the second (0 <= nsec < 1e9)"""

    def __post_init__(self) -> None:
        if not 0 <= self.nsec < NANOS_PER_SECOND:
            raise ValueError(f"nsec out of range: {self.nsec}")

    @classmethod
    def epoch(cls) -> "Timestamp":
        """Return the Unix epoch, the "never synced" watermark."""
        return cls(0, 0)

    @classmethod
    def now(cls) -> "Timestamp":
        """Return the current wall-clock time."""
        return cls.from_nanoseconds(time.time_ns())

    @classmethod
    def from_nanoseconds(cls, value: int) -> "Timestamp":
        sec, nsec = divmod(value, NANOS_PER_SECOND)
        return cls(sec, nsec)

    @classmethod
    def from_float(cls, value: float) -> "Timestamp":
        """Create a Timestamp from a float as returned by ``os.stat``."""
        return cls.from_nanoseconds(round(value * NANOS_PER_SECOND))

    @classmethod
    def from_datetime(cls, value: datetime) -> "Timestamp":
        """Create a Timestamp from a datetime (naive values are taken as UTC)."""
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        delta = value - datetime(1970, 1, 1, tzinfo=timezone.utc)
        sec = delta.days * 86400 + delta.seconds
        return cls(sec, delta.microseconds * 1000)

    def to_nanoseconds(self) -> int:
        return self.sec * NANOS_PER_SECOND + self.nsec

    def to_float(self) -> float:
        return self.sec + self.nsec / NANOS_PER_SECOND

    def to_datetime(self) -> datetime:
        """Convert to an aware UTC datetime (microsecond precision)."""
        return datetime.fromtimestamp(self.sec, tz=timezone.utc).replace(
            microsecond=self.nsec // 1000
        )

    def isoformat(self) -> str:
        return self.to_datetime().isoformat().replace("+00:00", "Z")

    def __bool__(self) -> bool:
        return self.sec != 0 or self.nsec != 0

    def __str__(self) -> str:
        return self.isoformat()


def parse_iso_timestamp(timestamp_str: Optional[str]) -> Optional[Timestamp]:
    """Parse an RFC 3339 timestamp from the remote API.

    Args:
        timestamp_str: ISO format timestamp string
            (e.g., "2025-01-15T10:30:00.000Z")

    Returns:
        Timestamp or None if the value is empty or cannot be parsed
    """
    if not timestamp_str:
        return None

    match = _ISO_PATTERN.match(timestamp_str.strip())
    if match is None:
        return None

    tz = match.group("tz") or "Z"
    if tz == "Z":
        tz = "+00:00"

    try:
        dt = datetime.fromisoformat(match.group("base") + tz)
    except ValueError:
        return None

    frac = match.group("frac") or ""
    # Keep at most nanosecond precision
    nsec = int(frac[:9].ljust(9, "0")) if frac else 0

    base = Timestamp.from_datetime(dt)
    return Timestamp(base.sec, nsec)


# =============================================================================
# Size formatting utilities
# =============================================================================


def format_size(size_bytes: int) -> str:
    """Format file size in human-readable format.

    Args:
        size_bytes: Size in bytes

    Returns:
        Formatted size string (e.g., "1.5 MB", "256 B")
    """
    if size_bytes < 1024:
        return f"{size_bytes} B"
    elif size_bytes < 1024 * 1024:
        return f"{size_bytes / 1024:.1f} KB"
    elif size_bytes < 1024 * 1024 * 1024:
        return f"{size_bytes / 1024 / 1024:.1f} MB"
    else:
        return f"{size_bytes / 1024 / 1024 / 1024:.1f} GB"
