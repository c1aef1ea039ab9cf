"""Timestamp conversion utilities.

The processor reports times as Unix seconds; the local mirror stores
timezone-aware UTC datetimes.
"""

from datetime import datetime, timezone
from typing import Optional

SECONDS_PER_MINUTE = 60
SECONDS_PER_HOUR = 60 * SECONDS_PER_MINUTE
SECONDS_PER_DAY = 24 * SECONDS_PER_HOUR


def from_unix(seconds: Optional[int]) -> Optional[datetime]:
    """Convert Unix seconds to a UTC datetime.

    Zero and None both mean "not set" in processor payloads.

    Examples:
        >>> from_unix(0) is None
        True
        >>> from_unix(86400).isoformat()
        '1970-01-02T00:00:00+00:00'
    """
    if not seconds:
        return None
    return datetime.fromtimestamp(seconds, tz=timezone.utc)


def to_unix(value: Optional[datetime]) -> Optional[int]:
    """Convert a datetime to whole Unix seconds (naive values are treated as UTC)."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(value.timestamp())


def ceil_days(seconds: int) -> int:
    """Number of started days in a span of seconds, rounding up.

    Integer arithmetic, so no float drift on exact day boundaries.

    Examples:
        >>> ceil_days(86400)
        1
        >>> ceil_days(86401)
        2
        >>> ceil_days(0)
        0
    """
    return -(-seconds // SECONDS_PER_DAY)
