"""Utility functions and helpers."""

from subscription_manager.utils.timestamps import (
    SECONDS_PER_DAY,
    SECONDS_PER_HOUR,
    SECONDS_PER_MINUTE,
    ceil_days,
    from_unix,
    to_unix,
)

__all__ = [
    "SECONDS_PER_DAY",
    "SECONDS_PER_HOUR",
    "SECONDS_PER_MINUTE",
    "ceil_days",
    "from_unix",
    "to_unix",
]
