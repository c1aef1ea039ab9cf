"""Clock for lifecycle timing.

Provides "now" for refund math, phase lookup and cancellation timestamps.
Services take the clock as a collaborator so tests can pin it.
"""

import threading
import time
from datetime import datetime, timezone
from typing import Optional


class Clock:
    """Wall clock in whole Unix seconds."""

    def now_unix(self) -> int:
        """Current time as whole Unix seconds."""
        return int(time.time())

    def now(self) -> datetime:
        """Current time as a timezone-aware UTC datetime."""
        return datetime.fromtimestamp(self.now_unix(), tz=timezone.utc)


_clock_instance: Optional[Clock] = None
_clock_lock = threading.Lock()


def get_clock() -> Clock:
    """Get global clock instance (singleton)."""
    global _clock_instance
    if _clock_instance is None:
        with _clock_lock:
            if _clock_instance is None:
                _clock_instance = Clock()
    return _clock_instance


def reset_clock() -> None:
    global _clock_instance
    with _clock_lock:
        _clock_instance = None
