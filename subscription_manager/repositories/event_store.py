"""Processed event store - idempotency markers for webhook deliveries.

Append-only: markers are never updated or removed, so an event id is applied
at most once for the lifetime of the store.
"""

import threading
from datetime import datetime, timezone
from typing import Dict, List, Optional

from subscription_manager.exceptions import DuplicateEventError
from subscription_manager.models.events import ProcessedEvent


class ProcessedEventStore:
    """Thread-safe set of processed processor event ids.

    ``claim`` is the insert-if-absent primitive: the existence check and the
    insert happen under the same lock, so concurrent deliveries of one event
    cannot both pass the gate.
    """

    def __init__(self):
        self._events: Dict[str, ProcessedEvent] = {}
        self._lock = threading.Lock()

    def has_processed(self, event_id: str) -> bool:
        """Check whether an event id has already been recorded."""
        with self._lock:
            return event_id in self._events

    def mark_processed(self, event_id: str, event_type: str) -> ProcessedEvent:
        """Record an event id as processed.

        Args:
            event_id: Processor event id
            event_type: Processor event type

        Returns:
            The stored ProcessedEvent marker

        Raises:
            DuplicateEventError: If the id was already recorded
        """
        with self._lock:
            if event_id in self._events:
                raise DuplicateEventError(f"Event already processed: {event_id}")
            marker = ProcessedEvent(
                event_id=event_id,
                type=event_type,
                received_at=datetime.now(timezone.utc),
            )
            self._events[event_id] = marker
            return marker

    def claim(self, event_id: str, event_type: str) -> bool:
        """Atomically record an event id if it is new.

        Returns:
            True if this call recorded the id, False if it was already present
        """
        try:
            self.mark_processed(event_id, event_type)
        except DuplicateEventError:
            return False
        return True

    def get(self, event_id: str) -> Optional[ProcessedEvent]:
        with self._lock:
            return self._events.get(event_id)

    def get_all(self) -> List[ProcessedEvent]:
        with self._lock:
            return list(self._events.values())

    def count(self) -> int:
        with self._lock:
            return len(self._events)

    def clear(self) -> None:
        """Clear all markers (tests only; production markers are permanent)."""
        with self._lock:
            self._events.clear()

    def __len__(self) -> int:
        return self.count()

    def __contains__(self, event_id: str) -> bool:
        return self.has_processed(event_id)


_store_instance: Optional[ProcessedEventStore] = None
_store_lock = threading.Lock()


def get_event_store() -> ProcessedEventStore:
    """Get global processed event store instance (singleton)."""
    global _store_instance
    if _store_instance is None:
        with _store_lock:
            if _store_instance is None:
                _store_instance = ProcessedEventStore()
    return _store_instance


def reset_event_store() -> None:
    get_event_store().clear()
