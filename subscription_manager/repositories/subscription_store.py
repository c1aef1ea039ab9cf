"""Subscription store - in-memory storage for the local subscription mirror.

Every mutating call runs under one lock, so each call is atomic per document
the way a keyed ``findOneAndUpdate`` would be.
"""

import threading
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from subscription_manager.exceptions import SubscriptionNotFoundError
from subscription_manager.models.subscription import IN_FORCE_STATUSES, SubscriptionRecord


class SubscriptionStore:
    """In-memory storage for subscription records.

    Thread-safe storage with lookup by local id, processor subscription id and
    customer id. Records are immutable snapshots; writes replace the stored
    snapshot.
    """

    def __init__(self):
        """Initialize subscription store with empty storage."""
        self._subscriptions: Dict[str, SubscriptionRecord] = {}
        self._by_external_id: Dict[str, str] = {}
        self._lock = threading.RLock()

    def upsert_by_external_id(
        self, external_subscription_id: str, fields: Dict[str, Any]
    ) -> SubscriptionRecord:
        """Insert or update the record for a processor subscription.

        Args:
            external_subscription_id: Processor subscription id (match key)
            fields: Fields to write; must include customer_id and status on insert

        Returns:
            The stored SubscriptionRecord after the write
        """
        now = datetime.now(timezone.utc)
        with self._lock:
            local_id = self._by_external_id.get(external_subscription_id)
            if local_id is not None:
                current = self._subscriptions[local_id]
                updated = current.model_copy(update={**fields, "updated_at": now})
            else:
                local_id = uuid.uuid4().hex
                updated = SubscriptionRecord(
                    **{
                        **fields,
                        "id": local_id,
                        "external_subscription_id": external_subscription_id,
                        "created_at": now,
                        "updated_at": now,
                    }
                )
                self._by_external_id[external_subscription_id] = local_id
            self._subscriptions[local_id] = updated
            return updated

    def update(self, subscription_id: str, fields: Dict[str, Any]) -> Optional[SubscriptionRecord]:
        """Update fields on an existing record.

        Args:
            subscription_id: Local subscription id
            fields: Fields to overwrite

        Returns:
            Updated SubscriptionRecord, or None if no record matched
        """
        with self._lock:
            current = self._subscriptions.get(subscription_id)
            if current is None:
                return None
            updated = current.model_copy(
                update={**fields, "updated_at": datetime.now(timezone.utc)}
            )
            self._subscriptions[subscription_id] = updated
            return updated

    def get_by_id(self, subscription_id: str) -> SubscriptionRecord:
        """Get subscription by local id.

        Raises:
            SubscriptionNotFoundError: If id not found
        """
        with self._lock:
            subscription = self._subscriptions.get(subscription_id)
            if subscription is None:
                raise SubscriptionNotFoundError(f"Subscription not found: {subscription_id}")
            return subscription

    def find_by_id(self, subscription_id: str) -> Optional[SubscriptionRecord]:
        """Find subscription by local id (returns None if not found)."""
        with self._lock:
            return self._subscriptions.get(subscription_id)

    def find_by_external_id(self, external_subscription_id: str) -> Optional[SubscriptionRecord]:
        """Find subscription by processor subscription id."""
        with self._lock:
            local_id = self._by_external_id.get(external_subscription_id)
            return self._subscriptions.get(local_id) if local_id else None

    def find_by_any_id(self, id_or_external_id: str) -> Optional[SubscriptionRecord]:
        """Look up by local id first, then by processor subscription id."""
        with self._lock:
            return self.find_by_id(id_or_external_id) or self.find_by_external_id(id_or_external_id)

    def find_in_force(self, customer_id: str) -> Optional[SubscriptionRecord]:
        """Find an active or trialing subscription for a customer.

        Args:
            customer_id: Processor customer id

        Returns:
            The first in-force SubscriptionRecord, or None
        """
        with self._lock:
            for subscription in self._subscriptions.values():
                if subscription.customer_id == customer_id and subscription.status in IN_FORCE_STATUSES:
                    return subscription
            return None

    def get_by_customer(self, customer_id: str) -> List[SubscriptionRecord]:
        """Get all subscriptions for a customer."""
        with self._lock:
            return [s for s in self._subscriptions.values() if s.customer_id == customer_id]

    def delete(self, subscription_id: str) -> bool:
        """Delete a subscription by local id.

        Returns:
            True if subscription was deleted, False if not found
        """
        with self._lock:
            subscription = self._subscriptions.pop(subscription_id, None)
            if subscription is None:
                return False
            self._by_external_id.pop(subscription.external_subscription_id, None)
            return True

    def get_all(self) -> List[SubscriptionRecord]:
        with self._lock:
            return list(self._subscriptions.values())

    def count(self) -> int:
        with self._lock:
            return len(self._subscriptions)

    def clear(self) -> None:
        """Clear all subscriptions from the store.

        Warning: This removes all data. Use with caution.
        """
        with self._lock:
            self._subscriptions.clear()
            self._by_external_id.clear()

    def __len__(self) -> int:
        return self.count()

    def __contains__(self, subscription_id: str) -> bool:
        return self.find_by_id(subscription_id) is not None

    def __repr__(self) -> str:
        return f"SubscriptionStore(subscriptions={self.count()})"


# Global store instance
_store_instance: Optional[SubscriptionStore] = None
_store_lock = threading.Lock()


def get_subscription_store() -> SubscriptionStore:
    """Get global subscription store instance (singleton)."""
    global _store_instance
    if _store_instance is None:
        with _store_lock:
            if _store_instance is None:
                _store_instance = SubscriptionStore()
    return _store_instance


def reset_subscription_store() -> None:
    """Reset global subscription store (clears all data)."""
    get_subscription_store().clear()
