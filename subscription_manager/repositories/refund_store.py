"""Refund store - audit rows for refunds issued on cancellation or by the processor."""

import threading
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from subscription_manager.models.catalog import RefundRecord


class RefundStore:
    """Thread-safe refund audit storage.

    Rows are keyed by local id and deduplicated by processor refund id, so the
    row written on cancellation and the one written from a ``charge.refunded``
    webhook end up as one record.
    """

    def __init__(self):
        self._refunds: Dict[str, RefundRecord] = {}
        self._lock = threading.RLock()

    def upsert_by_refund_id(self, refund_id: Optional[str], fields: Dict[str, Any]) -> RefundRecord:
        """Insert or update the audit row for a processor refund.

        A None refund_id always inserts a new row.
        """
        with self._lock:
            current = self._find_by_refund_id(refund_id) if refund_id else None
            if current is not None:
                updated = current.model_copy(update=fields)
            else:
                updated = RefundRecord(
                    **{
                        "created_at": datetime.now(timezone.utc),
                        **fields,
                        "id": uuid.uuid4().hex,
                        "refund_id": refund_id,
                    }
                )
            self._refunds[updated.id] = updated
            return updated

    def _find_by_refund_id(self, refund_id: str) -> Optional[RefundRecord]:
        for refund in self._refunds.values():
            if refund.refund_id == refund_id:
                return refund
        return None

    def find_by_refund_id(self, refund_id: str) -> Optional[RefundRecord]:
        with self._lock:
            return self._find_by_refund_id(refund_id)

    def get_by_subscription(self, subscription_id: str) -> List[RefundRecord]:
        with self._lock:
            return [r for r in self._refunds.values() if r.subscription_id == subscription_id]

    def get_by_customer(self, customer_id: str) -> List[RefundRecord]:
        with self._lock:
            return [r for r in self._refunds.values() if r.customer_id == customer_id]

    def get_all(self) -> List[RefundRecord]:
        with self._lock:
            return list(self._refunds.values())

    def count(self) -> int:
        with self._lock:
            return len(self._refunds)

    def clear(self) -> None:
        with self._lock:
            self._refunds.clear()

    def __len__(self) -> int:
        return self.count()


_store_instance: Optional[RefundStore] = None
_store_lock = threading.Lock()


def get_refund_store() -> RefundStore:
    """Get global refund store instance (singleton)."""
    global _store_instance
    if _store_instance is None:
        with _store_lock:
            if _store_instance is None:
                _store_instance = RefundStore()
    return _store_instance


def reset_refund_store() -> None:
    get_refund_store().clear()
