"""Subscription synchronizer - pulls the processor's view into the local mirror.

The processor is the system of record. Synchronizing always re-reads the
subscription rather than trusting an event payload, so deliveries that arrive
late or out of order still converge on the current remote state.
"""

from typing import Any, Optional

from subscription_manager.logging_config import get_logger
from subscription_manager.models.processor import RemoteSubscription, reference_id
from subscription_manager.models.subscription import SubscriptionRecord
from subscription_manager.repositories.subscription_store import (
    SubscriptionStore,
    get_subscription_store,
)
from subscription_manager.services.payment_processor import PaymentProcessor, get_payment_processor
from subscription_manager.state_logger import log_price_change, log_subscription_status_change
from subscription_manager.utils.timestamps import from_unix

logger = get_logger(__name__)

DOWNGRADE_FIELDS = ("schedule_id", "scheduled_downgrade_price_id", "scheduled_downgrade_date")


def mirror_fields(remote: RemoteSubscription) -> dict[str, Any]:
    """Processor-derived fields of a local record.

    Lifecycle-owned fields (downgrade bookkeeping, cancellation_date) are
    never part of this mapping.
    """
    fields: dict[str, Any] = {
        "customer_id": reference_id(remote.customer),
        "status": remote.status,
        "cancel_at_period_end": remote.cancel_at_period_end,
        "current_period_start": from_unix(remote.current_period_start),
        "current_period_end": from_unix(remote.current_period_end),
        "started_at": from_unix(remote.start_date),
        "ended_at": from_unix(remote.ended_at),
        "canceled_at": from_unix(remote.canceled_at),
        "metadata": dict(remote.metadata),
    }
    if remote.price_id:
        fields["price_id"] = remote.price_id
    return fields


class SubscriptionSynchronizer:
    """Upserts local records from the processor's canonical subscription."""

    def __init__(
        self,
        processor: Optional[PaymentProcessor] = None,
        store: Optional[SubscriptionStore] = None,
    ):
        self._processor = processor or get_payment_processor()
        self._store = store or get_subscription_store()

    def sync_by_external_id(self, external_subscription_id: str) -> SubscriptionRecord:
        """Re-read a subscription from the processor and mirror it locally.

        Creates the local record if it does not exist. Downgrade bookkeeping
        is cleared only once the processor no longer reports a schedule.

        Returns:
            The stored SubscriptionRecord
        """
        remote = self._processor.retrieve_subscription(external_subscription_id)
        fields = mirror_fields(remote)

        local = self._store.find_by_external_id(external_subscription_id)
        if local is not None and local.schedule_id and remote.schedule is None:
            fields.update({name: None for name in DOWNGRADE_FIELDS})
            logger.info(
                "schedule_released",
                subscription_id=local.id,
                schedule_id=local.schedule_id,
                external_subscription_id=external_subscription_id,
            )

        record = self._store.upsert_by_external_id(external_subscription_id, fields)

        if local is None:
            logger.info(
                "subscription_mirrored",
                subscription_id=record.id,
                external_subscription_id=external_subscription_id,
                status=record.status,
            )
        else:
            if local.status != record.status:
                log_subscription_status_change(
                    subscription_id=record.id,
                    external_subscription_id=external_subscription_id,
                    old_status=local.status,
                    new_status=record.status,
                    reason="sync",
                )
            if local.price_id != record.price_id:
                log_price_change(
                    subscription_id=record.id,
                    old_price_id=local.price_id,
                    new_price_id=record.price_id,
                    reason="sync",
                )
        return record
