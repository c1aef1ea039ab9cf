"""Subscription lifecycle engine.

Responsibilities:
- Create subscriptions and classify the first payment outcome
- Upgrade immediately with proration, schedule downgrades for period end
- Cancel immediately with a prorated, best-effort refund
- Keep the local mirror and refund audit trail in step with each operation
- Notify users once the state change is persisted
"""

import threading
from typing import Optional

from subscription_manager.config import get_config
from subscription_manager.exceptions import (
    AlreadySubscribedError,
    NotFoundError,
    PaymentNotSuccessfulError,
    PersistenceFailureError,
    SubscriptionNotFoundError,
)
from subscription_manager.logging_config import get_logger
from subscription_manager.models.api_response import (
    CancellationResult,
    CreateOutcome,
    CreateSubscriptionResult,
    DowngradeResult,
)
from subscription_manager.models.catalog import UserRecord
from subscription_manager.models.processor import (
    RemoteInvoice,
    RemoteRefund,
    RemoteSubscription,
    expanded,
    reference_id,
)
from subscription_manager.models.settings import RefundConfig
from subscription_manager.models.subscription import SubscriptionRecord, SubscriptionStatus
from subscription_manager.repositories.refund_store import RefundStore, get_refund_store
from subscription_manager.repositories.subscription_store import (
    SubscriptionStore,
    get_subscription_store,
)
from subscription_manager.repositories.user_store import UserStore, get_user_store
from subscription_manager.services.clock import Clock, get_clock
from subscription_manager.services.notification_service import (
    NotificationService,
    SubscriptionNotice,
    get_notification_service,
)
from subscription_manager.services.payment_processor import PaymentProcessor, get_payment_processor
from subscription_manager.services.refund_calculator import billing_days, calculate_refund
from subscription_manager.services.schedule_manager import ScheduleManager
from subscription_manager.services.subscription_sync import mirror_fields
from subscription_manager.state_logger import (
    log_price_change,
    log_refund_issued,
    log_schedule_change,
    log_subscription_status_change,
)
from subscription_manager.utils.timestamps import from_unix

logger = get_logger(__name__)

CREATE_EXPAND = ["latest_invoice.payment_intent", "latest_invoice.charge"]
CANCEL_EXPAND = ["latest_invoice.payment_intent"]


class LifecycleEngine:
    """Orchestrates subscription lifecycle operations against the processor.

    Every collaborator defaults to its global instance; tests pass their own.
    """

    def __init__(
        self,
        processor: Optional[PaymentProcessor] = None,
        store: Optional[SubscriptionStore] = None,
        user_store: Optional[UserStore] = None,
        refund_store: Optional[RefundStore] = None,
        notifier: Optional[NotificationService] = None,
        clock: Optional[Clock] = None,
        schedule_manager: Optional[ScheduleManager] = None,
        refund_settings: Optional[RefundConfig] = None,
    ):
        self._processor = processor or get_payment_processor()
        self._store = store or get_subscription_store()
        self._users = user_store or get_user_store()
        self._refunds = refund_store or get_refund_store()
        self._notifier = notifier or get_notification_service()
        self._clock = clock or get_clock()
        self._schedules = schedule_manager or ScheduleManager(self._processor, self._clock)
        self._refund_settings = refund_settings or get_config().refunds

    def _user_for(self, customer_id: str) -> Optional[UserRecord]:
        user = self._users.find_by_customer_id(customer_id)
        if user is None or not user.email:
            logger.warning("customer_email_not_found", customer_id=customer_id)
        return user

    def _notify(self, user: Optional[UserRecord], notice: SubscriptionNotice) -> None:
        try:
            self._notifier.notify(user, notice)
        except Exception as e:
            logger.error("notice_dispatch_failed", notice=notice.name, error=str(e))

    def _require(self, subscription_id: str) -> SubscriptionRecord:
        subscription = self._store.find_by_id(subscription_id)
        if subscription is None:
            raise SubscriptionNotFoundError(f"Subscription not found: {subscription_id}")
        return subscription

    def create_subscription(
        self, customer_id: str, price_id: str, payment_method_id: str
    ) -> CreateSubscriptionResult:
        """Create a subscription for a processor customer.

        Only a paid first invoice persists a local record. Authentication and
        declined-card outcomes are returned for the caller to act on.

        Raises:
            AlreadySubscribedError: Customer already has an active or trialing subscription
            PaymentNotSuccessfulError: Payment ended in any other state
            ProcessorError: Processor call failed
        """
        logger.info("create_subscription_requested", customer_id=customer_id, price_id=price_id)
        user = self._user_for(customer_id)

        self._processor.attach_payment_method(payment_method_id, customer_id)
        self._processor.set_default_payment_method(customer_id, payment_method_id)

        # Not atomic with the create below; two concurrent requests can both pass.
        existing = self._store.find_in_force(customer_id)
        if existing is not None:
            logger.warning(
                "customer_already_subscribed",
                customer_id=customer_id,
                subscription_id=existing.id,
                status=existing.status,
            )
            raise AlreadySubscribedError("User already has an active subscription.")

        remote = self._processor.create_subscription(customer_id, price_id, expand=CREATE_EXPAND)
        logger.info("processor_subscription_created", external_subscription_id=remote.id)

        invoice = expanded(remote.latest_invoice)
        intent = expanded(invoice.payment_intent) if invoice else None
        invoice_status = invoice.status if invoice else None
        charge_id = reference_id(invoice.charge) if invoice else None
        if not charge_id and intent is not None:
            charge_id = reference_id(intent.latest_charge)

        if invoice_status == "paid":
            if not charge_id:
                logger.warning("paid_invoice_without_charge", external_subscription_id=remote.id)
        elif intent is not None and intent.status == CreateOutcome.REQUIRES_ACTION.value:
            logger.warning("payment_requires_action", external_subscription_id=remote.id)
            return CreateSubscriptionResult(
                outcome=CreateOutcome.REQUIRES_ACTION,
                message="Payment requires additional authentication.",
                external_subscription_id=remote.id,
                status=remote.status,
                invoice_status=invoice_status,
                client_secret=intent.client_secret,
            )
        elif intent is not None and intent.status == CreateOutcome.REQUIRES_PAYMENT_METHOD.value:
            logger.warning("payment_requires_payment_method", external_subscription_id=remote.id)
            return CreateSubscriptionResult(
                outcome=CreateOutcome.REQUIRES_PAYMENT_METHOD,
                message="Payment failed, please provide a new payment method.",
                external_subscription_id=remote.id,
                status=remote.status,
                invoice_status=invoice_status,
            )
        else:
            logger.error(
                "payment_not_successful",
                external_subscription_id=remote.id,
                invoice_status=invoice_status,
                payment_intent_status=intent.status if intent else None,
            )
            raise PaymentNotSuccessfulError(
                "Subscription was created but payment was not successful. Please try again."
            )

        fields = mirror_fields(remote)
        fields.update({"ended_at": None, "cancellation_date": None})
        record = self._store.upsert_by_external_id(remote.id, fields)
        log_subscription_status_change(
            subscription_id=record.id,
            external_subscription_id=remote.id,
            old_status=None,
            new_status=record.status,
            reason="create",
            customer_id=customer_id,
        )

        self._notify(user, SubscriptionNotice.CREATED)

        return CreateSubscriptionResult(
            outcome=CreateOutcome.CREATED,
            message="Subscription created successfully",
            subscription_id=record.id,
            external_subscription_id=remote.id,
            status=remote.status,
            invoice_status=invoice_status,
            charge_id=charge_id,
        )

    def upgrade_subscription(self, subscription_id: str, new_price_id: str) -> SubscriptionRecord:
        """Switch to a new price now, invoicing the prorated difference immediately.

        Raises:
            NotFoundError: Unknown subscription or processor subscription has no item
        """
        subscription = self._require(subscription_id)
        user = self._user_for(subscription.customer_id)

        remote = self._processor.retrieve_subscription(subscription.external_subscription_id)
        item = remote.first_item
        if item is None:
            raise NotFoundError("Processor subscription item not found")

        updated_remote = self._processor.update_subscription_item(
            subscription.external_subscription_id,
            item.id,
            new_price_id,
            proration_behavior="always_invoice",
        )
        mirrored = mirror_fields(updated_remote)
        updated = self._store.update(
            subscription.id,
            {
                "price_id": new_price_id,
                "status": mirrored["status"],
                "cancel_at_period_end": mirrored["cancel_at_period_end"],
                "current_period_start": mirrored["current_period_start"],
                "current_period_end": mirrored["current_period_end"],
                "metadata": mirrored["metadata"],
            },
        )
        if updated is None:
            raise PersistenceFailureError(f"Failed to update subscription {subscription.id}")

        log_price_change(
            subscription_id=updated.id,
            old_price_id=subscription.price_id,
            new_price_id=new_price_id,
            reason="upgrade",
        )
        self._notify(user, SubscriptionNotice.UPGRADED)
        return updated

    def schedule_downgrade(self, subscription_id: str, new_price_id: str) -> DowngradeResult:
        """Schedule a switch to a cheaper price at the end of the current period.

        Raises:
            NotFoundError: Unknown subscription or no current schedule phase
            NotSchedulableError: Subscription has no billing period end
            InvalidDowngradeRequestError: Processor rejected the schedule update
        """
        subscription = self._require(subscription_id)
        user = self._user_for(subscription.customer_id)

        schedule = self._schedules.schedule_downgrade(subscription, new_price_id)

        updated = self._store.update(
            subscription.id,
            {
                "schedule_id": schedule.schedule_id,
                "scheduled_downgrade_price_id": new_price_id,
                "scheduled_downgrade_date": subscription.current_period_end,
            },
        )
        if updated is None:
            raise PersistenceFailureError(f"Failed to update subscription {subscription.id}")

        log_schedule_change(
            subscription_id=updated.id,
            schedule_id=schedule.schedule_id,
            downgrade_price_id=new_price_id,
            downgrade_date=updated.scheduled_downgrade_date,
            phase_count=len(schedule.phases),
        )
        self._notify(user, SubscriptionNotice.DOWNGRADED)
        return DowngradeResult(
            subscription=updated,
            schedule_id=schedule.schedule_id,
            phase_count=len(schedule.phases),
        )

    def cancel_subscription(self, subscription_id: str) -> CancellationResult:
        """Cancel immediately and refund the unused part of the period.

        Accepts a local id or a processor subscription id. The refund is
        best-effort: any failure is logged and the cancellation still
        completes.

        Raises:
            NotFoundError: Unknown subscription
            ProcessorError: Retrieve or cancel failed (cancel is never retried)
            PersistenceFailureError: Local record disappeared during the update
        """
        subscription = self._store.find_by_any_id(subscription_id)
        if subscription is None:
            raise SubscriptionNotFoundError(f"Subscription not found: {subscription_id}")
        user = self._user_for(subscription.customer_id)
        external_id = subscription.external_subscription_id

        remote = self._processor.retrieve_subscription(external_id, expand=CANCEL_EXPAND)
        now_unix = self._clock.now_unix()
        if remote.current_period_start is not None and remote.current_period_end is not None:
            days_total, days_used, days_unused = billing_days(
                remote.current_period_start, remote.current_period_end, now_unix
            )
        else:
            days_total = days_used = days_unused = 0

        logger.info(
            "cancelling_subscription",
            subscription_id=subscription.id,
            external_subscription_id=external_id,
            days_total=days_total,
            days_used=days_used,
        )
        cancelled = self._processor.cancel_subscription(external_id)

        refund, charge_id = self._issue_refund(subscription, remote, now_unix, days_used, days_total)
        refunded_amount = refund.amount if refund else 0

        now = from_unix(now_unix)
        updated = self._store.update(
            subscription.id,
            {
                "status": SubscriptionStatus.CANCELLED.value,
                "canceled_at": now,
                "ended_at": from_unix(cancelled.ended_at) or now,
                "cancellation_date": now,
                "metadata": dict(cancelled.metadata or remote.metadata),
            },
        )
        if updated is None:
            logger.error("cancel_persist_failed", subscription_id=subscription.id)
            raise PersistenceFailureError("Failed to update subscription")

        log_subscription_status_change(
            subscription_id=updated.id,
            external_subscription_id=external_id,
            old_status=subscription.status,
            new_status=updated.status,
            reason="cancel",
        )

        self._refunds.upsert_by_refund_id(
            refund.id if refund else None,
            {
                "customer_id": updated.customer_id,
                "subscription_id": updated.id,
                "amount": refunded_amount,
                "charge_ref": charge_id,
                "reason": self._refund_settings.audit_reason,
                "status": refund.status if refund else None,
                "created_at": now,
            },
        )

        self._notify(user, SubscriptionNotice.CANCELLED)

        return CancellationResult(
            subscription=updated,
            refund_amount=refunded_amount,
            refund_id=refund.id if refund else None,
            days_total=days_total,
            days_used=days_used,
            days_unused=days_unused,
        )

    def _issue_refund(
        self,
        subscription: SubscriptionRecord,
        remote: RemoteSubscription,
        now_unix: int,
        days_used: int,
        days_total: int,
    ) -> tuple[Optional[RemoteRefund], Optional[str]]:
        """Refund the latest invoice's charge. Never raises."""
        if remote.latest_invoice is None:
            logger.info("refund_skipped_no_invoice", subscription_id=subscription.id)
            return None, None
        if remote.current_period_start is None or remote.current_period_end is None:
            logger.info("refund_skipped_no_period", subscription_id=subscription.id)
            return None, None

        charge_id = None
        try:
            invoice: Optional[RemoteInvoice] = expanded(remote.latest_invoice)
            if invoice is None:
                invoice = self._processor.retrieve_invoice(
                    reference_id(remote.latest_invoice), expand=["payment_intent"]
                )

            intent = expanded(invoice.payment_intent)
            intent_id = reference_id(invoice.payment_intent)
            if intent is None and intent_id:
                intent = self._processor.retrieve_payment_intent(intent_id)

            charge_id = reference_id(intent.latest_charge) if intent else None
            if not charge_id:
                logger.warning("refund_skipped_no_charge", subscription_id=subscription.id)
                return None, None

            amount = calculate_refund(
                remote.current_period_start,
                remote.current_period_end,
                now_unix,
                invoice.amount_paid,
                grace_days=self._refund_settings.grace_period_days,
            )
            if amount <= 0:
                logger.info("refund_skipped_nothing_due", subscription_id=subscription.id)
                return None, charge_id

            refund = self._processor.create_refund(
                charge_id,
                amount,
                reason=self._refund_settings.reason,
                metadata={
                    "customer_id": subscription.customer_id,
                    "subscription_id": subscription.id,
                    "external_subscription_id": subscription.external_subscription_id,
                },
            )
        except Exception as e:
            logger.error(
                "refund_failed",
                subscription_id=subscription.id,
                charge_id=charge_id,
                error_type=type(e).__name__,
                error=str(e),
            )
            return None, charge_id

        log_refund_issued(
            subscription_id=subscription.id,
            charge_ref=charge_id,
            amount=refund.amount,
            days_used=days_used,
            days_total=days_total,
            refund_id=refund.id,
        )
        return refund, charge_id

    def get_subscription(self, subscription_id: str) -> SubscriptionRecord:
        """Get a subscription by local id or processor subscription id.

        Raises:
            SubscriptionNotFoundError: If neither id matches
        """
        subscription = self._store.find_by_any_id(subscription_id)
        if subscription is None:
            raise SubscriptionNotFoundError(f"Subscription not found: {subscription_id}")
        return subscription

    def list_subscriptions(self, customer_id: Optional[str] = None) -> list[SubscriptionRecord]:
        if customer_id:
            return self._store.get_by_customer(customer_id)
        return self._store.get_all()

    def find_active_for_customer(self, customer_id: str) -> Optional[SubscriptionRecord]:
        """The customer's subscription with status ``active``, if any."""
        for subscription in self._store.get_by_customer(customer_id):
            if subscription.status == SubscriptionStatus.ACTIVE.value:
                return subscription
        return None


_engine_instance: Optional[LifecycleEngine] = None
_engine_lock = threading.Lock()


def get_lifecycle_engine() -> LifecycleEngine:
    """Get global lifecycle engine instance (singleton)."""
    global _engine_instance
    if _engine_instance is None:
        with _engine_lock:
            if _engine_instance is None:
                _engine_instance = LifecycleEngine()
    return _engine_instance


def reset_lifecycle_engine() -> None:
    global _engine_instance
    with _engine_lock:
        _engine_instance = None
