"""Webhook event routing.

Responsibilities:
- Verify webhook signatures through the payment processor gateway
- Apply each processor event at most once (idempotency markers)
- Route event types to mirror updates through a fixed dispatch table
"""

import threading
from typing import Any, Callable, Optional

from subscription_manager.config import get_config
from subscription_manager.logging_config import event_context, get_logger
from subscription_manager.models.events import HandlerCapability, WebhookOutcome, WebhookStatus
from subscription_manager.models.processor import (
    RemoteCustomer,
    RemoteEvent,
    RemotePrice,
    RemoteProduct,
    RemoteRefund,
    reference_id,
)
from subscription_manager.repositories.event_store import ProcessedEventStore, get_event_store
from subscription_manager.repositories.refund_store import RefundStore, get_refund_store
from subscription_manager.services.clock import Clock, get_clock
from subscription_manager.services.payment_processor import PaymentProcessor, get_payment_processor
from subscription_manager.services.plan_catalog import PlanCatalog, get_plan_catalog
from subscription_manager.services.subscription_sync import SubscriptionSynchronizer
from subscription_manager.services.user_directory import UserDirectory, get_user_directory
from subscription_manager.utils.timestamps import from_unix

logger = get_logger(__name__)

SYNCHRONIZE_EVENTS = (
    "customer.subscription.created",
    "customer.subscription.updated",
    "customer.subscription.deleted",
    "customer.subscription.paused",
    "customer.subscription.resumed",
    "invoice.payment_succeeded",
    "invoice.payment_failed",
    "invoice.payment_action_required",
    "invoice.finalized",
    "invoice.marked_uncollectible",
    "invoice.voided",
    "invoice.paid",
    "invoice.upcoming",
    "invoice.sent",
    "invoice.updated",
    "invoice_payment.paid",
    "checkout.session.completed",
    "subscription_schedule.created",
    "subscription_schedule.updated",
    "subscription_schedule.released",
    "subscription_schedule.completed",
    "subscription_schedule.canceled",
    "subscription_schedule.aborted",
)
PLAN_EVENTS = (
    "product.created",
    "product.updated",
    "product.deleted",
    "price.created",
    "price.updated",
    "price.deleted",
)
USER_EVENTS = ("customer.created", "customer.updated", "customer.deleted")
REFUND_EVENTS = ("refund.created", "refund.updated")
IGNORED_EVENTS = ("credit_note.created", "charge.refunded")


def build_dispatch_table() -> dict[str, HandlerCapability]:
    """Map every known event type to what it does to the local mirror."""
    table: dict[str, HandlerCapability] = {}
    for capability, event_types in (
        (HandlerCapability.SYNCHRONIZE, SYNCHRONIZE_EVENTS),
        (HandlerCapability.UPSERT_PLAN, PLAN_EVENTS),
        (HandlerCapability.UPSERT_USER, USER_EVENTS),
        (HandlerCapability.UPSERT_REFUND, REFUND_EVENTS),
        (HandlerCapability.IGNORE, IGNORED_EVENTS),
    ):
        for event_type in event_types:
            table[event_type] = capability
    return table


def _object_id(value: Any) -> Optional[str]:
    """Id of a raw payload reference that may be an id or an expanded object."""
    if isinstance(value, dict):
        return value.get("id")
    return value or None


def subscription_id_for(event_type: str, obj: dict[str, Any]) -> Optional[str]:
    """Processor subscription id an event refers to, if any.

    Subscription events carry it as the object id, schedule events as
    ``subscription`` (or ``released_subscription`` once released) and
    invoice/checkout events as ``subscription``.
    """
    if event_type.startswith("customer.subscription."):
        return obj.get("id")
    if event_type.startswith("subscription_schedule."):
        return _object_id(obj.get("subscription")) or _object_id(obj.get("released_subscription"))
    return _object_id(obj.get("subscription"))


class EventRouter:
    """Verifies, deduplicates and applies processor webhook events.

    The idempotency marker is written before the handler runs. A handler
    failure is re-raised so the delivery is answered with an error, but the
    retried delivery will be treated as a duplicate.
    """

    def __init__(
        self,
        processor: Optional[PaymentProcessor] = None,
        event_store: Optional[ProcessedEventStore] = None,
        synchronizer: Optional[SubscriptionSynchronizer] = None,
        plan_catalog: Optional[PlanCatalog] = None,
        user_directory: Optional[UserDirectory] = None,
        refund_store: Optional[RefundStore] = None,
        clock: Optional[Clock] = None,
        webhook_secret: Optional[str] = None,
        tolerance_seconds: Optional[int] = None,
    ):
        self._processor = processor or get_payment_processor()
        self._events = event_store or get_event_store()
        self._synchronizer = synchronizer or SubscriptionSynchronizer(self._processor)
        self._plans = plan_catalog or get_plan_catalog()
        self._users = user_directory or get_user_directory()
        self._refunds = refund_store or get_refund_store()
        self._clock = clock or get_clock()

        if webhook_secret is None or tolerance_seconds is None:
            config = get_config()
            webhook_secret = webhook_secret or config.stripe_webhook_secret
            if tolerance_seconds is None:
                tolerance_seconds = config.webhook.tolerance_seconds
        self._secret = webhook_secret
        self._tolerance = tolerance_seconds

        self._table = build_dispatch_table()
        self._handlers: dict[HandlerCapability, Callable[[RemoteEvent], Optional[str]]] = {
            HandlerCapability.SYNCHRONIZE: self._synchronize,
            HandlerCapability.UPSERT_PLAN: self._upsert_plan,
            HandlerCapability.UPSERT_USER: self._upsert_user,
            HandlerCapability.UPSERT_REFUND: self._upsert_refund,
            HandlerCapability.IGNORE: self._ignore,
        }

    @property
    def dispatch_table(self) -> dict[str, HandlerCapability]:
        return dict(self._table)

    def capability_for(self, event_type: str) -> Optional[HandlerCapability]:
        return self._table.get(event_type)

    def handle(self, payload: bytes, signature: Optional[str]) -> WebhookOutcome:
        """Verify a raw webhook delivery and apply it.

        Raises:
            InvalidSignatureError: Signature missing or invalid
            Exception: Whatever the handler raised, after logging it
        """
        event = self._processor.construct_event(payload, signature, self._secret, self._tolerance)
        return self.handle_event(event)

    def handle_event(self, event: RemoteEvent) -> WebhookOutcome:
        """Apply a verified event at most once.

        Logs written while the event is handled, including the
        synchronizer's, carry its ``event_id`` and ``event_type``.
        """
        with event_context(event.id, event.type):
            return self._apply(event)

    def _apply(self, event: RemoteEvent) -> WebhookOutcome:
        if not self._events.claim(event.id, event.type):
            logger.warning("webhook_duplicate_event")
            return WebhookOutcome(event_id=event.id, event_type=event.type, status=WebhookStatus.DUPLICATE)

        capability = self._table.get(event.type)
        if capability is None:
            logger.warning("webhook_unhandled_event_type")
            return WebhookOutcome(event_id=event.id, event_type=event.type, status=WebhookStatus.IGNORED)

        try:
            subscription_id = self._handlers[capability](event)
        except Exception as e:
            logger.error(
                "webhook_handler_failed",
                capability=capability.value,
                error_type=type(e).__name__,
                error=str(e),
            )
            raise

        status = WebhookStatus.IGNORED if capability is HandlerCapability.IGNORE else WebhookStatus.PROCESSED
        logger.info("webhook_event_applied", capability=capability.value, subscription_id=subscription_id)
        return WebhookOutcome(
            event_id=event.id,
            event_type=event.type,
            status=status,
            capability=capability,
            subscription_id=subscription_id,
        )

    def _synchronize(self, event: RemoteEvent) -> Optional[str]:
        subscription_id = subscription_id_for(event.type, event.data.object)
        if not subscription_id:
            logger.warning("webhook_event_without_subscription")
            return None
        self._synchronizer.sync_by_external_id(subscription_id)
        return subscription_id

    def _upsert_plan(self, event: RemoteEvent) -> None:
        obj = event.data.object
        if event.type.startswith("product."):
            product = RemoteProduct.model_validate(obj)
            if event.type == "product.deleted":
                self._plans.deactivate_product(product.id)
            else:
                self._plans.apply_product(product)
        else:
            price = RemotePrice.model_validate(obj)
            if event.type == "price.deleted":
                self._plans.deactivate_price(price.id)
            else:
                self._plans.apply_price(price)

    def _upsert_user(self, event: RemoteEvent) -> None:
        customer = RemoteCustomer.model_validate(event.data.object)
        if event.type == "customer.deleted":
            customer = customer.model_copy(update={"deleted": True})
        self._users.apply_customer(customer)

    def _upsert_refund(self, event: RemoteEvent) -> None:
        refund = RemoteRefund.model_validate(event.data.object)
        fields: dict[str, Any] = {
            "amount": refund.amount,
            "status": refund.status,
            "charge_ref": reference_id(refund.charge),
        }
        # Set on refunds issued by cancellation; absent for dashboard refunds.
        for key in ("customer_id", "subscription_id"):
            if refund.metadata.get(key):
                fields[key] = refund.metadata[key]

        if self._refunds.find_by_refund_id(refund.id) is None:
            fields.update(
                {
                    "reason": refund.reason,
                    "metadata": dict(refund.metadata),
                    "created_at": from_unix(refund.created) or self._clock.now(),
                }
            )
        record = self._refunds.upsert_by_refund_id(refund.id, fields)
        logger.info("refund_mirrored", refund_id=refund.id, record_id=record.id, status=refund.status)

    def _ignore(self, event: RemoteEvent) -> None:
        logger.info("webhook_event_acknowledged", event_id=event.id, event_type=event.type)


_router_instance: Optional[EventRouter] = None
_router_lock = threading.Lock()


def get_event_router() -> EventRouter:
    """Get global event router instance (singleton)."""
    global _router_instance
    if _router_instance is None:
        with _router_lock:
            if _router_instance is None:
                _router_instance = EventRouter()
    return _router_instance


def reset_event_router() -> None:
    global _router_instance
    with _router_lock:
        _router_instance = None
