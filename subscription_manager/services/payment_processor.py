"""Payment processor gateway over the Stripe SDK.

Responsibilities:
- Configure the SDK (API key, pinned API version, request timeout, no retries)
- Convert SDK objects into the typed views in ``models.processor``
- Translate SDK errors into ProcessorError / ProcessorInvalidRequestError
- Verify webhook signatures
"""

import threading
from contextlib import contextmanager
from typing import Any, Iterator, Optional

import stripe

from subscription_manager.config import get_config
from subscription_manager.exceptions import (
    InvalidSignatureError,
    ProcessorError,
    ProcessorInvalidRequestError,
)
from subscription_manager.logging_config import get_logger
from subscription_manager.models.processor import (
    RemoteCustomer,
    RemoteEvent,
    RemoteInvoice,
    RemotePaymentIntent,
    RemotePrice,
    RemoteRefund,
    RemoteSchedule,
    RemoteSubscription,
)
from subscription_manager.models.settings import ProcessorConfig

logger = get_logger(__name__)


def _as_dict(obj: Any) -> dict:
    """Plain dict view of an SDK object (nested objects included)."""
    if hasattr(obj, "to_dict_recursive"):
        return obj.to_dict_recursive()
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    return dict(obj)


@contextmanager
def _translate_errors(operation: str, **context: Any) -> Iterator[None]:
    """Re-raise SDK errors as processor errors, logging each failure once."""
    try:
        yield
    except stripe.InvalidRequestError as e:
        logger.warning(
            "processor_invalid_request",
            operation=operation,
            code=e.code,
            http_status=e.http_status,
            error=e.user_message or str(e),
            **context,
        )
        raise ProcessorInvalidRequestError(
            e.user_message or str(e), code=e.code, http_status=e.http_status
        ) from e
    except stripe.StripeError as e:
        logger.error(
            "processor_request_failed",
            operation=operation,
            code=e.code,
            http_status=e.http_status,
            error_type=type(e).__name__,
            error=e.user_message or str(e),
            **context,
        )
        raise ProcessorError(e.user_message or str(e), code=e.code, http_status=e.http_status) from e


class PaymentProcessor:
    """Gateway for every call the engine makes to the payment processor.

    All calls go through the module-level SDK resources, which read the
    configuration applied in the constructor.
    """

    def __init__(self, api_key: Optional[str] = None, settings: Optional[ProcessorConfig] = None):
        config = get_config()
        self._settings = settings or config.processor
        self._api_key = api_key or config.stripe_secret_key

        if self._api_key:
            stripe.api_key = self._api_key
        else:
            logger.warning("processor_api_key_missing", env_var="STRIPE_SECRET_KEY")

        stripe.api_version = self._settings.api_version
        stripe.max_network_retries = self._settings.max_network_retries
        stripe.default_http_client = stripe.RequestsClient(
            timeout=self._settings.request_timeout_seconds
        )

        logger.info(
            "payment_processor_initialized",
            api_version=self._settings.api_version,
            timeout_seconds=self._settings.request_timeout_seconds,
            max_network_retries=self._settings.max_network_retries,
        )

    # Customers and payment methods

    def attach_payment_method(self, payment_method_id: str, customer_id: str) -> None:
        with _translate_errors("attach_payment_method", customer_id=customer_id):
            stripe.PaymentMethod.attach(payment_method_id, customer=customer_id)

    def set_default_payment_method(self, customer_id: str, payment_method_id: str) -> None:
        """Make a payment method the invoice default for a customer."""
        with _translate_errors("set_default_payment_method", customer_id=customer_id):
            stripe.Customer.modify(
                customer_id,
                invoice_settings={"default_payment_method": payment_method_id},
            )

    def create_customer(self, email: str, name: Optional[str] = None) -> RemoteCustomer:
        with _translate_errors("create_customer"):
            params = {"email": email}
            if name:
                params["name"] = name
            customer = stripe.Customer.create(**params)
        return RemoteCustomer.model_validate(_as_dict(customer))

    # Subscriptions

    def create_subscription(
        self,
        customer_id: str,
        price_id: str,
        expand: Optional[list[str]] = None,
        metadata: Optional[dict[str, str]] = None,
    ) -> RemoteSubscription:
        """Create a single-item subscription charged to the default payment method."""
        with _translate_errors("create_subscription", customer_id=customer_id, price_id=price_id):
            subscription = stripe.Subscription.create(
                customer=customer_id,
                items=[{"price": price_id}],
                expand=expand or [],
                metadata=metadata or {},
            )
        return RemoteSubscription.model_validate(_as_dict(subscription))

    def retrieve_subscription(
        self, subscription_id: str, expand: Optional[list[str]] = None
    ) -> RemoteSubscription:
        with _translate_errors("retrieve_subscription", external_subscription_id=subscription_id):
            if expand:
                subscription = stripe.Subscription.retrieve(subscription_id, expand=expand)
            else:
                subscription = stripe.Subscription.retrieve(subscription_id)
        return RemoteSubscription.model_validate(_as_dict(subscription))

    def update_subscription_item(
        self,
        subscription_id: str,
        item_id: str,
        price_id: str,
        proration_behavior: str = "always_invoice",
    ) -> RemoteSubscription:
        """Swap the price on one subscription item."""
        with _translate_errors(
            "update_subscription_item", external_subscription_id=subscription_id, price_id=price_id
        ):
            subscription = stripe.Subscription.modify(
                subscription_id,
                items=[{"id": item_id, "price": price_id}],
                proration_behavior=proration_behavior,
            )
        return RemoteSubscription.model_validate(_as_dict(subscription))

    def cancel_subscription(self, subscription_id: str) -> RemoteSubscription:
        """Cancel immediately. Never retried: a timeout surfaces as ProcessorError."""
        with _translate_errors("cancel_subscription", external_subscription_id=subscription_id):
            subscription = stripe.Subscription.cancel(subscription_id)
        return RemoteSubscription.model_validate(_as_dict(subscription))

    # Invoices, payments and refunds

    def retrieve_invoice(self, invoice_id: str, expand: Optional[list[str]] = None) -> RemoteInvoice:
        with _translate_errors("retrieve_invoice", invoice_id=invoice_id):
            if expand:
                invoice = stripe.Invoice.retrieve(invoice_id, expand=expand)
            else:
                invoice = stripe.Invoice.retrieve(invoice_id)
        return RemoteInvoice.model_validate(_as_dict(invoice))

    def retrieve_payment_intent(self, payment_intent_id: str) -> RemotePaymentIntent:
        with _translate_errors("retrieve_payment_intent", payment_intent_id=payment_intent_id):
            intent = stripe.PaymentIntent.retrieve(payment_intent_id)
        return RemotePaymentIntent.model_validate(_as_dict(intent))

    def create_refund(
        self,
        charge_id: str,
        amount: int,
        reason: str,
        metadata: Optional[dict[str, str]] = None,
    ) -> RemoteRefund:
        with _translate_errors("create_refund", charge_id=charge_id, amount=amount):
            refund = stripe.Refund.create(
                charge=charge_id,
                amount=amount,
                reason=reason,
                metadata=metadata or {},
            )
        return RemoteRefund.model_validate(_as_dict(refund))

    # Subscription schedules

    def create_schedule_from_subscription(self, subscription_id: str) -> RemoteSchedule:
        with _translate_errors("create_schedule", external_subscription_id=subscription_id):
            schedule = stripe.SubscriptionSchedule.create(from_subscription=subscription_id)
        return RemoteSchedule.model_validate(_as_dict(schedule))

    def retrieve_schedule(self, schedule_id: str) -> RemoteSchedule:
        with _translate_errors("retrieve_schedule", schedule_id=schedule_id):
            schedule = stripe.SubscriptionSchedule.retrieve(schedule_id)
        return RemoteSchedule.model_validate(_as_dict(schedule))

    def update_schedule(
        self, schedule_id: str, phases: list[dict[str, Any]], end_behavior: str = "release"
    ) -> RemoteSchedule:
        """Replace the full phase list of a schedule."""
        with _translate_errors("update_schedule", schedule_id=schedule_id, phase_count=len(phases)):
            schedule = stripe.SubscriptionSchedule.modify(
                schedule_id, phases=phases, end_behavior=end_behavior
            )
        return RemoteSchedule.model_validate(_as_dict(schedule))

    # Catalog

    def list_prices(self) -> list[RemotePrice]:
        """All prices with their products expanded, across every page."""
        with _translate_errors("list_prices"):
            pages = stripe.Price.list(limit=100, expand=["data.product"])
            return [RemotePrice.model_validate(_as_dict(p)) for p in pages.auto_paging_iter()]

    # Webhooks

    def construct_event(
        self, payload: bytes, signature: Optional[str], secret: Optional[str], tolerance: int = 300
    ) -> RemoteEvent:
        """Verify a webhook signature and parse the event.

        Raises:
            InvalidSignatureError: Missing signature or secret, bad signature or bad payload
        """
        if not signature:
            raise InvalidSignatureError("Missing Stripe-Signature header")
        if not secret:
            logger.error("webhook_secret_missing", env_var="STRIPE_WEBHOOK_SECRET")
            raise InvalidSignatureError("Webhook secret is not configured")

        try:
            event = stripe.Webhook.construct_event(payload, signature, secret, tolerance=tolerance)
        except stripe.SignatureVerificationError as e:
            raise InvalidSignatureError(f"Signature verification failed: {e}") from e
        except ValueError as e:
            raise InvalidSignatureError(f"Invalid webhook payload: {e}") from e

        return RemoteEvent.model_validate(_as_dict(event))


_processor_instance: Optional[PaymentProcessor] = None
_processor_lock = threading.Lock()


def get_payment_processor() -> PaymentProcessor:
    """Get global payment processor instance (singleton)."""
    global _processor_instance
    if _processor_instance is None:
        with _processor_lock:
            if _processor_instance is None:
                _processor_instance = PaymentProcessor()
    return _processor_instance


def reset_payment_processor() -> None:
    global _processor_instance
    with _processor_lock:
        _processor_instance = None
