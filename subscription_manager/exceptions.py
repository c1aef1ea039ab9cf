"""Error taxonomy for subscription lifecycle and webhook processing."""

from typing import Optional


class SubscriptionManagerError(Exception):
    """Base exception for all subscription manager errors."""

    status_code = 500
    error_code = "subscription_error"


class InvalidSignatureError(SubscriptionManagerError):
    """Raised when a webhook payload fails signature verification."""

    status_code = 400
    error_code = "invalid_signature"


class DuplicateEventError(SubscriptionManagerError):
    """Raised when an event id is marked processed a second time."""

    status_code = 200
    error_code = "duplicate_event"


class AlreadySubscribedError(SubscriptionManagerError):
    """Raised when a customer already has an active or trialing subscription."""

    status_code = 400
    error_code = "already_subscribed"


class NotFoundError(SubscriptionManagerError):
    """Raised when a subscription, schedule item or phase does not exist."""

    status_code = 404
    error_code = "not_found"


class SubscriptionNotFoundError(NotFoundError):
    """Raised when a subscription is not found in the store."""

    pass


class NoCurrentPhaseError(NotFoundError):
    """Raised when a schedule has no phase covering the current time."""

    error_code = "no_current_phase"


class PaymentNotSuccessfulError(SubscriptionManagerError):
    """Raised when a subscription was created but payment ended in an unexpected state."""

    status_code = 400
    error_code = "payment_not_successful"


class InvalidDowngradeRequestError(SubscriptionManagerError):
    """Raised when the processor rejects a downgrade as an invalid request."""

    status_code = 400
    error_code = "invalid_downgrade_request"


class NotSchedulableError(SubscriptionManagerError):
    """Raised when a subscription has no billing period to schedule against."""

    status_code = 400
    error_code = "not_schedulable"


class ProcessorError(SubscriptionManagerError):
    """Raised for any error reported by the payment processor."""

    status_code = 502
    error_code = "processor_error"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        http_status: Optional[int] = None,
    ):
        super().__init__(message)
        self.code = code
        self.http_status = http_status


class ProcessorInvalidRequestError(ProcessorError):
    """Raised when the processor rejects a request as invalid."""

    status_code = 400
    error_code = "processor_invalid_request"


class PersistenceFailureError(SubscriptionManagerError):
    """Raised when a write to the local mirror does not return a record."""

    status_code = 500
    error_code = "persistence_failure"


class DuplicateUserError(SubscriptionManagerError):
    """Raised when a user with the same email already exists."""

    status_code = 409
    error_code = "duplicate_user"
