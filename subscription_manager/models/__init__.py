"""Pydantic models for API requests, responses, and domain objects."""

# Settings models
from .settings import (
    AppSettings,
    NotificationConfig,
    ProcessorConfig,
    RefundConfig,
    WebhookConfig,
)

# Local mirror models
from .subscription import (
    IN_FORCE_STATUSES,
    SubscriptionRecord,
    SubscriptionStatus,
)
from .catalog import (
    PlanRecord,
    RefundRecord,
    UserRecord,
)

# Event models
from .events import (
    HandlerCapability,
    ProcessedEvent,
    WebhookOutcome,
    WebhookStatus,
)

# Processor object views
from .processor import (
    Reference,
    RemoteCustomer,
    RemoteEvent,
    RemoteInvoice,
    RemotePaymentIntent,
    RemotePhase,
    RemotePrice,
    RemoteProduct,
    RemoteRefund,
    RemoteSchedule,
    RemoteSubscription,
    expanded,
    reference_id,
)

# API models
from .api_request import (
    ChangePriceRequest,
    CreateSubscriptionRequest,
    CreateUserRequest,
    UpdateUserRequest,
)
from .api_response import (
    CancellationResult,
    CreateOutcome,
    CreateSubscriptionResult,
    DowngradeResult,
    ErrorResponse,
)

__all__ = [
    # Settings
    "AppSettings",
    "NotificationConfig",
    "ProcessorConfig",
    "RefundConfig",
    "WebhookConfig",
    # Mirror
    "IN_FORCE_STATUSES",
    "SubscriptionRecord",
    "SubscriptionStatus",
    "PlanRecord",
    "RefundRecord",
    "UserRecord",
    # Events
    "HandlerCapability",
    "ProcessedEvent",
    "WebhookOutcome",
    "WebhookStatus",
    # Processor
    "Reference",
    "RemoteCustomer",
    "RemoteEvent",
    "RemoteInvoice",
    "RemotePaymentIntent",
    "RemotePhase",
    "RemotePrice",
    "RemoteProduct",
    "RemoteRefund",
    "RemoteSchedule",
    "RemoteSubscription",
    "expanded",
    "reference_id",
    # API
    "ChangePriceRequest",
    "CreateSubscriptionRequest",
    "CreateUserRequest",
    "UpdateUserRequest",
    "CancellationResult",
    "CreateOutcome",
    "CreateSubscriptionResult",
    "DowngradeResult",
    "ErrorResponse",
]
