"""Result models returned by lifecycle operations and API endpoints."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from .subscription import SubscriptionRecord


class CreateOutcome(str, Enum):
    """Outcome of a create request.

    Only CREATED persists a local record; the other two carry follow-up data
    for the caller.
    """

    CREATED = "created"
    REQUIRES_ACTION = "requires_action"
    REQUIRES_PAYMENT_METHOD = "requires_payment_method"


class CreateSubscriptionResult(BaseModel):
    outcome: CreateOutcome
    message: str
    subscription_id: Optional[str] = Field(None, description="Local subscription id")
    external_subscription_id: Optional[str] = None
    status: Optional[str] = None
    invoice_status: Optional[str] = None
    charge_id: Optional[str] = None
    client_secret: Optional[str] = Field(None, description="Present when additional authentication is required")


class DowngradeResult(BaseModel):
    subscription: SubscriptionRecord
    schedule_id: str
    phase_count: int


class CancellationResult(BaseModel):
    subscription: SubscriptionRecord
    refund_amount: int = 0
    refund_id: Optional[str] = None
    days_total: int
    days_used: int
    days_unused: int
    message: str = "Subscription cancelled"


class ErrorResponse(BaseModel):
    error: str
    message: str
