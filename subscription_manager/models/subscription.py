"""Local subscription mirror model.

Status values mirror the processor's vocabulary verbatim.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


class SubscriptionStatus(str, Enum):
    """Known subscription statuses.

    The mirror stores whatever string the processor reports; this enum only
    names the values the engine reasons about.
    """

    INCOMPLETE = "incomplete"
    INCOMPLETE_EXPIRED = "incomplete_expired"
    TRIALING = "trialing"
    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELED = "canceled"  # processor spelling
    CANCELLED = "cancelled"  # written locally on immediate cancellation
    UNPAID = "unpaid"
    PAUSED = "paused"


IN_FORCE_STATUSES = frozenset({SubscriptionStatus.ACTIVE.value, SubscriptionStatus.TRIALING.value})


class SubscriptionRecord(BaseModel):
    """Local mirror of one processor subscription."""

    id: str = Field(..., description="Local subscription id")
    customer_id: str = Field(..., description="Processor customer reference")
    external_subscription_id: str = Field(..., description="Processor subscription id (unique)")
    price_id: Optional[str] = Field(None, description="Processor price id of the single item")

    # Lifecycle
    status: str = Field(..., description="Processor status, stored verbatim")
    cancel_at_period_end: bool = Field(default=False)

    # Billing window
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None

    # Downgrade intent
    scheduled_downgrade_price_id: Optional[str] = None
    scheduled_downgrade_date: Optional[datetime] = None
    schedule_id: Optional[str] = Field(None, description="Processor schedule id, set iff one exists")

    # Termination
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    cancellation_date: Optional[datetime] = None
    canceled_at: Optional[datetime] = None

    metadata: dict[str, Any] = Field(default_factory=dict, description="Processor-owned metadata")

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_in_force(self) -> bool:
        """Whether the subscription currently grants access."""
        return self.status in IN_FORCE_STATUSES

    @property
    def has_scheduled_downgrade(self) -> bool:
        return self.schedule_id is not None

    class Config:
        json_schema_extra = {
            "example": {
                "id": "6f1c3b0e9a2d4e5f8a7b6c5d4e3f2a1b",
                "customer_id": "cus_NffrFeUfNV2Hib",
                "external_subscription_id": "sub_1MowQVLkdIwHu7ixeRlqHVzs",
                "price_id": "price_pro_monthly",
                "status": "active",
                "cancel_at_period_end": False,
                "current_period_start": "2024-01-01T00:00:00Z",
                "current_period_end": "2024-01-31T00:00:00Z",
                "schedule_id": None,
                "metadata": {},
            }
        }
