"""Plan, user and refund mirror models."""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field


class PlanRecord(BaseModel):
    """Mirror of one processor price and its product."""

    id: str = Field(..., description="Local plan id")
    product_id: str = Field(..., description="Processor product id")
    price_id: Optional[str] = Field(None, description="Processor price id (unique)")
    name: Optional[str] = None
    description: Optional[str] = None
    interval: Optional[str] = Field(None, description="Billing interval: day, week, month or year")
    amount: Optional[int] = Field(None, description="Unit amount in minor currency units")
    currency: Optional[str] = None
    trial_period_days: Optional[int] = None
    active: bool = True
    type: Optional[str] = Field(None, description="Price type: recurring or one_time")


class UserRecord(BaseModel):
    """Local user linked to a processor customer."""

    id: str
    email: str
    name: Optional[str] = None
    external_customer_id: Optional[str] = Field(None, description="Processor customer id")
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class RefundRecord(BaseModel):
    """Refund audit row."""

    id: str
    customer_id: Optional[str] = None
    subscription_id: Optional[str] = Field(None, description="Local subscription id")
    amount: int = Field(default=0, description="Refunded amount in minor currency units")
    charge_ref: Optional[str] = None
    refund_id: Optional[str] = Field(None, description="Processor refund id")
    reason: Optional[str] = None
    status: Optional[str] = None
    created_at: datetime
    metadata: dict[str, Any] = Field(default_factory=dict)
