"""Webhook event models - idempotency markers and routing outcomes."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class ProcessedEvent(BaseModel):
    """Append-only marker for a processor event that has been applied."""

    event_id: str = Field(..., description="Processor event id (primary key)")
    type: str = Field(..., description="Processor event type")
    received_at: datetime = Field(..., description="When the event was first claimed")


class HandlerCapability(str, Enum):
    """What a webhook event type does to the local mirror."""

    SYNCHRONIZE = "synchronize"
    UPSERT_REFUND = "upsert_refund"
    UPSERT_PLAN = "upsert_plan"
    UPSERT_USER = "upsert_user"
    IGNORE = "ignore"


class WebhookStatus(str, Enum):
    PROCESSED = "processed"
    DUPLICATE = "duplicate"
    IGNORED = "ignored"


class WebhookOutcome(BaseModel):
    """Result of routing one webhook delivery."""

    event_id: str
    event_type: str
    status: WebhookStatus
    capability: Optional[HandlerCapability] = None
    subscription_id: Optional[str] = Field(None, description="Processor subscription id that was synchronized")
