"""State change logging for the local subscription mirror.

Tracks transitions with before/after values for debugging and auditing.
"""

from datetime import datetime
from typing import Any, Optional

from subscription_manager.logging_config import get_logger

logger = get_logger(__name__)


def log_subscription_status_change(
    subscription_id: str,
    external_subscription_id: str,
    old_status: Optional[str],
    new_status: Optional[str],
    reason: Optional[str] = None,
    **extra_context: Any,
) -> None:
    """Log a subscription status transition.

    Args:
        subscription_id: Local subscription id
        external_subscription_id: Processor subscription id
        old_status: Previous status value
        new_status: New status value
        reason: What caused the transition (sync, cancel, create)
        **extra_context: Additional context (customer_id, etc.)
    """
    logger.info(
        "subscription_status_changed",
        subscription_id=subscription_id,
        external_subscription_id=external_subscription_id,
        old_status=old_status,
        new_status=new_status,
        reason=reason,
        **extra_context,
    )


def log_price_change(
    subscription_id: str,
    old_price_id: Optional[str],
    new_price_id: Optional[str],
    reason: Optional[str] = None,
    **extra_context: Any,
) -> None:
    """Log a plan price change on a subscription."""
    logger.info(
        "subscription_price_changed",
        subscription_id=subscription_id,
        old_price_id=old_price_id,
        new_price_id=new_price_id,
        reason=reason,
        **extra_context,
    )


def log_schedule_change(
    subscription_id: str,
    schedule_id: Optional[str],
    downgrade_price_id: Optional[str],
    downgrade_date: Optional[datetime],
    phase_count: int,
    **extra_context: Any,
) -> None:
    """Log a downgrade schedule being written or extended.

    Args:
        subscription_id: Local subscription id
        schedule_id: Processor schedule id
        downgrade_price_id: Price that takes effect at the downgrade date
        downgrade_date: When the downgrade takes effect
        phase_count: Number of phases submitted to the processor
        **extra_context: Additional context
    """
    logger.info(
        "subscription_schedule_changed",
        subscription_id=subscription_id,
        schedule_id=schedule_id,
        downgrade_price_id=downgrade_price_id,
        downgrade_date=downgrade_date.isoformat() if downgrade_date else None,
        phase_count=phase_count,
        **extra_context,
    )


def log_refund_issued(
    subscription_id: str,
    charge_ref: str,
    amount: int,
    days_used: int,
    days_total: int,
    **extra_context: Any,
) -> None:
    """Log a refund issued as part of a cancellation."""
    logger.info(
        "refund_issued",
        subscription_id=subscription_id,
        charge_ref=charge_ref,
        amount=amount,
        days_used=days_used,
        days_total=days_total,
        **extra_context,
    )
