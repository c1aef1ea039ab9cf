"""Prorated refund math for immediate cancellations.

Pure functions over Unix seconds and integer minor units. Partial days count
as used, so the customer is charged for every day they started.
"""

from typing import Tuple

from subscription_manager.utils.timestamps import ceil_days

DEFAULT_GRACE_DAYS = 3


def billing_days(period_start: int, period_end: int, now: int) -> Tuple[int, int, int]:
    """Split a billing period into total, used and unused days.

    Args:
        period_start: Period start (Unix seconds)
        period_end: Period end (Unix seconds)
        now: Cancellation time (Unix seconds)

    Returns:
        (days_total, days_used, days_unused)

    Examples:
        >>> billing_days(0, 30 * 86400, 2 * 86400)
        (30, 2, 28)
        >>> billing_days(0, 30 * 86400, 86400 + 1)
        (30, 2, 28)
    """
    days_total = ceil_days(period_end - period_start)
    days_used = ceil_days(now - period_start)
    return days_total, days_used, days_total - days_used


def calculate_refund(
    period_start: int,
    period_end: int,
    now: int,
    amount_paid: int,
    grace_days: int = DEFAULT_GRACE_DAYS,
) -> int:
    """Amount to refund when a subscription is cancelled at ``now``.

    Within the grace window the whole payment is returned. After it, the
    unused share of the period is returned, rounded down.

    Returns:
        Refund in minor units; 0 means no refund should be issued

    Examples:
        >>> calculate_refund(0, 30 * 86400, 2 * 86400, 10000)
        10000
        >>> calculate_refund(0, 30 * 86400, 15 * 86400, 10000)
        5000
        >>> calculate_refund(0, 30 * 86400, 30 * 86400, 10000)
        0
    """
    days_total, days_used, days_unused = billing_days(period_start, period_end, now)

    if days_used <= grace_days:
        refund = amount_paid
    elif days_total <= 0:
        return 0
    else:
        refund = (amount_paid * days_unused) // days_total

    return refund if refund > 0 else 0
