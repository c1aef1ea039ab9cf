"""Shared fixtures: processor object builders and a mocked gateway."""

from unittest.mock import MagicMock

import pytest

from subscription_manager.models.processor import (
    RemoteInvoice,
    RemoteSchedule,
    RemoteSubscription,
)
from subscription_manager.models.settings import RefundConfig
from subscription_manager.services.clock import Clock
from subscription_manager.services.notification_service import NotificationService
from subscription_manager.services.payment_processor import PaymentProcessor
from subscription_manager.utils.timestamps import SECONDS_PER_DAY, from_unix

PERIOD_START = 1_700_000_000
PERIOD_END = PERIOD_START + 30 * SECONDS_PER_DAY


def build_invoice(
    invoice_id="in_1",
    status="paid",
    amount_paid=10000,
    charge="ch_1",
    intent_status="succeeded",
    client_secret=None,
    subscription="sub_1",
):
    """Invoice with an expanded payment intent."""
    return {
        "id": invoice_id,
        "status": status,
        "amount_paid": amount_paid,
        "charge": charge,
        "subscription": subscription,
        "payment_intent": {
            "id": f"pi_{invoice_id}",
            "status": intent_status,
            "client_secret": client_secret,
            "latest_charge": charge,
        },
    }


def build_subscription(
    subscription_id="sub_1",
    customer="cus_1",
    price="price_basic",
    status="active",
    period_start=PERIOD_START,
    period_end=PERIOD_END,
    latest_invoice=None,
    schedule=None,
    **extra,
) -> RemoteSubscription:
    data = {
        "id": subscription_id,
        "customer": customer,
        "status": status,
        "items": {"data": [{"id": f"si_{subscription_id}", "price": {"id": price}}]},
        "current_period_start": period_start,
        "current_period_end": period_end,
        "cancel_at_period_end": False,
        "start_date": period_start,
        "metadata": {},
        "latest_invoice": latest_invoice,
        "schedule": schedule,
    }
    data.update(extra)
    return RemoteSubscription.model_validate(data)


def build_schedule(schedule_id="sub_sched_1", phases=None, subscription="sub_1") -> RemoteSchedule:
    return RemoteSchedule.model_validate(
        {
            "id": schedule_id,
            "status": "active",
            "end_behavior": "release",
            "subscription": subscription,
            "phases": phases or [],
        }
    )


@pytest.fixture
def remote_subscription():
    """Factory for RemoteSubscription objects."""
    return build_subscription


@pytest.fixture
def remote_invoice():
    """Factory for raw invoice payloads (use RemoteInvoice.model_validate for a model)."""
    return build_invoice


@pytest.fixture
def remote_schedule():
    return build_schedule


@pytest.fixture
def processor():
    """PaymentProcessor mock; no network or SDK configuration involved."""
    return MagicMock(spec=PaymentProcessor)


@pytest.fixture
def notifier():
    return MagicMock(spec=NotificationService)


@pytest.fixture
def fixed_clock():
    """Clock pinned two days into the test billing period."""
    clock = MagicMock(spec=Clock)
    now = PERIOD_START + 2 * SECONDS_PER_DAY
    clock.now_unix.return_value = now
    clock.now.return_value = from_unix(now)
    return clock


@pytest.fixture
def refund_settings():
    return RefundConfig()


@pytest.fixture
def paid_invoice():
    return RemoteInvoice.model_validate(build_invoice())
