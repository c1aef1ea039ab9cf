"""Tests for state change logging functionality."""

from datetime import datetime, timezone
from unittest.mock import patch

import pytest

from subscription_manager import state_logger


@pytest.fixture
def logger():
    with patch.object(state_logger, "logger") as mock_logger:
        yield mock_logger


class TestStateChangeLogging:
    def test_status_change(self, logger):
        state_logger.log_subscription_status_change(
            subscription_id="local_1",
            external_subscription_id="sub_1",
            old_status="active",
            new_status="cancelled",
            reason="cancel",
            customer_id="cus_1",
        )

        logger.info.assert_called_once_with(
            "subscription_status_changed",
            subscription_id="local_1",
            external_subscription_id="sub_1",
            old_status="active",
            new_status="cancelled",
            reason="cancel",
            customer_id="cus_1",
        )

    def test_price_change(self, logger):
        state_logger.log_price_change("local_1", "price_basic", "price_pro", reason="upgrade")

        event, = logger.info.call_args[0]
        assert event == "subscription_price_changed"
        assert logger.info.call_args[1]["new_price_id"] == "price_pro"

    def test_schedule_change_serializes_date(self, logger):
        state_logger.log_schedule_change(
            subscription_id="local_1",
            schedule_id="sub_sched_1",
            downgrade_price_id="price_basic",
            downgrade_date=datetime(2024, 1, 31, tzinfo=timezone.utc),
            phase_count=2,
        )

        kwargs = logger.info.call_args[1]
        assert kwargs["downgrade_date"] == "2024-01-31T00:00:00+00:00"
        assert kwargs["phase_count"] == 2

    def test_schedule_change_without_date(self, logger):
        state_logger.log_schedule_change("local_1", None, None, None, 0)
        assert logger.info.call_args[1]["downgrade_date"] is None

    def test_refund_issued(self, logger):
        state_logger.log_refund_issued(
            subscription_id="local_1",
            charge_ref="ch_1",
            amount=10000,
            days_used=2,
            days_total=30,
            refund_id="re_1",
        )

        kwargs = logger.info.call_args[1]
        assert logger.info.call_args[0] == ("refund_issued",)
        assert kwargs["amount"] == 10000
        assert kwargs["refund_id"] == "re_1"
