"""Tests for SubscriptionSynchronizer - mirroring processor state locally."""

from datetime import datetime, timezone

import pytest

from subscription_manager.repositories.subscription_store import SubscriptionStore
from subscription_manager.services.subscription_sync import (
    SubscriptionSynchronizer,
    mirror_fields,
)


@pytest.fixture
def store():
    return SubscriptionStore()


@pytest.fixture
def synchronizer(processor, store):
    return SubscriptionSynchronizer(processor=processor, store=store)


DOWNGRADE = {
    "schedule_id": "sub_sched_1",
    "scheduled_downgrade_price_id": "price_basic",
    "scheduled_downgrade_date": datetime(2024, 1, 31, tzinfo=timezone.utc),
}


class TestMirrorFields:
    def test_maps_processor_fields(self, remote_subscription):
        fields = mirror_fields(remote_subscription(canceled_at=None))

        assert fields["customer_id"] == "cus_1"
        assert fields["status"] == "active"
        assert fields["price_id"] == "price_basic"
        assert fields["current_period_end"].tzinfo is not None
        assert fields["canceled_at"] is None

    def test_lifecycle_fields_not_included(self, remote_subscription):
        fields = mirror_fields(remote_subscription())
        for name in ("schedule_id", "scheduled_downgrade_price_id", "cancellation_date"):
            assert name not in fields

    def test_expanded_customer(self, remote_subscription):
        fields = mirror_fields(remote_subscription(customer={"id": "cus_9", "email": "x@example.com"}))
        assert fields["customer_id"] == "cus_9"


class TestSync:
    def test_creates_missing_record(self, synchronizer, processor, store, remote_subscription):
        processor.retrieve_subscription.return_value = remote_subscription()

        record = synchronizer.sync_by_external_id("sub_1")

        processor.retrieve_subscription.assert_called_once_with("sub_1")
        assert record.external_subscription_id == "sub_1"
        assert store.count() == 1

    def test_price_self_heals(self, synchronizer, processor, store, remote_subscription):
        store.upsert_by_external_id("sub_1", {"customer_id": "cus_1", "status": "active", "price_id": "stale"})
        processor.retrieve_subscription.return_value = remote_subscription(price="price_pro")

        record = synchronizer.sync_by_external_id("sub_1")

        assert record.price_id == "price_pro"

    def test_status_follows_processor(self, synchronizer, processor, store, remote_subscription):
        store.upsert_by_external_id("sub_1", {"customer_id": "cus_1", "status": "incomplete"})
        processor.retrieve_subscription.return_value = remote_subscription(status="past_due")

        assert synchronizer.sync_by_external_id("sub_1").status == "past_due"

    def test_keeps_downgrade_while_schedule_exists(self, synchronizer, processor, store, remote_subscription):
        store.upsert_by_external_id("sub_1", {"customer_id": "cus_1", "status": "active", **DOWNGRADE})
        processor.retrieve_subscription.return_value = remote_subscription(schedule="sub_sched_1")

        record = synchronizer.sync_by_external_id("sub_1")

        assert record.schedule_id == "sub_sched_1"
        assert record.scheduled_downgrade_price_id == "price_basic"

    def test_clears_downgrade_after_release(self, synchronizer, processor, store, remote_subscription):
        store.upsert_by_external_id("sub_1", {"customer_id": "cus_1", "status": "active", **DOWNGRADE})
        processor.retrieve_subscription.return_value = remote_subscription(price="price_basic")

        record = synchronizer.sync_by_external_id("sub_1")

        assert record.schedule_id is None
        assert record.scheduled_downgrade_price_id is None
        assert record.scheduled_downgrade_date is None
        assert record.price_id == "price_basic"

    def test_keeps_cancellation_date(self, synchronizer, processor, store, remote_subscription):
        cancelled = datetime(2024, 1, 3, tzinfo=timezone.utc)
        store.upsert_by_external_id(
            "sub_1", {"customer_id": "cus_1", "status": "cancelled", "cancellation_date": cancelled}
        )
        processor.retrieve_subscription.return_value = remote_subscription(status="canceled")

        record = synchronizer.sync_by_external_id("sub_1")

        assert record.cancellation_date == cancelled
        assert record.status == "canceled"

    def test_idempotent(self, synchronizer, processor, store, remote_subscription):
        processor.retrieve_subscription.return_value = remote_subscription()

        first = synchronizer.sync_by_external_id("sub_1")
        second = synchronizer.sync_by_external_id("sub_1")

        assert first.model_dump(exclude={"updated_at"}) == second.model_dump(exclude={"updated_at"})
        assert store.count() == 1
