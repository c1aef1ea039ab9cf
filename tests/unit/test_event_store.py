"""Tests for ProcessedEventStore - webhook idempotency markers."""

from concurrent.futures import ThreadPoolExecutor

import pytest

from subscription_manager.exceptions import DuplicateEventError
from subscription_manager.repositories.event_store import ProcessedEventStore


@pytest.fixture
def store():
    return ProcessedEventStore()


class TestMarkers:
    def test_new_event_not_processed(self, store):
        assert store.has_processed("evt_1") is False

    def test_mark_processed(self, store):
        marker = store.mark_processed("evt_1", "invoice.paid")

        assert marker.event_id == "evt_1"
        assert marker.type == "invoice.paid"
        assert marker.received_at is not None
        assert store.has_processed("evt_1")
        assert "evt_1" in store

    def test_mark_processed_twice_raises(self, store):
        store.mark_processed("evt_1", "invoice.paid")
        with pytest.raises(DuplicateEventError):
            store.mark_processed("evt_1", "invoice.paid")

    def test_claim(self, store):
        assert store.claim("evt_1", "invoice.paid") is True
        assert store.claim("evt_1", "invoice.paid") is False
        assert store.count() == 1

    def test_first_marker_is_kept(self, store):
        store.claim("evt_1", "invoice.paid")
        first = store.get("evt_1")
        store.claim("evt_1", "invoice.updated")
        assert store.get("evt_1") == first


class TestConcurrency:
    def test_concurrent_claims_have_one_winner(self, store):
        """Many deliveries of the same event: exactly one claim succeeds."""
        with ThreadPoolExecutor(max_workers=16) as pool:
            results = list(pool.map(lambda _: store.claim("evt_1", "invoice.paid"), range(64)))

        assert results.count(True) == 1
        assert store.count() == 1
