"""Tests for LifecycleEngine - create, upgrade, downgrade and cancel."""

import threading
from unittest.mock import MagicMock

import pytest

from subscription_manager.exceptions import (
    AlreadySubscribedError,
    InvalidDowngradeRequestError,
    NotFoundError,
    PaymentNotSuccessfulError,
    PersistenceFailureError,
    ProcessorError,
    ProcessorInvalidRequestError,
    SubscriptionNotFoundError,
)
from subscription_manager.models.api_response import CreateOutcome
from subscription_manager.models.processor import RemoteRefund
from subscription_manager.repositories.refund_store import RefundStore
from subscription_manager.repositories.subscription_store import SubscriptionStore
from subscription_manager.repositories.user_store import UserStore
from subscription_manager.services.lifecycle_engine import CANCEL_EXPAND, CREATE_EXPAND, LifecycleEngine
from subscription_manager.services.notification_service import SubscriptionNotice
from subscription_manager.utils.timestamps import SECONDS_PER_DAY, from_unix

DAY = SECONDS_PER_DAY
PERIOD_START = 1_700_000_000
PERIOD_END = PERIOD_START + 30 * DAY


@pytest.fixture
def store():
    return SubscriptionStore()


@pytest.fixture
def user_store():
    store = UserStore()
    store.add("ann@example.com", "Ann", external_customer_id="cus_1")
    return store


@pytest.fixture
def refund_store():
    return RefundStore()


@pytest.fixture
def engine(processor, store, user_store, refund_store, notifier, fixed_clock, refund_settings):
    return LifecycleEngine(
        processor=processor,
        store=store,
        user_store=user_store,
        refund_store=refund_store,
        notifier=notifier,
        clock=fixed_clock,
        refund_settings=refund_settings,
    )


@pytest.fixture
def existing(store):
    """A paid, active subscription already in the mirror."""
    return store.upsert_by_external_id(
        "sub_1",
        {
            "customer_id": "cus_1",
            "price_id": "price_basic",
            "status": "active",
            "current_period_start": from_unix(PERIOD_START),
            "current_period_end": from_unix(PERIOD_END),
        },
    )


def refund(amount, refund_id="re_1"):
    return RemoteRefund(id=refund_id, amount=amount, charge="ch_1", status="succeeded")


class TestCreateSubscription:
    def test_paid_invoice_creates_record(self, engine, processor, store, notifier,
                                         remote_subscription, remote_invoice):
        processor.create_subscription.return_value = remote_subscription(latest_invoice=remote_invoice())

        result = engine.create_subscription("cus_1", "price_basic", "pm_1")

        processor.attach_payment_method.assert_called_once_with("pm_1", "cus_1")
        processor.set_default_payment_method.assert_called_once_with("cus_1", "pm_1")
        processor.create_subscription.assert_called_once_with("cus_1", "price_basic", expand=CREATE_EXPAND)
        assert result.outcome == CreateOutcome.CREATED
        assert result.message == "Subscription created successfully"
        assert result.charge_id == "ch_1"
        assert result.invoice_status == "paid"

        record = store.find_by_external_id("sub_1")
        assert record is not None
        assert result.subscription_id == record.id
        assert record.price_id == "price_basic"
        assert record.ended_at is None
        assert record.cancellation_date is None

        notifier.notify.assert_called_once()
        assert notifier.notify.call_args[0][1] == SubscriptionNotice.CREATED

    def test_charge_falls_back_to_payment_intent(self, engine, processor, remote_subscription, remote_invoice):
        invoice = remote_invoice()
        invoice["charge"] = None
        invoice["payment_intent"]["latest_charge"] = "ch_from_intent"
        processor.create_subscription.return_value = remote_subscription(latest_invoice=invoice)

        result = engine.create_subscription("cus_1", "price_basic", "pm_1")

        assert result.charge_id == "ch_from_intent"

    def test_requires_action(self, engine, processor, store, notifier, remote_subscription, remote_invoice):
        invoice = remote_invoice(status="open", intent_status="requires_action", client_secret="pi_secret")
        processor.create_subscription.return_value = remote_subscription(
            status="incomplete", latest_invoice=invoice
        )

        result = engine.create_subscription("cus_1", "price_basic", "pm_1")

        assert result.outcome == CreateOutcome.REQUIRES_ACTION
        assert result.client_secret == "pi_secret"
        assert result.subscription_id is None
        assert store.count() == 0
        notifier.notify.assert_not_called()

    def test_requires_payment_method(self, engine, processor, store, remote_subscription, remote_invoice):
        invoice = remote_invoice(status="open", intent_status="requires_payment_method")
        processor.create_subscription.return_value = remote_subscription(
            status="incomplete", latest_invoice=invoice
        )

        result = engine.create_subscription("cus_1", "price_basic", "pm_1")

        assert result.outcome == CreateOutcome.REQUIRES_PAYMENT_METHOD
        assert result.message == "Payment failed, please provide a new payment method."
        assert store.count() == 0

    def test_other_payment_states_raise(self, engine, processor, store, remote_subscription, remote_invoice):
        invoice = remote_invoice(status="open", intent_status="processing")
        processor.create_subscription.return_value = remote_subscription(
            status="incomplete", latest_invoice=invoice
        )

        with pytest.raises(PaymentNotSuccessfulError):
            engine.create_subscription("cus_1", "price_basic", "pm_1")
        assert store.count() == 0

    def test_already_subscribed(self, engine, processor, existing):
        with pytest.raises(AlreadySubscribedError) as exc_info:
            engine.create_subscription("cus_1", "price_pro", "pm_1")

        assert str(exc_info.value) == "User already has an active subscription."
        processor.create_subscription.assert_not_called()

    def test_trialing_blocks_create(self, engine, processor, store, existing):
        store.update(existing.id, {"status": "trialing"})

        with pytest.raises(AlreadySubscribedError):
            engine.create_subscription("cus_1", "price_pro", "pm_1")

    def test_cancelled_does_not_block_create(self, engine, processor, store, existing,
                                             remote_subscription, remote_invoice):
        store.update(existing.id, {"status": "cancelled"})
        processor.create_subscription.return_value = remote_subscription(
            subscription_id="sub_2", latest_invoice=remote_invoice(invoice_id="in_2")
        )

        result = engine.create_subscription("cus_1", "price_pro", "pm_1")

        assert result.outcome == CreateOutcome.CREATED
        assert store.count() == 2

    def test_processor_error_propagates(self, engine, processor, store):
        processor.attach_payment_method.side_effect = ProcessorError("card declined", code="card_declined")

        with pytest.raises(ProcessorError):
            engine.create_subscription("cus_1", "price_basic", "pm_1")
        assert store.count() == 0

    def test_notification_failure_does_not_fail_create(self, engine, processor, notifier,
                                                       remote_subscription, remote_invoice):
        processor.create_subscription.return_value = remote_subscription(latest_invoice=remote_invoice())
        notifier.notify.side_effect = RuntimeError("smtp down")

        result = engine.create_subscription("cus_1", "price_basic", "pm_1")

        assert result.outcome == CreateOutcome.CREATED

    @pytest.mark.xfail(reason="active-subscription check is not atomic with create", strict=False)
    def test_concurrent_creates_allow_one(self, engine, processor, store, remote_subscription, remote_invoice):
        barrier = threading.Barrier(2, timeout=5)
        counter = iter(range(2))

        def create(*args, **kwargs):
            n = next(counter)
            barrier.wait()
            return remote_subscription(
                subscription_id=f"sub_race_{n}", latest_invoice=remote_invoice(invoice_id=f"in_{n}")
            )

        processor.create_subscription.side_effect = create
        errors = []

        def run():
            try:
                engine.create_subscription("cus_1", "price_basic", "pm_1")
            except (AlreadySubscribedError, threading.BrokenBarrierError) as e:
                errors.append(e)

        threads = [threading.Thread(target=run) for _ in range(2)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert store.count() == 1


class TestUpgradeSubscription:
    def test_upgrade_swaps_price(self, engine, processor, store, notifier, existing, remote_subscription):
        processor.retrieve_subscription.return_value = remote_subscription()
        processor.update_subscription_item.return_value = remote_subscription(
            price="price_pro", period_end=PERIOD_END + DAY
        )

        updated = engine.upgrade_subscription(existing.id, "price_pro")

        processor.update_subscription_item.assert_called_once_with(
            "sub_1", "si_sub_1", "price_pro", proration_behavior="always_invoice"
        )
        assert updated.price_id == "price_pro"
        assert updated.current_period_end == from_unix(PERIOD_END + DAY)
        assert store.get_by_id(existing.id).price_id == "price_pro"
        assert notifier.notify.call_args[0][1] == SubscriptionNotice.UPGRADED

    def test_unknown_subscription(self, engine, processor):
        with pytest.raises(SubscriptionNotFoundError):
            engine.upgrade_subscription("missing", "price_pro")
        processor.retrieve_subscription.assert_not_called()

    def test_no_subscription_item(self, engine, processor, existing, remote_subscription):
        processor.retrieve_subscription.return_value = remote_subscription(items={"data": []})

        with pytest.raises(NotFoundError):
            engine.upgrade_subscription(existing.id, "price_pro")
        processor.update_subscription_item.assert_not_called()

    def test_persistence_failure(self, processor, user_store, refund_store, notifier, fixed_clock,
                                 refund_settings, existing, remote_subscription):
        store = MagicMock(spec=SubscriptionStore)
        store.find_by_id.return_value = existing
        store.update.return_value = None
        engine = LifecycleEngine(
            processor=processor,
            store=store,
            user_store=user_store,
            refund_store=refund_store,
            notifier=notifier,
            clock=fixed_clock,
            refund_settings=refund_settings,
        )
        processor.retrieve_subscription.return_value = remote_subscription()
        processor.update_subscription_item.return_value = remote_subscription(price="price_pro")

        with pytest.raises(PersistenceFailureError):
            engine.upgrade_subscription(existing.id, "price_pro")
        notifier.notify.assert_not_called()


class TestScheduleDowngrade:
    def test_persists_downgrade_fields(self, engine, processor, store, notifier, existing,
                                       remote_subscription, remote_schedule):
        processor.retrieve_subscription.return_value = remote_subscription()
        processor.create_schedule_from_subscription.return_value = remote_schedule()

        result = engine.schedule_downgrade(existing.id, "price_starter")

        assert result.schedule_id == "sub_sched_1"
        assert result.phase_count == 2
        record = store.get_by_id(existing.id)
        assert record.schedule_id == "sub_sched_1"
        assert record.scheduled_downgrade_price_id == "price_starter"
        assert record.scheduled_downgrade_date == from_unix(PERIOD_END)
        assert record.price_id == "price_basic"
        assert notifier.notify.call_args[0][1] == SubscriptionNotice.DOWNGRADED

    def test_rejected_downgrade_leaves_record(self, engine, processor, store, existing, remote_subscription):
        processor.retrieve_subscription.return_value = remote_subscription()
        processor.create_schedule_from_subscription.side_effect = ProcessorInvalidRequestError("bad price")

        with pytest.raises(InvalidDowngradeRequestError):
            engine.schedule_downgrade(existing.id, "price_missing")
        assert store.get_by_id(existing.id).schedule_id is None


class TestCancelSubscription:
    def _setup(self, processor, remote_subscription, remote_invoice, amount_paid=10000):
        processor.retrieve_subscription.return_value = remote_subscription(
            latest_invoice=remote_invoice(amount_paid=amount_paid)
        )
        processor.cancel_subscription.return_value = remote_subscription(
            status="canceled", ended_at=PERIOD_START + 2 * DAY, metadata={"source": "api"}
        )

    def test_full_refund_within_grace(self, engine, processor, refund_store, notifier, existing,
                                      remote_subscription, remote_invoice):
        self._setup(processor, remote_subscription, remote_invoice)
        processor.create_refund.return_value = refund(10000)

        result = engine.cancel_subscription(existing.id)

        processor.retrieve_subscription.assert_called_once_with("sub_1", expand=CANCEL_EXPAND)
        processor.cancel_subscription.assert_called_once_with("sub_1")
        processor.create_refund.assert_called_once_with(
            "ch_1",
            10000,
            reason="requested_by_customer",
            metadata={
                "customer_id": "cus_1",
                "subscription_id": existing.id,
                "external_subscription_id": "sub_1",
            },
        )
        assert result.refund_amount == 10000
        assert result.refund_id == "re_1"
        assert (result.days_total, result.days_used, result.days_unused) == (30, 2, 28)

        record = result.subscription
        assert record.status == "cancelled"
        assert record.cancellation_date == from_unix(PERIOD_START + 2 * DAY)
        assert record.ended_at == from_unix(PERIOD_START + 2 * DAY)
        assert record.metadata == {"source": "api"}

        rows = refund_store.get_by_subscription(existing.id)
        assert len(rows) == 1
        assert rows[0].amount == 10000
        assert rows[0].refund_id == "re_1"
        assert rows[0].reason == "Subscription cancelled"
        assert notifier.notify.call_args[0][1] == SubscriptionNotice.CANCELLED

    def test_prorated_refund(self, engine, processor, fixed_clock, existing, remote_subscription, remote_invoice):
        fixed_clock.now_unix.return_value = PERIOD_START + 15 * DAY
        self._setup(processor, remote_subscription, remote_invoice)
        processor.create_refund.return_value = refund(5000)

        result = engine.cancel_subscription(existing.id)

        assert processor.create_refund.call_args[0][1] == 5000
        assert result.refund_amount == 5000

    def test_cancel_by_processor_id(self, engine, processor, existing, remote_subscription, remote_invoice):
        self._setup(processor, remote_subscription, remote_invoice)
        processor.create_refund.return_value = refund(10000)

        result = engine.cancel_subscription("sub_1")

        assert result.subscription.id == existing.id

    def test_no_refund_when_nothing_due(self, engine, processor, fixed_clock, refund_store, existing,
                                        remote_subscription, remote_invoice):
        fixed_clock.now_unix.return_value = PERIOD_END
        self._setup(processor, remote_subscription, remote_invoice)

        result = engine.cancel_subscription(existing.id)

        processor.create_refund.assert_not_called()
        assert result.refund_amount == 0
        assert result.subscription.status == "cancelled"
        assert refund_store.get_by_subscription(existing.id)[0].amount == 0

    def test_refund_failure_still_cancels(self, engine, processor, refund_store, existing,
                                          remote_subscription, remote_invoice):
        self._setup(processor, remote_subscription, remote_invoice)
        processor.create_refund.side_effect = ProcessorError("charge already refunded")

        result = engine.cancel_subscription(existing.id)

        assert result.subscription.status == "cancelled"
        assert result.refund_amount == 0
        assert result.refund_id is None
        row = refund_store.get_by_subscription(existing.id)[0]
        assert row.charge_ref == "ch_1"

    def test_unexpanded_invoice_is_retrieved(self, engine, processor, existing, remote_subscription):
        processor.retrieve_subscription.return_value = remote_subscription(latest_invoice="in_1")
        processor.cancel_subscription.return_value = remote_subscription(status="canceled")
        processor.retrieve_invoice.return_value = MagicMock(
            amount_paid=10000, payment_intent="pi_1"
        )
        processor.retrieve_payment_intent.return_value = MagicMock(latest_charge="ch_1")
        processor.create_refund.return_value = refund(10000)

        result = engine.cancel_subscription(existing.id)

        processor.retrieve_invoice.assert_called_once_with("in_1", expand=["payment_intent"])
        processor.retrieve_payment_intent.assert_called_once_with("pi_1")
        assert result.refund_amount == 10000

    def test_no_invoice_no_refund(self, engine, processor, existing, remote_subscription):
        processor.retrieve_subscription.return_value = remote_subscription()
        processor.cancel_subscription.return_value = remote_subscription(status="canceled")

        result = engine.cancel_subscription(existing.id)

        processor.create_refund.assert_not_called()
        assert result.refund_amount == 0

    def test_cancel_failure_propagates(self, engine, processor, store, existing, remote_subscription):
        processor.retrieve_subscription.return_value = remote_subscription()
        processor.cancel_subscription.side_effect = ProcessorError("timeout")

        with pytest.raises(ProcessorError):
            engine.cancel_subscription(existing.id)
        assert store.get_by_id(existing.id).status == "active"
        processor.create_refund.assert_not_called()

    def test_unknown_subscription(self, engine):
        with pytest.raises(SubscriptionNotFoundError):
            engine.cancel_subscription("missing")


class TestQueries:
    def test_find_active_for_customer(self, engine, store, existing):
        store.upsert_by_external_id("sub_old", {"customer_id": "cus_1", "status": "canceled"})
        assert engine.find_active_for_customer("cus_1").id == existing.id
        assert engine.find_active_for_customer("cus_2") is None

    def test_list_subscriptions(self, engine, store, existing):
        store.upsert_by_external_id("sub_2", {"customer_id": "cus_2", "status": "active"})
        assert len(engine.list_subscriptions()) == 2
        assert engine.list_subscriptions("cus_2")[0].external_subscription_id == "sub_2"

    def test_get_subscription(self, engine, existing):
        assert engine.get_subscription("sub_1").id == existing.id
        with pytest.raises(SubscriptionNotFoundError):
            engine.get_subscription("missing")
