"""Downgrade scheduling through processor subscription schedules.

A downgrade never changes the current period: the subscription keeps its
price until ``current_period_end`` and a schedule phase switches it to the
cheaper price from then on. When the schedule runs out of phases it is
released and the subscription continues on the last price.
"""

from typing import Any, Optional

from pydantic import BaseModel, Field

from subscription_manager.exceptions import (
    InvalidDowngradeRequestError,
    NoCurrentPhaseError,
    NotSchedulableError,
    ProcessorInvalidRequestError,
)
from subscription_manager.logging_config import get_logger
from subscription_manager.models.processor import RemotePhase, RemoteSchedule, reference_id
from subscription_manager.models.subscription import SubscriptionRecord
from subscription_manager.services.clock import Clock, get_clock
from subscription_manager.services.payment_processor import PaymentProcessor, get_payment_processor
from subscription_manager.utils.timestamps import to_unix

logger = get_logger(__name__)

END_BEHAVIOR = "release"


class DowngradeSchedule(BaseModel):
    """Phase list submitted to the processor for one downgrade."""

    schedule_id: str
    phases: list[dict[str, Any]] = Field(default_factory=list)
    end_behavior: str = END_BEHAVIOR


def _phase_params(phase: RemotePhase) -> dict[str, Any]:
    """Re-submission parameters for an existing phase, unchanged."""
    params: dict[str, Any] = {
        "items": [{"price": reference_id(item.price)} for item in phase.items],
        "start_date": phase.start_date,
        "end_date": phase.end_date,
    }
    if phase.proration_behavior:
        params["proration_behavior"] = phase.proration_behavior
    return params


def _downgrade_phase(price_id: str, start_date: int) -> dict[str, Any]:
    return {
        "items": [{"price": price_id}],
        "start_date": start_date,
        "proration_behavior": "none",
    }


class ScheduleManager:
    """Builds and submits downgrade phase lists.

    Args:
        processor: Payment processor gateway (defaults to the global instance)
        clock: Time source for locating the current phase
    """

    def __init__(self, processor: Optional[PaymentProcessor] = None, clock: Optional[Clock] = None):
        self._processor = processor or get_payment_processor()
        self._clock = clock or get_clock()

    def schedule_downgrade(self, subscription: SubscriptionRecord, new_price_id: str) -> DowngradeSchedule:
        """Schedule a switch to ``new_price_id`` at the end of the current period.

        Args:
            subscription: Local subscription record
            new_price_id: Price to move to when the current period ends

        Returns:
            DowngradeSchedule with the schedule id and submitted phases

        Raises:
            NotSchedulableError: Subscription has no current_period_end
            NoCurrentPhaseError: Existing schedule has no phase covering now
            InvalidDowngradeRequestError: Processor rejected the request
            ProcessorError: Any other processor failure
        """
        period_end = to_unix(subscription.current_period_end)
        if period_end is None:
            raise NotSchedulableError(
                f"Subscription {subscription.id} is not in a period that can be downgraded"
            )

        try:
            schedule_id = subscription.schedule_id
            if not schedule_id:
                remote = self._processor.retrieve_subscription(
                    subscription.external_subscription_id, expand=["schedule"]
                )
                schedule_id = reference_id(remote.schedule)
                if schedule_id:
                    logger.info(
                        "existing_schedule_adopted",
                        subscription_id=subscription.id,
                        schedule_id=schedule_id,
                    )

            if schedule_id:
                result = self._extend_schedule(schedule_id, new_price_id)
            else:
                result = self._create_schedule(subscription, new_price_id, period_end)
        except ProcessorInvalidRequestError as e:
            raise InvalidDowngradeRequestError(f"Failed to schedule downgrade: {e}") from e

        logger.info(
            "downgrade_scheduled",
            subscription_id=subscription.id,
            schedule_id=result.schedule_id,
            new_price_id=new_price_id,
            phase_count=len(result.phases),
        )
        return result

    def _create_schedule(
        self, subscription: SubscriptionRecord, new_price_id: str, period_end: int
    ) -> DowngradeSchedule:
        """Two phases: current price until period end, then the new price."""
        created = self._processor.create_schedule_from_subscription(
            subscription.external_subscription_id
        )
        phases = [
            {
                "items": [{"price": subscription.price_id}],
                "start_date": "now",
                "end_date": period_end,
            },
            _downgrade_phase(new_price_id, period_end),
        ]
        self._processor.update_schedule(created.id, phases, end_behavior=END_BEHAVIOR)
        return DowngradeSchedule(schedule_id=created.id, phases=phases)

    def _extend_schedule(self, schedule_id: str, new_price_id: str) -> DowngradeSchedule:
        """Re-submit every existing phase and append the new price after the current one.

        The processor replaces the whole phase list on update, so any phase
        left out of the request is deleted.
        """
        schedule: RemoteSchedule = self._processor.retrieve_schedule(schedule_id)
        now = self._clock.now_unix()

        current = next((phase for phase in schedule.phases if phase.contains(now)), None)
        if current is None:
            raise NoCurrentPhaseError(f"No current phase found in schedule {schedule_id}")

        phases = [_phase_params(phase) for phase in schedule.phases]
        phases.append(_downgrade_phase(new_price_id, current.end_date))

        self._processor.update_schedule(schedule_id, phases, end_behavior=END_BEHAVIOR)
        return DowngradeSchedule(schedule_id=schedule_id, phases=phases)
