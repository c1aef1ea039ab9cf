"""Subscription lifecycle API.

Implements:
- POST /subscriptions - Create subscription
- GET /subscriptions - List subscriptions (optionally per customer)
- GET /subscriptions/{id} - Get subscription by local or processor id
- PATCH /subscriptions/upgrade/{id} - Upgrade immediately
- PATCH /subscriptions/downgrade/{id} - Schedule downgrade at period end
- PATCH /subscriptions/cancel/{id} - Cancel immediately with prorated refund

Endpoints are plain ``def`` so blocking processor calls run in the threadpool.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from subscription_manager.logging_config import get_logger
from subscription_manager.models import (
    CancellationResult,
    ChangePriceRequest,
    CreateOutcome,
    CreateSubscriptionRequest,
    CreateSubscriptionResult,
    DowngradeResult,
    ErrorResponse,
    SubscriptionRecord,
)
from subscription_manager.services.lifecycle_engine import LifecycleEngine, get_lifecycle_engine

logger = get_logger(__name__)
router = APIRouter(tags=["Subscriptions"], prefix="/subscriptions")

ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Payment or validation failure"},
    404: {"model": ErrorResponse, "description": "Subscription not found"},
    502: {"model": ErrorResponse, "description": "Payment processor error"},
}


@router.post(
    "",
    response_model=CreateSubscriptionResult,
    status_code=201,
    summary="Create subscription",
    responses={
        **ERROR_RESPONSES,
        400: {"model": ErrorResponse, "description": "Already subscribed, payment or validation failure"},
    },
)
def create_subscription(
    request: CreateSubscriptionRequest,
    engine: LifecycleEngine = Depends(get_lifecycle_engine),
):
    """Create a subscription and charge the first invoice.

    Returns 201 when the payment succeeded or needs customer authentication
    (``client_secret`` is included), and 400 when the card was declined and a
    new payment method is required.
    """
    logger.info(
        "create_subscription_request",
        customer_id=request.customer_id,
        price_id=request.price_id,
    )
    result = engine.create_subscription(
        request.customer_id, request.price_id, request.payment_method_id
    )
    if result.outcome is CreateOutcome.REQUIRES_PAYMENT_METHOD:
        return JSONResponse(status_code=400, content=result.model_dump(mode="json"))
    return result


@router.get("", response_model=list[SubscriptionRecord], summary="List subscriptions")
def list_subscriptions(
    customer_id: Optional[str] = Query(None, description="Only this processor customer"),
    active_only: bool = Query(False, description="Only the customer's active subscription"),
    engine: LifecycleEngine = Depends(get_lifecycle_engine),
) -> list[SubscriptionRecord]:
    if active_only and customer_id:
        active = engine.find_active_for_customer(customer_id)
        return [active] if active else []
    return engine.list_subscriptions(customer_id)


@router.get(
    "/{subscription_id}",
    response_model=SubscriptionRecord,
    summary="Get subscription",
    responses={404: ERROR_RESPONSES[404]},
)
def get_subscription(
    subscription_id: str,
    engine: LifecycleEngine = Depends(get_lifecycle_engine),
) -> SubscriptionRecord:
    return engine.get_subscription(subscription_id)


@router.patch(
    "/upgrade/{subscription_id}",
    response_model=SubscriptionRecord,
    summary="Upgrade subscription",
    responses=ERROR_RESPONSES,
)
def upgrade_subscription(
    subscription_id: str,
    request: ChangePriceRequest,
    engine: LifecycleEngine = Depends(get_lifecycle_engine),
) -> SubscriptionRecord:
    """Switch to a new price now and invoice the prorated difference."""
    logger.info("upgrade_subscription_request", new_price_id=request.new_price_id)
    return engine.upgrade_subscription(subscription_id, request.new_price_id)


@router.patch(
    "/downgrade/{subscription_id}",
    response_model=DowngradeResult,
    summary="Schedule downgrade",
    responses=ERROR_RESPONSES,
)
def schedule_downgrade(
    subscription_id: str,
    request: ChangePriceRequest,
    engine: LifecycleEngine = Depends(get_lifecycle_engine),
) -> DowngradeResult:
    """Keep the current price until period end, then switch to the new one."""
    logger.info("downgrade_subscription_request", new_price_id=request.new_price_id)
    return engine.schedule_downgrade(subscription_id, request.new_price_id)


@router.patch(
    "/cancel/{subscription_id}",
    response_model=CancellationResult,
    summary="Cancel subscription",
    responses=ERROR_RESPONSES,
)
def cancel_subscription(
    subscription_id: str,
    engine: LifecycleEngine = Depends(get_lifecycle_engine),
) -> CancellationResult:
    """Cancel immediately and refund the unused part of the billing period."""
    logger.info("cancel_subscription_request")
    return engine.cancel_subscription(subscription_id)
