"""Processor webhook endpoint.

POST /webhook/stripe takes the raw body (signatures are computed over the
exact bytes) and the Stripe-Signature header.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Header, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from subscription_manager.exceptions import InvalidSignatureError
from subscription_manager.logging_config import get_logger
from subscription_manager.models import ErrorResponse, WebhookOutcome
from subscription_manager.services.event_router import EventRouter, get_event_router

logger = get_logger(__name__)
router = APIRouter(tags=["Webhooks"], prefix="/webhook")


@router.post(
    "/stripe",
    response_model=WebhookOutcome,
    summary="Receive processor events",
    responses={
        400: {"model": ErrorResponse, "description": "Invalid signature"},
        500: {"model": ErrorResponse, "description": "Handler failed; sender should retry"},
    },
)
async def receive_stripe_event(
    request: Request,
    stripe_signature: Optional[str] = Header(None, alias="Stripe-Signature"),
    event_router: EventRouter = Depends(get_event_router),
):
    """Verify, deduplicate and apply one webhook delivery.

    Duplicates are acknowledged with 200 so the processor stops retrying.
    """
    payload = await request.body()
    try:
        return await run_in_threadpool(event_router.handle, payload, stripe_signature)
    except InvalidSignatureError:
        logger.warning("webhook_signature_rejected")
        raise
    except Exception as e:
        return JSONResponse(
            status_code=500,
            content={"error": "webhook_handler_failed", "message": str(e)},
        )
