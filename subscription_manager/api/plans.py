"""Plan catalog API.

Implements:
- GET /plan - List mirrored plans
- GET /plan/{id} - Get plan by local id or processor price id
- POST /plan/sync - Pull all prices from the processor
"""

from fastapi import APIRouter, Depends, Query

from subscription_manager.logging_config import get_logger
from subscription_manager.models import ErrorResponse, PlanRecord
from subscription_manager.services.plan_catalog import PlanCatalog, get_plan_catalog

logger = get_logger(__name__)
router = APIRouter(tags=["Plans"], prefix="/plan")


@router.get("", response_model=list[PlanRecord], summary="List plans")
def list_plans(
    active_only: bool = Query(False),
    catalog: PlanCatalog = Depends(get_plan_catalog),
) -> list[PlanRecord]:
    return catalog.list_plans(active_only=active_only)


@router.post(
    "/sync",
    response_model=list[PlanRecord],
    summary="Sync plans from processor",
    responses={502: {"model": ErrorResponse}},
)
def sync_plans(catalog: PlanCatalog = Depends(get_plan_catalog)) -> list[PlanRecord]:
    logger.info("plan_sync_request")
    return catalog.sync_from_processor()


@router.get(
    "/{plan_id}",
    response_model=PlanRecord,
    summary="Get plan",
    responses={404: {"model": ErrorResponse}},
)
def get_plan(plan_id: str, catalog: PlanCatalog = Depends(get_plan_catalog)) -> PlanRecord:
    return catalog.get_plan(plan_id)
