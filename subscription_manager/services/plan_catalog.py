"""Plan catalog - local mirror of processor products and prices.

Kept current by product/price webhooks and by an on-demand full sync.
"""

import threading
from typing import Any, Optional

from subscription_manager.logging_config import get_logger
from subscription_manager.models.catalog import PlanRecord
from subscription_manager.models.processor import RemotePrice, RemoteProduct, expanded, reference_id
from subscription_manager.repositories.plan_store import PlanStore, get_plan_store
from subscription_manager.services.payment_processor import PaymentProcessor, get_payment_processor

logger = get_logger(__name__)


def _price_fields(price: RemotePrice) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "product_id": reference_id(price.product),
        "amount": price.unit_amount,
        "currency": price.currency,
        "type": price.type,
        "interval": price.recurring.interval if price.recurring else None,
        "trial_period_days": price.recurring.trial_period_days if price.recurring else None,
        "active": price.active,
    }
    product = expanded(price.product)
    if product is not None:
        fields.update(
            {
                "name": product.name,
                "description": product.description,
                "active": price.active and product.active,
            }
        )
    return fields


class PlanCatalog:
    """Applies product and price changes to the plan store."""

    def __init__(
        self,
        processor: Optional[PaymentProcessor] = None,
        store: Optional[PlanStore] = None,
    ):
        self._processor = processor
        self._store = store or get_plan_store()

    @property
    def processor(self) -> PaymentProcessor:
        if self._processor is None:
            self._processor = get_payment_processor()
        return self._processor

    def apply_product(self, product: RemoteProduct) -> list[PlanRecord]:
        """Mirror a created or updated product onto its plans.

        A product seen before any of its prices gets a placeholder plan that
        the first price fills in.
        """
        if product.deleted:
            return self.deactivate_product(product.id)

        fields = {"name": product.name, "description": product.description, "active": product.active}
        plans = self._store.update_product_fields(product.id, fields)
        if not plans:
            plans = [self._store.add({**fields, "product_id": product.id})]
        logger.info("product_mirrored", product_id=product.id, plan_count=len(plans))
        return plans

    def deactivate_product(self, product_id: str) -> list[PlanRecord]:
        plans = self._store.deactivate_by_product_id(product_id)
        logger.info("product_deactivated", product_id=product_id, plan_count=len(plans))
        return plans

    def apply_price(self, price: RemotePrice) -> Optional[PlanRecord]:
        """Mirror a created or updated price as a plan."""
        if price.deleted:
            return self.deactivate_price(price.id)

        fields = _price_fields(price)
        if self._store.find_by_price_id(price.id) is None:
            placeholder = next(
                (p for p in self._store.find_by_product_id(fields["product_id"]) if p.price_id is None),
                None,
            )
            if placeholder is not None:
                plan = self._store.update(placeholder.id, {**fields, "price_id": price.id})
                logger.info("price_linked_to_product", price_id=price.id, plan_id=placeholder.id)
                return plan

        plan = self._store.upsert_by_price_id(price.id, fields)
        logger.info("price_mirrored", price_id=price.id, plan_id=plan.id, active=plan.active)
        return plan

    def deactivate_price(self, price_id: str) -> Optional[PlanRecord]:
        plan = self._store.find_by_price_id(price_id)
        if plan is None:
            logger.warning("price_not_mirrored", price_id=price_id)
            return None
        logger.info("price_deactivated", price_id=price_id, plan_id=plan.id)
        return self._store.update(plan.id, {"active": False})

    def sync_from_processor(self) -> list[PlanRecord]:
        """Pull every price (with its product) from the processor.

        Returns:
            The mirrored plans
        """
        prices = self.processor.list_prices()
        plans = [self.apply_price(price) for price in prices]
        logger.info("plans_synced", count=len(plans))
        return [plan for plan in plans if plan is not None]

    def list_plans(self, active_only: bool = False) -> list[PlanRecord]:
        return self._store.get_all(active_only=active_only)

    def get_plan(self, plan_id: str) -> PlanRecord:
        """Get a plan by local id or processor price id.

        Raises:
            NotFoundError: If neither id matches
        """
        plan = self._store.find_by_price_id(plan_id)
        if plan is not None:
            return plan
        return self._store.get_by_id(plan_id)


_catalog_instance: Optional[PlanCatalog] = None
_catalog_lock = threading.Lock()


def get_plan_catalog() -> PlanCatalog:
    """Get global plan catalog instance (singleton)."""
    global _catalog_instance
    if _catalog_instance is None:
        with _catalog_lock:
            if _catalog_instance is None:
                _catalog_instance = PlanCatalog()
    return _catalog_instance


def reset_plan_catalog() -> None:
    global _catalog_instance
    with _catalog_lock:
        _catalog_instance = None
