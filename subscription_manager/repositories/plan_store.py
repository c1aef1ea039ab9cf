"""Plan store - in-memory mirror of processor prices and their products."""

import threading
import uuid
from typing import Any, Dict, List, Optional

from subscription_manager.exceptions import NotFoundError
from subscription_manager.models.catalog import PlanRecord


class PlanStore:
    """Thread-safe plan storage keyed by processor price id."""

    def __init__(self):
        self._plans: Dict[str, PlanRecord] = {}
        self._lock = threading.RLock()

    def upsert_by_price_id(self, price_id: str, fields: Dict[str, Any]) -> PlanRecord:
        """Insert or update the plan for a processor price.

        Args:
            price_id: Processor price id (match key)
            fields: Plan fields; must include product_id on insert

        Returns:
            The stored PlanRecord
        """
        with self._lock:
            current = self._find_by_price_id(price_id)
            if current is not None:
                updated = current.model_copy(update=fields)
            else:
                updated = PlanRecord(**{**fields, "id": uuid.uuid4().hex, "price_id": price_id})
            self._plans[updated.id] = updated
            return updated

    def add(self, fields: Dict[str, Any]) -> PlanRecord:
        """Insert a plan that has no price yet (product created before its price)."""
        with self._lock:
            plan = PlanRecord(**{**fields, "id": uuid.uuid4().hex})
            self._plans[plan.id] = plan
            return plan

    def update(self, plan_id: str, fields: Dict[str, Any]) -> Optional[PlanRecord]:
        with self._lock:
            current = self._plans.get(plan_id)
            if current is None:
                return None
            updated = current.model_copy(update=fields)
            self._plans[plan_id] = updated
            return updated

    def deactivate_by_product_id(self, product_id: str) -> List[PlanRecord]:
        """Mark every plan of a product inactive.

        Returns:
            The plans that were updated
        """
        with self._lock:
            updated = []
            for plan in list(self._plans.values()):
                if plan.product_id == product_id:
                    plan = plan.model_copy(update={"active": False})
                    self._plans[plan.id] = plan
                    updated.append(plan)
            return updated

    def update_product_fields(self, product_id: str, fields: Dict[str, Any]) -> List[PlanRecord]:
        """Apply product-level fields (name, description, active) to all its plans."""
        with self._lock:
            updated = []
            for plan in list(self._plans.values()):
                if plan.product_id == product_id:
                    plan = plan.model_copy(update=fields)
                    self._plans[plan.id] = plan
                    updated.append(plan)
            return updated

    def _find_by_price_id(self, price_id: str) -> Optional[PlanRecord]:
        for plan in self._plans.values():
            if plan.price_id == price_id:
                return plan
        return None

    def find_by_price_id(self, price_id: str) -> Optional[PlanRecord]:
        with self._lock:
            return self._find_by_price_id(price_id)

    def find_by_product_id(self, product_id: str) -> List[PlanRecord]:
        with self._lock:
            return [p for p in self._plans.values() if p.product_id == product_id]

    def get_by_id(self, plan_id: str) -> PlanRecord:
        """Get plan by local id.

        Raises:
            NotFoundError: If id not found
        """
        with self._lock:
            plan = self._plans.get(plan_id)
            if plan is None:
                raise NotFoundError(f"Plan not found: {plan_id}")
            return plan

    def get_all(self, active_only: bool = False) -> List[PlanRecord]:
        with self._lock:
            plans = list(self._plans.values())
        if active_only:
            plans = [p for p in plans if p.active]
        return plans

    def count(self) -> int:
        with self._lock:
            return len(self._plans)

    def clear(self) -> None:
        with self._lock:
            self._plans.clear()

    def __len__(self) -> int:
        return self.count()


_store_instance: Optional[PlanStore] = None
_store_lock = threading.Lock()


def get_plan_store() -> PlanStore:
    """Get global plan store instance (singleton)."""
    global _store_instance
    if _store_instance is None:
        with _store_lock:
            if _store_instance is None:
                _store_instance = PlanStore()
    return _store_instance


def reset_plan_store() -> None:
    get_plan_store().clear()
