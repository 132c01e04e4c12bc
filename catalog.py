"""
catalog.py
Plan catalog: name, price, duration, optional gym limit.
Edits only affect future payments; recorded payments keep their own amount/plan id.
"""

from __future__ import annotations

import logging
from dataclasses import replace

import utils
from errors import NotFound, ValidationError
from models import Plan
from store import BillingStore

logger = logging.getLogger(__name__)


class PlanCatalog:
    def __init__(self, store: BillingStore):
        self.store = store

    def create_plan(self, name: str, price, duration_value: int = 30,
                    duration_unit: str = "days", gym_limit: str | None = None) -> Plan:
        errors = utils.validate_plan_inputs(name, price, duration_value, duration_unit)
        if errors:
            raise ValidationError(errors)
        with self.store.db.transaction() as conn:
            plan_id = self.store.insert_plan(
                conn, name.strip(), utils.to_decimal(price), duration_value, duration_unit,
                (gym_limit or "").strip() or None,
            )
            plan = self.store.get_plan(plan_id, conn)
        logger.info("Created plan %s (%s, %s)", plan.id, plan.price, plan.duration_label)
        return plan

    def update_plan(self, plan_id: int, **changes) -> Plan:
        plan = self.get_plan(plan_id)
        allowed = {"name", "price", "duration_value", "duration_unit", "gym_limit"}
        unknown = set(changes) - allowed
        if unknown:
            raise ValidationError([f"Unknown plan field(s): {', '.join(sorted(unknown))}."])

        updated = replace(plan, **changes)
        errors = utils.validate_plan_inputs(
            updated.name, updated.price, updated.duration_value, updated.duration_unit
        )
        if errors:
            raise ValidationError(errors)
        updated = replace(
            updated,
            name=updated.name.strip(),
            price=utils.to_decimal(updated.price),
            gym_limit=(updated.gym_limit or "").strip() or None,
        )
        with self.store.db.transaction() as conn:
            self.store.update_plan(conn, updated)
        logger.info("Updated plan %s: %s", plan_id, ", ".join(sorted(changes)))
        return updated

    def get_plan(self, plan_id: int) -> Plan:
        plan = self.store.get_plan(plan_id)
        if plan is None:
            raise NotFound("Plan", plan_id)
        return plan

    def list_plans(self) -> list[Plan]:
        return self.store.list_plans()
