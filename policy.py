"""
policy.py
Commission policy: sales agents and their commission rate.
The rate is read at accrual time and copied onto the commission, so later rate
changes never touch existing commissions (pending or paid).
"""

from __future__ import annotations

import logging
from dataclasses import replace
from decimal import Decimal

import utils
from errors import NotFound, ValidationError
from models import Agent
from store import BillingStore

logger = logging.getLogger(__name__)

DEFAULT_COMMISSION_RATE = Decimal("20")


class CommissionPolicy:
    def __init__(self, store: BillingStore):
        self.store = store

    def create_agent(self, name: str, email: str | None = None, phone: str | None = None,
                     commission_rate=DEFAULT_COMMISSION_RATE, user_id: str | None = None) -> Agent:
        errors = utils.validate_agent_inputs(name, commission_rate)
        if errors:
            raise ValidationError(errors)
        with self.store.db.transaction() as conn:
            agent_id = self.store.insert_agent(
                conn, name.strip(), (email or "").strip() or None, (phone or "").strip() or None,
                utils.to_decimal(commission_rate), user_id,
            )
            agent = self.store.get_agent(agent_id, conn)
        logger.info("Created agent %s at %s%%", agent.id, agent.commission_rate)
        return agent

    def update_agent(self, agent_id: int, **changes) -> Agent:
        agent = self.get_agent(agent_id)
        allowed = {"name", "email", "phone", "commission_rate", "user_id"}
        unknown = set(changes) - allowed
        if unknown:
            raise ValidationError([f"Unknown agent field(s): {', '.join(sorted(unknown))}."])

        updated = replace(agent, **changes)
        errors = utils.validate_agent_inputs(updated.name, updated.commission_rate)
        if errors:
            raise ValidationError(errors)
        updated = replace(updated, commission_rate=utils.to_decimal(updated.commission_rate))
        with self.store.db.transaction() as conn:
            self.store.update_agent(conn, updated)
        if updated.commission_rate != agent.commission_rate:
            logger.info(
                "Agent %s rate %s%% -> %s%% (future accruals only)",
                agent_id, agent.commission_rate, updated.commission_rate,
            )
        return updated

    def get_agent(self, agent_id: int) -> Agent:
        agent = self.store.get_agent(agent_id)
        if agent is None:
            raise NotFound("Agent", agent_id)
        return agent

    def list_agents(self) -> list[Agent]:
        return self.store.list_agents()

    def resolve_rate(self, agent_id: int, conn=None) -> Decimal:
        agent = self.store.get_agent(agent_id, conn)
        if agent is None:
            raise NotFound("Agent", agent_id)
        return agent.commission_rate
