"""
metrics.py
Read-only rollups over current gym + plan state, recomputed on every call.
"""

from __future__ import annotations

from decimal import Decimal

import utils
from commissions import CommissionAccrual
from models import ACTIVE, AgentSummary, MetricsSnapshot
from store import BillingStore

MONTHS_PER_YEAR = 12


class MetricsAggregator:
    def __init__(self, store: BillingStore, accrual: CommissionAccrual):
        self.store = store
        self.accrual = accrual

    def _active_mrr(self, agent_id: int | None = None) -> tuple[Decimal, int]:
        # Current plan price, not the amount actually paid
        prices = {p.id: p.price for p in self.store.list_plans()}
        active = self.store.list_gyms(status=ACTIVE, agent_id=agent_id)
        mrr = sum((prices.get(g.plan_id, Decimal("0")) for g in active), Decimal("0"))
        return mrr, len(active)

    def snapshot(self) -> MetricsSnapshot:
        mrr, active_count = self._active_mrr()
        return MetricsSnapshot(
            mrr=mrr,
            active_count=active_count,
            annual_projection=mrr * MONTHS_PER_YEAR,
        )

    def agent_summary(self, agent_id: int) -> AgentSummary:
        agent = self.accrual.policy.get_agent(agent_id)
        mrr, active_count = self._active_mrr(agent_id)
        return AgentSummary(
            agent_id=agent_id,
            active_gyms=active_count,
            attributed_mrr=mrr,
            estimated_commission=utils.commission_amount(mrr, agent.commission_rate),
            lifetime_earned=self.accrual.lifetime_earned(agent_id),
            pending_balance=self.accrual.pending_balance(agent_id),
        )
