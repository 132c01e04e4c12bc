"""
commissions.py
Commission accrual (one pending commission per agent-attributed payment) and
agent payouts (bulk pending -> paid).
"""

from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal

import utils
from audit import AuditSink, publish
from errors import ConcurrencyConflict
from locks import KeyedLocks
from models import COMMISSION_PENDING, Commission, Payment, Payout
from policy import CommissionPolicy
from store import BillingStore

logger = logging.getLogger(__name__)


class CommissionAccrual:
    def __init__(self, store: BillingStore, policy: CommissionPolicy,
                 agent_locks: KeyedLocks | None = None, sink: AuditSink | None = None):
        self.store = store
        self.policy = policy
        self.agent_locks = agent_locks or KeyedLocks("agent")
        self.sink = sink

    def accrue_from_payment(self, conn, payment: Payment, gym_agent_id: int | None,
                            agent_commission_rate: Decimal | None) -> Commission | None:
        """
        Must run inside the transaction that inserted `payment` (and under the agent's lock),
        so the payment and its commission are committed or discarded together.
        Direct sales (no agent) accrue nothing.
        """
        if gym_agent_id is None:
            return None
        rate = utils.to_decimal(agent_commission_rate)
        commission = self.store.insert_commission(
            conn,
            agent_id=gym_agent_id,
            gym_id=payment.gym_id,
            payment_id=payment.id,
            amount=utils.commission_amount(payment.amount, rate),
            rate=rate,
            created_at=payment.paid_at,
        )
        logger.info(
            "Accrued commission %s for agent %s: %s (%s%% of payment %s)",
            commission.id, gym_agent_id, commission.amount, rate, payment.id,
        )
        return commission

    def payout_agent(self, agent_id: int, now: datetime | None = None) -> Payout | None:
        """
        Settle everything pending for the agent as of now. Returns None when nothing
        is pending (repeat calls are no-ops). Commissions accrued after the snapshot
        stay pending for the next payout.
        """
        self.policy.get_agent(agent_id)
        now = now or datetime.now()

        with self.agent_locks.hold(agent_id):
            with self.store.db.transaction() as conn:
                pending = self.store.list_commissions(agent_id, COMMISSION_PENDING, conn)
                if not pending:
                    logger.info("Payout for agent %s: nothing pending", agent_id)
                    return None
                total = sum((c.amount for c in pending), Decimal("0"))
                payout_id = self.store.insert_payout(conn, agent_id, total, len(pending), now)
                flipped = self.store.mark_commissions_paid(conn, [c.id for c in pending], payout_id, now)
                if flipped != len(pending):
                    raise ConcurrencyConflict(
                        f"Agent {agent_id} commissions changed during payout; retry the operation."
                    )
                payout = self.store.get_payout(payout_id, conn)

        logger.info("Paid out %s to agent %s (%s commissions)", total, agent_id, len(pending))
        publish(self.sink, "payout.completed", agent_id=agent_id, payout_id=payout.id,
                amount=payout.amount, commissions=payout.commission_count)
        return payout

    # ---------- Derived views ----------

    def commission_history(self, agent_id: int) -> list[Commission]:
        self.policy.get_agent(agent_id)
        return self.store.list_commissions(agent_id)

    def pending_balance(self, agent_id: int) -> Decimal:
        self.policy.get_agent(agent_id)
        pending = self.store.list_commissions(agent_id, COMMISSION_PENDING)
        return sum((c.amount for c in pending), Decimal("0"))

    def lifetime_earned(self, agent_id: int) -> Decimal:
        return sum((c.amount for c in self.commission_history(agent_id)), Decimal("0"))

    def payouts(self, agent_id: int) -> list[Payout]:
        self.policy.get_agent(agent_id)
        return self.store.list_payouts(agent_id)
