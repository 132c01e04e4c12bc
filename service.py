"""
service.py
BillingService: wires catalog, policy, ledger, accrual and metrics over one database.
This is the surface the admin console (and any other client) calls.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from decimal import Decimal
from pathlib import Path

import pandas as pd

import utils
from audit import AuditSink, LoggingAuditSink
from catalog import PlanCatalog
from commissions import CommissionAccrual
from db import Database
from ledger import SubscriptionLedger
from locks import KeyedLocks
from metrics import MetricsAggregator
from models import AgentSummary, Commission, Gym, MetricsSnapshot, Payment, Payout
from policy import CommissionPolicy
from store import BillingStore

logger = logging.getLogger(__name__)


class BillingService:
    def __init__(self, db: Database | None = None, sink: AuditSink | None = None,
                 lock_timeout: float | None = None):
        self.db = db or Database()
        self.store = BillingStore(self.db)
        sink = sink if sink is not None else LoggingAuditSink()
        self.catalog = PlanCatalog(self.store)
        self.policy = CommissionPolicy(self.store)
        self.accrual = CommissionAccrual(
            self.store, self.policy, KeyedLocks("agent", lock_timeout), sink
        )
        self.ledger = SubscriptionLedger(self.store, self.accrual, KeyedLocks("gym", lock_timeout), sink)
        self.metrics = MetricsAggregator(self.store, self.accrual)

    @classmethod
    def open(cls, db_file: Path | str | None = None, sink: AuditSink | None = None) -> "BillingService":
        db = Database(db_file)
        db.init_db()
        return cls(db, sink=sink)

    # ---------- Subscription ledger ----------

    def create_pending(self, gym_name: str, owner: str, plan_id: int, agent_id: int | None = None) -> Gym:
        return self.ledger.create_pending(gym_name, owner, plan_id, agent_id)

    def apply_payment(self, gym_id: int, plan_id: int, amount=None, method: str = "cash",
                      transaction_ref: str | None = None, notes: str | None = None,
                      now: datetime | None = None) -> tuple[Gym, Payment]:
        return self.ledger.apply_payment(gym_id, plan_id, amount, method, transaction_ref, notes, now)

    def set_status(self, gym_id: int, status: str, now: datetime | None = None) -> Gym:
        return self.ledger.set_status(gym_id, status, now)

    def update_gym(self, gym_id: int, **changes) -> Gym:
        return self.ledger.update_gym(gym_id, **changes)

    def expire_lapsed(self, now: datetime | None = None) -> list[Gym]:
        return self.ledger.expire_lapsed(now)

    def get_gym(self, gym_id: int) -> Gym:
        return self.ledger.get_gym(gym_id)

    def list_gyms(self, status: str | None = None, agent_id: int | None = None) -> list[Gym]:
        return self.ledger.list_gyms(status, agent_id)

    def payment_history(self, gym_id: int) -> list[Payment]:
        return self.ledger.payment_history(gym_id)

    def list_payments(self) -> list[Payment]:
        return self.ledger.list_payments()

    def expiring_soon(self, days: int | None = None, now: datetime | None = None) -> list[Gym]:
        return self.ledger.expiring_soon(days, now)

    # ---------- Commissions ----------

    def payout_agent(self, agent_id: int, now: datetime | None = None) -> Payout | None:
        return self.accrual.payout_agent(agent_id, now)

    def commission_history(self, agent_id: int) -> list[Commission]:
        return self.accrual.commission_history(agent_id)

    def commission_for_payment(self, payment_id: int) -> Commission | None:
        return self.store.get_commission_for_payment(payment_id)

    def pending_balance(self, agent_id: int) -> Decimal:
        return self.accrual.pending_balance(agent_id)

    def lifetime_earned(self, agent_id: int) -> Decimal:
        return self.accrual.lifetime_earned(agent_id)

    def payouts(self, agent_id: int) -> list[Payout]:
        return self.accrual.payouts(agent_id)

    # ---------- Metrics / reports ----------

    def metrics_snapshot(self) -> MetricsSnapshot:
        return self.metrics.snapshot()

    def agent_summary(self, agent_id: int) -> AgentSummary:
        return self.metrics.agent_summary(agent_id)

    def revenue_by_month(self) -> pd.DataFrame:
        return utils.revenue_summary_by_month(self.list_payments())

    def export_csv(self, kind: str) -> bytes:
        sources = {
            "gyms": self.list_gyms,
            "payments": self.list_payments,
            "commissions": lambda: self.store.list_commissions(),
        }
        if kind not in sources:
            raise ValueError(f"Unknown export: {kind}")
        return utils.records_to_csv_bytes(sources[kind]())

    def insert_sample_data(self, now: datetime | None = None) -> list[Gym]:
        """
        Seed 2 plans, 1 agent and 3 gyms through the public operations
        (adds new rows each run).
        """
        now = now or datetime.now()
        monthly = self.catalog.create_plan("Starter", Decimal("100000"), 1, "months", "200 members")
        yearly = self.catalog.create_plan("Pro Annual", Decimal("1000000"), 12, "months")
        agent = self.policy.create_agent("Laura Gomez", "laura@example.com", "3000000001", Decimal("20"))

        # Gym 1: referred, active, renewed once
        g1 = self.create_pending("Iron Temple", "Carlos Ruiz", monthly.id, agent.id)
        self.apply_payment(g1.id, monthly.id, method="card", now=now - timedelta(days=25),
                           notes="Sample payment")
        self.apply_payment(g1.id, monthly.id, method="card", now=now, notes="Sample renewal")

        # Gym 2: direct sale, yearly plan
        g2 = self.create_pending("Pulse Fitness", "Mona Ali", yearly.id)
        self.apply_payment(g2.id, yearly.id, method="transfer", now=now, notes="Annual plan paid")

        # Gym 3: still waiting for its first payment
        g3 = self.create_pending("Core Studio", "Omar Samy", monthly.id, agent.id)

        logger.info("Inserted sample data (gyms %s, %s, %s)", g1.id, g2.id, g3.id)
        return [self.get_gym(g1.id), self.get_gym(g2.id), self.get_gym(g3.id)]
