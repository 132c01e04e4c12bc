"""
store.py
Data store: typed CRUD over plans, agents, gyms, payments, commissions and payouts.

Write methods take the connection of an open `Database.transaction()` so a caller can
group several records into one atomic write. Read methods use that connection when
given (to see uncommitted rows of the same transaction) or open their own.
"""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from datetime import date, datetime
from decimal import Decimal

from db import Database, now_iso
from errors import ConcurrencyConflict
from models import (
    COMMISSION_PAID,
    COMMISSION_PENDING,
    PAYMENT_COMPLETED,
    PENDING,
    Agent,
    Commission,
    Gym,
    Payment,
    Payout,
    Plan,
)


def _iso(value: date | datetime | None) -> str | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.isoformat(timespec="seconds")
    return value.isoformat()


class BillingStore:
    def __init__(self, db: Database):
        self.db = db

    @contextmanager
    def _reader(self, conn: sqlite3.Connection | None):
        if conn is not None:
            yield conn
        else:
            with self.db.get_conn() as own:
                yield own

    def _one(self, sql: str, params: tuple, conn=None):
        with self._reader(conn) as c:
            return c.execute(sql, params).fetchone()

    def _all(self, sql: str, params: tuple = (), conn=None) -> list[sqlite3.Row]:
        with self._reader(conn) as c:
            return c.execute(sql, params).fetchall()

    # ---------- Plans ----------

    def insert_plan(self, conn, name: str, price: Decimal, duration_value: int,
                    duration_unit: str, gym_limit: str | None) -> int:
        cur = conn.execute(
            """
            INSERT INTO plans(name, price, duration_value, duration_unit, gym_limit, created_at)
            VALUES(?,?,?,?,?,?)
            """,
            (name, str(price), duration_value, duration_unit, gym_limit, now_iso()),
        )
        return cur.lastrowid

    def update_plan(self, conn, plan: Plan) -> None:
        conn.execute(
            """
            UPDATE plans SET name=?, price=?, duration_value=?, duration_unit=?, gym_limit=?
            WHERE id=?
            """,
            (plan.name, str(plan.price), plan.duration_value, plan.duration_unit,
             plan.gym_limit, plan.id),
        )

    def get_plan(self, plan_id: int, conn=None) -> Plan | None:
        row = self._one("SELECT * FROM plans WHERE id = ?", (plan_id,), conn)
        return Plan.from_row(row) if row else None

    def list_plans(self) -> list[Plan]:
        rows = self._all("SELECT * FROM plans")
        return sorted((Plan.from_row(r) for r in rows), key=lambda p: (p.price, p.id))

    # ---------- Agents ----------

    def insert_agent(self, conn, name: str, email: str | None, phone: str | None,
                     commission_rate: Decimal, user_id: str | None) -> int:
        cur = conn.execute(
            """
            INSERT INTO agents(name, email, phone, commission_rate, user_id, created_at)
            VALUES(?,?,?,?,?,?)
            """,
            (name, email, phone, str(commission_rate), user_id, now_iso()),
        )
        return cur.lastrowid

    def update_agent(self, conn, agent: Agent) -> None:
        conn.execute(
            "UPDATE agents SET name=?, email=?, phone=?, commission_rate=?, user_id=? WHERE id=?",
            (agent.name, agent.email, agent.phone, str(agent.commission_rate), agent.user_id, agent.id),
        )

    def get_agent(self, agent_id: int, conn=None) -> Agent | None:
        row = self._one("SELECT * FROM agents WHERE id = ?", (agent_id,), conn)
        return Agent.from_row(row) if row else None

    def list_agents(self) -> list[Agent]:
        return [Agent.from_row(r) for r in self._all("SELECT * FROM agents ORDER BY id DESC")]

    # ---------- Gyms ----------

    def insert_gym(self, conn, name: str, owner_name: str, plan_id: int, agent_id: int | None) -> int:
        cur = conn.execute(
            """
            INSERT INTO gyms(name, owner_name, plan_id, agent_id, status, start_date, end_date, version, created_at)
            VALUES(?,?,?,?,?,NULL,NULL,0,?)
            """,
            (name, owner_name, plan_id, agent_id, PENDING, now_iso()),
        )
        return cur.lastrowid

    def get_gym(self, gym_id: int, conn=None) -> Gym | None:
        row = self._one("SELECT * FROM gyms WHERE id = ?", (gym_id,), conn)
        return Gym.from_row(row) if row else None

    def list_gyms(self, status: str | None = None, agent_id: int | None = None, conn=None) -> list[Gym]:
        sql = "SELECT * FROM gyms WHERE 1=1"
        params: list = []
        if status is not None:
            sql += " AND status = ?"
            params.append(status)
        if agent_id is not None:
            sql += " AND agent_id = ?"
            params.append(agent_id)
        sql += " ORDER BY id DESC"
        return [Gym.from_row(r) for r in self._all(sql, tuple(params), conn)]

    def save_gym(self, conn, gym: Gym) -> Gym:
        """
        Conditional write: succeeds only if the row still carries `gym.version`.
        Returns the stored gym with its bumped version.
        """
        cur = conn.execute(
            """
            UPDATE gyms
            SET name=?, owner_name=?, plan_id=?, agent_id=?, status=?, start_date=?, end_date=?,
                version = version + 1
            WHERE id=? AND version=?
            """,
            (gym.name, gym.owner_name, gym.plan_id, gym.agent_id, gym.status,
             _iso(gym.start_date), _iso(gym.end_date), gym.id, gym.version),
        )
        if cur.rowcount != 1:
            raise ConcurrencyConflict(f"Gym {gym.id} was modified concurrently; retry the operation.")
        return self.get_gym(gym.id, conn)

    # ---------- Payments ----------

    def insert_payment(self, conn, gym_id: int, plan_id: int, amount: Decimal, method: str,
                       transaction_ref: str | None, paid_at: datetime, notes: str | None) -> Payment:
        cur = conn.execute(
            """
            INSERT INTO payments(gym_id, plan_id, amount, method, transaction_ref, status, paid_at, notes)
            VALUES(?,?,?,?,?,?,?,?)
            """,
            (gym_id, plan_id, str(amount), method, transaction_ref, PAYMENT_COMPLETED,
             _iso(paid_at), notes),
        )
        return self.get_payment(cur.lastrowid, conn)

    def get_payment(self, payment_id: int, conn=None) -> Payment | None:
        row = self._one("SELECT * FROM payments WHERE id = ?", (payment_id,), conn)
        return Payment.from_row(row) if row else None

    def list_payments(self, gym_id: int | None = None) -> list[Payment]:
        if gym_id is None:
            rows = self._all("SELECT * FROM payments ORDER BY paid_at DESC, id DESC")
        else:
            rows = self._all(
                "SELECT * FROM payments WHERE gym_id = ? ORDER BY paid_at DESC, id DESC", (gym_id,)
            )
        return [Payment.from_row(r) for r in rows]

    # ---------- Commissions ----------

    def insert_commission(self, conn, agent_id: int, gym_id: int, payment_id: int,
                          amount: Decimal, rate: Decimal, created_at: datetime) -> Commission:
        cur = conn.execute(
            """
            INSERT INTO commissions(agent_id, gym_id, payment_id, amount, rate, status, created_at)
            VALUES(?,?,?,?,?,?,?)
            """,
            (agent_id, gym_id, payment_id, str(amount), str(rate), COMMISSION_PENDING, _iso(created_at)),
        )
        row = self._one("SELECT * FROM commissions WHERE id = ?", (cur.lastrowid,), conn)
        return Commission.from_row(row)

    def get_commission_for_payment(self, payment_id: int) -> Commission | None:
        row = self._one("SELECT * FROM commissions WHERE payment_id = ?", (payment_id,))
        return Commission.from_row(row) if row else None

    def list_commissions(self, agent_id: int | None = None, status: str | None = None,
                         conn=None) -> list[Commission]:
        sql = "SELECT * FROM commissions WHERE 1=1"
        params: list = []
        if agent_id is not None:
            sql += " AND agent_id = ?"
            params.append(agent_id)
        if status is not None:
            sql += " AND status = ?"
            params.append(status)
        sql += " ORDER BY created_at DESC, id DESC"
        return [Commission.from_row(r) for r in self._all(sql, tuple(params), conn)]

    def mark_commissions_paid(self, conn, commission_ids: list[int], payout_id: int,
                              paid_at: datetime) -> int:
        if not commission_ids:
            return 0
        marks = ",".join("?" for _ in commission_ids)
        cur = conn.execute(
            f"""
            UPDATE commissions SET status=?, paid_at=?, payout_id=?
            WHERE status=? AND id IN ({marks})
            """,
            (COMMISSION_PAID, _iso(paid_at), payout_id, COMMISSION_PENDING, *commission_ids),
        )
        return cur.rowcount

    # ---------- Payouts ----------

    def insert_payout(self, conn, agent_id: int, amount: Decimal, commission_count: int,
                      created_at: datetime) -> int:
        cur = conn.execute(
            "INSERT INTO payouts(agent_id, amount, commission_count, created_at) VALUES(?,?,?,?)",
            (agent_id, str(amount), commission_count, _iso(created_at)),
        )
        return cur.lastrowid

    def get_payout(self, payout_id: int, conn=None) -> Payout | None:
        row = self._one("SELECT * FROM payouts WHERE id = ?", (payout_id,), conn)
        return Payout.from_row(row) if row else None

    def list_payouts(self, agent_id: int) -> list[Payout]:
        rows = self._all(
            "SELECT * FROM payouts WHERE agent_id = ? ORDER BY created_at DESC, id DESC", (agent_id,)
        )
        return [Payout.from_row(r) for r in rows]
