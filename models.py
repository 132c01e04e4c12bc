"""
models.py
Domain records (frozen dataclasses) + status/unit constants.
"""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal

# Gym statuses
PENDING = "pending"
ACTIVE = "active"
INACTIVE = "inactive"
GYM_STATUSES = (PENDING, ACTIVE, INACTIVE)

# Commission statuses
COMMISSION_PENDING = "pending"
COMMISSION_PAID = "paid"

PAYMENT_COMPLETED = "completed"

DURATION_UNITS = ("days", "months")


def _date(value: str | None) -> date | None:
    return date.fromisoformat(value) if value else None


def _datetime(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


@dataclass(frozen=True)
class Plan:
    id: int
    name: str
    price: Decimal
    duration_value: int
    duration_unit: str  # 'days' or 'months'
    gym_limit: str | None  # None = unlimited

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "Plan":
        return cls(
            id=row["id"],
            name=row["name"],
            price=Decimal(row["price"]),
            duration_value=row["duration_value"],
            duration_unit=row["duration_unit"],
            gym_limit=row["gym_limit"],
        )

    @property
    def duration_label(self) -> str:
        unit = self.duration_unit if self.duration_value != 1 else self.duration_unit[:-1]
        return f"{self.duration_value} {unit}"


@dataclass(frozen=True)
class Agent:
    id: int
    name: str
    email: str | None
    phone: str | None
    commission_rate: Decimal  # percentage 0-100
    user_id: str | None

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "Agent":
        return cls(
            id=row["id"],
            name=row["name"],
            email=row["email"],
            phone=row["phone"],
            commission_rate=Decimal(row["commission_rate"]),
            user_id=row["user_id"],
        )


@dataclass(frozen=True)
class Gym:
    id: int
    name: str
    owner_name: str
    plan_id: int
    agent_id: int | None
    status: str
    start_date: date | None
    end_date: date | None
    version: int

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "Gym":
        return cls(
            id=row["id"],
            name=row["name"],
            owner_name=row["owner_name"],
            plan_id=row["plan_id"],
            agent_id=row["agent_id"],
            status=row["status"],
            start_date=_date(row["start_date"]),
            end_date=_date(row["end_date"]),
            version=row["version"],
        )

    def is_lapsed(self, today: date) -> bool:
        return self.end_date is not None and self.end_date < today


@dataclass(frozen=True)
class Payment:
    id: int
    gym_id: int
    plan_id: int
    amount: Decimal
    method: str
    transaction_ref: str | None
    status: str  # always 'completed'
    paid_at: datetime
    notes: str | None

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "Payment":
        return cls(
            id=row["id"],
            gym_id=row["gym_id"],
            plan_id=row["plan_id"],
            amount=Decimal(row["amount"]),
            method=row["method"],
            transaction_ref=row["transaction_ref"],
            status=row["status"],
            paid_at=_datetime(row["paid_at"]),
            notes=row["notes"],
        )


@dataclass(frozen=True)
class Commission:
    id: int
    agent_id: int
    gym_id: int
    payment_id: int
    amount: Decimal
    rate: Decimal  # rate snapshotted at accrual
    status: str  # 'pending' or 'paid'
    created_at: datetime
    paid_at: datetime | None
    payout_id: int | None

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "Commission":
        return cls(
            id=row["id"],
            agent_id=row["agent_id"],
            gym_id=row["gym_id"],
            payment_id=row["payment_id"],
            amount=Decimal(row["amount"]),
            rate=Decimal(row["rate"]),
            status=row["status"],
            created_at=_datetime(row["created_at"]),
            paid_at=_datetime(row["paid_at"]),
            payout_id=row["payout_id"],
        )


@dataclass(frozen=True)
class Payout:
    id: int
    agent_id: int
    amount: Decimal
    commission_count: int
    created_at: datetime

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "Payout":
        return cls(
            id=row["id"],
            agent_id=row["agent_id"],
            amount=Decimal(row["amount"]),
            commission_count=row["commission_count"],
            created_at=_datetime(row["created_at"]),
        )


@dataclass(frozen=True)
class MetricsSnapshot:
    mrr: Decimal
    active_count: int
    annual_projection: Decimal


@dataclass(frozen=True)
class AgentSummary:
    agent_id: int
    active_gyms: int
    attributed_mrr: Decimal
    estimated_commission: Decimal  # monthly, at the agent's current rate
    lifetime_earned: Decimal
    pending_balance: Decimal
