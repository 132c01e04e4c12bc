"""
utils.py
Dates, money, validation, exports.
"""

from __future__ import annotations

from dataclasses import asdict
from datetime import date, datetime, timedelta
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Iterable

import pandas as pd

import config
from models import DURATION_UNITS, GYM_STATUSES

_CENT = Decimal("0.01")
_HUNDRED = Decimal("100")


def as_date(value: date | datetime) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


def add_months(start: date, months: int) -> date:
    """
    Add months while keeping day in valid range (e.g., Jan 31 + 1 month => Feb 28/29).
    """
    y = start.year + (start.month - 1 + months) // 12
    m = (start.month - 1 + months) % 12 + 1
    # last day of target month
    if m == 12:
        next_month = date(y + 1, 1, 1)
    else:
        next_month = date(y, m + 1, 1)
    last_day = next_month - timedelta(days=1)
    day = min(start.day, last_day.day)
    return date(y, m, day)


def add_duration(start: date, value: int, unit: str) -> date:
    if unit == "months":
        return add_months(start, value)
    if unit == "days":
        return start + timedelta(days=value)
    raise ValueError(f"Unknown duration unit: {unit}")


def to_decimal(value) -> Decimal:
    if isinstance(value, float):
        value = str(value)
    d = value if isinstance(value, Decimal) else Decimal(value)
    # "1E+2" -> "100", so stored/exported amounts stay in plain notation
    if d.is_finite() and d.as_tuple().exponent > 0:
        d = Decimal(int(d))
    return d


def round_money(value: Decimal) -> Decimal:
    return value.quantize(_CENT, rounding=ROUND_HALF_UP)


def commission_amount(payment_amount: Decimal, rate: Decimal) -> Decimal:
    return round_money(payment_amount * rate / _HUNDRED)


def _parse_decimal(value) -> Decimal | None:
    try:
        d = to_decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        return None
    return d if d.is_finite() else None


def _money_error(value, label: str) -> str | None:
    d = _parse_decimal(value)
    if d is None or d <= 0:
        return f"{label} must be a positive number."
    if d > config.MAX_AMOUNT:
        return f"{label} must not exceed {config.MAX_AMOUNT:,}."
    return None


def validate_plan_inputs(name: str, price, duration_value, duration_unit: str) -> list[str]:
    errors: list[str] = []
    if not (name or "").strip():
        errors.append("Plan name is required.")
    price_error = _money_error(price, "Plan price")
    if price_error:
        errors.append(price_error)
    if not isinstance(duration_value, int) or isinstance(duration_value, bool) or duration_value <= 0:
        errors.append("Duration must be a positive whole number.")
    if duration_unit not in DURATION_UNITS:
        errors.append(f"Duration unit must be one of {', '.join(DURATION_UNITS)}.")
    return errors


def validate_agent_inputs(name: str, commission_rate) -> list[str]:
    errors: list[str] = []
    if not (name or "").strip():
        errors.append("Agent name is required.")
    rate = _parse_decimal(commission_rate)
    if rate is None or not (0 <= rate <= 100):
        errors.append("Commission rate must be between 0 and 100.")
    return errors


def validate_gym_inputs(name: str, owner_name: str) -> list[str]:
    errors: list[str] = []
    if not (name or "").strip():
        errors.append("Gym name is required.")
    if not (owner_name or "").strip():
        errors.append("Owner name is required.")
    return errors


def validate_payment_inputs(amount, method: str) -> list[str]:
    # Amount is not tied to the plan price (discounts / negotiated deals are allowed)
    errors: list[str] = []
    amount_error = _money_error(amount, "Amount")
    if amount_error:
        errors.append(amount_error)
    if method not in config.PAYMENT_METHODS:
        errors.append(f"Payment method must be one of {', '.join(config.PAYMENT_METHODS)}.")
    return errors


def validate_status(status: str) -> list[str]:
    if status not in GYM_STATUSES:
        return [f"Status must be one of {', '.join(GYM_STATUSES)}."]
    return []


# ---------- Exports / reports ----------

def records_to_frame(records: Iterable) -> pd.DataFrame:
    rows = [asdict(r) for r in records]
    if not rows:
        return pd.DataFrame()
    return pd.DataFrame(rows)


def records_to_csv_bytes(records: Iterable) -> bytes:
    df = records_to_frame(records)
    return df.to_csv(index=False).encode("utf-8")


def revenue_summary_by_month(payments: Iterable) -> pd.DataFrame:
    df = records_to_frame(payments)
    if df.empty:
        return pd.DataFrame(columns=["month", "revenue", "payments"])
    df["month"] = pd.to_datetime(df["paid_at"]).dt.strftime("%Y-%m")
    summary = (
        df.groupby("month")
        .agg(revenue=("amount", lambda s: sum(s, Decimal("0"))), payments=("id", "count"))
        .reset_index()
        .sort_values("month", ascending=False)
        .reset_index(drop=True)
    )
    return summary
