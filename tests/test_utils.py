from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

import pytest

import config
import utils
from models import Payment


@pytest.mark.parametrize(
    "start, months, expected",
    [
        (date(2025, 1, 31), 1, date(2025, 2, 28)),
        (date(2024, 1, 31), 1, date(2024, 2, 29)),
        (date(2025, 11, 30), 3, date(2026, 2, 28)),
        (date(2025, 12, 15), 1, date(2026, 1, 15)),
        (date(2025, 3, 31), 12, date(2026, 3, 31)),
    ],
)
def test_add_months(start, months, expected):
    assert utils.add_months(start, months) == expected


def test_add_duration():
    assert utils.add_duration(date(2025, 1, 1), 30, "days") == date(2025, 1, 31)
    assert utils.add_duration(date(2025, 1, 31), 1, "months") == date(2025, 2, 28)
    with pytest.raises(ValueError):
        utils.add_duration(date(2025, 1, 1), 1, "weeks")


def test_commission_amount_rounds_half_up():
    assert utils.commission_amount(Decimal("100000"), Decimal("20")) == Decimal("20000.00")
    assert utils.commission_amount(Decimal("0.05"), Decimal("50")) == Decimal("0.03")


def test_to_decimal_writes_exponents_out():
    assert str(utils.to_decimal("1E+2")) == "100"
    assert str(utils.to_decimal(Decimal("2.5E+3"))) == "2500"
    assert str(utils.to_decimal("0.05")) == "0.05"
    assert utils.to_decimal(12.5) == Decimal("12.5")


def test_money_inputs_are_bounded():
    assert utils.validate_payment_inputs(str(config.MAX_AMOUNT), "cash") == []
    assert utils.validate_payment_inputs("1e30", "cash") == [
        f"Amount must not exceed {config.MAX_AMOUNT:,}."
    ]
    assert utils.validate_payment_inputs("NaN", "cash") == ["Amount must be a positive number."]
    assert utils.validate_plan_inputs("Basic", "1e13", 30, "days") != []


def test_validate_plan_inputs():
    assert utils.validate_plan_inputs("Basic", "100", 30, "days") == []
    errors = utils.validate_plan_inputs("", "-1", 0, "weeks")
    assert len(errors) == 4


def test_validate_agent_inputs():
    assert utils.validate_agent_inputs("Laura", 0) == []
    assert utils.validate_agent_inputs("Laura", "100") == []
    assert utils.validate_agent_inputs("Laura", 101) != []
    assert utils.validate_agent_inputs("Laura", "x") != []


def _payment(pid, amount, paid_at):
    return Payment(pid, 1, 1, Decimal(amount), "cash", None, "completed", paid_at, None)


def test_revenue_summary_by_month():
    payments = [
        _payment(1, "100", datetime(2025, 1, 3, 9)),
        _payment(2, "50.5", datetime(2025, 1, 20, 9)),
        _payment(3, "70", datetime(2025, 2, 1, 9)),
    ]
    df = utils.revenue_summary_by_month(payments)
    assert df["month"].tolist() == ["2025-02", "2025-01"]
    assert df["revenue"].tolist() == [Decimal("70"), Decimal("150.5")]
    assert df["payments"].tolist() == [1, 2]


def test_revenue_summary_empty():
    df = utils.revenue_summary_by_month([])
    assert df.empty
    assert list(df.columns) == ["month", "revenue", "payments"]


def test_records_to_csv_bytes():
    csv = utils.records_to_csv_bytes([_payment(1, "100", datetime(2025, 1, 3, 9))]).decode("utf-8")
    header, row = csv.strip().splitlines()
    assert header.startswith("id,gym_id,plan_id,amount,method")
    assert row.startswith("1,1,1,100,cash")
