from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

import pytest

from models import ACTIVE, PENDING


NOW = datetime(2025, 3, 15, 10, 0, 0)


def test_sample_data_goes_through_the_ledger(svc):
    g1, g2, g3 = svc.insert_sample_data(now=NOW)

    assert g1.status == ACTIVE
    assert g1.start_date == date(2025, 2, 18)
    assert g1.end_date == date(2025, 4, 18)
    assert g2.end_date == date(2026, 3, 15)
    assert g3.status == PENDING

    m = svc.metrics_snapshot()
    assert m.active_count == 2
    assert m.mrr == Decimal("1100000")
    assert svc.pending_balance(g1.agent_id) == Decimal("40000")


def test_csv_exports(svc):
    svc.insert_sample_data(now=NOW)
    payments = svc.export_csv("payments").decode("utf-8").strip().splitlines()
    commissions = svc.export_csv("commissions").decode("utf-8").strip().splitlines()
    gyms = svc.export_csv("gyms").decode("utf-8").strip().splitlines()
    assert len(payments) == 1 + 3
    assert len(commissions) == 1 + 2
    assert len(gyms) == 1 + 3
    with pytest.raises(ValueError):
        svc.export_csv("agents")


def test_revenue_by_month(svc):
    svc.insert_sample_data(now=NOW)
    df = svc.revenue_by_month()
    assert df["month"].tolist() == ["2025-03", "2025-02"]
    assert df["revenue"].tolist() == [Decimal("1100000"), Decimal("100000")]
