from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from models import INACTIVE


def d(s: str) -> datetime:
    return datetime.fromisoformat(s)


def test_empty_platform(svc):
    m = svc.metrics_snapshot()
    assert (m.mrr, m.active_count, m.annual_projection) == (Decimal("0"), 0, Decimal("0"))


def test_mrr_counts_only_active_gyms_at_current_plan_price(svc, plan_30d):
    pro = svc.catalog.create_plan("Pro", Decimal("250000"), 1, "months")
    a = svc.create_pending("A", "A", plan_30d.id)
    b = svc.create_pending("B", "B", plan_30d.id)
    svc.create_pending("Pending", "C", plan_30d.id)
    svc.apply_payment(a.id, plan_30d.id, "1", now=d("2025-01-01T10:00:00"))
    svc.apply_payment(b.id, pro.id, now=d("2025-01-01T10:00:00"))

    m = svc.metrics_snapshot()
    assert m.active_count == 2
    assert m.mrr == Decimal("350000")
    assert m.annual_projection == Decimal("4200000")

    svc.set_status(b.id, INACTIVE, now=d("2025-01-05T00:00:00"))
    assert svc.metrics_snapshot().mrr == Decimal("100000")

    svc.catalog.update_plan(plan_30d.id, price=Decimal("120000"))
    assert svc.metrics_snapshot().mrr == Decimal("120000")


def test_agent_summary(svc, plan_30d, agent):
    a = svc.create_pending("A", "A", plan_30d.id, agent.id)
    b = svc.create_pending("B", "B", plan_30d.id, agent.id)
    svc.create_pending("Direct", "C", plan_30d.id)
    svc.apply_payment(a.id, plan_30d.id, now=d("2025-01-01T10:00:00"))
    svc.apply_payment(b.id, plan_30d.id, now=d("2025-01-01T10:00:00"))
    svc.payout_agent(agent.id)
    svc.apply_payment(a.id, plan_30d.id, now=d("2025-01-10T10:00:00"))

    s = svc.agent_summary(agent.id)
    assert s.active_gyms == 2
    assert s.attributed_mrr == Decimal("200000")
    assert s.estimated_commission == Decimal("40000")
    assert s.lifetime_earned == Decimal("60000")
    assert s.pending_balance == Decimal("20000")
