from __future__ import annotations

from datetime import datetime
from decimal import Decimal

import pytest

import app
from errors import ConcurrencyConflict


class _SessionState(dict):
    def __getattr__(self, name):
        try:
            return self[name]
        except KeyError as exc:
            raise AttributeError(name) from exc

    def __setattr__(self, name, value):
        self[name] = value


class FakeStreamlit:
    def __init__(self):
        self.session_state = _SessionState()
        self.errors: list[str] = []
        self.successes: list[str] = []

    def error(self, message):
        self.errors.append(message)

    def success(self, message):
        self.successes.append(message)


@pytest.fixture
def fake_st(monkeypatch):
    fake = FakeStreamlit()
    monkeypatch.setattr(app, "st", fake)
    return fake


def test_engine_error_is_shown_with_its_kind(fake_st):
    def busy():
        raise ConcurrencyConflict("agent 1 is busy; retry the operation.")

    assert app.run_action(busy, "Paid.") is False
    assert fake_st.errors == ["concurrency_conflict: agent 1 is busy; retry the operation."]
    assert "flash" not in fake_st.session_state


def test_busy_agent_payout_surfaces_as_conflict(svc, plan_30d, agent, fake_st):
    gym = svc.create_pending("Iron Temple", "Carlos", plan_30d.id, agent.id)
    svc.apply_payment(gym.id, plan_30d.id, now=datetime(2025, 1, 1, 10))
    svc.accrual.agent_locks.timeout = 0.05

    with svc.accrual.agent_locks.hold(agent.id):
        ok = app.run_action(lambda: svc.payout_agent(agent.id), app.payout_message)

    assert ok is False
    assert fake_st.errors[0].startswith("concurrency_conflict:")
    assert svc.pending_balance(agent.id) == Decimal("20000.00")


def test_success_message_survives_rerun(svc, plan_30d, agent, fake_st):
    gym = svc.create_pending("Iron Temple", "Carlos", plan_30d.id, agent.id)
    svc.apply_payment(gym.id, plan_30d.id, now=datetime(2025, 1, 1, 10))

    assert app.run_action(lambda: svc.payout_agent(agent.id), app.payout_message) is True
    assert fake_st.successes == []

    app.show_flash()
    assert fake_st.successes == ["Paid 20,000.00 (1 commissions)."]
    app.show_flash()
    assert len(fake_st.successes) == 1

    app.run_action(lambda: svc.payout_agent(agent.id), app.payout_message)
    app.show_flash()
    assert fake_st.successes[-1] == "Nothing pending."


def test_agents_with_the_same_name_stay_distinct(svc):
    first = svc.policy.create_agent("Laura Gomez", commission_rate=Decimal("20"))
    second = svc.policy.create_agent("Laura Gomez", commission_rate=Decimal("10"))

    options = app.agent_options(svc.policy.list_agents())

    assert options["(direct sale)"] is None
    assert sorted(v for v in options.values() if v is not None) == [first.id, second.id]


def test_identical_plans_stay_distinct(svc):
    a = svc.catalog.create_plan("Basic", Decimal("100"), 30, "days")
    b = svc.catalog.create_plan("Basic", Decimal("100"), 30, "days")

    options = app.plan_options(svc.catalog.list_plans())

    assert sorted(options.values()) == [a.id, b.id]
