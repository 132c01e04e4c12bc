from __future__ import annotations

from decimal import Decimal

import pytest

from errors import NotFound, ValidationError


class TestPlans:
    def test_create_and_list_by_price(self, svc):
        pro = svc.catalog.create_plan("Pro", "250000", 1, "months", "500 members")
        basic = svc.catalog.create_plan(" Basic ", Decimal("100000"), 30, "days", "  ")
        assert basic.name == "Basic"
        assert basic.gym_limit is None
        assert pro.gym_limit == "500 members"
        assert pro.duration_label == "1 month"
        assert basic.duration_label == "30 days"
        assert svc.catalog.list_plans() == [basic, pro]

    def test_invalid_plan(self, svc):
        with pytest.raises(ValidationError):
            svc.catalog.create_plan("Basic", 0, 30, "days")
        with pytest.raises(ValidationError):
            svc.catalog.create_plan("Basic", 100, 30, "weeks")
        assert svc.catalog.list_plans() == []

    def test_update_plan(self, svc, plan_30d):
        updated = svc.catalog.update_plan(plan_30d.id, name="Basic+", price="120000")
        assert updated.price == Decimal("120000")
        assert svc.catalog.get_plan(plan_30d.id) == updated

    def test_update_plan_rejects_unknown_fields_and_bad_values(self, svc, plan_30d):
        with pytest.raises(ValidationError):
            svc.catalog.update_plan(plan_30d.id, colour="red")
        with pytest.raises(ValidationError):
            svc.catalog.update_plan(plan_30d.id, duration_value=0)
        assert svc.catalog.get_plan(plan_30d.id) == plan_30d

    def test_unknown_plan(self, svc):
        with pytest.raises(NotFound):
            svc.catalog.get_plan(1)
        with pytest.raises(NotFound):
            svc.catalog.update_plan(1, name="x")


class TestAgents:
    def test_create_defaults_to_twenty_percent(self, svc):
        agent = svc.policy.create_agent("Laura", " laura@example.com ", "")
        assert agent.commission_rate == Decimal("20")
        assert agent.email == "laura@example.com"
        assert agent.phone is None

    def test_rate_bounds(self, svc):
        with pytest.raises(ValidationError):
            svc.policy.create_agent("Laura", commission_rate=Decimal("120"))
        with pytest.raises(ValidationError):
            svc.policy.create_agent("Laura", commission_rate=Decimal("-1"))

    def test_update_and_resolve_rate(self, svc, agent):
        svc.policy.update_agent(agent.id, commission_rate=Decimal("15"), phone="555")
        assert svc.policy.resolve_rate(agent.id) == Decimal("15")
        assert svc.policy.get_agent(agent.id).phone == "555"

    def test_unknown_agent(self, svc):
        with pytest.raises(NotFound):
            svc.policy.resolve_rate(9)
        with pytest.raises(NotFound):
            svc.policy.update_agent(9, name="x")
