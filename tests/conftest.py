from __future__ import annotations

from decimal import Decimal

import pytest

import config
from audit import AuditSink
from service import BillingService


class RecordingSink(AuditSink):
    def __init__(self):
        self.events: list[tuple[str, dict]] = []

    def emit(self, event: str, **payload) -> None:
        self.events.append((event, payload))

    def names(self) -> list[str]:
        return [e for e, _ in self.events]


@pytest.fixture(autouse=True)
def fast_bcrypt(monkeypatch):
    monkeypatch.setattr(config, "BCRYPT_ROUNDS", 4)


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def svc(tmp_path, sink):
    return BillingService.open(tmp_path / "billing.db", sink=sink)


@pytest.fixture
def plan_30d(svc):
    return svc.catalog.create_plan("Basic 30", Decimal("100000"), 30, "days")


@pytest.fixture
def plan_monthly(svc):
    return svc.catalog.create_plan("Basic Monthly", Decimal("100000"), 1, "months")


@pytest.fixture
def agent(svc):
    return svc.policy.create_agent("Laura Gomez", "laura@example.com", "3000000001", Decimal("20"))
