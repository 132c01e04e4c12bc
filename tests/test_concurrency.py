from __future__ import annotations

import gc
import threading
from datetime import date, datetime
from decimal import Decimal

import pytest

from errors import ConcurrencyConflict
from locks import KeyedLocks
from service import BillingService


def run_threads(n, target):
    barrier = threading.Barrier(n)
    errors = []

    def worker(i):
        barrier.wait()
        try:
            target(i)
        except Exception as exc:
            errors.append(exc)

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(n)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    return errors


def test_concurrent_renewals_each_extend_once(svc, plan_30d, agent):
    gym = svc.create_pending("Iron Temple", "Carlos", plan_30d.id, agent.id)
    now = datetime(2025, 1, 1, 10, 0, 0)

    errors = run_threads(4, lambda i: svc.apply_payment(gym.id, plan_30d.id, now=now))

    assert errors == []
    gym = svc.get_gym(gym.id)
    assert gym.end_date == date(2025, 5, 1)  # 4 x 30 days
    assert len(svc.payment_history(gym.id)) == 4
    assert len(svc.commission_history(agent.id)) == 4


def test_payouts_racing_accruals_never_lose_a_commission(svc, plan_30d, agent):
    gyms = [svc.create_pending(f"Gym {i}", "Owner", plan_30d.id, agent.id) for i in range(3)]

    def work(i):
        if i < 3:
            svc.apply_payment(gyms[i].id, plan_30d.id, now=datetime(2025, 1, 1, 10, 0, 0))
        else:
            svc.payout_agent(agent.id)

    errors = run_threads(5, work)

    assert errors == []
    paid_out = sum((p.amount for p in svc.payouts(agent.id)), Decimal("0"))
    assert paid_out + svc.pending_balance(agent.id) == svc.lifetime_earned(agent.id) == Decimal("60000")


def test_busy_gym_lock_is_a_conflict(tmp_path, sink):
    svc = BillingService.open(tmp_path / "busy.db", sink=sink)
    svc.ledger.gym_locks.timeout = 0.05
    plan = svc.catalog.create_plan("Basic", Decimal("100"), 30, "days")
    gym = svc.create_pending("Iron Temple", "Carlos", plan.id)

    with svc.ledger.gym_locks.hold(gym.id):
        with pytest.raises(ConcurrencyConflict):
            svc.apply_payment(gym.id, plan.id)

    assert svc.payment_history(gym.id) == []
    gym, _ = svc.apply_payment(gym.id, plan.id)
    assert gym.status == "active"


def test_idle_keyed_locks_are_released():
    locks = KeyedLocks("gym", timeout=0.05)
    for gym_id in range(100):
        with locks.hold(gym_id):
            assert gym_id in locks._locks
    gc.collect()
    assert len(locks._locks) == 0
