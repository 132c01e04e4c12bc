"""
ledger.py
Subscription ledger: owns gym status + coverage dates and the payment-application algorithm.

    pending  --(payment)-->    active
    active   <--(set_status)--> inactive
    inactive --(payment)-->    active

A payment extends coverage from max(current end, today): renewing early stacks onto the
remaining time, renewing after a lapse starts fresh from today.
"""

from __future__ import annotations

import logging
from contextlib import nullcontext
from dataclasses import replace
from datetime import date, datetime, timedelta

import config
import utils
from audit import AuditSink, publish
from commissions import CommissionAccrual
from errors import ConcurrencyConflict, InvalidTransition, NotFound, ValidationError
from locks import KeyedLocks
from models import ACTIVE, INACTIVE, PENDING, Gym, Payment
from store import BillingStore

logger = logging.getLogger(__name__)

_UNSET = object()


def extend_coverage(current_end: date | None, today: date, duration_value: int, duration_unit: str) -> date:
    anchor = max(current_end or today, today)
    return utils.add_duration(anchor, duration_value, duration_unit)


class SubscriptionLedger:
    def __init__(self, store: BillingStore, accrual: CommissionAccrual,
                 gym_locks: KeyedLocks | None = None, sink: AuditSink | None = None):
        self.store = store
        self.accrual = accrual
        self.gym_locks = gym_locks or KeyedLocks("gym")
        self.sink = sink

    # ---------- Reads ----------

    def get_gym(self, gym_id: int, conn=None) -> Gym:
        gym = self.store.get_gym(gym_id, conn)
        if gym is None:
            raise NotFound("Gym", gym_id)
        return gym

    def list_gyms(self, status: str | None = None, agent_id: int | None = None) -> list[Gym]:
        return self.store.list_gyms(status=status, agent_id=agent_id)

    def payment_history(self, gym_id: int) -> list[Payment]:
        self.get_gym(gym_id)
        return self.store.list_payments(gym_id)

    def list_payments(self) -> list[Payment]:
        return self.store.list_payments()

    def expiring_soon(self, days: int | None = None, now: datetime | None = None) -> list[Gym]:
        today = utils.as_date(now or datetime.now())
        horizon = today + timedelta(days=config.EXPIRING_SOON_DAYS if days is None else days)
        gyms = [g for g in self.store.list_gyms(status=ACTIVE) if today <= g.end_date <= horizon]
        return sorted(gyms, key=lambda g: (g.end_date, g.id))

    # ---------- Writes ----------

    def create_pending(self, gym_name: str, owner: str, plan_id: int, agent_id: int | None = None) -> Gym:
        errors = utils.validate_gym_inputs(gym_name, owner)
        if errors:
            raise ValidationError(errors)
        with self.store.db.transaction() as conn:
            if self.store.get_plan(plan_id, conn) is None:
                raise NotFound("Plan", plan_id)
            if agent_id is not None and self.store.get_agent(agent_id, conn) is None:
                raise NotFound("Agent", agent_id)
            gym_id = self.store.insert_gym(conn, gym_name.strip(), owner.strip(), plan_id, agent_id)
            gym = self.store.get_gym(gym_id, conn)
        logger.info("Created pending gym %s (%r, plan %s, agent %s)", gym.id, gym.name, plan_id, agent_id)
        publish(self.sink, "gym.created", gym_id=gym.id, plan_id=plan_id, agent_id=agent_id)
        return gym

    def apply_payment(self, gym_id: int, plan_id: int, amount=None, method: str = "cash",
                      transaction_ref: str | None = None, notes: str | None = None,
                      now: datetime | None = None) -> tuple[Gym, Payment]:
        """
        Record a completed payment and extend the gym's coverage by the plan's duration.

        `amount` defaults to the plan price but is not bound to it (discounts and
        negotiated deals are recorded as given). The gym update, the payment and the
        agent's commission are written in one transaction: all or nothing.
        """
        now = now or datetime.now()
        today = utils.as_date(now)

        with self.gym_locks.hold(gym_id):
            gym = self.get_gym(gym_id)
            plan = self.store.get_plan(plan_id)
            if plan is None:
                raise NotFound("Plan", plan_id)
            amount = plan.price if amount is None else amount
            errors = utils.validate_payment_inputs(amount, method)
            if errors:
                raise ValidationError(errors)
            amount = utils.to_decimal(amount)

            agent_lock = (
                self.accrual.agent_locks.hold(gym.agent_id) if gym.agent_id is not None else nullcontext()
            )
            with agent_lock, self.store.db.transaction() as conn:
                current = self.get_gym(gym_id, conn)
                if current.version != gym.version:
                    # agent attribution may have moved under us
                    raise ConcurrencyConflict(f"Gym {gym_id} was modified concurrently; retry the operation.")

                new_end = extend_coverage(current.end_date, today, plan.duration_value, plan.duration_unit)
                start = current.start_date if current.status == ACTIVE else today

                payment = self.store.insert_payment(
                    conn, gym_id, plan.id, amount, method,
                    (transaction_ref or "").strip() or None, now, (notes or "").strip() or None,
                )
                rate = None
                if current.agent_id is not None:
                    rate = self.accrual.policy.resolve_rate(current.agent_id, conn)
                commission = self.accrual.accrue_from_payment(conn, payment, current.agent_id, rate)
                updated = self.store.save_gym(
                    conn, replace(current, status=ACTIVE, start_date=start, end_date=new_end, plan_id=plan.id)
                )

        logger.info(
            "Payment %s on gym %s: %s via %s, coverage %s -> %s (%s -> %s)",
            payment.id, gym_id, payment.amount, method, current.end_date, updated.end_date,
            current.status, updated.status,
        )
        publish(self.sink, "payment.recorded", gym_id=gym_id, payment_id=payment.id,
                plan_id=plan.id, amount=payment.amount, end_date=updated.end_date)
        if current.status != updated.status:
            publish(self.sink, "gym.status_changed", gym_id=gym_id,
                    old=current.status, new=updated.status)
        if commission is not None:
            publish(self.sink, "commission.accrued", agent_id=commission.agent_id,
                    commission_id=commission.id, amount=commission.amount)
        return updated, payment

    def set_status(self, gym_id: int, status: str, now: datetime | None = None) -> Gym:
        """
        Administrative pause/resume. A gym only becomes active here if it already has
        paid coverage that has not lapsed; anything else must go through apply_payment.
        """
        errors = utils.validate_status(status)
        if errors:
            raise ValidationError(errors)
        today = utils.as_date(now or datetime.now())

        with self.gym_locks.hold(gym_id):
            with self.store.db.transaction() as conn:
                gym = self.get_gym(gym_id, conn)
                if gym.status == status:
                    return gym
                reason = self._transition_error(gym, status, today)
                if reason:
                    logger.warning("Rejected status change on gym %s: %s -> %s (%s)",
                                   gym_id, gym.status, status, reason)
                    raise InvalidTransition(f"Gym {gym_id}: {reason}")
                updated = self.store.save_gym(conn, replace(gym, status=status))

        logger.info("Gym %s status %s -> %s", gym_id, gym.status, status)
        publish(self.sink, "gym.status_changed", gym_id=gym_id, old=gym.status, new=status)
        return updated

    @staticmethod
    def _transition_error(gym: Gym, status: str, today: date) -> str | None:
        if status == PENDING:
            return "a gym cannot return to pending."
        if gym.status == PENDING:
            if status == ACTIVE:
                return "a pending gym can only be activated by recording a payment."
            return "a pending gym has no coverage to pause."
        if status == ACTIVE and gym.is_lapsed(today):
            return f"coverage ended on {gym.end_date.isoformat()}; record a payment to reactivate."
        return None

    def expire_lapsed(self, now: datetime | None = None) -> list[Gym]:
        """Move active gyms whose coverage ended before today to inactive."""
        today = utils.as_date(now or datetime.now())
        expired: list[Gym] = []
        for candidate in self.store.list_gyms(status=ACTIVE):
            if not candidate.is_lapsed(today):
                continue
            with self.gym_locks.hold(candidate.id):
                with self.store.db.transaction() as conn:
                    gym = self.get_gym(candidate.id, conn)
                    if gym.status != ACTIVE or not gym.is_lapsed(today):
                        continue
                    expired.append(self.store.save_gym(conn, replace(gym, status=INACTIVE)))
            logger.info("Gym %s lapsed on %s -> inactive", gym.id, gym.end_date)
            publish(self.sink, "gym.status_changed", gym_id=gym.id, old=ACTIVE, new=INACTIVE)
        return expired

    def update_gym(self, gym_id: int, name: str | None = None, owner_name: str | None = None,
                   agent_id=_UNSET) -> Gym:
        """
        Profile edits. Re-assigning the agent only affects commissions on future payments.
        Pass agent_id=None to make the gym a direct sale.
        """
        with self.gym_locks.hold(gym_id):
            with self.store.db.transaction() as conn:
                gym = self.get_gym(gym_id, conn)
                changes = {}
                if name is not None:
                    changes["name"] = name.strip()
                if owner_name is not None:
                    changes["owner_name"] = owner_name.strip()
                if agent_id is not _UNSET:
                    if agent_id is not None and self.store.get_agent(agent_id, conn) is None:
                        raise NotFound("Agent", agent_id)
                    changes["agent_id"] = agent_id
                updated = replace(gym, **changes)
                errors = utils.validate_gym_inputs(updated.name, updated.owner_name)
                if errors:
                    raise ValidationError(errors)
                if changes:
                    updated = self.store.save_gym(conn, updated)
        if changes:
            logger.info("Updated gym %s: %s", gym_id, ", ".join(sorted(changes)))
        return updated
