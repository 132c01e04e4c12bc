"""
errors.py
Billing error taxonomy. Every error carries a `kind` the UI can show next to the message.
"""

from __future__ import annotations


class BillingError(Exception):
    kind = "error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class NotFound(BillingError):
    """Unknown gym / plan / agent / payment id."""

    kind = "not_found"

    def __init__(self, entity: str, entity_id):
        super().__init__(f"{entity} {entity_id} not found.")
        self.entity = entity
        self.entity_id = entity_id


class InvalidTransition(BillingError):
    """Rejected before any mutation."""

    kind = "invalid_transition"


class ConcurrencyConflict(BillingError):
    """Lost a per-gym / per-agent race. Nothing was committed; safe to retry."""

    kind = "concurrency_conflict"


class ValidationError(BillingError):
    kind = "validation"

    def __init__(self, errors: list[str]):
        super().__init__(" ".join(errors))
        self.errors = errors
