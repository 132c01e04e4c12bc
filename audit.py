"""
audit.py
Fire-and-forget audit/notification sink. Events are emitted after commit.
"""

from __future__ import annotations

import logging

logger = logging.getLogger(__name__)


class AuditSink:
    def emit(self, event: str, **payload) -> None:
        raise NotImplementedError


class LoggingAuditSink(AuditSink):
    def __init__(self, name: str = "billing.audit"):
        self.log = logging.getLogger(name)

    def emit(self, event: str, **payload) -> None:
        details = " ".join(f"{k}={v}" for k, v in sorted(payload.items()))
        self.log.info("%s %s", event, details)


def publish(sink: AuditSink | None, event: str, **payload) -> None:
    """Deliver to the sink; delivery failures are logged and never reach the caller."""
    if sink is None:
        return
    try:
        sink.emit(event, **payload)
    except Exception:
        logger.exception("Audit sink failed for event %s", event)
