"""
config.py
Runtime settings (env overrides) + logging setup.
"""

from __future__ import annotations

import logging
import os
from decimal import Decimal
from pathlib import Path

DB_FILE = Path(os.environ.get("GYM_BILLING_DB", Path(__file__).with_name("billing.db")))

LOG_LEVEL = os.environ.get("GYM_BILLING_LOG_LEVEL", "INFO").upper()
LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

# Seconds to wait for a per-gym / per-agent lock before giving up
LOCK_TIMEOUT = float(os.environ.get("GYM_BILLING_LOCK_TIMEOUT", "5"))

# SQLite busy timeout (seconds) for BEGIN IMMEDIATE
DB_BUSY_TIMEOUT = float(os.environ.get("GYM_BILLING_DB_BUSY_TIMEOUT", "5"))

BCRYPT_ROUNDS = int(os.environ.get("GYM_BILLING_BCRYPT_ROUNDS", "12"))

EXPIRING_SOON_DAYS = int(os.environ.get("GYM_BILLING_EXPIRING_DAYS", "7"))

PAYMENT_METHODS = ("cash", "card", "transfer", "link")

# Upper bound for any single price or payment amount; keeps commission math inside Decimal precision
MAX_AMOUNT = Decimal("1000000000000")

DEFAULT_ADMIN_USERNAME = "admin"
DEFAULT_ADMIN_PASSWORD = "admin123"


def configure_logging(level: str | None = None) -> None:
    # No-op once the root logger has handlers (Streamlit reruns the script on every interaction)
    logging.basicConfig(level=level or LOG_LEVEL, format=LOG_FORMAT)
