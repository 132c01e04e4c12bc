"""
db.py
SQLite helpers + initialization (creates DB/tables/triggers, inserts default admin, etc.)
"""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path

import config
from errors import ConcurrencyConflict

logger = logging.getLogger(__name__)

SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS plans (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        price TEXT NOT NULL,
        duration_value INTEGER NOT NULL CHECK(duration_value > 0),
        duration_unit TEXT NOT NULL CHECK(duration_unit IN ('days','months')),
        gym_limit TEXT,
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS agents (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        email TEXT,
        phone TEXT,
        commission_rate TEXT NOT NULL,
        user_id TEXT,
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS gyms (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        owner_name TEXT NOT NULL,
        plan_id INTEGER NOT NULL,
        agent_id INTEGER,
        status TEXT NOT NULL CHECK(status IN ('pending','active','inactive')),
        start_date TEXT,
        end_date TEXT,
        version INTEGER NOT NULL DEFAULT 0,
        created_at TEXT NOT NULL,
        CHECK(
            (status = 'pending' AND start_date IS NULL AND end_date IS NULL)
            OR (status IN ('active','inactive') AND start_date IS NOT NULL
                AND end_date IS NOT NULL AND end_date >= start_date)
        ),
        FOREIGN KEY(plan_id) REFERENCES plans(id),
        FOREIGN KEY(agent_id) REFERENCES agents(id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS payments (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        gym_id INTEGER NOT NULL,
        plan_id INTEGER NOT NULL,
        amount TEXT NOT NULL,
        method TEXT NOT NULL,
        transaction_ref TEXT,
        status TEXT NOT NULL CHECK(status = 'completed'),
        paid_at TEXT NOT NULL,
        notes TEXT,
        FOREIGN KEY(gym_id) REFERENCES gyms(id),
        FOREIGN KEY(plan_id) REFERENCES plans(id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS payouts (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        agent_id INTEGER NOT NULL,
        amount TEXT NOT NULL,
        commission_count INTEGER NOT NULL,
        created_at TEXT NOT NULL,
        FOREIGN KEY(agent_id) REFERENCES agents(id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS commissions (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        agent_id INTEGER NOT NULL,
        gym_id INTEGER NOT NULL,
        payment_id INTEGER NOT NULL UNIQUE,
        amount TEXT NOT NULL,
        rate TEXT NOT NULL,
        status TEXT NOT NULL CHECK(status IN ('pending','paid')),
        created_at TEXT NOT NULL,
        paid_at TEXT,
        payout_id INTEGER,
        FOREIGN KEY(agent_id) REFERENCES agents(id),
        FOREIGN KEY(gym_id) REFERENCES gyms(id),
        FOREIGN KEY(payment_id) REFERENCES payments(id),
        FOREIGN KEY(payout_id) REFERENCES payouts(id)
    )
    """,
    # Payments are append-only
    """
    CREATE TRIGGER IF NOT EXISTS payments_no_update
    BEFORE UPDATE ON payments
    BEGIN
        SELECT RAISE(ABORT, 'payments are append-only');
    END
    """,
    """
    CREATE TRIGGER IF NOT EXISTS payments_no_delete
    BEFORE DELETE ON payments
    BEGIN
        SELECT RAISE(ABORT, 'payments are append-only');
    END
    """,
    # Commission amounts are snapshots; paid is final
    """
    CREATE TRIGGER IF NOT EXISTS commissions_snapshot_fixed
    BEFORE UPDATE OF agent_id, gym_id, payment_id, amount, rate ON commissions
    BEGIN
        SELECT RAISE(ABORT, 'commission snapshot fields are immutable');
    END
    """,
    """
    CREATE TRIGGER IF NOT EXISTS commissions_paid_is_final
    BEFORE UPDATE OF status ON commissions
    WHEN OLD.status = 'paid' AND NEW.status <> 'paid'
    BEGIN
        SELECT RAISE(ABORT, 'paid commissions cannot be reopened');
    END
    """,
    """
    CREATE TRIGGER IF NOT EXISTS commissions_no_delete
    BEFORE DELETE ON commissions
    BEGIN
        SELECT RAISE(ABORT, 'commissions cannot be deleted');
    END
    """,
    """
    CREATE TABLE IF NOT EXISTS operators (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        username TEXT NOT NULL UNIQUE,
        password_hash TEXT NOT NULL,
        role TEXT NOT NULL CHECK(role IN ('superadmin','gym_admin','agent')),
        gym_id INTEGER,
        agent_id INTEGER,
        created_at TEXT NOT NULL
    )
    """,
    # Small settings table (used to force password change on first login)
    """
    CREATE TABLE IF NOT EXISTS app_settings (
        key TEXT PRIMARY KEY,
        value TEXT NOT NULL
    )
    """,
]


def now_iso() -> str:
    return datetime.now().isoformat(timespec="seconds")


class Database:
    def __init__(self, db_file: Path | str | None = None):
        self.db_file = Path(db_file) if db_file else config.DB_FILE

    def _connect(self, **kwargs) -> sqlite3.Connection:
        conn = sqlite3.connect(
            self.db_file, timeout=config.DB_BUSY_TIMEOUT, check_same_thread=False, **kwargs
        )
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    @contextmanager
    def get_conn(self):
        conn = self._connect()
        try:
            yield conn
            conn.commit()
        finally:
            conn.close()

    @contextmanager
    def transaction(self):
        """
        Atomic multi-record write. BEGIN IMMEDIATE takes the write lock up front,
        so a read-modify-write inside the block cannot interleave with another writer.
        Anything raised inside rolls back every statement.
        """
        conn = self._connect(isolation_level=None)
        try:
            conn.execute("BEGIN IMMEDIATE")
        except sqlite3.OperationalError as exc:
            conn.close()
            logger.warning("Could not start write transaction: %s", exc)
            raise ConcurrencyConflict("Database is busy; retry the operation.") from exc
        try:
            yield conn
        except BaseException:
            conn.execute("ROLLBACK")
            raise
        else:
            conn.execute("COMMIT")
        finally:
            conn.close()

    def execute(self, sql: str, params: tuple = ()) -> int:
        with self.get_conn() as conn:
            cur = conn.execute(sql, params)
            return cur.lastrowid

    def fetch_one(self, sql: str, params: tuple = ()):
        with self.get_conn() as conn:
            cur = conn.execute(sql, params)
            return cur.fetchone()

    def fetch_all(self, sql: str, params: tuple = ()) -> list[sqlite3.Row]:
        with self.get_conn() as conn:
            cur = conn.execute(sql, params)
            return cur.fetchall()

    def _create_tables(self) -> None:
        with self.get_conn() as conn:
            for ddl in SCHEMA:
                conn.execute(ddl)

    def get_setting(self, key: str, default: str | None = None) -> str | None:
        row = self.fetch_one("SELECT value FROM app_settings WHERE key = ?", (key,))
        if row:
            return str(row["value"])
        return default

    def set_setting(self, key: str, value: str) -> None:
        self.execute(
            """
            INSERT INTO app_settings(key, value) VALUES(?, ?)
            ON CONFLICT(key) DO UPDATE SET value=excluded.value
            """,
            (key, value),
        )

    def init_db(self, default_admin_hash: str | None = None) -> None:
        """
        Initialize the database.
        - Create tables + triggers
        - Insert default superadmin if a hash is given and no operator exists
        - Force password change on first login
        """
        self._create_tables()

        if default_admin_hash is None:
            return
        admin = self.fetch_one("SELECT id FROM operators LIMIT 1")
        if not admin:
            self.execute(
                "INSERT INTO operators(username, password_hash, role, created_at) VALUES(?,?,?,?)",
                (config.DEFAULT_ADMIN_USERNAME, default_admin_hash, "superadmin", now_iso()),
            )
            self.set_setting("force_password_change", "1")
            logger.info("Created default operator %r", config.DEFAULT_ADMIN_USERNAME)
        elif self.get_setting("force_password_change") is None:
            # ensure setting exists
            self.set_setting("force_password_change", "0")

    def is_force_password_change(self) -> bool:
        return self.get_setting("force_password_change") == "1"

    def clear_force_password_change(self) -> None:
        self.set_setting("force_password_change", "0")
