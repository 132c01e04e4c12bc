"""
auth.py
Operator accounts: bcrypt hashing, login, change password, and the billing mutation gate.
"""

from __future__ import annotations

from dataclasses import dataclass

import bcrypt

import config
from db import Database, now_iso
from errors import ValidationError

ROLES = ("superadmin", "gym_admin", "agent")


@dataclass(frozen=True)
class Caller:
    id: int
    username: str
    role: str
    gym_id: int | None = None
    agent_id: int | None = None


def _to_bcrypt_secret(password: str) -> bytes:
    """
    bcrypt only uses the first 72 BYTES of the password.
    We truncate to 72 bytes to avoid ValueError and to make behavior explicit.
    """
    pw = password.encode("utf-8")
    if len(pw) > 72:
        pw = pw[:72]
    return pw


def hash_password(password: str) -> str:
    secret = _to_bcrypt_secret(password)
    salt = bcrypt.gensalt(rounds=config.BCRYPT_ROUNDS)
    return bcrypt.hashpw(secret, salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    return bcrypt.checkpw(_to_bcrypt_secret(password), password_hash.encode("utf-8"))


def init_auth(db: Database) -> None:
    # Default superadmin (admin/admin123) on first run
    db.init_db(hash_password(config.DEFAULT_ADMIN_PASSWORD))


def _caller(row) -> Caller:
    return Caller(
        id=row["id"], username=row["username"], role=row["role"],
        gym_id=row["gym_id"], agent_id=row["agent_id"],
    )


def create_operator(db: Database, username: str, password: str, role: str,
                    gym_id: int | None = None, agent_id: int | None = None) -> Caller:
    errors: list[str] = []
    if not username.strip():
        errors.append("Username is required.")
    if len(password) < 6:
        errors.append("Password must be at least 6 characters.")
    if role not in ROLES:
        errors.append(f"Role must be one of {', '.join(ROLES)}.")
    if role == "gym_admin" and gym_id is None:
        errors.append("Gym admins must be linked to a gym.")
    if role == "agent" and agent_id is None:
        errors.append("Agent accounts must be linked to an agent.")
    if errors:
        raise ValidationError(errors)
    op_id = db.execute(
        """
        INSERT INTO operators(username, password_hash, role, gym_id, agent_id, created_at)
        VALUES(?,?,?,?,?,?)
        """,
        (username.strip(), hash_password(password), role, gym_id, agent_id, now_iso()),
    )
    return Caller(op_id, username.strip(), role, gym_id, agent_id)


def login(db: Database, username: str, password: str) -> Caller | None:
    row = db.fetch_one("SELECT * FROM operators WHERE username = ?", (username,))
    if not row:
        return None
    if not verify_password(password, row["password_hash"]):
        return None
    return _caller(row)


def change_password(db: Database, username: str, new_password: str) -> None:
    if len(new_password) < 6:
        raise ValidationError(["Password must be at least 6 characters."])
    db.execute(
        "UPDATE operators SET password_hash = ? WHERE username = ?",
        (hash_password(new_password), username),
    )
    db.clear_force_password_change()


def can_mutate_billing(caller: Caller | None, gym_id: int | None = None) -> bool:
    """
    Superadmins may change billing state of any tenant, gym admins only their own,
    agents never. gym_id=None asks about platform-wide actions (plans, agents, payouts).
    """
    if caller is None:
        return False
    if caller.role == "superadmin":
        return True
    if caller.role == "gym_admin":
        return gym_id is not None and caller.gym_id == gym_id
    return False
