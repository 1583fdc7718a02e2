"""
auth.py
Operator login for the check-in console (bcrypt hashing, verify, change password).

There is a single operator account; it is created on first run and must
change its default password before the console can be used.
"""

from __future__ import annotations

import logging

import bcrypt
import db

logger = logging.getLogger(__name__)

DEFAULT_USERNAME = "admin"
DEFAULT_PASSWORD = "admin123"
MIN_PASSWORD_LENGTH = 6


def _to_bcrypt_secret(password: str) -> bytes:
    # bcrypt only reads the first 72 bytes
    return password.encode("utf-8")[:72]


def hash_password(password: str) -> str:
    hashed = bcrypt.hashpw(_to_bcrypt_secret(password), bcrypt.gensalt(rounds=12))
    return hashed.decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    return bcrypt.checkpw(_to_bcrypt_secret(password), password_hash.encode("utf-8"))


def bootstrap() -> None:
    """Create tables and the default operator account if needed."""
    db.init_db(hash_password(DEFAULT_PASSWORD))


def login(username: str, password: str) -> bool:
    row = db.fetch_one("SELECT password_hash FROM admin_users WHERE username = ?", (username,))
    if not row:
        logger.info("Login rejected for unknown user %r", username)
        return False
    ok = verify_password(password, row["password_hash"])
    if not ok:
        logger.info("Login rejected for %r (bad password)", username)
    return ok


def validate_new_password(new_password: str, confirm: str) -> list[str]:
    errors: list[str] = []
    if len(new_password) < MIN_PASSWORD_LENGTH:
        errors.append(f"Password must be at least {MIN_PASSWORD_LENGTH} characters.")
    if new_password != confirm:
        errors.append("Passwords do not match.")
    return errors


def change_password(username: str, new_password: str) -> None:
    db.execute(
        "UPDATE admin_users SET password_hash = ? WHERE username = ?",
        (hash_password(new_password), username),
    )
    db.clear_force_password_change()
    logger.info("Password changed for %r", username)
