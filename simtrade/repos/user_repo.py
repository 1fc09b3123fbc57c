"""User repository — SQLite CRUD for the users table."""

import sqlite3
from typing import Optional

from simtrade.models.portfolio import User
from simtrade.repos.db import get_connection


def _row_to_user(row: sqlite3.Row) -> User:
    return User(
        id=row["id"],
        email=row["email"],
        name=row["name"],
        credits=float(row["credits"]),
    )


class UserRepo:
    """Data access layer for user accounts.

    Args:
        db_path: Path to the SQLite database file.
    """

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path

    # ── Write ────────────────────────────────────────────────────────────

    def create_user(self, email: str, name: str = "", credits: float = 0.0) -> int:
        """Insert a new account and return its ``id``."""
        conn = get_connection(self._db_path)
        try:
            cur = conn.execute(
                "INSERT INTO users (email, name, credits) VALUES (?, ?, ?)",
                (email, name, credits),
            )
            conn.commit()
            return cur.lastrowid
        finally:
            conn.close()

    def add_credits(self, user_id: int, amount: float) -> None:
        """Top up a user's credits balance."""
        if amount <= 0:
            raise ValueError(f"amount must be positive, got {amount}")
        conn = get_connection(self._db_path)
        try:
            conn.execute(
                "UPDATE users SET credits = credits + ? WHERE id = ?",
                (amount, user_id),
            )
            conn.commit()
        finally:
            conn.close()

    def delete_user(self, user_id: int) -> None:
        """Remove an account.

        Fixture helper: active sessions notice on their next cycle.
        """
        conn = get_connection(self._db_path)
        try:
            conn.execute("DELETE FROM users WHERE id = ?", (user_id,))
            conn.commit()
        finally:
            conn.close()

    # ── Read ─────────────────────────────────────────────────────────────

    def find_by_email(self, email: str) -> Optional[User]:
        """Return the account for *email*, or ``None``."""
        conn = get_connection(self._db_path)
        try:
            row = conn.execute(
                "SELECT * FROM users WHERE email = ?", (email,),
            ).fetchone()
            return _row_to_user(row) if row else None
        finally:
            conn.close()

    def get_by_id(self, user_id: int) -> Optional[User]:
        """Return the account with *user_id*, or ``None``."""
        conn = get_connection(self._db_path)
        try:
            row = conn.execute(
                "SELECT * FROM users WHERE id = ?", (user_id,),
            ).fetchone()
            return _row_to_user(row) if row else None
        finally:
            conn.close()
