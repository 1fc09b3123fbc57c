"""Transaction repository — the append-only trade ledger.

Rows are inserted once per executed trade and never updated or deleted.
"""

import sqlite3

from simtrade.models.portfolio import TradeSide, Transaction
from simtrade.repos.db import get_connection


def insert_transaction(conn: sqlite3.Connection, txn: Transaction) -> int:
    """Insert *txn* on an open connection (caller owns the transaction)."""
    cur = conn.execute(
        """
        INSERT INTO transactions
            (user_email, symbol, name, price, quantity, type, automated, timestamp)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            txn.user_email, txn.symbol, txn.name, txn.price,
            txn.quantity, txn.type.value, int(txn.automated), txn.timestamp,
        ),
    )
    return cur.lastrowid


def _row_to_transaction(row: sqlite3.Row) -> Transaction:
    return Transaction(
        id=row["id"],
        user_email=row["user_email"],
        symbol=row["symbol"],
        name=row["name"],
        price=float(row["price"]),
        quantity=int(row["quantity"]),
        type=TradeSide(row["type"]),
        automated=bool(row["automated"]),
        timestamp=row["timestamp"],
    )


class TransactionRepo:
    """Data access layer for the ``transactions`` ledger.

    Args:
        db_path: Path to the SQLite database file.
    """

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path

    def list_for_user(self, user_email: str, limit: int = 50) -> list[Transaction]:
        """Return the user's most recent transactions, newest first."""
        conn = get_connection(self._db_path)
        try:
            rows = conn.execute(
                "SELECT * FROM transactions WHERE user_email = ? "
                "ORDER BY id DESC LIMIT ?",
                (user_email, limit),
            ).fetchall()
            return [_row_to_transaction(r) for r in rows]
        finally:
            conn.close()

    def get_totals(self, user_email: str) -> dict:
        """Realised spend and earn totals for the credits calculation.

        Returns:
            ``{"total_spent": float, "total_earned": float}``
        """
        conn = get_connection(self._db_path)
        try:
            row = conn.execute(
                """
                SELECT
                    COALESCE(SUM(CASE WHEN type = 'BUY'
                                 THEN price * quantity END), 0) AS spent,
                    COALESCE(SUM(CASE WHEN type = 'SELL'
                                 THEN price * quantity END), 0) AS earned
                FROM transactions
                WHERE user_email = ?
                """,
                (user_email,),
            ).fetchone()
            return {
                "total_spent": round(float(row["spent"]), 2),
                "total_earned": round(float(row["earned"]), 2),
            }
        finally:
            conn.close()
