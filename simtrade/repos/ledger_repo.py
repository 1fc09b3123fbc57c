"""Ledger repository — applies one trade to credits, holdings and the log.

All four steps (validate, move cash, move shares, append transaction) run
inside a single ``BEGIN IMMEDIATE`` transaction.  Any failure rolls the whole
trade back, so a concurrent reader never sees a partial trade.  The credits
debit and share decrement are additionally conditional updates, so two
writers racing on the same account cannot overdraw it.
"""

import sqlite3
from dataclasses import replace
from datetime import datetime, timezone
from typing import Optional

from simtrade.errors import PersistenceFailure, ValidationFailure
from simtrade.models.portfolio import TradeSide, Transaction
from simtrade.repos.db import get_connection
from simtrade.repos.transaction_repo import insert_transaction


class LedgerRepo:
    """Atomic trade application against SQLite.

    Args:
        db_path: Path to the SQLite database file.
    """

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path

    def apply_trade(
        self,
        user_email: str,
        symbol: str,
        side: TradeSide,
        quantity: int,
        price: float,
        automated: bool = True,
        now: Optional[datetime] = None,
    ) -> Transaction:
        """Apply a BUY or SELL and return the recorded ``Transaction``.

        Raises:
            ValidationFailure: unknown user or symbol, insufficient credits,
                symbol not held, or insufficient shares.
            PersistenceFailure: the database rejected the write.
        """
        if now is None:
            now = datetime.now(timezone.utc)
        timestamp = now.isoformat()

        conn = get_connection(self._db_path)
        conn.isolation_level = None  # explicit BEGIN/COMMIT below
        try:
            conn.execute("BEGIN IMMEDIATE")
            try:
                if side is TradeSide.BUY:
                    name = self._apply_buy(conn, user_email, symbol, quantity, price, timestamp)
                else:
                    name = self._apply_sell(conn, user_email, symbol, quantity, price)

                txn = Transaction(
                    user_email=user_email,
                    symbol=symbol,
                    name=name,
                    price=price,
                    quantity=quantity,
                    type=side,
                    automated=automated,
                    timestamp=timestamp,
                )
                txn_id = insert_transaction(conn, txn)
                conn.execute("COMMIT")
            except BaseException:
                conn.execute("ROLLBACK")
                raise
        except sqlite3.Error as exc:
            raise PersistenceFailure(
                f"Failed to apply {side.value} {symbol} for {user_email}: {exc}"
            ) from exc
        finally:
            conn.close()

        return replace(txn, id=txn_id)

    # ── Steps ────────────────────────────────────────────────────────────

    @staticmethod
    def _user_id(conn: sqlite3.Connection, user_email: str) -> int:
        row = conn.execute(
            "SELECT id FROM users WHERE email = ?", (user_email,),
        ).fetchone()
        if row is None:
            raise ValidationFailure(f"User not found: {user_email}")
        return row["id"]

    @staticmethod
    def _held(conn: sqlite3.Connection, portfolio_id: int, symbol: str):
        return conn.execute(
            """
            SELECT h.stock_id, h.quantity, s.name
            FROM holdings h
            JOIN stocks s ON s.id = h.stock_id
            WHERE h.portfolio_id = ? AND s.symbol = ?
            """,
            (portfolio_id, symbol),
        ).fetchone()

    def _apply_buy(
        self,
        conn: sqlite3.Connection,
        user_email: str,
        symbol: str,
        quantity: int,
        price: float,
        timestamp: str,
    ) -> str:
        user_id = self._user_id(conn, user_email)
        stock = conn.execute(
            "SELECT id, name FROM stocks WHERE symbol = ?", (symbol,),
        ).fetchone()
        if stock is None:
            raise ValidationFailure(f"Stock not found: {symbol}")

        total_cost = quantity * price
        cur = conn.execute(
            "UPDATE users SET credits = credits - ? WHERE id = ? AND credits >= ?",
            (total_cost, user_id, total_cost),
        )
        if cur.rowcount != 1:
            raise ValidationFailure(
                f"Insufficient funds: {symbol} x{quantity} costs {total_cost:.2f}"
            )

        conn.execute(
            "INSERT OR IGNORE INTO portfolios (user_id) VALUES (?)", (user_id,),
        )
        portfolio_id = conn.execute(
            "SELECT id FROM portfolios WHERE user_id = ?", (user_id,),
        ).fetchone()["id"]

        # Top-ups keep the existing lot's purchase price.
        cur = conn.execute(
            "UPDATE holdings SET quantity = quantity + ? "
            "WHERE portfolio_id = ? AND stock_id = ?",
            (quantity, portfolio_id, stock["id"]),
        )
        if cur.rowcount == 0:
            conn.execute(
                """
                INSERT INTO holdings
                    (portfolio_id, stock_id, quantity, purchase_price, purchase_date)
                VALUES (?, ?, ?, ?, ?)
                """,
                (portfolio_id, stock["id"], quantity, price, timestamp),
            )
        return stock["name"] or symbol

    def _apply_sell(
        self,
        conn: sqlite3.Connection,
        user_email: str,
        symbol: str,
        quantity: int,
        price: float,
    ) -> str:
        user_id = self._user_id(conn, user_email)
        portfolio = conn.execute(
            "SELECT id FROM portfolios WHERE user_id = ?", (user_id,),
        ).fetchone()
        if portfolio is None:
            raise ValidationFailure(f"Stock not found in portfolio: {symbol}")

        held = self._held(conn, portfolio["id"], symbol)
        if held is None:
            raise ValidationFailure(f"Stock not found in portfolio: {symbol}")

        cur = conn.execute(
            "UPDATE holdings SET quantity = quantity - ? "
            "WHERE portfolio_id = ? AND stock_id = ? AND quantity >= ?",
            (quantity, portfolio["id"], held["stock_id"], quantity),
        )
        if cur.rowcount != 1:
            raise ValidationFailure(
                f"Insufficient shares: hold {held['quantity']} {symbol}, "
                f"selling {quantity}"
            )
        conn.execute(
            "DELETE FROM holdings WHERE portfolio_id = ? AND stock_id = ? "
            "AND quantity = 0",
            (portfolio["id"], held["stock_id"]),
        )

        conn.execute(
            "UPDATE users SET credits = credits + ? WHERE id = ?",
            (quantity * price, user_id),
        )
        return held["name"] or symbol
