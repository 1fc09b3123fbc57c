"""Portfolio repository — SQLite access to portfolios and their holdings.

Holdings are joined against the stock catalog with a LEFT JOIN so that rows
whose stock reference no longer resolves are still returned (with
``symbol=None``) for the sanitizer to discard.
"""

import sqlite3
from typing import Optional

from simtrade.errors import PersistenceFailure
from simtrade.models.portfolio import Holding, Portfolio
from simtrade.repos.db import get_connection


_HOLDINGS_SQL = """
    SELECT h.stock_id, h.quantity, h.purchase_price, h.purchase_date,
           s.symbol, s.price AS stock_price
    FROM holdings h
    LEFT JOIN stocks s ON s.id = h.stock_id
    WHERE h.portfolio_id = ?
    ORDER BY h.rowid
"""


def _row_to_holding(row: sqlite3.Row) -> Holding:
    return Holding(
        stock_id=row["stock_id"],
        symbol=row["symbol"],
        quantity=int(row["quantity"]),
        purchase_price=(
            float(row["purchase_price"])
            if row["purchase_price"] is not None else None
        ),
        purchase_date=row["purchase_date"],
        stock_price=(
            float(row["stock_price"])
            if row["stock_price"] is not None else None
        ),
    )


class PortfolioRepo:
    """Data access layer for portfolios.

    Args:
        db_path: Path to the SQLite database file.
    """

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path

    # ── Read ─────────────────────────────────────────────────────────────

    def get(self, user_id: int) -> Optional[Portfolio]:
        """Return the user's portfolio with all stored holdings, or ``None``."""
        conn = get_connection(self._db_path)
        try:
            row = conn.execute(
                "SELECT id, user_id FROM portfolios WHERE user_id = ?",
                (user_id,),
            ).fetchone()
            if row is None:
                return None
            holdings = conn.execute(_HOLDINGS_SQL, (row["id"],)).fetchall()
            return Portfolio(
                id=row["id"],
                user_id=row["user_id"],
                holdings=tuple(_row_to_holding(h) for h in holdings),
            )
        finally:
            conn.close()

    # ── Write ────────────────────────────────────────────────────────────

    def get_or_create(self, user_id: int) -> int:
        """Return the portfolio ``id`` for *user_id*, creating it if needed.

        Fixture helper: trades create portfolios inside ``LedgerRepo``.
        """
        conn = get_connection(self._db_path)
        try:
            conn.execute(
                "INSERT OR IGNORE INTO portfolios (user_id) VALUES (?)",
                (user_id,),
            )
            conn.commit()
            row = conn.execute(
                "SELECT id FROM portfolios WHERE user_id = ?", (user_id,),
            ).fetchone()
            return row["id"]
        finally:
            conn.close()

    def insert_holding(
        self,
        portfolio_id: int,
        stock_id: int,
        quantity: int,
        purchase_price: Optional[float] = None,
        purchase_date: Optional[str] = None,
    ) -> None:
        """Insert a raw holding row (no validation).

        Fixture helper for seeding legacy or malformed rows.
        """
        conn = get_connection(self._db_path)
        try:
            conn.execute(
                """
                INSERT INTO holdings
                    (portfolio_id, stock_id, quantity, purchase_price, purchase_date)
                VALUES (?, ?, ?, ?, ?)
                """,
                (portfolio_id, stock_id, quantity, purchase_price, purchase_date),
            )
            conn.commit()
        finally:
            conn.close()

    def replace_holdings(self, portfolio_id: int, holdings: list[Holding]) -> None:
        """Atomically replace a portfolio's holding set.

        Raises ``PersistenceFailure`` if the write fails; nothing is changed
        in that case.
        """
        conn = get_connection(self._db_path)
        try:
            with conn:
                conn.execute(
                    "DELETE FROM holdings WHERE portfolio_id = ?", (portfolio_id,),
                )
                conn.executemany(
                    """
                    INSERT INTO holdings
                        (portfolio_id, stock_id, quantity,
                         purchase_price, purchase_date)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    [
                        (portfolio_id, h.stock_id, h.quantity,
                         h.purchase_price, h.purchase_date)
                        for h in holdings
                    ],
                )
                conn.execute(
                    "UPDATE portfolios SET last_updated = "
                    "strftime('%Y-%m-%dT%H:%M:%fZ', 'now') WHERE id = ?",
                    (portfolio_id,),
                )
        except sqlite3.Error as exc:
            raise PersistenceFailure(
                f"Failed to save portfolio {portfolio_id}: {exc}"
            ) from exc
        finally:
            conn.close()

    def save_holding(self, portfolio_id: int, holding: Holding) -> None:
        """Upsert a single holding row.  Raises ``PersistenceFailure``."""
        conn = get_connection(self._db_path)
        try:
            with conn:
                conn.execute(
                    """
                    INSERT INTO holdings
                        (portfolio_id, stock_id, quantity,
                         purchase_price, purchase_date)
                    VALUES (?, ?, ?, ?, ?)
                    ON CONFLICT (portfolio_id, stock_id) DO UPDATE
                    SET quantity = excluded.quantity,
                        purchase_price = excluded.purchase_price,
                        purchase_date = excluded.purchase_date
                    """,
                    (portfolio_id, holding.stock_id, holding.quantity,
                     holding.purchase_price, holding.purchase_date),
                )
        except sqlite3.Error as exc:
            raise PersistenceFailure(
                f"Failed to save holding {holding.stock_id}: {exc}"
            ) from exc
        finally:
            conn.close()

    def delete_holding(self, portfolio_id: int, stock_id: int) -> None:
        """Remove a single holding row.  Raises ``PersistenceFailure``."""
        conn = get_connection(self._db_path)
        try:
            with conn:
                conn.execute(
                    "DELETE FROM holdings WHERE portfolio_id = ? AND stock_id = ?",
                    (portfolio_id, stock_id),
                )
        except sqlite3.Error as exc:
            raise PersistenceFailure(
                f"Failed to delete holding {stock_id}: {exc}"
            ) from exc
        finally:
            conn.close()
