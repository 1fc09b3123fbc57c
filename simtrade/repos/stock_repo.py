"""Stock catalog repository — symbols, names and last known prices."""

from datetime import datetime, timezone
from typing import Optional

from simtrade.models.portfolio import Stock
from simtrade.repos.db import get_connection


class StockRepo:
    """Data access layer for the ``stocks`` catalog.

    Args:
        db_path: Path to the SQLite database file.
    """

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path

    def upsert_stock(self, symbol: str, name: str, price: float) -> int:
        """Insert or refresh a catalog entry.  Returns its ``id``."""
        now = datetime.now(timezone.utc).isoformat()
        conn = get_connection(self._db_path)
        try:
            conn.execute(
                """
                INSERT INTO stocks (symbol, name, price, last_updated)
                VALUES (?, ?, ?, ?)
                ON CONFLICT (symbol) DO UPDATE
                SET name = excluded.name,
                    price = excluded.price,
                    last_updated = excluded.last_updated
                """,
                (symbol, name, price, now),
            )
            conn.commit()
            row = conn.execute(
                "SELECT id FROM stocks WHERE symbol = ?", (symbol,),
            ).fetchone()
            return row["id"]
        finally:
            conn.close()

    def get_by_symbol(self, symbol: str) -> Optional[Stock]:
        """Return the catalog entry for *symbol*, or ``None``."""
        conn = get_connection(self._db_path)
        try:
            row = conn.execute(
                "SELECT * FROM stocks WHERE symbol = ?", (symbol,),
            ).fetchone()
            if row is None:
                return None
            return Stock(
                id=row["id"],
                symbol=row["symbol"],
                name=row["name"],
                price=float(row["price"]),
            )
        finally:
            conn.close()

    def delete_stock(self, stock_id: int) -> None:
        """Remove a catalog entry; holdings referring to it become unresolved.

        Fixture helper for building unresolved holdings.
        """
        conn = get_connection(self._db_path)
        try:
            conn.execute("DELETE FROM stocks WHERE id = ?", (stock_id,))
            conn.commit()
        finally:
            conn.close()
