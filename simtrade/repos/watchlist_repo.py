"""Watchlist repository — per-user symbols scanned for signals."""

from simtrade.repos.db import get_connection


class WatchlistRepo:
    """Data access layer for the ``watchlists`` table.

    Args:
        db_path: Path to the SQLite database file.
    """

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path

    def add_symbol(self, user_id: int, symbol: str) -> None:
        conn = get_connection(self._db_path)
        try:
            conn.execute(
                "INSERT OR IGNORE INTO watchlists (user_id, symbol) VALUES (?, ?)",
                (user_id, symbol),
            )
            conn.commit()
        finally:
            conn.close()

    def get_symbols(self, user_id: int) -> list[str]:
        """Return the user's watchlist in insertion order."""
        conn = get_connection(self._db_path)
        try:
            rows = conn.execute(
                "SELECT symbol FROM watchlists WHERE user_id = ? ORDER BY rowid",
                (user_id,),
            ).fetchall()
            return [r["symbol"] for r in rows if r["symbol"]]
        finally:
            conn.close()
