"""Database initialization and connection management.

Runs migrations on first boot, provides connection factory.
"""

import pathlib
import sqlite3


_MIGRATION_DIR = pathlib.Path(__file__).resolve().parent / "migrations"

# Seconds a writer waits on a locked database before raising.
_BUSY_TIMEOUT = 5.0


def init_db(db_path: str) -> None:
    """Initialize the database by running all migration scripts.

    Runs initial schema if tables don't exist, then applies any
    incremental migrations that haven't been applied yet.

    Args:
        db_path: Path to the SQLite database file.
    """
    if db_path != ":memory:":
        pathlib.Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(db_path)
    try:
        cur = conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name='users'"
        )
        if cur.fetchone() is None:
            migration_file = _MIGRATION_DIR / "001_initial_schema.sql"
            conn.executescript(migration_file.read_text(encoding="utf-8"))

        _apply_migration_002(conn)
    finally:
        conn.close()


def _apply_migration_002(conn: sqlite3.Connection) -> None:
    """Add the ``watchlists`` table if missing."""
    cur = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' AND name='watchlists'"
    )
    if cur.fetchone() is None:
        migration_file = _MIGRATION_DIR / "002_add_watchlists.sql"
        conn.executescript(migration_file.read_text(encoding="utf-8"))


def get_connection(db_path: str) -> sqlite3.Connection:
    """Return a new SQLite connection with row-factory enabled.

    Callers are responsible for closing the connection.
    """
    conn = sqlite3.connect(db_path, timeout=_BUSY_TIMEOUT)
    conn.row_factory = sqlite3.Row
    return conn
