"""
Database connection management.

Provides SQLite connection for the delivery ledger.
"""

import sqlite3
from pathlib import Path

DEFAULT_DB_PATH = "feed_relay.db"


def get_connection(db_path: str = DEFAULT_DB_PATH) -> sqlite3.Connection:
    """Create and return a SQLite connection with full synchronous writes.

    Args:
        db_path: Path to SQLite database file

    Returns:
        SQLite connection
    """
    path = Path(db_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path))
    conn.execute("PRAGMA synchronous = FULL")
    return conn
