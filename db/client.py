"""Database connection helper for task-board.

Every connection enables WAL mode, foreign keys, and a busy timeout so the
interactive surfaces and the background schedule runner can share one file.
"""

import sqlite3
from pathlib import Path

BUSY_TIMEOUT_MS = 5000


def get_connection(db_path: str | Path) -> sqlite3.Connection:
    """Create a new SQLite connection with WAL mode and foreign keys enabled."""
    db_path = Path(db_path)
    db_path.parent.mkdir(parents=True, exist_ok=True)

    # Request handlers may open, use and close a connection on different threads.
    conn = sqlite3.connect(
        str(db_path), timeout=BUSY_TIMEOUT_MS / 1000, check_same_thread=False
    )
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")
    conn.execute(f"PRAGMA busy_timeout={BUSY_TIMEOUT_MS}")
    conn.row_factory = sqlite3.Row
    return conn
