"""Schema creation and migration logic for task-board.

Migrations are idempotent: running them multiple times has no effect
because all CREATE statements use IF NOT EXISTS and column additions
tolerate columns that already exist.

Can be run directly:
    python -m db.migrations [db_path]
"""

import sqlite3
import sys
from pathlib import Path

from db.client import get_connection
from db.schema import INDEXES, TABLE_CREATION_ORDER, TABLES

# Columns added after the first release. Older databases pick them up here.
COLUMN_MIGRATIONS = [
    "ALTER TABLE tasks ADD COLUMN output TEXT NOT NULL DEFAULT ''",
    "ALTER TABLE tasks ADD COLUMN pinned INTEGER NOT NULL DEFAULT 0",
    "ALTER TABLE tasks ADD COLUMN scheduled_at TEXT",
    "ALTER TABLE tasks ADD COLUMN recurrence TEXT NOT NULL DEFAULT ''",
    "ALTER TABLE tasks ADD COLUMN last_run_at TEXT",
    "ALTER TABLE task_dependencies ADD COLUMN auto_queue INTEGER NOT NULL DEFAULT 0",
]


def run_migrations(conn: sqlite3.Connection) -> None:
    """Create all tables and indexes in dependency order. Idempotent."""
    for table_name in TABLE_CREATION_ORDER:
        conn.execute(TABLES[table_name])
    conn.commit()

    for statement in COLUMN_MIGRATIONS:
        try:
            conn.execute(statement)
            conn.commit()
        except sqlite3.OperationalError:
            pass  # Column already exists

    for statement in INDEXES:
        conn.execute(statement)
    conn.commit()


def init_db(db_path: str | Path) -> sqlite3.Connection:
    """Open a connection, run migrations, and return the ready connection."""
    conn = get_connection(db_path)
    run_migrations(conn)
    return conn


def main() -> None:
    """CLI entry point for running migrations directly."""
    if len(sys.argv) > 1:
        db_path = sys.argv[1]
    else:
        db_path = "taskboard.db"

    print(f"Running migrations on {db_path}...")
    conn = init_db(db_path)

    journal_mode = conn.execute("PRAGMA journal_mode").fetchone()[0]
    print(f"Journal mode: {journal_mode}")

    tables = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' ORDER BY name"
    ).fetchall()
    print(f"Tables created: {[t[0] for t in tables]}")

    conn.close()
    print("Done.")


if __name__ == "__main__":
    main()
