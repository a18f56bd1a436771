"""FastAPI dependency injection and DB helpers for task-board."""

import json
import sqlite3
from collections.abc import Generator
from datetime import timezone, tzinfo
from typing import Any

from fastapi import Depends

from db.client import get_connection
from db.engine import TaskEngine, open_engine
from db.store import TaskStore

# Module-level settings, set by app startup
_db_path: str = ""
_tz: tzinfo = timezone.utc


def set_db_path(path: str) -> None:
    """Set the database path used by the DB dependency."""
    global _db_path  # noqa: PLW0603
    _db_path = path


def set_timezone(tz: tzinfo) -> None:
    """Set the zone the engine uses for recurrence arithmetic."""
    global _tz  # noqa: PLW0603
    _tz = tz


def get_db() -> Generator[sqlite3.Connection, None, None]:
    """FastAPI dependency that yields a DB connection per request."""
    conn = get_connection(_db_path)
    try:
        yield conn
    finally:
        conn.close()


def get_engine(conn: sqlite3.Connection = Depends(get_db)) -> TaskEngine:
    """FastAPI dependency that builds a TaskEngine over the request connection."""
    return open_engine(conn, _tz)


def get_unconsumed_events(conn: sqlite3.Connection) -> list[dict[str, Any]]:
    """Fetch all unconsumed events from the events table."""
    rows = conn.execute(
        "SELECT id, type, payload, created_at FROM events WHERE consumed = 0 ORDER BY created_at"
    ).fetchall()
    return [
        {
            "id": row["id"],
            "type": row["type"],
            "payload": json.loads(row["payload"]),
            "created_at": row["created_at"],
        }
        for row in rows
    ]


def mark_event_consumed(conn: sqlite3.Connection, event_id: str) -> None:
    """Mark an event as consumed."""
    conn.execute("UPDATE events SET consumed = 1 WHERE id = ?", (event_id,))
    conn.commit()


def enrich_event_payload(
    conn: sqlite3.Connection, event: dict[str, Any]
) -> dict[str, Any]:
    """Build a websocket event with the full task, not just its ID.

    task_updated events keep their field diff under "changes".
    """
    event_type = event["type"]
    payload = event["payload"]

    if event_type in (
        "task_created",
        "task_updated",
        "task_pinned",
        "task_unpinned",
    ):
        task_id = payload.get("task_id")
        if task_id is not None:
            task = TaskStore(conn).get_task(task_id)
            if task:
                enriched = task.to_dict()
                if "changes" in payload:
                    enriched["changes"] = payload["changes"]
                return {"type": event_type, "payload": enriched}

    # Fallback: return raw payload (task_deleted, or the task is gone)
    return {"type": event_type, "payload": payload}
