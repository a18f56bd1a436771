"""Event emission for task lifecycle changes.

The engine reports every mutation through an EventNotifier. The default
implementation, EventLogNotifier, inserts an event row so the API server
can broadcast it via websocket.
"""

import json
import sqlite3
import uuid
from datetime import datetime, timezone
from typing import Any, Protocol

from db.models import Task


class EventNotifier(Protocol):
    """Receiver for task lifecycle notifications."""

    def emit_task_created(self, task: Task) -> None: ...

    def emit_task_updated(
        self, task: Task, changes: dict[str, dict[str, Any]]
    ) -> None: ...

    def emit_task_deleted(self, task_id: int, title: str) -> None: ...

    def emit_task_pinned(self, task: Task) -> None: ...

    def emit_task_unpinned(self, task: Task) -> None: ...


def emit_event(
    conn: sqlite3.Connection,
    event_type: str,
    payload: dict[str, Any],
) -> str:
    """Insert an event row and return its ID.

    The caller manages conn.commit() so the data write and event
    emission are in the same transaction.

    Args:
        conn: Active SQLite connection.
        event_type: One of 'task_created', 'task_updated', 'task_deleted',
                    'task_pinned', 'task_unpinned'.
        payload: JSON-serializable dict with event details.

    Returns:
        The generated event ID (UUID4).
    """
    event_id = str(uuid.uuid4())
    now = datetime.now(timezone.utc).isoformat()
    conn.execute(
        "INSERT INTO events (id, type, payload, created_at) VALUES (?, ?, ?, ?)",
        (event_id, event_type, json.dumps(payload), now),
    )
    return event_id


class EventLogNotifier:
    """EventNotifier that appends to the events table."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn

    def emit_task_created(self, task: Task) -> None:
        emit_event(self.conn, "task_created", {"task_id": task.id})

    def emit_task_updated(
        self, task: Task, changes: dict[str, dict[str, Any]]
    ) -> None:
        emit_event(
            self.conn, "task_updated", {"task_id": task.id, "changes": changes}
        )

    def emit_task_deleted(self, task_id: int, title: str) -> None:
        emit_event(self.conn, "task_deleted", {"task_id": task_id, "title": title})

    def emit_task_pinned(self, task: Task) -> None:
        emit_event(self.conn, "task_pinned", {"task_id": task.id})

    def emit_task_unpinned(self, task: Task) -> None:
        emit_event(self.conn, "task_unpinned", {"task_id": task.id})
