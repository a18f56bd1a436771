"""SQLite persistence for tasks, dependency edges and task logs.

TaskStore is the only place that talks SQL. It owns one connection and
exposes a re-entrant transaction so each engine operation (read graph,
decide, write) is observed atomically by other writers.
"""

import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any

from db.models import Dependency, Task
from db.state_machine import TERMINAL_STATUSES, TaskStatus

# Columns callers may write through update_task(). id and created_at are fixed.
UPDATABLE_COLUMNS = frozenset(
    {
        "title",
        "body",
        "status",
        "parent_id",
        "output",
        "pinned",
        "scheduled_at",
        "recurrence",
        "last_run_at",
        "started_at",
        "completed_at",
    }
)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class TaskStore:
    """Task, edge and log access over a single SQLite connection."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn
        self._depth = 0

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Run the enclosed block in one write transaction.

        The outermost call takes the write lock up front (BEGIN IMMEDIATE)
        so reads inside the block cannot go stale before the writes land.
        Nested calls join the outer transaction.
        """
        if self._depth > 0:
            self._depth += 1
            try:
                yield self.conn
            finally:
                self._depth -= 1
            return

        if not self.conn.in_transaction:
            self.conn.execute("BEGIN IMMEDIATE")
        self._depth = 1
        try:
            yield self.conn
        except BaseException:
            self.conn.rollback()
            raise
        else:
            self.conn.commit()
        finally:
            self._depth = 0

    # ── Tasks ─────────────────────────────────────────────

    def create_task(
        self,
        title: str,
        body: str = "",
        status: TaskStatus = TaskStatus.BACKLOG,
        parent_id: int | None = None,
        scheduled_at: str | None = None,
        recurrence: str = "",
    ) -> Task:
        now = _now()
        cursor = self.conn.execute(
            """INSERT INTO tasks
               (title, body, status, parent_id, scheduled_at, recurrence, created_at, updated_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
            (title, body, status.value, parent_id, scheduled_at, recurrence, now, now),
        )
        task = self.get_task(cursor.lastrowid)
        assert task is not None
        return task

    def get_task(self, task_id: int) -> Task | None:
        row = self.conn.execute(
            "SELECT * FROM tasks WHERE id = ?", (task_id,)
        ).fetchone()
        if row is None:
            return None
        return Task.from_row(row)

    def list_tasks(
        self,
        status: TaskStatus | None = None,
        parent_id: int | None = None,
        limit: int | None = None,
    ) -> list[Task]:
        query = "SELECT * FROM tasks WHERE 1 = 1"
        params: list[Any] = []
        if status is not None:
            query += " AND status = ?"
            params.append(status.value)
        if parent_id is not None:
            query += " AND parent_id = ?"
            params.append(parent_id)
        query += " ORDER BY pinned DESC, id ASC"
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)
        rows = self.conn.execute(query, params).fetchall()
        return [Task.from_row(r) for r in rows]

    def update_task(self, task_id: int, fields: dict[str, Any]) -> None:
        """Write the given columns and bump updated_at."""
        unknown = set(fields) - UPDATABLE_COLUMNS
        if unknown:
            raise ValueError(f"Cannot update task columns: {sorted(unknown)}")

        updates: list[str] = []
        params: list[Any] = []
        for column, value in fields.items():
            if isinstance(value, TaskStatus):
                value = value.value
            updates.append(f"{column} = ?")
            params.append(value)
        updates.append("updated_at = ?")
        params.append(_now())
        params.append(task_id)

        self.conn.execute(
            f"UPDATE tasks SET {', '.join(updates)} WHERE id = ?",  # noqa: S608
            params,
        )

    def delete_task(self, task_id: int) -> None:
        self.conn.execute("DELETE FROM tasks WHERE id = ?", (task_id,))

    def get_subtasks(self, parent_id: int) -> list[Task]:
        rows = self.conn.execute(
            "SELECT * FROM tasks WHERE parent_id = ? ORDER BY id ASC",
            (parent_id,),
        ).fetchall()
        return [Task.from_row(r) for r in rows]

    def count_subtasks_by_status(self, parent_id: int) -> dict[str, int]:
        rows = self.conn.execute(
            """SELECT status, COUNT(*) AS cnt
               FROM tasks
               WHERE parent_id = ?
               GROUP BY status""",
            (parent_id,),
        ).fetchall()
        return {row["status"]: row["cnt"] for row in rows}

    def get_due_scheduled(self, now: str) -> list[Task]:
        """Backlog tasks whose scheduled_at (UTC ISO) is at or before now."""
        rows = self.conn.execute(
            """SELECT * FROM tasks
               WHERE scheduled_at IS NOT NULL
                 AND scheduled_at <= ?
                 AND status = ?
               ORDER BY scheduled_at ASC""",
            (now, TaskStatus.BACKLOG.value),
        ).fetchall()
        return [Task.from_row(r) for r in rows]

    # ── Dependency edges ──────────────────────────────────

    def insert_dependency(
        self, blocker_id: int, blocked_id: int, auto_queue: bool
    ) -> Dependency:
        """Insert an edge. Raises sqlite3.IntegrityError on a duplicate pair."""
        cursor = self.conn.execute(
            """INSERT INTO task_dependencies (blocker_id, blocked_id, auto_queue, created_at)
               VALUES (?, ?, ?, ?)""",
            (blocker_id, blocked_id, int(auto_queue), _now()),
        )
        row = self.conn.execute(
            "SELECT * FROM task_dependencies WHERE id = ?", (cursor.lastrowid,)
        ).fetchone()
        return Dependency.from_row(row)

    def delete_dependency(self, blocker_id: int, blocked_id: int) -> int:
        cursor = self.conn.execute(
            "DELETE FROM task_dependencies WHERE blocker_id = ? AND blocked_id = ?",
            (blocker_id, blocked_id),
        )
        return cursor.rowcount

    def update_auto_queue(self, blocker_id: int, blocked_id: int, flag: bool) -> int:
        cursor = self.conn.execute(
            """UPDATE task_dependencies SET auto_queue = ?
               WHERE blocker_id = ? AND blocked_id = ?""",
            (int(flag), blocker_id, blocked_id),
        )
        return cursor.rowcount

    def get_dependency(self, blocker_id: int, blocked_id: int) -> Dependency | None:
        row = self.conn.execute(
            """SELECT * FROM task_dependencies
               WHERE blocker_id = ? AND blocked_id = ?""",
            (blocker_id, blocked_id),
        ).fetchone()
        if row is None:
            return None
        return Dependency.from_row(row)

    def get_edges_from(self, blocker_id: int) -> list[Dependency]:
        rows = self.conn.execute(
            "SELECT * FROM task_dependencies WHERE blocker_id = ? ORDER BY blocked_id",
            (blocker_id,),
        ).fetchall()
        return [Dependency.from_row(r) for r in rows]

    def get_blocked_ids(self, blocker_id: int) -> list[int]:
        rows = self.conn.execute(
            "SELECT blocked_id FROM task_dependencies WHERE blocker_id = ?",
            (blocker_id,),
        ).fetchall()
        return [row["blocked_id"] for row in rows]

    def get_blockers(self, task_id: int) -> list[Task]:
        rows = self.conn.execute(
            """SELECT t.* FROM tasks t
               JOIN task_dependencies d ON t.id = d.blocker_id
               WHERE d.blocked_id = ?
               ORDER BY t.id""",
            (task_id,),
        ).fetchall()
        return [Task.from_row(r) for r in rows]

    def get_blocked_by(self, task_id: int) -> list[Task]:
        rows = self.conn.execute(
            """SELECT t.* FROM tasks t
               JOIN task_dependencies d ON t.id = d.blocked_id
               WHERE d.blocker_id = ?
               ORDER BY t.id""",
            (task_id,),
        ).fetchall()
        return [Task.from_row(r) for r in rows]

    def count_open_blockers(self, task_id: int) -> int:
        terminal = [s.value for s in TERMINAL_STATUSES]
        row = self.conn.execute(
            """SELECT COUNT(*) AS cnt
               FROM task_dependencies d
               JOIN tasks t ON d.blocker_id = t.id
               WHERE d.blocked_id = ? AND t.status NOT IN (?, ?)""",
            (task_id, *terminal),
        ).fetchone()
        return row["cnt"]

    # ── Logs ──────────────────────────────────────────────

    def append_log(self, task_id: int, line_type: str, content: str) -> None:
        self.conn.execute(
            "INSERT INTO task_logs (task_id, line_type, content, created_at) VALUES (?, ?, ?, ?)",
            (task_id, line_type, content, _now()),
        )

    def get_logs(self, task_id: int, limit: int = 1000) -> list[dict[str, Any]]:
        rows = self.conn.execute(
            """SELECT id, task_id, line_type, content, created_at
               FROM task_logs
               WHERE task_id = ?
               ORDER BY id DESC
               LIMIT ?""",
            (task_id, limit),
        ).fetchall()
        return [dict(r) for r in rows]
