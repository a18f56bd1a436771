"""Row types returned by the task store and engine."""

import sqlite3
from dataclasses import asdict, dataclass
from typing import Any

from db.state_machine import TaskStatus


@dataclass
class Task:
    id: int
    title: str
    status: TaskStatus
    body: str = ""
    parent_id: int | None = None
    output: str = ""
    pinned: bool = False
    scheduled_at: str | None = None
    recurrence: str = ""
    last_run_at: str | None = None
    created_at: str = ""
    updated_at: str = ""
    started_at: str | None = None
    completed_at: str | None = None

    @property
    def is_recurring(self) -> bool:
        return self.recurrence != ""

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "Task":
        return cls(
            id=row["id"],
            title=row["title"],
            status=TaskStatus(row["status"]),
            body=row["body"] or "",
            parent_id=row["parent_id"],
            output=row["output"] or "",
            pinned=bool(row["pinned"]),
            scheduled_at=row["scheduled_at"],
            recurrence=row["recurrence"] or "",
            last_run_at=row["last_run_at"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            started_at=row["started_at"],
            completed_at=row["completed_at"],
        )

    def to_dict(self) -> dict[str, Any]:
        result = asdict(self)
        result["status"] = self.status.value
        return result


@dataclass
class Dependency:
    """A blocking edge: blocker must finish before blocked may proceed."""

    id: int
    blocker_id: int
    blocked_id: int
    auto_queue: bool
    created_at: str

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "Dependency":
        return cls(
            id=row["id"],
            blocker_id=row["blocker_id"],
            blocked_id=row["blocked_id"],
            auto_queue=bool(row["auto_queue"]),
            created_at=row["created_at"],
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class WorkflowStatus:
    """Aggregate status of a parent's subtasks. Derived, never stored."""

    parent_id: int
    parent_title: str
    total: int = 0
    pending: int = 0
    processing: int = 0
    blocked: int = 0
    done: int = 0
    archived: int = 0

    @property
    def is_complete(self) -> bool:
        return self.total > 0 and self.done + self.archived == self.total

    def to_dict(self) -> dict[str, Any]:
        result = asdict(self)
        result["is_complete"] = self.is_complete
        return result
