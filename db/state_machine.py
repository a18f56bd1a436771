"""Task status state machine for task-board.

Statuses (terminal marked *):
    backlog, queued, processing, blocked, done*, archived*

Transition rules:
    - Any status may move to any other status.
    - Moving to the current status is a no-op: no timestamps, no events,
      no cascades.
    - processing sets started_at only on the first start.
    - done, blocked and archived set completed_at every time they are entered.
    - done and archived release dependents (see db.cascade) and may complete
      the parent workflow (see db.workflow).

Import status_changes() from here. Do not duplicate this logic.
"""

from enum import Enum
from typing import Any

from db.errors import InvalidStatusError


class TaskStatus(str, Enum):
    BACKLOG = "backlog"
    QUEUED = "queued"
    PROCESSING = "processing"
    BLOCKED = "blocked"
    DONE = "done"
    ARCHIVED = "archived"

    def __str__(self) -> str:
        return self.value


# Statuses that count as resolved for blocking purposes.
TERMINAL_STATUSES = frozenset({TaskStatus.DONE, TaskStatus.ARCHIVED})

# Statuses that stamp completed_at on entry.
COMPLETED_AT_STATUSES = frozenset(
    {TaskStatus.DONE, TaskStatus.BLOCKED, TaskStatus.ARCHIVED}
)


def parse_status(value: str | TaskStatus) -> TaskStatus:
    """Coerce a raw status string into the closed enum.

    Raises InvalidStatusError for anything outside the closed set.
    """
    if isinstance(value, TaskStatus):
        return value
    try:
        return TaskStatus(value)
    except ValueError:
        valid = ", ".join(s.value for s in TaskStatus)
        raise InvalidStatusError(
            f"Invalid status '{value}'. Must be one of: {valid}"
        ) from None


def is_terminal(status: TaskStatus) -> bool:
    return status in TERMINAL_STATUSES


def status_bucket(status: TaskStatus) -> str:
    """Map a status to its workflow aggregation bucket."""
    if status in (TaskStatus.BACKLOG, TaskStatus.QUEUED):
        return "pending"
    if status is TaskStatus.PROCESSING:
        return "processing"
    if status is TaskStatus.BLOCKED:
        return "blocked"
    if status is TaskStatus.DONE:
        return "done"
    if status is TaskStatus.ARCHIVED:
        return "archived"
    raise InvalidStatusError(f"No workflow bucket for status '{status}'")


def status_changes(
    current_status: TaskStatus,
    started_at: str | None,
    completed_at: str | None,
    new_status: TaskStatus,
    now: str,
) -> dict[str, dict[str, Any]]:
    """Compute the field diff for moving a task to new_status.

    Returns a mapping of field -> {"old": ..., "new": ...}. An empty mapping
    means the transition is a no-op.
    """
    if new_status == current_status:
        return {}

    changes: dict[str, dict[str, Any]] = {
        "status": {"old": current_status.value, "new": new_status.value},
    }
    if new_status is TaskStatus.PROCESSING and started_at is None:
        changes["started_at"] = {"old": None, "new": now}
    if new_status in COMPLETED_AT_STATUSES:
        changes["completed_at"] = {"old": completed_at, "new": now}
    return changes
