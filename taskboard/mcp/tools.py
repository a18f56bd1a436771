"""MCP tool implementations for task-board.

Each function takes a TaskEngine and explicit params, returns a dict.
Failures come back as {"error": code, "message": ...} rather than raising.
The server module registers these as MCP tools.
"""

from datetime import datetime
from typing import Any

from db.engine import TaskEngine
from db.errors import TaskBoardError
from db.models import Task
from db.state_machine import TaskStatus


def _error(exc: TaskBoardError) -> dict[str, Any]:
    return {"error": exc.code, "message": str(exc)}


def _brief(task: Task) -> dict[str, Any]:
    return {"id": task.id, "title": task.title, "status": task.status.value}


def _parse_time(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(value)


# ── Read tools ────────────────────────────────────────────


def show_task(engine: TaskEngine, task_id: int) -> dict[str, Any]:
    """Return a task with its dependencies and, for parents, workflow status."""
    try:
        task = engine.get_task(task_id)
        blockers, blocked_by = engine.get_all_dependencies(task_id)
        subtasks = engine.get_subtasks(task_id)
    except TaskBoardError as e:
        return _error(e)

    result = task.to_dict()
    result["dependencies"] = {
        "blockers": [_brief(t) for t in blockers],
        "blocked_by": [_brief(t) for t in blocked_by],
        "open_blockers": engine.get_open_blocker_count(task_id),
    }
    if subtasks:
        result["workflow"] = engine.get_workflow_status(task_id).to_dict()
        result["subtasks"] = [_brief(t) for t in subtasks]
    return result


def list_tasks(
    engine: TaskEngine,
    status: str | None = None,
    parent_id: int | None = None,
    limit: int = 50,
) -> dict[str, Any]:
    """Return tasks, pinned first, optionally filtered by status or parent."""
    try:
        tasks = engine.list_tasks(status=status, parent_id=parent_id, limit=limit)
    except TaskBoardError as e:
        return _error(e)
    return {"tasks": [_brief(t) for t in tasks]}


def get_dependencies(engine: TaskEngine, task_id: int) -> dict[str, Any]:
    """Return blockers and dependents for a task."""
    try:
        blockers, blocked_by = engine.get_all_dependencies(task_id)
    except TaskBoardError as e:
        return _error(e)
    return {
        "task_id": task_id,
        "blockers": [_brief(t) for t in blockers],
        "blocked_by": [_brief(t) for t in blocked_by],
        "open_blockers": engine.get_open_blocker_count(task_id),
        "is_blocked": engine.is_blocked(task_id),
    }


def workflow_status(engine: TaskEngine, parent_id: int) -> dict[str, Any]:
    """Return the subtask status breakdown for a parent task."""
    try:
        status = engine.get_workflow_status(parent_id)
        subtasks = engine.get_subtasks(parent_id)
    except TaskBoardError as e:
        return _error(e)
    result = status.to_dict()
    result["subtasks"] = [_brief(t) for t in subtasks]
    return result


# ── Write tools ───────────────────────────────────────────


def create_task(
    engine: TaskEngine,
    title: str,
    body: str = "",
    parent_id: int | None = None,
    status: str = TaskStatus.BACKLOG.value,
    scheduled_at: str | None = None,
    recurrence: str = "",
) -> dict[str, Any]:
    """Create a task, optionally as a subtask or on a schedule."""
    if not title.strip():
        return {"error": "invalid_input", "message": "Title must not be empty"}
    try:
        when = _parse_time(scheduled_at)
    except ValueError:
        return {
            "error": "invalid_input",
            "message": f"Invalid scheduled_at '{scheduled_at}'. Use ISO 8601.",
        }

    try:
        task = engine.create_task(
            title,
            body=body,
            parent_id=parent_id,
            status=status,
            scheduled_at=when,
            recurrence=recurrence,
        )
    except TaskBoardError as e:
        return _error(e)
    return task.to_dict()


def complete_task(
    engine: TaskEngine, task_id: int, summary: str = ""
) -> dict[str, Any]:
    """Store the summary as output, then mark the task done.

    Returns the task plus the dependents that left blocked as a result.
    """
    try:
        engine.get_task(task_id)
        before = {t.id: t.status for t in engine.get_blocked_by(task_id)}
        with engine.store.transaction():
            if summary:
                engine.set_output(task_id, summary)
            task = engine.transition_status(task_id, TaskStatus.DONE)
    except TaskBoardError as e:
        return _error(e)

    unblocked = [
        _brief(t)
        for t in engine.get_blocked_by(task_id)
        if before.get(t.id) is TaskStatus.BLOCKED and t.status is not TaskStatus.BLOCKED
    ]
    return {"task": task.to_dict(), "unblocked": unblocked}


def needs_input(engine: TaskEngine, task_id: int, question: str) -> dict[str, Any]:
    """Record a question for the user and move the task to blocked."""
    if not question.strip():
        return {"error": "invalid_input", "message": "Question must not be empty"}
    try:
        with engine.store.transaction():
            engine.append_log(task_id, "question", question)
            task = engine.transition_status(task_id, TaskStatus.BLOCKED)
    except TaskBoardError as e:
        return _error(e)
    return task.to_dict()


def add_dependency(
    engine: TaskEngine, blocker_id: int, blocked_id: int, auto_queue: bool = False
) -> dict[str, Any]:
    """Add an edge: blocked waits until blocker is done or archived."""
    try:
        dep = engine.add_dependency(blocker_id, blocked_id, auto_queue)
    except TaskBoardError as e:
        return _error(e)
    return dep.to_dict()


def remove_dependency(
    engine: TaskEngine, blocker_id: int, blocked_id: int
) -> dict[str, Any]:
    """Remove an edge. The formerly blocked task keeps its current status."""
    try:
        engine.remove_dependency(blocker_id, blocked_id)
    except TaskBoardError as e:
        return _error(e)
    return {"removed": True, "blocker_id": blocker_id, "blocked_id": blocked_id}
