"""Task engine: the single entry point for task state changes.

TaskEngine owns a TaskStore and an optional EventNotifier. Status changes go
through transition_status(), which applies the state machine, reports the
field diff, releases dependents when a task finishes, and asks the workflow
aggregator whether the task's parent can complete. Every public mutating
operation runs inside one store transaction.
"""

import logging
import sqlite3
from datetime import datetime, timezone, tzinfo
from typing import Any

from db.cascade import CompletionCascade
from db.dependencies import DependencyGraph
from db.errors import ParentNotFoundError, TaskBoardError, TaskNotFoundError
from db.events import EventLogNotifier, EventNotifier
from db.models import Dependency, Task, WorkflowStatus
from db.recurrence import next_run_time, validate_recurrence
from db.state_machine import (
    TaskStatus,
    is_terminal,
    parse_status,
    status_changes,
)
from db.store import TaskStore
from db.workflow import WorkflowAggregator

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class TaskEngine:
    def __init__(
        self,
        store: TaskStore,
        notifier: EventNotifier | None = None,
        tz: tzinfo | None = None,
    ) -> None:
        self.store = store
        self.notifier = notifier
        self.tz = tz or timezone.utc
        self.graph = DependencyGraph(store)
        self.cascade = CompletionCascade(store, self.graph, self.transition_status)
        self.workflow = WorkflowAggregator(
            store, self.transition_status, self.set_output
        )

    # ── Helpers ───────────────────────────────────────────

    def _notify(self, method: str, *args: Any) -> None:
        if self.notifier is None:
            return
        getattr(self.notifier, method)(*args)

    def _require_task(self, task_id: int) -> Task:
        task = self.store.get_task(task_id)
        if task is None:
            raise TaskNotFoundError(f"Task {task_id} not found")
        return task

    def _update(self, task: Task, fields: dict[str, Any]) -> Task:
        """Write the fields that actually differ and report the diff."""
        changes = {
            field: {"old": getattr(task, field), "new": value}
            for field, value in fields.items()
            if getattr(task, field) != value
        }
        if not changes:
            return task
        self.store.update_task(task.id, {f: c["new"] for f, c in changes.items()})
        updated = self._require_task(task.id)
        self._notify("emit_task_updated", updated, changes)
        return updated

    def _to_utc_iso(self, value: datetime | None) -> str | None:
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=self.tz)
        return value.astimezone(timezone.utc).isoformat()

    def _local(self, value: datetime | None) -> datetime:
        if value is None:
            return datetime.now(self.tz)
        if value.tzinfo is None:
            return value.replace(tzinfo=self.tz)
        return value.astimezone(self.tz)

    # ── Tasks ─────────────────────────────────────────────

    def create_task(
        self,
        title: str,
        body: str = "",
        parent_id: int | None = None,
        status: str | TaskStatus = TaskStatus.BACKLOG,
        scheduled_at: datetime | None = None,
        recurrence: str = "",
    ) -> Task:
        initial = parse_status(status)
        validate_recurrence(recurrence)
        with self.store.transaction():
            if parent_id is not None and self.store.get_task(parent_id) is None:
                raise ParentNotFoundError(f"Parent task {parent_id} not found")
            task = self.store.create_task(
                title,
                body=body,
                status=initial,
                parent_id=parent_id,
                scheduled_at=self._to_utc_iso(scheduled_at),
                recurrence=recurrence,
            )
            self._notify("emit_task_created", task)
        return task

    def get_task(self, task_id: int) -> Task:
        return self._require_task(task_id)

    def list_tasks(
        self,
        status: str | TaskStatus | None = None,
        parent_id: int | None = None,
        limit: int | None = None,
    ) -> list[Task]:
        parsed = parse_status(status) if status is not None else None
        return self.store.list_tasks(status=parsed, parent_id=parent_id, limit=limit)

    def get_subtasks(self, parent_id: int) -> list[Task]:
        if self.store.get_task(parent_id) is None:
            raise ParentNotFoundError(f"Parent task {parent_id} not found")
        return self.store.get_subtasks(parent_id)

    def update_task(
        self, task_id: int, title: str | None = None, body: str | None = None
    ) -> Task:
        fields: dict[str, Any] = {}
        if title is not None:
            fields["title"] = title
        if body is not None:
            fields["body"] = body
        with self.store.transaction():
            return self._update(self._require_task(task_id), fields)

    def set_output(self, task_id: int, output: str) -> Task:
        with self.store.transaction():
            return self._update(self._require_task(task_id), {"output": output})

    def set_pinned(self, task_id: int, pinned: bool) -> Task:
        with self.store.transaction():
            task = self._require_task(task_id)
            if task.pinned == pinned:
                return task
            updated = self._update(task, {"pinned": pinned})
            self._notify(
                "emit_task_pinned" if pinned else "emit_task_unpinned", updated
            )
        return updated

    def delete_task(self, task_id: int) -> None:
        """Delete a task, its edges and logs. Its subtasks become top-level."""
        with self.store.transaction():
            task = self._require_task(task_id)
            self.store.delete_task(task_id)
            self._notify("emit_task_deleted", task.id, task.title)

    def append_log(self, task_id: int, line_type: str, content: str) -> None:
        with self.store.transaction():
            self._require_task(task_id)
            self.store.append_log(task_id, line_type, content)

    def get_task_logs(self, task_id: int, limit: int = 1000) -> list[dict[str, Any]]:
        self._require_task(task_id)
        return self.store.get_logs(task_id, limit)

    # ── Status transitions ────────────────────────────────

    def transition_status(self, task_id: int, new_status: str | TaskStatus) -> Task:
        """Move a task to new_status and run everything that follows from it.

        Order: write status and timestamps, report the diff, release
        dependents (done/archived only), then check the parent workflow.
        Moving to the current status does nothing at all.
        """
        target = parse_status(new_status)
        with self.store.transaction():
            task = self._require_task(task_id)
            changes = status_changes(
                task.status, task.started_at, task.completed_at, target, _now()
            )
            if not changes:
                logger.debug("Task %d already %s; no-op", task_id, target.value)
                return task

            self.store.update_task(
                task_id, {field: c["new"] for field, c in changes.items()}
            )
            updated = self._require_task(task_id)
            self._notify("emit_task_updated", updated, changes)

            if is_terminal(target):
                self.cascade.process_completed_blocker(task_id)
            if updated.parent_id is not None:
                self.workflow.check_and_complete_parent(updated.parent_id)

            return self._require_task(task_id)

    # ── Dependencies ──────────────────────────────────────

    def add_dependency(
        self, blocker_id: int, blocked_id: int, auto_queue: bool = False
    ) -> Dependency:
        return self.graph.add_dependency(blocker_id, blocked_id, auto_queue)

    def remove_dependency(self, blocker_id: int, blocked_id: int) -> None:
        self.graph.remove_dependency(blocker_id, blocked_id)

    def get_dependency(self, blocker_id: int, blocked_id: int) -> Dependency | None:
        return self.graph.get_dependency(blocker_id, blocked_id)

    def set_auto_queue(self, blocker_id: int, blocked_id: int, flag: bool) -> None:
        self.graph.set_auto_queue(blocker_id, blocked_id, flag)

    def get_blockers(self, task_id: int) -> list[Task]:
        return self.graph.get_blockers(task_id)

    def get_blocked_by(self, task_id: int) -> list[Task]:
        return self.graph.get_blocked_by(task_id)

    def get_all_dependencies(self, task_id: int) -> tuple[list[Task], list[Task]]:
        """Return (blockers, blocked_by) for a task."""
        self._require_task(task_id)
        return self.graph.get_blockers(task_id), self.graph.get_blocked_by(task_id)

    def get_open_blocker_count(self, task_id: int) -> int:
        return self.graph.get_open_blocker_count(task_id)

    def is_blocked(self, task_id: int) -> bool:
        return self.graph.is_blocked(task_id)

    def process_completed_blocker(self, blocker_id: int) -> list[Task]:
        return self.cascade.process_completed_blocker(blocker_id)

    # ── Workflows ─────────────────────────────────────────

    def get_workflow_status(self, parent_id: int) -> WorkflowStatus:
        return self.workflow.get_workflow_status(parent_id)

    def check_and_complete_parent(self, parent_id: int) -> bool:
        return self.workflow.check_and_complete_parent(parent_id)

    # ── Scheduling ────────────────────────────────────────

    def update_schedule(
        self,
        task_id: int,
        scheduled_at: datetime | None,
        recurrence: str = "",
    ) -> Task:
        validate_recurrence(recurrence)
        with self.store.transaction():
            task = self._require_task(task_id)
            return self._update(
                task,
                {
                    "scheduled_at": self._to_utc_iso(scheduled_at),
                    "recurrence": recurrence,
                },
            )

    def queue_scheduled_task(self, task_id: int, now: datetime | None = None) -> Task:
        """Queue one occurrence of a scheduled task.

        Recurring tasks are re-armed for their next run; one-time tasks have
        their schedule cleared. last_run_at records the trigger time either way.
        """
        triggered = self._local(now)
        with self.store.transaction():
            task = self._require_task(task_id)
            if task.is_recurring:
                validate_recurrence(task.recurrence)
                next_run = self._to_utc_iso(next_run_time(task.recurrence, triggered))
            else:
                next_run = None

            task = self._update(
                task,
                {
                    "scheduled_at": next_run,
                    "last_run_at": self._to_utc_iso(triggered),
                },
            )
            queued = self.transition_status(task.id, TaskStatus.QUEUED)

        logger.info(
            "Queued scheduled task %d (next run: %s)", task_id, next_run or "none"
        )
        return queued

    def get_due_scheduled_tasks(self, now: datetime | None = None) -> list[Task]:
        return self.store.get_due_scheduled(self._to_utc_iso(self._local(now)))

    def run_due_scheduled(self, now: datetime | None = None) -> list[Task]:
        """Queue every due scheduled task. A task that fails is logged and skipped."""
        queued: list[Task] = []
        for task in self.get_due_scheduled_tasks(now):
            try:
                queued.append(self.queue_scheduled_task(task.id, now))
            except TaskBoardError:
                logger.exception("Failed to queue scheduled task %d", task.id)
        return queued


def open_engine(conn: sqlite3.Connection, tz: tzinfo | None = None) -> TaskEngine:
    """Build an engine over conn that records events in the events table."""
    return TaskEngine(TaskStore(conn), EventLogNotifier(conn), tz)
