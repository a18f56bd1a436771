"""Parent/subtask workflow aggregation.

A parent's workflow is the set of tasks whose parent_id points at it. The
workflow is complete when it has at least one subtask and every subtask is
done or archived; at that point the parent is completed automatically and
given a summary built from its subtasks' outputs.
"""

import logging
from collections.abc import Callable

from db.errors import ParentNotFoundError
from db.models import Task, WorkflowStatus
from db.state_machine import TaskStatus, is_terminal, parse_status, status_bucket
from db.store import TaskStore

logger = logging.getLogger(__name__)


def build_workflow_summary(status: WorkflowStatus, subtasks: list[Task]) -> str:
    """Concatenate subtask outputs under a completion header.

    Returns an empty string when no subtask produced output.
    """
    parts = [
        f"## Subtask #{st.id}: {st.title}\n{st.output}"
        for st in subtasks
        if st.output
    ]
    if not parts:
        return ""

    summary = f"Workflow completed: {status.done}/{status.total} subtasks done.\n\n"
    for part in parts:
        summary += part + "\n\n"
    return summary


class WorkflowAggregator:
    def __init__(
        self,
        store: TaskStore,
        transition: Callable[[int, TaskStatus], Task],
        write_output: Callable[[int, str], Task],
    ) -> None:
        self.store = store
        self._transition = transition
        self._write_output = write_output

    def get_workflow_status(self, parent_id: int) -> WorkflowStatus:
        parent = self.store.get_task(parent_id)
        if parent is None:
            raise ParentNotFoundError(f"Parent task {parent_id} not found")

        status = WorkflowStatus(parent_id=parent_id, parent_title=parent.title)
        for raw_status, count in self.store.count_subtasks_by_status(parent_id).items():
            bucket = status_bucket(parse_status(raw_status))
            setattr(status, bucket, getattr(status, bucket) + count)
            status.total += count
        return status

    def check_and_complete_parent(self, parent_id: int) -> bool:
        """Complete the parent if every subtask is done or archived.

        Safe to call at any time: returns False without side effects when the
        workflow is incomplete or the parent is already done/archived.
        """
        with self.store.transaction():
            status = self.get_workflow_status(parent_id)
            if not status.is_complete:
                return False

            parent = self.store.get_task(parent_id)
            if parent is None or is_terminal(parent.status):
                return False

            summary = build_workflow_summary(
                status, self.store.get_subtasks(parent_id)
            )
            if summary:
                self._write_output(parent_id, summary)

            self.store.append_log(
                parent_id,
                "system",
                f"All {status.total} subtask(s) completed. Workflow auto-completing.",
            )
            self._transition(parent_id, TaskStatus.DONE)

        logger.info(
            "Workflow for task %d complete (%d/%d done); parent marked done",
            parent_id,
            status.done,
            status.total,
        )
        return True
