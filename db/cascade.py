"""Release dependents when a blocker finishes.

Called by the engine exactly when a task enters done or archived. A
dependent is released only when its last open blocker finishes and it is
sitting in blocked; anything else is left alone. Re-running for the same
blocker is a no-op because released dependents are no longer blocked.
"""

import logging
from collections.abc import Callable

from db.dependencies import DependencyGraph
from db.models import Task
from db.state_machine import TaskStatus
from db.store import TaskStore

logger = logging.getLogger(__name__)

Transition = Callable[[int, TaskStatus], Task]


class CompletionCascade:
    def __init__(
        self, store: TaskStore, graph: DependencyGraph, transition: Transition
    ) -> None:
        self.store = store
        self.graph = graph
        self._transition = transition

    def process_completed_blocker(self, blocker_id: int) -> list[Task]:
        """Move fully unblocked dependents of blocker_id out of blocked.

        Dependents go to queued when their edge has auto_queue set, otherwise
        back to backlog. Returns the tasks that were transitioned.
        """
        unblocked: list[Task] = []
        with self.store.transaction():
            for edge in self.store.get_edges_from(blocker_id):
                if self.graph.get_open_blocker_count(edge.blocked_id) > 0:
                    continue

                dependent = self.store.get_task(edge.blocked_id)
                if dependent is None or dependent.status is not TaskStatus.BLOCKED:
                    continue

                target = TaskStatus.QUEUED if edge.auto_queue else TaskStatus.BACKLOG
                unblocked.append(self._transition(dependent.id, target))

        if unblocked:
            logger.info(
                "Task %d finished; unblocked %s",
                blocker_id,
                ", ".join(f"#{t.id} -> {t.status.value}" for t in unblocked),
            )
        return unblocked
