"""Dependency graph between tasks.

Edges point blocker -> blocked. A blocked task may not proceed until every
one of its blockers is done or archived. The graph never contains a
self-loop or a cycle: an edge blocker -> blocked closes a cycle exactly when
blocked can already reach blocker, which add_dependency checks with a BFS
before writing anything.
"""

import logging
import sqlite3
from collections import deque

from db.errors import (
    CycleDetectedError,
    DependencyNotFoundError,
    DuplicateDependencyError,
    SelfDependencyError,
    TaskNotFoundError,
)
from db.models import Dependency, Task
from db.store import TaskStore

logger = logging.getLogger(__name__)


class DependencyGraph:
    """Blocking edges between tasks, read fresh from the store on every call."""

    def __init__(self, store: TaskStore) -> None:
        self.store = store

    def would_create_cycle(self, blocker_id: int, blocked_id: int) -> bool:
        """BFS forward from blocked; reaching blocker means the edge closes a cycle."""
        visited: set[int] = set()
        queue = deque([blocked_id])
        while queue:
            current = queue.popleft()
            if current == blocker_id:
                return True
            if current in visited:
                continue
            visited.add(current)
            queue.extend(self.store.get_blocked_ids(current))
        return False

    def add_dependency(
        self, blocker_id: int, blocked_id: int, auto_queue: bool = False
    ) -> Dependency:
        """Add an edge: blocked waits until blocker reaches done/archived.

        A rejected call leaves the graph untouched.
        """
        if blocker_id == blocked_id:
            raise SelfDependencyError("A task cannot block itself")

        with self.store.transaction():
            for tid, label in ((blocker_id, "Blocker"), (blocked_id, "Blocked")):
                if self.store.get_task(tid) is None:
                    raise TaskNotFoundError(f"{label} task {tid} not found")

            if self.would_create_cycle(blocker_id, blocked_id):
                logger.debug(
                    "Rejected dependency %d -> %d: cycle", blocker_id, blocked_id
                )
                raise CycleDetectedError(
                    "Adding this dependency would create a cycle"
                )

            try:
                return self.store.insert_dependency(blocker_id, blocked_id, auto_queue)
            except sqlite3.IntegrityError as e:
                raise DuplicateDependencyError(
                    f"Task {blocker_id} already blocks task {blocked_id}"
                ) from e

    def remove_dependency(self, blocker_id: int, blocked_id: int) -> None:
        with self.store.transaction():
            if self.store.delete_dependency(blocker_id, blocked_id) == 0:
                raise DependencyNotFoundError(
                    f"No dependency {blocker_id} -> {blocked_id}"
                )

    def set_auto_queue(self, blocker_id: int, blocked_id: int, flag: bool) -> None:
        with self.store.transaction():
            if self.store.update_auto_queue(blocker_id, blocked_id, flag) == 0:
                raise DependencyNotFoundError(
                    f"No dependency {blocker_id} -> {blocked_id}"
                )

    def get_dependency(self, blocker_id: int, blocked_id: int) -> Dependency | None:
        return self.store.get_dependency(blocker_id, blocked_id)

    def get_blockers(self, task_id: int) -> list[Task]:
        """Tasks that block task_id."""
        return self.store.get_blockers(task_id)

    def get_blocked_by(self, task_id: int) -> list[Task]:
        """Tasks that task_id blocks."""
        return self.store.get_blocked_by(task_id)

    def get_open_blocker_count(self, task_id: int) -> int:
        """Number of blockers not yet done or archived."""
        return self.store.count_open_blockers(task_id)

    def is_blocked(self, task_id: int) -> bool:
        return self.get_open_blocker_count(task_id) > 0
