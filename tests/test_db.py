"""Tests for the database layer.

Verifies:
- DB creation and migrations
- WAL mode and foreign keys enabled
- Idempotent migrations, including column upgrades on an old schema
- Constraint enforcement on dependency edges
- Cascading deletes for edges and logs, SET NULL for subtasks
- TaskStore transaction commit/rollback and nesting
"""

import sqlite3
from datetime import datetime, timezone
from pathlib import Path

import pytest

from db.client import get_connection
from db.migrations import init_db, run_migrations
from db.state_machine import TaskStatus
from db.store import TaskStore


@pytest.fixture()
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "test.db"


@pytest.fixture()
def conn(db_path: Path) -> sqlite3.Connection:
    connection = init_db(db_path)
    yield connection
    connection.close()


@pytest.fixture()
def store(conn: sqlite3.Connection) -> TaskStore:
    return TaskStore(conn)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _table_names(conn: sqlite3.Connection) -> list[str]:
    rows = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' AND name NOT LIKE 'sqlite_%' ORDER BY name"
    ).fetchall()
    return [r[0] for r in rows]


class TestMigrations:
    def test_creates_all_tables(self, conn: sqlite3.Connection) -> None:
        assert _table_names(conn) == [
            "events",
            "task_dependencies",
            "task_logs",
            "tasks",
        ]

    def test_wal_mode_enabled(self, conn: sqlite3.Connection) -> None:
        mode = conn.execute("PRAGMA journal_mode").fetchone()[0]
        assert mode == "wal"

    def test_foreign_keys_enabled(self, conn: sqlite3.Connection) -> None:
        fk = conn.execute("PRAGMA foreign_keys").fetchone()[0]
        assert fk == 1

    def test_idempotent(self, conn: sqlite3.Connection) -> None:
        """Running migrations twice should not raise."""
        run_migrations(conn)
        run_migrations(conn)
        assert len(_table_names(conn)) == 4

    def test_adds_missing_columns_to_old_schema(self, db_path: Path) -> None:
        old = get_connection(db_path)
        old.execute(
            """CREATE TABLE tasks (
                   id INTEGER PRIMARY KEY AUTOINCREMENT,
                   title TEXT NOT NULL,
                   body TEXT NOT NULL DEFAULT '',
                   status TEXT NOT NULL DEFAULT 'backlog',
                   parent_id INTEGER REFERENCES tasks(id) ON DELETE SET NULL,
                   created_at TEXT NOT NULL,
                   updated_at TEXT NOT NULL,
                   started_at TEXT,
                   completed_at TEXT
               )"""
        )
        old.commit()
        old.close()

        upgraded = init_db(db_path)
        columns = {r["name"] for r in upgraded.execute("PRAGMA table_info(tasks)")}
        upgraded.close()
        assert {"output", "pinned", "scheduled_at", "recurrence", "last_run_at"} <= columns


class TestConstraints:
    def test_duplicate_edge_rejected(self, store: TaskStore) -> None:
        a = store.create_task("A")
        b = store.create_task("B")
        store.insert_dependency(a.id, b.id, False)
        with pytest.raises(sqlite3.IntegrityError):
            store.insert_dependency(a.id, b.id, False)

    def test_self_edge_rejected(self, store: TaskStore) -> None:
        a = store.create_task("A")
        with pytest.raises(sqlite3.IntegrityError):
            store.insert_dependency(a.id, a.id, False)

    def test_edge_to_missing_task_rejected(self, store: TaskStore) -> None:
        a = store.create_task("A")
        with pytest.raises(sqlite3.IntegrityError):
            store.insert_dependency(a.id, 999, False)

    def test_delete_task_removes_edges_and_logs(self, store: TaskStore) -> None:
        a = store.create_task("A")
        b = store.create_task("B")
        store.insert_dependency(a.id, b.id, False)
        store.append_log(a.id, "system", "hello")
        store.conn.commit()

        store.delete_task(a.id)
        assert store.get_dependency(a.id, b.id) is None
        assert store.get_logs(a.id) == []

    def test_delete_parent_orphans_subtasks(self, store: TaskStore) -> None:
        parent = store.create_task("Parent")
        child = store.create_task("Child", parent_id=parent.id)
        store.delete_task(parent.id)
        orphan = store.get_task(child.id)
        assert orphan is not None
        assert orphan.parent_id is None


class TestTaskStore:
    def test_create_and_read(self, store: TaskStore) -> None:
        task = store.create_task("Write docs", body="All of them")
        assert task.id > 0
        assert task.status is TaskStatus.BACKLOG
        assert task.body == "All of them"
        assert task.pinned is False
        assert task.created_at == task.updated_at

    def test_ids_are_monotonic(self, store: TaskStore) -> None:
        first = store.create_task("One")
        second = store.create_task("Two")
        store.delete_task(second.id)
        third = store.create_task("Three")
        assert first.id < second.id < third.id

    def test_update_rejects_unknown_columns(self, store: TaskStore) -> None:
        task = store.create_task("A")
        with pytest.raises(ValueError):
            store.update_task(task.id, {"created_at": _now()})

    def test_update_bumps_updated_at(self, store: TaskStore) -> None:
        task = store.create_task("A")
        store.update_task(task.id, {"title": "B"})
        updated = store.get_task(task.id)
        assert updated is not None
        assert updated.title == "B"
        assert updated.updated_at >= task.updated_at

    def test_list_orders_pinned_first(self, store: TaskStore) -> None:
        a = store.create_task("A")
        b = store.create_task("B")
        store.update_task(b.id, {"pinned": True})
        assert [t.id for t in store.list_tasks()] == [b.id, a.id]

    def test_list_filters(self, store: TaskStore) -> None:
        parent = store.create_task("P")
        child = store.create_task("C", parent_id=parent.id, status=TaskStatus.QUEUED)
        assert [t.id for t in store.list_tasks(status=TaskStatus.QUEUED)] == [child.id]
        assert [t.id for t in store.list_tasks(parent_id=parent.id)] == [child.id]
        assert len(store.list_tasks(limit=1)) == 1

    def test_count_subtasks_by_status(self, store: TaskStore) -> None:
        parent = store.create_task("P")
        store.create_task("C1", parent_id=parent.id)
        store.create_task("C2", parent_id=parent.id)
        store.create_task("C3", parent_id=parent.id, status=TaskStatus.DONE)
        assert store.count_subtasks_by_status(parent.id) == {"backlog": 2, "done": 1}

    def test_logs_newest_first(self, store: TaskStore) -> None:
        task = store.create_task("A")
        store.append_log(task.id, "output", "first")
        store.append_log(task.id, "output", "second")
        assert [log["content"] for log in store.get_logs(task.id)] == ["second", "first"]


class TestTransactions:
    def test_commits_on_success(self, store: TaskStore, db_path: Path) -> None:
        with store.transaction():
            store.create_task("Committed")

        other = get_connection(db_path)
        count = other.execute("SELECT COUNT(*) FROM tasks").fetchone()[0]
        other.close()
        assert count == 1

    def test_rolls_back_on_error(self, store: TaskStore) -> None:
        with pytest.raises(RuntimeError):
            with store.transaction():
                store.create_task("Doomed")
                raise RuntimeError("boom")
        assert store.list_tasks() == []

    def test_nested_rolls_back_everything(self, store: TaskStore) -> None:
        with pytest.raises(RuntimeError):
            with store.transaction():
                store.create_task("Outer")
                with store.transaction():
                    store.create_task("Inner")
                raise RuntimeError("boom")
        assert store.list_tasks() == []

    def test_nested_commits_once(self, store: TaskStore) -> None:
        with store.transaction():
            with store.transaction():
                store.create_task("Inner")
            assert store.conn.in_transaction
        assert not store.conn.in_transaction
        assert len(store.list_tasks()) == 1
