"""Tests for the taskboard command-line interface."""

import json
from pathlib import Path

import pytest
from click.testing import CliRunner, Result

from taskboard.cli import main
from taskboard.config import CONFIG_FILENAME


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.delenv("TASKBOARD_CONFIG", raising=False)
    monkeypatch.delenv("TASKBOARD_DB", raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture()
def db_path(tmp_path: Path) -> str:
    return str(tmp_path / "cli.db")


def _run(db_path: str, *args: str) -> Result:
    result = CliRunner().invoke(main, ["--db", db_path, *args])
    return result


def _ok(db_path: str, *args: str) -> str:
    result = _run(db_path, *args)
    assert result.exit_code == 0, result.output
    return result.output


class TestInit:
    def test_writes_config_and_database(self, tmp_path: Path, db_path: str) -> None:
        output = _ok(db_path, "init")
        assert "Created" in output
        assert Path(db_path).exists()
        config = json.loads((tmp_path / CONFIG_FILENAME).read_text())
        assert config["db_path"] == db_path

    def test_keeps_existing_config(self, tmp_path: Path, db_path: str) -> None:
        (tmp_path / CONFIG_FILENAME).write_text("{}")
        output = _ok(db_path, "init")
        assert "already exists" in output
        assert (tmp_path / CONFIG_FILENAME).read_text() == "{}"

    def test_bad_config_fails(self, tmp_path: Path, db_path: str) -> None:
        (tmp_path / CONFIG_FILENAME).write_text("{broken")
        result = _run(db_path, "list")
        assert result.exit_code == 1
        assert "Config error" in result.output

    def test_bad_log_level_in_config_fails(self, tmp_path: Path, db_path: str) -> None:
        (tmp_path / CONFIG_FILENAME).write_text(json.dumps({"log_level": "verbose"}))
        result = _run(db_path, "list")
        assert result.exit_code == 1
        assert "log_level" in result.output


class TestTaskCommands:
    def test_add_and_list(self, db_path: str) -> None:
        assert _ok(db_path, "list").strip() == "No tasks."
        assert "Created task #1: Write docs" in _ok(db_path, "add", "Write docs")
        _ok(db_path, "add", "Ship it", "--status", "queued")

        output = _ok(db_path, "list")
        assert "#1" in output and "Write docs" in output
        assert "[queued" in output

        output = _ok(db_path, "list", "--status", "queued")
        assert "Ship it" in output
        assert "Write docs" not in output

    def test_show_json(self, db_path: str) -> None:
        _ok(db_path, "add", "Parent")
        _ok(db_path, "add", "Child", "--parent", "1", "--body", "details")
        data = json.loads(_ok(db_path, "show", "1", "--json"))
        assert data["title"] == "Parent"
        assert data["subtasks"] == [2]

    def test_show_text(self, db_path: str) -> None:
        _ok(db_path, "add", "Blocker")
        _ok(db_path, "add", "Waiting", "--body", "needs the blocker")
        _ok(db_path, "dep", "add", "1", "2")
        output = _ok(db_path, "show", "2")
        assert "needs the blocker" in output
        assert "Blocked by:" in output
        assert "Blocker" in output

    def test_status_and_output(self, db_path: str) -> None:
        _ok(db_path, "add", "Task")
        assert "Output saved" in _ok(db_path, "output", "1", "All good")
        assert "Task #1 is now done" in _ok(db_path, "status", "1", "done")
        data = json.loads(_ok(db_path, "show", "1", "--json"))
        assert data["output"] == "All good"
        assert data["completed_at"] is not None

    def test_missing_task_exits_nonzero(self, db_path: str) -> None:
        result = _run(db_path, "status", "42", "done")
        assert result.exit_code == 1
        assert "Error:" in result.output

    def test_invalid_status_rejected(self, db_path: str) -> None:
        _ok(db_path, "add", "Task")
        result = _run(db_path, "status", "1", "finished")
        assert result.exit_code != 0


class TestDependencyCommands:
    def test_add_release_and_ls(self, db_path: str) -> None:
        _ok(db_path, "add", "A")
        _ok(db_path, "add", "B", "--status", "blocked")
        assert "Task #1 now blocks task #2" in _ok(
            db_path, "dep", "add", "1", "2", "--auto-queue"
        )
        assert "(1 open)" in _ok(db_path, "dep", "ls", "2")

        _ok(db_path, "status", "1", "done")
        data = json.loads(_ok(db_path, "show", "2", "--json"))
        assert data["status"] == "queued"
        assert "(0 open)" in _ok(db_path, "dep", "ls", "2")

    def test_cycle_rejected(self, db_path: str) -> None:
        _ok(db_path, "add", "A")
        _ok(db_path, "add", "B")
        _ok(db_path, "dep", "add", "1", "2")
        result = _run(db_path, "dep", "add", "2", "1")
        assert result.exit_code == 1
        assert "cycle" in result.output

    def test_toggle_and_remove(self, db_path: str) -> None:
        _ok(db_path, "add", "A")
        _ok(db_path, "add", "B")
        _ok(db_path, "dep", "add", "1", "2")
        assert "Auto-queue on" in _ok(db_path, "dep", "auto-queue", "1", "2", "on")
        assert "Removed" in _ok(db_path, "dep", "rm", "1", "2")
        assert _run(db_path, "dep", "rm", "1", "2").exit_code == 1


class TestWorkflowCommand:
    def test_progress_and_completion(self, db_path: str) -> None:
        _ok(db_path, "add", "Parent")
        _ok(db_path, "add", "One", "--parent", "1")
        _ok(db_path, "add", "Two", "--parent", "1")
        _ok(db_path, "status", "2", "done")
        assert "1/2 done" in _ok(db_path, "workflow", "1")

        _ok(db_path, "status", "3", "archived")
        output = _ok(db_path, "workflow", "1")
        assert "complete" in output
        data = json.loads(_ok(db_path, "show", "1", "--json"))
        assert data["status"] == "done"

    def test_missing_parent(self, db_path: str) -> None:
        assert _run(db_path, "workflow", "9").exit_code == 1


class TestScheduleCommands:
    def test_schedule_and_run(self, db_path: str) -> None:
        _ok(db_path, "add", "Standup")
        output = _ok(db_path, "schedule", "1", "--at", "2020-01-01 09:00", "--every", "daily")
        assert "every daily" in output

        output = _ok(db_path, "run-scheduled")
        assert "Queued 1 task(s)" in output
        data = json.loads(_ok(db_path, "show", "1", "--json"))
        assert data["status"] == "queued"
        assert data["last_run_at"] is not None
        assert data["scheduled_at"] > "2020-01-01"

    def test_clear(self, db_path: str) -> None:
        _ok(db_path, "add", "Once", "--at", "2020-01-01")
        assert "cleared" in _ok(db_path, "schedule", "1", "--clear")
        assert "Queued 0 task(s)" in _ok(db_path, "run-scheduled")

    def test_requires_at_or_clear(self, db_path: str) -> None:
        _ok(db_path, "add", "Task")
        result = _run(db_path, "schedule", "1")
        assert result.exit_code == 1
