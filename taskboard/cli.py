"""CLI entry point for task-board.

Commands:
    taskboard init           create taskboard.config.json and the database
    taskboard serve          start the API server (with the schedule runner)
    taskboard mcp            start the MCP server (stdio transport)
    taskboard add            create a task
    taskboard show / list    inspect tasks
    taskboard status         move a task to another status
    taskboard output         set a task's output
    taskboard dep ...        add, remove and list blocking dependencies
    taskboard workflow       show subtask progress for a parent
    taskboard schedule       set or clear a task's schedule
    taskboard run-scheduled  queue every due scheduled task once
"""

import json
import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, NoReturn

import click

from db.engine import TaskEngine, open_engine
from db.errors import TaskBoardError
from db.migrations import init_db
from db.models import Task
from db.recurrence import RECURRENCE_PATTERNS
from db.state_machine import TaskStatus
from taskboard.config import (
    CONFIG_FILENAME,
    DEFAULTS,
    LOG_LEVELS,
    ConfigError,
    get_timezone,
    load_config,
)

DATETIME_FORMATS = ["%Y-%m-%d", "%Y-%m-%dT%H:%M", "%Y-%m-%d %H:%M", "%Y-%m-%dT%H:%M:%S"]

STATUS_CHOICE = click.Choice([s.value for s in TaskStatus])
RECURRENCE_CHOICE = click.Choice(["", *RECURRENCE_PATTERNS])


def _fail(message: str) -> NoReturn:
    click.echo(f"Error: {message}", err=True)
    sys.exit(1)


@contextmanager
def _engine(ctx: click.Context) -> Iterator[TaskEngine]:
    """Open the configured database and yield an engine over it."""
    config = ctx.obj["config"]
    conn = init_db(config["db_path"])
    try:
        yield open_engine(conn, get_timezone(config))
    except TaskBoardError as e:
        _fail(str(e))
    finally:
        conn.close()


def _line(task: Task) -> str:
    pin = "*" if task.pinned else " "
    return f"{pin}#{task.id:<5} [{task.status.value:<10}] {task.title}"


@click.group()
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False),
    default=None,
    help=f"Config file (default: ./{CONFIG_FILENAME} or $TASKBOARD_CONFIG)",
)
@click.option("--db", "db_path", default=None, help="SQLite database path")
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    default=None,
    help="Log level (default: config log_level)",
)
@click.pass_context
def main(
    ctx: click.Context,
    config_path: str | None,
    db_path: str | None,
    log_level: str | None,
) -> None:
    """task-board: tasks with blocking dependencies and auto-completing workflows."""
    try:
        config = load_config(config_path)
    except ConfigError as e:
        _fail(f"Config error: {e}")
    if db_path:
        config["db_path"] = str(Path(db_path).expanduser())

    logging.basicConfig(
        level=(log_level or config["log_level"]).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.obj = {"config": config}


@main.command()
@click.pass_context
def init(ctx: click.Context) -> None:
    """Create a starter taskboard.config.json and initialise the database."""
    config_path = Path.cwd() / CONFIG_FILENAME
    db_path = ctx.obj["config"]["db_path"]

    if config_path.exists():
        click.echo(f"Config already exists: {config_path}")
    else:
        config = dict(DEFAULTS)
        config["db_path"] = db_path
        config_path.write_text(json.dumps(config, indent=2) + "\n")
        click.echo(f"Created {config_path}")

    init_db(db_path).close()
    click.echo(f"Database ready: {db_path}")


@main.command()
@click.option("--host", default=None, help="Bind address (default: config host)")
@click.option("--port", type=int, default=None, help="Port (default: config port)")
@click.pass_context
def serve(ctx: click.Context, host: str | None, port: int | None) -> None:
    """Start the task-board API server."""
    import uvicorn

    from api.app import create_app

    config = ctx.obj["config"]
    init_db(config["db_path"]).close()
    app = create_app(db_path=config["db_path"], config=config)
    uvicorn.run(app, host=host or config["host"], port=port or config["port"])


@main.command()
@click.pass_context
def mcp(ctx: click.Context) -> None:
    """Start the task-board MCP server (stdio transport)."""
    from taskboard.mcp.server import run_server

    run_server(config=ctx.obj["config"])


# ── Tasks ─────────────────────────────────────────────────


@main.command()
@click.argument("title")
@click.option("--body", default="", help="Task description")
@click.option("--parent", "parent_id", type=int, default=None, help="Parent task ID")
@click.option("--status", type=STATUS_CHOICE, default=TaskStatus.BACKLOG.value)
@click.option("--at", "scheduled_at", type=click.DateTime(DATETIME_FORMATS), default=None)
@click.option("--every", "recurrence", type=RECURRENCE_CHOICE, default="")
@click.pass_context
def add(
    ctx: click.Context,
    title: str,
    body: str,
    parent_id: int | None,
    status: str,
    scheduled_at: datetime | None,
    recurrence: str,
) -> None:
    """Create a task."""
    with _engine(ctx) as engine:
        task = engine.create_task(
            title,
            body=body,
            parent_id=parent_id,
            status=status,
            scheduled_at=scheduled_at,
            recurrence=recurrence,
        )
        click.echo(f"Created task #{task.id}: {task.title}")


@main.command()
@click.argument("task_id", type=int)
@click.option("--json", "as_json", is_flag=True, help="Print as JSON")
@click.pass_context
def show(ctx: click.Context, task_id: int, as_json: bool) -> None:
    """Show a task with its dependencies."""
    with _engine(ctx) as engine:
        task = engine.get_task(task_id)
        blockers, blocked_by = engine.get_all_dependencies(task_id)
        subtasks = engine.store.get_subtasks(task_id)

        if as_json:
            data: dict[str, Any] = task.to_dict()
            data["blockers"] = [t.id for t in blockers]
            data["blocked_by"] = [t.id for t in blocked_by]
            data["subtasks"] = [t.id for t in subtasks]
            click.echo(json.dumps(data, indent=2))
            return

        click.echo(_line(task))
        if task.body:
            click.echo(f"\n{task.body}\n")
        if task.scheduled_at:
            every = f" (every: {task.recurrence})" if task.recurrence else ""
            click.echo(f"Scheduled: {task.scheduled_at}{every}")
        if blockers:
            click.echo("Blocked by:")
            for t in blockers:
                click.echo(f"  {_line(t)}")
        if blocked_by:
            click.echo("Blocks:")
            for t in blocked_by:
                click.echo(f"  {_line(t)}")
        if subtasks:
            click.echo("Subtasks:")
            for t in subtasks:
                click.echo(f"  {_line(t)}")
        if task.output:
            click.echo(f"\nOutput:\n{task.output}")


@main.command("list")
@click.option("--status", type=STATUS_CHOICE, default=None)
@click.option("--parent", "parent_id", type=int, default=None)
@click.option("--limit", type=int, default=None)
@click.pass_context
def list_cmd(
    ctx: click.Context, status: str | None, parent_id: int | None, limit: int | None
) -> None:
    """List tasks, pinned first."""
    with _engine(ctx) as engine:
        tasks = engine.list_tasks(status=status, parent_id=parent_id, limit=limit)
        if not tasks:
            click.echo("No tasks.")
        for task in tasks:
            click.echo(_line(task))


@main.command()
@click.argument("task_id", type=int)
@click.argument("new_status", type=STATUS_CHOICE)
@click.pass_context
def status(ctx: click.Context, task_id: int, new_status: str) -> None:
    """Move a task to NEW_STATUS."""
    with _engine(ctx) as engine:
        task = engine.transition_status(task_id, new_status)
        click.echo(f"Task #{task.id} is now {task.status.value}")


@main.command()
@click.argument("task_id", type=int)
@click.argument("text")
@click.pass_context
def output(ctx: click.Context, task_id: int, text: str) -> None:
    """Set a task's output (collected into its parent's summary)."""
    with _engine(ctx) as engine:
        engine.set_output(task_id, text)
        click.echo(f"Output saved for task #{task_id}")


# ── Dependencies ──────────────────────────────────────────


@main.group()
def dep() -> None:
    """Manage blocking dependencies."""


@dep.command("add")
@click.argument("blocker_id", type=int)
@click.argument("blocked_id", type=int)
@click.option("--auto-queue", is_flag=True, help="Queue the blocked task once released")
@click.pass_context
def dep_add(ctx: click.Context, blocker_id: int, blocked_id: int, auto_queue: bool) -> None:
    """Make BLOCKED_ID wait for BLOCKER_ID."""
    with _engine(ctx) as engine:
        engine.add_dependency(blocker_id, blocked_id, auto_queue)
        click.echo(f"Task #{blocker_id} now blocks task #{blocked_id}")


@dep.command("rm")
@click.argument("blocker_id", type=int)
@click.argument("blocked_id", type=int)
@click.pass_context
def dep_rm(ctx: click.Context, blocker_id: int, blocked_id: int) -> None:
    """Remove the edge BLOCKER_ID -> BLOCKED_ID."""
    with _engine(ctx) as engine:
        engine.remove_dependency(blocker_id, blocked_id)
        click.echo(f"Removed dependency #{blocker_id} -> #{blocked_id}")


@dep.command("ls")
@click.argument("task_id", type=int)
@click.pass_context
def dep_ls(ctx: click.Context, task_id: int) -> None:
    """List a task's blockers and dependents."""
    with _engine(ctx) as engine:
        blockers, blocked_by = engine.get_all_dependencies(task_id)
        open_count = engine.get_open_blocker_count(task_id)
        click.echo(f"Blocked by ({open_count} open):")
        for t in blockers:
            click.echo(f"  {_line(t)}")
        click.echo("Blocks:")
        for t in blocked_by:
            click.echo(f"  {_line(t)}")


@dep.command("auto-queue")
@click.argument("blocker_id", type=int)
@click.argument("blocked_id", type=int)
@click.argument("flag", type=click.Choice(["on", "off"]))
@click.pass_context
def dep_auto_queue(ctx: click.Context, blocker_id: int, blocked_id: int, flag: str) -> None:
    """Turn auto-queue on or off for an edge."""
    with _engine(ctx) as engine:
        engine.set_auto_queue(blocker_id, blocked_id, flag == "on")
        click.echo(f"Auto-queue {flag} for #{blocker_id} -> #{blocked_id}")


# ── Workflows and schedules ───────────────────────────────


@main.command()
@click.argument("parent_id", type=int)
@click.pass_context
def workflow(ctx: click.Context, parent_id: int) -> None:
    """Show subtask progress for PARENT_ID."""
    with _engine(ctx) as engine:
        ws = engine.get_workflow_status(parent_id)
        click.echo(f"#{ws.parent_id} {ws.parent_title}: {ws.done}/{ws.total} done")
        click.echo(
            f"  pending={ws.pending} processing={ws.processing} "
            f"blocked={ws.blocked} done={ws.done} archived={ws.archived}"
        )
        if ws.is_complete:
            click.echo("  complete")


@main.command()
@click.argument("task_id", type=int)
@click.option("--at", "scheduled_at", type=click.DateTime(DATETIME_FORMATS), default=None)
@click.option("--every", "recurrence", type=RECURRENCE_CHOICE, default="")
@click.option("--clear", is_flag=True, help="Remove the schedule")
@click.pass_context
def schedule(
    ctx: click.Context,
    task_id: int,
    scheduled_at: datetime | None,
    recurrence: str,
    clear: bool,
) -> None:
    """Schedule TASK_ID to be queued at a time, optionally recurring."""
    if not clear and scheduled_at is None:
        _fail("Pass --at to schedule or --clear to remove the schedule")
    with _engine(ctx) as engine:
        if clear:
            engine.update_schedule(task_id, None, "")
            click.echo(f"Schedule cleared for task #{task_id}")
            return
        task = engine.update_schedule(task_id, scheduled_at, recurrence)
        every = f", every {recurrence}" if recurrence else ""
        click.echo(f"Task #{task.id} scheduled for {task.scheduled_at}{every}")


@main.command("run-scheduled")
@click.pass_context
def run_scheduled(ctx: click.Context) -> None:
    """Queue every scheduled task that is due."""
    with _engine(ctx) as engine:
        queued = engine.run_due_scheduled()
        click.echo(f"Queued {len(queued)} task(s)")
        for task in queued:
            click.echo(f"  {_line(task)}")
