"""MCP server for task-board.

Exposes agent-facing task tools via stdio transport.
Launched by `taskboard mcp`.
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterator, Callable
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from dataclasses import dataclass
from typing import Any

from mcp.server.fastmcp import Context, FastMCP

from db.engine import TaskEngine, open_engine
from db.migrations import init_db
from taskboard.config import get_timezone, load_config
from taskboard.mcp import tools


@dataclass
class AppState:
    """Lifespan state accessible by tools via Context."""

    engine: TaskEngine


def make_lifespan(
    config: dict[str, Any] | None = None,
) -> Callable[[FastMCP], AbstractAsyncContextManager[AppState]]:  # type: ignore[type-arg]
    """Build the server lifespan.

    Without an explicit config, load_config() is used, so TASKBOARD_CONFIG and
    TASKBOARD_DB are honoured the same way the CLI honours them.
    """

    @asynccontextmanager
    async def app_lifespan(server: FastMCP) -> AsyncIterator[AppState]:  # type: ignore[type-arg]
        """Open DB connection at startup, close on shutdown."""
        cfg = config if config is not None else load_config()
        conn = init_db(cfg["db_path"])
        try:
            yield AppState(engine=open_engine(conn, get_timezone(cfg)))
        finally:
            conn.close()

    return app_lifespan


def _get_engine(ctx: Context) -> TaskEngine:
    """Extract the engine from Context lifespan state."""
    state: AppState = ctx.request_context.lifespan_context
    return state.engine


def create_server(config: dict[str, Any] | None = None) -> FastMCP:
    """Create and configure the MCP server with all tools registered."""
    server = FastMCP(
        name="taskboard",
        instructions="Task management tools: tasks, blocking dependencies and parent workflows.",
        lifespan=make_lifespan(config),
    )

    @server.tool(description="Create a new task, optionally as a subtask of parent_id")
    def create_task(
        title: str,
        body: str = "",
        parent_id: int | None = None,
        scheduled_at: str | None = None,
        recurrence: str = "",
        ctx: Context = None,  # type: ignore[assignment]
    ) -> str:
        engine = _get_engine(ctx)
        result = tools.create_task(
            engine,
            title,
            body=body,
            parent_id=parent_id,
            scheduled_at=scheduled_at,
            recurrence=recurrence,
        )
        return json.dumps(result, indent=2)

    @server.tool(description="Return a task with its dependencies and subtasks")
    def show_task(task_id: int, ctx: Context = None) -> str:  # type: ignore[assignment]
        result = tools.show_task(_get_engine(ctx), task_id)
        return json.dumps(result, indent=2)

    @server.tool(description="List tasks, optionally filtered by status or parent")
    def list_tasks(
        status: str | None = None,
        parent_id: int | None = None,
        limit: int = 50,
        ctx: Context = None,  # type: ignore[assignment]
    ) -> str:
        result = tools.list_tasks(_get_engine(ctx), status, parent_id, limit)
        return json.dumps(result, indent=2)

    @server.tool(
        description="Mark a task done with a summary; unblocks dependents and may complete its parent"
    )
    def complete_task(
        task_id: int,
        summary: str = "",
        ctx: Context = None,  # type: ignore[assignment]
    ) -> str:
        result = tools.complete_task(_get_engine(ctx), task_id, summary)
        return json.dumps(result, indent=2)

    @server.tool(description="Ask the user a question and move the task to blocked")
    def needs_input(
        task_id: int,
        question: str,
        ctx: Context = None,  # type: ignore[assignment]
    ) -> str:
        result = tools.needs_input(_get_engine(ctx), task_id, question)
        return json.dumps(result, indent=2)

    @server.tool(
        description="Add a dependency: blocked_id waits until blocker_id is done or archived"
    )
    def add_dependency(
        blocker_id: int,
        blocked_id: int,
        auto_queue: bool = False,
        ctx: Context = None,  # type: ignore[assignment]
    ) -> str:
        result = tools.add_dependency(_get_engine(ctx), blocker_id, blocked_id, auto_queue)
        return json.dumps(result, indent=2)

    @server.tool(description="Remove a dependency edge")
    def remove_dependency(
        blocker_id: int,
        blocked_id: int,
        ctx: Context = None,  # type: ignore[assignment]
    ) -> str:
        result = tools.remove_dependency(_get_engine(ctx), blocker_id, blocked_id)
        return json.dumps(result, indent=2)

    @server.tool(description="Get blockers and dependents for a task")
    def get_dependencies(task_id: int, ctx: Context = None) -> str:  # type: ignore[assignment]
        result = tools.get_dependencies(_get_engine(ctx), task_id)
        return json.dumps(result, indent=2)

    @server.tool(description="Return subtask progress for a parent task")
    def workflow_status(parent_id: int, ctx: Context = None) -> str:  # type: ignore[assignment]
        result = tools.workflow_status(_get_engine(ctx), parent_id)
        return json.dumps(result, indent=2)

    return server


def run_server(config: dict[str, Any] | None = None) -> None:
    """Entry point: create server and run on stdio."""
    server = create_server(config)
    server.run(transport="stdio")
