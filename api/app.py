"""FastAPI application for task-board."""

import asyncio
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.deps import set_db_path, set_timezone
from api.routes import router
from api.ws import broadcast_events
from taskboard.config import get_timezone
from taskboard.scheduler import run_schedules


def create_app(db_path: str, config: dict[str, Any] | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        db_path: Path to the SQLite database.
        config: Full task-board config dict. If provided, its timezone is used
                for recurrence and a positive scheduler_interval starts the
                schedule runner.
    """
    tz = get_timezone(config) if config is not None else None
    interval = config["scheduler_interval"] if config is not None else 0

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        tasks: list[asyncio.Task[None]] = []
        tasks.append(asyncio.create_task(broadcast_events(db_path)))

        if interval > 0:
            tasks.append(asyncio.create_task(run_schedules(db_path, interval, tz)))

        yield

        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass

    set_db_path(db_path)
    if tz is not None:
        set_timezone(tz)

    app = FastAPI(title="task-board", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(router)

    return app
