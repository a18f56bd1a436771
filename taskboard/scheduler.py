"""Schedule runner for task-board.

Polls for backlog tasks whose scheduled_at has passed and queues them.
Runs as an asyncio background task inside the FastAPI lifespan.
"""

import asyncio
import logging
from datetime import tzinfo

from db.client import get_connection
from db.engine import open_engine
from db.models import Task

logger = logging.getLogger(__name__)


def run_once(db_path: str, tz: tzinfo | None = None) -> list[Task]:
    """Queue every due scheduled task on a fresh connection."""
    conn = get_connection(db_path)
    try:
        return open_engine(conn, tz).run_due_scheduled()
    finally:
        conn.close()


async def run_schedules(
    db_path: str, interval: float, tz: tzinfo | None = None
) -> None:
    """Background task that sweeps due schedules every `interval` seconds."""
    while True:
        try:
            queued = await asyncio.to_thread(run_once, db_path, tz)
            if queued:
                logger.info(
                    "Schedule sweep queued %d task(s): %s",
                    len(queued),
                    ", ".join(f"#{t.id}" for t in queued),
                )
        except Exception:
            logger.exception("Error in schedule runner")

        await asyncio.sleep(interval)
