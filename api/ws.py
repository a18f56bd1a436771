"""WebSocket connection manager and event broadcaster for task-board."""

import asyncio
import logging
from typing import Any

from fastapi import WebSocket

from api.deps import (
    enrich_event_payload,
    get_unconsumed_events,
    mark_event_consumed,
)
from db.client import get_connection

logger = logging.getLogger(__name__)

POLL_INTERVAL = 0.5


class ConnectionManager:
    """Tracks connected clients and fans task events out to them."""

    def __init__(self) -> None:
        self.clients: list[WebSocket] = []

    async def connect(self, websocket: WebSocket) -> None:
        await websocket.accept()
        self.clients.append(websocket)

    def disconnect(self, websocket: WebSocket) -> None:
        if websocket in self.clients:
            self.clients.remove(websocket)

    async def broadcast(self, message: dict[str, Any]) -> None:
        """Send to every client; drop the ones whose socket has gone away."""
        gone: list[WebSocket] = []
        for client in self.clients:
            try:
                await client.send_json(message)
            except Exception:
                gone.append(client)
        for client in gone:
            self.disconnect(client)


manager = ConnectionManager()


async def flush_events(db_path: str, target: ConnectionManager = manager) -> int:
    """Broadcast and consume every pending event. Returns how many were sent."""
    conn = get_connection(db_path)
    try:
        events = get_unconsumed_events(conn)
        for event in events:
            await target.broadcast(enrich_event_payload(conn, event))
            mark_event_consumed(conn, event["id"])
        return len(events)
    finally:
        conn.close()


async def broadcast_events(db_path: str, interval: float = POLL_INTERVAL) -> None:
    """Background task that polls the events table and pushes task changes to clients."""
    while True:
        try:
            await flush_events(db_path)
        except Exception:
            logger.exception("Error in event broadcaster")
        await asyncio.sleep(interval)
