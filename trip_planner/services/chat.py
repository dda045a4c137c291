"""Per-trip websocket rooms for live chat fan-out."""

from __future__ import annotations

import logging
from typing import Any, Dict, Set

from fastapi import WebSocket

logger = logging.getLogger("trip_planner.chat")


class ChatHub:
    def __init__(self) -> None:
        self.rooms: Dict[int, Set[WebSocket]] = {}

    def join(self, trip_id: int, websocket: WebSocket) -> None:
        self.rooms.setdefault(trip_id, set()).add(websocket)
        logger.debug("socket joined trip-%s (%s connected)", trip_id, len(self.rooms[trip_id]))

    def leave(self, trip_id: int, websocket: WebSocket) -> None:
        room = self.rooms.get(trip_id)
        if room is None:
            return
        room.discard(websocket)
        if not room:
            del self.rooms[trip_id]

    def connection_count(self, trip_id: int) -> int:
        return len(self.rooms.get(trip_id, ()))

    async def broadcast(self, trip_id: int, event: Dict[str, Any]) -> None:
        stale = []
        for websocket in list(self.rooms.get(trip_id, ())):
            try:
                await websocket.send_json(event)
            except Exception:
                logger.warning("dropping unreachable socket in trip-%s", trip_id)
                stale.append(websocket)
        for websocket in stale:
            self.leave(trip_id, websocket)
