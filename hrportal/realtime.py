from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from typing import Any, Iterable

from fastapi import WebSocket
from starlette.websockets import WebSocketDisconnect

logger = logging.getLogger("hrportal.realtime")


class ConnectionManager:
    """Tracks open WebSocket connections per user and fans payloads out to them.

    Delivery is best effort: a socket that fails to accept a frame is dropped and
    no retry is attempted.
    """

    def __init__(self) -> None:
        self._connections: dict[int, set[WebSocket]] = defaultdict(set)
        self._lock = asyncio.Lock()

    async def connect(self, user_id: int, websocket: WebSocket) -> None:
        await websocket.accept()
        async with self._lock:
            self._connections[user_id].add(websocket)
        logger.info("realtime_connected", extra={"user_id": user_id})

    async def disconnect(self, user_id: int, websocket: WebSocket) -> None:
        async with self._lock:
            sockets = self._connections.get(user_id)
            if sockets is None:
                return
            sockets.discard(websocket)
            if not sockets:
                self._connections.pop(user_id, None)
        logger.info("realtime_disconnected", extra={"user_id": user_id})

    def connected_user_ids(self) -> set[int]:
        return {user_id for user_id, sockets in self._connections.items() if sockets}

    def is_connected(self, user_id: int) -> bool:
        return bool(self._connections.get(user_id))

    async def _send(self, user_id: int, websocket: WebSocket, payload: dict[str, Any]) -> bool:
        try:
            await websocket.send_json(payload)
        except (WebSocketDisconnect, RuntimeError, ConnectionError) as exc:
            logger.warning(
                "realtime_send_failed",
                extra={"user_id": user_id, "error": exc.__class__.__name__},
            )
            await self.disconnect(user_id, websocket)
            return False
        return True

    async def send_to_users(self, user_ids: Iterable[int], payload: dict[str, Any]) -> list[int]:
        delivered: list[int] = []
        for user_id in dict.fromkeys(user_ids):
            sockets = list(self._connections.get(user_id, ()))
            results = [await self._send(user_id, websocket, payload) for websocket in sockets]
            if any(results):
                delivered.append(user_id)
        return delivered

    async def broadcast(self, payload: dict[str, Any]) -> list[int]:
        return await self.send_to_users(list(self._connections.keys()), payload)


manager = ConnectionManager()
