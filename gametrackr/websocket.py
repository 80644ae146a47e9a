from __future__ import annotations

import json
import logging
import uuid
from typing import Any, Dict, List

from fastapi import WebSocket
from starlette.websockets import WebSocketState

logger = logging.getLogger(__name__)


class ConnectionManager:
    """In-memory registry of open sockets keyed by a generated connection id.

    Only touched from the event loop, so no locking is needed.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self.active_connections: Dict[str, WebSocket] = {}

    def __len__(self) -> int:
        return len(self.active_connections)

    def connection_ids(self) -> List[str]:
        return list(self.active_connections)

    async def connect(self, websocket: WebSocket) -> str:
        await websocket.accept()
        connection_id = str(uuid.uuid4())
        self.active_connections[connection_id] = websocket
        logger.info("%s socket %s connected (%d open)", self.name, connection_id, len(self))
        return connection_id

    def disconnect(self, connection_id: str) -> None:
        if self.active_connections.pop(connection_id, None) is not None:
            logger.info("%s socket %s disconnected (%d open)", self.name, connection_id, len(self))

    @staticmethod
    def _is_open(websocket: WebSocket) -> bool:
        return (
            websocket.client_state == WebSocketState.CONNECTED
            and websocket.application_state == WebSocketState.CONNECTED
        )

    async def send(self, connection_id: str, message: Any) -> bool:
        websocket = self.active_connections.get(connection_id)
        if websocket is None:
            return False
        if not self._is_open(websocket):
            self.disconnect(connection_id)
            return False
        try:
            await websocket.send_text(json.dumps(message, default=str))
        except Exception as exc:
            logger.warning("%s send to %s failed: %s", self.name, connection_id, exc)
            self.disconnect(connection_id)
            return False
        return True

    async def broadcast(self, message: Any) -> int:
        payload = json.dumps(message, default=str)
        delivered = 0
        stale: List[str] = []
        # Copy: handlers may unregister while we await a send.
        for connection_id, websocket in list(self.active_connections.items()):
            if not self._is_open(websocket):
                stale.append(connection_id)
                continue
            try:
                await websocket.send_text(payload)
            except Exception as exc:
                logger.warning("%s broadcast to %s failed: %s", self.name, connection_id, exc)
                stale.append(connection_id)
                continue
            delivered += 1
        for connection_id in stale:
            self.disconnect(connection_id)
        return delivered


chat_manager = ConnectionManager("chat")
review_manager = ConnectionManager("reviews")
