"""WebSocket connection registry and broadcast helpers."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Literal, Optional, Set

from fastapi import WebSocket

from .protocol import server_message

logger = logging.getLogger(__name__)

Role = Literal["participant", "presenter"]


@dataclass(frozen=True)
class ConnectionInfo:
    role: Role
    participant_id: Optional[str] = None


class BroadcastHub:
    def __init__(self) -> None:
        self._participants: Dict[str, WebSocket] = {}
        self._presenters: Set[WebSocket] = set()
        self._connections: Dict[WebSocket, ConnectionInfo] = {}

    async def connect(self, websocket: WebSocket) -> None:
        await websocket.accept()
        await self.send(websocket, server_message("server:ready"))

    def info(self, websocket: WebSocket) -> Optional[ConnectionInfo]:
        return self._connections.get(websocket)

    def register_participant(self, websocket: WebSocket, participant_id: str) -> None:
        previous = self._participants.get(participant_id)
        if previous is not None and previous is not websocket:
            # The replaced socket stays a participant connection with no identity.
            self._connections[previous] = ConnectionInfo(role="participant")
        self._participants[participant_id] = websocket
        self._connections[websocket] = ConnectionInfo(role="participant", participant_id=participant_id)

    def register_presenter(self, websocket: WebSocket) -> None:
        self._presenters.add(websocket)
        self._connections[websocket] = ConnectionInfo(role="presenter")

    def unregister(self, websocket: WebSocket) -> Optional[ConnectionInfo]:
        info = self._connections.pop(websocket, None)
        self._presenters.discard(websocket)
        if info and info.participant_id and self._participants.get(info.participant_id) is websocket:
            self._participants.pop(info.participant_id, None)
        return info

    def is_presenter(self, websocket: WebSocket) -> bool:
        return websocket in self._presenters

    async def send(self, websocket: WebSocket, message: dict) -> bool:
        try:
            await websocket.send_json(message)
        except Exception:
            logger.debug("Dropping %s for closed connection", message.get("type"), exc_info=True)
            return False
        return True

    async def send_to_participant(self, participant_id: str, message: dict) -> None:
        websocket = self._participants.get(participant_id)
        if websocket is not None:
            await self.send(websocket, message)

    async def broadcast_presenters(self, message: dict) -> None:
        dead: list[WebSocket] = []
        for websocket in self._presenters.copy():
            if not await self.send(websocket, message):
                dead.append(websocket)
        for websocket in dead:
            self.unregister(websocket)

    async def broadcast_participants(self, message: dict) -> None:
        for websocket in list(self._participants.values()):
            await self.send(websocket, message)
