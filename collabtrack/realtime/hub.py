# collabtrack/realtime/hub.py
"""In-process rooms for the live channel.

Connections join ``user:<id>`` implicitly and ``project:<id>`` on request.
Everything runs on the application's event loop, so rooms need no locking.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, Optional, Set

from fastapi import Request, WebSocket
from starlette.websockets import WebSocketState

logger = logging.getLogger("collabtrack.realtime")


def user_room(user_id: int) -> str:
    return f"user:{user_id}"


def project_room(project_id: int) -> str:
    return f"project:{project_id}"


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


class ConnectionState(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATED = "authenticated"
    JOINED = "joined"
    DISCONNECTED = "disconnected"


class Connection:
    def __init__(self, websocket: WebSocket) -> None:
        self.websocket = websocket
        self.state = ConnectionState.UNAUTHENTICATED
        self.user_id: Optional[int] = None
        self.user_name: Optional[str] = None
        self.user_email: Optional[str] = None
        self.rooms: Set[str] = set()

    def authenticate(self, user_id: int, name: str, email: str) -> None:
        if self.state is not ConnectionState.UNAUTHENTICATED:
            raise RuntimeError(f"Cannot authenticate a connection in state {self.state.value}")
        self.user_id = user_id
        self.user_name = name
        self.user_email = email
        self.state = ConnectionState.AUTHENTICATED

    @property
    def is_open(self) -> bool:
        return self.state is not ConnectionState.DISCONNECTED

    def identity(self) -> Dict[str, Any]:
        return {"id": self.user_id, "name": self.user_name, "email": self.user_email}

    async def send(self, event: str, data: Any) -> None:
        if not self.is_open or self.websocket.client_state == WebSocketState.DISCONNECTED:
            return
        await self.websocket.send_json({"event": event, "data": data})


class BroadcastHub:
    def __init__(self) -> None:
        self._rooms: Dict[str, Set[Connection]] = {}

    # ---------------- membership ----------------
    def join(self, connection: Connection, room: str) -> None:
        if not connection.is_open:
            return
        self._rooms.setdefault(room, set()).add(connection)
        connection.rooms.add(room)
        if connection.state is ConnectionState.AUTHENTICATED and room.startswith("project:"):
            connection.state = ConnectionState.JOINED

    def leave(self, connection: Connection, room: str) -> None:
        members = self._rooms.get(room)
        if members is not None:
            members.discard(connection)
            if not members:
                del self._rooms[room]
        connection.rooms.discard(room)

    def disconnect(self, connection: Connection) -> None:
        for room in list(connection.rooms):
            self.leave(connection, room)
        connection.state = ConnectionState.DISCONNECTED

    def members(self, room: str) -> Set[Connection]:
        return set(self._rooms.get(room, ()))

    def rooms(self) -> Iterable[str]:
        return list(self._rooms)

    # ---------------- delivery ----------------
    async def publish(
        self,
        room: str,
        event: str,
        data: Any,
        exclude: Optional[Connection] = None,
    ) -> int:
        """Send ``event`` to every connection in ``room``; returns the delivery count."""
        delivered = 0
        for connection in self.members(room):
            if connection is exclude:
                continue
            try:
                await connection.send(event, data)
                delivered += 1
            except Exception:
                logger.warning(
                    "socket_send_failed",
                    extra={"room": room, "event": event, "user_id": connection.user_id},
                    exc_info=True,
                )
                self.disconnect(connection)
        return delivered

    async def send_to_user(self, user_id: int, event: str, data: Any) -> int:
        return await self.publish(user_room(user_id), event, data)

    async def send_to_project(self, project_id: int, event: str, data: Any) -> int:
        return await self.publish(project_room(project_id), event, data)


def get_hub(request: Request) -> BroadcastHub:
    return request.app.state.hub
