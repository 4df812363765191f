# collabtrack/realtime/socket_router.py
from __future__ import annotations

import json
import logging
from typing import Optional

from fastapi import APIRouter, WebSocket
from pydantic import ValidationError
from starlette.concurrency import run_in_threadpool
from starlette.websockets import WebSocketDisconnect

from collabtrack.access.scope import Capability, permits, visible_projects_clause
from collabtrack.auth.security import authenticate_token
from collabtrack.config import Settings
from collabtrack.database import Database
from collabtrack.errors import Unauthenticated
from collabtrack.models.project import Project
from collabtrack.models.task import Task
from collabtrack.models.user import User
from collabtrack.realtime.hub import (
    BroadcastHub,
    Connection,
    project_room,
    user_room,
    utc_timestamp,
)
from collabtrack.schemas.socket_schema import (
    CommentEventData,
    JoinProjectsData,
    ProjectEventData,
    SocketFrame,
    TaskEventData,
    TypingData,
)

logger = logging.getLogger("collabtrack.realtime")

router = APIRouter()

# close codes sent before the handshake is accepted
CLOSE_NO_TOKEN = 4401
CLOSE_BAD_TOKEN = 4403


def _extract_token(websocket: WebSocket) -> Optional[str]:
    token = websocket.query_params.get("token")
    if token:
        return token.strip()
    header = websocket.headers.get("authorization")
    if not header:
        return None
    parts = header.strip().split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return None
    return parts[1].strip() or None


# ==========================
#  Scope lookups (threadpool)
# ==========================
def _authenticate(database: Database, token: str, settings: Settings) -> tuple[int, str, str]:
    with database.session() as db:
        user = authenticate_token(db, token, settings)
        return user.id, user.name, user.email


def _active_user(db, user_id: int) -> Optional[User]:
    user = db.get(User, user_id)
    if user is None or not user.is_active:
        return None
    return user


def _visible_project_ids(database: Database, user_id: int) -> list[int]:
    with database.session() as db:
        rows = db.query(Project.id).filter(visible_projects_clause(user_id)).order_by(Project.id)
        return [project_id for (project_id,) in rows]


def _task_project_id(database: Database, user_id: int, task_id: int) -> Optional[int]:
    with database.session() as db:
        user = _active_user(db, user_id)
        task = db.get(Task, task_id)
        if user is None or task is None or not permits(db, user, Capability.VIEW, task):
            return None
        return task.project_id


def _project_visible(database: Database, user_id: int, project_id: int) -> bool:
    with database.session() as db:
        user = _active_user(db, user_id)
        project = db.get(Project, project_id)
        return user is not None and project is not None and permits(db, user, Capability.VIEW, project)


# ==========================
#  Event handlers
# ==========================
async def _join_projects(connection: Connection, hub: BroadcastHub, database: Database, data: dict) -> None:
    payload = JoinProjectsData.model_validate(data)
    project_ids = await run_in_threadpool(_visible_project_ids, database, connection.user_id)
    if payload.project_ids is not None:
        requested = set(payload.project_ids)
        project_ids = [project_id for project_id in project_ids if project_id in requested]

    for project_id in project_ids:
        hub.join(connection, project_room(project_id))

    logger.info("socket_joined_projects", extra={"user_id": connection.user_id, "count": len(project_ids)})
    await connection.send("joined-projects", {"projectIds": project_ids})


async def _task_updated(connection: Connection, hub: BroadcastHub, database: Database, data: dict) -> None:
    payload = TaskEventData.model_validate(data)
    project_id = await run_in_threadpool(_task_project_id, database, connection.user_id, payload.task_id)
    if project_id is None:
        await connection.send("error", {"message": "Task not found or insufficient permissions"})
        return

    await hub.publish(
        project_room(project_id),
        "task-updated",
        {
            "taskId": payload.task_id,
            "projectId": project_id,
            "updates": payload.updates,
            "updatedBy": connection.identity(),
            "timestamp": utc_timestamp(),
        },
        exclude=connection,
    )


async def _comment_added(connection: Connection, hub: BroadcastHub, database: Database, data: dict) -> None:
    payload = CommentEventData.model_validate(data)
    project_id = await run_in_threadpool(_task_project_id, database, connection.user_id, payload.task_id)
    if project_id is None:
        await connection.send("error", {"message": "Task not found or insufficient permissions"})
        return

    await hub.publish(
        project_room(project_id),
        "comment-added",
        {
            "taskId": payload.task_id,
            "projectId": project_id,
            "comment": {**payload.comment, "author": connection.identity()},
            "timestamp": utc_timestamp(),
        },
        exclude=connection,
    )


async def _project_updated(connection: Connection, hub: BroadcastHub, database: Database, data: dict) -> None:
    payload = ProjectEventData.model_validate(data)
    visible = await run_in_threadpool(_project_visible, database, connection.user_id, payload.project_id)
    if not visible:
        await connection.send("error", {"message": "Project not found or insufficient permissions"})
        return

    await hub.publish(
        project_room(payload.project_id),
        "project-updated",
        {
            "projectId": payload.project_id,
            "updates": payload.updates,
            "updatedBy": connection.identity(),
            "timestamp": utc_timestamp(),
        },
        exclude=connection,
    )


async def _typing(connection: Connection, hub: BroadcastHub, data: dict, is_typing: bool) -> None:
    payload = TypingData.model_validate(data)
    room = project_room(payload.project_id)
    if room not in connection.rooms:
        await connection.send("error", {"message": "Join the project before sending typing events"})
        return

    await hub.publish(
        room,
        "user-typing",
        {
            "taskId": payload.task_id,
            "userId": connection.user_id,
            "userName": connection.user_name,
            "isTyping": is_typing,
        },
        exclude=connection,
    )


async def _dispatch(connection: Connection, hub: BroadcastHub, database: Database, raw: str) -> None:
    try:
        frame = SocketFrame.model_validate(json.loads(raw))
    except (ValueError, ValidationError):
        await connection.send("error", {"message": "Malformed message"})
        return

    try:
        if frame.event == "join-projects":
            await _join_projects(connection, hub, database, frame.data)
        elif frame.event == "task-updated":
            await _task_updated(connection, hub, database, frame.data)
        elif frame.event == "comment-added":
            await _comment_added(connection, hub, database, frame.data)
        elif frame.event == "project-updated":
            await _project_updated(connection, hub, database, frame.data)
        elif frame.event == "typing-start":
            await _typing(connection, hub, frame.data, True)
        elif frame.event == "typing-stop":
            await _typing(connection, hub, frame.data, False)
        else:
            await connection.send("error", {"message": f"Unknown event '{frame.event}'"})
    except ValidationError:
        await connection.send("error", {"message": f"Invalid payload for '{frame.event}'"})


# ==========================
#  Endpoint
# ==========================
@router.websocket("/ws")
async def live_channel(websocket: WebSocket):
    hub: BroadcastHub = websocket.app.state.hub
    database: Database = websocket.app.state.database
    settings: Settings = websocket.app.state.settings

    connection = Connection(websocket)

    token = _extract_token(websocket)
    if not token:
        await websocket.close(code=CLOSE_NO_TOKEN)
        return

    try:
        user_id, name, email = await run_in_threadpool(_authenticate, database, token, settings)
    except Unauthenticated:
        await websocket.close(code=CLOSE_BAD_TOKEN)
        return

    await websocket.accept()
    connection.authenticate(user_id, name, email)
    hub.join(connection, user_room(user_id))
    logger.info("socket_connected", extra={"user_id": user_id})

    try:
        await connection.send("connected", {"userId": user_id})
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", 1000))
            raw = message.get("text")
            if raw is None:
                await connection.send("error", {"message": "Binary frames are not supported"})
                continue
            await _dispatch(connection, hub, database, raw)
    except WebSocketDisconnect:
        pass
    finally:
        hub.disconnect(connection)
        logger.info("socket_disconnected", extra={"user_id": user_id})
