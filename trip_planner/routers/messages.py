"""Trip chat: persisted messages plus a live websocket room per trip.

REST writes and websocket writes go through the same persistence path and are
fanned out to every socket connected to the trip through the app's ChatHub.
"""

from __future__ import annotations

import json
import logging
from typing import List

from fastapi import APIRouter, Depends, Query, Request, WebSocket, WebSocketDisconnect, status

from trip_planner.core.errors import AppError, ForbiddenError, NotFoundError
from trip_planner.core.security import CurrentUser, authenticate, get_current_user, get_db
from trip_planner.db.dal import Database
from trip_planner.models.message import MessageIn, MessageOut, MessageUpdate, ReactionIn
from trip_planner.routers.params import IdPath
from trip_planner.services.access import require_member
from trip_planner.services.chat import ChatHub

router = APIRouter(prefix="/api/trips/{trip_id}/messages", tags=["messages"])
chat_router = APIRouter(prefix="/api/trips/{trip_id}", tags=["messages"])
logger = logging.getLogger("trip_planner.chat")


def _message_out(row: dict) -> MessageOut:
    data = dict(row)
    data["reactions"] = json.loads(row.get("reactions") or "{}")
    return MessageOut(**data)


def _require_message(db: Database, trip_id: int, message_id: str) -> dict:
    message = db.get_message(trip_id, message_id)
    if not message:
        raise NotFoundError("Message not found")
    return message


def _hub(request_or_socket) -> ChatHub:
    return request_or_socket.app.state.chat_hub


def _event(kind: str, message: MessageOut) -> dict:
    return {"type": kind, "message": message.model_dump(mode="json")}


@router.get("", response_model=List[MessageOut], summary="Chat history, oldest first")
async def list_messages(
    trip_id: IdPath,
    user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    require_member(db, trip_id, user.id)
    return [_message_out(r) for r in db.list_messages(trip_id)]


@router.post("", response_model=MessageOut, status_code=status.HTTP_201_CREATED, summary="Post a message")
async def create_message(
    trip_id: IdPath,
    payload: MessageIn,
    request: Request,
    user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    require_member(db, trip_id, user.id)
    message_id = db.create_message(trip_id, user.id, payload.text)
    message = _message_out(_require_message(db, trip_id, message_id))
    await _hub(request).broadcast(trip_id, _event("new_message", message))
    return message


@router.patch("/{message_id}", response_model=MessageOut, summary="Edit text or replace reactions")
async def update_message(
    trip_id: IdPath,
    message_id: str,
    payload: MessageUpdate,
    request: Request,
    user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    require_member(db, trip_id, user.id)
    existing = _require_message(db, trip_id, message_id)
    changes = {}
    if payload.text is not None:
        if existing["sender_id"] != user.id:
            raise ForbiddenError("Only the sender can edit a message")
        changes["text"] = payload.text
    if payload.reactions is not None:
        changes["reactions"] = payload.reactions
    db.update_message(message_id, **changes)
    message = _message_out(_require_message(db, trip_id, message_id))
    if payload.reactions is not None:
        await _hub(request).broadcast(trip_id, _event("reaction_updated", message))
    return message


@router.post("/{message_id}/reactions", response_model=MessageOut, summary="React to a message")
async def add_reaction(
    trip_id: IdPath,
    message_id: str,
    payload: ReactionIn,
    request: Request,
    user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    require_member(db, trip_id, user.id)
    _require_message(db, trip_id, message_id)
    db.add_reaction(message_id, payload.emoji, user.id)
    message = _message_out(_require_message(db, trip_id, message_id))
    await _hub(request).broadcast(trip_id, _event("reaction_updated", message))
    return message


@chat_router.websocket("/chat")
async def chat_socket(websocket: WebSocket, trip_id: IdPath, token: str = Query("")):
    settings = websocket.app.state.settings
    db = Database(settings.db_path)
    try:
        user = authenticate(token, settings, db)
        require_member(db, trip_id, user.id)
    except AppError as exc:
        logger.info("chat connection refused for trip-%s: %s", trip_id, exc.detail)
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    hub = _hub(websocket)
    await websocket.accept()
    hub.join(trip_id, websocket)
    try:
        while True:
            raw = await websocket.receive_text()
            try:
                data = json.loads(raw)
            except ValueError:
                await websocket.send_json({"type": "error", "detail": "invalid JSON"})
                continue
            if not isinstance(data, dict) or data.get("type") != "send_message":
                await websocket.send_json({"type": "error", "detail": "unsupported event"})
                continue
            text = data.get("text")
            if not isinstance(text, str) or not text.strip():
                await websocket.send_json({"type": "error", "detail": "text cannot be empty"})
                continue
            if db.get_member(trip_id, user.id) is None:
                logger.info("closing chat socket for %s: no longer in trip-%s", user.id, trip_id)
                await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
                return
            message_id = db.create_message(trip_id, user.id, text)
            message = _message_out(_require_message(db, trip_id, message_id))
            await hub.broadcast(trip_id, _event("new_message", message))
    except WebSocketDisconnect:
        logger.debug("socket left trip-%s", trip_id)
    finally:
        hub.leave(trip_id, websocket)
