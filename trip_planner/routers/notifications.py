from __future__ import annotations

import json
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request

from trip_planner.core.errors import BadRequestError, NotFoundError
from trip_planner.core.security import CurrentUser, get_current_user, get_db
from trip_planner.db.dal import Database
from trip_planner.models.constants import NOTIFICATION_TYPES
from trip_planner.models.notification import (
    NotificationDeleteOut,
    NotificationIds,
    NotificationOut,
    NotificationUpdateOut,
)
from trip_planner.routers.params import IdPath

router = APIRouter(prefix="/api/notifications", tags=["notifications"])


def _notification_out(row: dict) -> NotificationOut:
    data = dict(row)
    data["data"] = json.loads(row["data"]) if row.get("data") else None
    data["is_read"] = bool(row["is_read"])
    return NotificationOut(**data)


def _set_read(db: Database, user_id: str, ids: List[int], is_read: bool) -> NotificationUpdateOut:
    updated = db.set_notifications_read(user_id, list(dict.fromkeys(ids)), is_read)
    if not updated:
        raise NotFoundError("Notification not found")
    return NotificationUpdateOut(updated_count=updated)


@router.get("", response_model=List[NotificationOut], summary="My notification feed")
async def list_notifications(
    request: Request,
    type: Optional[str] = Query(None, description="Only notifications of this type"),
    user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    if type is not None and type not in NOTIFICATION_TYPES:
        raise BadRequestError(f"unsupported notification type '{type}'")
    # every unread item, topped up with recent read ones to fill a page
    unread = db.list_notifications(user.id, type_=type, read=False)
    room = request.app.state.settings.notification_page_size - len(unread)
    read = db.list_notifications(user.id, type_=type, read=True, limit=room) if room > 0 else []
    rows = sorted(unread + read, key=lambda r: (r["created_at"], r["id"]), reverse=True)
    return [_notification_out(r) for r in rows]


@router.patch("/read", response_model=NotificationUpdateOut, summary="Mark several as read")
async def mark_many_read(
    payload: NotificationIds,
    user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    return _set_read(db, user.id, payload.notification_ids, True)


@router.patch("/unread", response_model=NotificationUpdateOut, summary="Mark several as unread")
async def mark_many_unread(
    payload: NotificationIds,
    user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    return _set_read(db, user.id, payload.notification_ids, False)


@router.patch("/{notification_id}/read", response_model=NotificationUpdateOut, summary="Mark as read")
async def mark_read(
    notification_id: IdPath,
    user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    return _set_read(db, user.id, [notification_id], True)


@router.patch("/{notification_id}/unread", response_model=NotificationUpdateOut, summary="Mark as unread")
async def mark_unread(
    notification_id: IdPath,
    user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    return _set_read(db, user.id, [notification_id], False)


@router.delete("/{notification_id}", response_model=NotificationDeleteOut, summary="Delete a notification")
async def delete_notification(
    notification_id: IdPath,
    user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    deleted = db.delete_notifications(user.id, [notification_id])
    if not deleted:
        raise NotFoundError("Notification not found")
    return NotificationDeleteOut(deleted_count=deleted)


@router.delete("", response_model=NotificationDeleteOut, summary="Delete several notifications")
async def delete_notifications(
    payload: NotificationIds,
    user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    deleted = db.delete_notifications(user.id, list(dict.fromkeys(payload.notification_ids)))
    if not deleted:
        raise NotFoundError("No notifications found to delete")
    return NotificationDeleteOut(deleted_count=deleted)
