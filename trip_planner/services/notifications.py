"""Notification creation and trip fan-out helpers.

``create_notification`` writes straight to the feed, or to the scheduled
table when ``send_at`` lies in the future; the scheduler later moves due rows
into the feed. The ``notify_*`` helpers resolve recipients from trip
membership and delegate to it.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from trip_planner.db.dal import Database
from trip_planner.models.constants import MANAGER_ROLES, NOTIFICATION_CHANNELS, NOTIFICATION_TYPES
from trip_planner.services.clock import utc_now

logger = logging.getLogger("trip_planner.notifications")


def create_notification(
    db: Database,
    user_ids: Iterable[str],
    type_: str,
    title: str,
    message: str,
    trip_id: Optional[int] = None,
    related_id: Any = None,
    data: Optional[Dict[str, Any]] = None,
    channel: str = "IN_APP",
    send_at: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> int:
    """Create one notification per recipient; returns how many were written."""
    if type_ not in NOTIFICATION_TYPES:
        raise ValueError(f"unsupported notification type '{type_}'")
    if channel not in NOTIFICATION_CHANNELS:
        raise ValueError(f"unsupported notification channel '{channel}'")
    recipients = list(dict.fromkeys(user_ids))
    if not recipients:
        return 0
    items = [
        {
            "user_id": uid,
            "trip_id": trip_id,
            "type": type_,
            "related_id": related_id,
            "title": title,
            "message": message,
            "data": data,
            "channel": channel,
        }
        for uid in recipients
    ]
    now = now or utc_now()
    if send_at is not None and send_at > now:
        count = db.insert_scheduled_notifications(items, send_at)
        logger.debug("scheduled %s %s notification(s) for %s", count, type_, send_at.isoformat())
        return count
    count = db.insert_notifications(items)
    logger.debug("created %s %s notification(s)", count, type_)
    return count


def _member_ids(db: Database, trip_id: int) -> List[str]:
    return [m["user_id"] for m in db.list_members(trip_id)]


def notify_trip_members(db: Database, trip_id: int, type_: str, title: str, message: str, **kwargs: Any) -> int:
    return create_notification(db, _member_ids(db, trip_id), type_, title, message, trip_id=trip_id, **kwargs)


def notify_trip_members_except(
    db: Database, trip_id: int, exclude_user_id: str, type_: str, title: str, message: str, **kwargs: Any
) -> int:
    recipients = [uid for uid in _member_ids(db, trip_id) if uid != exclude_user_id]
    return create_notification(db, recipients, type_, title, message, trip_id=trip_id, **kwargs)


def notify_individual(
    db: Database, user_id: str, type_: str, title: str, message: str, trip_id: Optional[int] = None, **kwargs: Any
) -> int:
    return create_notification(db, [user_id], type_, title, message, trip_id=trip_id, **kwargs)


def notify_trip_admins(db: Database, trip_id: int, type_: str, title: str, message: str, **kwargs: Any) -> int:
    recipients = [m["user_id"] for m in db.list_members(trip_id) if m["role"] in MANAGER_ROLES]
    return create_notification(db, recipients, type_, title, message, trip_id=trip_id, **kwargs)


def notify_specific_members(
    db: Database, trip_id: int, user_ids: Iterable[str], type_: str, title: str, message: str, **kwargs: Any
) -> int:
    """Notify the given users, skipping anyone who is no longer a member."""
    members = set(_member_ids(db, trip_id))
    recipients = [uid for uid in user_ids if uid in members]
    return create_notification(db, recipients, type_, title, message, trip_id=trip_id, **kwargs)
