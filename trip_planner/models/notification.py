from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from .constants import DbId


class NotificationOut(BaseModel):
    id: int
    user_id: str
    trip_id: Optional[int] = None
    type: str
    related_id: Optional[str] = None
    title: str
    message: str
    data: Optional[Dict[str, Any]] = None
    channel: str
    is_read: bool
    created_at: datetime


class NotificationIds(BaseModel):
    notification_ids: List[DbId] = Field(..., min_length=1)


class NotificationUpdateOut(BaseModel):
    updated_count: int


class NotificationDeleteOut(BaseModel):
    deleted_count: int
