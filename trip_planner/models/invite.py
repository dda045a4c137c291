from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, EmailStr, field_validator


class InviteCreate(BaseModel):
    email: EmailStr

    @field_validator("email")
    @classmethod
    def _lower(cls, value: str) -> str:
        return value.lower()


class InviteOut(BaseModel):
    id: int
    trip_id: int
    email: str
    token: str
    status: str
    created_by: str
    invited_user_id: Optional[str] = None
    created_at: datetime


class InviteCreatedOut(BaseModel):
    invite: InviteOut
    invite_url: str


class InviteCheckOut(BaseModel):
    trip_id: int
    trip_name: str
    inviter_name: Optional[str] = None
    inviter_email: Optional[str] = None
    invited_email: str
    destination: str
    start_date: date
    end_date: date
