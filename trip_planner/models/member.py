from __future__ import annotations

from typing import List, Literal

from pydantic import BaseModel, Field

from .trip import MemberOut


class RoleUpdate(BaseModel):
    role: Literal["admin", "member"]


class MemberBatchRemove(BaseModel):
    member_ids: List[str] = Field(..., min_length=1)


class IgnoredMember(BaseModel):
    user_id: str
    reason: str


class MemberBatchRemoveOut(BaseModel):
    removed: List[str]
    ignored: List[IgnoredMember]


class LeaveOut(BaseModel):
    trip_id: int
    user_id: str


__all__ = ["MemberOut", "RoleUpdate", "MemberBatchRemove", "IgnoredMember", "MemberBatchRemoveOut", "LeaveOut"]
