from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import AwareDatetime, BaseModel, Field, field_validator, model_validator

from .constants import EVENT_CATEGORIES, DbId


def _valid_category(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    normalized = value.strip().upper()
    if normalized not in EVENT_CATEGORIES:
        raise ValueError(f"unsupported category; allowed: {', '.join(sorted(EVENT_CATEGORIES))}")
    return normalized


class EventCreate(BaseModel):
    title: str
    description: Optional[str] = None
    location: Optional[str] = None
    start_time: AwareDatetime
    end_time: AwareDatetime
    category: str = "GENERAL"
    assigned_user_ids: List[str] = []
    notes: List[str] = []

    @field_validator("title")
    @classmethod
    def _title_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("title cannot be empty")
        return value.strip()

    @field_validator("category")
    @classmethod
    def _category(cls, value: str) -> str:
        return _valid_category(value)  # type: ignore[return-value]

    @field_validator("notes")
    @classmethod
    def _notes(cls, notes: List[str]) -> List[str]:
        return [n.strip() for n in notes if n and n.strip()]

    @model_validator(mode="after")
    def _end_after_start(self) -> "EventCreate":
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        return self


class EventUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    location: Optional[str] = None
    start_time: Optional[AwareDatetime] = None
    end_time: Optional[AwareDatetime] = None
    category: Optional[str] = None

    @field_validator("category")
    @classmethod
    def _category(cls, value: Optional[str]) -> Optional[str]:
        return _valid_category(value)

    @field_validator("title")
    @classmethod
    def _title_not_blank(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not value.strip():
            raise ValueError("title cannot be empty")
        return value.strip() if value is not None else None

    @model_validator(mode="after")
    def _at_least_one(self) -> "EventUpdate":
        if not self.model_fields_set:
            raise ValueError("at least one field must be provided")
        return self


class AssignIn(BaseModel):
    user_ids: List[str] = Field(..., min_length=1)


class NoteIn(BaseModel):
    content: str

    @field_validator("content")
    @classmethod
    def _content_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("content cannot be empty")
        return value.strip()


class NoteBatchDelete(BaseModel):
    note_ids: List[DbId] = Field(..., min_length=1)


class EventBatchDelete(BaseModel):
    event_ids: List[DbId] = Field(..., min_length=1)


class AssignmentOut(BaseModel):
    user_id: str
    email: str
    full_name: Optional[str] = None
    assigned_at: datetime


class NoteOut(BaseModel):
    id: int
    event_id: int
    content: str
    created_by: str
    author_email: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class EventOut(BaseModel):
    id: int
    trip_id: int
    title: str
    description: Optional[str] = None
    location: Optional[str] = None
    start_time: datetime
    end_time: datetime
    category: str
    created_by: str
    created_at: datetime
    updated_at: datetime
    assignments: List[AssignmentOut] = []
    notes: List[NoteOut] = []


class AssignmentResultOut(BaseModel):
    event_id: int
    changed: List[str]
    skipped: List[str]
