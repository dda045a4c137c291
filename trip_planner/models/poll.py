from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import AwareDatetime, BaseModel, Field, field_validator

from trip_planner.services.clock import utc_now
from .constants import DbId


class PollCreate(BaseModel):
    question: str
    expires_at: AwareDatetime
    options: List[str] = Field(..., min_length=2)

    @field_validator("question")
    @classmethod
    def _question_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("question cannot be empty")
        return value.strip()

    @field_validator("expires_at")
    @classmethod
    def _expires_in_future(cls, value: datetime) -> datetime:
        if value <= utc_now():
            raise ValueError("expires_at must be in the future")
        return value

    @field_validator("options")
    @classmethod
    def _options_valid(cls, options: List[str]) -> List[str]:
        cleaned = [o.strip() for o in options]
        if any(not o for o in cleaned):
            raise ValueError("options cannot be empty")
        if len({o.lower() for o in cleaned}) != len(cleaned):
            raise ValueError("options must be unique")
        return cleaned


class VoteIn(BaseModel):
    option_id: DbId


class PollOptionOut(BaseModel):
    id: int
    option_text: str
    vote_count: int


class PollOut(BaseModel):
    id: int
    trip_id: int
    question: str
    created_by: str
    expires_at: datetime
    status: str
    winner_option_id: Optional[int] = None
    completed_at: Optional[datetime] = None
    created_at: datetime
    options: List[PollOptionOut]
    total_votes: int
    my_vote_option_id: Optional[int] = None


class PollBatchDelete(BaseModel):
    poll_ids: List[DbId] = Field(..., min_length=1)
