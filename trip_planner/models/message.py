from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, field_validator, model_validator


class MessageIn(BaseModel):
    text: str

    @field_validator("text")
    @classmethod
    def _text_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("text cannot be empty")
        return value


class MessageUpdate(BaseModel):
    text: Optional[str] = None
    reactions: Optional[Dict[str, List[str]]] = None

    @field_validator("text")
    @classmethod
    def _text_not_blank(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not value.strip():
            raise ValueError("text cannot be empty")
        return value

    @field_validator("reactions")
    @classmethod
    def _dedupe_reactions(cls, value: Optional[Dict[str, List[str]]]) -> Optional[Dict[str, List[str]]]:
        if value is None:
            return None
        return {emoji: list(dict.fromkeys(users)) for emoji, users in value.items() if users}

    @model_validator(mode="after")
    def _at_least_one(self) -> "MessageUpdate":
        if self.text is None and self.reactions is None:
            raise ValueError("text or reactions must be provided")
        return self


class ReactionIn(BaseModel):
    emoji: str

    @field_validator("emoji")
    @classmethod
    def _emoji_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("emoji cannot be empty")
        return value.strip()


class MessageOut(BaseModel):
    id: str
    trip_id: int
    sender_id: str
    sender_email: Optional[str] = None
    sender_name: Optional[str] = None
    text: str
    reactions: Dict[str, List[str]]
    created_at: datetime
    updated_at: Optional[datetime] = None
