from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from trip_planner.services.clock import utc_today
from .constants import DbId


def _strip_required(value: str, field: str) -> str:
    if not value or not value.strip():
        raise ValueError(f"{field} cannot be empty")
    return value.strip()


class TripCreate(BaseModel):
    name: str
    description: Optional[str] = None
    destination: str
    start_date: date
    end_date: date
    budget: Optional[float] = Field(None, ge=0, allow_inf_nan=False)
    image_url: Optional[str] = None

    @field_validator("name")
    @classmethod
    def _name_not_blank(cls, value: str) -> str:
        return _strip_required(value, "name")

    @field_validator("destination")
    @classmethod
    def _destination_not_blank(cls, value: str) -> str:
        return _strip_required(value, "destination")

    @field_validator("start_date")
    @classmethod
    def _start_not_past(cls, value: date) -> date:
        if value < utc_today():
            raise ValueError("start_date cannot be in the past")
        return value

    @model_validator(mode="after")
    def _start_before_end(self) -> "TripCreate":
        if self.start_date >= self.end_date:
            raise ValueError("start_date must be before end_date")
        return self


class TripUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    destination: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    budget: Optional[float] = Field(None, ge=0, allow_inf_nan=False)
    image_url: Optional[str] = None

    @model_validator(mode="after")
    def _at_least_one(self) -> "TripUpdate":
        if not self.model_fields_set:
            raise ValueError("at least one field must be provided")
        return self

    @field_validator("name", "destination")
    @classmethod
    def _not_blank(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not value.strip():
            raise ValueError("value cannot be empty")
        return value.strip() if value is not None else None


class MemberOut(BaseModel):
    user_id: str
    email: str
    full_name: Optional[str] = None
    role: str
    joined_at: datetime


class TripOut(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    destination: str
    start_date: date
    end_date: date
    budget: Optional[float] = None
    image_url: Optional[str] = None
    created_by: str
    created_at: datetime
    updated_at: datetime
    my_role: Optional[str] = None


class TripDetailOut(TripOut):
    members: List[MemberOut] = []


class TripBatchDelete(BaseModel):
    trip_ids: List[DbId] = Field(..., min_length=1)


class DeletedOut(BaseModel):
    deleted_id: int | str


class BatchDeleteOut(BaseModel):
    deleted_count: int
    ignored_ids: List[int] = []


def row_to_trip(row: dict, my_role: Optional[str] = None) -> TripOut:
    data = {k: row[k] for k in TripOut.model_fields if k in row}
    if my_role is not None:
        data["my_role"] = my_role
    return TripOut(**data)
