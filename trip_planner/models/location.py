from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from .constants import LOCATION_TYPES


class Coordinates(BaseModel):
    latitude: float = Field(..., ge=-90, le=90, allow_inf_nan=False)
    longitude: float = Field(..., ge=-180, le=180, allow_inf_nan=False)


class LocationCreate(BaseModel):
    name: str
    type: str = "OTHER"
    coordinates: Coordinates
    address: Optional[str] = None
    notes: Optional[str] = None
    website: Optional[str] = None
    phone_number: Optional[str] = None

    @field_validator("name")
    @classmethod
    def _name_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("name cannot be empty")
        return value.strip()

    @field_validator("type")
    @classmethod
    def _valid_type(cls, value: str) -> str:
        normalized = value.strip().upper()
        if normalized not in LOCATION_TYPES:
            raise ValueError(f"Invalid type. Allowed values: {', '.join(sorted(LOCATION_TYPES))}")
        return normalized


class LocationNotesUpdate(BaseModel):
    notes: Optional[str] = None


class LocationOut(BaseModel):
    id: str
    trip_id: int
    name: str
    type: str
    coordinates: Coordinates
    address: Optional[str] = None
    notes: Optional[str] = None
    website: Optional[str] = None
    phone_number: Optional[str] = None
    created_by: str
    created_at: datetime
