"""Shared path parameter types."""

from typing import Annotated

from fastapi import Path

from trip_planner.models.constants import MAX_DB_ID

IdPath = Annotated[int, Path(ge=1, le=MAX_DB_ID)]
