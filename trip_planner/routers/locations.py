from __future__ import annotations

import logging
from typing import List

from fastapi import APIRouter, Depends, status

from trip_planner.core.errors import NotFoundError
from trip_planner.core.security import CurrentUser, get_current_user, get_db
from trip_planner.db.dal import Database
from trip_planner.models.location import Coordinates, LocationCreate, LocationNotesUpdate, LocationOut
from trip_planner.models.trip import DeletedOut
from trip_planner.routers.params import IdPath
from trip_planner.services.access import require_member

router = APIRouter(prefix="/api/trips/{trip_id}/marked-locations", tags=["locations"])
logger = logging.getLogger("trip_planner.locations")


def _location_out(row: dict) -> LocationOut:
    return LocationOut(
        **{k: v for k, v in row.items() if k not in ("latitude", "longitude")},
        coordinates=Coordinates(latitude=row["latitude"], longitude=row["longitude"]),
    )


def _require_location(db: Database, trip_id: int, location_id: str) -> dict:
    location = db.get_location(trip_id, location_id)
    if not location:
        raise NotFoundError("Location not found")
    return location


@router.get("", response_model=List[LocationOut], summary="List saved map pins")
async def list_locations(
    trip_id: IdPath,
    user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    require_member(db, trip_id, user.id)
    return [_location_out(r) for r in db.list_locations(trip_id)]


@router.post("", response_model=LocationOut, status_code=status.HTTP_201_CREATED, summary="Save a map pin")
async def create_location(
    trip_id: IdPath,
    payload: LocationCreate,
    user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    require_member(db, trip_id, user.id)
    location_id = db.create_location(
        trip_id,
        user.id,
        name=payload.name,
        type=payload.type,
        latitude=payload.coordinates.latitude,
        longitude=payload.coordinates.longitude,
        address=payload.address,
        notes=payload.notes,
        website=payload.website,
        phone_number=payload.phone_number,
    )
    logger.debug("location %s saved in trip %s", location_id, trip_id)
    return _location_out(_require_location(db, trip_id, location_id))


@router.put("/{location_id}/notes", response_model=LocationOut, summary="Replace a pin's notes")
async def update_location_notes(
    trip_id: IdPath,
    location_id: str,
    payload: LocationNotesUpdate,
    user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    require_member(db, trip_id, user.id)
    _require_location(db, trip_id, location_id)
    db.update_location_notes(location_id, payload.notes)
    return _location_out(_require_location(db, trip_id, location_id))


@router.delete("/{location_id}", response_model=DeletedOut, summary="Remove a map pin")
async def delete_location(
    trip_id: IdPath,
    location_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    require_member(db, trip_id, user.id)
    _require_location(db, trip_id, location_id)
    db.delete_location(location_id)
    return DeletedOut(deleted_id=location_id)
