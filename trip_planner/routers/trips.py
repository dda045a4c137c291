from __future__ import annotations

from datetime import date
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, status

from trip_planner.core.errors import BadRequestError, ForbiddenError, NotFoundError
from trip_planner.core.security import CurrentUser, get_current_user, get_db
from trip_planner.db.dal import Database
from trip_planner.models.constants import MANAGER_ROLES, MAX_DB_ID
from trip_planner.models.trip import (
    BatchDeleteOut,
    DeletedOut,
    MemberOut,
    TripBatchDelete,
    TripCreate,
    TripDetailOut,
    TripOut,
    TripUpdate,
    row_to_trip,
)
from trip_planner.routers.params import IdPath
from trip_planner.services.access import require_creator, require_trip
from trip_planner.services.notifications import notify_trip_members_except

router = APIRouter(prefix="/api/trips", tags=["trips"])
logger = logging.getLogger("trip_planner.trips")


def _trip_detail(db: Database, trip: dict, my_role: Optional[str]) -> TripDetailOut:
    members = [MemberOut(**m) for m in db.list_members(int(trip["id"]))]
    base = row_to_trip(trip).model_dump()
    base["my_role"] = my_role
    return TripDetailOut(**base, members=members)


@router.post(
    "",
    response_model=TripDetailOut,
    status_code=status.HTTP_201_CREATED,
    summary="Create trip",
)
async def create_trip(
    payload: TripCreate,
    user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    trip_id = db.create_trip(
        created_by=user.id,
        name=payload.name,
        description=payload.description,
        destination=payload.destination,
        start_date=payload.start_date,
        end_date=payload.end_date,
        budget=payload.budget,
        image_url=payload.image_url,
    )
    logger.info("trip %s created by %s", trip_id, user.id)
    trip = require_trip(db, trip_id)
    return _trip_detail(db, trip, "creator")


@router.get("", response_model=list[TripOut], summary="List my trips")
async def list_trips(
    request: Request,
    destination: Optional[str] = Query(None, description="Case-insensitive substring match"),
    start_date: Optional[date] = Query(None, description="Trips starting on or after"),
    end_date: Optional[date] = Query(None, description="Trips ending on or before"),
    limit: Optional[int] = Query(None, ge=1, le=100),
    offset: int = Query(0, ge=0, le=MAX_DB_ID),
    user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    if start_date and end_date and start_date > end_date:
        raise BadRequestError("start_date cannot be after end_date")
    rows = db.list_trips_for_user(
        user.id,
        destination=destination,
        start_from=start_date,
        end_by=end_date,
        limit=limit or request.app.state.settings.trip_page_size,
        offset=offset,
    )
    return [row_to_trip(r) for r in rows]


@router.get("/{trip_id}", response_model=TripDetailOut, summary="Get trip details")
async def get_trip(
    trip_id: IdPath,
    user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    trip = require_trip(db, trip_id)
    member = db.get_member(trip_id, user.id)
    if not member and trip["created_by"] != user.id:
        raise ForbiddenError("You are not a member of this trip")
    return _trip_detail(db, trip, member["role"] if member else None)


@router.put("/{trip_id}", response_model=TripDetailOut, summary="Update trip")
async def update_trip(
    trip_id: IdPath,
    payload: TripUpdate,
    user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    trip = require_trip(db, trip_id)
    member = db.get_member(trip_id, user.id)
    if not member or member["role"] not in MANAGER_ROLES:
        raise ForbiddenError("Only the trip creator or an admin can update this trip")

    updates = payload.model_dump(exclude_unset=True)
    start = updates.get("start_date") or date.fromisoformat(trip["start_date"])
    end = updates.get("end_date") or date.fromisoformat(trip["end_date"])
    if start >= end:
        raise BadRequestError("start_date must be before end_date")
    for required in ("name", "destination"):
        if required in updates and updates[required] is None:
            raise BadRequestError(f"{required} cannot be null")
    try:
        db.update_trip(trip_id, **updates)
    except ValueError:
        raise NotFoundError("Trip not found")
    return _trip_detail(db, require_trip(db, trip_id), member["role"])


@router.delete("/{trip_id}", response_model=DeletedOut, summary="Delete trip")
async def delete_trip(
    trip_id: IdPath,
    user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    trip = require_trip(db, trip_id)
    require_creator(db, trip_id, user.id, "delete this trip")
    # members are gone once the trip cascades, so notify first
    notify_trip_members_except(
        db,
        trip_id,
        user.id,
        "TRIP_DELETED",
        "Trip deleted",
        f'The trip "{trip["name"]}" was deleted by its creator.',
        data={"trip_id": trip_id},
    )
    db.delete_trip(trip_id)
    logger.info("trip %s deleted by %s", trip_id, user.id)
    return DeletedOut(deleted_id=trip_id)


@router.delete("", response_model=BatchDeleteOut, summary="Delete several of my trips")
async def delete_trips(
    payload: TripBatchDelete,
    user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    requested = list(dict.fromkeys(payload.trip_ids))
    deleted = db.delete_trips_created_by(user.id, requested)
    if not deleted:
        raise NotFoundError("No trips found to delete")
    return BatchDeleteOut(
        deleted_count=len(deleted),
        ignored_ids=[tid for tid in requested if tid not in set(deleted)],
    )
