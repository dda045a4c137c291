from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request, Response, status

from trip_planner.core.errors import BadRequestError, ForbiddenError, NotFoundError
from trip_planner.core.security import CurrentUser, get_current_user, get_db
from trip_planner.db.dal import Database
from trip_planner.models.constants import INVITE_ACCEPTED, INVITE_PENDING, INVITE_REJECTED
from trip_planner.models.invite import InviteCheckOut, InviteCreate, InviteCreatedOut, InviteOut
from trip_planner.models.trip import DeletedOut, TripOut, row_to_trip
from trip_planner.routers.params import IdPath
from trip_planner.services.access import require_manager, require_trip
from trip_planner.services.notifications import (
    notify_individual,
    notify_trip_admins,
    notify_trip_members_except,
)

router = APIRouter(prefix="/api/trips", tags=["invites"])
logger = logging.getLogger("trip_planner.invites")


def _invite_url(request: Request, token: str) -> str:
    return f"{request.app.state.settings.invite_base_url}/invite/{token}"


def _require_invite(db: Database, token: str) -> dict:
    invite = db.get_invite_by_token(token)
    if not invite:
        raise NotFoundError("Invite not found")
    return invite


def _require_addressee(invite: dict, user: CurrentUser) -> None:
    if invite["email"].lower() != user.email.lower():
        raise ForbiddenError("This invite was sent to a different email address")


@router.get("/invites/check/{token}", response_model=InviteCheckOut, summary="Public invite preview")
async def check_invite(token: str, db: Database = Depends(get_db)):
    details = db.get_invite_details(token)
    if not details or details["status"] != INVITE_PENDING:
        raise NotFoundError("Invite not found or no longer pending")
    return InviteCheckOut(
        trip_id=details["trip_id"],
        trip_name=details["trip_name"],
        inviter_name=details.get("inviter_name"),
        inviter_email=details.get("inviter_email"),
        invited_email=details["email"],
        destination=details["destination"],
        start_date=details["start_date"],
        end_date=details["end_date"],
    )


@router.get("/invites/validate/{token}", response_model=TripOut, summary="Validate an invite for the current user")
async def validate_invite(
    token: str,
    user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    invite = _require_invite(db, token)
    _require_addressee(invite, user)
    db.set_invite_user(invite["id"], user.id)
    trip = require_trip(db, invite["trip_id"])
    return row_to_trip(trip)


@router.post("/invites/accept/{token}", response_model=TripOut, summary="Accept an invite")
async def accept_invite(
    token: str,
    user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    invite = _require_invite(db, token)
    _require_addressee(invite, user)
    if invite["status"] == INVITE_ACCEPTED:
        raise BadRequestError("Invite has already been accepted")
    if invite["status"] == INVITE_REJECTED:
        raise BadRequestError("Invite has been rejected")
    trip_id = int(invite["trip_id"])
    trip = require_trip(db, trip_id)
    if db.get_member(trip_id, user.id):
        raise BadRequestError("You are already a member of this trip")

    db.accept_invite(invite["id"], trip_id, user.id)
    logger.info("user %s joined trip %s via invite", user.id, trip_id)

    display = user.full_name or user.email
    notify_trip_members_except(
        db,
        trip_id,
        user.id,
        "MEMBER_JOINED",
        "New member joined",
        f'{display} joined "{trip["name"]}".',
        related_id=user.id,
    )
    notify_individual(
        db,
        user.id,
        "MEMBER_JOINED",
        "Welcome aboard",
        f'You joined "{trip["name"]}". Happy planning!',
        trip_id=trip_id,
    )
    return row_to_trip(trip, my_role="member")


@router.post("/invites/reject/{token}", response_model=InviteOut, summary="Reject an invite")
async def reject_invite(
    token: str,
    user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    invite = _require_invite(db, token)
    _require_addressee(invite, user)
    if invite["status"] != INVITE_PENDING:
        raise BadRequestError("Only pending invites can be rejected")
    db.set_invite_status(invite["id"], INVITE_REJECTED)
    trip = require_trip(db, invite["trip_id"])
    notify_trip_admins(
        db,
        int(invite["trip_id"]),
        "INVITE_REJECTED",
        "Invite declined",
        f'{invite["email"]} declined the invite to "{trip["name"]}".',
        related_id=invite["id"],
    )
    return InviteOut(**db.get_invite_by_token(token))


@router.delete("/invites/{token}", response_model=DeletedOut, summary="Delete an invite")
async def delete_invite(
    token: str,
    user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    invite = _require_invite(db, token)
    require_manager(db, int(invite["trip_id"]), user.id, "delete invites")
    if invite["status"] == INVITE_ACCEPTED:
        raise BadRequestError("Accepted invites cannot be deleted")
    db.delete_invite(invite["id"])
    return DeletedOut(deleted_id=invite["id"])


@router.post(
    "/{trip_id}/invites",
    response_model=InviteCreatedOut,
    status_code=status.HTTP_201_CREATED,
    summary="Invite someone by email",
)
async def create_invite(
    trip_id: IdPath,
    payload: InviteCreate,
    request: Request,
    response: Response,
    user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    require_manager(db, trip_id, user.id, "send invites")
    existing_user = db.get_user_by_email(payload.email)
    if existing_user and db.get_member(trip_id, existing_user["id"]):
        raise BadRequestError("User is already a member of this trip")

    invite, created = db.create_or_reset_invite(trip_id, payload.email, user.id)
    if not created:
        response.status_code = status.HTTP_200_OK
    logger.info("invite for trip %s %s", trip_id, "created" if created else "re-sent")
    return InviteCreatedOut(invite=InviteOut(**invite), invite_url=_invite_url(request, invite["token"]))
