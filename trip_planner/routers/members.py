from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from trip_planner.core.errors import AppError, BadRequestError, ForbiddenError, NotFoundError
from trip_planner.core.security import CurrentUser, get_current_user, get_db
from trip_planner.db.dal import Database
from trip_planner.models.constants import MANAGER_ROLES, ROLE_CREATOR
from trip_planner.models.member import (
    IgnoredMember,
    LeaveOut,
    MemberBatchRemove,
    MemberBatchRemoveOut,
    MemberOut,
    RoleUpdate,
)
from trip_planner.routers.params import IdPath
from trip_planner.services.access import can_manage_member, require_member

router = APIRouter(prefix="/api/trips/{trip_id}/members", tags=["members"])
logger = logging.getLogger("trip_planner.members")


def _removal_refusal(actor: dict, target: dict | None, remaining: int) -> AppError | None:
    """Error describing why a removal is refused, or None when allowed."""
    if target is None:
        return NotFoundError("not a member")
    if target["user_id"] == actor["user_id"]:
        return BadRequestError("use leave to remove yourself")
    if actor["role"] not in MANAGER_ROLES:
        return ForbiddenError("only the trip creator or an admin can remove members")
    if target["role"] == ROLE_CREATOR:
        return ForbiddenError("the trip creator cannot be removed")
    if not can_manage_member(actor["role"], target["role"]):
        return ForbiddenError("admins can only remove members")
    if remaining <= 1:
        return BadRequestError("cannot remove the last member")
    return None


@router.get("", response_model=list[MemberOut], summary="List trip members")
async def list_members(
    trip_id: IdPath,
    user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    require_member(db, trip_id, user.id)
    return [MemberOut(**m) for m in db.list_members(trip_id)]


@router.post("/leave", response_model=LeaveOut, summary="Leave the trip")
async def leave_trip(
    trip_id: IdPath,
    user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    member = db.get_member(trip_id, user.id)
    if not member:
        raise NotFoundError("You are not a member of this trip")
    if member["role"] == ROLE_CREATOR:
        raise ForbiddenError("The trip creator cannot leave the trip")
    db.remove_members(trip_id, [user.id])
    logger.info("user %s left trip %s", user.id, trip_id)
    return LeaveOut(trip_id=trip_id, user_id=user.id)


@router.get("/{user_id}", response_model=MemberOut, summary="Get one member")
async def get_member(
    trip_id: IdPath,
    user_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    require_member(db, trip_id, user.id)
    member = db.get_member(trip_id, user_id)
    if not member:
        raise NotFoundError("Member not found")
    return MemberOut(**member)


@router.put("/{user_id}", response_model=MemberOut, summary="Change a member's role")
async def update_member_role(
    trip_id: IdPath,
    user_id: str,
    payload: RoleUpdate,
    user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    actor = require_member(db, trip_id, user.id)
    target = db.get_member(trip_id, user_id)
    if not target:
        raise NotFoundError("Member not found")
    if target["role"] == ROLE_CREATOR:
        raise ForbiddenError("The trip creator's role cannot be changed")
    if not can_manage_member(actor["role"], target["role"]):
        raise ForbiddenError("You do not have permission to change this member's role")
    db.update_member_role(trip_id, user_id, payload.role)
    logger.info("trip %s: %s set %s to %s", trip_id, user.id, user_id, payload.role)
    return MemberOut(**db.get_member(trip_id, user_id))


@router.delete("/{user_id}", response_model=MemberOut, summary="Remove a member")
async def remove_member(
    trip_id: IdPath,
    user_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    actor = require_member(db, trip_id, user.id)
    target = db.get_member(trip_id, user_id)
    if not target:
        raise NotFoundError("Member not found")
    refusal = _removal_refusal(actor, target, db.count_members(trip_id))
    if refusal:
        raise refusal
    db.remove_members(trip_id, [user_id])
    logger.info("trip %s: %s removed %s", trip_id, user.id, user_id)
    return MemberOut(**target)


@router.delete("", response_model=MemberBatchRemoveOut, summary="Remove several members")
async def remove_members(
    trip_id: IdPath,
    payload: MemberBatchRemove,
    user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    actor = require_member(db, trip_id, user.id)
    if actor["role"] not in MANAGER_ROLES:
        raise ForbiddenError("Only the trip creator or an admin can remove members")

    remaining = db.count_members(trip_id)
    removable: list[str] = []
    ignored: list[IgnoredMember] = []
    for member_id in dict.fromkeys(payload.member_ids):
        refusal = _removal_refusal(actor, db.get_member(trip_id, member_id), remaining - len(removable))
        if refusal:
            ignored.append(IgnoredMember(user_id=member_id, reason=refusal.detail))
        else:
            removable.append(member_id)
    if not removable:
        raise BadRequestError("No members were removed", extra={"ignored": [i.model_dump() for i in ignored]})
    db.remove_members(trip_id, removable)
    return MemberBatchRemoveOut(removed=removable, ignored=ignored)
