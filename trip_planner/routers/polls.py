from __future__ import annotations

import logging
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, status

from trip_planner.core.errors import BadRequestError, ForbiddenError, NotFoundError
from trip_planner.core.security import CurrentUser, get_current_user, get_db
from trip_planner.db.dal import Database
from trip_planner.models.constants import POLL_ACTIVE
from trip_planner.models.poll import PollBatchDelete, PollCreate, PollOptionOut, PollOut, VoteIn
from trip_planner.models.trip import BatchDeleteOut, DeletedOut
from trip_planner.routers.params import IdPath
from trip_planner.services.access import can_moderate, require_member
from trip_planner.services.clock import parse_ts, utc_now
from trip_planner.services.notifications import notify_trip_members_except
from trip_planner.services.polls import close_poll

router = APIRouter(prefix="/api/trips/{trip_id}/polls", tags=["polls"])
logger = logging.getLogger("trip_planner.polls")


def _poll_out(poll: dict, options: List[dict], my_vote: Optional[int]) -> PollOut:
    option_out = [
        PollOptionOut(id=o["id"], option_text=o["option_text"], vote_count=o["vote_count"])
        for o in options
    ]
    return PollOut(
        **{k: poll[k] for k in ("id", "trip_id", "question", "created_by", "expires_at", "status")},
        winner_option_id=poll.get("winner_option_id"),
        completed_at=poll.get("completed_at"),
        created_at=poll["created_at"],
        options=option_out,
        total_votes=sum(o.vote_count for o in option_out),
        my_vote_option_id=my_vote,
    )


def _polls_out(db: Database, polls: List[dict], user_id: str) -> List[PollOut]:
    ids = [int(p["id"]) for p in polls]
    options = db.get_poll_options(ids)
    votes: Dict[int, int] = db.get_user_votes(ids, user_id)
    return [_poll_out(p, options[int(p["id"])], votes.get(int(p["id"]))) for p in polls]


def _require_poll(db: Database, trip_id: int, poll_id: int) -> dict:
    poll = db.get_poll(trip_id, poll_id)
    if not poll:
        raise NotFoundError("Poll not found")
    return poll


def _require_open(poll: dict) -> None:
    if poll["status"] != POLL_ACTIVE:
        raise BadRequestError("Poll is no longer active")
    if parse_ts(poll["expires_at"]) <= utc_now():
        raise BadRequestError("Poll has expired")


@router.post("", response_model=PollOut, status_code=status.HTTP_201_CREATED, summary="Create a poll")
async def create_poll(
    trip_id: IdPath,
    payload: PollCreate,
    user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    require_member(db, trip_id, user.id)
    poll_id = db.create_poll(trip_id, payload.question, user.id, payload.expires_at, payload.options)
    logger.info("poll %s created in trip %s", poll_id, trip_id)
    notify_trip_members_except(
        db,
        trip_id,
        user.id,
        "POLL_CREATED",
        "New poll",
        f'{user.full_name or user.email} asked: "{payload.question}"',
        related_id=poll_id,
    )
    return _polls_out(db, [db.get_poll(trip_id, poll_id)], user.id)[0]


@router.get("", response_model=List[PollOut], summary="List polls with results")
async def list_polls(
    trip_id: IdPath,
    user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    require_member(db, trip_id, user.id)
    return _polls_out(db, db.list_polls(trip_id), user.id)


@router.post("/{poll_id}/vote", response_model=PollOut, summary="Cast or change my vote")
async def vote(
    trip_id: IdPath,
    poll_id: IdPath,
    payload: VoteIn,
    user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    require_member(db, trip_id, user.id)
    poll = _require_poll(db, trip_id, poll_id)
    _require_open(poll)
    options = db.get_poll_options([poll_id])[poll_id]
    if payload.option_id not in {int(o["id"]) for o in options}:
        raise BadRequestError("Option does not belong to this poll")
    db.upsert_vote(poll_id, user.id, payload.option_id)
    return _polls_out(db, [poll], user.id)[0]


@router.delete("/{poll_id}/vote", response_model=PollOut, summary="Withdraw my vote")
async def unvote(
    trip_id: IdPath,
    poll_id: IdPath,
    user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    require_member(db, trip_id, user.id)
    poll = _require_poll(db, trip_id, poll_id)
    _require_open(poll)
    if not db.delete_vote(poll_id, user.id):
        raise NotFoundError("You have not voted in this poll")
    return _polls_out(db, [poll], user.id)[0]


@router.patch("/{poll_id}/complete", response_model=PollOut, summary="Close a poll and pick the winner")
async def complete_poll(
    trip_id: IdPath,
    poll_id: IdPath,
    user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    member = require_member(db, trip_id, user.id)
    poll = _require_poll(db, trip_id, poll_id)
    if not can_moderate(member, poll["created_by"]):
        raise ForbiddenError("Only the poll creator, the trip creator or an admin can complete this poll")
    if poll["status"] != POLL_ACTIVE or close_poll(db, poll, utc_now()) is None:
        raise BadRequestError("Poll has already been completed")
    return _polls_out(db, [_require_poll(db, trip_id, poll_id)], user.id)[0]


@router.delete("/{poll_id}", response_model=DeletedOut, summary="Delete a poll")
async def delete_poll(
    trip_id: IdPath,
    poll_id: IdPath,
    user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    member = require_member(db, trip_id, user.id)
    poll = _require_poll(db, trip_id, poll_id)
    if not can_moderate(member, poll["created_by"]):
        raise ForbiddenError("Only the poll creator, the trip creator or an admin can delete this poll")
    db.delete_polls(trip_id, [poll_id])
    return DeletedOut(deleted_id=poll_id)


@router.delete("", response_model=BatchDeleteOut, summary="Delete several polls")
async def delete_polls(
    trip_id: IdPath,
    payload: PollBatchDelete,
    user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    member = require_member(db, trip_id, user.id)
    requested = list(dict.fromkeys(payload.poll_ids))
    allowed = [
        int(p["id"])
        for p in db.get_polls_by_ids(trip_id, requested)
        if can_moderate(member, p["created_by"])
    ]
    deleted = db.delete_polls(trip_id, allowed)
    if not deleted:
        raise NotFoundError("No polls were deleted")
    return BatchDeleteOut(
        deleted_count=deleted,
        ignored_ids=[pid for pid in requested if pid not in set(allowed)],
    )
