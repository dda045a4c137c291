from __future__ import annotations

from datetime import timedelta
import logging
from typing import List

from fastapi import APIRouter, Depends, status

from trip_planner.core.errors import BadRequestError, ForbiddenError, NotFoundError
from trip_planner.core.security import CurrentUser, get_current_user, get_db
from trip_planner.db.dal import Database
from trip_planner.models.itinerary import (
    AssignIn,
    AssignmentOut,
    AssignmentResultOut,
    EventBatchDelete,
    EventCreate,
    EventOut,
    EventUpdate,
    NoteBatchDelete,
    NoteIn,
    NoteOut,
)
from trip_planner.models.trip import BatchDeleteOut, DeletedOut
from trip_planner.routers.params import IdPath
from trip_planner.services.access import can_moderate, require_member
from trip_planner.services.clock import parse_ts, utc_now
from trip_planner.services.notifications import create_notification, notify_specific_members

router = APIRouter(prefix="/api/trips/{trip_id}/itinerary-events", tags=["itinerary"])
logger = logging.getLogger("trip_planner.itinerary")

REMINDER_LEAD = timedelta(hours=1)


def _events_out(db: Database, events: List[dict]) -> List[EventOut]:
    ids = [int(e["id"]) for e in events]
    assignments = db.get_assignments(ids)
    notes = db.get_notes(ids)
    return [
        EventOut(
            **e,
            assignments=[AssignmentOut(**a) for a in assignments[int(e["id"])]],
            notes=[NoteOut(**n) for n in notes[int(e["id"])]],
        )
        for e in events
    ]


def _require_event(db: Database, trip_id: int, event_id: int) -> dict:
    event = db.get_event(trip_id, event_id)
    if not event:
        raise NotFoundError("Event not found")
    return event


def _require_editor(member: dict, event: dict) -> None:
    if not can_moderate(member, event["created_by"]):
        raise ForbiddenError("Only the event creator, the trip creator or an admin can change this event")


def _schedule_reminder(db: Database, trip_id: int, event_id: int, title: str, start_time, user_ids: List[str]) -> None:
    remind_at = start_time - REMINDER_LEAD
    if remind_at <= utc_now():
        return
    create_notification(
        db,
        user_ids,
        "EVENT_REMINDER",
        "Upcoming event",
        f'"{title}" starts in one hour.',
        trip_id=trip_id,
        related_id=event_id,
        send_at=remind_at,
    )


@router.post("", response_model=EventOut, status_code=status.HTTP_201_CREATED, summary="Create an itinerary event")
async def create_event(
    trip_id: IdPath,
    payload: EventCreate,
    user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    require_member(db, trip_id, user.id)
    assignees = list(dict.fromkeys(payload.assigned_user_ids))
    member_ids = {m["user_id"] for m in db.list_members(trip_id)}
    outsiders = [uid for uid in assignees if uid not in member_ids]
    if outsiders:
        raise BadRequestError("Some assigned users are not members of this trip", extra={"not_members": outsiders})

    event_id = db.create_event(
        trip_id=trip_id,
        created_by=user.id,
        title=payload.title,
        start_time=payload.start_time,
        end_time=payload.end_time,
        category=payload.category,
        description=payload.description,
        location=payload.location,
        assigned_user_ids=assignees,
        notes=payload.notes,
    )
    logger.info("event %s created in trip %s", event_id, trip_id)

    notify_specific_members(
        db,
        trip_id,
        [uid for uid in assignees if uid != user.id],
        "EVENT_ASSIGNMENT",
        "You were assigned to an event",
        f'You were assigned to "{payload.title}".',
        related_id=event_id,
    )
    _schedule_reminder(db, trip_id, event_id, payload.title, payload.start_time, assignees)
    return _events_out(db, [_require_event(db, trip_id, event_id)])[0]


@router.get("", response_model=List[EventOut], summary="List the itinerary")
async def list_events(
    trip_id: IdPath,
    user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    require_member(db, trip_id, user.id)
    return _events_out(db, db.list_events(trip_id))


@router.get("/{event_id}", response_model=EventOut, summary="Get one event")
async def get_event(
    trip_id: IdPath,
    event_id: IdPath,
    user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    require_member(db, trip_id, user.id)
    return _events_out(db, [_require_event(db, trip_id, event_id)])[0]


@router.put("/{event_id}", response_model=EventOut, summary="Edit an event (partial)")
async def update_event(
    trip_id: IdPath,
    event_id: IdPath,
    payload: EventUpdate,
    user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    member = require_member(db, trip_id, user.id)
    event = _require_event(db, trip_id, event_id)
    _require_editor(member, event)

    updates = payload.model_dump(exclude_unset=True)
    if "title" in updates and updates["title"] is None:
        raise BadRequestError("title cannot be null")
    start = updates.get("start_time") or parse_ts(event["start_time"])
    end = updates.get("end_time") or parse_ts(event["end_time"])
    if end <= start:
        raise BadRequestError("end_time must be after start_time")
    db.update_event(event_id, **updates)
    return _events_out(db, [_require_event(db, trip_id, event_id)])[0]


@router.delete("/{event_id}", response_model=DeletedOut, summary="Delete an event")
async def delete_event(
    trip_id: IdPath,
    event_id: IdPath,
    user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    member = require_member(db, trip_id, user.id)
    _require_editor(member, _require_event(db, trip_id, event_id))
    db.delete_events(trip_id, [event_id])
    return DeletedOut(deleted_id=event_id)


@router.delete("", response_model=BatchDeleteOut, summary="Delete several events")
async def delete_events(
    trip_id: IdPath,
    payload: EventBatchDelete,
    user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    member = require_member(db, trip_id, user.id)
    requested = list(dict.fromkeys(payload.event_ids))
    allowed = [
        int(e["id"])
        for e in db.get_events_by_ids(trip_id, requested)
        if can_moderate(member, e["created_by"])
    ]
    deleted = db.delete_events(trip_id, allowed)
    if not deleted:
        raise NotFoundError("No events were deleted")
    return BatchDeleteOut(
        deleted_count=deleted,
        ignored_ids=[eid for eid in requested if eid not in set(allowed)],
    )


# Assignments ------------------------------------------------------
@router.post("/{event_id}/assign", response_model=AssignmentResultOut, summary="Assign members to an event")
async def assign_users(
    trip_id: IdPath,
    event_id: IdPath,
    payload: AssignIn,
    user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    member = require_member(db, trip_id, user.id)
    event = _require_event(db, trip_id, event_id)
    _require_editor(member, event)

    member_ids = {m["user_id"] for m in db.list_members(trip_id)}
    already = {a["user_id"] for a in db.get_assignments([event_id])[event_id]}
    requested = list(dict.fromkeys(payload.user_ids))
    new = [uid for uid in requested if uid in member_ids and uid not in already]
    if not new:
        raise BadRequestError("No assignable users: they are already assigned or not trip members")
    db.assign_users(event_id, new)

    notify_specific_members(
        db,
        trip_id,
        [uid for uid in new if uid != user.id],
        "EVENT_ASSIGNMENT",
        "You were assigned to an event",
        f'You were assigned to "{event["title"]}".',
        related_id=event_id,
    )
    _schedule_reminder(db, trip_id, event_id, event["title"], parse_ts(event["start_time"]), new)
    return AssignmentResultOut(
        event_id=event_id,
        changed=new,
        skipped=[uid for uid in requested if uid not in new],
    )


@router.delete("/{event_id}/assign", response_model=AssignmentResultOut, summary="Unassign members")
async def unassign_users(
    trip_id: IdPath,
    event_id: IdPath,
    payload: AssignIn,
    user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    member = require_member(db, trip_id, user.id)
    _require_editor(member, _require_event(db, trip_id, event_id))
    already = {a["user_id"] for a in db.get_assignments([event_id])[event_id]}
    requested = list(dict.fromkeys(payload.user_ids))
    removable = [uid for uid in requested if uid in already]
    if not removable:
        raise BadRequestError("None of these users are assigned to the event")
    db.unassign_users(event_id, removable)
    return AssignmentResultOut(
        event_id=event_id,
        changed=removable,
        skipped=[uid for uid in requested if uid not in removable],
    )


# Notes ------------------------------------------------------------
def _require_own_note(db: Database, event_id: int, note_id: int, user_id: str) -> dict:
    note = db.get_note(event_id, note_id)
    if not note:
        raise NotFoundError("Note not found")
    if note["created_by"] != user_id:
        raise ForbiddenError("Only the note author can change it")
    return note


def _note_out(db: Database, event_id: int, note_id: int) -> NoteOut:
    note = next(n for n in db.get_notes([event_id])[event_id] if int(n["id"]) == note_id)
    return NoteOut(**note)


@router.post(
    "/{event_id}/notes",
    response_model=NoteOut,
    status_code=status.HTTP_201_CREATED,
    summary="Add a note to an event",
)
async def add_note(
    trip_id: IdPath,
    event_id: IdPath,
    payload: NoteIn,
    user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    require_member(db, trip_id, user.id)
    event = _require_event(db, trip_id, event_id)
    note_id = db.add_note(event_id, payload.content, user.id)
    assignees = [a["user_id"] for a in db.get_assignments([event_id])[event_id]]
    notify_specific_members(
        db,
        trip_id,
        [uid for uid in assignees if uid != user.id],
        "EVENT_NOTE_ADDED",
        "New note on an event",
        f'{user.full_name or user.email} added a note to "{event["title"]}".',
        related_id=event_id,
        data={"event_id": event_id, "note_id": note_id},
    )
    return _note_out(db, event_id, note_id)


@router.put("/{event_id}/notes/{note_id}", response_model=NoteOut, summary="Edit my note")
async def update_note(
    trip_id: IdPath,
    event_id: IdPath,
    note_id: IdPath,
    payload: NoteIn,
    user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    require_member(db, trip_id, user.id)
    _require_event(db, trip_id, event_id)
    _require_own_note(db, event_id, note_id, user.id)
    db.update_note(note_id, payload.content)
    return _note_out(db, event_id, note_id)


@router.delete("/{event_id}/notes/{note_id}", response_model=DeletedOut, summary="Delete my note")
async def delete_note(
    trip_id: IdPath,
    event_id: IdPath,
    note_id: IdPath,
    user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    require_member(db, trip_id, user.id)
    _require_event(db, trip_id, event_id)
    _require_own_note(db, event_id, note_id, user.id)
    db.delete_notes(event_id, [note_id])
    return DeletedOut(deleted_id=note_id)


@router.delete("/{event_id}/notes", response_model=BatchDeleteOut, summary="Delete several of my notes")
async def delete_notes(
    trip_id: IdPath,
    event_id: IdPath,
    payload: NoteBatchDelete,
    user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    require_member(db, trip_id, user.id)
    _require_event(db, trip_id, event_id)
    requested = list(dict.fromkeys(payload.note_ids))
    own = [
        int(n["id"])
        for n in db.get_notes([event_id])[event_id]
        if int(n["id"]) in set(requested) and n["created_by"] == user.id
    ]
    deleted = db.delete_notes(event_id, own, author_id=user.id)
    if not deleted:
        raise NotFoundError("No notes of yours were found to delete")
    return BatchDeleteOut(
        deleted_count=deleted,
        ignored_ids=[nid for nid in requested if nid not in set(own)],
    )
