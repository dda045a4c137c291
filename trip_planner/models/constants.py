"""Domain constants and enumerations for validation."""

from typing import Annotated, Set, Tuple

from pydantic import Field

# Trip membership
ROLE_CREATOR = "creator"
ROLE_ADMIN = "admin"
ROLE_MEMBER = "member"
ROLES: Set[str] = {ROLE_CREATOR, ROLE_ADMIN, ROLE_MEMBER}
MANAGER_ROLES: Set[str] = {ROLE_CREATOR, ROLE_ADMIN}
ASSIGNABLE_ROLES: Set[str] = {ROLE_ADMIN, ROLE_MEMBER}

# SQLite INTEGER primary keys are signed 64-bit
MAX_DB_ID = 2**63 - 1
DbId = Annotated[int, Field(ge=1, le=MAX_DB_ID)]

# Expenses (ordered: breakdown output follows this order on ties)
EXPENSE_CATEGORIES: Tuple[str, ...] = (
    "food",
    "accommodation",
    "transportation",
    "activities",
    "miscellaneous",
)

# Invites
INVITE_PENDING = "pending"
INVITE_ACCEPTED = "accepted"
INVITE_REJECTED = "rejected"
INVITE_STATUSES: Set[str] = {INVITE_PENDING, INVITE_ACCEPTED, INVITE_REJECTED}

# Polls
POLL_ACTIVE = "ACTIVE"
POLL_COMPLETED = "COMPLETED"
POLL_TIE = "TIE"
POLL_STATUSES: Set[str] = {POLL_ACTIVE, POLL_COMPLETED, POLL_TIE}

# Itinerary
EVENT_CATEGORIES: Set[str] = {
    "GENERAL",
    "TRAVEL",
    "ACTIVITY",
    "MEAL",
    "MEETING",
    "FREE_TIME",
    "OTHER",
}

# Map pins
LOCATION_TYPES: Set[str] = {
    "ACCOMMODATION",
    "RESTAURANT",
    "CAFE",
    "SHOPPING",
    "GAS_STATION",
    "OTHER",
}

# Notifications
NOTIFICATION_TYPES: Set[str] = {
    "MEMBER_JOINED",
    "INVITE_REJECTED",
    "EXPENSE_CREATED",
    "EXPENSE_SHARE_SETTLED",
    "POLL_CREATED",
    "POLL_COMPLETED",
    "EVENT_ASSIGNMENT",
    "EVENT_NOTE_ADDED",
    "EVENT_REMINDER",
    "TRIP_DELETED",
}
NOTIFICATION_CHANNELS: Set[str] = {"IN_APP", "EMAIL"}
