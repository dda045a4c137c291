"""Trip-scoped permission checks shared by the routers."""

from __future__ import annotations

from typing import Any, Dict

from trip_planner.core.errors import ForbiddenError, NotFoundError
from trip_planner.db.dal import Database
from trip_planner.models.constants import MANAGER_ROLES, ROLE_ADMIN, ROLE_CREATOR


def require_trip(db: Database, trip_id: int) -> Dict[str, Any]:
    trip = db.get_trip(trip_id)
    if not trip:
        raise NotFoundError("Trip not found")
    return trip


def require_member(db: Database, trip_id: int, user_id: str) -> Dict[str, Any]:
    """Return the caller's membership row; 404 for a missing trip, 403 for outsiders."""
    require_trip(db, trip_id)
    member = db.get_member(trip_id, user_id)
    if not member:
        raise ForbiddenError("You are not a member of this trip")
    return member


def require_manager(db: Database, trip_id: int, user_id: str, action: str = "do this") -> Dict[str, Any]:
    member = require_member(db, trip_id, user_id)
    if member["role"] not in MANAGER_ROLES:
        raise ForbiddenError(f"Only the trip creator or an admin can {action}")
    return member


def require_creator(db: Database, trip_id: int, user_id: str, action: str = "do this") -> Dict[str, Any]:
    member = require_member(db, trip_id, user_id)
    if member["role"] != ROLE_CREATOR:
        raise ForbiddenError(f"Only the trip creator can {action}")
    return member


def can_manage_member(actor_role: str, target_role: str) -> bool:
    """Creators manage everyone but themselves; admins manage plain members only."""
    if target_role == ROLE_CREATOR:
        return False
    if actor_role == ROLE_CREATOR:
        return True
    if actor_role == ROLE_ADMIN:
        return target_role not in MANAGER_ROLES
    return False


def can_moderate(member: Dict[str, Any], owner_id: str) -> bool:
    """Owner of a resource, or a trip manager, may modify it."""
    return member["user_id"] == owner_id or member["role"] in MANAGER_ROLES
