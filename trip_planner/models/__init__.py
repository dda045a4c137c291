"""Pydantic request/response models for the trip planner API."""

from .constants import (
    EXPENSE_CATEGORIES,
    EVENT_CATEGORIES,
    LOCATION_TYPES,
    NOTIFICATION_TYPES,
    ROLES,
)  # re-export
from .expense import ExpenseIn, ExpenseOut, ExpenseUpdateIn
from .trip import TripCreate, TripOut, TripUpdate

__all__ = [
    "EXPENSE_CATEGORIES",
    "EVENT_CATEGORIES",
    "LOCATION_TYPES",
    "NOTIFICATION_TYPES",
    "ROLES",
    "ExpenseIn",
    "ExpenseOut",
    "ExpenseUpdateIn",
    "TripCreate",
    "TripOut",
    "TripUpdate",
]
