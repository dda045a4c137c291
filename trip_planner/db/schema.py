"""Database schema DDL definitions and initialization utilities.

Tables:
  - users: identity-provider users mirrored locally (id = token subject)
  - trips / trip_members: trips and their role-bearing membership
  - invites: token based email invitations to a trip
  - expenses / expense_shares: shared expenses and each member's share
  - polls / poll_options / poll_votes: trip polls with one vote per member
  - itinerary_events / event_assignments / event_notes: the trip schedule
  - marked_locations: map pins saved by trip members
  - messages: persisted trip chat
  - notifications / scheduled_notifications: in-app feed and deferred items
  - metadata: key/value store (schema version)
"""

from __future__ import annotations
import sqlite3
from typing import Sequence
from pathlib import Path

BASIC_UTC_NOW = "strftime('%Y-%m-%dT%H:%M:%fZ','now')"

METADATA_DDL = f"""
CREATE TABLE IF NOT EXISTS metadata (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at TEXT NOT NULL DEFAULT ({BASIC_UTC_NOW})
);
"""

USERS_DDL = f"""
CREATE TABLE IF NOT EXISTS users (
    id TEXT PRIMARY KEY,
    email TEXT NOT NULL UNIQUE, -- stored lowercase
    full_name TEXT,
    created_at TEXT NOT NULL DEFAULT ({BASIC_UTC_NOW})
);
"""

TRIPS_DDL = f"""
CREATE TABLE IF NOT EXISTS trips (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    description TEXT,
    destination TEXT NOT NULL,
    start_date TEXT NOT NULL, -- ISO date (YYYY-MM-DD)
    end_date TEXT NOT NULL,
    budget REAL,
    image_url TEXT,
    created_by TEXT NOT NULL,
    created_at TEXT NOT NULL DEFAULT ({BASIC_UTC_NOW}),
    updated_at TEXT NOT NULL DEFAULT ({BASIC_UTC_NOW}),
    FOREIGN KEY (created_by) REFERENCES users(id)
);
"""

TRIP_MEMBERS_DDL = f"""
CREATE TABLE IF NOT EXISTS trip_members (
    trip_id INTEGER NOT NULL,
    user_id TEXT NOT NULL,
    role TEXT NOT NULL DEFAULT 'member' CHECK (role IN ('creator','admin','member')),
    joined_at TEXT NOT NULL DEFAULT ({BASIC_UTC_NOW}),
    PRIMARY KEY (trip_id, user_id),
    FOREIGN KEY (trip_id) REFERENCES trips(id) ON DELETE CASCADE,
    FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE
);
"""

INVITES_DDL = f"""
CREATE TABLE IF NOT EXISTS invites (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    trip_id INTEGER NOT NULL,
    email TEXT NOT NULL,
    token TEXT NOT NULL UNIQUE,
    status TEXT NOT NULL DEFAULT 'pending' CHECK (status IN ('pending','accepted','rejected')),
    created_by TEXT NOT NULL,
    invited_user_id TEXT,
    created_at TEXT NOT NULL DEFAULT ({BASIC_UTC_NOW}),
    UNIQUE (trip_id, email),
    FOREIGN KEY (trip_id) REFERENCES trips(id) ON DELETE CASCADE
);
"""

EXPENSES_DDL = f"""
CREATE TABLE IF NOT EXISTS expenses (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    trip_id INTEGER NOT NULL,
    description TEXT NOT NULL,
    amount REAL NOT NULL,
    category TEXT NOT NULL,
    paid_by TEXT NOT NULL,
    created_by TEXT NOT NULL,
    created_at TEXT NOT NULL DEFAULT ({BASIC_UTC_NOW}),
    updated_at TEXT NOT NULL DEFAULT ({BASIC_UTC_NOW}),
    FOREIGN KEY (trip_id) REFERENCES trips(id) ON DELETE CASCADE,
    FOREIGN KEY (paid_by) REFERENCES users(id)
);
"""

EXPENSE_SHARES_DDL = """
CREATE TABLE IF NOT EXISTS expense_shares (
    expense_id INTEGER NOT NULL,
    user_id TEXT NOT NULL,
    share_amount REAL NOT NULL,
    settled INTEGER NOT NULL DEFAULT 0 CHECK (settled IN (0,1)),
    settled_at TEXT,
    PRIMARY KEY (expense_id, user_id),
    FOREIGN KEY (expense_id) REFERENCES expenses(id) ON DELETE CASCADE,
    FOREIGN KEY (user_id) REFERENCES users(id)
);
"""

POLLS_DDL = f"""
CREATE TABLE IF NOT EXISTS polls (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    trip_id INTEGER NOT NULL,
    question TEXT NOT NULL,
    created_by TEXT NOT NULL,
    expires_at TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'ACTIVE' CHECK (status IN ('ACTIVE','COMPLETED','TIE')),
    winner_option_id INTEGER,
    completed_at TEXT,
    created_at TEXT NOT NULL DEFAULT ({BASIC_UTC_NOW}),
    FOREIGN KEY (trip_id) REFERENCES trips(id) ON DELETE CASCADE
);
"""

POLL_OPTIONS_DDL = """
CREATE TABLE IF NOT EXISTS poll_options (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    poll_id INTEGER NOT NULL,
    option_text TEXT NOT NULL,
    FOREIGN KEY (poll_id) REFERENCES polls(id) ON DELETE CASCADE
);
"""

POLL_VOTES_DDL = f"""
CREATE TABLE IF NOT EXISTS poll_votes (
    poll_id INTEGER NOT NULL,
    user_id TEXT NOT NULL,
    option_id INTEGER NOT NULL,
    voted_at TEXT NOT NULL DEFAULT ({BASIC_UTC_NOW}),
    PRIMARY KEY (poll_id, user_id),
    FOREIGN KEY (poll_id) REFERENCES polls(id) ON DELETE CASCADE,
    FOREIGN KEY (option_id) REFERENCES poll_options(id) ON DELETE CASCADE
);
"""

ITINERARY_EVENTS_DDL = f"""
CREATE TABLE IF NOT EXISTS itinerary_events (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    trip_id INTEGER NOT NULL,
    title TEXT NOT NULL,
    description TEXT,
    location TEXT,
    start_time TEXT NOT NULL,
    end_time TEXT NOT NULL,
    category TEXT NOT NULL DEFAULT 'GENERAL',
    created_by TEXT NOT NULL,
    created_at TEXT NOT NULL DEFAULT ({BASIC_UTC_NOW}),
    updated_at TEXT NOT NULL DEFAULT ({BASIC_UTC_NOW}),
    FOREIGN KEY (trip_id) REFERENCES trips(id) ON DELETE CASCADE
);
"""

EVENT_ASSIGNMENTS_DDL = f"""
CREATE TABLE IF NOT EXISTS event_assignments (
    event_id INTEGER NOT NULL,
    user_id TEXT NOT NULL,
    assigned_at TEXT NOT NULL DEFAULT ({BASIC_UTC_NOW}),
    PRIMARY KEY (event_id, user_id),
    FOREIGN KEY (event_id) REFERENCES itinerary_events(id) ON DELETE CASCADE
);
"""

EVENT_NOTES_DDL = f"""
CREATE TABLE IF NOT EXISTS event_notes (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    event_id INTEGER NOT NULL,
    content TEXT NOT NULL,
    created_by TEXT NOT NULL,
    created_at TEXT NOT NULL DEFAULT ({BASIC_UTC_NOW}),
    updated_at TEXT NOT NULL DEFAULT ({BASIC_UTC_NOW}),
    FOREIGN KEY (event_id) REFERENCES itinerary_events(id) ON DELETE CASCADE
);
"""

MARKED_LOCATIONS_DDL = f"""
CREATE TABLE IF NOT EXISTS marked_locations (
    id TEXT PRIMARY KEY,
    trip_id INTEGER NOT NULL,
    name TEXT NOT NULL,
    type TEXT NOT NULL DEFAULT 'OTHER',
    latitude REAL NOT NULL,
    longitude REAL NOT NULL,
    address TEXT,
    notes TEXT,
    website TEXT,
    phone_number TEXT,
    created_by TEXT NOT NULL,
    created_at TEXT NOT NULL DEFAULT ({BASIC_UTC_NOW}),
    FOREIGN KEY (trip_id) REFERENCES trips(id) ON DELETE CASCADE
);
"""

MESSAGES_DDL = f"""
CREATE TABLE IF NOT EXISTS messages (
    id TEXT PRIMARY KEY,
    trip_id INTEGER NOT NULL,
    sender_id TEXT NOT NULL,
    text TEXT NOT NULL,
    reactions TEXT NOT NULL DEFAULT '{{}}', -- JSON: emoji -> [user ids]
    created_at TEXT NOT NULL DEFAULT ({BASIC_UTC_NOW}),
    updated_at TEXT NOT NULL DEFAULT ({BASIC_UTC_NOW}),
    FOREIGN KEY (trip_id) REFERENCES trips(id) ON DELETE CASCADE
);
"""

NOTIFICATIONS_DDL = f"""
CREATE TABLE IF NOT EXISTS notifications (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT NOT NULL,
    trip_id INTEGER,
    type TEXT NOT NULL,
    related_id TEXT,
    title TEXT NOT NULL,
    message TEXT NOT NULL,
    data TEXT, -- JSON payload
    channel TEXT NOT NULL DEFAULT 'IN_APP' CHECK (channel IN ('IN_APP','EMAIL')),
    is_read INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL DEFAULT ({BASIC_UTC_NOW}),
    FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE
);
"""

SCHEDULED_NOTIFICATIONS_DDL = f"""
CREATE TABLE IF NOT EXISTS scheduled_notifications (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT NOT NULL,
    trip_id INTEGER,
    type TEXT NOT NULL,
    related_id TEXT,
    title TEXT NOT NULL,
    message TEXT NOT NULL,
    data TEXT,
    channel TEXT NOT NULL DEFAULT 'IN_APP',
    send_at TEXT NOT NULL,
    is_sent INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL DEFAULT ({BASIC_UTC_NOW}),
    FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE
);
"""

INDEX_DDLS: Sequence[str] = (
    "CREATE INDEX IF NOT EXISTS idx_trip_members_user ON trip_members(user_id);",
    "CREATE INDEX IF NOT EXISTS idx_trips_start ON trips(start_date);",
    "CREATE INDEX IF NOT EXISTS idx_expenses_trip ON expenses(trip_id, created_at);",
    "CREATE INDEX IF NOT EXISTS idx_expense_shares_user ON expense_shares(user_id);",
    "CREATE INDEX IF NOT EXISTS idx_polls_trip_status ON polls(trip_id, status);",
    "CREATE INDEX IF NOT EXISTS idx_poll_options_poll ON poll_options(poll_id);",
    "CREATE INDEX IF NOT EXISTS idx_events_trip_start ON itinerary_events(trip_id, start_time);",
    "CREATE INDEX IF NOT EXISTS idx_notes_event ON event_notes(event_id);",
    "CREATE INDEX IF NOT EXISTS idx_locations_trip ON marked_locations(trip_id, created_at);",
    "CREATE INDEX IF NOT EXISTS idx_messages_trip ON messages(trip_id, created_at);",
    "CREATE INDEX IF NOT EXISTS idx_notifications_user ON notifications(user_id, is_read, created_at);",
    "CREATE INDEX IF NOT EXISTS idx_scheduled_due ON scheduled_notifications(is_sent, send_at);",
)

DDL_ORDER: Sequence[str] = (
    METADATA_DDL,
    USERS_DDL,
    TRIPS_DDL,
    TRIP_MEMBERS_DDL,
    INVITES_DDL,
    EXPENSES_DDL,
    EXPENSE_SHARES_DDL,
    POLLS_DDL,
    POLL_OPTIONS_DDL,
    POLL_VOTES_DDL,
    ITINERARY_EVENTS_DDL,
    EVENT_ASSIGNMENTS_DDL,
    EVENT_NOTES_DDL,
    MARKED_LOCATIONS_DDL,
    MESSAGES_DDL,
    NOTIFICATIONS_DDL,
    SCHEDULED_NOTIFICATIONS_DDL,
)


def init_db(path: Path) -> None:
    """Create all tables and indexes idempotently.

    Parameters
    ----------
    path: Path to SQLite database file.
    """
    conn = sqlite3.connect(path)
    try:
        cur = conn.cursor()
        for ddl in DDL_ORDER:
            cur.execute(ddl)
        for ddl in INDEX_DDLS:
            cur.execute(ddl)
        conn.commit()
    finally:
        conn.close()
