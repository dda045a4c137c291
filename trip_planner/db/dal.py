"""Data Access Layer for trips and everything hanging off a trip.

Responsibilities
----------------
- Provide CRUD helpers for users, trips, membership and invites.
- Persist expenses together with their shares in a single transaction and
  expose the joined share rows the settlement service aggregates.
- Store polls, itinerary events, map pins, chat messages and notifications.

Permission checks live in the service layer; the DAL only scopes queries by
trip and raises ``ValueError`` when a write targets a missing row.
"""

from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path
import json
import sqlite3
import uuid
from datetime import date, datetime
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from trip_planner.models.constants import (
    INVITE_ACCEPTED,
    INVITE_PENDING,
    POLL_ACTIVE,
    ROLE_CREATOR,
    ROLE_MEMBER,
)
from trip_planner.services.clock import format_ts

UTC_NOW_SQL = "strftime('%Y-%m-%dT%H:%M:%fZ','now')"
_UNSET = object()


def _placeholders(values: Sequence[Any]) -> str:
    return ", ".join("?" for _ in values)


def _iso(value: Any) -> Any:
    if isinstance(value, datetime):
        return format_ts(value)
    if isinstance(value, date):
        return value.isoformat()
    return value


class Database:
    def __init__(self, db_path: Path):
        self.db_path = db_path

    # ------------------------------------------------------------------
    # Connection helpers
    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _fetch_one(self, sql: str, params: Sequence[Any] = ()) -> Optional[Dict[str, Any]]:
        with self._connect() as conn:
            row = conn.execute(sql, params).fetchone()
            return dict(row) if row else None

    def _fetch_all(self, sql: str, params: Sequence[Any] = ()) -> List[Dict[str, Any]]:
        with self._connect() as conn:
            return [dict(r) for r in conn.execute(sql, params).fetchall()]

    # ------------------------------------------------------------------
    # Users
    def upsert_user(self, user_id: str, email: str, full_name: Optional[str] = None) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO users (id, email, full_name) VALUES (?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    email = excluded.email,
                    full_name = COALESCE(excluded.full_name, users.full_name)
                """,
                (user_id, email.strip().lower(), full_name),
            )

    def get_user(self, user_id: str) -> Optional[Dict[str, Any]]:
        return self._fetch_one("SELECT * FROM users WHERE id = ?", (user_id,))

    def get_user_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        return self._fetch_one(
            "SELECT * FROM users WHERE email = ?", (email.strip().lower(),)
        )

    def get_users_by_emails(self, emails: Iterable[str]) -> Dict[str, Dict[str, Any]]:
        wanted = [e.strip().lower() for e in emails]
        if not wanted:
            return {}
        rows = self._fetch_all(
            f"SELECT * FROM users WHERE email IN ({_placeholders(wanted)})", wanted
        )
        return {r["email"]: r for r in rows}

    # ------------------------------------------------------------------
    # Trips
    def create_trip(
        self,
        created_by: str,
        name: str,
        destination: str,
        start_date: date,
        end_date: date,
        description: Optional[str] = None,
        budget: Optional[float] = None,
        image_url: Optional[str] = None,
    ) -> int:
        with self._connect() as conn:
            cur = conn.cursor()
            cur.execute(
                f"""
                INSERT INTO trips (name, description, destination, start_date, end_date,
                                   budget, image_url, created_by, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ({UTC_NOW_SQL}), ({UTC_NOW_SQL}))
                """,
                (
                    name,
                    description,
                    destination,
                    start_date.isoformat(),
                    end_date.isoformat(),
                    budget,
                    image_url,
                    created_by,
                ),
            )
            trip_id = int(cur.lastrowid)
            cur.execute(
                "INSERT INTO trip_members (trip_id, user_id, role) VALUES (?, ?, ?)",
                (trip_id, created_by, ROLE_CREATOR),
            )
            return trip_id

    def get_trip(self, trip_id: int) -> Optional[Dict[str, Any]]:
        return self._fetch_one("SELECT * FROM trips WHERE id = ?", (trip_id,))

    def list_trips_for_user(
        self,
        user_id: str,
        destination: Optional[str] = None,
        start_from: Optional[date] = None,
        end_by: Optional[date] = None,
        limit: int = 10,
        offset: int = 0,
    ) -> List[Dict[str, Any]]:
        clauses = ["m.user_id = ?"]
        params: List[Any] = [user_id]
        if destination:
            clauses.append("LOWER(t.destination) LIKE ?")
            params.append(f"%{destination.lower()}%")
        if start_from:
            clauses.append("t.start_date >= ?")
            params.append(start_from.isoformat())
        if end_by:
            clauses.append("t.end_date <= ?")
            params.append(end_by.isoformat())
        where = " AND ".join(clauses)
        params.extend([limit, offset])
        return self._fetch_all(
            f"""
            SELECT t.*, m.role AS my_role FROM trips t
            JOIN trip_members m ON m.trip_id = t.id
            WHERE {where}
            ORDER BY t.start_date ASC, t.id ASC
            LIMIT ? OFFSET ?
            """,
            params,
        )

    def update_trip(self, trip_id: int, **fields: Any) -> None:
        allowed = {
            "name",
            "description",
            "destination",
            "start_date",
            "end_date",
            "budget",
            "image_url",
        }
        updates = {k: _iso(v) for k, v in fields.items() if k in allowed}
        if not updates:
            return
        assignments = ", ".join(f"{col} = ?" for col in updates)
        with self._connect() as conn:
            cur = conn.execute(
                f"UPDATE trips SET {assignments}, updated_at = ({UTC_NOW_SQL}) WHERE id = ?",
                (*updates.values(), trip_id),
            )
            if cur.rowcount == 0:
                raise ValueError("trip not found")

    def delete_trip(self, trip_id: int) -> None:
        with self._connect() as conn:
            cur = conn.execute("DELETE FROM trips WHERE id = ?", (trip_id,))
            if cur.rowcount == 0:
                raise ValueError("trip not found")

    def delete_trips_created_by(self, user_id: str, trip_ids: Sequence[int]) -> List[int]:
        if not trip_ids:
            return []
        with self._connect() as conn:
            rows = conn.execute(
                f"SELECT id FROM trips WHERE created_by = ? AND id IN ({_placeholders(trip_ids)})",
                (user_id, *trip_ids),
            ).fetchall()
            ids = [int(r["id"]) for r in rows]
            if ids:
                conn.execute(
                    f"DELETE FROM trips WHERE id IN ({_placeholders(ids)})", ids
                )
            return ids

    # ------------------------------------------------------------------
    # Membership
    def get_member(self, trip_id: int, user_id: str) -> Optional[Dict[str, Any]]:
        return self._fetch_one(
            """
            SELECT m.trip_id, m.user_id, m.role, m.joined_at, u.email, u.full_name
            FROM trip_members m JOIN users u ON u.id = m.user_id
            WHERE m.trip_id = ? AND m.user_id = ?
            """,
            (trip_id, user_id),
        )

    def list_members(self, trip_id: int) -> List[Dict[str, Any]]:
        return self._fetch_all(
            """
            SELECT m.trip_id, m.user_id, m.role, m.joined_at, u.email, u.full_name
            FROM trip_members m JOIN users u ON u.id = m.user_id
            WHERE m.trip_id = ?
            ORDER BY m.joined_at ASC, u.email ASC
            """,
            (trip_id,),
        )

    def add_member(self, trip_id: int, user_id: str, role: str = ROLE_MEMBER) -> None:
        with self._connect() as conn:
            conn.execute(
                "INSERT INTO trip_members (trip_id, user_id, role) VALUES (?, ?, ?)",
                (trip_id, user_id, role),
            )

    def update_member_role(self, trip_id: int, user_id: str, role: str) -> None:
        with self._connect() as conn:
            cur = conn.execute(
                "UPDATE trip_members SET role = ? WHERE trip_id = ? AND user_id = ?",
                (role, trip_id, user_id),
            )
            if cur.rowcount == 0:
                raise ValueError("member not found")

    def remove_members(self, trip_id: int, user_ids: Sequence[str]) -> int:
        if not user_ids:
            return 0
        with self._connect() as conn:
            cur = conn.execute(
                f"DELETE FROM trip_members WHERE trip_id = ? AND user_id IN ({_placeholders(user_ids)})",
                (trip_id, *user_ids),
            )
            return cur.rowcount

    def count_members(self, trip_id: int) -> int:
        row = self._fetch_one(
            "SELECT COUNT(*) AS n FROM trip_members WHERE trip_id = ?", (trip_id,)
        )
        return int(row["n"]) if row else 0

    # ------------------------------------------------------------------
    # Invites
    def get_invite_by_token(self, token: str) -> Optional[Dict[str, Any]]:
        return self._fetch_one("SELECT * FROM invites WHERE token = ?", (token,))

    def get_invite_details(self, token: str) -> Optional[Dict[str, Any]]:
        return self._fetch_one(
            """
            SELECT i.*, t.name AS trip_name, t.destination, t.start_date, t.end_date,
                   u.email AS inviter_email, u.full_name AS inviter_name
            FROM invites i
            JOIN trips t ON t.id = i.trip_id
            LEFT JOIN users u ON u.id = i.created_by
            WHERE i.token = ?
            """,
            (token,),
        )

    def create_or_reset_invite(
        self, trip_id: int, email: str, created_by: str
    ) -> Tuple[Dict[str, Any], bool]:
        """Return ``(invite, created)``; an existing invite is reset to pending."""
        email = email.strip().lower()
        with self._connect() as conn:
            existing = conn.execute(
                "SELECT * FROM invites WHERE trip_id = ? AND email = ?",
                (trip_id, email),
            ).fetchone()
            if existing:
                conn.execute(
                    "UPDATE invites SET status = ?, created_by = ?, invited_user_id = NULL WHERE id = ?",
                    (INVITE_PENDING, created_by, existing["id"]),
                )
                row = conn.execute(
                    "SELECT * FROM invites WHERE id = ?", (existing["id"],)
                ).fetchone()
                return dict(row), False
            cur = conn.execute(
                """
                INSERT INTO invites (trip_id, email, token, status, created_by)
                VALUES (?, ?, ?, ?, ?)
                """,
                (trip_id, email, uuid.uuid4().hex, INVITE_PENDING, created_by),
            )
            row = conn.execute(
                "SELECT * FROM invites WHERE id = ?", (cur.lastrowid,)
            ).fetchone()
            return dict(row), True

    def set_invite_user(self, invite_id: int, user_id: str) -> None:
        with self._connect() as conn:
            conn.execute(
                "UPDATE invites SET invited_user_id = ? WHERE id = ?", (user_id, invite_id)
            )

    def set_invite_status(self, invite_id: int, status: str) -> None:
        with self._connect() as conn:
            cur = conn.execute(
                "UPDATE invites SET status = ? WHERE id = ?", (status, invite_id)
            )
            if cur.rowcount == 0:
                raise ValueError("invite not found")

    def accept_invite(self, invite_id: int, trip_id: int, user_id: str) -> None:
        """Add the member and mark the invite accepted atomically."""
        with self._connect() as conn:
            conn.execute(
                "INSERT INTO trip_members (trip_id, user_id, role) VALUES (?, ?, ?)",
                (trip_id, user_id, ROLE_MEMBER),
            )
            conn.execute(
                "UPDATE invites SET status = ?, invited_user_id = ? WHERE id = ?",
                (INVITE_ACCEPTED, user_id, invite_id),
            )

    def delete_invite(self, invite_id: int) -> None:
        with self._connect() as conn:
            cur = conn.execute("DELETE FROM invites WHERE id = ?", (invite_id,))
            if cur.rowcount == 0:
                raise ValueError("invite not found")

    # ------------------------------------------------------------------
    # Expenses & shares
    def create_expense(
        self,
        trip_id: int,
        description: str,
        amount: float,
        category: str,
        paid_by: str,
        created_by: str,
        shares: Sequence[Tuple[str, float]],
    ) -> int:
        with self._connect() as conn:
            cur = conn.cursor()
            cur.execute(
                f"""
                INSERT INTO expenses (trip_id, description, amount, category, paid_by,
                                      created_by, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ({UTC_NOW_SQL}), ({UTC_NOW_SQL}))
                """,
                (trip_id, description, amount, category, paid_by, created_by),
            )
            expense_id = int(cur.lastrowid)
            self._insert_shares(cur, expense_id, paid_by, shares)
            return expense_id

    def _insert_shares(
        self,
        cur: sqlite3.Cursor,
        expense_id: int,
        paid_by: str,
        shares: Sequence[Tuple[str, float]],
    ) -> None:
        for user_id, share_amount in shares:
            payer_share = user_id == paid_by
            cur.execute(
                f"""
                INSERT INTO expense_shares (expense_id, user_id, share_amount, settled, settled_at)
                VALUES (?, ?, ?, ?, CASE WHEN ? THEN ({UTC_NOW_SQL}) ELSE NULL END)
                """,
                (expense_id, user_id, share_amount, 1 if payer_share else 0, payer_share),
            )

    def get_expense(self, trip_id: int, expense_id: int) -> Optional[Dict[str, Any]]:
        return self._fetch_one(
            """
            SELECT e.*, u.email AS paid_by_email FROM expenses e
            JOIN users u ON u.id = e.paid_by
            WHERE e.id = ? AND e.trip_id = ?
            """,
            (expense_id, trip_id),
        )

    def list_expenses(
        self, trip_id: int, category: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        clauses = ["e.trip_id = ?"]
        params: List[Any] = [trip_id]
        if category:
            clauses.append("e.category = ?")
            params.append(category)
        where = " AND ".join(clauses)
        return self._fetch_all(
            f"""
            SELECT e.*, u.email AS paid_by_email FROM expenses e
            JOIN users u ON u.id = e.paid_by
            WHERE {where}
            ORDER BY e.created_at DESC, e.id DESC
            """,
            params,
        )

    def get_expenses_by_ids(self, trip_id: int, expense_ids: Sequence[int]) -> List[Dict[str, Any]]:
        if not expense_ids:
            return []
        return self._fetch_all(
            f"SELECT * FROM expenses WHERE trip_id = ? AND id IN ({_placeholders(expense_ids)})",
            (trip_id, *expense_ids),
        )

    def get_shares_for_expenses(
        self, expense_ids: Sequence[int]
    ) -> Dict[int, List[Dict[str, Any]]]:
        grouped: Dict[int, List[Dict[str, Any]]] = {int(i): [] for i in expense_ids}
        if not expense_ids:
            return grouped
        rows = self._fetch_all(
            f"""
            SELECT s.*, u.email FROM expense_shares s
            JOIN users u ON u.id = s.user_id
            WHERE s.expense_id IN ({_placeholders(expense_ids)})
            ORDER BY s.expense_id, s.rowid
            """,
            list(expense_ids),
        )
        for r in rows:
            grouped.setdefault(int(r["expense_id"]), []).append(r)
        return grouped

    def update_expense(
        self,
        expense_id: int,
        fields: Dict[str, Any],
        shares: Optional[Sequence[Tuple[str, float]]] = None,
    ) -> None:
        """Update expense columns and optionally replace all shares atomically."""
        allowed = {"description", "amount", "category", "paid_by"}
        updates = {k: v for k, v in fields.items() if k in allowed}
        with self._connect() as conn:
            cur = conn.cursor()
            assignments = "".join(f"{col} = ?, " for col in updates)
            cur.execute(
                f"UPDATE expenses SET {assignments}updated_at = ({UTC_NOW_SQL}) WHERE id = ?",
                (*updates.values(), expense_id),
            )
            if cur.rowcount == 0:
                raise ValueError("expense not found")
            if shares is not None:
                paid_by = cur.execute(
                    "SELECT paid_by FROM expenses WHERE id = ?", (expense_id,)
                ).fetchone()["paid_by"]
                cur.execute("DELETE FROM expense_shares WHERE expense_id = ?", (expense_id,))
                self._insert_shares(cur, expense_id, paid_by, shares)

    def delete_expenses(self, trip_id: int, expense_ids: Sequence[int]) -> int:
        if not expense_ids:
            return 0
        with self._connect() as conn:
            cur = conn.execute(
                f"DELETE FROM expenses WHERE trip_id = ? AND id IN ({_placeholders(expense_ids)})",
                (trip_id, *expense_ids),
            )
            return cur.rowcount

    def list_share_rows(self, trip_id: int) -> List[Dict[str, Any]]:
        """Every share of the trip joined with its expense, debtor and creditor."""
        return self._fetch_all(
            """
            SELECT s.expense_id, s.user_id AS debtor_id, d.email AS debtor_email,
                   s.share_amount, s.settled, s.settled_at,
                   e.paid_by AS creditor_id, c.email AS creditor_email,
                   e.description, e.category, e.amount AS expense_amount, e.created_at
            FROM expense_shares s
            JOIN expenses e ON e.id = s.expense_id
            JOIN users d ON d.id = s.user_id
            JOIN users c ON c.id = e.paid_by
            WHERE e.trip_id = ?
            ORDER BY e.created_at ASC, e.id ASC, d.email ASC
            """,
            (trip_id,),
        )

    def get_share(self, expense_id: int, user_id: str) -> Optional[Dict[str, Any]]:
        return self._fetch_one(
            """
            SELECT s.*, e.trip_id, e.paid_by, e.description
            FROM expense_shares s JOIN expenses e ON e.id = s.expense_id
            WHERE s.expense_id = ? AND s.user_id = ?
            """,
            (expense_id, user_id),
        )

    def settle_shares(self, keys: Sequence[Tuple[int, str]]) -> int:
        """Mark the given (expense_id, user_id) shares settled in one transaction."""
        if not keys:
            return 0
        with self._connect() as conn:
            changed = 0
            for expense_id, user_id in keys:
                cur = conn.execute(
                    f"""
                    UPDATE expense_shares SET settled = 1, settled_at = ({UTC_NOW_SQL})
                    WHERE expense_id = ? AND user_id = ? AND settled = 0
                    """,
                    (expense_id, user_id),
                )
                changed += cur.rowcount
            return changed

    # ------------------------------------------------------------------
    # Polls
    def create_poll(
        self,
        trip_id: int,
        question: str,
        created_by: str,
        expires_at: datetime,
        options: Sequence[str],
    ) -> int:
        with self._connect() as conn:
            cur = conn.cursor()
            cur.execute(
                """
                INSERT INTO polls (trip_id, question, created_by, expires_at, status)
                VALUES (?, ?, ?, ?, ?)
                """,
                (trip_id, question, created_by, format_ts(expires_at), POLL_ACTIVE),
            )
            poll_id = int(cur.lastrowid)
            cur.executemany(
                "INSERT INTO poll_options (poll_id, option_text) VALUES (?, ?)",
                [(poll_id, text) for text in options],
            )
            return poll_id

    def get_poll(self, trip_id: int, poll_id: int) -> Optional[Dict[str, Any]]:
        return self._fetch_one(
            "SELECT * FROM polls WHERE id = ? AND trip_id = ?", (poll_id, trip_id)
        )

    def list_polls(self, trip_id: int) -> List[Dict[str, Any]]:
        return self._fetch_all(
            "SELECT * FROM polls WHERE trip_id = ? ORDER BY created_at DESC, id DESC",
            (trip_id,),
        )

    def get_polls_by_ids(self, trip_id: int, poll_ids: Sequence[int]) -> List[Dict[str, Any]]:
        if not poll_ids:
            return []
        return self._fetch_all(
            f"SELECT * FROM polls WHERE trip_id = ? AND id IN ({_placeholders(poll_ids)})",
            (trip_id, *poll_ids),
        )

    def get_poll_options(self, poll_ids: Sequence[int]) -> Dict[int, List[Dict[str, Any]]]:
        """Options per poll with their vote counts, in creation order."""
        grouped: Dict[int, List[Dict[str, Any]]] = {int(i): [] for i in poll_ids}
        if not poll_ids:
            return grouped
        rows = self._fetch_all(
            f"""
            SELECT o.id, o.poll_id, o.option_text, COUNT(v.user_id) AS vote_count
            FROM poll_options o
            LEFT JOIN poll_votes v ON v.option_id = o.id
            WHERE o.poll_id IN ({_placeholders(poll_ids)})
            GROUP BY o.id
            ORDER BY o.poll_id, o.id
            """,
            list(poll_ids),
        )
        for r in rows:
            grouped.setdefault(int(r["poll_id"]), []).append(r)
        return grouped

    def get_user_votes(self, poll_ids: Sequence[int], user_id: str) -> Dict[int, int]:
        if not poll_ids:
            return {}
        rows = self._fetch_all(
            f"SELECT poll_id, option_id FROM poll_votes WHERE user_id = ? AND poll_id IN ({_placeholders(poll_ids)})",
            (user_id, *poll_ids),
        )
        return {int(r["poll_id"]): int(r["option_id"]) for r in rows}

    def upsert_vote(self, poll_id: int, user_id: str, option_id: int) -> None:
        with self._connect() as conn:
            conn.execute(
                f"""
                INSERT INTO poll_votes (poll_id, user_id, option_id) VALUES (?, ?, ?)
                ON CONFLICT(poll_id, user_id) DO UPDATE SET
                    option_id = excluded.option_id,
                    voted_at = ({UTC_NOW_SQL})
                """,
                (poll_id, user_id, option_id),
            )

    def delete_vote(self, poll_id: int, user_id: str) -> int:
        with self._connect() as conn:
            cur = conn.execute(
                "DELETE FROM poll_votes WHERE poll_id = ? AND user_id = ?",
                (poll_id, user_id),
            )
            return cur.rowcount

    def complete_poll(
        self,
        poll_id: int,
        status: str,
        winner_option_id: Optional[int],
        completed_at: datetime,
    ) -> bool:
        """Close an ACTIVE poll. Returns False when it was already closed."""
        with self._connect() as conn:
            cur = conn.execute(
                """
                UPDATE polls SET status = ?, winner_option_id = ?, completed_at = ?
                WHERE id = ? AND status = ?
                """,
                (status, winner_option_id, format_ts(completed_at), poll_id, POLL_ACTIVE),
            )
            return cur.rowcount == 1

    def list_expired_active_polls(self, now: datetime) -> List[Dict[str, Any]]:
        return self._fetch_all(
            "SELECT * FROM polls WHERE status = ? AND expires_at <= ? ORDER BY expires_at",
            (POLL_ACTIVE, format_ts(now)),
        )

    def delete_polls(self, trip_id: int, poll_ids: Sequence[int]) -> int:
        if not poll_ids:
            return 0
        with self._connect() as conn:
            cur = conn.execute(
                f"DELETE FROM polls WHERE trip_id = ? AND id IN ({_placeholders(poll_ids)})",
                (trip_id, *poll_ids),
            )
            return cur.rowcount

    # ------------------------------------------------------------------
    # Itinerary events, assignments & notes
    def create_event(
        self,
        trip_id: int,
        created_by: str,
        title: str,
        start_time: datetime,
        end_time: datetime,
        category: str,
        description: Optional[str] = None,
        location: Optional[str] = None,
        assigned_user_ids: Sequence[str] = (),
        notes: Sequence[str] = (),
    ) -> int:
        with self._connect() as conn:
            cur = conn.cursor()
            cur.execute(
                f"""
                INSERT INTO itinerary_events (trip_id, title, description, location, start_time,
                                              end_time, category, created_by, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ({UTC_NOW_SQL}), ({UTC_NOW_SQL}))
                """,
                (
                    trip_id,
                    title,
                    description,
                    location,
                    format_ts(start_time),
                    format_ts(end_time),
                    category,
                    created_by,
                ),
            )
            event_id = int(cur.lastrowid)
            cur.executemany(
                "INSERT INTO event_assignments (event_id, user_id) VALUES (?, ?)",
                [(event_id, uid) for uid in assigned_user_ids],
            )
            cur.executemany(
                "INSERT INTO event_notes (event_id, content, created_by) VALUES (?, ?, ?)",
                [(event_id, content, created_by) for content in notes],
            )
            return event_id

    def get_event(self, trip_id: int, event_id: int) -> Optional[Dict[str, Any]]:
        return self._fetch_one(
            "SELECT * FROM itinerary_events WHERE id = ? AND trip_id = ?",
            (event_id, trip_id),
        )

    def list_events(self, trip_id: int) -> List[Dict[str, Any]]:
        return self._fetch_all(
            "SELECT * FROM itinerary_events WHERE trip_id = ? ORDER BY start_time ASC, id ASC",
            (trip_id,),
        )

    def get_events_by_ids(self, trip_id: int, event_ids: Sequence[int]) -> List[Dict[str, Any]]:
        if not event_ids:
            return []
        return self._fetch_all(
            f"SELECT * FROM itinerary_events WHERE trip_id = ? AND id IN ({_placeholders(event_ids)})",
            (trip_id, *event_ids),
        )

    def update_event(self, event_id: int, **fields: Any) -> None:
        allowed = {"title", "description", "location", "start_time", "end_time", "category"}
        updates = {k: _iso(v) for k, v in fields.items() if k in allowed}
        if not updates:
            return
        assignments = ", ".join(f"{col} = ?" for col in updates)
        with self._connect() as conn:
            cur = conn.execute(
                f"UPDATE itinerary_events SET {assignments}, updated_at = ({UTC_NOW_SQL}) WHERE id = ?",
                (*updates.values(), event_id),
            )
            if cur.rowcount == 0:
                raise ValueError("event not found")

    def delete_events(self, trip_id: int, event_ids: Sequence[int]) -> int:
        if not event_ids:
            return 0
        with self._connect() as conn:
            cur = conn.execute(
                f"DELETE FROM itinerary_events WHERE trip_id = ? AND id IN ({_placeholders(event_ids)})",
                (trip_id, *event_ids),
            )
            return cur.rowcount

    def get_assignments(self, event_ids: Sequence[int]) -> Dict[int, List[Dict[str, Any]]]:
        grouped: Dict[int, List[Dict[str, Any]]] = {int(i): [] for i in event_ids}
        if not event_ids:
            return grouped
        rows = self._fetch_all(
            f"""
            SELECT a.event_id, a.user_id, a.assigned_at, u.email, u.full_name
            FROM event_assignments a JOIN users u ON u.id = a.user_id
            WHERE a.event_id IN ({_placeholders(event_ids)})
            ORDER BY a.event_id, a.assigned_at, u.email
            """,
            list(event_ids),
        )
        for r in rows:
            grouped.setdefault(int(r["event_id"]), []).append(r)
        return grouped

    def assign_users(self, event_id: int, user_ids: Sequence[str]) -> None:
        with self._connect() as conn:
            conn.executemany(
                "INSERT OR IGNORE INTO event_assignments (event_id, user_id) VALUES (?, ?)",
                [(event_id, uid) for uid in user_ids],
            )

    def unassign_users(self, event_id: int, user_ids: Sequence[str]) -> int:
        if not user_ids:
            return 0
        with self._connect() as conn:
            cur = conn.execute(
                f"DELETE FROM event_assignments WHERE event_id = ? AND user_id IN ({_placeholders(user_ids)})",
                (event_id, *user_ids),
            )
            return cur.rowcount

    def get_notes(self, event_ids: Sequence[int]) -> Dict[int, List[Dict[str, Any]]]:
        grouped: Dict[int, List[Dict[str, Any]]] = {int(i): [] for i in event_ids}
        if not event_ids:
            return grouped
        rows = self._fetch_all(
            f"""
            SELECT n.*, u.email AS author_email FROM event_notes n
            LEFT JOIN users u ON u.id = n.created_by
            WHERE n.event_id IN ({_placeholders(event_ids)})
            ORDER BY n.event_id, n.created_at, n.id
            """,
            list(event_ids),
        )
        for r in rows:
            grouped.setdefault(int(r["event_id"]), []).append(r)
        return grouped

    def add_note(self, event_id: int, content: str, created_by: str) -> int:
        with self._connect() as conn:
            cur = conn.execute(
                "INSERT INTO event_notes (event_id, content, created_by) VALUES (?, ?, ?)",
                (event_id, content, created_by),
            )
            return int(cur.lastrowid)

    def get_note(self, event_id: int, note_id: int) -> Optional[Dict[str, Any]]:
        return self._fetch_one(
            "SELECT * FROM event_notes WHERE id = ? AND event_id = ?", (note_id, event_id)
        )

    def update_note(self, note_id: int, content: str) -> None:
        with self._connect() as conn:
            cur = conn.execute(
                f"UPDATE event_notes SET content = ?, updated_at = ({UTC_NOW_SQL}) WHERE id = ?",
                (content, note_id),
            )
            if cur.rowcount == 0:
                raise ValueError("note not found")

    def delete_notes(
        self, event_id: int, note_ids: Sequence[int], author_id: Optional[str] = None
    ) -> int:
        if not note_ids:
            return 0
        sql = f"DELETE FROM event_notes WHERE event_id = ? AND id IN ({_placeholders(note_ids)})"
        params: List[Any] = [event_id, *note_ids]
        if author_id is not None:
            sql += " AND created_by = ?"
            params.append(author_id)
        with self._connect() as conn:
            return conn.execute(sql, params).rowcount

    # ------------------------------------------------------------------
    # Marked locations
    def list_locations(self, trip_id: int) -> List[Dict[str, Any]]:
        return self._fetch_all(
            "SELECT * FROM marked_locations WHERE trip_id = ? ORDER BY created_at DESC, rowid DESC",
            (trip_id,),
        )

    def create_location(self, trip_id: int, created_by: str, **fields: Any) -> str:
        location_id = uuid.uuid4().hex
        columns = ["name", "type", "latitude", "longitude", "address", "notes", "website", "phone_number"]
        values = [fields.get(c) for c in columns]
        with self._connect() as conn:
            conn.execute(
                f"""
                INSERT INTO marked_locations (id, trip_id, created_by, {", ".join(columns)})
                VALUES (?, ?, ?, {_placeholders(columns)})
                """,
                (location_id, trip_id, created_by, *values),
            )
        return location_id

    def get_location(self, trip_id: int, location_id: str) -> Optional[Dict[str, Any]]:
        return self._fetch_one(
            "SELECT * FROM marked_locations WHERE id = ? AND trip_id = ?",
            (location_id, trip_id),
        )

    def update_location_notes(self, location_id: str, notes: Optional[str]) -> None:
        with self._connect() as conn:
            cur = conn.execute(
                "UPDATE marked_locations SET notes = ? WHERE id = ?", (notes, location_id)
            )
            if cur.rowcount == 0:
                raise ValueError("location not found")

    def delete_location(self, location_id: str) -> None:
        with self._connect() as conn:
            cur = conn.execute("DELETE FROM marked_locations WHERE id = ?", (location_id,))
            if cur.rowcount == 0:
                raise ValueError("location not found")

    # ------------------------------------------------------------------
    # Messages
    def list_messages(self, trip_id: int) -> List[Dict[str, Any]]:
        return self._fetch_all(
            """
            SELECT m.*, u.email AS sender_email, u.full_name AS sender_name
            FROM messages m LEFT JOIN users u ON u.id = m.sender_id
            WHERE m.trip_id = ?
            ORDER BY m.created_at ASC, m.rowid ASC
            """,
            (trip_id,),
        )

    def create_message(self, trip_id: int, sender_id: str, text: str) -> str:
        message_id = uuid.uuid4().hex
        with self._connect() as conn:
            conn.execute(
                f"""
                INSERT INTO messages (id, trip_id, sender_id, text, reactions, created_at, updated_at)
                VALUES (?, ?, ?, ?, '{{}}', ({UTC_NOW_SQL}), ({UTC_NOW_SQL}))
                """,
                (message_id, trip_id, sender_id, text),
            )
        return message_id

    def get_message(self, trip_id: int, message_id: str) -> Optional[Dict[str, Any]]:
        return self._fetch_one(
            """
            SELECT m.*, u.email AS sender_email, u.full_name AS sender_name
            FROM messages m LEFT JOIN users u ON u.id = m.sender_id
            WHERE m.id = ? AND m.trip_id = ?
            """,
            (message_id, trip_id),
        )

    def update_message(
        self,
        message_id: str,
        text: Any = _UNSET,
        reactions: Any = _UNSET,
    ) -> None:
        updates: Dict[str, Any] = {}
        if text is not _UNSET:
            updates["text"] = text
        if reactions is not _UNSET:
            updates["reactions"] = json.dumps(reactions, ensure_ascii=False)
        if not updates:
            return
        assignments = ", ".join(f"{col} = ?" for col in updates)
        with self._connect() as conn:
            cur = conn.execute(
                f"UPDATE messages SET {assignments}, updated_at = ({UTC_NOW_SQL}) WHERE id = ?",
                (*updates.values(), message_id),
            )
            if cur.rowcount == 0:
                raise ValueError("message not found")

    def add_reaction(self, message_id: str, emoji: str, user_id: str) -> Dict[str, List[str]]:
        """Append ``user_id`` under ``emoji`` inside one transaction; returns the new map."""
        with self._connect() as conn:
            row = conn.execute(
                "SELECT reactions FROM messages WHERE id = ?", (message_id,)
            ).fetchone()
            if not row:
                raise ValueError("message not found")
            reactions: Dict[str, List[str]] = json.loads(row["reactions"] or "{}")
            users = reactions.setdefault(emoji, [])
            if user_id not in users:
                users.append(user_id)
                conn.execute(
                    "UPDATE messages SET reactions = ? WHERE id = ?",
                    (json.dumps(reactions, ensure_ascii=False), message_id),
                )
            return reactions

    # ------------------------------------------------------------------
    # Notifications
    _NOTIFICATION_COLUMNS = (
        "user_id",
        "trip_id",
        "type",
        "related_id",
        "title",
        "message",
        "data",
        "channel",
    )

    def _notification_values(self, item: Dict[str, Any]) -> Tuple[Any, ...]:
        data = item.get("data")
        return (
            item["user_id"],
            item.get("trip_id"),
            item["type"],
            None if item.get("related_id") is None else str(item["related_id"]),
            item["title"],
            item["message"],
            json.dumps(data) if data is not None else None,
            item.get("channel", "IN_APP"),
        )

    def insert_notifications(self, items: Sequence[Dict[str, Any]]) -> int:
        if not items:
            return 0
        cols = ", ".join(self._NOTIFICATION_COLUMNS)
        with self._connect() as conn:
            conn.executemany(
                f"INSERT INTO notifications ({cols}) VALUES ({_placeholders(self._NOTIFICATION_COLUMNS)})",
                [self._notification_values(i) for i in items],
            )
        return len(items)

    def insert_scheduled_notifications(
        self, items: Sequence[Dict[str, Any]], send_at: datetime
    ) -> int:
        if not items:
            return 0
        cols = ", ".join(self._NOTIFICATION_COLUMNS)
        with self._connect() as conn:
            conn.executemany(
                f"""
                INSERT INTO scheduled_notifications ({cols}, send_at)
                VALUES ({_placeholders(self._NOTIFICATION_COLUMNS)}, ?)
                """,
                [(*self._notification_values(i), format_ts(send_at)) for i in items],
            )
        return len(items)

    def list_scheduled_notifications(self, user_id: Optional[str] = None) -> List[Dict[str, Any]]:
        if user_id is None:
            return self._fetch_all("SELECT * FROM scheduled_notifications ORDER BY send_at, id")
        return self._fetch_all(
            "SELECT * FROM scheduled_notifications WHERE user_id = ? ORDER BY send_at, id",
            (user_id,),
        )

    def deliver_due_notifications(self, now: datetime) -> int:
        """Move due scheduled rows into the feed.

        Rows are flagged ``is_sent`` before the copy, inside the same
        transaction, so a row is delivered at most once.
        """
        cols = ", ".join(self._NOTIFICATION_COLUMNS)
        with self._connect() as conn:
            due = conn.execute(
                "SELECT id FROM scheduled_notifications WHERE is_sent = 0 AND send_at <= ? ORDER BY send_at, id",
                (format_ts(now),),
            ).fetchall()
            ids = [int(r["id"]) for r in due]
            if not ids:
                return 0
            conn.execute(
                f"UPDATE scheduled_notifications SET is_sent = 1 WHERE id IN ({_placeholders(ids)})",
                ids,
            )
            conn.execute(
                f"""
                INSERT INTO notifications ({cols})
                SELECT {cols} FROM scheduled_notifications
                WHERE id IN ({_placeholders(ids)})
                ORDER BY send_at, id
                """,
                ids,
            )
            return len(ids)

    def list_notifications(
        self, user_id: str, type_: Optional[str] = None, read: Optional[bool] = None, limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        clauses = ["user_id = ?"]
        params: List[Any] = [user_id]
        if type_:
            clauses.append("type = ?")
            params.append(type_)
        if read is not None:
            clauses.append("is_read = ?")
            params.append(1 if read else 0)
        sql = f"SELECT * FROM notifications WHERE {' AND '.join(clauses)} ORDER BY created_at DESC, id DESC"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)
        return self._fetch_all(sql, params)

    def set_notifications_read(
        self, user_id: str, notification_ids: Sequence[int], is_read: bool
    ) -> int:
        if not notification_ids:
            return 0
        with self._connect() as conn:
            cur = conn.execute(
                f"UPDATE notifications SET is_read = ? WHERE user_id = ? AND id IN ({_placeholders(notification_ids)})",
                (1 if is_read else 0, user_id, *notification_ids),
            )
            return cur.rowcount

    def delete_notifications(self, user_id: str, notification_ids: Sequence[int]) -> int:
        if not notification_ids:
            return 0
        with self._connect() as conn:
            cur = conn.execute(
                f"DELETE FROM notifications WHERE user_id = ? AND id IN ({_placeholders(notification_ids)})",
                (user_id, *notification_ids),
            )
            return cur.rowcount
