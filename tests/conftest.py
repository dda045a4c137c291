from datetime import date, datetime, timedelta, timezone

import jwt
import pytest
from fastapi.testclient import TestClient

from trip_planner.core.config import Settings
from trip_planner.db.dal import Database
from trip_planner.db.migrate import apply_migrations
from trip_planner.main import create_app

SECRET = "test-secret"

USERS = {
    "alice": ("user-alice", "alice@example.com", "Alice Anders"),
    "bob": ("user-bob", "bob@example.com", "Bob Brown"),
    "carol": ("user-carol", "carol@example.com", "Carol Chen"),
    "dave": ("user-dave", "dave@example.com", "Dave Diaz"),
}


def make_token(user_id: str, email: str | None = None, full_name: str | None = None, **claims) -> str:
    payload = {"sub": user_id, "exp": datetime.now(timezone.utc) + timedelta(hours=1)}
    if email:
        payload["email"] = email
    if full_name:
        payload["user_metadata"] = {"full_name": full_name}
    payload.update(claims)
    return jwt.encode(payload, SECRET, algorithm="HS256")


@pytest.fixture
def settings(tmp_path):
    s = Settings(
        data_dir=tmp_path,
        db_filename="test.sqlite3",
        jwt_secret=SECRET,
        scheduler_enabled=False,
        frontend_url="http://planner.test",
    )
    s.init_post_load()
    return s


@pytest.fixture
def app(settings):
    return create_app(settings)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def db(settings):
    apply_migrations(settings.db_path)
    database = Database(settings.db_path)
    for user_id, email, name in USERS.values():
        database.upsert_user(user_id, email, name)
    return database


@pytest.fixture
def auth():
    """auth("alice") -> Authorization headers for that user."""

    def _headers(name: str) -> dict:
        user_id, email, full_name = USERS[name]
        return {"Authorization": f"Bearer {make_token(user_id, email, full_name)}"}

    return _headers


def uid(name: str) -> str:
    return USERS[name][0]


def email(name: str) -> str:
    return USERS[name][1]


@pytest.fixture
def make_trip(client, db, auth):
    """Create a trip owned by ``owner`` and add the other users as plain members."""

    def _make(owner: str = "alice", members=("bob", "carol"), **fields) -> int:
        body = {
            "name": "Lisbon getaway",
            "destination": "Lisbon",
            "start_date": (date.today() + timedelta(days=10)).isoformat(),
            "end_date": (date.today() + timedelta(days=15)).isoformat(),
        }
        body.update(fields)
        resp = client.post("/api/trips", json=body, headers=auth(owner))
        assert resp.status_code == 201, resp.text
        trip_id = resp.json()["id"]
        for name in members:
            db.add_member(trip_id, uid(name))
        return trip_id

    return _make
