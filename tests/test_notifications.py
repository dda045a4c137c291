from datetime import datetime, timedelta, timezone

from conftest import uid
from trip_planner.services.notifications import create_notification


def seed(db, user, count, type_="EXPENSE_CREATED"):
    for i in range(count):
        create_notification(db, [uid(user)], type_, f"title {i}", f"message {i}", data={"n": i})
    return [n["id"] for n in db.list_notifications(uid(user))]


def test_feed_returns_all_unread_padded_with_read(client, auth, db, settings):
    ids = seed(db, "bob", 14)
    # mark the 10 newest read, leaving 4 unread
    db.set_notifications_read(uid("bob"), ids[:10], True)
    feed = client.get("/api/notifications", headers=auth("bob")).json()
    assert len(feed) == settings.notification_page_size
    assert sum(1 for n in feed if not n["is_read"]) == 4
    assert feed[0]["data"] == {"n": 13}


def test_feed_never_truncates_unread(client, auth, db, settings):
    seed(db, "bob", settings.notification_page_size + 3)
    feed = client.get("/api/notifications", headers=auth("bob")).json()
    assert len(feed) == settings.notification_page_size + 3


def test_feed_type_filter(client, auth, db):
    seed(db, "bob", 2)
    seed(db, "bob", 1, type_="POLL_CREATED")
    feed = client.get("/api/notifications?type=POLL_CREATED", headers=auth("bob")).json()
    assert [n["type"] for n in feed] == ["POLL_CREATED"]
    assert client.get("/api/notifications?type=BOGUS", headers=auth("bob")).status_code == 400


def test_mark_read_and_unread(client, auth, db):
    ids = seed(db, "bob", 3)
    assert client.patch(f"/api/notifications/{ids[0]}/read", headers=auth("bob")).json() == {"updated_count": 1}
    assert client.patch(f"/api/notifications/{ids[0]}/read", headers=auth("alice")).status_code == 404
    resp = client.patch("/api/notifications/read", json={"notification_ids": ids}, headers=auth("bob"))
    assert resp.json() == {"updated_count": 3}
    resp = client.patch("/api/notifications/unread", json={"notification_ids": ids[:2]}, headers=auth("bob"))
    assert resp.json() == {"updated_count": 2}
    assert client.patch(f"/api/notifications/{ids[2]}/unread", headers=auth("bob")).status_code == 200
    assert client.patch("/api/notifications/read", json={"notification_ids": [999]}, headers=auth("bob")).status_code == 404
    assert client.patch("/api/notifications/read", json={"notification_ids": []}, headers=auth("bob")).status_code == 422


def test_delete_notifications(client, auth, db):
    ids = seed(db, "bob", 3)
    assert client.delete(f"/api/notifications/{ids[0]}", headers=auth("alice")).status_code == 404
    assert client.delete(f"/api/notifications/{ids[0]}", headers=auth("bob")).json() == {"deleted_count": 1}
    resp = client.request("DELETE", "/api/notifications", json={"notification_ids": ids}, headers=auth("bob"))
    assert resp.json() == {"deleted_count": 2}
    resp = client.request("DELETE", "/api/notifications", json={"notification_ids": ids}, headers=auth("bob"))
    assert resp.status_code == 404


def test_create_notification_defers_future_send(db):
    now = datetime.now(timezone.utc)
    create_notification(db, [uid("bob")], "EVENT_REMINDER", "Soon", "Soon", send_at=now + timedelta(hours=2))
    create_notification(db, [uid("bob")], "EVENT_REMINDER", "Now", "Now", send_at=now - timedelta(minutes=1))
    assert [n["title"] for n in db.list_notifications(uid("bob"))] == ["Now"]
    assert [n["title"] for n in db.list_scheduled_notifications(uid("bob"))] == ["Soon"]
