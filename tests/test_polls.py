from datetime import datetime, timedelta, timezone


def in_hours(hours):
    return (datetime.now(timezone.utc) + timedelta(hours=hours)).isoformat()


def create_poll(client, auth, trip_id, who="alice", **body):
    payload = {"question": "Where to eat?", "expires_at": in_hours(24), "options": ["Sushi", "Tapas", "Pizza"]}
    payload.update(body)
    return client.post(f"/api/trips/{trip_id}/polls", json=payload, headers=auth(who))


def vote(client, auth, trip_id, poll, who, index):
    option_id = poll["options"][index]["id"]
    return client.post(f"/api/trips/{trip_id}/polls/{poll['id']}/vote", json={"option_id": option_id}, headers=auth(who))


def test_create_poll_and_notify(client, auth, make_trip):
    trip_id = make_trip()
    resp = create_poll(client, auth, trip_id)
    assert resp.status_code == 201, resp.text
    poll = resp.json()
    assert poll["status"] == "ACTIVE"
    assert [o["option_text"] for o in poll["options"]] == ["Sushi", "Tapas", "Pizza"]
    assert poll["total_votes"] == 0
    feed = client.get("/api/notifications", headers=auth("bob")).json()
    assert [n["type"] for n in feed] == ["POLL_CREATED"]


def test_create_poll_validation(client, auth, make_trip):
    trip_id = make_trip()
    assert create_poll(client, auth, trip_id, options=["Only one"]).status_code == 422
    assert create_poll(client, auth, trip_id, options=["A", "a"]).status_code == 422
    assert create_poll(client, auth, trip_id, expires_at=in_hours(-1)).status_code == 422
    assert create_poll(client, auth, trip_id, expires_at="2030-01-01T10:00:00").status_code == 422
    assert create_poll(client, auth, trip_id, question=" ").status_code == 422


def test_vote_change_and_withdraw(client, auth, make_trip):
    trip_id = make_trip()
    poll = create_poll(client, auth, trip_id).json()
    assert vote(client, auth, trip_id, poll, "bob", 0).json()["my_vote_option_id"] == poll["options"][0]["id"]
    changed = vote(client, auth, trip_id, poll, "bob", 1).json()
    assert changed["total_votes"] == 1
    assert changed["options"][1]["vote_count"] == 1

    url = f"/api/trips/{trip_id}/polls/{poll['id']}/vote"
    assert client.delete(url, headers=auth("bob")).json()["total_votes"] == 0
    assert client.delete(url, headers=auth("bob")).status_code == 404


def test_vote_rejects_foreign_option(client, auth, make_trip):
    trip_id = make_trip()
    first = create_poll(client, auth, trip_id).json()
    second = create_poll(client, auth, trip_id).json()
    resp = client.post(
        f"/api/trips/{trip_id}/polls/{first['id']}/vote",
        json={"option_id": second["options"][0]["id"]},
        headers=auth("bob"),
    )
    assert resp.status_code == 400


def test_complete_picks_winner(client, auth, make_trip):
    trip_id = make_trip()
    poll = create_poll(client, auth, trip_id).json()
    vote(client, auth, trip_id, poll, "alice", 2)
    vote(client, auth, trip_id, poll, "bob", 2)
    vote(client, auth, trip_id, poll, "carol", 0)
    url = f"/api/trips/{trip_id}/polls/{poll['id']}/complete"
    assert client.patch(url, headers=auth("bob")).status_code == 403
    done = client.patch(url, headers=auth("alice")).json()
    assert done["status"] == "COMPLETED"
    assert done["winner_option_id"] == poll["options"][2]["id"]
    assert client.patch(url, headers=auth("alice")).status_code == 400
    assert vote(client, auth, trip_id, poll, "carol", 1).status_code == 400


def test_complete_tie_and_no_votes(client, auth, make_trip):
    trip_id = make_trip()
    tie = create_poll(client, auth, trip_id).json()
    vote(client, auth, trip_id, tie, "alice", 0)
    vote(client, auth, trip_id, tie, "bob", 1)
    body = client.patch(f"/api/trips/{trip_id}/polls/{tie['id']}/complete", headers=auth("alice")).json()
    assert (body["status"], body["winner_option_id"]) == ("TIE", None)

    empty = create_poll(client, auth, trip_id).json()
    body = client.patch(f"/api/trips/{trip_id}/polls/{empty['id']}/complete", headers=auth("alice")).json()
    assert (body["status"], body["winner_option_id"]) == ("COMPLETED", None)


def test_delete_polls(client, auth, make_trip):
    trip_id = make_trip()
    mine = create_poll(client, auth, trip_id, who="bob").json()["id"]
    theirs = create_poll(client, auth, trip_id, who="alice").json()["id"]
    assert client.delete(f"/api/trips/{trip_id}/polls/{theirs}", headers=auth("bob")).status_code == 403
    resp = client.request(
        "DELETE", f"/api/trips/{trip_id}/polls", json={"poll_ids": [mine, theirs]}, headers=auth("bob")
    )
    assert resp.json() == {"deleted_count": 1, "ignored_ids": [theirs]}
    # trip creator may delete anyone's poll
    assert client.delete(f"/api/trips/{trip_id}/polls/{theirs}", headers=auth("alice")).status_code == 200
    assert client.delete(f"/api/trips/{trip_id}/polls/{theirs}", headers=auth("alice")).status_code == 404
