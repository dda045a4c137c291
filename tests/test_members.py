from conftest import uid


def members_url(trip_id, user=None):
    base = f"/api/trips/{trip_id}/members"
    return f"{base}/{uid(user)}" if user else base


def test_list_and_get_members(client, auth, make_trip):
    trip_id = make_trip()
    members = client.get(members_url(trip_id), headers=auth("bob")).json()
    assert {m["user_id"] for m in members} == {uid("alice"), uid("bob"), uid("carol")}
    assert client.get(members_url(trip_id, "carol"), headers=auth("bob")).json()["role"] == "member"
    assert client.get(members_url(trip_id, "dave"), headers=auth("bob")).status_code == 404
    assert client.get(members_url(trip_id), headers=auth("dave")).status_code == 403


def test_role_changes_follow_hierarchy(client, auth, make_trip):
    trip_id = make_trip()
    assert client.put(members_url(trip_id, "bob"), json={"role": "admin"}, headers=auth("carol")).status_code == 403
    resp = client.put(members_url(trip_id, "bob"), json={"role": "admin"}, headers=auth("alice"))
    assert resp.status_code == 200
    assert resp.json()["role"] == "admin"
    # admins manage plain members only
    assert client.put(members_url(trip_id, "carol"), json={"role": "admin"}, headers=auth("bob")).status_code == 200
    assert client.put(members_url(trip_id, "carol"), json={"role": "member"}, headers=auth("bob")).status_code == 403
    assert client.put(members_url(trip_id, "alice"), json={"role": "member"}, headers=auth("bob")).status_code == 403
    assert client.put(members_url(trip_id, "bob"), json={"role": "creator"}, headers=auth("alice")).status_code == 422


def test_leave_trip(client, auth, make_trip):
    trip_id = make_trip()
    resp = client.post(f"{members_url(trip_id)}/leave", headers=auth("bob"))
    assert resp.json() == {"trip_id": trip_id, "user_id": uid("bob")}
    assert client.post(f"{members_url(trip_id)}/leave", headers=auth("bob")).status_code == 404
    assert client.post(f"{members_url(trip_id)}/leave", headers=auth("alice")).status_code == 403


def test_remove_member(client, auth, make_trip, db):
    trip_id = make_trip()
    assert client.delete(members_url(trip_id, "carol"), headers=auth("bob")).status_code == 403
    assert client.delete(members_url(trip_id, "alice"), headers=auth("alice")).status_code == 400
    assert client.delete(members_url(trip_id, "carol"), headers=auth("alice")).status_code == 200
    assert db.get_member(trip_id, uid("carol")) is None
    assert client.delete(members_url(trip_id, "carol"), headers=auth("alice")).status_code == 404


def test_batch_remove_reports_ignored(client, auth, make_trip, db):
    trip_id = make_trip(members=("bob", "carol", "dave"))
    db.update_member_role(trip_id, uid("bob"), "admin")
    resp = client.request(
        "DELETE",
        members_url(trip_id),
        json={"member_ids": [uid("carol"), uid("alice"), "nobody", uid("dave")]},
        headers=auth("bob"),
    )
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["removed"] == [uid("carol"), uid("dave")]
    assert {i["user_id"] for i in body["ignored"]} == {uid("alice"), "nobody"}


def test_batch_remove_nothing_removed(client, auth, make_trip):
    trip_id = make_trip()
    resp = client.request("DELETE", members_url(trip_id), json={"member_ids": [uid("alice")]}, headers=auth("alice"))
    assert resp.status_code == 400
    assert resp.json()["ignored"][0]["user_id"] == uid("alice")
