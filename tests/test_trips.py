from datetime import date, timedelta

from conftest import make_token, uid


def future(days):
    return (date.today() + timedelta(days=days)).isoformat()


def test_create_trip_makes_caller_creator(client, auth):
    resp = client.post(
        "/api/trips",
        json={"name": "  Alps  ", "destination": "Chamonix", "start_date": future(5), "end_date": future(9)},
        headers=auth("alice"),
    )
    assert resp.status_code == 201, resp.text
    trip = resp.json()
    assert trip["name"] == "Alps"
    assert trip["my_role"] == "creator"
    assert [(m["user_id"], m["role"]) for m in trip["members"]] == [(uid("alice"), "creator")]


def test_create_trip_validates_dates(client, auth):
    past = (date.today() - timedelta(days=2)).isoformat()
    body = {"name": "Trip", "destination": "Rome"}
    assert client.post("/api/trips", json={**body, "start_date": past, "end_date": future(3)}, headers=auth("alice")).status_code == 422
    assert client.post("/api/trips", json={**body, "start_date": future(3), "end_date": future(3)}, headers=auth("alice")).status_code == 422
    assert client.post("/api/trips", json={**body, "name": " ", "start_date": future(3), "end_date": future(4)}, headers=auth("alice")).status_code == 422


def test_list_trips_only_mine_with_role(client, auth, make_trip):
    first = make_trip(owner="alice", members=("bob",))
    make_trip(owner="carol", members=())
    trips = client.get("/api/trips", headers=auth("bob")).json()
    assert [(t["id"], t["my_role"]) for t in trips] == [(first, "member")]


def test_list_trips_filters_destination(client, auth, make_trip):
    make_trip(destination="Lisbon")
    make_trip(destination="Porto")
    trips = client.get("/api/trips?destination=port", headers=auth("alice")).json()
    assert [t["destination"] for t in trips] == ["Porto"]


def test_get_trip_requires_membership(client, auth, make_trip):
    trip_id = make_trip()
    assert client.get(f"/api/trips/{trip_id}", headers=auth("bob")).status_code == 200
    assert client.get(f"/api/trips/{trip_id}", headers=auth("dave")).status_code == 403
    assert client.get("/api/trips/4242", headers=auth("dave")).status_code == 404


def test_update_trip_by_admin_only(client, auth, make_trip, db):
    trip_id = make_trip()
    url = f"/api/trips/{trip_id}"
    assert client.put(url, json={"name": "New"}, headers=auth("bob")).status_code == 403
    db.update_member_role(trip_id, uid("bob"), "admin")
    resp = client.put(url, json={"name": "New", "budget": 1500}, headers=auth("bob"))
    assert resp.status_code == 200
    assert resp.json()["name"] == "New"
    assert resp.json()["budget"] == 1500
    # merged dates must stay ordered
    assert client.put(url, json={"end_date": future(1)}, headers=auth("bob")).status_code == 400
    assert client.put(url, json={}, headers=auth("bob")).status_code == 422


def test_delete_trip_creator_only_and_notifies(client, auth, make_trip):
    trip_id = make_trip()
    assert client.delete(f"/api/trips/{trip_id}", headers=auth("bob")).status_code == 403
    resp = client.delete(f"/api/trips/{trip_id}", headers=auth("alice"))
    assert resp.json() == {"deleted_id": trip_id}
    assert client.get(f"/api/trips/{trip_id}", headers=auth("alice")).status_code == 404
    feed = client.get("/api/notifications", headers=auth("bob")).json()
    assert [n["type"] for n in feed] == ["TRIP_DELETED"]


def test_batch_delete_only_own_trips(client, auth, make_trip):
    mine = make_trip(owner="alice")
    theirs = make_trip(owner="bob", members=())
    resp = client.request("DELETE", "/api/trips", json={"trip_ids": [mine, theirs]}, headers=auth("alice"))
    assert resp.json() == {"deleted_count": 1, "ignored_ids": [theirs]}
    resp = client.request("DELETE", "/api/trips", json={"trip_ids": [theirs]}, headers=auth("alice"))
    assert resp.status_code == 404


def test_auth_errors(client):
    assert client.get("/api/trips").status_code == 401
    assert client.get("/api/trips", headers={"Authorization": "Token abc"}).status_code == 401
    assert client.get("/api/trips", headers={"Authorization": "Bearer not-a-jwt"}).status_code == 401
    expired = make_token("user-x", "x@example.com", exp=1)
    resp = client.get("/api/trips", headers={"Authorization": f"Bearer {expired}"})
    assert resp.status_code == 401
    assert resp.json()["detail"] == "Token has expired"


def test_token_without_email_for_unknown_user(client):
    token = make_token("ghost")
    assert client.get("/api/users/me", headers={"Authorization": f"Bearer {token}"}).status_code == 401


def test_users_me_provisions_from_claims(client):
    token = make_token("new-user", "New@Example.com", "Nina New")
    resp = client.get("/api/users/me", headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 200
    assert resp.json()["email"] == "new@example.com"
    assert resp.json()["full_name"] == "Nina New"


def test_errors_carry_request_id(client, auth):
    resp = client.get("/api/trips/4242", headers={**auth("alice"), "X-Request-ID": "req-123"})
    assert resp.status_code == 404
    assert resp.headers["X-Request-ID"] == "req-123"
    assert resp.json()["error"] == "not_found"


def test_out_of_range_ids_and_budgets_are_rejected(client, auth, make_trip):
    make_trip()
    assert client.get("/api/trips/99999999999999999999", headers=auth("alice")).status_code == 422
    assert client.get("/api/trips/0", headers=auth("alice")).status_code == 422
    assert client.get(f"/api/trips/{2**63 - 1}", headers=auth("alice")).status_code == 404
    resp = client.request("DELETE", "/api/trips", json={"trip_ids": [2**70]}, headers=auth("alice"))
    assert resp.status_code == 422
    assert client.get("/api/trips?offset=99999999999999999999", headers=auth("alice")).status_code == 422
    body = (
        '{"name": "Trip", "destination": "Rome", '
        f'"start_date": "{future(3)}", "end_date": "{future(4)}", "budget": Infinity}}'
    )
    headers = {**auth("alice"), "Content-Type": "application/json"}
    resp = client.post("/api/trips", content=body, headers=headers)
    assert resp.status_code == 422
    assert resp.json()["detail"][0]["input"] == "inf"
