def pin(client, auth, trip_id, who="alice", **body):
    payload = {"name": "Time Out Market", "type": "restaurant", "coordinates": {"latitude": 38.707, "longitude": -9.146}}
    payload.update(body)
    return client.post(f"/api/trips/{trip_id}/marked-locations", json=payload, headers=auth(who))


def test_create_and_list_locations(client, auth, make_trip):
    trip_id = make_trip()
    resp = pin(client, auth, trip_id, notes="Go hungry")
    assert resp.status_code == 201, resp.text
    location = resp.json()
    assert location["type"] == "RESTAURANT"
    assert location["coordinates"] == {"latitude": 38.707, "longitude": -9.146}
    assert len(location["id"]) == 32

    listed = client.get(f"/api/trips/{trip_id}/marked-locations", headers=auth("bob")).json()
    assert [loc["id"] for loc in listed] == [location["id"]]
    assert client.get(f"/api/trips/{trip_id}/marked-locations", headers=auth("dave")).status_code == 403


def test_location_validation(client, auth, make_trip):
    trip_id = make_trip()
    assert pin(client, auth, trip_id, type="castle").status_code == 422
    assert pin(client, auth, trip_id, coordinates={"latitude": 91, "longitude": 0}).status_code == 422
    assert pin(client, auth, trip_id, coordinates={"latitude": 0, "longitude": -181}).status_code == 422
    assert pin(client, auth, trip_id, name="").status_code == 422


def test_update_notes_and_delete(client, auth, make_trip):
    trip_id = make_trip()
    other_trip = make_trip(owner="bob", members=())
    location_id = pin(client, auth, trip_id).json()["id"]
    url = f"/api/trips/{trip_id}/marked-locations/{location_id}"

    resp = client.put(f"{url}/notes", json={"notes": "Book a table"}, headers=auth("bob"))
    assert resp.json()["notes"] == "Book a table"

    # scoped by trip
    foreign = f"/api/trips/{other_trip}/marked-locations/{location_id}"
    assert client.delete(foreign, headers=auth("bob")).status_code == 404

    assert client.delete(url, headers=auth("carol")).json() == {"deleted_id": location_id}
    assert client.delete(url, headers=auth("carol")).status_code == 404
