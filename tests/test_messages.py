import pytest
from starlette.websockets import WebSocketDisconnect

from conftest import make_token, uid, USERS


def ws_url(trip_id, name):
    user_id, mail, full_name = USERS[name]
    return f"/api/trips/{trip_id}/chat?token={make_token(user_id, mail, full_name)}"


def test_post_and_list_messages(client, auth, make_trip):
    trip_id = make_trip()
    url = f"/api/trips/{trip_id}/messages"
    first = client.post(url, json={"text": "Hi all"}, headers=auth("alice"))
    assert first.status_code == 201
    client.post(url, json={"text": "Hello!"}, headers=auth("bob"))
    messages = client.get(url, headers=auth("carol")).json()
    assert [m["text"] for m in messages] == ["Hi all", "Hello!"]
    assert messages[0]["sender_id"] == uid("alice")
    assert messages[0]["reactions"] == {}
    assert client.post(url, json={"text": "  "}, headers=auth("alice")).status_code == 422
    assert client.get(url, headers=auth("dave")).status_code == 403


def test_edit_text_only_by_sender(client, auth, make_trip):
    trip_id = make_trip()
    message = client.post(f"/api/trips/{trip_id}/messages", json={"text": "See you at 9"}, headers=auth("alice")).json()
    url = f"/api/trips/{trip_id}/messages/{message['id']}"
    assert client.patch(url, json={"text": "hijack"}, headers=auth("bob")).status_code == 403
    assert client.patch(url, json={"text": "See you at 10"}, headers=auth("alice")).json()["text"] == "See you at 10"
    # anyone in the trip may replace the reactions map
    resp = client.patch(url, json={"reactions": {"👍": [uid("bob"), uid("bob")]}}, headers=auth("bob"))
    assert resp.json()["reactions"] == {"👍": [uid("bob")]}
    assert client.patch(url, json={}, headers=auth("alice")).status_code == 422
    assert client.patch(f"/api/trips/{trip_id}/messages/nope", json={"text": "x"}, headers=auth("alice")).status_code == 404


def test_add_reaction_is_idempotent_per_user(client, auth, make_trip):
    trip_id = make_trip()
    message = client.post(f"/api/trips/{trip_id}/messages", json={"text": "Beach?"}, headers=auth("alice")).json()
    url = f"/api/trips/{trip_id}/messages/{message['id']}/reactions"
    client.post(url, json={"emoji": "🏖"}, headers=auth("bob"))
    client.post(url, json={"emoji": "🏖"}, headers=auth("bob"))
    resp = client.post(url, json={"emoji": "🏖"}, headers=auth("carol"))
    assert resp.json()["reactions"] == {"🏖": [uid("bob"), uid("carol")]}


def test_websocket_broadcasts_new_messages(client, make_trip):
    trip_id = make_trip()
    with client.websocket_connect(ws_url(trip_id, "alice")) as alice_ws, client.websocket_connect(
        ws_url(trip_id, "bob")
    ) as bob_ws:
        alice_ws.send_json({"type": "send_message", "text": "Boarding now"})
        for ws in (alice_ws, bob_ws):
            event = ws.receive_json()
            assert event["type"] == "new_message"
            assert event["message"]["text"] == "Boarding now"
            assert event["message"]["sender_id"] == uid("alice")

        alice_ws.send_json({"type": "typing"})
        assert alice_ws.receive_json()["type"] == "error"


def test_rest_message_reaches_sockets(client, auth, make_trip):
    trip_id = make_trip()
    with client.websocket_connect(ws_url(trip_id, "bob")) as bob_ws:
        message = client.post(f"/api/trips/{trip_id}/messages", json={"text": "via REST"}, headers=auth("alice")).json()
        assert bob_ws.receive_json() == {"type": "new_message", "message": message}
        client.post(
            f"/api/trips/{trip_id}/messages/{message['id']}/reactions", json={"emoji": "🎉"}, headers=auth("carol")
        )
        event = bob_ws.receive_json()
        assert event["type"] == "reaction_updated"
        assert event["message"]["reactions"] == {"🎉": [uid("carol")]}


def test_websocket_rejects_non_members(client, make_trip):
    trip_id = make_trip()
    with pytest.raises(WebSocketDisconnect) as exc:
        with client.websocket_connect(ws_url(trip_id, "dave")) as ws:
            ws.receive_json()
    assert exc.value.code == 1008


def test_websocket_rejects_bad_token(client, make_trip):
    trip_id = make_trip()
    with pytest.raises(WebSocketDisconnect) as exc:
        with client.websocket_connect(f"/api/trips/{trip_id}/chat?token=garbage") as ws:
            ws.receive_json()
    assert exc.value.code == 1008


def test_websocket_closes_once_sender_leaves_trip(client, auth, make_trip):
    trip_id = make_trip()
    with client.websocket_connect(ws_url(trip_id, "bob")) as bob_ws:
        assert client.post(f"/api/trips/{trip_id}/members/leave", headers=auth("bob")).status_code == 200
        bob_ws.send_json({"type": "send_message", "text": "still here?"})
        with pytest.raises(WebSocketDisconnect) as exc:
            bob_ws.receive_json()
        assert exc.value.code == 1008
    assert client.get(f"/api/trips/{trip_id}/messages", headers=auth("alice")).json() == []
