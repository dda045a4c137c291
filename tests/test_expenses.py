from conftest import email, uid


def add_expense(client, auth, trip_id, who="alice", **body):
    payload = {"amount": 100, "category": "Food", "description": "Dinner"}
    payload.update(body)
    return client.post(f"/api/trips/{trip_id}/expenses", json=payload, headers=auth(who))


def shares_by_user(expense):
    return {s["user_id"]: s for s in expense["shares"]}


def test_create_splits_exact_cents_among_all_members(client, auth, make_trip):
    trip_id = make_trip()
    resp = add_expense(client, auth, trip_id)
    assert resp.status_code == 201, resp.text
    expense = resp.json()
    assert expense["category"] == "food"
    assert expense["paid_by"] == uid("alice")
    shares = shares_by_user(expense)
    assert shares[uid("alice")]["share_amount"] == 33.34
    assert shares[uid("bob")]["share_amount"] == 33.33
    assert shares[uid("carol")]["share_amount"] == 33.33
    assert round(sum(s["share_amount"] for s in expense["shares"]), 2) == 100
    # payer never owes themself
    assert shares[uid("alice")]["settled"] is True
    assert shares[uid("bob")]["settled"] is False


def test_create_with_explicit_payer_and_split(client, auth, make_trip):
    trip_id = make_trip()
    resp = add_expense(
        client,
        auth,
        trip_id,
        amount=10,
        paid_by_email=email("bob"),
        split_among_emails=[email("bob"), email("carol").upper(), email("carol")],
    )
    assert resp.status_code == 201, resp.text
    expense = resp.json()
    assert expense["paid_by"] == uid("bob")
    assert set(shares_by_user(expense)) == {uid("bob"), uid("carol")}


def test_create_notifies_split_members_except_caller(client, auth, make_trip):
    trip_id = make_trip()
    add_expense(client, auth, trip_id)
    bob_feed = client.get("/api/notifications", headers=auth("bob")).json()
    alice_feed = client.get("/api/notifications", headers=auth("alice")).json()
    assert [n["type"] for n in bob_feed] == ["EXPENSE_CREATED"]
    assert alice_feed == []


def test_create_rejects_non_members(client, auth, make_trip):
    trip_id = make_trip(members=("bob",))
    assert add_expense(client, auth, trip_id, who="dave").status_code == 403
    resp = add_expense(client, auth, trip_id, split_among_emails=[email("bob"), email("dave")])
    assert resp.status_code == 403
    assert resp.json()["not_members"] == [email("dave")]
    assert add_expense(client, auth, trip_id, paid_by_email=email("carol")).status_code == 403


def test_create_validates_body(client, auth, make_trip):
    trip_id = make_trip()
    assert add_expense(client, auth, trip_id, amount=0.01).status_code == 422
    assert add_expense(client, auth, trip_id, amount=10.123).status_code == 422
    assert add_expense(client, auth, trip_id, category="souvenirs").status_code == 422
    assert add_expense(client, auth, trip_id, description="   ").status_code == 422
    assert add_expense(client, auth, trip_id, split_among_emails=[]).status_code == 422


def test_list_filters_by_category(client, auth, make_trip):
    trip_id = make_trip()
    add_expense(client, auth, trip_id, category="food")
    add_expense(client, auth, trip_id, category="transportation", description="Taxi")
    resp = client.get(f"/api/trips/{trip_id}/expenses?category=TRANSPORTATION", headers=auth("bob"))
    assert [e["description"] for e in resp.json()] == ["Taxi"]
    assert len(client.get(f"/api/trips/{trip_id}/expenses", headers=auth("bob")).json()) == 2
    assert client.get(f"/api/trips/{trip_id}/expenses?category=nope", headers=auth("bob")).status_code == 400


def test_breakdown(client, auth, make_trip):
    trip_id = make_trip()
    add_expense(client, auth, trip_id, amount=60, category="food")
    add_expense(client, auth, trip_id, who="bob", amount=30, category="activities")
    body = client.get(f"/api/trips/{trip_id}/expenses/breakdown", headers=auth("carol")).json()
    assert body["total"] == 90
    assert body["expense_count"] == 2
    categories = {c["category"]: c for c in body["categories"]}
    assert len(categories) == 5
    assert categories["food"]["percentage"] == 66.67
    assert body["categories"][0]["category"] == "food"
    assert [p["user_id"] for p in body["by_payer"]] == [uid("alice"), uid("bob")]
    assert body["my_share_total"] == 30


def test_get_missing_expense_404(client, auth, make_trip):
    trip_id = make_trip()
    assert client.get(f"/api/trips/{trip_id}/expenses/999", headers=auth("alice")).status_code == 404


def test_update_recomputes_shares(client, auth, make_trip):
    trip_id = make_trip()
    expense = add_expense(client, auth, trip_id).json()
    resp = client.put(
        f"/api/trips/{trip_id}/expenses/{expense['id']}",
        json={"amount": 50, "split_among_emails": [email("alice"), email("bob")]},
        headers=auth("alice"),
    )
    assert resp.status_code == 200, resp.text
    shares = shares_by_user(resp.json())
    assert set(shares) == {uid("alice"), uid("bob")}
    assert shares[uid("bob")]["share_amount"] == 25


def test_update_only_creator_or_payer(client, auth, make_trip):
    trip_id = make_trip()
    expense = add_expense(client, auth, trip_id).json()
    resp = client.put(
        f"/api/trips/{trip_id}/expenses/{expense['id']}",
        json={"description": "Lunch"},
        headers=auth("bob"),
    )
    assert resp.status_code == 403


def test_update_conflicts_once_a_share_is_settled(client, auth, make_trip):
    trip_id = make_trip()
    expense = add_expense(client, auth, trip_id).json()
    client.patch(
        f"/api/trips/{trip_id}/expense-shares/settle",
        json={"expense_shares_to_settle": [{"expense_id": expense["id"], "debtor_user_id": uid("bob")}]},
        headers=auth("bob"),
    )
    url = f"/api/trips/{trip_id}/expenses/{expense['id']}"
    assert client.put(url, json={"amount": 120}, headers=auth("alice")).status_code == 409
    # descriptive edits remain possible
    resp = client.put(url, json={"description": "Team dinner"}, headers=auth("alice"))
    assert resp.status_code == 200
    assert resp.json()["description"] == "Team dinner"


def test_delete_permissions(client, auth, make_trip):
    trip_id = make_trip(members=("bob", "carol", "dave"))
    expense = add_expense(client, auth, trip_id, split_among_emails=[email("alice"), email("bob")]).json()
    url = f"/api/trips/{trip_id}/expenses/{expense['id']}"
    assert client.delete(url, headers=auth("carol")).status_code == 403
    assert client.delete(url, headers=auth("bob")).status_code == 200
    assert client.delete(url, headers=auth("bob")).status_code == 404


def test_batch_delete(client, auth, make_trip):
    trip_id = make_trip()
    mine = add_expense(client, auth, trip_id, split_among_emails=[email("alice")]).json()["id"]
    theirs = add_expense(client, auth, trip_id, who="bob", split_among_emails=[email("bob")]).json()["id"]
    url = f"/api/trips/{trip_id}/expenses"

    resp = client.request("DELETE", url, json={"expense_ids": [theirs]}, headers=auth("alice"))
    assert resp.status_code == 403
    resp = client.request("DELETE", url, json={"expense_ids": [12345]}, headers=auth("alice"))
    assert resp.status_code == 404

    resp = client.request("DELETE", url, json={"expense_ids": [mine, theirs, 12345]}, headers=auth("alice"))
    assert resp.status_code == 200
    assert resp.json() == {"deleted_count": 1, "ignored_ids": [theirs, 12345]}


def post_raw_amount(client, auth, trip_id, literal):
    body = '{"amount": ' + literal + ', "category": "food", "description": "Dinner"}'
    headers = {**auth("alice"), "Content-Type": "application/json"}
    return client.post(f"/api/trips/{trip_id}/expenses", content=body, headers=headers)


def test_create_rejects_non_finite_and_oversized_amounts(client, auth, make_trip):
    trip_id = make_trip()
    for literal in ("1e30", "Infinity", "-Infinity", "NaN"):
        resp = post_raw_amount(client, auth, trip_id, literal)
        assert resp.status_code == 422, resp.text
        assert resp.json()["error"] == "validation_error"
    nan = post_raw_amount(client, auth, trip_id, "NaN").json()
    assert nan["detail"][0]["input"] == "nan"
    assert add_expense(client, auth, trip_id, amount=1_000_000_000_000.01).status_code == 422
    assert add_expense(client, auth, trip_id, amount=999_999.99).status_code == 201
