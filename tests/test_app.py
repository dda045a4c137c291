import sqlite3

from trip_planner.db.migrate import CURRENT_SCHEMA_VERSION, apply_migrations, get_schema_version


def test_root_and_health(client, settings):
    assert client.get("/").json() == {"message": settings.app_name, "version": settings.version}
    health = client.get("/api/health").json()
    assert health == {"status": "ok", "schema_version": CURRENT_SCHEMA_VERSION}


def test_unknown_route_uses_error_body(client):
    resp = client.get("/api/nowhere")
    assert resp.status_code == 404
    assert resp.json()["error"] == "not_found"


def test_validation_error_body(client, auth):
    resp = client.post("/api/trips", json={"name": "x"}, headers=auth("alice"))
    assert resp.status_code == 422
    body = resp.json()
    assert body["error"] == "validation_error"
    assert {tuple(e["loc"]) for e in body["detail"]} >= {("body", "destination")}


def test_migrations_are_idempotent(tmp_path):
    path = tmp_path / "m.sqlite3"
    assert apply_migrations(path) == CURRENT_SCHEMA_VERSION
    assert apply_migrations(path) == CURRENT_SCHEMA_VERSION
    assert get_schema_version(path) == CURRENT_SCHEMA_VERSION


def test_v1_payer_shares_become_settled(tmp_path):
    path = tmp_path / "v1.sqlite3"
    apply_migrations(path)
    conn = sqlite3.connect(path)
    conn.execute("INSERT INTO users (id, email) VALUES ('u1', 'u1@example.com'), ('u2', 'u2@example.com')")
    conn.execute(
        "INSERT INTO trips (id, name, destination, start_date, end_date, created_by) "
        "VALUES (1, 'T', 'D', '2030-01-01', '2030-01-05', 'u1')"
    )
    conn.execute(
        "INSERT INTO expenses (id, trip_id, description, amount, category, paid_by, created_by) "
        "VALUES (1, 1, 'x', 10, 'food', 'u1', 'u1')"
    )
    conn.execute("INSERT INTO expense_shares (expense_id, user_id, share_amount, settled) VALUES (1, 'u1', 5, 0), (1, 'u2', 5, 0)")
    conn.execute("UPDATE metadata SET value = '1' WHERE key = 'schema_version'")
    conn.commit()
    conn.close()

    assert apply_migrations(path) == CURRENT_SCHEMA_VERSION
    conn = sqlite3.connect(path)
    rows = dict(conn.execute("SELECT user_id, settled FROM expense_shares").fetchall())
    conn.close()
    assert rows == {"u1": 1, "u2": 0}
