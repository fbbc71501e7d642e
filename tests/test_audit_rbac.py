from fastapi.testclient import TestClient


def test_audit_rbac_legacy_token(make_hub):
    client = TestClient(make_hub(admin_token="admintoken123"))

    # without header should be forbidden
    assert client.get("/api/ops/audit").status_code == 403

    r2 = client.get("/api/ops/audit", headers={"X-ADMIN-TOKEN": "admintoken123"})
    assert r2.status_code == 200
    assert r2.json() == {"events": []}


def test_audit_rbac_jwt(make_hub):
    client = TestClient(make_hub(admin_token="legacytoken", admin_jwt_secret="jwtsecret"))

    token = client.post("/api/ops/token", headers={"X-ADMIN-TOKEN": "legacytoken"}).json()["access_token"]

    r2 = client.get("/api/ops/audit", headers={"Authorization": f"Bearer {token}"})
    assert r2.status_code == 200
    assert "events" in r2.json()


def test_list_and_clear_sessions(make_hub):
    app = make_hub(admin_token="admintoken123")
    admin = {"X-ADMIN-TOKEN": "admintoken123"}
    visitor = TestClient(app)
    sid = visitor.get("/api/session").json()["session_id"]

    assert TestClient(app).get("/api/sessions").status_code == 403

    r = TestClient(app).get("/api/sessions", headers=admin)
    assert r.status_code == 200
    records = {rec["session_id"]: rec for rec in r.json()}
    assert records[sid]["data"] == {"views": 1}
    assert "cookie" not in records[sid]["data"]

    r = TestClient(app).post("/api/sessions/clear", headers=admin)
    assert r.status_code == 200
    assert r.json()["status"] == "cleared"
    assert app.state.session_store.get(sid) is None

    events = TestClient(app).get("/api/ops/audit", headers=admin).json()["events"]
    assert any(e["action"] == "clear_sessions" for e in events)


def test_clear_expired_sessions(make_hub):
    app = make_hub()
    store = app.state.session_store
    store.set("stale", {"cookie": {"expires": "2000-01-01T00:00:00+00:00"}})

    r = TestClient(app).post("/api/sessions/clear-expired")
    assert r.status_code == 200
    assert r.json() == {"status": "cleared", "removed": 1}
    assert "stale" not in store.sessions
