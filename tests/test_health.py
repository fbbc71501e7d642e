import inspect

from fastapi.routing import APIRoute
from fastapi.testclient import TestClient


def test_health_endpoint(make_hub):
    client = TestClient(make_hub())
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json().get("status") == "ok"


def test_session_health_counts_live_sessions(make_hub):
    app = make_hub()
    # each cookieless client gets its own session
    for _ in range(3):
        TestClient(app).get("/health")

    r = TestClient(app).get("/api/health/sessions")
    assert r.status_code == 200
    j = r.json()
    # this request's own session is saved after the response body is built
    assert j["total_active_sessions"] == 3
    assert "last_refresh" in j


def test_current_session_counts_views(make_hub):
    client = TestClient(make_hub())
    first = client.get("/api/session").json()
    second = client.get("/api/session").json()
    assert first["views"] == 1
    assert second == {**first, "views": 2}
    assert first["expires"] is None


def test_current_session_with_max_age(make_hub):
    client = TestClient(make_hub(cookie_max_age=600))
    j = client.get("/api/session").json()
    assert j["expires"] is not None
    assert 0 < j["max_age"] <= 600


def test_regenerate_and_logout(make_hub):
    app = make_hub()
    client = TestClient(app)
    sid = client.get("/api/session").json()["session_id"]

    assert client.post("/api/session/regenerate").status_code == 200
    regenerated = client.get("/api/session").json()
    assert regenerated["session_id"] != sid
    assert regenerated["views"] == 1

    assert client.post("/api/session/logout").json() == {"status": "logged_out"}
    assert app.state.session_store.get(regenerated["session_id"]) is None
    assert client.get("/api/session").json()["session_id"] != regenerated["session_id"]


def test_lifespan_closes_store(make_hub):
    app = make_hub()
    with TestClient(app) as client:
        client.get("/health")
    assert app.state.session_store.closed


def test_store_backed_handlers_run_in_threadpool(make_hub):
    # plain functions are run off the event loop, so blocking stores cannot stall it
    endpoints = {r.path: r.endpoint for r in make_hub().routes if isinstance(r, APIRoute)}
    for path in (
        "/api/health/sessions",
        "/api/session/regenerate",
        "/api/session/logout",
        "/api/sessions",
        "/api/sessions/{session_id}/terminate",
        "/api/sessions/clear",
        "/api/sessions/clear-expired",
        "/api/ops/audit",
    ):
        assert not inspect.iscoroutinefunction(endpoints[path]), path
