"""
Shared pytest fixtures for the session hub tests.

- session stores for every available backend (Redis only when REDIS_URL is set)
- a minimal app factory wiring SessionMiddleware in front of a `/test` route
"""

import dataclasses
import itertools
import os
import uuid

import pytest
from fastapi import FastAPI, Request, WebSocket

from hubsession.config import Settings
from hubsession.main import create_app
from hubsession.middleware import SessionMiddleware
from hubsession.session_store_base import InMemorySessionStore, StoreOptions
from hubsession.sql_store import SQLiteSessionStore

REDIS_URL = os.getenv("REDIS_URL")

requires_redis = pytest.mark.skipif(not REDIS_URL, reason="REDIS_URL not set")

ALL_BACKENDS = ["memory", "sqlite", pytest.param("redis", marks=requires_redis)]
LOCAL_BACKENDS = ["memory", "sqlite"]


def make_store(backend, tmp_path, options=None):
    options = options or StoreOptions(clear_expired=False)
    if backend == "memory":
        return InMemorySessionStore(options)
    if backend == "sqlite":
        return SQLiteSessionStore(str(tmp_path / "sessions.db"), options=options)
    if backend == "redis":
        from hubsession.session_store import RedisSessionStore

        run = uuid.uuid4().hex
        return RedisSessionStore(
            REDIS_URL, options=options, prefix=f"test:{run}:session:", index_key=f"test:{run}:sessions"
        )
    raise ValueError(backend)


@pytest.fixture(params=ALL_BACKENDS)
def session_store(request, tmp_path):
    store = make_store(request.param, tmp_path)
    yield store
    if not store.closed:
        store.clear()
        store.close()


@pytest.fixture(params=LOCAL_BACKENDS)
def local_store(request, tmp_path):
    """Stores whose clock can be monkeypatched through `_now`."""
    store = make_store(request.param, tmp_path)
    yield store
    store.close()


@pytest.fixture
def clock(monkeypatch):
    """Controllable clock; attach to a store with ``clock.attach(store)``."""

    class Clock:
        def __init__(self):
            self.now = 1_700_000_000.0

        def attach(self, store):
            monkeypatch.setattr(store, "_now", lambda: self.now)
            return store

        def advance(self, seconds):
            self.now += seconds

    return Clock()


_app_ids = itertools.count()


def create_app_server(store, **session_options) -> FastAPI:
    """Build a small app with the session middleware and a few test routes."""
    options = {
        "name": f"hub.sid-{next(_app_ids)}",
        "secret": "some_secret",
        "resave": False,
        "save_uninitialized": True,
    }
    options.update(session_options)

    app = FastAPI()
    app.add_middleware(SessionMiddleware, store=store, **options)
    app.state.session_options = options

    @app.get("/test")
    async def test_route():
        return "hi!"

    @app.get("/count")
    async def count(request: Request):
        request.session["count"] = request.session.get("count", 0) + 1
        return {"count": request.session["count"], "id": request.session.id}

    @app.get("/whoami")
    async def whoami(request: Request):
        return {"id": request.session.id, "data": dict(request.session)}

    @app.post("/logout")
    async def logout(request: Request):
        request.session.destroy()
        return {"ok": True}

    @app.post("/regenerate")
    async def regenerate(request: Request):
        request.session.regenerate()
        request.session["fresh"] = True
        return {"id": request.session.id}

    @app.get("/reload")
    async def reload(request: Request):
        request.session["scratch"] = "unsaved"
        request.session.reload()
        return {"data": dict(request.session)}

    @app.websocket("/ws")
    async def ws(websocket: WebSocket):
        await websocket.accept()
        await websocket.send_json({"id": websocket.session.id})
        await websocket.close()

    return app


@pytest.fixture
def make_app():
    return create_app_server


@pytest.fixture
def hub_settings(tmp_path):
    return Settings(audit_log_dir=str(tmp_path / "logs"), clear_expired=False)


@pytest.fixture
def make_hub(hub_settings):
    """Factory for the full hub app; keyword overrides replace settings fields."""
    stores = []

    def factory(**overrides):
        store = InMemorySessionStore(StoreOptions(clear_expired=False))
        stores.append(store)
        return create_app(dataclasses.replace(hub_settings, **overrides), store=store)

    yield factory
    for store in stores:
        store.close()
