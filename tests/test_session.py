import pytest

from hubsession.cookie import SessionCookie
from hubsession.session import Session
from hubsession.session_store_base import InMemorySessionStore, StoreOptions


@pytest.fixture
def store():
    s = InMemorySessionStore(StoreOptions(clear_expired=False))
    yield s
    s.close()


def _session(store, data=None):
    return Session("sid", SessionCookie(), store, lambda: ("other", SessionCookie()), data)


def test_hash_tolerates_mixed_key_types(store):
    session = _session(store)
    session[1] = "a"
    session["b"] = {2: "x", "y": 3}
    assert session.hash()
    assert session.is_modified()


def test_hash_ignores_insertion_order(store):
    first = _session(store, {"a": 1, "b": 2})
    second = _session(store, {"b": 2, "a": 1})
    assert first.hash() == second.hash()


def test_save_then_unchanged_is_saved(store):
    session = _session(store)
    session["user"] = "alice"
    session.save()
    assert session.is_saved()
    assert store.get("sid")["user"] == "alice"
