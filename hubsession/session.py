"""Request-bound session object exposed as ``request.session``."""

import hashlib
import json
import logging
from typing import Any, Callable, Dict, Optional, Tuple

from . import metrics
from .cookie import SessionCookie
from .session_store_base import SessionNotFound, SessionStore

logger = logging.getLogger(__name__)

# returns a fresh (session_id, cookie) pair
SessionFactory = Callable[[], Tuple[str, SessionCookie]]


def _normalize(value: Any) -> Any:
    # JSON object keys are strings; mixed int/str keys would break sort_keys
    if isinstance(value, dict):
        return {str(k): _normalize(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_normalize(v) for v in value]
    return value


class Session(dict):
    """Session data for one request plus the cookie that identifies it.

    The mapping holds the application data; ``cookie`` is kept apart and
    only merged in when the session is written to the store.
    """

    def __init__(
        self,
        session_id: str,
        cookie: SessionCookie,
        store: SessionStore,
        factory: SessionFactory,
        data: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(data or {})
        self.id = session_id
        self.cookie = cookie
        self._store = store
        self._factory = factory
        self._original_id = session_id
        self._original_hash = self.hash()
        self._saved_hash: Optional[str] = None
        self.destroyed = False

    @classmethod
    def from_store(
        cls,
        session_id: str,
        document: Dict[str, Any],
        store: SessionStore,
        factory: SessionFactory,
        defaults=None,
    ) -> "Session":
        data = dict(document)
        cookie = SessionCookie.from_dict(data.pop("cookie", None), defaults)
        return cls(session_id, cookie, store, factory, data)

    def to_store(self) -> Dict[str, Any]:
        doc = dict(self)
        doc["cookie"] = self.cookie.to_dict()
        return doc

    def hash(self) -> str:
        """Fingerprint of the session data; the cookie is excluded."""
        payload = json.dumps(_normalize(dict(self)), sort_keys=True, default=str)
        return hashlib.sha1(payload.encode("utf-8")).hexdigest()

    def mark_loaded(self, saved: bool) -> None:
        """Record the current state as the baseline for change detection."""
        self._original_id = self.id
        self._original_hash = self.hash()
        self._saved_hash = self._original_hash if saved else None

    def is_modified(self) -> bool:
        return self.id != self._original_id or self.hash() != self._original_hash

    def is_saved(self) -> bool:
        return self.id == self._original_id and self._saved_hash == self.hash()

    def touch(self) -> None:
        self.cookie.reset_max_age()

    def save(self) -> None:
        self._store.set(self.id, self.to_store())
        self._saved_hash = self.hash()
        metrics.SESSIONS_SAVED.inc()

    def reload(self) -> None:
        document = self._store.get(self.id)
        if document is None:
            raise SessionNotFound(f"session {self.id} not found")
        data = dict(document)
        self.cookie = SessionCookie.from_dict(data.pop("cookie", None))
        self.clear()
        self.update(data)

    def destroy(self) -> None:
        self._store.destroy(self.id)
        self.clear()
        self.destroyed = True
        metrics.SESSIONS_DESTROYED.inc()

    def regenerate(self) -> None:
        """Drop the stored session and continue under a brand new id."""
        self._store.destroy(self.id)
        old_id = self.id
        self.id, self.cookie = self._factory()
        self.clear()
        self.destroyed = False
        metrics.SESSIONS_CREATED.inc()
        logger.debug("Regenerated session %s as %s", old_id, self.id)

    def __repr__(self) -> str:
        return f"Session(id={self.id!r}, data={dict(self)!r})"
