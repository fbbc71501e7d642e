"""Shared session store contract and the in-memory implementation.

Every backend stores the session document (the session data plus its
serialized ``cookie``) keyed by session id, together with an expiry
timestamp. Expired sessions are never returned and are periodically
swept by a background thread.
"""

import abc
import copy
import json
import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from . import metrics

logger = logging.getLogger(__name__)


class SessionStoreError(RuntimeError):
    """Raised when a backend cannot read or write session data."""


class SessionNotFound(SessionStoreError):
    """Raised when a session expected to exist is missing from the store."""


@dataclass
class StoreOptions:
    """Expiry behavior shared by all store backends (seconds)."""
    expiration: float = 86400
    check_expiration_interval: float = 900
    clear_expired: bool = True


def encode_document(session_id: str, data: Dict[str, Any]) -> str:
    """Serialize a session document to JSON, the form every backend stores."""
    try:
        return json.dumps(data)
    except (TypeError, ValueError) as e:
        raise SessionStoreError(f"Failed to serialize data for session ({session_id}): {e}") from e


def _parse_expires(value: Any) -> Optional[float]:
    """Convert a stored cookie ``expires`` value into an epoch timestamp."""
    if value is None or value == "":
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, datetime):
        dt = value
    else:
        try:
            dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            logger.debug("Ignoring unparseable cookie expires value %r", value)
            return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.timestamp()


class SessionStore(abc.ABC):
    """Base class for session backends.

    Subclasses implement the storage primitives; expiry computation and the
    background sweep live here so every backend behaves the same way.
    """

    def __init__(self, options: Optional[StoreOptions] = None) -> None:
        self.options = options or StoreOptions()
        self._closed = False
        self._stop_sweep = threading.Event()
        self._sweeper: Optional[threading.Thread] = None

    def _now(self) -> float:
        return time.time()

    def expires_for(self, data: Dict[str, Any]) -> float:
        """Return the epoch timestamp at which ``data`` should expire."""
        cookie = data.get("cookie") if isinstance(data, dict) else None
        if isinstance(cookie, dict):
            expires = _parse_expires(cookie.get("expires"))
            if expires is not None:
                return expires
        return self._now() + self.options.expiration

    @abc.abstractmethod
    def get(self, session_id: str) -> Optional[Dict[str, Any]]:
        """Return the live session document for ``session_id`` or None."""

    @abc.abstractmethod
    def set(self, session_id: str, data: Dict[str, Any]) -> None:
        """Insert or replace the session document."""

    @abc.abstractmethod
    def touch(self, session_id: str, data: Dict[str, Any]) -> None:
        """Refresh the expiry of an existing session without rewriting it."""

    @abc.abstractmethod
    def destroy(self, session_id: str) -> None:
        """Remove a session; unknown ids are ignored."""

    @abc.abstractmethod
    def all(self) -> Dict[str, Dict[str, Any]]:
        """Return every live session keyed by id."""

    @abc.abstractmethod
    def clear(self) -> None:
        """Remove every session."""

    @abc.abstractmethod
    def clear_expired_sessions(self) -> int:
        """Remove expired sessions and return how many were removed."""

    def length(self) -> int:
        return len(self.all())

    # -- expiry sweeper -------------------------------------------------

    def start_expiration_sweep(self) -> None:
        """Start the background sweep if enabled and not already running."""
        if not self.options.clear_expired or self._sweeper is not None:
            return
        interval = self.options.check_expiration_interval
        if not interval or interval <= 0:
            return
        self._sweeper = threading.Thread(
            target=self._sweep_loop,
            args=(interval,),
            name=f"{type(self).__name__}-sweeper",
            daemon=True,
        )
        self._sweeper.start()

    def _sweep_loop(self, interval: float) -> None:
        while not self._stop_sweep.wait(interval):
            self.sweep_once()

    def sweep_once(self) -> int:
        """Run one expiry sweep; failures are logged, never raised."""
        try:
            removed = self.clear_expired_sessions()
        except Exception as e:  # pylint: disable=broad-except
            logger.exception("Expired session sweep failed: %s", e)
            return 0
        if removed:
            metrics.SESSIONS_EXPIRED.inc(removed)
            logger.debug("Cleared %d expired sessions", removed)
        return removed

    def close(self) -> None:
        """Stop the sweeper and release backend resources. Idempotent."""
        if self._closed:
            return
        self._closed = True
        self._stop_sweep.set()
        if self._sweeper is not None and self._sweeper is not threading.current_thread():
            self._sweeper.join(timeout=5)
        self._sweeper = None
        self._close_backend()

    def _close_backend(self) -> None:
        """Hook for backends holding connections."""

    @property
    def closed(self) -> bool:
        return self._closed


class InMemorySessionStore(SessionStore):
    """Lightweight in-memory session store for development and tests.

    Sessions live in a process-local dict and disappear on restart; not
    intended for production or multi-process deployments.
    """

    def __init__(self, options: Optional[StoreOptions] = None) -> None:
        super().__init__(options)
        self.sessions: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()
        self.start_expiration_sweep()

    def _live(self, session_id: str) -> Optional[Dict[str, Any]]:
        entry = self.sessions.get(session_id)
        if entry is None:
            return None
        if entry["expires"] <= self._now():
            return None
        return entry

    def get(self, session_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            entry = self._live(session_id)
            if entry is None:
                return None
            # hand out a copy so callers cannot mutate stored state
            return copy.deepcopy(entry["data"])

    def set(self, session_id: str, data: Dict[str, Any]) -> None:
        # keep the JSON form so values behave as on the persistent backends
        document = json.loads(encode_document(session_id, data))
        expires = self.expires_for(data)
        with self._lock:
            self.sessions[session_id] = {"data": document, "expires": expires}

    def touch(self, session_id: str, data: Dict[str, Any]) -> None:
        expires = self.expires_for(data)
        with self._lock:
            entry = self.sessions.get(session_id)
            if entry is not None:
                entry["expires"] = expires

    def destroy(self, session_id: str) -> None:
        with self._lock:
            self.sessions.pop(session_id, None)

    def all(self) -> Dict[str, Dict[str, Any]]:
        now = self._now()
        with self._lock:
            return {
                sid: copy.deepcopy(entry["data"])
                for sid, entry in self.sessions.items()
                if entry["expires"] > now
            }

    def length(self) -> int:
        now = self._now()
        with self._lock:
            return sum(1 for entry in self.sessions.values() if entry["expires"] > now)

    def clear(self) -> None:
        with self._lock:
            self.sessions.clear()

    def clear_expired_sessions(self) -> int:
        now = self._now()
        with self._lock:
            expired = [sid for sid, entry in self.sessions.items() if entry["expires"] <= now]
            for sid in expired:
                del self.sessions[sid]
        return len(expired)
