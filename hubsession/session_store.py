"""Session store glue: Redis backend and backend selection.

The in-memory store lives in `session_store_base`; the SQLite store in
`sql_store`. `create_default_store` picks one from configuration.
"""

import json
import logging
from typing import Any, Dict, Optional

from .config import Settings
from .session_store_base import (
    InMemorySessionStore,
    SessionStore,
    SessionStoreError,
    StoreOptions,
    encode_document,
)

logger = logging.getLogger(__name__)


class RedisSessionStore(SessionStore):
    """Redis-backed session store using JSON blobs with native key TTLs.

    Redis expires keys on its own, so the background sweep only prunes the
    id index set.
    """

    def __init__(
        self,
        redis_url: Optional[str] = None,
        client: Any = None,
        options: Optional[StoreOptions] = None,
        prefix: str = "hub:session:",
        index_key: str = "hub:sessions",
    ):
        super().__init__(options)
        # only clients created here are closed with the store
        self._owns_client = client is None
        if client is None:
            if not redis_url:
                raise ValueError("RedisSessionStore needs a redis_url or a client")
            try:
                import redis
            except ImportError as e:
                logger.exception("Redis client library not installed: %s", e)
                raise

            try:
                client = redis.from_url(redis_url, decode_responses=True)
                # test connection
                client.ping()
            except redis.RedisError as e:
                logger.exception("Failed to connect to Redis at %s: %s", redis_url, e)
                raise SessionStoreError(f"cannot connect to Redis at {redis_url}") from e
        self.client = client
        self.prefix = prefix
        self.index_key = index_key
        self.start_expiration_sweep()

    def _key(self, session_id: str) -> str:
        return f"{self.prefix}{session_id}"

    def _ttl_ms(self, data: Dict[str, Any]) -> int:
        return int((self.expires_for(data) - self._now()) * 1000)

    def _decode(self, session_id: str, raw: str) -> Dict[str, Any]:
        try:
            return json.loads(raw)
        except (json.JSONDecodeError, ValueError) as e:
            raise SessionStoreError(f"Failed to parse data for session ({session_id})") from e

    def get(self, session_id: str) -> Optional[Dict[str, Any]]:
        raw = self.client.get(self._key(session_id))
        if not raw:
            return None
        return self._decode(session_id, raw)

    def set(self, session_id: str, data: Dict[str, Any]) -> None:
        payload = encode_document(session_id, data)
        ttl = self._ttl_ms(data)
        if ttl <= 0:
            self.destroy(session_id)
            return
        self.client.set(self._key(session_id), payload, px=ttl)
        self.client.sadd(self.index_key, session_id)

    def touch(self, session_id: str, data: Dict[str, Any]) -> None:
        ttl = self._ttl_ms(data)
        if ttl <= 0:
            self.destroy(session_id)
            return
        # pexpire is a no-op for missing keys
        self.client.pexpire(self._key(session_id), ttl)

    def destroy(self, session_id: str) -> None:
        self.client.delete(self._key(session_id))
        self.client.srem(self.index_key, session_id)

    def all(self) -> Dict[str, Dict[str, Any]]:
        """Return live sessions; ids whose keys have expired are pruned."""
        ids = self.client.smembers(self.index_key) or []
        out = {}
        for sid in ids:
            raw = self.client.get(self._key(sid))
            if not raw:
                self.client.srem(self.index_key, sid)
                continue
            try:
                out[sid] = json.loads(raw)
            except (json.JSONDecodeError, ValueError) as e:
                logger.exception("Failed parsing session %s: %s", sid, e)
        return out

    def length(self) -> int:
        return len(self.all())

    def clear(self) -> None:
        ids = self.client.smembers(self.index_key) or []
        keys = [self._key(sid) for sid in ids]
        if keys:
            self.client.delete(*keys)
        self.client.delete(self.index_key)

    def clear_expired_sessions(self) -> int:
        removed = 0
        for sid in self.client.smembers(self.index_key) or []:
            if not self.client.exists(self._key(sid)):
                self.client.srem(self.index_key, sid)
                removed += 1
        return removed

    def _close_backend(self) -> None:
        if self._owns_client:
            self.client.close()


# Factory to pick backend (Redis, SQLite or in-memory)
def create_default_store(settings: Optional[Settings] = None) -> SessionStore:
    settings = settings or Settings.from_env()
    options = StoreOptions(
        expiration=settings.expiration,
        check_expiration_interval=settings.check_expiration_interval,
        clear_expired=settings.clear_expired,
    )
    backend = (settings.store_backend or "").lower()
    if not backend:
        if settings.redis_url:
            backend = "redis"
        elif settings.sqlite_path:
            backend = "sqlite"
        else:
            backend = "memory"

    if backend == "redis":
        try:
            return RedisSessionStore(settings.redis_url, options=options)
        except (ImportError, RuntimeError, ValueError) as e:
            logger.warning("Falling back to in-memory session store: %s", e)
    elif backend == "sqlite":
        from .sql_store import SQLiteSessionStore

        return SQLiteSessionStore(settings.sqlite_path or ":memory:", options=options)
    elif backend != "memory":
        raise ValueError(f"Unknown SESSION_STORE backend {backend!r}")
    return InMemorySessionStore(options)
