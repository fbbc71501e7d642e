"""SQLite-backed session store.

Sessions are kept in a single table with one row per session id, an
``expires`` column holding epoch seconds and the JSON document in ``data``.
Table and column names are configurable so the store can share a database
with an existing schema.
"""

import json
import logging
import re
import sqlite3
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from .session_store_base import SessionStore, SessionStoreError, StoreOptions, encode_document

logger = logging.getLogger(__name__)

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


@dataclass
class TableSchema:
    table_name: str = "sessions"
    session_id: str = "session_id"
    expires: str = "expires"
    data: str = "data"

    def validate(self) -> None:
        for name in (self.table_name, self.session_id, self.expires, self.data):
            if not _IDENTIFIER.match(name):
                raise ValueError(f"invalid SQL identifier {name!r}")


class SQLiteSessionStore(SessionStore):
    """Session store persisting to a SQLite database file (or ``:memory:``)."""

    def __init__(
        self,
        path: str = ":memory:",
        options: Optional[StoreOptions] = None,
        schema: Optional[TableSchema] = None,
        create_table: bool = True,
    ):
        super().__init__(options)
        self.schema = schema or TableSchema()
        self.schema.validate()
        self.path = path
        if path != ":memory:":
            Path(path).parent.mkdir(parents=True, exist_ok=True)

        self._lock = threading.RLock()
        try:
            self._conn = sqlite3.connect(path, check_same_thread=False, isolation_level=None)
        except sqlite3.Error as e:
            logger.error("Failed to open session database %s: %s", path, e)
            raise SessionStoreError(f"cannot open session database {path}") from e

        if create_table:
            self._create_table()
        self.start_expiration_sweep()

    def _create_table(self) -> None:
        s = self.schema
        with self._lock:
            self._conn.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {s.table_name} (
                    {s.session_id} TEXT PRIMARY KEY NOT NULL,
                    {s.expires} REAL NOT NULL,
                    {s.data} TEXT
                )
                """
            )
            self._conn.execute(
                f"CREATE INDEX IF NOT EXISTS idx_{s.table_name}_{s.expires} "
                f"ON {s.table_name} ({s.expires})"
            )
        logger.info("Session table %s ready in %s", s.table_name, self.path)

    def _execute(self, sql: str, params: tuple = (), fetch: Optional[str] = None) -> Any:
        """Run one statement; returns rows for ``fetch`` ("one"/"all"), else the rowcount."""
        if self.closed:
            raise SessionStoreError("session store is closed")
        try:
            with self._lock:
                cursor = self._conn.execute(sql, params)
                if fetch == "one":
                    return cursor.fetchone()
                if fetch == "all":
                    return cursor.fetchall()
                return cursor.rowcount
        except sqlite3.Error as e:
            logger.exception("Session query failed: %s", e)
            raise SessionStoreError(str(e)) from e

    def get(self, session_id: str) -> Optional[Dict[str, Any]]:
        s = self.schema
        row = self._execute(
            f"SELECT {s.data} FROM {s.table_name} WHERE {s.session_id} = ? AND {s.expires} > ?",
            (session_id, self._now()),
            fetch="one",
        )
        if row is None:
            return None
        try:
            return json.loads(row[0])
        except (TypeError, ValueError) as e:
            raise SessionStoreError(f"Failed to parse data for session ({session_id})") from e

    def set(self, session_id: str, data: Dict[str, Any]) -> None:
        s = self.schema
        self._execute(
            f"INSERT OR REPLACE INTO {s.table_name} ({s.session_id}, {s.expires}, {s.data}) "
            "VALUES (?, ?, ?)",
            (session_id, self.expires_for(data), encode_document(session_id, data)),
        )

    def touch(self, session_id: str, data: Dict[str, Any]) -> None:
        s = self.schema
        self._execute(
            f"UPDATE {s.table_name} SET {s.expires} = ? WHERE {s.session_id} = ?",
            (self.expires_for(data), session_id),
        )

    def destroy(self, session_id: str) -> None:
        s = self.schema
        self._execute(f"DELETE FROM {s.table_name} WHERE {s.session_id} = ?", (session_id,))

    def all(self) -> Dict[str, Dict[str, Any]]:
        s = self.schema
        rows = self._execute(
            f"SELECT {s.session_id}, {s.data} FROM {s.table_name} WHERE {s.expires} > ?",
            (self._now(),),
            fetch="all",
        )
        out = {}
        for sid, raw in rows:
            try:
                out[sid] = json.loads(raw)
            except (TypeError, ValueError) as e:
                logger.exception("Failed parsing session %s: %s", sid, e)
        return out

    def length(self) -> int:
        s = self.schema
        row = self._execute(
            f"SELECT COUNT(*) FROM {s.table_name} WHERE {s.expires} > ?", (self._now(),), fetch="one"
        )
        return int(row[0])

    def clear(self) -> None:
        self._execute(f"DELETE FROM {self.schema.table_name}")

    def clear_expired_sessions(self) -> int:
        s = self.schema
        return self._execute(f"DELETE FROM {s.table_name} WHERE {s.expires} <= ?", (self._now(),))

    def _close_backend(self) -> None:
        with self._lock:
            self._conn.close()
