"""
Database - SQLite connection management shared by the game stores.

Connections run in autocommit mode; writes go through transaction(), which
opens an IMMEDIATE transaction so read-modify-write sequences are serialized
against every other writer of the same file. Stores accept an optional
connection so several of them can join one transaction.
"""

import json
import logging
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator, Optional

from ..errors import PersistenceError

logger = logging.getLogger(__name__)

MEMORY_PATH = ":memory:"
BUSY_TIMEOUT_SECONDS = 10.0


class Database:
    """
    Owns the SQLite file (or in-memory database) behind all stores.

    A file database opens one connection per operation. An in-memory database
    lives only as long as its connection, so it keeps a single shared
    connection and guards it with a re-entrant lock.
    """

    def __init__(self, db_path: str | Path = MEMORY_PATH):
        self.in_memory = str(db_path) == MEMORY_PATH
        self.db_path = MEMORY_PATH if self.in_memory else Path(db_path)
        self._lock = threading.RLock()
        self._shared: Optional[sqlite3.Connection] = None
        if self.in_memory:
            self._shared = self._open()

    def _open(self) -> sqlite3.Connection:
        try:
            conn = sqlite3.connect(
                str(self.db_path),
                timeout=BUSY_TIMEOUT_SECONDS,
                isolation_level=None,
                check_same_thread=False,
            )
        except sqlite3.Error as e:
            raise PersistenceError(f"Cannot open database {self.db_path}: {e}") from e
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    @contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        """Yield a connection; storage failures surface as PersistenceError."""
        if self._shared is not None:
            with self._lock:
                try:
                    yield self._shared
                except sqlite3.Error as e:
                    raise PersistenceError(str(e)) from e
            return

        conn = self._open()
        try:
            yield conn
        except sqlite3.Error as e:
            raise PersistenceError(str(e)) from e
        finally:
            conn.close()

    @contextmanager
    def transaction(
        self,
        conn: Optional[sqlite3.Connection] = None
    ) -> Iterator[sqlite3.Connection]:
        """
        Run the block inside one write transaction.

        When conn is given the block joins the caller's transaction and
        commit or rollback is left to the caller.
        """
        if conn is not None:
            yield conn
            return

        with self.connect() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                conn.rollback()
                raise
            try:
                conn.commit()
            except sqlite3.Error:
                conn.rollback()
                raise

    def ensure_schema(self) -> None:
        """Initialize database schema from schema.sql."""
        schema_path = Path(__file__).with_name("schema.sql")
        sql = schema_path.read_text(encoding="utf-8")
        with self.connect() as conn:
            conn.executescript(sql)

    def close(self) -> None:
        if self._shared is not None:
            with self._lock:
                self._shared.close()
                self._shared = None


# =============================================================================
# Helper Functions
# =============================================================================

def utc_now() -> str:
    """Current UTC time as an ISO-8601 string."""
    return datetime.now(timezone.utc).isoformat()


def json_dumps(value: Any) -> str:
    """Serialize value to JSON string."""
    return json.dumps(value, ensure_ascii=True, separators=(",", ":"), sort_keys=True)


def json_loads(value: str) -> Any:
    """Deserialize JSON string to value."""
    return json.loads(value) if value else None
