"""Provides the :class:`Db` class, a lazily-opened in-memory SQLite database used to query notes."""

import logging
import sqlite3
import threading
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

logger = logging.getLogger(__name__)


def _allow_all(*args) -> int:
    return sqlite3.SQLITE_OK


_SQL_CREATE_SCHEMA = """
CREATE TABLE IF NOT EXISTS notes (
    id INTEGER PRIMARY KEY,
    filepath TEXT NOT NULL,
    relative TEXT NOT NULL,
    title TEXT,
    content TEXT NOT NULL,
    metadata TEXT NOT NULL
);

CREATE UNIQUE INDEX IF NOT EXISTS notes_index_filepath ON notes (filepath);
"""


class Db:
    """Owns the single SQLite connection shared by every :class:`opennotes.notes.NoteService` in the process.

    The connection is created on first use and reused afterward. Opening it is guarded by a lock, so threads racing
    on first use still end up with exactly one connection. Statements run through :meth:`query` and
    :meth:`execute` are serialized on the same lock.

    Remember to call :meth:`close` when done, or use the instance as a context manager.
    """
    def __init__(self, path: str = ':memory:'):
        self.path = path
        self._connection: Optional[sqlite3.Connection] = None
        self._lock = threading.RLock()

    def connection(self) -> sqlite3.Connection:
        conn = self._connection
        if conn is not None:
            return conn
        with self._lock:
            if self._connection is None:
                logger.debug('initializing database at %s', self.path)
                conn = sqlite3.connect(self.path, check_same_thread=False)
                conn.executescript(_SQL_CREATE_SCHEMA)
                self._connection = conn
                logger.debug('database initialized')
            return self._connection

    @property
    def lock(self) -> threading.RLock:
        """Hold this while running several statements that must not interleave with other callers."""
        return self._lock

    def execute(self, sql: str, params: Sequence[Any] = ()) -> None:
        with self._lock:
            conn = self.connection()
            conn.execute(sql, params)
            conn.commit()

    def executemany(self, sql: str, rows: Iterable[Sequence[Any]]) -> None:
        with self._lock:
            conn = self.connection()
            conn.executemany(sql, rows)
            conn.commit()

    def query(self, sql: str, params: Sequence[Any] = (),
              authorizer: Optional[Callable[..., int]] = None) -> List[Dict[str, Any]]:
        """Runs a statement and returns its rows as dicts keyed by column name.

        If ``authorizer`` is given it is installed (see :meth:`sqlite3.Connection.set_authorizer`) for the
        duration of this statement only.
        """
        with self._lock:
            conn = self.connection()
            if authorizer:
                conn.set_authorizer(authorizer)
            try:
                cursor = conn.execute(sql, params)
                columns = [d[0] for d in cursor.description or ()]
                return [dict(zip(columns, row)) for row in cursor.fetchall()]
            finally:
                if authorizer:
                    conn.set_authorizer(_allow_all)

    def close(self) -> None:
        with self._lock:
            if self._connection is not None:
                logger.debug('closing database')
                self._connection.close()
                self._connection = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
