# db.py
import threading
from contextlib import contextmanager
from typing import Iterator, Optional

import psycopg2
import psycopg2.errors
from fastapi import Request
from psycopg2.extras import RealDictCursor
from psycopg2.pool import ThreadedConnectionPool

from .config import Settings
from .errors import DataSourceError, PoolExhaustedError, QueryTimeoutError


def _translate_error(exc: psycopg2.Error) -> Exception:
    if isinstance(exc, psycopg2.errors.QueryCanceled):
        return QueryTimeoutError(str(exc).strip())
    return DataSourceError(str(exc).strip() or exc.__class__.__name__)


class Database:
    """
    Read-only handle over a bounded psycopg2 connection pool.

    At most `max_connections` cursors are checked out at once. Callers beyond
    that wait up to `acquire_timeout` seconds, and no more than `max_waiting`
    of them may wait; anything past either bound gets PoolExhaustedError.
    Every connection carries a server-side statement_timeout.
    """

    def __init__(
        self,
        dsn: str,
        min_connections: int = 0,
        max_connections: int = 10,
        max_waiting: int = 50,
        acquire_timeout: float = 5.0,
        statement_timeout_ms: int = 10000,
    ):
        self._pool = ThreadedConnectionPool(
            min_connections,
            max_connections,
            dsn,
            options=f"-c statement_timeout={int(statement_timeout_ms)} -c default_transaction_read_only=on",
        )
        self._slots = threading.BoundedSemaphore(max_connections)
        self._max_waiting = max_waiting
        self._acquire_timeout = acquire_timeout
        self._waiting = 0
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: Settings) -> "Database":
        if not settings.database_url:
            raise DataSourceError("DATABASE_URL is not configured")
        return cls(
            settings.database_url,
            min_connections=settings.db_min_connections,
            max_connections=settings.db_max_connections,
            max_waiting=settings.db_max_waiting,
            acquire_timeout=settings.db_acquire_timeout,
            statement_timeout_ms=settings.db_statement_timeout_ms,
        )

    def _acquire_slot(self) -> None:
        if self._slots.acquire(blocking=False):
            return
        with self._lock:
            if self._waiting >= self._max_waiting:
                raise PoolExhaustedError("too many requests waiting for a database connection")
            self._waiting += 1
        try:
            acquired = self._slots.acquire(timeout=self._acquire_timeout)
        finally:
            with self._lock:
                self._waiting -= 1
        if not acquired:
            raise PoolExhaustedError(
                f"no database connection available after {self._acquire_timeout:.1f}s"
            )

    @contextmanager
    def cursor(self) -> Iterator[RealDictCursor]:
        self._acquire_slot()
        conn = None
        try:
            try:
                conn = self._pool.getconn()
                conn.autocommit = True
                cur = conn.cursor(cursor_factory=RealDictCursor)
            except psycopg2.Error as exc:
                raise _translate_error(exc) from exc
            try:
                yield cur
            except psycopg2.Error as exc:
                raise _translate_error(exc) from exc
            finally:
                cur.close()
        finally:
            if conn is not None:
                self._pool.putconn(conn, close=bool(conn.closed))
            self._slots.release()

    def ping(self) -> None:
        with self.cursor() as cur:
            cur.execute("SELECT 1;")
            cur.fetchone()

    def close(self) -> None:
        self._pool.closeall()


def get_database(request: Request) -> Database:
    db: Optional[Database] = getattr(request.app.state, "db", None)
    if db is None:
        raise DataSourceError("database handle is not initialized")
    return db
