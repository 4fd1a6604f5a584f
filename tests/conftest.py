"""
Pytest configuration for miniorm.

Provides:
- In-memory fakes of the psycopg pool/connection/cursor surface the core uses
- A Database wired to the fake pool for unit tests
- Settings and a real Database for integration tests against PostgreSQL
"""

from __future__ import annotations

import itertools
import os
from collections import deque
from typing import Any, Generator, List, Optional

import pytest

from miniorm.config import Settings
from miniorm.database import Database


class FakeDriverError(Exception):
    """Stands in for a psycopg error raised by the server."""


class _FakeCursor:
    def __init__(self, conn: "_FakeConnection", name: Optional[str] = None, **kwargs: Any) -> None:
        self.conn = conn
        self.name = name
        self.options = kwargs
        self.itersize = 100
        self.rowcount = -1
        self.closed = False
        self._rows: List[tuple] = []
        self._sets: List[List[tuple]] = []

    def __enter__(self) -> "_FakeCursor":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def execute(self, query: str, params: Any = None) -> "_FakeCursor":
        pool = self.conn.pool
        pool.check_failure(query)
        pool.statements.append((query, params))
        if query.lstrip().upper().startswith("SELECT"):
            self._rows = list(pool.select_results.popleft()) if pool.select_results else []
            self.rowcount = len(self._rows)
        else:
            self._rows = []
            self.rowcount = pool.rowcount
        return self

    def executemany(self, query: str, params_seq: Any, returning: bool = False) -> None:
        pool = self.conn.pool
        pool.check_failure(query)
        rows = [list(params) for params in params_seq]
        pool.batches.append((query, rows))
        self._sets = []
        if returning:
            count = len(rows) - pool.missing_keys
            self._sets = [[(next(pool.keys),)] for _ in range(count)]
        self._rows = self._sets.pop(0) if self._sets else []

    def fetchone(self) -> Optional[tuple]:
        return self._rows.pop(0) if self._rows else None

    def fetchall(self) -> List[tuple]:
        rows, self._rows = self._rows, []
        return rows

    def nextset(self) -> Optional[bool]:
        if self._sets:
            self._rows = self._sets.pop(0)
            return True
        return None

    def __iter__(self):
        while self._rows:
            yield self._rows.pop(0)

    def close(self) -> None:
        self.closed = True


class _FakeConnection:
    def __init__(self, pool: "FakePool") -> None:
        self.pool = pool
        self.autocommit = True
        self.closed = False
        self.cursors: List[_FakeCursor] = []

    def cursor(self, name: Optional[str] = None, **kwargs: Any) -> _FakeCursor:
        cur = _FakeCursor(self, name=name, **kwargs)
        self.cursors.append(cur)
        return cur

    def execute(self, query: str, params: Any = None) -> None:
        self.pool.check_failure(query)
        self.pool.statements.append((query, params))

    def commit(self) -> None:
        self.pool.events.append("commit")

    def rollback(self) -> None:
        self.pool.events.append("rollback")
        if self.pool.fail_rollback:
            raise FakeDriverError("connection lost during rollback")


class FakePool:
    """
    Records everything the core does with connections.

    `select_results` feeds SELECT statements in order; `missing_keys` drops
    generated keys from every RETURNING batch; `fail_on` raises on any
    statement containing that text.
    """

    def __init__(self) -> None:
        self.statements: List[tuple] = []
        self.batches: List[tuple] = []
        self.events: List[str] = []
        self.select_results: deque = deque()
        self.keys = itertools.count(1)
        self.missing_keys = 0
        self.rowcount = 1
        self.fail_on: Optional[str] = None
        self.fail_rollback = False
        self.fail_getconn = False
        self.checked_out = 0
        self.connections: List[_FakeConnection] = []

    def check_failure(self, query: str) -> None:
        if self.fail_on is not None and self.fail_on in query:
            raise FakeDriverError(f"statement failed: {query}")

    def getconn(self, timeout: Optional[float] = None) -> _FakeConnection:
        if self.fail_getconn:
            raise FakeDriverError("pool exhausted")
        self.events.append("getconn")
        self.checked_out += 1
        conn = _FakeConnection(self)
        self.connections.append(conn)
        return conn

    def putconn(self, conn: _FakeConnection) -> None:
        self.events.append("putconn")
        self.checked_out -= 1


@pytest.fixture
def fake_pool() -> FakePool:
    return FakePool()


@pytest.fixture
def unit_settings() -> Settings:
    return Settings(_env_file=None, insert_batch_size=100, stream_fetch_size=10)


@pytest.fixture
def db(fake_pool: FakePool, unit_settings: Settings) -> Database:
    """Database running on the fake pool."""
    return Database(unit_settings, pool=fake_pool)


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """
    Settings for integration tests.

    Can be overridden via environment variables in CI or local testing.
    """
    return Settings(
        _env_file=None,
        db_host=os.getenv("DB_HOST", "localhost"),
        db_port=int(os.getenv("DB_PORT", "5432")),
        db_user=os.getenv("DB_USER", "postgres"),
        db_password=os.getenv("DB_PASSWORD", "postgres"),
        db_name=os.getenv("DB_NAME", "miniorm"),
        pool_min_size=1,
        pool_max_size=4,
        log_level="DEBUG",
    )


@pytest.fixture
def pg_database(test_settings: Settings) -> Generator[Database, None, None]:
    """
    A started Database on a real PostgreSQL with a clean schema.

    Skips tests if the database is not available.
    """
    import psycopg

    try:
        with psycopg.connect(test_settings.database_url, connect_timeout=5) as conn:
            conn.execute("SELECT 1")
    except psycopg.OperationalError:
        pytest.skip("Database not available for integration tests")

    database = Database(test_settings).start()
    database.execute("DROP TABLE IF EXISTS migration, person, tag")
    try:
        yield database
    finally:
        database.execute("DROP TABLE IF EXISTS migration, person, tag")
        database.stop()
