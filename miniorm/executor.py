"""
Transactional executor: the single owner of connection and transaction lifetime.

A unit of work is any callable taking an open psycopg connection. The executor
acquires a pooled connection, turns autocommit off, runs the unit of work and
commits. On failure it rolls back, returns the connection to the pool and
raises ExecutionError chained to the original error. Rollback and release
failures are logged and never replace the original error.

With ``keep_open=True`` the transaction is left open and the connection is
handed to the caller together with the result; the caller must give it back
through `release`. Streaming reads use this to keep a server-side cursor
alive past the unit of work.
"""

from __future__ import annotations

import time
from typing import Callable, Protocol, TypeVar

from psycopg import Connection

from miniorm.errors import ExecutionError
from miniorm.utils.logging import get_logger

log = get_logger(__name__)

T = TypeVar("T")

UnitOfWork = Callable[[Connection], T]


class ConnectionSource(Protocol):
    """The subset of psycopg_pool.ConnectionPool the executor relies on."""

    def getconn(self, timeout: float | None = None) -> Connection: ...

    def putconn(self, conn: Connection) -> None: ...


class TransactionalExecutor:
    """
    Run units of work inside one managed transaction each.

    No retries: a failed unit of work is rolled back and reported at once,
    leaving any retry policy to the caller.
    """

    def __init__(self, pool: ConnectionSource) -> None:
        self._pool = pool

    def run(self, work: UnitOfWork[T], keep_open: bool = False) -> T:
        """
        Execute a unit of work in a transaction.

        Parameters
        ----------
        work : callable
            Receives the open connection; its return value is returned.
        keep_open : bool
            Leave the transaction open and the connection checked out on
            success. The caller owns the connection and must call `release`.

        Raises
        ------
        ExecutionError
            If acquiring the connection or the unit of work fails.
        """
        conn = None
        start = time.perf_counter()
        try:
            conn = self._pool.getconn()
            conn.autocommit = False
            result = work(conn)
            if not keep_open:
                conn.commit()
        except Exception as exc:
            if conn is not None:
                self._abort(conn)
            raise ExecutionError(f"Unit of work failed: {exc}") from exc
        except BaseException:
            if conn is not None:
                self._abort(conn)
            raise
        if not keep_open:
            self._put(conn)
        log.debug(
            "Unit of work completed",
            extra={
                "keep_open": keep_open,
                "duration_ms": round((time.perf_counter() - start) * 1000, 2),
            },
        )
        return result

    def execute(self, sql: str) -> None:
        """Run one raw statement in its own transaction."""

        def _statement(conn: Connection) -> None:
            with conn.cursor() as cur:
                cur.execute(sql)

        self.run(_statement)

    def release(self, conn: Connection) -> None:
        """
        End the transaction of a connection handed out with ``keep_open`` and
        return it to the pool.
        """
        try:
            if not conn.closed:
                conn.commit()
        except Exception:
            log.exception("Failed to commit database connection on release!")
            self._rollback(conn)
        finally:
            self._put(conn)

    def _abort(self, conn: Connection) -> None:
        self._rollback(conn)
        self._put(conn)

    def _rollback(self, conn: Connection) -> None:
        try:
            conn.rollback()
        except Exception:
            log.exception("Failed to rollback database connection!")

    def _put(self, conn: Connection) -> None:
        try:
            self._pool.putconn(conn)
        except Exception:
            log.exception("Failed to close database connection!")


__all__ = ["ConnectionSource", "TransactionalExecutor", "UnitOfWork"]
