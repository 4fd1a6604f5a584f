"""
Connection pool factory for miniorm.

Builds and owns the psycopg ConnectionPool a Database runs on. The pool keeps
`pool_min_size` warm connections, grows up to `pool_max_size`, evicts idle
connections after `pool_max_idle` seconds and makes `getconn` wait at most
`pool_timeout` seconds when exhausted.

Opening the pool waits for the warm connections and retries transient
connection failures with tenacity. Retries stop at startup: once the pool is
open, every failure surfaces to the caller immediately.
"""

from __future__ import annotations

import atexit
import threading
from typing import Optional

import psycopg
from psycopg_pool import ConnectionPool, PoolClosed, PoolTimeout
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from miniorm.config import Settings, get_settings
from miniorm.errors import ConfigurationError
from miniorm.infrastructure.database_type import DatabaseType
from miniorm.utils.logging import get_logger

log = get_logger(__name__)


class PoolManager:
    """
    Owns the lifecycle of one synchronous connection pool.

    The pool is created lazily on first use and closed by `close()`, which is
    also registered as an atexit hook. A closed manager stays closed: later
    use raises PoolClosed instead of building a fresh pool.
    """

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self._settings = settings or get_settings()
        self._pool: Optional[ConnectionPool] = None
        self._closed = False
        self._lock = threading.Lock()
        self.database_type = DatabaseType.from_url(self._settings.database_url)
        if self.database_type is not DatabaseType.POSTGRESQL:
            raise ConfigurationError(
                f"Unsupported database type {self._settings.db_type!r}: "
                "the psycopg driver only speaks PostgreSQL"
            )
        atexit.register(self.close)

    @property
    def is_open(self) -> bool:
        return self._pool is not None

    @property
    def closed(self) -> bool:
        return self._closed

    def get_pool(self) -> ConnectionPool:
        """
        Get or create the connection pool.

        Returns
        -------
        ConnectionPool
            The managed pool instance, opened and warmed up.

        Raises
        ------
        PoolClosed
            If `close()` was already called.
        """
        with self._lock:
            if self._closed:
                raise PoolClosed("the connection pool of this Database has been closed")
            if self._pool is None:
                settings = self._settings
                log.info(
                    f"Initiating database connection {settings.redacted_url}",
                    extra={
                        "min_size": settings.pool_min_size,
                        "max_size": settings.pool_max_size,
                    },
                )
                self._pool = _open_pool(settings)
            return self._pool

    def getconn(self, timeout: Optional[float] = None) -> psycopg.Connection:
        """Check out a connection, blocking at most `timeout` (default: pool_timeout)."""
        return self.get_pool().getconn(timeout=timeout)

    def putconn(self, conn: psycopg.Connection) -> None:
        """Return a connection obtained with `getconn`."""
        self.get_pool().putconn(conn)

    def close(self) -> None:
        """
        Close the managed pool and release its connections. Idempotent.
        """
        with self._lock:
            self._closed = True
            pool, self._pool = self._pool, None
            if pool is not None:
                try:
                    pool.close()
                except Exception:
                    log.exception("Failed to close connection pool")
        atexit.unregister(self.close)


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception_type((PoolTimeout, psycopg.OperationalError)),
    reraise=True,
)
def _open_pool(settings: Settings) -> ConnectionPool:
    """
    Build a pool and wait until its warm connections are established.

    Every attempt gets a new ConnectionPool: a pool whose warm-up timed out
    is closed by psycopg_pool and cannot be opened again.

    Raises
    ------
    PoolTimeout
        If the warm connections could not be established after all attempts.
    """
    pool = ConnectionPool(
        conninfo=settings.database_url,
        min_size=settings.pool_min_size,
        max_size=settings.pool_max_size,
        max_idle=settings.pool_max_idle,
        timeout=settings.pool_timeout,
        open=False,
    )
    try:
        pool.open(wait=True, timeout=settings.pool_timeout)
    except BaseException:
        pool.close()
        raise
    return pool


__all__ = ["PoolManager"]
