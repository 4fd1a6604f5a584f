"""
Read pipeline: SELECT statements materialized eagerly or streamed.

`read_all` and `read_one` fetch the full result inside one transaction and
release the connection before mapping rows. `stream_all` declares a named
(server-side), non-scrollable cursor inside a read-only transaction and hands
the still-open connection to a RecordStream, which maps one row per advance
and returns the connection to the pool when closed.
"""

from __future__ import annotations

import uuid
from typing import Any, Callable, Generic, Iterator, List, Optional, Tuple, Type, TypeVar

from psycopg import Connection, Cursor

from miniorm.domain.mapping import RecordMapping, TypeRegistry
from miniorm.errors import CardinalityError, ExecutionError
from miniorm.executor import TransactionalExecutor
from miniorm.infrastructure.database_type import DatabaseType
from miniorm.pipelines.base import Pipeline
from miniorm.utils.logging import get_logger

log = get_logger(__name__)

T = TypeVar("T")


class RecordStream(Generic[T]):
    """
    Lazy, finite, non-restartable sequence of records over an open cursor.

    The stream owns one pooled connection until it is closed. Closing is
    idempotent and happens automatically when the stream is exhausted, when
    fetching or mapping a row fails, and on leaving a ``with`` block. Callers
    that stop iterating early must close it themselves, preferably with
    ``with db.stream_all(...) as stream:``.
    """

    def __init__(
        self,
        cursor: Cursor,
        conn: Connection,
        mapping: RecordMapping,
        release: Callable[[Connection], None],
    ) -> None:
        self._cursor = cursor
        self._conn = conn
        self._mapping = mapping
        self._release = release
        self._rows = iter(cursor)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def __iter__(self) -> "RecordStream[T]":
        return self

    def __next__(self) -> T:
        if self._closed:
            raise StopIteration
        try:
            row = next(self._rows)
        except StopIteration:
            self.close()
            raise
        except Exception as exc:
            self.close()
            raise ExecutionError(f"Failed to fetch next row from {self._mapping.table}") from exc
        try:
            return self._mapping.construct(row)
        except BaseException:
            self.close()
            raise

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._cursor.close()
        except Exception:
            log.exception("Failed to close database cursor!")
        finally:
            self._release(self._conn)

    def __enter__(self) -> "RecordStream[T]":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class ReadPipeline(Pipeline):
    """Build and run SELECT statements for registered record types."""

    def __init__(
        self,
        executor: TransactionalExecutor,
        registry: TypeRegistry,
        database_type: DatabaseType = DatabaseType.POSTGRESQL,
        fetch_size: int = 100,
    ) -> None:
        super().__init__(executor, registry, database_type)
        self.fetch_size = fetch_size

    def select_sql(self, mapping: RecordMapping, clause: Optional[str] = None) -> str:
        sql = f"SELECT {self.columns(mapping.fields)} FROM {self.escape(mapping.table)}"
        return self.with_clause(sql, clause)

    def read_all(self, record_type: Type[T], clause: Optional[str] = None, *args: Any) -> List[T]:
        """Read every matching record into a list."""
        mapping = self.registry.mapping(record_type)
        sql = self.select_sql(mapping, clause)
        params = self.params_or_none(self.bind_args(args))

        def _select(conn: Connection) -> List[Tuple[Any, ...]]:
            with conn.cursor() as cur:
                cur.execute(sql, params)
                return cur.fetchall()

        rows = self.executor.run(_select)
        log.debug("Read records", extra={"table": mapping.table, "rows": len(rows)})
        return [mapping.construct(row) for row in rows]

    def read_one(
        self, record_type: Type[T], clause: Optional[str] = None, *args: Any
    ) -> Optional[T]:
        """
        Read at most one record.

        Raises
        ------
        CardinalityError
            If more than one row matches.
        """
        records = self.read_all(record_type, clause, *args)
        if len(records) > 1:
            raise CardinalityError(len(records))
        return records[0] if records else None

    def stream_all(
        self, record_type: Type[T], clause: Optional[str] = None, *args: Any
    ) -> RecordStream[T]:
        """Open a forward-only stream over every matching record."""
        mapping = self.registry.mapping(record_type)
        sql = self.select_sql(mapping, clause)
        params = self.params_or_none(self.bind_args(args))
        cursor_name = f"miniorm_stream_{uuid.uuid4().hex[:12]}"

        def _declare(conn: Connection) -> Tuple[Connection, Cursor]:
            conn.execute("SET TRANSACTION READ ONLY")
            cur = conn.cursor(name=cursor_name, scrollable=False, withhold=False)
            cur.itersize = self.fetch_size
            cur.execute(sql, params)
            return conn, cur

        conn, cur = self.executor.run(_declare, keep_open=True)
        log.debug("Opened record stream", extra={"table": mapping.table, "cursor": cursor_name})
        return RecordStream(cur, conn, mapping, self.executor.release)


__all__ = ["ReadPipeline", "RecordStream"]
