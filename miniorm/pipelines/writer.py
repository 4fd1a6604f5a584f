"""
Write pipeline: INSERT, UPDATE and DELETE statements for record types.

Inserts are flushed in batches of at most `batch_size` rows per
`executemany`. When ids are generated the statement carries
``RETURNING id`` and the keys of each batch are read right after that batch
executes, before the next one is sent. Keys come back in submission order
and are written into the objects' id fields once the transaction commits.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Iterable, List, Optional, Sequence

from psycopg import Connection, Cursor

from miniorm.domain.mapping import ID_FIELD, RecordMapping, TypeRegistry
from miniorm.domain.types import FieldType, bind_value
from miniorm.errors import AmbiguousMatchError, DataIntegrityError, ExecutionError, MappingError
from miniorm.executor import TransactionalExecutor
from miniorm.infrastructure.database_type import DatabaseType
from miniorm.pipelines.base import Pipeline
from miniorm.pipelines.reader import ReadPipeline
from miniorm.utils.logging import get_logger

log = get_logger(__name__)

DEFAULT_BATCH_SIZE = 100


class WriteAction(str, Enum):
    INSERTED = "inserted"
    UPDATED = "updated"


def _read_generated_keys(cur: Cursor) -> List[int]:
    """Collect the RETURNING rows of every statement of the last executemany."""
    keys: List[int] = []
    while True:
        row = cur.fetchone()
        if row is not None:
            keys.append(int(row[0]))
        if not cur.nextset():
            break
    return keys


class WritePipeline(Pipeline):
    """Build and run data-changing statements for registered record types."""

    def __init__(
        self,
        executor: TransactionalExecutor,
        registry: TypeRegistry,
        reader: ReadPipeline,
        database_type: DatabaseType = DatabaseType.POSTGRESQL,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> None:
        super().__init__(executor, registry, database_type)
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.reader = reader
        self.batch_size = batch_size

    def insert_sql(self, mapping: RecordMapping, generate_id: bool) -> str:
        fields = mapping.fields_of(include_id=not generate_id)
        placeholders = ", ".join("%s" for _ in fields)
        sql = (
            f"INSERT INTO {self.escape(mapping.table)} ({self.columns(fields)}) "
            f"VALUES ({placeholders})"
        )
        if generate_id and mapping.has_id:
            sql += f" RETURNING {self.escape(ID_FIELD)}"
        return sql

    def insert(self, objects: Iterable[Any], generate_id: bool = True) -> Optional[List[int]]:
        """
        Insert records of a single type in batches.

        Parameters
        ----------
        objects : iterable
            Records to insert; all must be of the same type.
        generate_id : bool
            Leave the id column to the database and write the generated keys
            back into the objects.

        Returns
        -------
        list[int] | None
            The generated ids in submission order, or None when no ids were
            generated.

        Raises
        ------
        MappingError
            If the objects are of different types or hold unmappable values.
        DataIntegrityError
            If a batch returns a different number of generated keys than rows
            it inserted. The whole insert is rolled back first.
        ExecutionError
            If the insert fails in the database.
        """
        objects = list(objects)
        if not objects:
            return [] if generate_id else None
        record_type = type(objects[0])
        for obj in objects:
            if type(obj) is not record_type:
                raise MappingError(
                    f"Found two types of objects {record_type.__name__} and {type(obj).__name__}"
                )
        mapping = self.registry.mapping(record_type)
        returning = generate_id and mapping.has_id
        fields = mapping.fields_of(include_id=not returning)
        if not fields:
            raise MappingError(f"Type {record_type.__name__} has no columns to insert")
        sql = self.insert_sql(mapping, returning)
        rows = [mapping.bind(obj, fields) for obj in objects]
        batch_size = self.batch_size

        def _insert(conn: Connection) -> List[int]:
            ids: List[int] = []
            with conn.cursor() as cur:
                for start in range(0, len(rows), batch_size):
                    end = min(start + batch_size, len(rows))
                    if returning:
                        cur.executemany(sql, rows[start:end], returning=True)
                        keys = _read_generated_keys(cur)
                        if len(keys) != end - start:
                            raise DataIntegrityError(expected=end - start, received=len(keys))
                        ids.extend(keys)
                    else:
                        cur.executemany(sql, rows[start:end])
                    log.debug(
                        "Flushed insert batch",
                        extra={"table": mapping.table, "start": start, "end": end},
                    )
            return ids

        try:
            ids = self.executor.run(_insert)
        except ExecutionError as exc:
            if isinstance(exc.__cause__, DataIntegrityError):
                raise exc.__cause__ from None
            raise
        log.debug("Inserted records", extra={"table": mapping.table, "rows": len(rows)})
        if not returning:
            return None
        for obj, key in zip(objects, ids):
            mapping.set_id(obj, key)
        return ids

    def insert_one(self, obj: Any, generate_id: bool = True) -> Optional[int]:
        """Insert a single record; returns its generated id when one was generated."""
        ids = self.insert([obj], generate_id=generate_id)
        return ids[0] if ids else None

    def update(self, obj: Any, clause: Optional[str] = None, *args: Any) -> int:
        """
        Update the columns of the rows backing one object.

        Without a clause (or with a blank one) the row is addressed by the
        object's id:
        ``UPDATE t SET a = %s, b = %s WHERE id = %s``. With a clause the
        clause replaces the id condition and its arguments are bound after the
        column values.

        Returns
        -------
        int
            Number of rows the database reports as updated.
        """
        mapping = self.registry.mapping(type(obj))
        fields = mapping.fields_of(include_id=False)
        if not fields:
            raise MappingError(f"Type {mapping.record_type.__name__} has no columns to update")
        assignments = ", ".join(f"{self.escape(f.name)} = %s" for f in fields)
        sql = f"UPDATE {self.escape(mapping.table)} SET {assignments}"
        params = mapping.bind(obj, fields)
        if clause is None or not clause.strip():
            object_id = mapping.get_id(obj)
            if object_id is None:
                raise MappingError(f"Cannot update {mapping.record_type.__name__} without an id")
            sql += f" WHERE {self.escape(ID_FIELD)} = %s"
            params.append(bind_value(FieldType.INT64, object_id))
        else:
            sql = self.with_clause(sql, clause)
            params.extend(self.bind_args(args))
        return self._execute(sql, params)

    def delete(self, record_type: type, clause: Optional[str] = None, *args: Any) -> int:
        """Delete the rows matching the clause, or every row without one."""
        mapping = self.registry.mapping(record_type)
        sql = self.with_clause(f"DELETE FROM {self.escape(mapping.table)}", clause)
        return self._execute(sql, self.params_or_none(self.bind_args(args)))

    def insert_or_update(self, obj: Any, clause: str, *args: Any) -> WriteAction:
        """
        Insert the object, or update the single row matching the clause.

        The lookup and the write run in separate transactions, so two callers
        racing on the same predicate can both insert. Close that window with a
        unique constraint if it matters.

        Raises
        ------
        AmbiguousMatchError
            If two or more rows match the clause.
        """
        mapping = self.registry.mapping(type(obj))
        matches = self.reader.read_all(mapping.record_type, clause, *args)
        if len(matches) > 1:
            raise AmbiguousMatchError(mapping.table, len(matches))
        if not matches:
            self.insert([obj], generate_id=mapping.has_id)
            return WriteAction.INSERTED
        if mapping.has_id:
            mapping.set_id(obj, mapping.get_id(matches[0]))
            self.update(obj)
        else:
            self.update(obj, clause, *args)
        return WriteAction.UPDATED

    def _execute(self, sql: str, params: Optional[Sequence[Any]]) -> int:
        def _statement(conn: Connection) -> int:
            with conn.cursor() as cur:
                cur.execute(sql, params)
                return cur.rowcount

        return self.executor.run(_statement)


__all__ = ["DEFAULT_BATCH_SIZE", "WriteAction", "WritePipeline"]
