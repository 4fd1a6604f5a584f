"""
Database facade: the public entry point of miniorm.

Wires the pool, the type registry, the transactional executor, both pipelines
and the migration engine around one set of Settings.

Usage:
    from dataclasses import dataclass
    from typing import Optional

    from miniorm import Database

    @dataclass
    class Person:
        name: str
        age: int
        id: Optional[int] = None

    with Database() as db:
        db.insert([Person("ada", 36)])
        ada = db.read_one(Person, "WHERE name = %s", "ada")
        with db.stream_all(Person, "ORDER BY id") as people:
            for person in people:
                ...
"""

from __future__ import annotations

from typing import Any, Iterable, List, Optional, Sequence, Type, TypeVar

from miniorm.config import Settings, get_settings
from miniorm.domain.mapping import RecordMapping, TypeRegistry
from miniorm.executor import ConnectionSource, TransactionalExecutor, UnitOfWork
from miniorm.infrastructure.database_type import DatabaseType
from miniorm.infrastructure.db_factory import PoolManager
from miniorm.migrations.abstract import Migration
from miniorm.migrations.engine import MigrationEngine, MigrationReport, VersionStore
from miniorm.pipelines.reader import ReadPipeline, RecordStream
from miniorm.pipelines.writer import WriteAction, WritePipeline

T = TypeVar("T")


class Database:
    """
    Typed CRUD and migrations over one connection pool.

    Parameters
    ----------
    settings : Settings | None
        Connection, pool and pipeline settings; defaults to `get_settings()`.
    pool : ConnectionSource | None
        Use an existing pool (anything with getconn/putconn) instead of
        building one from the settings. The caller keeps ownership of it.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        pool: Optional[ConnectionSource] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.database_type = DatabaseType.from_url(self.settings.database_url)
        self._pool_manager: Optional[PoolManager] = None
        if pool is None:
            self._pool_manager = PoolManager(self.settings)
            pool = self._pool_manager
        self.registry = TypeRegistry()
        self.executor = TransactionalExecutor(pool)
        self.reader = ReadPipeline(
            self.executor,
            self.registry,
            self.database_type,
            fetch_size=self.settings.stream_fetch_size,
        )
        self.writer = WritePipeline(
            self.executor,
            self.registry,
            self.reader,
            self.database_type,
            batch_size=self.settings.insert_batch_size,
        )

    # Lifecycle

    def start(self) -> "Database":
        """Open the pool and wait for its warm connections."""
        if self._pool_manager is not None:
            self._pool_manager.get_pool()
        return self

    def stop(self) -> None:
        """Close the pool this Database created."""
        if self._pool_manager is not None:
            self._pool_manager.close()

    def __enter__(self) -> "Database":
        return self.start()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()

    # Mapping

    def register(self, record_type: type, table: Optional[str] = None) -> RecordMapping:
        """Register a record type up front, optionally overriding its table."""
        return self.registry.register(record_type, table)

    # Transactions

    def run_in_transaction(self, work: UnitOfWork[T], keep_open: bool = False) -> T:
        """Run a custom unit of work; see TransactionalExecutor.run."""
        return self.executor.run(work, keep_open=keep_open)

    def execute(self, sql: str) -> None:
        self.executor.execute(sql)

    # Writes

    def insert(self, objects: Iterable[Any], generate_id: bool = True) -> Optional[List[int]]:
        return self.writer.insert(objects, generate_id=generate_id)

    def insert_one(self, obj: Any, generate_id: bool = True) -> Optional[int]:
        return self.writer.insert_one(obj, generate_id=generate_id)

    def update(self, obj: Any, clause: Optional[str] = None, *args: Any) -> int:
        return self.writer.update(obj, clause, *args)

    def insert_or_update(self, obj: Any, clause: str, *args: Any) -> WriteAction:
        return self.writer.insert_or_update(obj, clause, *args)

    def delete(self, record_type: type, clause: Optional[str] = None, *args: Any) -> int:
        return self.writer.delete(record_type, clause, *args)

    # Reads

    def read_all(self, record_type: Type[T], clause: Optional[str] = None, *args: Any) -> List[T]:
        return self.reader.read_all(record_type, clause, *args)

    def read_one(
        self, record_type: Type[T], clause: Optional[str] = None, *args: Any
    ) -> Optional[T]:
        return self.reader.read_one(record_type, clause, *args)

    def stream_all(
        self, record_type: Type[T], clause: Optional[str] = None, *args: Any
    ) -> RecordStream[T]:
        return self.reader.stream_all(record_type, clause, *args)

    # Migrations

    def migration_engine(self, migrations: Sequence[Migration]) -> MigrationEngine:
        return MigrationEngine(self.executor, migrations, VersionStore(self.database_type))

    def migrate(self, migrations: Sequence[Migration]) -> MigrationReport:
        """Apply pending migrations; see MigrationEngine.run."""
        return self.migration_engine(migrations).run()


__all__ = ["Database"]
