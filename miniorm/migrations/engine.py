"""
Migration engine: applies pending migrations in order, one transaction each.

Progress is recorded in a single-row version table. A run walks through

    UNINITIALIZED -> INITIALIZED -> APPLYING -> UP_TO_DATE

1. Create the version table with the ZERO sentinel if it does not exist.
2. Read the recorded version and locate it in the migration list. ZERO means
   nothing was applied; an id missing from the list means migrations were
   reordered or removed and the run stops with VersionMismatchError.
3. Apply every later migration in its own transaction, updating the version
   row in that same transaction.

A crash mid-run leaves the marker on the last fully applied migration, and
the next run resumes from there. Without pending migrations nothing is
written.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence

from psycopg import Connection

from miniorm.errors import ConfigurationError, MiniOrmError, VersionMismatchError
from miniorm.executor import TransactionalExecutor
from miniorm.infrastructure.database_type import DatabaseType
from miniorm.migrations.abstract import Migration
from miniorm.utils.logging import get_logger

log = get_logger(__name__)

MIGRATION_TABLE = "migration"
VERSION_COLUMN = "version"
ZERO_VERSION = "00000000000"
MAX_VERSION_LENGTH = 30


class MigrationState(str, Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZED = "initialized"
    APPLYING = "applying"
    UP_TO_DATE = "up_to_date"


@dataclass
class MigrationReport:
    previous_version: str
    version: str
    applied: List[str] = field(default_factory=list)
    state: MigrationState = MigrationState.UP_TO_DATE


class VersionStore:
    """SQL access to the single-row version table."""

    def __init__(
        self,
        database_type: DatabaseType = DatabaseType.POSTGRESQL,
        table: str = MIGRATION_TABLE,
    ) -> None:
        self._table = database_type.escape(table)
        self._column = database_type.escape(VERSION_COLUMN)
        self._table_name = table

    def exists(self, conn: Connection) -> bool:
        with conn.cursor() as cur:
            cur.execute(
                "SELECT 1 FROM information_schema.tables "
                "WHERE table_schema = current_schema() AND table_name = %s",
                (self._table_name,),
            )
            return cur.fetchone() is not None

    def initialize(self, conn: Connection) -> str:
        """Create the table and the ZERO row where missing; return the version."""
        if not self.exists(conn):
            log.info(f"Table {self._table_name} does not exist yet, creating it...")
            with conn.cursor() as cur:
                cur.execute(
                    f"CREATE TABLE {self._table} "
                    f"({self._column} VARCHAR({MAX_VERSION_LENGTH}) NOT NULL)"
                )
        version = self._select(conn)
        if version is None:
            with conn.cursor() as cur:
                cur.execute(
                    f"INSERT INTO {self._table} ({self._column}) VALUES (%s)", (ZERO_VERSION,)
                )
            version = ZERO_VERSION
        return version

    def read(self, conn: Connection) -> Optional[str]:
        """Recorded version, or None when the table has not been created."""
        if not self.exists(conn):
            return None
        return self._select(conn)

    def write(self, conn: Connection, version: str) -> None:
        with conn.cursor() as cur:
            cur.execute(f"UPDATE {self._table} SET {self._column} = %s", (version,))
            if cur.rowcount != 1:
                raise MiniOrmError(
                    f"The version table {self._table_name} does not contain a single row!"
                )

    def _select(self, conn: Connection) -> Optional[str]:
        with conn.cursor() as cur:
            cur.execute(f"SELECT {self._column} FROM {self._table}")
            rows = cur.fetchall()
        if len(rows) > 1:
            raise MiniOrmError(
                f"The version table {self._table_name} does not contain a single row!"
            )
        return rows[0][0] if rows else None


def _validate(migrations: Sequence[Migration]) -> None:
    seen = set()
    for migration in migrations:
        if not migration.id or len(migration.id) > MAX_VERSION_LENGTH:
            raise ConfigurationError(
                f"Migration id {migration.id!r} must be 1 to {MAX_VERSION_LENGTH} characters"
            )
        if migration.id == ZERO_VERSION:
            raise ConfigurationError(f"Migration id {ZERO_VERSION} is reserved")
        if migration.id in seen:
            raise ConfigurationError(f"Duplicate migration id {migration.id}")
        seen.add(migration.id)


class MigrationEngine:
    """Bring the database schema up to date with an ordered migration list."""

    def __init__(
        self,
        executor: TransactionalExecutor,
        migrations: Sequence[Migration],
        store: Optional[VersionStore] = None,
    ) -> None:
        _validate(migrations)
        self.executor = executor
        self.migrations = list(migrations)
        self.store = store or VersionStore()
        self.state = MigrationState.UNINITIALIZED
        self.version: Optional[str] = None

    def current_version(self) -> Optional[str]:
        """Recorded version without applying anything; None before the first run."""
        return self.executor.run(self.store.read)

    def pending(self, version: str) -> List[Migration]:
        """Migrations after `version` in list order."""
        if version == ZERO_VERSION:
            return list(self.migrations)
        for index, migration in enumerate(self.migrations):
            if migration.id == version:
                return self.migrations[index + 1 :]
        raise VersionMismatchError(version)

    def run(self) -> MigrationReport:
        """
        Apply all pending migrations.

        Raises
        ------
        VersionMismatchError
            If the recorded version is not in the migration list.
        ExecutionError
            If a migration fails; earlier migrations of this run stay applied.
        """
        self.state = MigrationState.UNINITIALIZED
        previous = self.executor.run(self.store.initialize)
        self.version = previous
        self.state = MigrationState.INITIALIZED
        if previous == ZERO_VERSION:
            log.info("Starting from zero migrations")
        else:
            log.info(f"Current version of database migrations is {previous}")

        pending = self.pending(previous)
        report = MigrationReport(previous_version=previous, version=previous)
        if not pending:
            log.info("Migrations up-to-date")
            self.state = MigrationState.UP_TO_DATE
            return report

        log.info(f"Executing {len(pending)} migrations", extra={"pending": len(pending)})
        for migration in pending:
            self.state = MigrationState.APPLYING
            log.info(
                f'Executing migration {migration.id} "{migration.description}"',
                extra={"migration": migration.id},
            )
            start = time.perf_counter()
            try:
                self.executor.run(lambda conn, m=migration: self._apply(conn, m))
            except MiniOrmError:
                log.error(
                    f"Migration {migration.id} failed, database stays at version {self.version}",
                    extra={"migration": migration.id, "version": self.version},
                )
                raise
            self.version = migration.id
            report.version = migration.id
            report.applied.append(migration.id)
            log.info(
                f"Applied migration {migration.id}",
                extra={
                    "migration": migration.id,
                    "duration_ms": round((time.perf_counter() - start) * 1000, 2),
                },
            )

        self.state = MigrationState.UP_TO_DATE
        report.state = self.state
        return report

    def _apply(self, conn: Connection, migration: Migration) -> None:
        migration.execute(conn)
        self.store.write(conn, migration.id)


__all__ = [
    "MIGRATION_TABLE",
    "ZERO_VERSION",
    "MigrationEngine",
    "MigrationReport",
    "MigrationState",
    "VersionStore",
]
