"""
Migration interfaces.

A migration is an immutable (id, description, body) triple. Ids must stay
stable across runs: either a pure function of the migration's content or an
explicitly assigned value. Migrations are supplied as an ordered,
append-only list, usually assembled from one or more MigrationCollection
objects so that each collection can pick statements per database type.
"""

from __future__ import annotations

from typing import Iterable, List, Protocol, Sequence, runtime_checkable

from psycopg import Connection

from miniorm.infrastructure.database_type import DatabaseType


@runtime_checkable
class Migration(Protocol):
    """
    One schema or data change.

    Attributes
    ----------
    id : str
        Stable identifier persisted as the version marker (at most 30 chars).
    description : str
        Human-friendly summary used in logs.
    """

    @property
    def id(self) -> str: ...

    @property
    def description(self) -> str: ...

    def execute(self, connection: Connection) -> None:
        """Apply the change on a connection inside an open transaction."""
        ...


@runtime_checkable
class MigrationCollection(Protocol):
    """A group of migrations contributed by one component of an application."""

    def migrations(self, database_type: DatabaseType) -> Sequence[Migration]:
        """Return the migrations for the given database type, in order."""
        ...


def collect_migrations(
    collections: Iterable[MigrationCollection], database_type: DatabaseType
) -> List[Migration]:
    """Flatten collections into one ordered migration list."""
    migrations: List[Migration] = []
    for collection in collections:
        migrations.extend(collection.migrations(database_type))
    return migrations


__all__ = ["Migration", "MigrationCollection", "collect_migrations"]
