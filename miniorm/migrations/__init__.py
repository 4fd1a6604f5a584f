"""
Schema migrations for miniorm.

Usage:
    from miniorm.migrations import MigrationEngine, SimpleMigration

    engine = MigrationEngine(db.executor, [
        SimpleMigration("CREATE TABLE person (id BIGSERIAL PRIMARY KEY, name TEXT)"),
    ])
    engine.run()
"""

from miniorm.migrations.abstract import Migration, MigrationCollection, collect_migrations
from miniorm.migrations.engine import (
    MIGRATION_TABLE,
    ZERO_VERSION,
    MigrationEngine,
    MigrationReport,
    MigrationState,
    VersionStore,
)
from miniorm.migrations.simple import CodeMigration, SimpleMigration, content_id

__all__ = [
    "MIGRATION_TABLE",
    "ZERO_VERSION",
    "CodeMigration",
    "Migration",
    "MigrationCollection",
    "MigrationEngine",
    "MigrationReport",
    "MigrationState",
    "SimpleMigration",
    "VersionStore",
    "collect_migrations",
    "content_id",
]
