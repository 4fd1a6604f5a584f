"""
miniorm - a lightweight object-relational persistence layer.

Maps typed records (dataclasses or pydantic models) to relational tables,
runs every operation inside a managed transaction on a pooled psycopg
connection, and applies an ordered, resumable list of schema migrations:

- Type mapping with a registration-time construction strategy per type
- Batched inserts with generated-key reconciliation
- Eager and streaming (server-side cursor) reads
- A single-row version marker driving the migration engine
"""

from __future__ import annotations

__version__ = "0.1.0"
__license__ = "MIT"

# Public API exports
from miniorm.config import Settings, get_settings
from miniorm.database import Database
from miniorm.domain import FieldType, Int32, MappedField, RecordMapping, TypeRegistry
from miniorm.errors import (
    AmbiguousMatchError,
    CardinalityError,
    ConfigurationError,
    DataIntegrityError,
    ExecutionError,
    MappingError,
    MiniOrmError,
    VersionMismatchError,
)
from miniorm.executor import TransactionalExecutor
from miniorm.infrastructure import DatabaseType
from miniorm.migrations import (
    CodeMigration,
    Migration,
    MigrationCollection,
    MigrationEngine,
    SimpleMigration,
)
from miniorm.pipelines import RecordStream, WriteAction
from miniorm.utils.logging import configure_logging, get_logger

__all__ = [
    # Version info
    "__version__",
    "__license__",
    # Configuration
    "Settings",
    "get_settings",
    # Facade
    "Database",
    "TransactionalExecutor",
    "DatabaseType",
    # Mapping
    "FieldType",
    "Int32",
    "MappedField",
    "RecordMapping",
    "TypeRegistry",
    # Pipelines
    "RecordStream",
    "WriteAction",
    # Migrations
    "CodeMigration",
    "Migration",
    "MigrationCollection",
    "MigrationEngine",
    "SimpleMigration",
    # Errors
    "MiniOrmError",
    "ConfigurationError",
    "MappingError",
    "DataIntegrityError",
    "CardinalityError",
    "AmbiguousMatchError",
    "VersionMismatchError",
    "ExecutionError",
    # Logging
    "configure_logging",
    "get_logger",
]
