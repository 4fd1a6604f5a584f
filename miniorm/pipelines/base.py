"""
Shared plumbing for the read and write pipelines.

Pipelines turn record mappings into SQL text and driver parameters and hand
the statements to the transactional executor. Only table and column names are
generated here; the optional trailing clause (``"WHERE name = %s"``) is the
caller's raw SQL and only its positional arguments are parameterized.
"""

from __future__ import annotations

from typing import Any, List, Optional, Sequence

from miniorm.domain.mapping import MappedField, TypeRegistry
from miniorm.domain.types import bind_value, field_type_of_value
from miniorm.executor import TransactionalExecutor
from miniorm.infrastructure.database_type import DatabaseType


class Pipeline:
    """Base class holding the collaborators every pipeline needs."""

    def __init__(
        self,
        executor: TransactionalExecutor,
        registry: TypeRegistry,
        database_type: DatabaseType = DatabaseType.POSTGRESQL,
    ) -> None:
        self.executor = executor
        self.registry = registry
        self.database_type = database_type

    def escape(self, name: str) -> str:
        return self.database_type.escape(name)

    def columns(self, fields: Sequence[MappedField]) -> str:
        return ", ".join(self.escape(f.name) for f in fields)

    @staticmethod
    def with_clause(sql: str, clause: Optional[str]) -> str:
        if clause:
            return f"{sql} {clause.strip()}"
        return sql

    @staticmethod
    def bind_args(args: Sequence[Any]) -> List[Any]:
        """Bind positional query arguments, typed by their runtime values."""
        return [bind_value(field_type_of_value(arg), arg) for arg in args]

    @staticmethod
    def params_or_none(params: List[Any]) -> Optional[List[Any]]:
        # Without parameters the driver leaves '%' in the clause untouched.
        return params or None


__all__ = ["Pipeline"]
