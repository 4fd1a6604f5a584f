"""
Domain package for miniorm.

Exports the semantic column types and the record-type mapping used by the
pipelines. Keep this package free of connection handling.
"""

from miniorm.domain.mapping import (
    ConstructionStrategy,
    MappedField,
    RecordMapping,
    StrategyKind,
    TypeRegistry,
    inspect_record_type,
)
from miniorm.domain.types import FieldType, Int32

__all__ = [
    "ConstructionStrategy",
    "FieldType",
    "Int32",
    "MappedField",
    "RecordMapping",
    "StrategyKind",
    "TypeRegistry",
    "inspect_record_type",
]
