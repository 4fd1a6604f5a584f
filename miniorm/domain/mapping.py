"""
Record type introspection and the type registry.

A record type is a dataclass or a pydantic model whose annotated fields are
the table columns. Introspection runs once per type, at registration, and
produces a RecordMapping: the ordered mapped fields, the table binding and the
construction strategy used to materialize rows. The TypeRegistry memoizes
mappings for the lifetime of the Database that owns it.
"""

from __future__ import annotations

import dataclasses
import inspect
import threading
import typing
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

from miniorm.domain.types import FieldType, bind_value, field_type_of_annotation, read_value
from miniorm.errors import ConfigurationError, MappingError

ID_FIELD = "id"
TABLE_ATTRIBUTE = "__table__"


@dataclass(frozen=True)
class MappedField:
    name: str
    field_type: FieldType
    nullable: bool = False


class StrategyKind(str, Enum):
    ALL_FIELDS_CONSTRUCTOR = "all_fields_constructor"
    ZERO_ARG_PLUS_ASSIGN = "zero_arg_plus_assign"


@dataclass(frozen=True)
class ConstructionStrategy:
    """
    How rows of one record type are materialized.

    ALL_FIELDS_CONSTRUCTOR calls the constructor with every mapped column.
    ZERO_ARG_PLUS_ASSIGN calls it without arguments and assigns the columns
    one by one in mapped order.
    """

    kind: StrategyKind
    field_names: Tuple[str, ...]

    def construct(self, record_type: type, values: Sequence[Any]) -> Any:
        if self.kind is StrategyKind.ALL_FIELDS_CONSTRUCTOR:
            return record_type(**dict(zip(self.field_names, values)))
        instance = record_type()
        for name, value in zip(self.field_names, values):
            setattr(instance, name, value)
        return instance


@dataclass(frozen=True)
class RecordMapping:
    """Everything the pipelines need to know about one record type."""

    record_type: type
    table: str
    fields: Tuple[MappedField, ...]
    strategy: ConstructionStrategy

    @property
    def has_id(self) -> bool:
        return any(field.name == ID_FIELD for field in self.fields)

    def fields_of(self, include_id: bool = True) -> List[MappedField]:
        return [f for f in self.fields if include_id or f.name != ID_FIELD]

    def column_names(self, include_id: bool = True) -> List[str]:
        return [f.name for f in self.fields_of(include_id)]

    def bind(self, obj: Any, fields: Sequence[MappedField]) -> List[Any]:
        """Read the given fields off an object as driver parameters."""
        return [bind_value(f.field_type, getattr(obj, f.name)) for f in fields]

    def construct(self, row: Sequence[Any]) -> Any:
        """Materialize one row selected with all mapped columns in order."""
        values = [read_value(f.field_type, raw) for f, raw in zip(self.fields, row)]
        return self.strategy.construct(self.record_type, values)

    def get_id(self, obj: Any) -> Optional[int]:
        self._require_id()
        return getattr(obj, ID_FIELD)

    def set_id(self, obj: Any, value: int) -> None:
        self._require_id()
        setattr(obj, ID_FIELD, value)

    def _require_id(self) -> None:
        if not self.has_id:
            raise MappingError(f"Could not find id field for type {self.record_type.__name__}")


def _declared_fields(record_type: type) -> List[Tuple[str, Any]]:
    if dataclasses.is_dataclass(record_type):
        hints = typing.get_type_hints(record_type)
        return [(f.name, hints[f.name]) for f in dataclasses.fields(record_type)]
    model_fields = getattr(record_type, "model_fields", None)
    if isinstance(model_fields, dict):
        return [(name, info.annotation) for name, info in model_fields.items()]
    hints = typing.get_type_hints(record_type)
    return [
        (name, hint)
        for name, hint in hints.items()
        if not name.startswith("_") and typing.get_origin(hint) is not typing.ClassVar
    ]


def _map_fields(record_type: type) -> Tuple[MappedField, ...]:
    mapped = []
    for name, annotation in _declared_fields(record_type):
        try:
            field_type, nullable = field_type_of_annotation(annotation)
        except MappingError as exc:
            raise MappingError(f"Field {record_type.__name__}.{name}: {exc}") from None
        if name == ID_FIELD and field_type is not FieldType.INT64:
            raise MappingError(
                f"The id field of type {record_type.__name__} is not a 64-bit integer"
            )
        mapped.append(MappedField(name=name, field_type=field_type, nullable=nullable))
    if not mapped:
        raise ConfigurationError(f"Type {record_type.__name__} declares no fields")
    return tuple(mapped)


def _table_of(record_type: type, table: Optional[str]) -> str:
    if table is not None:
        return table
    declared = getattr(record_type, TABLE_ATTRIBUTE, None)
    if declared is None:
        return record_type.__name__.lower()
    if not isinstance(declared, str) or not declared:
        raise ConfigurationError(
            f"{record_type.__name__}.{TABLE_ATTRIBUTE} must be a non-empty string"
        )
    return declared


def _constructor_parameters(record_type: type) -> Optional[List[inspect.Parameter]]:
    try:
        signature = inspect.signature(record_type)
    except (TypeError, ValueError):
        return None
    return [
        p
        for p in signature.parameters.values()
        if p.kind not in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD)
    ]


def _matches_all_fields(
    record_type: type, params: List[inspect.Parameter], fields: Tuple[MappedField, ...]
) -> bool:
    if [p.name for p in params] != [f.name for f in fields]:
        return False
    try:
        hints = typing.get_type_hints(record_type.__init__)
    except (AttributeError, NameError, TypeError):
        hints = {}
    for field in fields:
        if field.name not in hints:
            continue
        try:
            declared, _ = field_type_of_annotation(hints[field.name])
        except MappingError:
            return False
        if declared is not field.field_type:
            return False
    return True


def determine_strategy(
    record_type: type, fields: Tuple[MappedField, ...]
) -> ConstructionStrategy:
    """
    Decide how to construct instances of a record type.

    Raises
    ------
    ConfigurationError
        If the type has neither a constructor taking all mapped fields in
        order nor a constructor callable without arguments.
    """
    names = tuple(f.name for f in fields)
    params = _constructor_parameters(record_type)
    if params is not None:
        if _matches_all_fields(record_type, params, fields):
            return ConstructionStrategy(StrategyKind.ALL_FIELDS_CONSTRUCTOR, names)
        if all(p.default is not inspect.Parameter.empty for p in params):
            return ConstructionStrategy(StrategyKind.ZERO_ARG_PLUS_ASSIGN, names)
    raise ConfigurationError(
        f"Could not construct instance of type {record_type.__name__}, need a constructor "
        f"without arguments, or a constructor with all arguments of same type and order "
        f"as the fields"
    )


def inspect_record_type(record_type: type, table: Optional[str] = None) -> RecordMapping:
    """Introspect a record type into its mapping."""
    if not isinstance(record_type, type):
        raise ConfigurationError(f"{record_type!r} is not a type")
    fields = _map_fields(record_type)
    return RecordMapping(
        record_type=record_type,
        table=_table_of(record_type, table),
        fields=fields,
        strategy=determine_strategy(record_type, fields),
    )


class TypeRegistry:
    """
    Thread-safe memo of record mappings.

    Types are registered explicitly at startup with `register` or lazily on
    first use. Computing a mapping twice yields the same result, so a race on
    first use only costs a redundant introspection.
    """

    def __init__(self) -> None:
        self._mappings: Dict[type, RecordMapping] = {}
        self._lock = threading.Lock()

    def register(self, record_type: type, table: Optional[str] = None) -> RecordMapping:
        mapping = inspect_record_type(record_type, table)
        with self._lock:
            self._mappings[record_type] = mapping
        return mapping

    def mapping(self, record_type: type) -> RecordMapping:
        with self._lock:
            cached = self._mappings.get(record_type)
        if cached is not None:
            return cached
        mapping = inspect_record_type(record_type)
        with self._lock:
            return self._mappings.setdefault(record_type, mapping)

    def fields_of(self, record_type: type, include_id: bool = True) -> List[MappedField]:
        return self.mapping(record_type).fields_of(include_id)

    def construction_strategy_of(self, record_type: type) -> ConstructionStrategy:
        return self.mapping(record_type).strategy

    def table_of(self, record_type: type) -> str:
        return self.mapping(record_type).table

    def __contains__(self, record_type: object) -> bool:
        with self._lock:
            return record_type in self._mappings

    def __len__(self) -> int:
        with self._lock:
            return len(self._mappings)


__all__ = [
    "ConstructionStrategy",
    "MappedField",
    "RecordMapping",
    "StrategyKind",
    "TypeRegistry",
    "determine_strategy",
    "inspect_record_type",
]
