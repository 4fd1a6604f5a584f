"""
Semantic column types and the per-type value conversions.

Every persisted field and every positional query argument resolves to one
FieldType. Binding converts a Python value into what the driver receives;
reading converts what the driver returns into the field's Python value.
Both are pure functions of the semantic type.
"""

from __future__ import annotations

import types
from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from typing import Any, NewType, Optional, Tuple, Union, get_args, get_origin

from miniorm.errors import MappingError

Int32 = NewType("Int32", int)

INT32_MIN, INT32_MAX = -(2**31), 2**31 - 1
INT64_MIN, INT64_MAX = -(2**63), 2**63 - 1


class FieldType(str, Enum):
    INT32 = "int32"
    INT64 = "int64"
    BOOL = "bool"
    FLOAT64 = "float64"
    STRING = "string"
    TIMESTAMP = "timestamp"


_ANNOTATION_TYPES = {
    Int32: FieldType.INT32,
    int: FieldType.INT64,
    bool: FieldType.BOOL,
    float: FieldType.FLOAT64,
    str: FieldType.STRING,
    datetime: FieldType.TIMESTAMP,
}


def field_type_of_annotation(annotation: Any) -> Tuple[FieldType, bool]:
    """
    Resolve a type annotation to its semantic type.

    Returns
    -------
    tuple[FieldType, bool]
        The semantic type and whether the annotation allows None.

    Raises
    ------
    MappingError
        If the annotation has no supported semantic type.
    """
    nullable = False
    if get_origin(annotation) in (Union, types.UnionType):
        members = [arg for arg in get_args(annotation) if arg is not type(None)]
        if len(members) != 1:
            raise MappingError(f"Unknown type {annotation!r}")
        annotation = members[0]
        nullable = True
    try:
        return _ANNOTATION_TYPES[annotation], nullable
    except (KeyError, TypeError):
        raise MappingError(f"Unknown type {annotation!r}") from None


def field_type_of_value(value: Any) -> FieldType:
    """Type a positional query argument by its runtime value."""
    if value is None:
        raise MappingError("Null values are not supported for arguments")
    # bool before int: bool is an int subclass
    if isinstance(value, bool):
        return FieldType.BOOL
    if isinstance(value, int):
        return FieldType.INT64
    if isinstance(value, float):
        return FieldType.FLOAT64
    if isinstance(value, str):
        return FieldType.STRING
    if isinstance(value, datetime):
        return FieldType.TIMESTAMP
    raise MappingError(f"Unknown type {type(value).__name__} for argument {value!r}")


def _check_int(value: Any, low: int, high: int, field_type: FieldType) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise MappingError(f"Value {value!r} is not valid for {field_type.value}")
    if not low <= value <= high:
        raise MappingError(f"Value {value} is out of range for {field_type.value}")
    return value


def bind_value(field_type: FieldType, value: Any) -> Any:
    """Convert a field value into the parameter handed to the driver."""
    if value is None:
        return None
    if field_type is FieldType.INT32:
        return _check_int(value, INT32_MIN, INT32_MAX, field_type)
    if field_type is FieldType.INT64:
        return _check_int(value, INT64_MIN, INT64_MAX, field_type)
    if field_type is FieldType.BOOL:
        if not isinstance(value, bool):
            raise MappingError(f"Value {value!r} is not valid for {field_type.value}")
        return value
    if field_type is FieldType.FLOAT64:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise MappingError(f"Value {value!r} is not valid for {field_type.value}")
        return float(value)
    if field_type is FieldType.STRING:
        if not isinstance(value, str):
            raise MappingError(f"Value {value!r} is not valid for {field_type.value}")
        return value
    if field_type is FieldType.TIMESTAMP:
        if not isinstance(value, datetime):
            raise MappingError(f"Value {value!r} is not valid for {field_type.value}")
        return value
    raise MappingError(f"Unknown type {field_type!r}")


def read_value(field_type: FieldType, raw: Any) -> Optional[Any]:
    """Convert a column value returned by the driver into the field's Python value."""
    if raw is None:
        return None
    if field_type in (FieldType.INT32, FieldType.INT64):
        return int(raw)
    if field_type is FieldType.BOOL:
        return bool(raw)
    if field_type is FieldType.FLOAT64:
        return float(raw) if isinstance(raw, (int, float, Decimal)) else float(str(raw))
    if field_type is FieldType.STRING:
        return str(raw)
    if field_type is FieldType.TIMESTAMP:
        if isinstance(raw, datetime):
            return raw
        if isinstance(raw, date):
            return datetime.combine(raw, time.min)
        raise MappingError(f"Column value {raw!r} is not a timestamp")
    raise MappingError(f"Unknown type {field_type!r}")


__all__ = [
    "FieldType",
    "Int32",
    "field_type_of_annotation",
    "field_type_of_value",
    "bind_value",
    "read_value",
]
