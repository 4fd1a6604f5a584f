from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional, Union

import pytest

from miniorm.domain.types import (
    FieldType,
    Int32,
    bind_value,
    field_type_of_annotation,
    field_type_of_value,
    read_value,
)
from miniorm.errors import MappingError


@pytest.mark.parametrize(
    "annotation,expected",
    [
        (Int32, FieldType.INT32),
        (int, FieldType.INT64),
        (bool, FieldType.BOOL),
        (float, FieldType.FLOAT64),
        (str, FieldType.STRING),
        (datetime, FieldType.TIMESTAMP),
    ],
)
def test_annotation_resolves_to_semantic_type(annotation, expected) -> None:
    assert field_type_of_annotation(annotation) == (expected, False)


def test_optional_annotations_are_nullable() -> None:
    assert field_type_of_annotation(Optional[int]) == (FieldType.INT64, True)
    assert field_type_of_annotation(str | None) == (FieldType.STRING, True)


@pytest.mark.parametrize("annotation", [bytes, List[int], Union[int, str], Decimal, date])
def test_unsupported_annotation_is_rejected(annotation) -> None:
    with pytest.raises(MappingError, match="Unknown type"):
        field_type_of_annotation(annotation)


def test_argument_typing_distinguishes_bool_from_int() -> None:
    assert field_type_of_value(True) is FieldType.BOOL
    assert field_type_of_value(7) is FieldType.INT64
    assert field_type_of_value(1.5) is FieldType.FLOAT64
    assert field_type_of_value("x") is FieldType.STRING
    assert field_type_of_value(datetime(2024, 1, 1)) is FieldType.TIMESTAMP


def test_null_argument_is_rejected() -> None:
    with pytest.raises(MappingError, match="Null values are not supported"):
        field_type_of_value(None)


def test_unknown_argument_type_is_rejected() -> None:
    with pytest.raises(MappingError):
        field_type_of_value(b"raw")


def test_bind_checks_int32_range() -> None:
    assert bind_value(FieldType.INT32, 2**31 - 1) == 2**31 - 1
    with pytest.raises(MappingError, match="out of range"):
        bind_value(FieldType.INT32, 2**31)


def test_bind_rejects_bool_for_integer_columns() -> None:
    with pytest.raises(MappingError):
        bind_value(FieldType.INT64, True)


def test_bind_widens_int_to_float() -> None:
    value = bind_value(FieldType.FLOAT64, 3)
    assert value == 3.0
    assert isinstance(value, float)


def test_bind_passes_null_through() -> None:
    for field_type in FieldType:
        assert bind_value(field_type, None) is None


def test_bind_rejects_mismatched_value() -> None:
    with pytest.raises(MappingError, match="not valid for string"):
        bind_value(FieldType.STRING, 12)


def test_read_value_normalizes_driver_types() -> None:
    assert read_value(FieldType.FLOAT64, Decimal("1.25")) == 1.25
    assert read_value(FieldType.TIMESTAMP, date(2024, 5, 1)) == datetime(2024, 5, 1)
    assert read_value(FieldType.INT32, 5) == 5
    assert read_value(FieldType.STRING, None) is None


def test_read_value_rejects_non_timestamp() -> None:
    with pytest.raises(MappingError):
        read_value(FieldType.TIMESTAMP, "yesterday")
