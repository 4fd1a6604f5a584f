"""
Error taxonomy for miniorm.

Every failure raised by the persistence core derives from MiniOrmError so
callers can catch the library as a whole or a single failure kind:

- ConfigurationError: unusable record type or malformed connection settings
- MappingError: unsupported field type or value
- DataIntegrityError: generated-key count does not match the flushed rows
- CardinalityError: a single-result read matched more than one row
- AmbiguousMatchError: an insert-or-update predicate matched more than one row
- VersionMismatchError: the persisted migration version is unknown
- ExecutionError: a unit of work failed; the original error is `__cause__`
"""

from __future__ import annotations


class MiniOrmError(Exception):
    """Base class for all miniorm errors."""


class ConfigurationError(MiniOrmError):
    """A record type or the connection settings cannot be used."""


class MappingError(MiniOrmError):
    """A field or value has no supported semantic type."""


class DataIntegrityError(MiniOrmError):
    """The database returned a different number of generated keys than rows inserted."""

    def __init__(self, expected: int, received: int) -> None:
        super().__init__(
            f"Did not retrieve the expected number of ids after inserting objects. "
            f"Retrieved {received}, needed {expected}"
        )
        self.expected = expected
        self.received = received


class CardinalityError(MiniOrmError):
    """A read that expects zero or one row matched more."""

    def __init__(self, count: int) -> None:
        super().__init__(f"Got {count} objects but expected zero or one object")
        self.count = count


class AmbiguousMatchError(MiniOrmError):
    """An insert-or-update predicate matched more than one row."""

    def __init__(self, table: str, count: int) -> None:
        super().__init__(f"Predicate matched {count} rows in {table}, expected zero or one")
        self.table = table
        self.count = count


class VersionMismatchError(MiniOrmError):
    """The recorded migration version is absent from the migration list."""

    def __init__(self, version: str) -> None:
        super().__init__(f"Version {version} could not be found in the list of migrations")
        self.version = version


class ExecutionError(MiniOrmError):
    """A unit of work failed inside a transaction and was rolled back."""


__all__ = [
    "MiniOrmError",
    "ConfigurationError",
    "MappingError",
    "DataIntegrityError",
    "CardinalityError",
    "AmbiguousMatchError",
    "VersionMismatchError",
    "ExecutionError",
]
