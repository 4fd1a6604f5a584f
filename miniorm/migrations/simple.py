"""
Concrete migrations: a single SQL statement, or a Python callable.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from typing import Callable, Optional

from psycopg import Connection

DESCRIPTION_LENGTH = 40


def content_id(statement: str) -> str:
    """Stable id derived from the statement text (64 bits, hex)."""
    return hashlib.sha256(statement.encode("utf-8")).hexdigest()[:16]


@dataclass(frozen=True)
class SimpleMigration:
    """
    Execute one SQL statement.

    The id is a hash of the statement unless `stable_id` is given, so editing
    an applied statement changes its id and makes the recorded version
    unknown.
    """

    statement: str
    stable_id: Optional[str] = None

    @property
    def id(self) -> str:
        return self.stable_id or content_id(self.statement)

    @property
    def description(self) -> str:
        return self.statement.strip()[:DESCRIPTION_LENGTH]

    def execute(self, connection: Connection) -> None:
        with connection.cursor() as cur:
            cur.execute(self.statement)


@dataclass(frozen=True)
class CodeMigration:
    """Run a Python callable; the id must be assigned explicitly."""

    id: str
    description: str
    body: Callable[[Connection], None]

    def execute(self, connection: Connection) -> None:
        self.body(connection)


__all__ = ["CodeMigration", "SimpleMigration", "content_id"]
