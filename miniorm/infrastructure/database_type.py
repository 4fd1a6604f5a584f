"""
Database type detection and identifier escaping.

The database type is derived from the scheme of the connection URL. It only
drives identifier quoting and lets migration collections pick statements per
engine; no other dialect differences are modelled.
"""

from __future__ import annotations

from enum import Enum

from miniorm.errors import ConfigurationError


class DatabaseType(Enum):
    POSTGRESQL = ("postgresql", '"', '"')
    MYSQL = ("mysql", "`", "`")
    H2 = ("h2", '"', '"')
    ORACLE = ("oracle", '"', '"')
    MSSQL = ("sqlserver", "[", "]")
    OTHER = (None, '"', '"')

    def __init__(self, scheme: str | None, open_quote: str, close_quote: str) -> None:
        self.scheme = scheme
        self.open_quote = open_quote
        self.close_quote = close_quote

    @classmethod
    def from_url(cls, url: str | None) -> "DatabaseType":
        """
        Determine the database type from a connection URL.

        Accepts plain URLs (``postgresql://host/db``) and JDBC-style URLs
        (``jdbc:mysql://host/db``). Unknown schemes map to OTHER.

        Raises
        ------
        ConfigurationError
            If the URL is missing, empty or carries no scheme.
        """
        if url is None:
            raise ConfigurationError("Connection url is None")
        if not url:
            raise ConfigurationError("Connection url is empty")
        if url.startswith("jdbc:"):
            url = url[len("jdbc:"):]
        scheme, sep, _ = url.partition(":")
        if not sep or not scheme:
            raise ConfigurationError(f"Can not determine database type from {url}")
        scheme = scheme.lower()
        if scheme == "postgres":
            return cls.POSTGRESQL
        for database_type in cls:
            if database_type.scheme is not None and database_type.scheme == scheme:
                return database_type
        return cls.OTHER

    def escape(self, name: str) -> str:
        """Quote an identifier, doubling any embedded closing quote."""
        escaped = name.replace(self.close_quote, self.close_quote * 2)
        return f"{self.open_quote}{escaped}{self.close_quote}"


__all__ = ["DatabaseType"]
