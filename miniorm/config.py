"""
Configuration settings for miniorm.

Uses Pydantic Settings to load environment variables for the database
connection, pool sizing, write/read tuning and logging.
"""
from __future__ import annotations

from functools import lru_cache
from urllib.parse import quote

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Database
    db_type: str = Field("postgresql", alias="DB_TYPE")
    db_host: str = Field("localhost", alias="DB_HOST")
    db_port: int = Field(5432, alias="DB_PORT")
    db_user: str = Field("postgres", alias="DB_USER")
    db_password: str = Field("postgres", alias="DB_PASSWORD")
    db_name: str = Field("miniorm", alias="DB_NAME")
    db_extra_args: str = Field("", alias="DB_EXTRA_ARGS")

    # Pool
    pool_min_size: int = Field(5, alias="POOL_MIN_SIZE", ge=0)
    pool_max_size: int = Field(20, alias="POOL_MAX_SIZE", ge=1)
    pool_max_idle: float = Field(600.0, alias="POOL_MAX_IDLE", gt=0)
    pool_timeout: float = Field(30.0, alias="POOL_TIMEOUT", gt=0)

    # Pipelines
    insert_batch_size: int = Field(100, alias="INSERT_BATCH_SIZE", ge=1)
    stream_fetch_size: int = Field(100, alias="STREAM_FETCH_SIZE", ge=1)

    # Logging
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_json: bool = Field(False, alias="LOG_JSON")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    @property
    def database_url(self) -> str:
        """Connection URL composed from the individual settings."""
        return self._url(quote(self.db_password, safe=""))

    @property
    def redacted_url(self) -> str:
        """`database_url` with the password masked, for logs and the CLI."""
        return self._url("***")

    def _url(self, password: str) -> str:
        url = (
            f"{self.db_type}://{quote(self.db_user, safe='')}:{password}"
            f"@{self.db_host}:{self.db_port}/{self.db_name}"
        )
        if self.db_extra_args:
            url += "?" + self.db_extra_args.lstrip("?&")
        return url


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Process-wide Settings, read from the environment on first call."""
    return Settings()


__all__ = ["Settings", "get_settings"]
