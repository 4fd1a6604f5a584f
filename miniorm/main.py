from __future__ import annotations

import importlib
import json
import sys
from dataclasses import asdict
from typing import List

import typer

from miniorm.config import get_settings
from miniorm.database import Database
from miniorm.errors import MiniOrmError
from miniorm.infrastructure.database_type import DatabaseType
from miniorm.migrations.abstract import Migration, MigrationCollection
from miniorm.utils.logging import configure_logging

app = typer.Typer(help="miniorm: typed persistence and schema migrations.")


def _load_migrations(targets: List[str], database_type: DatabaseType) -> List[Migration]:
    """
    Import migrations from ``module:attribute`` targets.

    The attribute may be a MigrationCollection, or a list mixing migrations
    and collections. Targets are concatenated in the order given.
    """
    migrations: List[Migration] = []
    for target in targets:
        module_name, _, attribute = target.partition(":")
        if not module_name or not attribute:
            raise typer.BadParameter(f"Expected module:attribute, got {target!r}")
        try:
            source = getattr(importlib.import_module(module_name), attribute)
        except (ImportError, AttributeError) as exc:
            raise typer.BadParameter(f"Cannot load {target!r}: {exc}") from exc
        items = source if isinstance(source, (list, tuple)) else [source]
        for item in items:
            if isinstance(item, MigrationCollection):
                migrations.extend(item.migrations(database_type))
            elif isinstance(item, Migration):
                migrations.append(item)
            else:
                raise typer.BadParameter(f"{target!r} holds {item!r}, not a migration")
    return migrations


@app.command()
def info() -> None:
    """
    Show the effective connection, pool and pipeline settings.
    """
    settings = get_settings()
    typer.echo(
        f"DB={settings.redacted_url} | pool=({settings.pool_min_size},{settings.pool_max_size}) "
        f"idle={settings.pool_max_idle}s timeout={settings.pool_timeout}s | "
        f"insert_batch={settings.insert_batch_size} stream_fetch={settings.stream_fetch_size}"
    )


@app.command()
def migrate(
    collection: List[str] = typer.Option(
        ...,
        "--collection",
        "-c",
        help="Migrations to apply as module:attribute; repeat to concatenate several.",
    ),
) -> None:
    """
    Apply pending migrations and print the resulting version.
    """
    settings = get_settings()
    configure_logging(level=settings.log_level, json_logs=settings.log_json)
    with Database(settings) as db:
        migrations = _load_migrations(collection, db.database_type)
        try:
            report = db.migrate(migrations)
        except MiniOrmError as exc:
            typer.echo(f"Migration failed: {exc}", err=True)
            raise typer.Exit(code=1) from exc
    typer.echo(json.dumps(asdict(report), indent=2))


@app.command()
def version() -> None:
    """
    Print the recorded migration version.
    """
    settings = get_settings()
    configure_logging(level=settings.log_level, json_logs=settings.log_json)
    with Database(settings) as db:
        current = db.migration_engine([]).current_version()
    typer.echo(current if current is not None else "none")


def main() -> None:
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)


if __name__ == "__main__":
    main()
