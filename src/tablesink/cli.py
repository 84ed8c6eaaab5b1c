# src/tablesink/cli.py
"""tablesink command line interface."""

from __future__ import annotations

from pathlib import Path

import typer

from tablesink import __version__
from tablesink.contracts import ConfigurationError, SetupError, TableSinkError
from tablesink.core.config import SinkSettings, load_settings
from tablesink.core.logging import configure_logging
from tablesink.plugins.manager import SerializerManager

app = typer.Typer(
    name="tablesink",
    help="tablesink: transactional delivery of channel events into wide-column tables.",
    no_args_is_help=True,
)

SETTINGS_OPTION = typer.Option(
    ...,
    "--settings",
    "-s",
    help="Path to settings YAML file.",
)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"tablesink version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
) -> None:
    """tablesink command line."""


def _get_manager() -> SerializerManager:
    manager = SerializerManager()
    manager.register_builtin_plugins()
    return manager


def _fail(message: str) -> typer.Exit:
    typer.secho(f"Error: {message}", fg=typer.colors.RED, err=True)
    return typer.Exit(1)


def _load(settings: str) -> SinkSettings:
    settings_path = Path(settings).expanduser()
    try:
        loaded = load_settings(settings_path)
    except FileNotFoundError as e:
        raise _fail(str(e)) from e
    except ConfigurationError as e:
        raise _fail(f"Configuration errors:\n{e}") from e
    configure_logging(json_output=loaded.logging.json_output, level=loaded.logging.level)
    return loaded


@app.command()
def serializers() -> None:
    """List registered serializers."""
    for spec in _get_manager().get_serializer_specs():
        typer.echo(f"{spec.name:<12} {spec.version:<8} {spec.class_name}")


@app.command()
def validate(settings: str = SETTINGS_OPTION) -> None:
    """Validate settings and serializer options without touching storage."""
    loaded = _load(settings)
    try:
        serializer = _get_manager().create_serializer(loaded.sink.serializer, loaded.sink.serializer_options)
    except ConfigurationError as e:
        raise _fail(str(e)) from e
    serializer.close()

    typer.secho("Configuration valid!", fg=typer.colors.GREEN)
    typer.echo(f"  Table: {loaded.sink.table}")
    typer.echo(f"  Column family: {loaded.sink.column_family}")
    typer.echo(f"  Serializer: {serializer.name}")
    typer.echo(f"  Batch size: {loaded.sink.batch_size}")
    typer.echo(f"  Write-ahead log: {'enabled' if loaded.sink.enable_wal else 'disabled'}")


@app.command("create-table")
def create_table(settings: str = SETTINGS_OPTION) -> None:
    """Create the configured table and column family in storage."""
    from tablesink.storage.sql import SqlStorageClient

    loaded = _load(settings)
    try:
        client = SqlStorageClient(loaded.storage.url)
        try:
            client.create_table(loaded.sink.table, [loaded.sink.column_family])
        finally:
            client.close()
    except TableSinkError as e:
        raise _fail(str(e)) from e
    typer.secho(f"Table '{loaded.sink.table}' ready with column family '{loaded.sink.column_family}'.", fg=typer.colors.GREEN)


@app.command()
def check(settings: str = SETTINGS_OPTION) -> None:
    """Run the committer's startup checks against storage."""
    from tablesink.channel.memory import MemoryChannel
    from tablesink.sink.committer import BatchCommitter
    from tablesink.storage.sql import SqlStorageClient

    loaded = _load(settings)
    try:
        client = SqlStorageClient(loaded.storage.url)
        try:
            committer = BatchCommitter(loaded.sink, MemoryChannel(capacity=1), client)
            committer.start()
            committer.close()
        finally:
            client.close()
    except (ConfigurationError, SetupError) as e:
        raise _fail(str(e)) from e
    except TableSinkError as e:
        raise _fail(f"Storage unavailable: {e}") from e
    typer.secho(f"Table '{loaded.sink.table}' and column family '{loaded.sink.column_family}' are ready.", fg=typer.colors.GREEN)


if __name__ == "__main__":
    app()
