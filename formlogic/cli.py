"""CLI entry point for formlogic.

Commands:
    formlogic init      write a starter config in the current directory
    formlogic migrate   create the database tables
    formlogic load      import a JSON file of records
    formlogic assemble  print view models for a form as JSON
    formlogic serve     start the API server
"""

import json
import os
import sqlite3
import sys
from pathlib import Path
from typing import Any

import click

from formlogic.config import (
    CONFIG_FILENAME,
    ConfigError,
    check_config,
    configure_logging,
    load_config,
    starter_config,
)


def _load_settings() -> dict[str, Any]:
    """Load config, letting FORMLOGIC_DB override the database path.

    With FORMLOGIC_DB set, a missing config file falls back to the defaults.
    """
    env_db = os.environ.get("FORMLOGIC_DB")
    try:
        if env_db is not None and not (Path.cwd() / CONFIG_FILENAME).exists():
            config = check_config({"db_path": env_db})
        else:
            config = load_config()
    except ConfigError as e:
        click.echo(f"Config error: {e}", err=True)
        sys.exit(1)
    if env_db is not None:
        config["db_path"] = str(Path(env_db).expanduser())

    configure_logging(config)
    return config


def _open_db(config: dict[str, Any]) -> sqlite3.Connection:
    """Open and migrate the configured database, exiting on failure."""
    from db.migrations import SchemaTooNew, init_db

    try:
        return init_db(config["db_path"])
    except (SchemaTooNew, sqlite3.Error) as e:
        click.echo(f"Database error: {e}", err=True)
        sys.exit(1)


@click.group()
def main() -> None:
    """formlogic: rule evaluation for dynamic, repeatable forms."""


@main.command()
def init() -> None:
    """Create a starter formlogic.config.json."""
    config_path = Path.cwd() / CONFIG_FILENAME

    if config_path.exists():
        click.echo(f"Config already exists: {config_path}")
        return

    config_path.write_text(json.dumps(starter_config(), indent=2) + "\n")
    click.echo(f"Created {config_path}")


@main.command()
def migrate() -> None:
    """Create the database tables."""
    config = _load_settings()
    _open_db(config).close()
    click.echo(f"Database ready: {config['db_path']}")


@main.command()
@click.argument("records_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def load(records_file: Path) -> None:
    """Import columns, layouts, conditions, rows and cells from a JSON file."""
    from db.store import import_records
    from formlogic.records import InvalidRecord

    config = _load_settings()

    try:
        payload = json.loads(records_file.read_text())
    except json.JSONDecodeError as e:
        click.echo(f"Invalid JSON in {records_file}: {e}", err=True)
        sys.exit(1)

    conn = _open_db(config)
    try:
        counts = import_records(conn, payload)
    except (InvalidRecord, sqlite3.IntegrityError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    finally:
        conn.close()

    summary = ", ".join(f"{n} {kind}" for kind, n in counts.items())
    click.echo(f"Imported {summary}")


@main.command()
@click.option("--form", "form_id", required=True, help="Id of the form (top-level layout)")
@click.option("--row", "row_id", default=None, help="Id of the row; omit for the form-wide view")
@click.option("--all-rows", is_flag=True, help="Assemble every row of the form")
@click.option("--offline", is_flag=True, help="Assemble as an offline client")
def assemble(form_id: str, row_id: str | None, all_rows: bool, offline: bool) -> None:
    """Print the assembled view model(s) of a form as JSON."""
    from db.store import load_snapshot
    from formlogic.assembler import AssemblyError, FormAssembler
    from formlogic.tree import CycleDetected, DanglingParent

    if all_rows and row_id is not None:
        click.echo("Error: --row and --all-rows are mutually exclusive", err=True)
        sys.exit(2)

    config = _load_settings()
    online = config.get("online", True) and not offline

    conn = _open_db(config)
    try:
        snapshot = load_snapshot(conn, form_id)
    finally:
        conn.close()

    try:
        assembler = FormAssembler(snapshot, strict=bool(config.get("strict_tree")))
        if all_rows:
            views = assembler.assemble_rows(
                form_id, online=online, max_workers=config.get("max_workers")
            )
            output: Any = [v.to_dict() for v in views]
        else:
            output = assembler.assemble(form_id, row_id, online=online).to_dict()
    except (AssemblyError, CycleDetected, DanglingParent) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    click.echo(json.dumps(output, indent=2))


@main.command()
@click.option("--host", default=None, help="Bind address (default from config)")
@click.option("--port", default=None, type=int, help="Port (default from config)")
def serve(host: str | None, port: int | None) -> None:
    """Start the formlogic API server."""
    import uvicorn

    from api.app import create_app

    config = _load_settings()
    _open_db(config).close()

    app = create_app(config["db_path"], config)
    uvicorn.run(
        app,
        host=host or config.get("host", "127.0.0.1"),
        port=port or config.get("port", 8000),
        log_level=config.get("log_level", "INFO").lower(),
    )
