"""FastAPI dependency injection and snapshot helpers for formlogic."""

import sqlite3
from collections.abc import Generator
from typing import Any

from db.client import get_connection
from db.store import load_snapshot
from formlogic.assembler import FormAssembler


# Module-level DB path and config, set by create_app()
_db_path: str = ""
_config: dict[str, Any] = {}


def set_db_path(path: str) -> None:
    """Set the database path used by the DB dependency."""
    global _db_path  # noqa: PLW0603
    _db_path = path


def set_config(config: dict[str, Any] | None) -> None:
    """Set the config dict used for assembly options."""
    global _config  # noqa: PLW0603
    _config = dict(config or {})


def get_config() -> dict[str, Any]:
    return _config


def get_db() -> Generator[sqlite3.Connection, None, None]:
    """FastAPI dependency that yields a DB connection per request."""
    conn = get_connection(_db_path)
    try:
        yield conn
    finally:
        conn.close()


def get_assembler(conn: sqlite3.Connection, form_id: str) -> FormAssembler:
    """Load a fresh snapshot for one form and index it for assembly."""
    snapshot = load_snapshot(conn, form_id)
    return FormAssembler(snapshot, strict=bool(_config.get("strict_tree", False)))
