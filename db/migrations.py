"""Schema creation for formlogic.

CREATE statements use IF NOT EXISTS, so migrations can run on every start.
The applied schema version is kept in ``PRAGMA user_version``; a database
written by a newer formlogic is refused rather than modified.

Can be run directly:
    python -m db.migrations [db_path]
"""

import logging
import sqlite3
import sys
from pathlib import Path

from db.client import get_connection
from db.schema import INDEXES, SCHEMA_VERSION, TABLE_CREATION_ORDER, TABLES

logger = logging.getLogger(__name__)


class SchemaTooNew(RuntimeError):
    """Raised when the database was created by a newer schema version."""


def schema_version(conn: sqlite3.Connection) -> int:
    return conn.execute("PRAGMA user_version").fetchone()[0]


def run_migrations(conn: sqlite3.Connection) -> None:
    """Bring the database up to SCHEMA_VERSION. Idempotent.

    Raises:
        SchemaTooNew: If the database reports a later version.
    """
    current = schema_version(conn)
    if current > SCHEMA_VERSION:
        raise SchemaTooNew(
            f"Database schema version {current} is newer than supported version {SCHEMA_VERSION}"
        )

    for table_name in TABLE_CREATION_ORDER:
        conn.execute(TABLES[table_name])
    for statement in INDEXES:
        conn.execute(statement)

    if current < SCHEMA_VERSION:
        logger.info("Migrated database schema from version %d to %d", current, SCHEMA_VERSION)
        # PRAGMA does not accept bound parameters
        conn.execute(f"PRAGMA user_version = {int(SCHEMA_VERSION)}")
    conn.commit()


def init_db(db_path: str | Path) -> sqlite3.Connection:
    """Open a connection, run migrations, and return the ready connection."""
    conn = get_connection(db_path)
    try:
        run_migrations(conn)
    except (sqlite3.Error, SchemaTooNew):
        conn.close()
        raise
    return conn


def main() -> None:
    """Run migrations on the given path (default ./formlogic.db) and report."""
    db_path = sys.argv[1] if len(sys.argv) > 1 else "formlogic.db"

    conn = init_db(db_path)
    tables = [
        t[0]
        for t in conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' ORDER BY name"
        ).fetchall()
    ]
    print(f"{db_path}: schema version {schema_version(conn)}, tables {', '.join(tables)}")
    conn.close()


if __name__ == "__main__":
    main()
