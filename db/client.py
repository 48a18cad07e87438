"""SQLite connections for formlogic.

Connections run in WAL mode with foreign keys on, and wait up to
``timeout`` seconds for another writer's lock before failing.
"""

import sqlite3
from pathlib import Path

DEFAULT_TIMEOUT = 5.0


def get_connection(db_path: str | Path, timeout: float = DEFAULT_TIMEOUT) -> sqlite3.Connection:
    """Open a formlogic database, creating its directory if needed."""
    path = Path(db_path).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)

    # FastAPI runs sync dependencies and handlers on different worker threads
    conn = sqlite3.connect(str(path), timeout=timeout, check_same_thread=False)
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")
    conn.row_factory = sqlite3.Row
    return conn
