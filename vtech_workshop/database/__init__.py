# database/__init__.py
from __future__ import annotations

import logging
import sqlite3
from pathlib import Path

from ..config import DB_PATH
from ..constants import SCHEMA_VERSION, TABLE_SCHEMA_VERSION
from . import schema as schema_module
from .seeders.default_data import seed as seed_default_data

_log = logging.getLogger(__name__)

# seconds a writer waits for another connection's BEGIN IMMEDIATE to finish
BUSY_TIMEOUT_S = 10.0


def _record_schema_version(conn: sqlite3.Connection) -> None:
    conn.execute(
        f"CREATE TABLE IF NOT EXISTS {TABLE_SCHEMA_VERSION}("
        "id INTEGER PRIMARY KEY CHECK (id=1), version TEXT NOT NULL)"
    )
    row = conn.execute(f"SELECT version FROM {TABLE_SCHEMA_VERSION} WHERE id=1").fetchone()
    if row is None:
        conn.execute(
            f"INSERT INTO {TABLE_SCHEMA_VERSION}(id, version) VALUES (1, ?)", (SCHEMA_VERSION,)
        )
    elif row["version"] != SCHEMA_VERSION:
        _log.info("schema version %s -> %s", row["version"], SCHEMA_VERSION)
        conn.execute(
            f"UPDATE {TABLE_SCHEMA_VERSION} SET version=? WHERE id=1", (SCHEMA_VERSION,)
        )


def get_connection(db_path: Path | str | None = None, *, seed: bool = True) -> sqlite3.Connection:
    """
    Open the workshop database at `db_path` (default: the configured
    DB_PATH), applying the schema first.

    The connection has foreign keys on, WAL journaling, a busy timeout for
    concurrent writers and sqlite3.Row rows. With `seed=True` the default
    logins and expense categories are created on an empty database.
    """
    path = Path(db_path) if db_path is not None else DB_PATH
    path.parent.mkdir(parents=True, exist_ok=True)

    schema_module.init_schema(path)

    conn = sqlite3.connect(path, timeout=BUSY_TIMEOUT_S)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON;")
    conn.execute("PRAGMA journal_mode = WAL;")

    _record_schema_version(conn)
    if seed:
        seed_default_data(conn)
    conn.commit()
    return conn


__all__ = [
    "get_connection",
]
