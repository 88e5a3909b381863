from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

POLLER_SCHEMA = """
CREATE TABLE IF NOT EXISTS schedule_state (
    job_id TEXT PRIMARY KEY,
    anchor TEXT NOT NULL,
    interval_seconds INTEGER NOT NULL CHECK (interval_seconds > 0)
);

CREATE TABLE IF NOT EXISTS device_metadata (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS observations (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT NOT NULL,
    source_id TEXT NOT NULL,
    fetched_at REAL NOT NULL,
    json TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS observations_fetched_at ON observations (fetched_at);
"""


def _prepare_db_path(db_path: Path) -> Path:
    normalized = Path(db_path)
    normalized.parent.mkdir(parents=True, exist_ok=True)
    return normalized


def connect(db_path: Path) -> sqlite3.Connection:
    normalized = _prepare_db_path(db_path)
    # Ticks run on scheduler worker threads; each operation opens its own connection.
    connection = sqlite3.connect(normalized, timeout=10)
    connection.row_factory = sqlite3.Row
    connection.execute("PRAGMA journal_mode = WAL;")
    connection.execute("PRAGMA synchronous = NORMAL;")
    return connection


def ensure_schema(connection: sqlite3.Connection) -> None:
    connection.executescript(POLLER_SCHEMA)
    connection.commit()


@contextmanager
def open_db(db_path: Path) -> Iterator[sqlite3.Connection]:
    connection = connect(db_path)
    try:
        ensure_schema(connection)
        yield connection
    finally:
        connection.close()


def initialize_database(db_path: Path) -> None:
    with open_db(db_path):
        return
