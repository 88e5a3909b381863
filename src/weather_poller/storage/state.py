from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from .db import open_db

SOURCE_ID_KEY = "source_id"


@dataclass(slots=True)
class ScheduleState:
    job_id: str
    anchor: datetime
    interval_seconds: int


def _normalize_datetime(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def get_schedule_state(db_path: Path, job_id: str) -> ScheduleState | None:
    with open_db(db_path) as connection:
        row = connection.execute(
            "SELECT job_id, anchor, interval_seconds FROM schedule_state WHERE job_id = ?",
            (job_id,),
        ).fetchone()

    if row is None:
        return None

    return ScheduleState(
        job_id=row["job_id"],
        anchor=_normalize_datetime(datetime.fromisoformat(row["anchor"])),
        interval_seconds=int(row["interval_seconds"]),
    )


def set_schedule_state(
    db_path: Path,
    job_id: str,
    *,
    anchor: datetime,
    interval_seconds: int,
) -> None:
    if interval_seconds <= 0:
        raise ValueError("interval_seconds must be > 0")

    with open_db(db_path) as connection:
        connection.execute(
            """
            INSERT INTO schedule_state (job_id, anchor, interval_seconds)
            VALUES (?, ?, ?)
            ON CONFLICT(job_id) DO UPDATE SET
                anchor=excluded.anchor,
                interval_seconds=excluded.interval_seconds
            """,
            (job_id, _normalize_datetime(anchor).isoformat(), interval_seconds),
        )
        connection.commit()


def get_or_create_source_id(db_path: Path) -> str:
    """Return the installation's source id, generating it on first use."""
    with open_db(db_path) as connection:
        connection.execute(
            "INSERT OR IGNORE INTO device_metadata (key, value) VALUES (?, ?)",
            (SOURCE_ID_KEY, str(uuid.uuid4())),
        )
        connection.commit()
        row = connection.execute(
            "SELECT value FROM device_metadata WHERE key = ?",
            (SOURCE_ID_KEY,),
        ).fetchone()
    return str(row["value"])


class SqliteScheduleStore:
    """Schedule persistence bound to one database file."""

    def __init__(self, db_path: Path) -> None:
        self._db_path = Path(db_path)

    def load(self, job_id: str) -> ScheduleState | None:
        return get_schedule_state(self._db_path, job_id)

    def save(self, job_id: str, *, anchor: datetime, interval_seconds: int) -> None:
        set_schedule_state(self._db_path, job_id, anchor=anchor, interval_seconds=interval_seconds)
