from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from ..domain.models import RecordKey, WeatherRecord
from .db import open_db


def insert_observation(db_path: Path, key: RecordKey, record: WeatherRecord) -> int:
    payload_json = json.dumps(
        record.model_dump(mode="json"), ensure_ascii=True, separators=(",", ":")
    )
    with open_db(db_path) as connection:
        cursor = connection.execute(
            """
            INSERT INTO observations (user_id, source_id, fetched_at, json)
            VALUES (?, ?, ?, ?)
            """,
            (key.user_id, key.source_id, record.fetched_at, payload_json),
        )
        connection.commit()
        return int(cursor.lastrowid)


def get_latest_observation(db_path: Path) -> dict[str, Any] | None:
    with open_db(db_path) as connection:
        row = connection.execute(
            """
            SELECT user_id, source_id, json FROM observations
            ORDER BY fetched_at DESC, id DESC
            LIMIT 1
            """
        ).fetchone()

    if row is None:
        return None
    return {
        "key": {"user_id": row["user_id"], "source_id": row["source_id"]},
        "record": json.loads(row["json"]),
    }


def count_observations(db_path: Path) -> int:
    with open_db(db_path) as connection:
        row = connection.execute("SELECT COUNT(*) AS total FROM observations").fetchone()
    return int(row["total"])
