from __future__ import annotations

import json
import logging
import sqlite3
from pathlib import Path

from ..domain.models import RecordKey, WeatherRecord
from ..storage.observations import insert_observation
from .base import SinkEmissionError

LOGGER = logging.getLogger(__name__)


class SqliteObservationSink:
    def __init__(self, db_path: Path) -> None:
        self._db_path = Path(db_path)

    def emit(self, key: RecordKey, record: WeatherRecord) -> None:
        try:
            row_id = insert_observation(self._db_path, key, record)
        except (sqlite3.Error, OSError) as exc:
            raise SinkEmissionError(f"Failed to store observation in {self._db_path}") from exc
        LOGGER.debug("Stored observation %s for source %s", row_id, key.source_id)


class LoggingObservationSink:
    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._logger = logger or LOGGER

    def emit(self, key: RecordKey, record: WeatherRecord) -> None:
        self._logger.info(
            "Weather record %s: %s",
            key.model_dump_json(),
            json.dumps(record.model_dump(mode="json"), separators=(",", ":")),
        )
