from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Any

import pytest

from weather_poller.domain.models import (
    Coordinates,
    LocationProvider,
    RecordKey,
    WeatherCondition,
    WeatherObservation,
    WeatherRecord,
)
from weather_poller.storage.db import initialize_database
from weather_poller.storage.state import ScheduleState


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    path = tmp_path / "poller.db"
    initialize_database(path)
    return path


@pytest.fixture
def record_key() -> RecordKey:
    return RecordKey(user_id="user-1", source_id="source-1")


def make_observation(**overrides: Any) -> WeatherObservation:
    values: dict[str, Any] = {
        "observed_at": 1_700_000_000.0,
        "fetched_at": 1_700_000_000.0,
        "sunrise": 375,
        "sunset": 1110,
        "temperature_c": 12.5,
        "pressure_hpa": 1013.0,
        "humidity_pct": 81.0,
        "cloudiness_pct": 40.0,
        "precipitation_mm": None,
        "precipitation_period_hours": None,
        "condition": WeatherCondition.CLOUDY,
        "source_name": "FakeWeather",
    }
    values.update(overrides)
    return WeatherObservation(**values)


def make_record(**overrides: Any) -> WeatherRecord:
    location_provider = overrides.pop("location_provider", LocationProvider.GPS)
    return WeatherRecord.from_observation(make_observation(**overrides), location_provider)


class FakeLocationSource:
    def __init__(
        self,
        provider: LocationProvider,
        coordinates: Coordinates | None = None,
        error: Exception | None = None,
    ) -> None:
        self.provider = provider
        self._coordinates = coordinates
        self._error = error
        self.calls = 0

    def last_known_location(self) -> Coordinates | None:
        self.calls += 1
        if self._error is not None:
            raise self._error
        return self._coordinates


class FakeProvider:
    def __init__(
        self,
        observation: WeatherObservation | None = None,
        error: Exception | None = None,
    ) -> None:
        self._observation = observation or make_observation()
        self._error = error
        self.calls: list[tuple[float, float]] = []

    @property
    def source_name(self) -> str:
        return "FakeWeather"

    def fetch(self, lat: float, lon: float) -> WeatherObservation:
        self.calls.append((lat, lon))
        if self._error is not None:
            raise self._error
        return self._observation


class RecordingSink:
    def __init__(self, error: Exception | None = None) -> None:
        self.emitted: list[tuple[RecordKey, WeatherRecord]] = []
        self._error = error

    def emit(self, key: RecordKey, record: WeatherRecord) -> None:
        if self._error is not None:
            raise self._error
        self.emitted.append((key, record))


class MemoryScheduleStore:
    def __init__(self, state: ScheduleState | None = None) -> None:
        self.states: dict[str, ScheduleState] = {}
        if state is not None:
            self.states[state.job_id] = state

    def load(self, job_id: str) -> ScheduleState | None:
        return self.states.get(job_id)

    def save(self, job_id: str, *, anchor: datetime, interval_seconds: int) -> None:
        self.states[job_id] = ScheduleState(
            job_id=job_id, anchor=anchor, interval_seconds=interval_seconds
        )
