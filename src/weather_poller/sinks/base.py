from __future__ import annotations

from typing import Protocol

from ..domain.models import RecordKey, WeatherRecord


class SinkEmissionError(RuntimeError):
    """Raised when the downstream sink does not accept a record."""


class ObservationSink(Protocol):
    def emit(self, key: RecordKey, record: WeatherRecord) -> None:
        """Hand a record to the downstream system."""
