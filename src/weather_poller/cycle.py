from __future__ import annotations

import logging
import threading
from enum import Enum
from typing import Callable

from .adapters.weather import WeatherProvider, WeatherProviderError
from .connectivity import ConnectivityGate
from .domain.models import RecordKey, WeatherRecord
from .location.service import LocationResolver
from .sinks import ObservationSink, SinkEmissionError

LOGGER = logging.getLogger(__name__)


class CycleOutcome(str, Enum):
    EMITTED = "emitted"
    EMIT_FAILED = "emit_failed"
    SKIPPED_BUSY = "skipped_busy"
    SKIPPED_OFFLINE = "skipped_offline"
    SKIPPED_NO_PROVIDER = "skipped_no_provider"
    SKIPPED_NO_LOCATION = "skipped_no_location"
    SKIPPED_FETCH_FAILED = "skipped_fetch_failed"
    FAILED = "failed"


class PollCycle:
    """One location -> weather -> sink pass, at most one at a time."""

    def __init__(
        self,
        *,
        resolver: LocationResolver,
        provider: Callable[[], WeatherProvider | None],
        sink: ObservationSink,
        gate: ConnectivityGate,
        key: RecordKey,
        skip_when_offline: bool = True,
    ) -> None:
        self._resolver = resolver
        self._provider = provider
        self._sink = sink
        self._gate = gate
        self._key = key
        self._skip_when_offline = skip_when_offline
        self._running = threading.Lock()
        self.last_outcome: CycleOutcome | None = None
        self.last_record: WeatherRecord | None = None

    @property
    def key(self) -> RecordKey:
        return self._key

    def run(self) -> CycleOutcome:
        if not self._running.acquire(blocking=False):
            LOGGER.warning("Previous weather poll still running. Skipping this tick.")
            return CycleOutcome.SKIPPED_BUSY
        outcome = CycleOutcome.FAILED
        try:
            outcome = self._run_once()
        finally:
            self._running.release()
            self.last_outcome = outcome
        return outcome

    def _run_once(self) -> CycleOutcome:
        if not self._gate.is_connected:
            LOGGER.warning("No internet connection. Skipping weather query.")
            if self._skip_when_offline:
                return CycleOutcome.SKIPPED_OFFLINE

        provider = self._provider()
        if provider is None:
            LOGGER.warning("No weather provider configured. Skipping weather query.")
            return CycleOutcome.SKIPPED_NO_PROVIDER

        fix = self._resolver.resolve()
        if fix is None:
            LOGGER.warning("Could not retrieve location. No input for the weather provider.")
            return CycleOutcome.SKIPPED_NO_LOCATION

        coordinates = fix.coordinates
        LOGGER.info(
            "Location: (%s,%s) from %s",
            coordinates.latitude,
            coordinates.longitude,
            fix.provider.value,
        )

        try:
            observation = provider.fetch(coordinates.latitude, coordinates.longitude)
        except WeatherProviderError as exc:
            LOGGER.warning("Could not get weather from %s: %s", provider.source_name, exc)
            return CycleOutcome.SKIPPED_FETCH_FAILED

        record = WeatherRecord.from_observation(observation, fix.provider)
        try:
            self._sink.emit(self._key, record)
        except SinkEmissionError:
            LOGGER.exception("Weather record could not be emitted")
            return CycleOutcome.EMIT_FAILED

        self.last_record = record
        LOGGER.info(
            "Weather: %s temp=%s condition=%s sunrise=%s sunset=%s",
            record.source_name,
            record.temperature_c,
            record.condition.value,
            record.sunrise,
            record.sunset,
        )
        return CycleOutcome.EMITTED
