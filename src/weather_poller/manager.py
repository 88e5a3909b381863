from __future__ import annotations

import logging
import threading
from enum import Enum
from typing import Any, Callable

from .adapters.weather import (
    UnknownWeatherProviderError,
    WeatherProvider,
    build_weather_provider,
)
from .connectivity import ConnectivityGate, SocketProbeConnectivitySource
from .cycle import CycleOutcome, PollCycle
from .domain.models import RecordKey
from .location.service import (
    GpsFixFileSource,
    IpGeolocationSource,
    LocationResolver,
    LocationSource,
    StaticLocationSource,
)
from .scheduler import PollScheduler, RtcWakeAlarm
from .settings import AppSettings
from .sinks import LoggingObservationSink, ObservationSink, SqliteObservationSink
from .storage.state import SqliteScheduleStore, get_or_create_source_id

LOGGER = logging.getLogger(__name__)

CONNECTIVITY_PROBE_JOB_ID = "connectivity_probe_job"


class PollerStatus(str, Enum):
    READY = "ready"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"


class WeatherPollManager:
    """Wires location, provider, sink and schedule together for one device."""

    def __init__(
        self,
        *,
        resolver: LocationResolver,
        sink: ObservationSink,
        gate: ConnectivityGate,
        connectivity: SocketProbeConnectivitySource,
        scheduler_factory: Callable[[Callable[[], object]], PollScheduler],
        key: RecordKey,
        provider: WeatherProvider | None = None,
        skip_when_offline: bool = True,
        probe_interval_seconds: int = 60,
        provider_options: dict[str, Any] | None = None,
    ) -> None:
        self._resolver = resolver
        self._gate = gate
        self._connectivity = connectivity
        self._provider = provider
        self._provider_lock = threading.Lock()
        self._provider_options = provider_options or {}
        self._probe_interval_seconds = probe_interval_seconds
        self._closed = False
        self.status = PollerStatus.READY
        self.cycle = PollCycle(
            resolver=resolver,
            provider=self._current_provider,
            sink=sink,
            gate=gate,
            key=key,
            skip_when_offline=skip_when_offline,
        )
        self.scheduler: PollScheduler = scheduler_factory(self.process_weather)

    @property
    def provider(self) -> WeatherProvider | None:
        return self._current_provider()

    @property
    def gate(self) -> ConnectivityGate:
        return self._gate

    def _current_provider(self) -> WeatherProvider | None:
        with self._provider_lock:
            return self._provider

    def set_source(self, selector: str, api_key: str) -> None:
        try:
            provider = build_weather_provider(selector, api_key=api_key, **self._provider_options)
        except UnknownWeatherProviderError:
            LOGGER.error(
                "The weather api '%s' is not recognised. Please set a different weather api source.",
                selector,
            )
            return

        with self._provider_lock:
            self._provider = provider
        if provider is None:
            LOGGER.warning("Weather api key is empty; weather polling is disabled")
        else:
            LOGGER.info("Weather provider set to %s", provider.source_name)

    def set_interval(self, interval_seconds: int) -> None:
        self.scheduler.set_interval(interval_seconds)

    def process_weather(self) -> CycleOutcome:
        if not self._resolver.sources:
            LOGGER.error("Cannot get location without any location source.")
            self.status = PollerStatus.DISCONNECTED
        return self.cycle.run()

    def start(self) -> None:
        self.status = PollerStatus.READY
        LOGGER.info("Starting weather poll manager")
        self._gate.register(self._connectivity)
        self.scheduler.start()
        self.scheduler.add_interval_job(
            self._connectivity.probe,
            seconds=self._probe_interval_seconds,
            job_id=CONNECTIVITY_PROBE_JOB_ID,
        )
        self.status = PollerStatus.CONNECTED

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._gate.unregister()
        self.scheduler.stop()
        self.status = PollerStatus.DISCONNECTED
        LOGGER.info("Weather poll manager closed")

    def describe(self) -> dict[str, Any]:
        next_tick = self.scheduler.next_tick_at
        provider = self.provider
        return {
            "status": self.status.value,
            "scheduler_state": self.scheduler.state.value,
            "interval_seconds": self.scheduler.interval_seconds,
            "next_tick_utc": next_tick.isoformat() if next_tick else None,
            "connected": self._gate.is_connected,
            "provider": provider.source_name if provider else None,
            "last_outcome": self.cycle.last_outcome.value if self.cycle.last_outcome else None,
        }


def _build_location_sources(settings: AppSettings) -> list[LocationSource]:
    location = settings.yaml.location
    sources: list[LocationSource] = []
    for name in location.sources:
        if name == "gps_file":
            sources.append(GpsFixFileSource(location.gps_fix_path))
        elif name == "ip":
            sources.append(IpGeolocationSource(location.ip_lookup_url))
        elif name == "static":
            sources.append(StaticLocationSource(location.latitude, location.longitude))
        else:
            raise ValueError(f"Unsupported location source: {name}")
    return sources


def _build_sink(settings: AppSettings) -> ObservationSink:
    if settings.yaml.sink.type == "log":
        return LoggingObservationSink()
    return SqliteObservationSink(settings.db_path)


def build_manager(settings: AppSettings) -> WeatherPollManager:
    poll = settings.yaml.poll
    weather = settings.yaml.weather
    connectivity = settings.yaml.connectivity
    provider_options = {
        "units": weather.units,
        "language": weather.language,
        "timeout_seconds": weather.timeout_seconds,
        "tz": settings.timezone,
    }
    key = RecordKey(
        user_id=settings.yaml.device.user_id,
        source_id=get_or_create_source_id(settings.db_path),
    )
    store = SqliteScheduleStore(settings.db_path)
    wake_alarm = RtcWakeAlarm(settings.yaml.wake_alarm.path) if poll.wake else None

    def scheduler_factory(run: Callable[[], object]) -> PollScheduler:
        return PollScheduler(
            run,
            interval_seconds=poll.interval_seconds,
            state_store=store,
            wake=poll.wake,
            wake_alarm=wake_alarm,
        )

    manager = WeatherPollManager(
        resolver=LocationResolver(_build_location_sources(settings)),
        sink=_build_sink(settings),
        gate=ConnectivityGate(),
        connectivity=SocketProbeConnectivitySource(
            connectivity.host,
            connectivity.port,
            timeout=connectivity.timeout_seconds,
        ),
        scheduler_factory=scheduler_factory,
        key=key,
        skip_when_offline=poll.skip_when_offline,
        probe_interval_seconds=connectivity.probe_interval_seconds,
        provider_options=provider_options,
    )
    manager.set_source(weather.provider, settings.weather_api_key)
    return manager
