from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable

import pytest

from conftest import FakeLocationSource, FakeProvider, MemoryScheduleStore, RecordingSink
from weather_poller.adapters.weather import OpenWeatherMapProvider
from weather_poller.connectivity import ConnectivityGate, SocketProbeConnectivitySource
from weather_poller.cycle import CycleOutcome
from weather_poller.domain.models import Coordinates, LocationProvider, RecordKey
from weather_poller.location.service import LocationResolver
from weather_poller.manager import (
    CONNECTIVITY_PROBE_JOB_ID,
    PollerStatus,
    WeatherPollManager,
    build_manager,
)
from weather_poller.scheduler import POLL_JOB_ID, PollScheduler, SchedulerState
from weather_poller.settings import EnvSettings, build_settings
from weather_poller.sinks import LoggingObservationSink
from weather_poller.storage.state import ScheduleState

HERE = Coordinates(latitude=48.78, longitude=9.18)


class _StaticConnectivity(SocketProbeConnectivitySource):
    def __init__(self, reachable: bool = True) -> None:
        super().__init__("127.0.0.1", 9)
        self.reachable = reachable

    def is_reachable(self) -> bool:
        return self.reachable


def _manager(
    *,
    sources: list[FakeLocationSource] | None = None,
    provider: FakeProvider | None = None,
    sink: RecordingSink | None = None,
    connectivity: _StaticConnectivity | None = None,
    connected: bool = True,
) -> WeatherPollManager:
    # A persisted anchor in the future keeps the scheduler from firing during the test.
    anchor = datetime.now(timezone.utc) + timedelta(hours=1)
    store = MemoryScheduleStore(ScheduleState(POLL_JOB_ID, anchor, 3600))

    def scheduler_factory(run: Callable[[], object]) -> PollScheduler:
        return PollScheduler(run, interval_seconds=3600, state_store=store)

    return WeatherPollManager(
        resolver=LocationResolver(
            [FakeLocationSource(LocationProvider.GPS, HERE)] if sources is None else sources
        ),
        sink=sink or RecordingSink(),
        gate=ConnectivityGate(connected=connected),
        connectivity=connectivity or _StaticConnectivity(),
        scheduler_factory=scheduler_factory,
        key=RecordKey(user_id="user-1", source_id="source-1"),
        provider=provider,
    )


def test_process_weather_emits_record() -> None:
    sink = RecordingSink()
    manager = _manager(provider=FakeProvider(), sink=sink)

    assert manager.process_weather() is CycleOutcome.EMITTED
    assert len(sink.emitted) == 1
    assert manager.status is PollerStatus.READY


def test_process_weather_without_sources_disconnects() -> None:
    manager = _manager(sources=[], provider=FakeProvider())

    assert manager.process_weather() is CycleOutcome.SKIPPED_NO_LOCATION
    assert manager.status is PollerStatus.DISCONNECTED


def test_set_source_builds_provider() -> None:
    manager = _manager()

    manager.set_source("OpenWeatherMap", "secret")

    assert isinstance(manager.provider, OpenWeatherMapProvider)
    assert manager.provider.source_name == "OpenWeatherMap"


def test_set_source_with_empty_key_disables_polling() -> None:
    manager = _manager(provider=FakeProvider())

    manager.set_source("openweathermap", "")

    assert manager.provider is None
    assert manager.process_weather() is CycleOutcome.SKIPPED_NO_PROVIDER


def test_unknown_source_keeps_current_provider(caplog: pytest.LogCaptureFixture) -> None:
    provider = FakeProvider()
    manager = _manager(provider=provider)

    with caplog.at_level(logging.ERROR):
        manager.set_source("darksky", "secret")

    assert manager.provider is provider
    assert "darksky" in caplog.text


def test_start_registers_connectivity_and_schedules() -> None:
    connectivity = _StaticConnectivity(reachable=True)
    manager = _manager(connectivity=connectivity, connected=False)

    manager.start()
    try:
        assert manager.status is PollerStatus.CONNECTED
        assert manager.gate.is_connected is True
        assert manager.scheduler.state is SchedulerState.SCHEDULED
        assert manager.scheduler._scheduler.get_job(CONNECTIVITY_PROBE_JOB_ID) is not None

        connectivity.reachable = False
        connectivity.probe()
        assert manager.gate.is_connected is False

        description = manager.describe()
        assert description["status"] == "connected"
        assert description["scheduler_state"] == "scheduled"
        assert description["interval_seconds"] == 3600
        assert description["next_tick_utc"] is not None
        assert description["connected"] is False
        assert description["provider"] is None
        assert description["last_outcome"] is None
    finally:
        manager.close()

    assert manager.status is PollerStatus.DISCONNECTED
    assert manager.scheduler.state is SchedulerState.STOPPED
    manager.close()


def test_set_interval_is_forwarded() -> None:
    manager = _manager()
    manager.start()
    try:
        manager.set_interval(1800)
        assert manager.describe()["interval_seconds"] == 1800
    finally:
        manager.close()


def test_build_manager_from_settings(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("WEATHER_API_KEY", raising=False)
    config_path = tmp_path / "poller.yaml"
    config_path.write_text(
        """
weather:
  api_key: secret
location:
  sources: [static]
  latitude: 48.78
  longitude: 9.18
sink:
  type: log
device:
  user_id: kitchen
""",
        encoding="utf-8",
    )
    settings = build_settings(
        EnvSettings(
            _env_file=None,
            poller_config_path=config_path,
            poller_db_path=tmp_path / "poller.db",
        )
    )

    manager = build_manager(settings)

    assert isinstance(manager.provider, OpenWeatherMapProvider)
    assert isinstance(manager.cycle._sink, LoggingObservationSink)
    assert manager.cycle.key.user_id == "kitchen"
    assert manager.cycle.key.source_id
    assert build_manager(settings).cycle.key == manager.cycle.key
    assert manager.scheduler.state is SchedulerState.IDLE
