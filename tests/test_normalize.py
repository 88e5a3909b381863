from __future__ import annotations

from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from weather_poller.domain.models import WeatherCondition
from weather_poller.domain.normalize import (
    PRECIPITATION_PERIOD_HOURS,
    aggregate_precipitation,
    classify_weather_code,
    time_of_day_hours,
    time_of_day_minutes,
)


@pytest.mark.parametrize(
    ("codes", "expected"),
    [
        (range(200, 300), WeatherCondition.THUNDER),
        (range(300, 400), WeatherCondition.DRIZZLE),
        (range(500, 600), WeatherCondition.RAINY),
        (range(600, 700), WeatherCondition.SNOWY),
    ],
)
def test_classify_bands(codes: range, expected: WeatherCondition) -> None:
    assert {classify_weather_code(code) for code in codes} == {expected}


@pytest.mark.parametrize(
    ("code", "expected"),
    [
        (701, WeatherCondition.FOGGY),
        (721, WeatherCondition.FOGGY),
        (741, WeatherCondition.FOGGY),
        (711, WeatherCondition.OTHER),
        (800, WeatherCondition.CLEAR),
        (801, WeatherCondition.CLOUDY),
        (804, WeatherCondition.CLOUDY),
        (900, WeatherCondition.STORM),
        (902, WeatherCondition.STORM),
        (905, WeatherCondition.STORM),
        (957, WeatherCondition.STORM),
        (1200, WeatherCondition.STORM),
        (906, WeatherCondition.ICY),
        (903, WeatherCondition.OTHER),
        (400, WeatherCondition.OTHER),
        (0, WeatherCondition.OTHER),
        (-5, WeatherCondition.OTHER),
    ],
)
def test_classify_specific_codes(code: int, expected: WeatherCondition) -> None:
    assert classify_weather_code(code) is expected


def test_aggregate_without_readings_is_absent() -> None:
    assert aggregate_precipitation(None, None) == (None, None)


def test_aggregate_single_channel() -> None:
    assert aggregate_precipitation(2.0, None) == (2.0, PRECIPITATION_PERIOD_HOURS)
    assert aggregate_precipitation(None, 1.5) == (1.5, 3)


def test_aggregate_sums_without_float_drift() -> None:
    assert aggregate_precipitation(2.0, 1.5) == (3.5, 3)
    assert aggregate_precipitation(0.1, 0.2) == (0.3, 3)


def test_aggregate_zero_reading_is_still_present() -> None:
    assert aggregate_precipitation(0.0, None) == (0.0, 3)


def test_time_of_day_absent_and_zero_epoch() -> None:
    assert time_of_day_minutes(None) is None
    assert time_of_day_hours(None) is None
    assert time_of_day_minutes(0) is None
    assert time_of_day_minutes(datetime(1970, 1, 1, tzinfo=timezone.utc)) is None
    assert time_of_day_hours(datetime(1970, 1, 1, tzinfo=timezone.utc)) is None


def test_time_of_day_in_given_zone() -> None:
    berlin = ZoneInfo("Europe/Berlin")
    instant = datetime(2024, 1, 15, 6, 15, 30, tzinfo=berlin)

    assert time_of_day_minutes(instant, tz=berlin) == 375
    assert time_of_day_hours(instant, tz=berlin) == pytest.approx(6.258333, abs=1e-5)


def test_time_of_day_accepts_epoch_seconds() -> None:
    instant = datetime(2024, 7, 1, 6, 15, 30, tzinfo=timezone.utc)

    assert time_of_day_minutes(instant.timestamp(), tz=timezone.utc) == 375
    assert time_of_day_minutes(int(instant.timestamp()), tz=timezone.utc) == 375


def test_time_of_day_uses_offset_at_conversion_zone() -> None:
    offset = timezone(timedelta(hours=-5))
    instant = datetime(2024, 7, 1, 11, 15, tzinfo=timezone.utc)

    assert time_of_day_minutes(instant, tz=offset) == 375


def test_time_of_day_defaults_to_system_zone() -> None:
    instant = datetime(2024, 7, 1, 6, 15, 30, tzinfo=timezone.utc)
    local = instant.astimezone()

    assert time_of_day_minutes(instant) == local.hour * 60 + local.minute
