"""Pure helpers that turn provider readings into the normalized schema."""

from __future__ import annotations

from datetime import datetime, timezone, tzinfo
from decimal import Decimal
from typing import Callable

from .models import WeatherCondition

PRECIPITATION_PERIOD_HOURS = 3

# Ordered rules, first match wins.
_CONDITION_RULES: tuple[tuple[Callable[[int], bool], WeatherCondition], ...] = (
    (lambda code: 200 <= code < 300, WeatherCondition.THUNDER),
    (lambda code: 300 <= code < 400, WeatherCondition.DRIZZLE),
    (lambda code: 500 <= code < 600, WeatherCondition.RAINY),
    (lambda code: 600 <= code < 700, WeatherCondition.SNOWY),
    (lambda code: code in (701, 721, 741), WeatherCondition.FOGGY),
    (lambda code: code == 800, WeatherCondition.CLEAR),
    (lambda code: 800 < code < 900, WeatherCondition.CLOUDY),
    # tornado, tropical storm, hurricane, windy and high wind to hurricane
    (lambda code: code in (900, 901, 902, 905) or code >= 957, WeatherCondition.STORM),
    # hail
    (lambda code: code == 906, WeatherCondition.ICY),
)


def classify_weather_code(code: int) -> WeatherCondition:
    for matches, condition in _CONDITION_RULES:
        if matches(code):
            return condition
    return WeatherCondition.OTHER


def aggregate_precipitation(
    rain_mm: float | None, snow_mm: float | None
) -> tuple[float | None, int | None]:
    """Sum rain and snow over the fixed accumulation window.

    Returns ``(None, None)`` when neither reading is present. Values are added
    as decimals built from their string form so ``2.0 + 1.5`` is exactly
    ``3.5`` and ``0.1 + 0.2`` is ``0.3``.
    """
    present = [value for value in (rain_mm, snow_mm) if value is not None]
    if not present:
        return None, None

    total = sum((Decimal(str(value)) for value in present), Decimal(0))
    return float(total), PRECIPITATION_PERIOD_HOURS


def _to_local_datetime(
    instant: datetime | float | int | None, tz: tzinfo | None
) -> datetime | None:
    if instant is None:
        return None

    if isinstance(instant, datetime):
        if instant.tzinfo is None:
            instant = instant.replace(tzinfo=timezone.utc)
        if instant.timestamp() == 0:
            return None
        return instant.astimezone(tz)

    if instant == 0:
        return None
    # astimezone(None) resolves the OS zone at conversion time.
    return datetime.fromtimestamp(instant, tz=timezone.utc).astimezone(tz)


def time_of_day_minutes(
    instant: datetime | float | int | None, *, tz: tzinfo | None = None
) -> int | None:
    """Whole minutes since local midnight, or None for an absent/zero instant."""
    local = _to_local_datetime(instant, tz)
    if local is None:
        return None
    return local.hour * 60 + local.minute


def time_of_day_hours(
    instant: datetime | float | int | None, *, tz: tzinfo | None = None
) -> float | None:
    """Hours since local midnight with second precision."""
    local = _to_local_datetime(instant, tz)
    if local is None:
        return None
    return local.hour + local.minute / 60 + local.second / 3600
