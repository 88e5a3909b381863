from __future__ import annotations

import json
import time
from datetime import tzinfo
from http.client import HTTPException
from typing import Any, Literal
from urllib.error import HTTPError, URLError
from urllib.parse import urlencode
from urllib.request import Request, urlopen

from ...domain.models import WeatherCondition, WeatherObservation
from ...domain.normalize import (
    aggregate_precipitation,
    classify_weather_code,
    time_of_day_minutes,
)
from .base import ProviderInvalidResponse, ProviderParseError, ProviderTransportError

OPENWEATHERMAP_BASE_URL = "https://api.openweathermap.org"
CURRENT_WEATHER_PATH = "/data/2.5/weather"
DEFAULT_TIMEOUT_SECONDS = 10
SOURCE_NAME = "OpenWeatherMap"


def _fetch_json(url: str, *, timeout: float) -> Any:
    request = Request(url, headers={"User-Agent": "weather-poller/0.1"})
    try:
        with urlopen(request, timeout=timeout) as response:
            body = response.read()
    except HTTPError as exc:
        # OpenWeatherMap answers errors with a JSON body carrying "cod".
        try:
            return json.loads(exc.read().decode("utf-8"))
        except (OSError, ValueError):
            raise ProviderTransportError(
                f"OpenWeatherMap request failed with HTTP {exc.code}"
            ) from exc
    except (URLError, TimeoutError, OSError, HTTPException) as exc:
        raise ProviderTransportError("Failed to reach the OpenWeatherMap API") from exc

    try:
        return json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ProviderParseError("OpenWeatherMap response was not valid JSON") from exc


def _group(payload: dict[str, Any], name: str) -> dict[str, Any] | None:
    value = payload.get(name)
    if value is None:
        return None
    if not isinstance(value, dict):
        raise ProviderParseError(f"OpenWeatherMap field '{name}' was not an object")
    return value


def _optional_float(group: dict[str, Any] | None, key: str, *, field_name: str) -> float | None:
    if group is None or group.get(key) is None:
        return None
    value = group[key]
    if isinstance(value, bool):
        raise ProviderParseError(f"Invalid numeric value for {field_name}")
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise ProviderParseError(f"Invalid numeric value for {field_name}") from exc


def _time_of_day(
    group: dict[str, Any] | None, key: str, *, field_name: str, tz: tzinfo | None
) -> int | None:
    instant = _optional_float(group, key, field_name=field_name)
    try:
        return time_of_day_minutes(instant, tz=tz)
    except (OverflowError, ValueError, OSError) as exc:
        raise ProviderParseError(f"Timestamp out of range for {field_name}") from exc


def _is_valid(payload: dict[str, Any]) -> bool:
    code = payload.get("cod")
    try:
        return int(code) == 200
    except (TypeError, ValueError):
        return False


class OpenWeatherMapProvider:
    def __init__(
        self,
        api_key: str,
        *,
        units: Literal["metric"] = "metric",
        language: str = "en",
        base_url: str = OPENWEATHERMAP_BASE_URL,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        tz: tzinfo | None = None,
    ) -> None:
        self._api_key = api_key
        self._units = units
        self._language = language
        self._base_url = base_url.rstrip("/")
        self._timeout_seconds = timeout_seconds
        self._tz = tz

    @property
    def source_name(self) -> str:
        return SOURCE_NAME

    def __repr__(self) -> str:
        return f"OpenWeatherMapProvider(base_url={self._base_url!r})"

    def fetch(self, lat: float, lon: float) -> WeatherObservation:
        params = {
            "lat": f"{lat:.5f}",
            "lon": f"{lon:.5f}",
            "appid": self._api_key,
            "units": self._units,
            "lang": self._language,
        }
        url = f"{self._base_url}{CURRENT_WEATHER_PATH}?{urlencode(params)}"
        payload = _fetch_json(url, timeout=self._timeout_seconds)
        if not isinstance(payload, dict):
            raise ProviderParseError("Unexpected OpenWeatherMap response shape")

        if not _is_valid(payload):
            raise ProviderInvalidResponse(
                "Could not get weather data from the OpenWeatherMap API for latitude "
                f"{lat} and longitude {lon}: {payload.get('message', 'invalid response')}"
            )
        return self._parse_observation(payload)

    def _parse_observation(self, payload: dict[str, Any]) -> WeatherObservation:
        timestamp = time.time()

        main = _group(payload, "main")
        clouds = _group(payload, "clouds")
        sys_group = _group(payload, "sys")
        rain = _group(payload, "rain")
        snow = _group(payload, "snow")

        precipitation, period = aggregate_precipitation(
            _optional_float(rain, "3h", field_name="rain.3h"),
            _optional_float(snow, "3h", field_name="snow.3h"),
        )

        return WeatherObservation(
            observed_at=timestamp,
            fetched_at=timestamp,
            sunrise=_time_of_day(sys_group, "sunrise", field_name="sys.sunrise", tz=self._tz),
            sunset=_time_of_day(sys_group, "sunset", field_name="sys.sunset", tz=self._tz),
            temperature_c=_optional_float(main, "temp", field_name="main.temp"),
            pressure_hpa=_optional_float(main, "pressure", field_name="main.pressure"),
            humidity_pct=_optional_float(main, "humidity", field_name="main.humidity"),
            cloudiness_pct=_optional_float(clouds, "all", field_name="clouds.all"),
            precipitation_mm=precipitation,
            precipitation_period_hours=period,
            condition=self._parse_condition(payload.get("weather")),
            source_name=self.source_name,
        )

    @staticmethod
    def _parse_condition(entries: Any) -> WeatherCondition:
        if entries is None:
            return WeatherCondition.UNKNOWN
        if not isinstance(entries, list):
            raise ProviderParseError("OpenWeatherMap field 'weather' was not a list")
        if not entries:
            return WeatherCondition.UNKNOWN

        # Primary condition comes first.
        primary = entries[0]
        if not isinstance(primary, dict) or primary.get("id") is None:
            return WeatherCondition.UNKNOWN
        try:
            code = int(primary["id"])
        except (TypeError, ValueError, OverflowError) as exc:
            raise ProviderParseError("Invalid integer value for weather[0].id") from exc
        return classify_weather_code(code)
