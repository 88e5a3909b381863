from __future__ import annotations

from typing import Any, Callable

from .base import (
    ProviderInvalidResponse,
    ProviderParseError,
    ProviderTransportError,
    UnknownWeatherProviderError,
    WeatherProvider,
    WeatherProviderError,
)
from .openweathermap import OpenWeatherMapProvider

SOURCE_OPENWEATHERMAP = "openweathermap"

WEATHER_PROVIDERS: dict[str, Callable[..., WeatherProvider]] = {
    SOURCE_OPENWEATHERMAP: OpenWeatherMapProvider,
}


def build_weather_provider(selector: str, *, api_key: str, **options: Any) -> WeatherProvider | None:
    """Create the provider registered under ``selector``.

    Returns None when ``api_key`` is empty, which disables polling.
    """
    factory = WEATHER_PROVIDERS.get(selector.strip().lower())
    if factory is None:
        raise UnknownWeatherProviderError(f"Unsupported weather provider: {selector}")
    if not api_key:
        return None
    return factory(api_key, **options)


__all__ = [
    "OpenWeatherMapProvider",
    "ProviderInvalidResponse",
    "ProviderParseError",
    "ProviderTransportError",
    "SOURCE_OPENWEATHERMAP",
    "UnknownWeatherProviderError",
    "WEATHER_PROVIDERS",
    "WeatherProvider",
    "WeatherProviderError",
    "build_weather_provider",
]
