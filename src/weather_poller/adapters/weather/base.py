from __future__ import annotations

from typing import Protocol

from ...domain.models import WeatherObservation


class WeatherProviderError(RuntimeError):
    """Raised when a weather provider request cannot be completed."""


class ProviderTransportError(WeatherProviderError):
    """Raised when the provider could not be reached."""


class ProviderParseError(WeatherProviderError):
    """Raised when the provider response could not be decoded."""


class ProviderInvalidResponse(WeatherProviderError):
    """Raised when the provider marks its own response as unusable."""


class UnknownWeatherProviderError(ValueError):
    """Raised when no provider is registered for a selector."""


class WeatherProvider(Protocol):
    @property
    def source_name(self) -> str:
        """Identifier of the provider, copied verbatim into emitted records."""

    def fetch(self, lat: float, lon: float) -> WeatherObservation:
        """Fetch normalized current conditions for the provided coordinates."""
