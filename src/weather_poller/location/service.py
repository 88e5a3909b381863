from __future__ import annotations

import json
import logging
from pathlib import Path
from http.client import HTTPException
from typing import Any, Iterable, Protocol
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from pydantic import ValidationError

from ..domain.models import Coordinates, LocationFix, LocationProvider

LOGGER = logging.getLogger(__name__)

IP_GEOLOCATION_URL = "https://ipapi.co/json/"
DEFAULT_TIMEOUT_SECONDS = 10

# Most precise first.
PROVIDER_RANK = {
    LocationProvider.GPS: 0,
    LocationProvider.NETWORK: 1,
    LocationProvider.OTHER: 2,
}


class LocationUnavailableError(RuntimeError):
    """Raised when a location source cannot produce a fix."""


class LocationSource(Protocol):
    provider: LocationProvider

    def last_known_location(self) -> Coordinates | None:
        """Return the last known coordinates, or None if there are none."""


def _fetch_json(url: str) -> dict[str, Any]:
    request = Request(url, headers={"User-Agent": "weather-poller/0.1"})
    try:
        with urlopen(request, timeout=DEFAULT_TIMEOUT_SECONDS) as response:
            payload = json.loads(response.read().decode("utf-8"))
    except (
        HTTPError,
        URLError,
        TimeoutError,
        HTTPException,
        UnicodeDecodeError,
        json.JSONDecodeError,
    ) as exc:
        raise LocationUnavailableError(f"Location lookup failed for {url}") from exc

    if not isinstance(payload, dict):
        return {}
    return payload


def _coordinates(lat: Any, lon: Any) -> Coordinates | None:
    if lat is None or lon is None:
        return None
    try:
        return Coordinates(latitude=lat, longitude=lon)
    except ValidationError:
        return None


class GpsFixFileSource:
    """Last fix written by the GPS daemon as ``{"lat": .., "lon": ..}``."""

    provider = LocationProvider.GPS

    def __init__(self, path: Path) -> None:
        self._path = Path(path)

    def last_known_location(self) -> Coordinates | None:
        if not self._path.exists():
            return None
        try:
            payload = json.loads(self._path.read_text(encoding="utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise LocationUnavailableError(f"GPS fix file is not valid JSON: {self._path}") from exc
        if not isinstance(payload, dict):
            return None
        return _coordinates(payload.get("lat"), payload.get("lon"))


class IpGeolocationSource:
    provider = LocationProvider.NETWORK

    def __init__(self, url: str = IP_GEOLOCATION_URL) -> None:
        self._url = url

    def last_known_location(self) -> Coordinates | None:
        payload = _fetch_json(self._url)
        return _coordinates(payload.get("latitude"), payload.get("longitude"))


class StaticLocationSource:
    provider = LocationProvider.OTHER

    def __init__(self, latitude: float, longitude: float) -> None:
        self._coordinates = Coordinates(latitude=latitude, longitude=longitude)

    def last_known_location(self) -> Coordinates | None:
        return self._coordinates


class LocationResolver:
    def __init__(self, sources: Iterable[LocationSource]) -> None:
        # Stable sort keeps the configured order within a precision class.
        self._sources = sorted(sources, key=lambda source: PROVIDER_RANK.get(source.provider, 2))

    @property
    def sources(self) -> list[LocationSource]:
        return list(self._sources)

    def resolve(self) -> LocationFix | None:
        for source in self._sources:
            try:
                coordinates = source.last_known_location()
            except PermissionError:
                LOGGER.warning("Not authorized to read location from %s", type(source).__name__)
                continue
            except (LocationUnavailableError, OSError) as exc:
                LOGGER.warning("Location source %s failed: %s", type(source).__name__, exc)
                continue

            if coordinates is None:
                continue

            provider = source.provider
            if provider not in (LocationProvider.GPS, LocationProvider.NETWORK):
                provider = LocationProvider.OTHER
            return LocationFix(coordinates=coordinates, provider=provider)
        return None
