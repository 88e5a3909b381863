from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator


class WeatherCondition(str, Enum):
    THUNDER = "THUNDER"
    DRIZZLE = "DRIZZLE"
    RAINY = "RAINY"
    SNOWY = "SNOWY"
    FOGGY = "FOGGY"
    CLEAR = "CLEAR"
    CLOUDY = "CLOUDY"
    STORM = "STORM"
    ICY = "ICY"
    OTHER = "OTHER"
    UNKNOWN = "UNKNOWN"


class LocationProvider(str, Enum):
    GPS = "GPS"
    NETWORK = "NETWORK"
    OTHER = "OTHER"


class Coordinates(BaseModel):
    model_config = ConfigDict(frozen=True)

    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)


class LocationFix(BaseModel):
    model_config = ConfigDict(frozen=True)

    coordinates: Coordinates
    provider: LocationProvider = LocationProvider.OTHER


class WeatherObservation(BaseModel):
    """Normalized current conditions.

    Optional scalars are ``None`` when the provider payload did not carry the
    value; they are never defaulted to zero.
    """

    model_config = ConfigDict(extra="ignore")

    observed_at: float
    fetched_at: float
    sunrise: int | None = Field(default=None, ge=0, lt=24 * 60)
    sunset: int | None = Field(default=None, ge=0, lt=24 * 60)
    temperature_c: float | None = None
    pressure_hpa: float | None = None
    humidity_pct: float | None = None
    cloudiness_pct: float | None = None
    precipitation_mm: float | None = None
    precipitation_period_hours: int | None = None
    condition: WeatherCondition = WeatherCondition.UNKNOWN
    source_name: str

    @model_validator(mode="after")
    def validate_precipitation_pair(self) -> WeatherObservation:
        if (self.precipitation_mm is None) != (self.precipitation_period_hours is None):
            raise ValueError(
                "precipitation_mm and precipitation_period_hours must be set together"
            )
        return self


class WeatherRecord(WeatherObservation):
    location_provider: LocationProvider = LocationProvider.OTHER

    @classmethod
    def from_observation(
        cls, observation: WeatherObservation, location_provider: LocationProvider
    ) -> WeatherRecord:
        return cls(**observation.model_dump(), location_provider=location_provider)


class RecordKey(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_id: str
    source_id: str
