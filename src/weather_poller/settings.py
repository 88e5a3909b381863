from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

PROJECT_ROOT = Path(__file__).resolve().parents[2]

LocationSourceName = Literal["gps_file", "ip", "static"]


class PollSettings(BaseModel):
    model_config = ConfigDict(extra="ignore")

    interval_seconds: int = Field(default=3600, ge=60, le=86400)
    wake: bool = False
    skip_when_offline: bool = True


class WeatherSettings(BaseModel):
    model_config = ConfigDict(extra="ignore")

    provider: str = "openweathermap"
    api_key: str = Field(default="", repr=False)
    units: Literal["metric"] = "metric"
    language: str = "en"
    timeout_seconds: float = Field(default=10.0, gt=0, le=120)

    @field_validator("provider")
    @classmethod
    def validate_provider(cls, value: str) -> str:
        text = value.strip().lower()
        if not text:
            raise ValueError("weather.provider must not be empty")
        return text

    @field_validator("api_key")
    @classmethod
    def strip_api_key(cls, value: str) -> str:
        return value.strip()


class LocationSettings(BaseModel):
    model_config = ConfigDict(extra="ignore")

    sources: list[LocationSourceName] = Field(default_factory=lambda: ["gps_file", "ip"])
    gps_fix_path: Path = Path("/run/gps/last_fix.json")
    ip_lookup_url: str = "https://ipapi.co/json/"
    latitude: float | None = Field(default=None, ge=-90, le=90)
    longitude: float | None = Field(default=None, ge=-180, le=180)

    @field_validator("sources")
    @classmethod
    def validate_sources(cls, values: list[str]) -> list[str]:
        deduplicated = list(dict.fromkeys(values))
        if not deduplicated:
            raise ValueError("location.sources must contain at least one source")
        return deduplicated

    @model_validator(mode="after")
    def validate_static_coordinates(self) -> LocationSettings:
        has_lat = self.latitude is not None
        has_lon = self.longitude is not None
        if has_lat != has_lon:
            raise ValueError("location.latitude and location.longitude must be set together")
        if "static" in self.sources and not has_lat:
            raise ValueError(
                "location.latitude and location.longitude are required for the 'static' source"
            )
        return self


class ConnectivitySettings(BaseModel):
    model_config = ConfigDict(extra="ignore")

    host: str = "1.1.1.1"
    port: int = Field(default=53, ge=1, le=65535)
    timeout_seconds: float = Field(default=3.0, gt=0, le=60)
    probe_interval_seconds: int = Field(default=60, ge=5, le=3600)


class SinkSettings(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: Literal["sqlite", "log"] = "sqlite"


class DeviceSettings(BaseModel):
    model_config = ConfigDict(extra="ignore")

    user_id: str = "default"

    @field_validator("user_id")
    @classmethod
    def validate_user_id(cls, value: str) -> str:
        text = value.strip()
        if not text:
            raise ValueError("device.user_id must not be empty")
        return text


class WakeAlarmSettings(BaseModel):
    model_config = ConfigDict(extra="ignore")

    path: Path = Path("/sys/class/rtc/rtc0/wakealarm")


class PollerYamlSettings(BaseModel):
    model_config = ConfigDict(extra="ignore")

    poll: PollSettings = Field(default_factory=PollSettings)
    weather: WeatherSettings = Field(default_factory=WeatherSettings)
    location: LocationSettings = Field(default_factory=LocationSettings)
    connectivity: ConnectivitySettings = Field(default_factory=ConnectivitySettings)
    sink: SinkSettings = Field(default_factory=SinkSettings)
    device: DeviceSettings = Field(default_factory=DeviceSettings)
    wake_alarm: WakeAlarmSettings = Field(default_factory=WakeAlarmSettings)


class EnvSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    poller_env: Literal["dev", "test", "prod"] = "dev"
    poller_timezone: str | None = None
    poller_config_path: Path = Path("config/poller.yaml")
    poller_db_path: Path = Path("data/poller.db")
    weather_api_key: str | None = Field(default=None, repr=False)

    @field_validator("poller_timezone")
    @classmethod
    def validate_timezone(cls, value: str | None) -> str | None:
        if value is None or not value.strip():
            return None
        try:
            ZoneInfo(value)
        except ZoneInfoNotFoundError as exc:
            raise ValueError(f"Unknown timezone: {value}") from exc
        return value


class AppSettings(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    env: EnvSettings
    yaml: PollerYamlSettings
    project_root: Path
    config_path: Path
    db_path: Path
    timezone: ZoneInfo | None

    @property
    def weather_api_key(self) -> str:
        if self.env.weather_api_key:
            return self.env.weather_api_key.strip()
        return self.yaml.weather.api_key


def _resolve_project_path(path: Path) -> Path:
    if path.is_absolute():
        return path
    return (PROJECT_ROOT / path).resolve()


def _load_yaml_settings(path: Path) -> PollerYamlSettings:
    if not path.exists():
        raise FileNotFoundError(f"Poller config file not found: {path}")

    raw_config = yaml.safe_load(path.read_text(encoding="utf-8"))
    if raw_config is None:
        raw_config = {}
    if not isinstance(raw_config, dict):
        raise ValueError("Poller config must be a YAML mapping/object at the top level")
    return PollerYamlSettings.model_validate(raw_config)


def build_settings(env: EnvSettings) -> AppSettings:
    config_path = _resolve_project_path(env.poller_config_path)
    db_path = _resolve_project_path(env.poller_db_path)
    return AppSettings(
        env=env,
        yaml=_load_yaml_settings(config_path),
        project_root=PROJECT_ROOT,
        config_path=config_path,
        db_path=db_path,
        timezone=ZoneInfo(env.poller_timezone) if env.poller_timezone else None,
    )


@lru_cache(maxsize=1)
def load_settings() -> AppSettings:
    return build_settings(EnvSettings())
