from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional, Union

from ..cities import CityConfig

Number = Union[int, float]


def _num(value: Any) -> Optional[Number]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value
    return None


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


@dataclass
class HourlyForecast:
    """One entry of the provider's hourly list for today."""

    time: Optional[str] = None  # provider local time, "YYYY-MM-DD HH:MM"
    temp_c: Optional[Number] = None
    condition: Optional[str] = None

    @classmethod
    def from_weatherapi(cls, data: dict) -> "HourlyForecast":
        return cls(
            time=_text(data.get("time")),
            temp_c=_num(data.get("temp_c")),
            condition=_text((data.get("condition") or {}).get("text")),
        )


@dataclass
class DailyForecast:
    """Today's forecast summary plus the hourly breakdown."""

    maxtemp_c: Optional[Number] = None
    mintemp_c: Optional[Number] = None
    daily_chance_of_rain: Optional[Number] = None
    hours: list[HourlyForecast] = field(default_factory=list)

    @classmethod
    def from_weatherapi(cls, data: dict) -> "DailyForecast":
        day = data.get("day") or {}
        return cls(
            maxtemp_c=_num(day.get("maxtemp_c")),
            mintemp_c=_num(day.get("mintemp_c")),
            daily_chance_of_rain=_num(day.get("daily_chance_of_rain")),
            hours=[HourlyForecast.from_weatherapi(h) for h in data.get("hour") or [] if isinstance(h, dict)],
        )


@dataclass
class AirQuality:
    pm2_5: Optional[Number] = None

    @classmethod
    def from_weatherapi(cls, data: dict) -> "AirQuality":
        return cls(pm2_5=_num(data.get("pm2_5")))


@dataclass
class RawWeatherPayload:
    """Provider data for one city, normalized just enough to format.

    Units are the provider's (°C, km/h, hPa, %, μg/m³); nothing is converted.
    ``raw`` keeps the untouched response so a report can be re-rendered
    without another fetch.
    """

    condition: Optional[str] = None
    temp_c: Optional[Number] = None
    feelslike_c: Optional[Number] = None
    humidity: Optional[Number] = None
    wind_kph: Optional[Number] = None
    wind_dir: Optional[str] = None
    pressure_mb: Optional[Number] = None
    forecast: Optional[DailyForecast] = None
    air_quality: Optional[AirQuality] = None
    localtime: Optional[str] = None
    location_name: Optional[str] = None
    raw: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_weatherapi(cls, data: dict) -> "RawWeatherPayload":
        """Build from a WeatherAPI.com ``forecast.json`` response body."""
        current = data.get("current") or {}
        location = data.get("location") or {}
        forecast_days = (data.get("forecast") or {}).get("forecastday") or []
        today = forecast_days[0] if forecast_days and isinstance(forecast_days[0], dict) else None
        aqi = current.get("air_quality")

        return cls(
            condition=_text((current.get("condition") or {}).get("text")),
            temp_c=_num(current.get("temp_c")),
            feelslike_c=_num(current.get("feelslike_c")),
            humidity=_num(current.get("humidity")),
            wind_kph=_num(current.get("wind_kph")),
            wind_dir=_text(current.get("wind_dir")),
            pressure_mb=_num(current.get("pressure_mb")),
            forecast=DailyForecast.from_weatherapi(today) if today is not None else None,
            air_quality=AirQuality.from_weatherapi(aqi) if isinstance(aqi, dict) else None,
            localtime=_text(location.get("localtime")),
            location_name=_text(location.get("name")),
            raw=data,
        )


class WeatherProviderAdapter(ABC):
    """Upstream weather provider interface."""

    @abstractmethod
    async def fetch_weather(self, city: CityConfig) -> RawWeatherPayload:
        """Fetch current, forecast and air-quality data for ``city``.

        Raises ``UpstreamUnavailable`` on any non-success; never returns
        placeholder data.
        """
        raise NotImplementedError
