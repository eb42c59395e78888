"""Shared fixtures for weather report tests."""

import sys
from pathlib import Path

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

from datetime import datetime, timedelta

import pytest

from services.weather.adapters.base import RawWeatherPayload


class FakeClock:
    """Settable naive-UTC clock."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


# ---------------------------------------------------------------------------
# WeatherAPI.com forecast.json fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def weatherapi_body():
    """A realistic forecast.json body for Sapporo at 14:05 local time."""
    return {
        "location": {
            "name": "Sapporo",
            "region": "Hokkaido",
            "country": "Japan",
            "tz_id": "Asia/Tokyo",
            "localtime": "2025-03-01 14:05",
        },
        "current": {
            "temp_c": 5.2,
            "feelslike_c": 2.1,
            "humidity": 40,
            "wind_kph": 10,
            "wind_dir": "N",
            "pressure_mb": 1013,
            "condition": {"text": "晴れ", "code": 1000},
            "air_quality": {"pm2_5": 12.3, "pm10": 20.1},
        },
        "forecast": {
            "forecastday": [
                {
                    "date": "2025-03-01",
                    "day": {"maxtemp_c": 8.0, "mintemp_c": 1.0, "daily_chance_of_rain": 10},
                    "hour": [
                        {
                            "time": f"2025-03-01 {h:02d}:00",
                            "temp_c": round(1.0 + h * 0.25, 1),
                            "condition": {"text": "晴れ" if 6 <= h < 18 else "曇り"},
                        }
                        for h in range(24)
                    ],
                }
            ]
        },
    }


@pytest.fixture
def sapporo_payload(weatherapi_body):
    return RawWeatherPayload.from_weatherapi(weatherapi_body)


@pytest.fixture
def clock():
    return FakeClock(datetime(2025, 3, 1, 5, 5, 0))
