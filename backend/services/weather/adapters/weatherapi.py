from __future__ import annotations

from typing import Any, Optional

import httpx

from services.circuit_breaker import DependencyBreaker
from utils.logger import get_logger

from ..cities import CityConfig
from ..errors import ConfigurationMissing, UpstreamUnavailable
from .base import RawWeatherPayload, WeatherProviderAdapter

logger = get_logger("weatherapi")

WEATHER_DEPENDENCY = "weather"


def _error_message(response: httpx.Response) -> str:
    """WeatherAPI errors look like {"error": {"code": 1006, "message": "..."}}."""
    try:
        data: Any = response.json()
    except ValueError:
        data = None
    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, dict) and str(error.get("message") or "").strip():
            return str(error["message"]).strip()
    text = (response.text or "").strip()
    return text[:200] if text else "no response body"


class WeatherApiAdapter(WeatherProviderAdapter):
    """WeatherAPI.com ``forecast.json`` client (current + today + AQI)."""

    def __init__(
        self,
        api_key: Optional[str],
        breaker: DependencyBreaker,
        base_url: str = "https://api.weatherapi.com/v1",
        timeout_seconds: float = 10.0,
    ):
        self._api_key = api_key
        self.breaker = breaker
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout_seconds

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    async def fetch_weather(self, city: CityConfig) -> RawWeatherPayload:
        if not self._api_key:
            raise ConfigurationMissing(WEATHER_DEPENDENCY, "WEATHERAPI_KEY")

        params = {
            "key": self._api_key,
            "q": city.upstream_query_name,
            "days": 1,
            "aqi": "yes",
            "alerts": "no",
            "lang": "ja",
        }
        logger.info("Fetching weather data", city=city.id, query=city.upstream_query_name)

        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.get(f"{self._base_url}/forecast.json", params=params)
        except httpx.TimeoutException as exc:
            raise self._failed(city, f"Weather API timed out after {self._timeout:g}s") from exc
        except httpx.RequestError as exc:
            raise self._failed(city, f"Weather API request failed: {type(exc).__name__}") from exc

        if response.status_code != 200:
            raise self._failed(
                city,
                f"Weather API responded with status {response.status_code}: {_error_message(response)}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise self._failed(city, "Weather API returned invalid JSON") from exc
        if not isinstance(data, dict) or not isinstance(data.get("current"), dict):
            raise self._failed(city, "Weather API response is missing current conditions")

        try:
            payload = RawWeatherPayload.from_weatherapi(data)
        except (AttributeError, KeyError, TypeError) as exc:
            raise self._failed(city, "Weather API response is malformed") from exc

        self.breaker.record_success()
        return payload

    def _failed(self, city: CityConfig, message: str, status_code: Optional[int] = None) -> UpstreamUnavailable:
        self.breaker.record_failure(message, {"city": city.id, "status_code": status_code})
        return UpstreamUnavailable(WEATHER_DEPENDENCY, message, status_code=status_code)
