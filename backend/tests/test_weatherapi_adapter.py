import json
import sys
from pathlib import Path

import httpx
import pytest

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

from services.circuit_breaker import UpstreamCircuitBreaker
from services.weather.adapters import weatherapi
from services.weather.adapters.weatherapi import WEATHER_DEPENDENCY, WeatherApiAdapter
from services.weather.cities import resolve
from services.weather.errors import ConfigurationMissing, UpstreamUnavailable


class _FakeResponse:
    def __init__(self, status_code: int, payload, text: str | None = None):
        self.status_code = status_code
        self._payload = payload
        self.text = text if text is not None else json.dumps(payload, ensure_ascii=False)

    def json(self):
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload


def _install_client(monkeypatch, outcome, requests):
    class FakeAsyncClient:
        def __init__(self, *args, **kwargs):
            requests.append({"client_kwargs": kwargs})

        async def __aenter__(self):
            return self

        async def __aexit__(self, exc_type, exc, tb):
            return False

        async def get(self, url, params=None, headers=None):
            requests.append({"url": url, "params": params})
            if isinstance(outcome, Exception):
                raise outcome
            return outcome

    monkeypatch.setattr(weatherapi.httpx, "AsyncClient", FakeAsyncClient)


def _adapter(breaker, api_key="test-key"):
    return WeatherApiAdapter(
        api_key=api_key,
        breaker=breaker.for_dependency(WEATHER_DEPENDENCY),
        base_url="https://api.weatherapi.com/v1",
        timeout_seconds=10.0,
    )


@pytest.mark.asyncio
async def test_fetch_weather_requests_forecast_with_air_quality(monkeypatch, weatherapi_body):
    requests = []
    _install_client(monkeypatch, _FakeResponse(200, weatherapi_body), requests)
    breaker = UpstreamCircuitBreaker()

    payload = await _adapter(breaker).fetch_weather(resolve("takasaki"))

    assert requests[0]["client_kwargs"] == {"timeout": 10.0}
    assert requests[1]["url"] == "https://api.weatherapi.com/v1/forecast.json"
    params = requests[1]["params"]
    assert params["q"] == "Takasaki,Japan"
    assert params["days"] == 1
    assert params["aqi"] == "yes"
    assert params["lang"] == "ja"

    assert payload.condition == "晴れ"
    assert payload.temp_c == 5.2
    assert payload.forecast.maxtemp_c == 8.0
    assert len(payload.forecast.hours) == 24
    assert payload.air_quality.pm2_5 == 12.3
    assert payload.localtime == "2025-03-01 14:05"
    assert breaker.is_available(WEATHER_DEPENDENCY)


@pytest.mark.asyncio
async def test_optional_sections_missing_parse_as_none(monkeypatch, weatherapi_body):
    del weatherapi_body["forecast"]
    del weatherapi_body["current"]["air_quality"]
    _install_client(monkeypatch, _FakeResponse(200, weatherapi_body), [])

    payload = await _adapter(UpstreamCircuitBreaker()).fetch_weather(resolve("sapporo"))

    assert payload.forecast is None
    assert payload.air_quality is None
    assert payload.humidity == 40


@pytest.mark.asyncio
async def test_non_200_raises_upstream_unavailable_with_provider_message(monkeypatch):
    body = {"error": {"code": 2006, "message": "API key is invalid."}}
    _install_client(monkeypatch, _FakeResponse(401, body), [])
    breaker = UpstreamCircuitBreaker()

    with pytest.raises(UpstreamUnavailable) as exc_info:
        await _adapter(breaker).fetch_weather(resolve("sapporo"))

    assert exc_info.value.status_code == 401
    assert "API key is invalid." in exc_info.value.details
    assert exc_info.value.dependency == WEATHER_DEPENDENCY
    assert not breaker.is_available(WEATHER_DEPENDENCY)


@pytest.mark.asyncio
async def test_network_error_raises_upstream_unavailable(monkeypatch):
    _install_client(monkeypatch, httpx.ConnectError("connection refused"), [])
    breaker = UpstreamCircuitBreaker()

    with pytest.raises(UpstreamUnavailable) as exc_info:
        await _adapter(breaker).fetch_weather(resolve("sapporo"))

    assert exc_info.value.status_code is None
    assert breaker.get_mark(WEATHER_DEPENDENCY) is not None


@pytest.mark.asyncio
async def test_timeout_raises_upstream_unavailable(monkeypatch):
    _install_client(monkeypatch, httpx.ReadTimeout("slow"), [])

    with pytest.raises(UpstreamUnavailable) as exc_info:
        await _adapter(UpstreamCircuitBreaker()).fetch_weather(resolve("sapporo"))

    assert "timed out" in exc_info.value.details


@pytest.mark.asyncio
async def test_body_without_current_conditions_is_rejected(monkeypatch):
    _install_client(monkeypatch, _FakeResponse(200, {"location": {"name": "Sapporo"}}), [])

    with pytest.raises(UpstreamUnavailable):
        await _adapter(UpstreamCircuitBreaker()).fetch_weather(resolve("sapporo"))


@pytest.mark.asyncio
async def test_invalid_json_is_rejected(monkeypatch):
    _install_client(monkeypatch, _FakeResponse(200, ValueError("bad json"), text="<html>"), [])

    with pytest.raises(UpstreamUnavailable):
        await _adapter(UpstreamCircuitBreaker()).fetch_weather(resolve("sapporo"))


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "body",
    [
        {"current": {"condition": "晴れ"}},
        {"current": {"temp_c": 1.0}, "location": "Sapporo"},
        {"current": {"temp_c": 1.0}, "forecast": {"forecastday": {"date": "2025-03-01"}}},
        {"current": {"temp_c": 1.0}, "forecast": {"forecastday": [{"day": "sunny"}]}},
        {"current": {"temp_c": 1.0}, "forecast": {"forecastday": [{"day": {}, "hour": 3}]}},
    ],
)
async def test_malformed_body_raises_upstream_unavailable_and_records_mark(monkeypatch, body):
    _install_client(monkeypatch, _FakeResponse(200, body), [])
    breaker = UpstreamCircuitBreaker()

    with pytest.raises(UpstreamUnavailable) as exc_info:
        await _adapter(breaker).fetch_weather(resolve("sapporo"))

    assert "malformed" in exc_info.value.details
    assert not breaker.is_available(WEATHER_DEPENDENCY)


@pytest.mark.asyncio
async def test_missing_key_raises_without_network_call(monkeypatch):
    requests = []
    _install_client(monkeypatch, _FakeResponse(200, {}), requests)
    breaker = UpstreamCircuitBreaker()

    with pytest.raises(ConfigurationMissing) as exc_info:
        await _adapter(breaker, api_key=None).fetch_weather(resolve("sapporo"))

    assert exc_info.value.setting == "WEATHERAPI_KEY"
    assert isinstance(exc_info.value, UpstreamUnavailable)
    assert requests == []
    assert breaker.is_available(WEATHER_DEPENDENCY)


@pytest.mark.asyncio
async def test_success_clears_previous_failure_mark(monkeypatch, weatherapi_body):
    _install_client(monkeypatch, _FakeResponse(200, weatherapi_body), [])
    breaker = UpstreamCircuitBreaker()
    breaker.record_failure(WEATHER_DEPENDENCY, "earlier outage")

    await _adapter(breaker).fetch_weather(resolve("sapporo"))

    assert breaker.get_mark(WEATHER_DEPENDENCY) is None
