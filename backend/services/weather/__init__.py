"""Weather report service package."""

from config import settings as app_settings
from services.ai import get_llm_manager
from services.circuit_breaker import CooldownConfig, UpstreamCircuitBreaker

from .adapters.weatherapi import WEATHER_DEPENDENCY, WeatherApiAdapter
from .annotator import EnvironmentalAnnotator
from .cache import WeatherCache
from .orchestrator import WeatherReportOrchestrator, WeatherResult
from .search_client import BraveSearchClient


def build_weather_orchestrator(settings=app_settings) -> WeatherReportOrchestrator:
    """Wire the orchestrator and its dependencies from settings."""
    breaker = UpstreamCircuitBreaker(CooldownConfig(cooldown_seconds=settings.ERROR_COOLDOWN_SECONDS))
    llm = get_llm_manager()
    adapter = WeatherApiAdapter(
        api_key=settings.WEATHERAPI_KEY,
        breaker=breaker.for_dependency(WEATHER_DEPENDENCY),
        base_url=settings.WEATHERAPI_BASE_URL,
        timeout_seconds=settings.UPSTREAM_TIMEOUT_SECONDS,
    )
    annotator = EnvironmentalAnnotator(
        search_client=BraveSearchClient(
            api_key=settings.BRAVE_SEARCH_API_KEY,
            url=settings.BRAVE_SEARCH_URL,
            timeout_seconds=settings.UPSTREAM_TIMEOUT_SECONDS,
        ),
        llm=llm,
        breaker=breaker,
        env_cache_seconds=settings.ENV_CACHE_SECONDS,
    )
    return WeatherReportOrchestrator(
        adapter=adapter,
        annotator=annotator,
        llm=llm,
        breaker=breaker,
        cache=WeatherCache(),
        cache_seconds=settings.WEATHER_CACHE_SECONDS,
    )


weather_report_orchestrator = build_weather_orchestrator()

__all__ = [
    "build_weather_orchestrator",
    "weather_report_orchestrator",
    "WeatherReportOrchestrator",
    "WeatherResult",
]
