"""Weather report orchestrator.

Decides per request whether to serve the cache or refresh from the
weather provider, and degrades (stale cache, then AI fallback) when the
provider fails.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional

from services.ai.llm_provider import LLMManager
from services.circuit_breaker import UpstreamCircuitBreaker
from utils.logger import ContextLogger, weather_logger as logger
from utils.utcnow import seconds_since, utcnow

from .adapters.base import WeatherProviderAdapter
from .adapters.weatherapi import WEATHER_DEPENDENCY
from .annotator import EnvironmentalAnnotator
from .cache import WeatherCache, WeatherReport
from .cities import SUPPORTED_CITIES, CityConfig, is_registered, resolve
from .errors import FallbackUnavailable, UpstreamUnavailable
from .prompts import FALLBACK_REPORT_PROMPT
from .report_formatter import format_report

_JST = timezone(timedelta(hours=9))


def format_cached_at(age_seconds: float) -> str:
    """Relative age label shown next to a cached report."""
    minutes = max(0, int(age_seconds / 60 + 0.5))
    if minutes < 60:
        return f"{minutes}分前"
    return f"{minutes // 60}時間前"


@dataclass
class WeatherResult:
    """A served report plus how it was produced."""

    text: str
    from_cache: bool = False
    cached_at_label: Optional[str] = None
    is_ai_fallback: bool = False

    def to_response(self) -> dict[str, Any]:
        body: dict[str, Any] = {"text": self.text, "fromCache": self.from_cache}
        if self.from_cache and self.cached_at_label is not None:
            body["cachedAt"] = self.cached_at_label
        if self.is_ai_fallback:
            body["isAIFallback"] = True
        return body


class WeatherReportOrchestrator:
    """Cache-or-refresh policy for city weather reports.

    Decision order for a request:
      1. ``force_refresh`` always fetches.
      2. Weather provider cooling down and a cache entry exists -> cache.
      3. Cache absent or older than ``cache_seconds`` -> fetch.
      4. Otherwise -> cache.

    A failed fetch serves the previous entry when there is one, otherwise
    an LLM-written report; if that fails too, ``FallbackUnavailable``.
    Fetches for one city are serialized by a per-city lock. Non-forced
    callers that waited on the lock re-check the cache first, so
    concurrent requests for a stale city share a single upstream call.
    """

    def __init__(
        self,
        adapter: WeatherProviderAdapter,
        annotator: EnvironmentalAnnotator,
        llm: Optional[LLMManager],
        breaker: UpstreamCircuitBreaker,
        cache: Optional[WeatherCache] = None,
        cache_seconds: int = 12 * 60 * 60,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._adapter = adapter
        self._annotator = annotator
        self._llm = llm
        self._breaker = breaker
        self._weather_breaker = breaker.for_dependency(WEATHER_DEPENDENCY)
        self._cache = cache if cache is not None else WeatherCache()
        self._cache_seconds = cache_seconds
        self._clock = clock
        self._fetch_count = 0
        self._fallback_count = 0

    @property
    def cache(self) -> WeatherCache:
        return self._cache

    async def get_weather(
        self,
        city_id: str,
        force_refresh: bool = False,
        prompt: Optional[str] = None,
    ) -> WeatherResult:
        city = resolve(city_id)
        if not is_registered(city_id):
            logger.warning("Unknown city requested, using default", requested=city_id, city=city.id)

        if not force_refresh:
            served = self._serve_cached(city)
            if served is not None:
                return served

        async with self._cache.lock_for(city.id):
            if not force_refresh:
                # Another request may have refreshed while we waited.
                served = self._serve_cached(city)
                if served is not None:
                    return served
            return await self._refresh(city, force_refresh=force_refresh, prompt=prompt)

    def clear_cache(self) -> int:
        """Empty the report cache and the environmental summary cache."""
        removed = self._cache.clear()
        self._annotator.clear_cache()
        logger.info("Weather cache cleared", removed=removed)
        return removed

    def get_status(self) -> dict[str, Any]:
        now = self._clock()
        cities = []
        for city_id, report in sorted(self._cache.snapshot().items()):
            age = seconds_since(report.fetched_at, now)
            cities.append(
                {
                    "city": city_id,
                    "fetchedAt": report.fetched_at.isoformat() + "Z",
                    "ageSeconds": round(age),
                    "age": format_cached_at(age),
                    "fresh": age < self._cache_seconds,
                }
            )
        return {
            "cacheSeconds": self._cache_seconds,
            "cachedCities": cities,
            "registeredCities": [c.id for c in SUPPORTED_CITIES],
            "upstreamFetches": self._fetch_count,
            "aiFallbacks": self._fallback_count,
            "breaker": self._breaker.get_stats(),
        }

    def _serve_cached(self, city: CityConfig) -> Optional[WeatherResult]:
        """Return the cached report when policy says no fetch is needed."""
        cached = self._cache.get(city.id)
        if cached is None:
            return None

        if not self._weather_breaker.is_available():
            logger.info(
                "Weather provider cooling down, serving cache",
                city=city.id,
                remaining_seconds=round(self._weather_breaker.remaining_seconds()),
            )
            return self._from_cache(cached)

        age = seconds_since(cached.fetched_at, self._clock())
        if age >= self._cache_seconds:
            logger.info("Cached report is stale", city=city.id, age_minutes=int(age // 60))
            return None

        logger.info("Serving cached report", city=city.id, age_minutes=int(age // 60))
        return self._from_cache(cached)

    def _from_cache(self, report: WeatherReport) -> WeatherResult:
        age = seconds_since(report.fetched_at, self._clock())
        return WeatherResult(
            text=report.formatted_text,
            from_cache=True,
            cached_at_label=format_cached_at(age),
        )

    async def _refresh(self, city: CityConfig, force_refresh: bool, prompt: Optional[str]) -> WeatherResult:
        log = logger.with_context(city=city.id)
        log.info("Refreshing weather report", force_refresh=force_refresh)
        self._fetch_count += 1
        try:
            payload = await self._adapter.fetch_weather(city)
        except UpstreamUnavailable as exc:
            return await self._degrade(city, exc, prompt, log)

        summaries = await self._annotator.annotate(city.display_name, force_refresh=force_refresh)
        fetched_at = self._clock()
        local_now = fetched_at.replace(tzinfo=timezone.utc).astimezone(_JST)
        text = format_report(payload, summaries, city, now=local_now)

        self._cache.put(
            WeatherReport(city_id=city.id, raw_payload=payload, formatted_text=text, fetched_at=fetched_at)
        )
        log.info("Weather report cached")
        return WeatherResult(text=text, from_cache=False)

    async def _degrade(
        self, city: CityConfig, error: UpstreamUnavailable, prompt: Optional[str], log: ContextLogger
    ) -> WeatherResult:
        cached = self._cache.get(city.id)
        if cached is not None:
            log.warning(
                "Weather fetch failed, serving stale cache",
                dependency=error.dependency,
                error=error.details,
            )
            return self._from_cache(cached)

        log.warning(
            "Weather fetch failed with no cache, using AI fallback",
            dependency=error.dependency,
            error=error.details,
        )
        text = await self._ai_fallback(city, error, prompt)
        self._fallback_count += 1
        return WeatherResult(text=text, from_cache=False, is_ai_fallback=True)

    async def _ai_fallback(self, city: CityConfig, error: UpstreamUnavailable, prompt: Optional[str]) -> str:
        if self._llm is None or not self._llm.is_available():
            logger.error("AI fallback unavailable", city=city.id, error=error.details)
            raise FallbackUnavailable("AI fallback is not configured", details=error.details)

        if not prompt or not prompt.strip():
            prompt = FALLBACK_REPORT_PROMPT.format(city=city.display_name, municipal_name=city.municipal_name)

        try:
            text = await self._llm.generate_text(prompt, temperature=0.7, purpose="ai_fallback")
        except RuntimeError as exc:
            logger.error("AI fallback failed", city=city.id, error=str(exc), upstream_error=error.details)
            raise FallbackUnavailable(f"AI fallback failed: {exc}", details=error.details) from exc

        if not text:
            logger.error("AI fallback returned no text", city=city.id)
            raise FallbackUnavailable("AI fallback returned no text", details=error.details)
        return text
