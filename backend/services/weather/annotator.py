"""Pollen / yellow-sand commentary sourced from web search.

Everything here is supplementary: every failure path ends in a sentinel
string, never an exception.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from services.ai.llm_provider import LLMManager
from services.circuit_breaker import UpstreamCircuitBreaker
from utils.logger import annotator_logger as logger
from utils.utcnow import seconds_since, utcnow

from .errors import AnnotatorUnavailable
from .prompts import POLLEN_SUMMARY_PROMPT, YELLOW_SAND_SUMMARY_PROMPT, format_snippets
from .search_client import BraveSearchClient, SearchResult

NO_DATA = "データなし"
NO_OBSERVATION = "観測データなし"
SUMMARY_MAX_CHARS = 30
SUMMARIZER_DEPENDENCY = "summarizer"

_JST = timezone(timedelta(hours=9))
_ESTIMATE_WORD = "推定"


@dataclass(frozen=True)
class TopicRule:
    """Search query and relevance filter for one phenomenon."""

    kind: str
    dependency: str
    subject: str  # snippet must mention this
    evidence: tuple[str, ...]  # ...and at least one of these
    excluded: tuple[str, ...]  # ...and none of these
    summary_prompt: str
    max_results: int

    def is_relevant(self, result: SearchResult) -> bool:
        text = result.description
        if self.subject not in text:
            return False
        if any(word in text for word in self.excluded):
            return False
        return any(word in text for word in self.evidence)


POLLEN_RULE = TopicRule(
    kind="pollen",
    dependency="pollen-search",
    subject="花粉",
    evidence=("観測", "状況", "飛散"),
    excluded=("アレルギー",),
    summary_prompt=POLLEN_SUMMARY_PROMPT,
    max_results=5,
)

YELLOW_SAND_RULE = TopicRule(
    kind="yellow-sand",
    dependency="yellow-sand-search",
    subject="黄砂",
    evidence=("観測", "状況", "予測"),
    excluded=(),
    summary_prompt=YELLOW_SAND_SUMMARY_PROMPT,
    max_results=5,
)


def seasonal_pollen_types(month: int) -> str:
    if 2 <= month <= 5:
        return "杉 ヒノキ"
    if 8 <= month <= 10:
        return "ブタクサ イネ科"
    return ""


def pollen_query(city: str, today: datetime) -> str:
    parts = [city, "花粉", "飛散情報", seasonal_pollen_types(today.month),
             f"{today.year}年{today.month}月{today.day}日", "速報"]
    return " ".join(p for p in parts if p)


def yellow_sand_query(city: str, today: datetime) -> str:
    return f"{city} 黄砂 観測 {today.year}年{today.month}月 気象庁"


def _truncate(text: str, limit: int = SUMMARY_MAX_CHARS) -> str:
    text = " ".join(text.split())
    if len(text) <= limit:
        return text
    return text[: limit - 1] + "…"


@dataclass
class EnvironmentalSummaries:
    pollen: str = NO_DATA
    yellow_sand: str = NO_DATA


@dataclass
class _CachedSummary:
    text: str
    cached_at: datetime


class EnvironmentalAnnotator:
    """Fetches and condenses pollen / yellow-sand observations for a city.

    Per-kind policy, in order:
      * search credential missing -> ``データなし``
      * a fresh summary is cached for (kind, city) -> cached summary
      * the kind's search dependency is cooling down -> ``観測データなし``
      * search error -> failure mark recorded, ``観測データなし``
      * zero results or none relevant -> ``観測データなし``
      * otherwise an LLM summary (or the first relevant snippet, trimmed,
        when no summarizer is usable)
    """

    def __init__(
        self,
        search_client: BraveSearchClient,
        llm: Optional[LLMManager],
        breaker: UpstreamCircuitBreaker,
        env_cache_seconds: int = 24 * 60 * 60,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._search = search_client
        self._llm = llm
        self._breaker = breaker
        self._env_cache_seconds = env_cache_seconds
        self._clock = clock
        self._cache: dict[tuple[str, str], _CachedSummary] = {}

    async def fetch_pollen_summary(self, city_display_name: str, force_refresh: bool = False) -> str:
        query = pollen_query(city_display_name, self._local_today())
        return await self._summarize_topic(POLLEN_RULE, city_display_name, query, force_refresh)

    async def fetch_yellow_sand_summary(self, city_display_name: str, force_refresh: bool = False) -> str:
        query = yellow_sand_query(city_display_name, self._local_today())
        return await self._summarize_topic(YELLOW_SAND_RULE, city_display_name, query, force_refresh)

    async def annotate(self, city_display_name: str, force_refresh: bool = False) -> EnvironmentalSummaries:
        pollen, yellow_sand = await asyncio.gather(
            self.fetch_pollen_summary(city_display_name, force_refresh=force_refresh),
            self.fetch_yellow_sand_summary(city_display_name, force_refresh=force_refresh),
        )
        return EnvironmentalSummaries(pollen=pollen, yellow_sand=yellow_sand)

    def clear_cache(self) -> None:
        self._cache.clear()

    def _local_today(self) -> datetime:
        return self._clock().replace(tzinfo=timezone.utc).astimezone(_JST)

    async def _summarize_topic(self, rule: TopicRule, city: str, query: str, force_refresh: bool) -> str:
        if not self._search.configured:
            return NO_DATA

        key = (rule.kind, city)
        cached = self._cache.get(key)
        if (
            not force_refresh
            and cached is not None
            and seconds_since(cached.cached_at, self._clock()) < self._env_cache_seconds
        ):
            return cached.text

        if not self._breaker.is_available(rule.dependency):
            logger.info(
                "Skipping search during cooldown",
                kind=rule.kind,
                city=city,
                remaining_seconds=round(self._breaker.remaining_seconds(rule.dependency)),
            )
            return NO_OBSERVATION

        try:
            results = await self._search.search(query, count=rule.max_results)
        except AnnotatorUnavailable as exc:
            self._breaker.record_failure(rule.dependency, str(exc), {"city": city})
            return NO_OBSERVATION
        self._breaker.record_success(rule.dependency)

        relevant = [r for r in results if rule.is_relevant(r)]
        if not relevant:
            logger.info("No relevant search results", kind=rule.kind, city=city, results=len(results))
            summary = NO_OBSERVATION
        else:
            summary = await self._condense(rule, city, relevant)

        self._cache[key] = _CachedSummary(text=summary, cached_at=self._clock())
        return summary

    async def _condense(self, rule: TopicRule, city: str, relevant: list[SearchResult]) -> str:
        fallback = _truncate(relevant[0].description)
        if self._llm is None or not self._llm.is_available():
            return fallback
        if not self._breaker.is_available(SUMMARIZER_DEPENDENCY):
            return fallback

        prompt = rule.summary_prompt.format(
            city=city,
            max_chars=SUMMARY_MAX_CHARS,
            snippets=format_snippets(relevant[: rule.max_results]),
        )
        try:
            text = await self._llm.generate_text(prompt, max_tokens=128, purpose=f"{rule.kind}_summary")
        except RuntimeError as exc:
            self._breaker.record_failure(SUMMARIZER_DEPENDENCY, str(exc), {"kind": rule.kind})
            return fallback
        self._breaker.record_success(SUMMARIZER_DEPENDENCY)

        # An "estimated" summary is not an observation.
        if not text or _ESTIMATE_WORD in text:
            return NO_OBSERVATION
        return text
