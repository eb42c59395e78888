from __future__ import annotations

import html
import re
from dataclasses import dataclass
from typing import Optional

import httpx

from utils.logger import get_logger

from .errors import AnnotatorUnavailable

logger = get_logger("search_client")

_TAG_RE = re.compile(r"<[^>]+>")


def _clean(text: object) -> str:
    # Brave highlights matches with <strong> tags.
    return html.unescape(_TAG_RE.sub("", str(text or ""))).strip()


@dataclass
class SearchResult:
    title: str
    description: str
    url: str = ""


class BraveSearchClient:
    """Brave web search, reduced to title/description snippets."""

    def __init__(
        self,
        api_key: Optional[str],
        url: str = "https://api.search.brave.com/res/v1/web/search",
        timeout_seconds: float = 10.0,
    ):
        self._api_key = api_key
        self._url = url
        self._timeout = timeout_seconds

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    async def search(self, query: str, count: int = 5, freshness: str = "pd") -> list[SearchResult]:
        """Run a web search.

        Raises:
            AnnotatorUnavailable: non-200 answer, network error, or bad JSON.
        """
        if not self._api_key:
            raise AnnotatorUnavailable("BRAVE_SEARCH_API_KEY is not configured")

        headers = {
            "Accept": "application/json",
            "X-Subscription-Token": self._api_key,
        }
        params = {"q": query, "count": count, "freshness": freshness}

        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.get(self._url, headers=headers, params=params)
        except httpx.RequestError as exc:
            raise AnnotatorUnavailable(f"Brave Search request failed: {type(exc).__name__}") from exc

        if response.status_code != 200:
            raise AnnotatorUnavailable(f"Brave Search API responded with status {response.status_code}")

        try:
            data = response.json()
        except ValueError as exc:
            raise AnnotatorUnavailable("Brave Search returned invalid JSON") from exc

        if not isinstance(data, dict):
            raise AnnotatorUnavailable("Brave Search response is malformed")
        web = data.get("web")
        if web is None:
            raw_results = []
        elif isinstance(web, dict) and isinstance(web.get("results") or [], list):
            raw_results = web.get("results") or []
        else:
            raise AnnotatorUnavailable("Brave Search response is malformed")

        results = [
            SearchResult(
                title=_clean(item.get("title")),
                description=_clean(item.get("description")),
                url=str(item.get("url") or ""),
            )
            for item in raw_results
            if isinstance(item, dict)
        ]
        logger.debug("Search completed", query=query, results=len(results))
        return results
