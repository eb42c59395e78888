"""Per-city report cache.

One ``WeatherReport`` per city id, overwritten on each successful refresh.
The cache also hands out a per-city ``asyncio.Lock`` so the orchestrator
can keep at most one upstream fetch per city in flight.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from .adapters.base import RawWeatherPayload


@dataclass(frozen=True)
class WeatherReport:
    city_id: str
    raw_payload: RawWeatherPayload
    formatted_text: str
    fetched_at: datetime  # naive UTC


class WeatherCache:
    def __init__(self) -> None:
        self._entries: dict[str, WeatherReport] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def get(self, city_id: str) -> Optional[WeatherReport]:
        return self._entries.get(city_id)

    def put(self, report: WeatherReport) -> None:
        self._entries[report.city_id] = report

    def clear(self) -> int:
        """Drop every entry. Returns how many were removed."""
        count = len(self._entries)
        self._entries.clear()
        return count

    def snapshot(self) -> dict[str, WeatherReport]:
        return dict(self._entries)

    def lock_for(self, city_id: str) -> asyncio.Lock:
        lock = self._locks.get(city_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[city_id] = lock
        return lock

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, city_id: object) -> bool:
        return city_id in self._entries
