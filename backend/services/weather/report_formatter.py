"""Render provider data + environmental summaries into the report text.

The browser extracts each field by locating its label substring and
reading up to the next label, so label text and order below are a wire
contract: every label is emitted exactly once, in this order, with
``データなし`` standing in for anything the provider did not send.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Optional

from .adapters.base import Number, RawWeatherPayload
from .annotator import NO_DATA, EnvironmentalSummaries
from .cities import CityConfig

REPORT_TITLE = "# 今日の天気"

LABEL_CONDITION = "**☁️☔️ 現在の天気:**"
LABEL_TEMPERATURE = "**🌡️ 現在の気温:**"
LABEL_FORECAST = "**📅 今日の予想気温:**"
LABEL_PRECIPITATION = "**🌧 降水確率:**"
LABEL_HOURLY = "**⏰ 時間ごとの予報:**"
LABEL_WIND = "**🍃 風:**"
LABEL_HUMIDITY = "**💧 湿度:**"
LABEL_PRESSURE = "**⬇️ 気圧:**"
LABEL_POLLEN = "**🌲 花粉:**"
LABEL_YELLOW_SAND = "**💛 黄砂:**"
LABEL_PM25 = "**🌫 PM2.5:**"

# (field name, label) in report order.
REPORT_LABELS: tuple[tuple[str, str], ...] = (
    ("condition", LABEL_CONDITION),
    ("temperature", LABEL_TEMPERATURE),
    ("forecast", LABEL_FORECAST),
    ("precipitation", LABEL_PRECIPITATION),
    ("hourly", LABEL_HOURLY),
    ("wind", LABEL_WIND),
    ("humidity", LABEL_HUMIDITY),
    ("pressure", LABEL_PRESSURE),
    ("pollen", LABEL_POLLEN),
    ("yellow_sand", LABEL_YELLOW_SAND),
    ("pm25", LABEL_PM25),
)

HOURLY_STEPS = 4
HOURLY_STEP_HOURS = 3

_JST = timezone(timedelta(hours=9))
_LOCALTIME_FORMAT = "%Y-%m-%d %H:%M"


@dataclass
class ReportFields:
    """Display-ready values, one per label, plus the closing remark."""

    condition: str = NO_DATA
    temperature: str = NO_DATA
    forecast: str = NO_DATA
    precipitation: str = NO_DATA
    hourly: list[str] = field(default_factory=list)
    wind: str = NO_DATA
    humidity: str = NO_DATA
    pressure: str = NO_DATA
    pollen: str = NO_DATA
    yellow_sand: str = NO_DATA
    pm25: str = NO_DATA
    remark: str = ""


def _inline(text: Optional[str]) -> str:
    """Single-line value that cannot contain a label marker."""
    if text is None:
        return NO_DATA
    cleaned = " ".join(str(text).replace("**", "").split())
    return cleaned or NO_DATA


def _number(value: Optional[Number], unit: str = "") -> str:
    if value is None:
        return NO_DATA
    return f"{value}{unit}"


def round_half_up(value: Number) -> int:
    return int(math.floor(value + 0.5))


def _parse_localtime(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.strptime(value.strip(), _LOCALTIME_FORMAT)
    except ValueError:
        return None


def _current_hour(payload: RawWeatherPayload, now: Optional[datetime]) -> int:
    local = _parse_localtime(payload.localtime)
    if local is not None:
        return local.hour
    if now is not None:
        return now.hour
    return datetime.now(_JST).hour


def _hourly_lines(payload: RawWeatherPayload, now: Optional[datetime]) -> list[str]:
    forecast = payload.forecast
    if forecast is None or not forecast.hours:
        return []

    start = _current_hour(payload, now)
    lines = []
    for step in range(HOURLY_STEPS):
        index = (start + step * HOURLY_STEP_HOURS) % 24
        if index >= len(forecast.hours):
            continue
        entry = forecast.hours[index]
        entry_time = _parse_localtime(entry.time)
        hour = entry_time.hour if entry_time is not None else index
        lines.append(f"* {hour}時: {_number(entry.temp_c, '℃')} ({_inline(entry.condition)})")
    return lines


def build_report_fields(
    payload: RawWeatherPayload,
    summaries: EnvironmentalSummaries,
    city: CityConfig,
    now: Optional[datetime] = None,
) -> ReportFields:
    """Map provider values onto report fields without converting units.

    ``now`` (city-local) only matters when the payload carries no local
    timestamp to anchor the hourly breakdown.
    """
    fields = ReportFields()
    fields.condition = _inline(payload.condition)

    if payload.temp_c is not None or payload.feelslike_c is not None:
        fields.temperature = (
            f"{_number(payload.temp_c, '℃')} / 体感温度 {_number(payload.feelslike_c, '℃')}"
        )

    forecast = payload.forecast
    if forecast is not None:
        if forecast.maxtemp_c is not None or forecast.mintemp_c is not None:
            fields.forecast = (
                f"最高 {_number(forecast.maxtemp_c, '℃')} / 最低 {_number(forecast.mintemp_c, '℃')}"
            )
        fields.precipitation = _number(forecast.daily_chance_of_rain, "%")
    fields.hourly = _hourly_lines(payload, now)

    if payload.wind_kph is not None:
        fields.wind = f"{payload.wind_kph} km/h ({_inline(payload.wind_dir)})"
    fields.humidity = _number(payload.humidity, " %")
    fields.pressure = _number(payload.pressure_mb, " hPa")

    fields.pollen = _inline(summaries.pollen)
    fields.yellow_sand = _inline(summaries.yellow_sand)

    pm2_5 = payload.air_quality.pm2_5 if payload.air_quality is not None else None
    if pm2_5 is not None:
        fields.pm25 = f"{round_half_up(pm2_5)} μg/m³"

    fields.remark = (
        f"{city.municipal_name}の天気情報です。"
        f"データは {_inline(payload.localtime)} に更新されました。"
    )
    return fields


def render_report(fields: ReportFields) -> str:
    hourly = "\n".join(fields.hourly) if fields.hourly else NO_DATA
    return f"""{REPORT_TITLE}

{LABEL_CONDITION} {fields.condition}
{LABEL_TEMPERATURE} {fields.temperature}
{LABEL_FORECAST} {fields.forecast}
{LABEL_PRECIPITATION} {fields.precipitation}

{LABEL_HOURLY}
{hourly}

{LABEL_WIND} {fields.wind}
{LABEL_HUMIDITY} {fields.humidity}
{LABEL_PRESSURE} {fields.pressure}

{LABEL_POLLEN} {fields.pollen}

{LABEL_YELLOW_SAND} {fields.yellow_sand}

{LABEL_PM25} {fields.pm25}

{fields.remark}
"""


def format_report(
    payload: RawWeatherPayload,
    summaries: EnvironmentalSummaries,
    city: CityConfig,
    now: Optional[datetime] = None,
) -> str:
    return render_report(build_report_fields(payload, summaries, city, now=now))


def extract_report_fields(text: str) -> dict[str, Optional[str]]:
    """Read field values back out of a report by label position.

    Each value runs from its label to the next label that follows it; the
    last field stops at the end of its line. Missing labels map to None.
    """
    positions = []
    for name, label in REPORT_LABELS:
        index = text.find(label)
        positions.append((name, label, index))

    out: dict[str, Optional[str]] = {}
    for i, (name, label, index) in enumerate(positions):
        if index == -1:
            out[name] = None
            continue
        start = index + len(label)
        end = len(text)
        for _, _, later in positions[i + 1:]:
            if later > start:
                end = min(end, later)
        value = text[start:end].strip()
        if i == len(positions) - 1:
            value = value.split("\n", 1)[0].strip()
        out[name] = value
    return out
