"""Prompt templates for the summarizer and the AI fallback report."""

from __future__ import annotations

from .search_client import SearchResult

POLLEN_SUMMARY_PROMPT = """次の検索結果をもとに、現在の{city}の花粉飛散状況を日本語で{max_chars}文字以内で要約してください。
花粉の種類（杉、ヒノキ、ブタクサなど）と飛散レベル（少ない、中程度、多いなど）を具体的に示してください。
「推定」という言葉は使わず、観測情報がない場合は「観測データなし」と明記してください：

{snippets}"""

YELLOW_SAND_SUMMARY_PROMPT = """次の検索結果をもとに、現在の{city}における黄砂の状況を日本語で{max_chars}文字以内で要約してください。
黄砂が観測されているかいないかを明確に示し、「推定」という言葉は使わないでください。
観測情報がない場合は「観測データなし」と明記してください：

{snippets}"""

# Mirrors the live report's labels so the same client-side extraction works.
FALLBACK_REPORT_PROMPT = """
あなたは、{city}の天気情報を提供するアシスタントです。
今日の{municipal_name}の天気、気温、風、湿度、気圧、花粉、黄砂、PM2.5の情報を、以下の形式で提供してください。
すべての項目を必ず順番通りに含め、データがない場合は「データなし」と記載してください。

# 今日の天気

**☁️☔️ 現在の天気:** [天気]
**🌡️ 現在の気温:** [現在の気温]℃ / 体感温度 [体感温度]℃
**📅 今日の予想気温:** 最高 [最高気温]℃ / 最低 [最低気温]℃
**🌧 降水確率:** [降水確率]%

**⏰ 時間ごとの予報:**
* [時]時: [気温]℃ ([天気])

**🍃 風:** [風速] km/h ([風向き])
**💧 湿度:** [湿度] %
**⬇️ 気圧:** [気圧] hPa

**🌲 花粉:** [花粉情報]

**💛 黄砂:** [黄砂情報]

**🌫 PM2.5:** [PM2.5] μg/m³

[全体的なコメント]
"""


def format_snippets(results: list[SearchResult]) -> str:
    return "\n\n".join(f"タイトル: {r.title}\n抜粋: {r.description}" for r in results)
