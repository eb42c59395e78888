"""
Generative-text provider layer.

Used for two things only: condensing search snippets into short
pollen / yellow-sand summaries, and producing a whole weather report
when the live weather provider is down and nothing is cached.

Supports Google Gemini (``generateContent``) over raw httpx calls.

Usage:
    manager = LLMManager()
    manager.configure(api_key=settings.GOOGLE_API_KEY, default_model="gemini-2.0-flash-lite")

    text = await manager.generate_text("今日の札幌の天気を教えてください", purpose="ai_fallback")
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

import httpx

logger = logging.getLogger(__name__)


# ==================== DATA CLASSES ====================


@dataclass
class LLMMessage:
    """A single message in a chat conversation."""

    role: str  # "system", "user", "assistant"
    content: str


@dataclass
class TokenUsage:
    """Token usage for a single LLM call."""

    input_tokens: int
    output_tokens: int
    total_tokens: int


@dataclass
class LLMResponse:
    """Response from an LLM provider."""

    content: str
    usage: Optional[TokenUsage] = None
    model: str = ""
    provider: str = ""
    latency_ms: int = 0


# ==================== ENUMS ====================


class LLMProvider(str, Enum):
    """Supported LLM providers."""

    GOOGLE = "google"


def _safe_response_json(response: httpx.Response) -> Any:
    """Return parsed response JSON, or an empty dict when parsing fails."""
    try:
        return response.json()
    except ValueError:
        return {}


def _extract_error_message(data: Any, fallback: str) -> str:
    """Extract a readable API error message from varied payload formats."""
    fallback_text = (fallback or "").strip()

    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, dict):
            for key in ("message", "status", "detail"):
                value = error.get(key)
                if isinstance(value, str) and value.strip():
                    return value.strip()
            if error:
                try:
                    return json.dumps(error, ensure_ascii=False)
                except (TypeError, ValueError):
                    return str(error)
        if isinstance(error, str) and error.strip():
            return error.strip()
        for key in ("message", "detail"):
            value = data.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
    elif isinstance(data, str) and data.strip():
        return data.strip()

    return fallback_text[:200] or "Unknown error"


# ==================== RETRY LOGIC ====================

_MAX_RETRIES = 3
_BASE_DELAY = 1.0  # seconds


async def _retry_with_backoff(
    coro_factory, max_retries: int = _MAX_RETRIES, base_delay: float = _BASE_DELAY
):
    """Execute an async callable with exponential backoff on retryable errors.

    Retries on HTTP 429 (rate limit) and 5xx (server errors).

    Args:
        coro_factory: A callable that returns a new coroutine each invocation.
        max_retries: Maximum number of retry attempts.
        base_delay: Base delay in seconds for exponential backoff.

    Returns:
        The httpx.Response from the successful request.

    Raises:
        httpx.HTTPStatusError: If all retries are exhausted.
        httpx.RequestError: If a non-retryable request error occurs.
    """
    last_exc = None
    for attempt in range(max_retries):
        try:
            response = await coro_factory()
            if response.status_code == 429 or response.status_code >= 500:
                last_exc = httpx.HTTPStatusError(
                    f"HTTP {response.status_code}",
                    request=response.request,
                    response=response,
                )
                if attempt < max_retries - 1:
                    delay = base_delay * (2**attempt)
                    logger.warning(
                        "LLM request returned %d, retrying in %.1fs (attempt %d/%d)",
                        response.status_code,
                        delay,
                        attempt + 1,
                        max_retries,
                    )
                    await asyncio.sleep(delay)
                    continue
                else:
                    raise last_exc
            return response
        except httpx.RequestError as exc:
            last_exc = exc
            if attempt < max_retries - 1:
                delay = base_delay * (2**attempt)
                logger.warning(
                    "LLM request failed (%s), retrying in %.1fs (attempt %d/%d)",
                    type(exc).__name__,
                    delay,
                    attempt + 1,
                    max_retries,
                )
                await asyncio.sleep(delay)
            else:
                raise
    raise last_exc  # type: ignore[misc]


# ==================== BASE PROVIDER ====================


class BaseLLMProvider(ABC):
    """Abstract base class for LLM providers.

    Each provider implements the raw HTTP communication with its
    respective API and message format conversion.
    """

    provider: LLMProvider
    api_key: Optional[str]

    @abstractmethod
    async def chat(
        self,
        messages: list[LLMMessage],
        model: str,
        temperature: float = 0.0,
        max_tokens: int = 1024,
    ) -> LLMResponse:
        """Send a chat completion request.

        Args:
            messages: Conversation messages.
            model: Model identifier (e.g. "gemini-2.0-flash-lite").
            temperature: Sampling temperature.
            max_tokens: Maximum tokens in the response.

        Returns:
            LLMResponse with content and usage info.
        """
        pass


# ==================== GOOGLE PROVIDER ====================


class GoogleProvider(BaseLLMProvider):
    """Google Gemini API provider using raw httpx calls."""

    provider = LLMProvider.GOOGLE

    def __init__(self, api_key: str, timeout_seconds: float = 30.0):
        self.api_key = api_key
        self.base_url = "https://generativelanguage.googleapis.com/v1beta"
        self._timeout = timeout_seconds

    def _format_contents(
        self, messages: list[LLMMessage]
    ) -> tuple[Optional[dict], list[dict]]:
        """Convert LLMMessage objects to Gemini API format.

        Gemini uses 'contents' with 'parts' structure and a separate
        system_instruction field.
        """
        system_instruction = None
        contents = []

        for msg in messages:
            if msg.role == "system":
                system_instruction = {"parts": [{"text": msg.content}]}
                continue

            role = "user" if msg.role == "user" else "model"
            contents.append(
                {
                    "role": role,
                    "parts": [{"text": msg.content}],
                }
            )

        return system_instruction, contents

    async def chat(
        self,
        messages: list[LLMMessage],
        model: str,
        temperature: float = 0.0,
        max_tokens: int = 1024,
    ) -> LLMResponse:
        """Send a generate content request to the Gemini API."""
        start_ms = int(time.time() * 1000)

        system_instruction, contents = self._format_contents(messages)

        payload: dict[str, Any] = {
            "contents": contents,
            "generationConfig": {
                "temperature": temperature,
                "maxOutputTokens": max_tokens,
            },
        }
        if system_instruction:
            payload["systemInstruction"] = system_instruction

        url = f"{self.base_url}/models/{model}:generateContent"

        async with httpx.AsyncClient(timeout=self._timeout) as client:
            response = await _retry_with_backoff(
                lambda: client.post(
                    url,
                    headers={
                        "Content-Type": "application/json",
                        "x-goog-api-key": self.api_key,
                    },
                    json=payload,
                )
            )

        latency_ms = int(time.time() * 1000) - start_ms
        data = _safe_response_json(response)

        if response.status_code != 200:
            error_msg = _extract_error_message(data, response.text)
            raise RuntimeError(
                f"Google API error ({response.status_code}): {error_msg}"
            )

        candidates = data.get("candidates", []) if isinstance(data, dict) else []
        if not candidates:
            raise RuntimeError("Google API returned no candidates")

        parts = candidates[0].get("content", {}).get("parts", [])
        text_parts = [part["text"] for part in parts if "text" in part]

        usage_data = data.get("usageMetadata", {})
        usage = TokenUsage(
            input_tokens=usage_data.get("promptTokenCount", 0),
            output_tokens=usage_data.get("candidatesTokenCount", 0),
            total_tokens=usage_data.get("totalTokenCount", 0),
        )

        return LLMResponse(
            content="\n".join(text_parts),
            usage=usage,
            model=model,
            provider=self.provider.value,
            latency_ms=latency_ms,
        )


# ==================== MANAGER ====================


class LLMManager:
    """Central entry point for generative-text calls.

    Holds the configured provider (none when no credential is set) and
    keeps per-purpose usage counters for the status endpoint.
    """

    def __init__(self):
        self._providers: dict[LLMProvider, BaseLLMProvider] = {}
        self._default_model: str = "gemini-2.0-flash-lite"
        self._usage: dict[str, dict[str, int]] = {}

    def configure(
        self,
        api_key: Optional[str],
        default_model: Optional[str] = None,
        timeout_seconds: float = 30.0,
    ) -> None:
        """(Re)build providers from credentials. A missing key leaves the manager unavailable."""
        self._providers = {}
        if default_model:
            self._default_model = default_model
        if api_key:
            self._providers[LLMProvider.GOOGLE] = GoogleProvider(
                api_key=api_key, timeout_seconds=timeout_seconds
            )
            logger.info("LLM provider configured: google (default model %s)", self._default_model)
        else:
            logger.info("No GOOGLE_API_KEY configured; generative text disabled")

    def is_available(self) -> bool:
        """True if a provider is configured."""
        return len(self._providers) > 0

    async def chat(
        self,
        messages: list[LLMMessage],
        model: Optional[str] = None,
        temperature: float = 0.0,
        max_tokens: int = 1024,
        purpose: Optional[str] = None,
    ) -> LLMResponse:
        """Send a chat request to the configured provider.

        Raises:
            RuntimeError: No provider is configured, or the request failed.
        """
        provider = self._providers.get(LLMProvider.GOOGLE)
        if provider is None:
            raise RuntimeError("No LLM provider configured (GOOGLE_API_KEY missing)")

        requested_model = model or self._default_model
        try:
            response = await provider.chat(
                messages=messages,
                model=requested_model,
                temperature=temperature,
                max_tokens=max_tokens,
            )
        except RuntimeError:
            self._record_usage(purpose, None, success=False)
            raise
        except Exception as exc:
            self._record_usage(purpose, None, success=False)
            raise RuntimeError(f"LLM request failed: {exc}") from exc

        self._record_usage(purpose, response.usage, success=True)
        logger.debug(
            "LLM chat: model=%s, purpose=%s, tokens=%d/%d, latency=%dms",
            requested_model,
            purpose,
            response.usage.input_tokens if response.usage else 0,
            response.usage.output_tokens if response.usage else 0,
            response.latency_ms,
        )
        return response

    async def generate_text(
        self,
        prompt: str,
        model: Optional[str] = None,
        temperature: float = 0.2,
        max_tokens: int = 1024,
        purpose: Optional[str] = None,
    ) -> str:
        """Single-prompt completion; returns the stripped response text."""
        response = await self.chat(
            messages=[LLMMessage(role="user", content=prompt)],
            model=model,
            temperature=temperature,
            max_tokens=max_tokens,
            purpose=purpose,
        )
        return (response.content or "").strip()

    def _record_usage(self, purpose: Optional[str], usage: Optional[TokenUsage], success: bool) -> None:
        bucket = self._usage.setdefault(
            purpose or "unspecified",
            {"calls": 0, "errors": 0, "input_tokens": 0, "output_tokens": 0},
        )
        bucket["calls"] += 1
        if not success:
            bucket["errors"] += 1
        if usage is not None:
            bucket["input_tokens"] += usage.input_tokens
            bucket["output_tokens"] += usage.output_tokens

    def get_usage_stats(self) -> dict:
        return {
            "available": self.is_available(),
            "default_model": self._default_model,
            "by_purpose": {k: dict(v) for k, v in self._usage.items()},
        }
