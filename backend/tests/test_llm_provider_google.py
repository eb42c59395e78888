import json
import sys
from pathlib import Path

import httpx
import pytest

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

import services.ai as ai
from services.ai import llm_provider
from services.ai.llm_provider import (
    GoogleProvider,
    LLMManager,
    LLMMessage,
    _extract_error_message,
)


class _FakeResponse:
    def __init__(self, status_code: int, payload, text: str | None = None):
        self.status_code = status_code
        self._payload = payload
        self.text = text if text is not None else json.dumps(payload)
        self.request = None

    def json(self):
        return self._payload


def _install_client(monkeypatch, responses, requests):
    async def fake_retry(coro_factory, max_retries=3, base_delay=1.0):
        return await coro_factory()

    class FakeAsyncClient:
        def __init__(self, *args, **kwargs):
            pass

        async def __aenter__(self):
            return self

        async def __aexit__(self, exc_type, exc, tb):
            return False

        async def post(self, url, headers=None, json=None):
            requests.append({"url": url, "headers": headers, "json": json})
            return responses.pop(0)

    monkeypatch.setattr(llm_provider, "_retry_with_backoff", fake_retry)
    monkeypatch.setattr(llm_provider.httpx, "AsyncClient", FakeAsyncClient)


def _gemini_body(text):
    return {
        "candidates": [{"content": {"parts": [{"text": text}]}}],
        "usageMetadata": {"promptTokenCount": 12, "candidatesTokenCount": 5, "totalTokenCount": 17},
    }


def test_extract_error_message_prefers_structured_message():
    assert _extract_error_message({"error": {"message": "API key not valid"}}, "") == "API key not valid"
    assert _extract_error_message({"error": "quota"}, "") == "quota"
    assert _extract_error_message({}, "") == "Unknown error"


@pytest.mark.asyncio
async def test_google_provider_formats_generate_content_request(monkeypatch):
    requests = []
    _install_client(monkeypatch, [_FakeResponse(200, _gemini_body("晴れ"))], requests)
    provider = GoogleProvider(api_key="g-key")

    response = await provider.chat(
        messages=[
            LLMMessage(role="system", content="日本語で答えてください"),
            LLMMessage(role="user", content="札幌の天気"),
        ],
        model="gemini-2.0-flash-lite",
        temperature=0.2,
        max_tokens=64,
    )

    request = requests[0]
    assert request["url"].endswith("/v1beta/models/gemini-2.0-flash-lite:generateContent")
    assert request["headers"]["x-goog-api-key"] == "g-key"
    assert request["json"]["contents"] == [{"role": "user", "parts": [{"text": "札幌の天気"}]}]
    assert request["json"]["systemInstruction"] == {"parts": [{"text": "日本語で答えてください"}]}
    assert request["json"]["generationConfig"] == {"temperature": 0.2, "maxOutputTokens": 64}
    assert response.content == "晴れ"
    assert response.usage.total_tokens == 17
    assert response.provider == "google"


@pytest.mark.asyncio
async def test_google_provider_raises_with_api_error_message(monkeypatch):
    body = {"error": {"code": 400, "message": "API key not valid", "status": "INVALID_ARGUMENT"}}
    _install_client(monkeypatch, [_FakeResponse(400, body)], [])

    with pytest.raises(RuntimeError) as exc_info:
        await GoogleProvider(api_key="bad").chat([LLMMessage(role="user", content="x")], model="m")

    assert "API key not valid" in str(exc_info.value)
    assert "400" in str(exc_info.value)


@pytest.mark.asyncio
async def test_google_provider_requires_candidates(monkeypatch):
    _install_client(monkeypatch, [_FakeResponse(200, {"candidates": []})], [])

    with pytest.raises(RuntimeError, match="no candidates"):
        await GoogleProvider(api_key="k").chat([LLMMessage(role="user", content="x")], model="m")


@pytest.mark.asyncio
async def test_manager_without_key_is_unavailable_and_raises():
    manager = LLMManager()
    manager.configure(api_key=None)

    assert manager.is_available() is False
    with pytest.raises(RuntimeError, match="GOOGLE_API_KEY"):
        await manager.generate_text("hello")


@pytest.mark.asyncio
async def test_manager_generate_text_uses_default_model_and_tracks_usage(monkeypatch):
    requests = []
    _install_client(monkeypatch, [_FakeResponse(200, _gemini_body("  花粉少ない \n"))], requests)
    manager = LLMManager()
    manager.configure(api_key="k", default_model="gemini-test")

    text = await manager.generate_text("要約して", purpose="pollen_summary")

    assert text == "花粉少ない"
    assert "models/gemini-test:generateContent" in requests[0]["url"]
    stats = manager.get_usage_stats()
    assert stats["available"] is True
    assert stats["by_purpose"]["pollen_summary"] == {
        "calls": 1,
        "errors": 0,
        "input_tokens": 12,
        "output_tokens": 5,
    }


@pytest.mark.asyncio
async def test_manager_wraps_transport_errors(monkeypatch):
    async def failing_retry(coro_factory, max_retries=3, base_delay=1.0):
        raise httpx.ConnectError("unreachable")

    class FakeAsyncClient:
        def __init__(self, *args, **kwargs):
            pass

        async def __aenter__(self):
            return self

        async def __aexit__(self, exc_type, exc, tb):
            return False

    monkeypatch.setattr(llm_provider, "_retry_with_backoff", failing_retry)
    monkeypatch.setattr(llm_provider.httpx, "AsyncClient", FakeAsyncClient)
    manager = LLMManager()
    manager.configure(api_key="k")

    with pytest.raises(RuntimeError, match="LLM request failed"):
        await manager.generate_text("x", purpose="ai_fallback")

    assert manager.get_usage_stats()["by_purpose"]["ai_fallback"]["errors"] == 1


@pytest.mark.asyncio
async def test_retry_with_backoff_retries_server_errors():
    responses = [_FakeResponse(503, {}), _FakeResponse(200, {"ok": True})]

    async def factory():
        return responses.pop(0)

    response = await llm_provider._retry_with_backoff(factory, max_retries=3, base_delay=0.0)

    assert response.status_code == 200
    assert responses == []


def test_initialize_ai_configures_the_shared_manager(monkeypatch):
    monkeypatch.setattr(ai, "_llm_manager", None)

    manager = ai.initialize_ai("gemini-key", default_model="gemini-test")

    assert ai.get_llm_manager() is manager
    assert manager.is_available() is True
    assert sorted(ai.__all__) == ["LLMManager", "get_llm_manager", "initialize_ai"]
