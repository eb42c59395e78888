"""
Generative-text layer.

Provides the LLM used for environmental summaries and the AI fallback
report. A single process-wide ``LLMManager`` is configured from settings
at startup.
"""

from __future__ import annotations

from services.ai.llm_provider import LLMManager

_llm_manager: LLMManager | None = None


def initialize_ai(api_key: str | None, default_model: str | None = None, timeout_seconds: float = 30.0) -> LLMManager:
    """Configure the global LLMManager. Called from main.py lifespan."""
    manager = get_llm_manager()
    manager.configure(api_key=api_key, default_model=default_model, timeout_seconds=timeout_seconds)
    return manager


def get_llm_manager() -> LLMManager:
    """Get the global LLM manager instance, creating it unconfigured on first use."""
    global _llm_manager
    if _llm_manager is None:
        _llm_manager = LLMManager()
    return _llm_manager


__all__ = [
    "initialize_ai",
    "get_llm_manager",
    "LLMManager",
]
