"""Error taxonomy for the weather report service.

Only ``FallbackUnavailable`` and ``BadRequest`` ever reach the HTTP layer;
everything else is recovered inside the service.
"""

from __future__ import annotations

from typing import Optional


class WeatherServiceError(Exception):
    """Base class; ``details`` is the human-readable text sent to clients."""

    def __init__(self, message: str, details: Optional[str] = None):
        super().__init__(message)
        self.details = details if details is not None else message


class UpstreamUnavailable(WeatherServiceError):
    """The weather provider answered non-2xx, timed out, or was unreachable."""

    def __init__(self, dependency: str, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.dependency = dependency
        self.status_code = status_code


class ConfigurationMissing(UpstreamUnavailable):
    """A required credential is not configured."""

    def __init__(self, dependency: str, setting: str):
        super().__init__(dependency, f"{setting} is not configured")
        self.setting = setting


class AnnotatorUnavailable(WeatherServiceError):
    """Search or summarizer failure; always converted to a sentinel."""


class FallbackUnavailable(WeatherServiceError):
    """No cache and the generative fallback failed too."""


class BadRequest(WeatherServiceError):
    """Malformed request body."""
