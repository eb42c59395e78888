from pathlib import Path
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings

# Get the directory where this config file is located.
_BACKEND_DIR = Path(__file__).parent.resolve()
_PROJECT_ROOT = _BACKEND_DIR.parent.resolve()


class Settings(BaseSettings):
    # Weather provider (WeatherAPI.com)
    WEATHERAPI_KEY: Optional[str] = None
    WEATHERAPI_BASE_URL: str = "https://api.weatherapi.com/v1"

    # Search provider (Brave Search) for pollen / yellow-sand snippets
    BRAVE_SEARCH_API_KEY: Optional[str] = None
    BRAVE_SEARCH_URL: str = "https://api.search.brave.com/res/v1/web/search"

    # Generative text (Google Gemini) for summaries and the AI fallback
    GOOGLE_API_KEY: Optional[str] = None
    GEMINI_MODEL: str = "gemini-2.0-flash-lite"

    # Cache / cooldown windows
    WEATHER_CACHE_SECONDS: int = 12 * 60 * 60
    ENV_CACHE_SECONDS: int = 24 * 60 * 60  # pollen / yellow-sand summaries
    ERROR_COOLDOWN_SECONDS: int = 30 * 60  # skip a failing dependency for this long
    UPSTREAM_TIMEOUT_SECONDS: float = 10.0

    # Production Settings
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True
    CORS_ORIGINS: list[str] = ["*"]

    @field_validator(
        "WEATHERAPI_BASE_URL",
        "BRAVE_SEARCH_URL",
        mode="before",
    )
    @classmethod
    def _normalize_url_field(cls, value: object) -> object:
        """Trim accidental quotes/whitespace from URL env vars."""
        if value is None:
            return value
        text = str(value).strip().strip('"').strip("'")
        if not text:
            return text
        return text.rstrip("/")

    @field_validator(
        "WEATHERAPI_KEY",
        "BRAVE_SEARCH_API_KEY",
        "GOOGLE_API_KEY",
        mode="before",
    )
    @classmethod
    def _blank_key_is_missing(cls, value: object) -> object:
        """Treat empty / quoted-empty credentials as not configured."""
        if value is None:
            return None
        text = str(value).strip().strip('"').strip("'")
        return text or None

    def missing_credentials(self) -> list[str]:
        """Names of upstream credentials that are not configured."""
        return [
            name
            for name in ("WEATHERAPI_KEY", "BRAVE_SEARCH_API_KEY", "GOOGLE_API_KEY")
            if not getattr(self, name)
        ]

    class Config:
        # Load project-root .env first (common workflow), then backend/.env
        # as an override if present.
        env_file = (
            str(_PROJECT_ROOT / ".env"),
            str(_BACKEND_DIR / ".env"),
        )
        env_file_encoding = "utf-8"


settings = Settings()
