"""Application configuration."""

import os

from pydantic_settings import BaseSettings, SettingsConfigDict

_ENVIRONMENT = os.getenv("ENVIRONMENT", "local")

SUPPORTED_LOCALES = ("en", "he")
_LOCALE_ALIASES = {"english": "en", "hebrew": "he", "iw": "he"}


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    openai_api_key: str | None = None
    openai_model: str = "gpt-4o-mini"
    openai_timeout_seconds: float = 30.0
    analysis_max_tokens: int = 3000
    update_max_tokens: int = 1024
    meal_plan_max_tokens: int = 4096
    chat_max_tokens: int = 700
    price_max_tokens: int = 1500
    prompt_max_chars: int = 8000
    price_cache_ttl_seconds: float = 300.0
    price_cache_max_entries: int = 500
    price_batch_size: int = 50
    currency: str = "ILS"
    currency_symbol: str = "₪"
    default_locale: str = "en"
    admin_token: str | None = None
    environment: str = _ENVIRONMENT

    model_config = SettingsConfigDict(
        env_file=(f".env.{_ENVIRONMENT}", ".env"),
        extra="ignore",
    )


def normalize_locale(raw: str | None, default: str = "en") -> str:
    """Map a language hint such as ``hebrew`` or ``he-IL`` to a supported locale."""
    if raw is None:
        return default
    cleaned = raw.strip().lower()
    if not cleaned:
        return default
    cleaned = _LOCALE_ALIASES.get(cleaned, cleaned)
    primary = cleaned.replace("_", "-").split("-", 1)[0]
    primary = _LOCALE_ALIASES.get(primary, primary)
    if primary in SUPPORTED_LOCALES:
        return primary
    return default
