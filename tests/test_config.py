"""Tests for configuration helpers."""

import pytest

from nutrition_pipeline.config import Settings, normalize_locale


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        (None, "en"),
        ("", "en"),
        ("he", "he"),
        ("he-IL", "he"),
        ("Hebrew", "he"),
        ("iw", "he"),
        ("en_US", "en"),
        ("fr", "en"),
    ],
)
def test_normalize_locale(raw: str | None, expected: str) -> None:
    assert normalize_locale(raw) == expected


def test_normalize_locale_uses_given_default() -> None:
    assert normalize_locale("de", default="he") == "he"


def test_settings_read_environment(monkeypatch) -> None:
    monkeypatch.setenv("OPENAI_MODEL", "gpt-4.1-mini")
    monkeypatch.setenv("PRICE_CACHE_TTL_SECONDS", "120")

    settings = Settings()

    assert settings.openai_model == "gpt-4.1-mini"
    assert settings.price_cache_ttl_seconds == 120
