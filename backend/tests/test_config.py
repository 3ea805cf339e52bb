"""
Settings loading tests.
"""

import pytest

from app.config import load_settings


def test_defaults(monkeypatch):
    for key in ("RETRY_MAX_ATTEMPTS", "UPLOAD_CONCURRENCY", "EMAIL_BUCKET", "ENVIRONMENT"):
        monkeypatch.delenv(key, raising=False)

    settings = load_settings()

    assert settings.retry_max_attempts == 3
    assert settings.upload_concurrency == 3
    assert settings.email_concurrency >= 1
    assert settings.email_bucket == "inbound-emails"
    assert settings.is_production is False


def test_overrides(monkeypatch):
    monkeypatch.setenv("RETRY_MAX_ATTEMPTS", "5")
    monkeypatch.setenv("RETRY_BASE_DELAY_SECONDS", "0.1")
    monkeypatch.setenv("EMAIL_BUCKET", "raw-mail")
    monkeypatch.setenv("ENVIRONMENT", "Production")

    settings = load_settings()

    assert settings.retry_max_attempts == 5
    assert settings.retry_base_delay_seconds == 0.1
    assert settings.email_bucket == "raw-mail"
    assert settings.is_production is True


def test_blank_optional_values_are_none(monkeypatch):
    monkeypatch.setenv("API_KEY", "   ")

    assert load_settings().api_key is None


def test_invalid_number_names_the_variable(monkeypatch):
    monkeypatch.setenv("UPLOAD_CONCURRENCY", "three")

    with pytest.raises(ValueError, match="UPLOAD_CONCURRENCY"):
        load_settings()
