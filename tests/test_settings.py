import pytest

from gbp_access.config.settings import (
    DEFAULT_REDIS_URL,
    ConfigurationError,
    EngineSettings,
    normalize_database_url,
    parse_admin_emails,
)


def test_parse_admin_emails_normalizes():
    assert parse_admin_emails(" Owner@Example.com, ,ops@example.com ") == [
        "owner@example.com",
        "ops@example.com",
    ]
    assert parse_admin_emails(None) == []
    assert parse_admin_emails("") == []


def test_postgres_scheme_is_rewritten():
    assert normalize_database_url("postgres://u:p@db/app") == "postgresql://u:p@db/app"
    assert normalize_database_url("sqlite:///engine.db") == "sqlite:///engine.db"


def test_from_env(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "postgres://u:p@db/app")
    monkeypatch.setenv("REDIS_URL", "redis://cache:6379/2")
    monkeypatch.setenv("ADMIN_EMAILS", "owner@example.com")

    settings = EngineSettings.from_env()

    assert settings.database_url == "postgresql://u:p@db/app"
    assert settings.redis_url == "redis://cache:6379/2"
    assert settings.admin_emails == ["owner@example.com"]


def test_from_env_defaults_redis(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "sqlite://")
    monkeypatch.delenv("REDIS_URL", raising=False)
    monkeypatch.delenv("ADMIN_EMAILS", raising=False)

    settings = EngineSettings.from_env()

    assert settings.redis_url == DEFAULT_REDIS_URL
    assert settings.admin_emails == []


def test_missing_database_url(monkeypatch):
    monkeypatch.delenv("DATABASE_URL", raising=False)

    with pytest.raises(ConfigurationError) as exc_info:
        EngineSettings.from_env()

    assert exc_info.value.setting == "DATABASE_URL"
    assert exc_info.value.to_dict()["error"] == "ENGINE_MISCONFIGURED"


def test_refresh_window_is_lifetime_minus_buffer():
    settings = EngineSettings(database_url="sqlite://")

    assert settings.refresh_window_seconds == 1800


def test_invalid_trial_length_rejected():
    with pytest.raises(ConfigurationError):
        EngineSettings(database_url="sqlite://", trial_length_days=0)


def test_buffer_must_be_shorter_than_lifetime():
    with pytest.raises(ConfigurationError):
        EngineSettings(
            database_url="sqlite://",
            token_lifetime_seconds=600,
            token_safety_buffer_seconds=600,
        )
