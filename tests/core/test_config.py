"""Unit tests for src/core/config.py and src/core/log_setup.py"""

import logging

import pytest

from src.core.config import Settings, get_settings
from src.core.log_setup import configure_logging, logging_config


def test_defaults_without_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ["BASE_POSITION", "MIN_DELTA", "ECHO_SUPPRESSED_EVENTS", "ECHO_SQL"]:
        monkeypatch.delenv(f"TASKBOARD_{name}", raising=False)

    settings = Settings.from_env()
    assert settings.base_position == 65536.0
    assert settings.min_delta == 0.01
    assert settings.max_position_retries == 10
    assert settings.echo_sql is False
    assert settings.echo_suppressed_events == frozenset({"item-moved"})


def test_environment_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TASKBOARD_DATABASE_URL", "sqlite:///:memory:")
    monkeypatch.setenv("TASKBOARD_ECHO_SQL", "yes")
    monkeypatch.setenv("TASKBOARD_LOG_LEVEL", "debug")
    monkeypatch.setenv("TASKBOARD_BASE_POSITION", "1024")
    monkeypatch.setenv("TASKBOARD_MIN_DELTA", "0.5")
    monkeypatch.setenv("TASKBOARD_MAX_POSITION_RETRIES", "3")
    monkeypatch.setenv("TASKBOARD_RETRY_JITTER_SECONDS", "0")
    monkeypatch.setenv("TASKBOARD_ECHO_SUPPRESSED_EVENTS", "item-moved, item-updated,")

    settings = Settings.from_env()
    assert settings.database_url == "sqlite:///:memory:"
    assert settings.echo_sql is True
    assert settings.log_level == "DEBUG"
    assert settings.base_position == 1024.0
    assert settings.min_delta == 0.5
    assert settings.max_position_retries == 3
    assert settings.retry_jitter_seconds == 0.0
    assert settings.echo_suppressed_events == frozenset({"item-moved", "item-updated"})


def test_no_echo_suppression(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TASKBOARD_ECHO_SUPPRESSED_EVENTS", "")
    assert Settings.from_env().echo_suppressed_events == frozenset()


def test_settings_are_cached() -> None:
    assert get_settings() is get_settings()


def test_logging_config_levels() -> None:
    config = logging_config("DEBUG")
    assert config["loggers"]["src"]["level"] == "DEBUG"
    assert config["handlers"]["console"]["level"] == "DEBUG"
    assert config["loggers"]["sqlalchemy.engine"]["level"] == "WARNING"


def test_configure_logging() -> None:
    configure_logging("WARNING")
    assert logging.getLogger("src").level == logging.WARNING
    assert logging.getLogger("src.db.sql_repository").getEffectiveLevel() == logging.WARNING
