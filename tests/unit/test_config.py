"""Unit tests for configuration (vitalpoints/config.py)"""
import pytest

from vitalpoints import config
from vitalpoints.exceptions import ConfigurationError


def test_point_values():
    assert config.POINT_VALUES["food_log"] == 10
    assert config.POINT_VALUES["workout"] == 50
    assert config.POINT_VALUES["biofeedback_min"] <= config.POINT_VALUES["biofeedback_max"]
    assert config.POINT_VALUES["steps_min"] <= config.POINT_VALUES["steps_max"]


def test_validate_config_accepts_memory_store(monkeypatch):
    monkeypatch.setattr(config, "POINTS_STORE", "memory")
    monkeypatch.setattr(config, "DEFAULT_TIMEZONE", "Europe/Stockholm")

    config.validate_config()


def test_validate_config_rejects_unknown_store(monkeypatch):
    monkeypatch.setattr(config, "POINTS_STORE", "redis")

    with pytest.raises(ConfigurationError) as exc_info:
        config.validate_config()

    assert exc_info.value.config_key == "POINTS_STORE"


def test_validate_config_requires_database_url(monkeypatch):
    monkeypatch.setattr(config, "POINTS_STORE", "postgres")
    monkeypatch.setattr(config, "DATABASE_URL", "")

    with pytest.raises(ConfigurationError) as exc_info:
        config.validate_config()

    assert exc_info.value.config_key == "DATABASE_URL"


def test_validate_config_rejects_bad_timezone(monkeypatch):
    monkeypatch.setattr(config, "POINTS_STORE", "memory")
    monkeypatch.setattr(config, "DEFAULT_TIMEZONE", "Nowhere/Special")

    with pytest.raises(ConfigurationError) as exc_info:
        config.validate_config()

    assert exc_info.value.config_key == "DEFAULT_TIMEZONE"


def test_validate_config_rejects_bad_lock_timeout(monkeypatch):
    monkeypatch.setattr(config, "POINTS_STORE", "memory")
    monkeypatch.setattr(config, "AWARD_LOCK_TIMEOUT_SECONDS", 0)

    with pytest.raises(ConfigurationError):
        config.validate_config()
