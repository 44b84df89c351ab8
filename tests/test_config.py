"""
Tests for environment-variable configuration and startup validation.
"""

from __future__ import annotations

import pytest

from core.config import Environment, load_cors_config, load_settings, parse_environment
from core.container import build_container
from core.errors import ConfigurationError
from main import create_app


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("", Environment.DEVELOPMENT),
        ("development", Environment.DEVELOPMENT),
        ("Dev", Environment.DEVELOPMENT),
        ("production", Environment.PRODUCTION),
        (" PROD ", Environment.PRODUCTION),
    ],
)
def test_parse_environment(raw, expected):
    assert parse_environment(raw) is expected


def test_invalid_environment_is_fatal():
    with pytest.raises(ConfigurationError):
        parse_environment("staging")


def test_load_settings_from_mapping():
    settings = load_settings(
        {
            "APP_ENV": "production",
            "CORS_ORIGINS": "https://a.example.com, https://b.example.com,,",
            "CORS_MAX_AGE": "120",
            "LOG_LEVEL": "debug",
        }
    )

    assert settings.environment is Environment.PRODUCTION
    assert settings.cors.origins == ("https://a.example.com", "https://b.example.com")
    assert settings.cors.max_age == 120
    assert settings.cors.dev_origin == "http://localhost:8080"
    assert settings.log_level == "DEBUG"


def test_bad_max_age_is_fatal():
    with pytest.raises(ConfigurationError):
        load_cors_config({"CORS_MAX_AGE": "soon"})
    with pytest.raises(ConfigurationError):
        load_cors_config({"CORS_MAX_AGE": "-1"})


def test_production_without_origins_refuses_to_start():
    settings = load_settings({"APP_ENV": "production"})

    with pytest.raises(ConfigurationError):
        build_container(settings)
    with pytest.raises(ConfigurationError):
        create_app(settings)


def test_cors_source_rereads_environment(monkeypatch):
    settings = load_settings({"APP_ENV": "production", "CORS_ORIGINS": "https://a.example.com"})
    container = build_container(settings)

    monkeypatch.setenv("CORS_ORIGINS", "https://b.example.com")
    assert container.cors_settings.current().origins == ("https://b.example.com",)

    monkeypatch.setenv("CORS_ORIGINS", "")
    assert container.cors_settings.current().origins == ("https://b.example.com",)
