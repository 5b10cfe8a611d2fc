"""Tests for application settings"""

import logging

import pytest
from pydantic import ValidationError

from saas.config import Settings, get_settings


class TestSettingsValidation:
    def test_defaults_are_valid(self, monkeypatch):
        monkeypatch.delenv("ACCESS_SECRET_KEY", raising=False)
        monkeypatch.delenv("REFRESH_SECRET_KEY", raising=False)
        settings = Settings(_env_file=None)
        assert settings.access_secret_key != settings.refresh_secret_key
        assert settings.access_issuer != settings.refresh_issuer
        assert settings.default_tenant == "public"

    def test_equal_secrets_rejected(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, access_secret_key="same", refresh_secret_key="same")

    def test_equal_issuers_rejected(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, access_issuer="same", refresh_issuer="same")

    def test_non_positive_lifetime_rejected(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, access_expire_seconds=0)

    def test_environment_override(self, monkeypatch):
        monkeypatch.setenv("APP_DOMAIN", "example.com")
        monkeypatch.setenv("ACCESS_EXPIRE_SECONDS", "60")
        settings = Settings(_env_file=None)
        assert settings.app_domain == "example.com"
        assert settings.access_expire_seconds == 60


class TestDatabaseUrl:
    def test_built_from_parts(self):
        settings = Settings(
            _env_file=None,
            database_user="app",
            database_password="p@ss:word",
            database_host="db",
            database_port=6543,
            database_name="tenants",
        )
        assert settings.sqlalchemy_url == "postgresql+asyncpg://app:p%40ss%3Aword@db:6543/tenants"

    def test_explicit_url_wins(self):
        settings = Settings(_env_file=None, database_url="postgresql+asyncpg://x/y")
        assert settings.sqlalchemy_url == "postgresql+asyncpg://x/y"


class TestGetSettings:
    def test_cached(self):
        assert get_settings() is get_settings()

    def test_warns_on_default_secrets(self, monkeypatch, caplog):
        monkeypatch.delenv("ACCESS_SECRET_KEY", raising=False)
        monkeypatch.delenv("REFRESH_SECRET_KEY", raising=False)
        with caplog.at_level(logging.WARNING, logger="saas.config"):
            Settings(_env_file=None).warn_on_insecure_defaults()
        assert "default token secrets" in caplog.text
