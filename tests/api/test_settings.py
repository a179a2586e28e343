"""Tests for settings validation."""

import pytest
from pydantic import ValidationError

from lms_api.settings import Settings

SECRETS = {
    "jwt_access_secret": "a" * 32,
    "jwt_refresh_secret": "b" * 32,
    "delivery_signing_secret": "c" * 32,
}


class TestSettings:
    """LMS_* settings and startup validation."""

    def test_local_defaults(self, monkeypatch):
        monkeypatch.delenv("LMS_ENV", raising=False)
        settings = Settings(_env_file=None, **SECRETS)

        assert settings.env == "local"
        assert settings.access_token_ttl_seconds == 900
        assert settings.delivery_url_ttl_seconds == 120
        assert settings.token_config().issuer == "navcloud-auth"

    def test_reads_prefixed_environment(self, monkeypatch):
        monkeypatch.setenv("LMS_JWT_ACCESS_SECRET", "x" * 40)
        monkeypatch.setenv("LMS_JWT_REFRESH_SECRET", "y" * 40)
        monkeypatch.setenv("LMS_DELIVERY_SIGNING_SECRET", "z" * 40)
        monkeypatch.setenv("LMS_GOOGLE_ADMIN_EMAILS", "Boss@Example.com, ")

        settings = Settings(_env_file=None)

        assert settings.jwt_access_secret == "x" * 40
        assert settings.admin_emails == frozenset({"boss@example.com"})

    def test_short_secret_rejected(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, **{**SECRETS, "jwt_access_secret": "short"})

    def test_delivery_ttl_capped(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, **SECRETS, delivery_url_ttl_seconds=301)

    def test_prod_collects_all_errors(self):
        with pytest.raises(ValidationError) as exc:
            Settings(
                _env_file=None,
                env="prod",
                jwt_access_secret="s" * 32,
                jwt_refresh_secret="s" * 32,
                delivery_signing_secret="c" * 32,
            )

        message = str(exc.value)
        assert "LMS_DATABASE_URL" in message
        assert "LMS_REDIS_URL" in message
        assert "LMS_GOOGLE_CLIENT_ID" in message
        assert "LMS_CORS_ORIGINS" in message
        assert "must differ" in message

    def test_valid_prod(self):
        settings = Settings(
            _env_file=None,
            **SECRETS,
            env="prod",
            database_url="postgresql+asyncpg://lms:pw@db.internal:5432/lms",
            redis_url="redis://cache.internal:6379/0",
            google_client_id="id",
            google_client_secret="secret",
            cors_origins=["https://app.example.com"],
        )

        assert settings.env == "prod"
