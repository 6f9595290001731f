"""Tests for production configuration checks."""

import pytest

from app.config import PLACEHOLDER_SECRET, Settings


def _settings(**overrides) -> Settings:
    base = {
        "app_env": "production",
        "access_token_secret": "a" * 32,
        "refresh_token_secret": "b" * 32,
    }
    return Settings(_env_file=None, **{**base, **overrides})


def test_development_skips_checks():
    Settings(_env_file=None, app_env="development").validate_security_config()


def test_production_accepts_distinct_secrets():
    _settings().validate_security_config()


def test_production_rejects_placeholder_secret():
    with pytest.raises(RuntimeError):
        _settings(access_token_secret=PLACEHOLDER_SECRET).validate_security_config()


def test_production_rejects_shared_secret():
    with pytest.raises(RuntimeError, match="differ"):
        _settings(refresh_token_secret="a" * 32).validate_security_config()


def test_production_rejects_half_configured_rsa():
    with pytest.raises(RuntimeError, match="JWT_PUBLIC_KEY"):
        _settings(jwt_private_key="-----BEGIN KEY-----").validate_security_config()


def test_cors_origins_split():
    s = Settings(_env_file=None, cors_origin="http://a.test, http://b.test")
    assert s.cors_origins == ["http://a.test", "http://b.test"]
    assert Settings(_env_file=None, cors_origin="").cors_origins == ["*"]
