"""Unit tests for core/config.py settings validation.

Covers:
- Defaults when no environment is set
- Non-positive TTLs and bcrypt cost fall back to their defaults
- Out-of-range bcrypt cost, short RSA keys and non-positive sweeper timings
  are rejected at startup
- Environment variables override defaults
"""

import pytest
from pydantic import ValidationError

from core.config import (
    DEFAULT_ACCESS_TOKEN_TTL,
    DEFAULT_BCRYPT_COST,
    DEFAULT_REFRESH_TOKEN_TTL,
    Settings,
    get_settings,
)


def _settings(**overrides) -> Settings:
    return Settings(_env_file=None, **overrides)


class TestDefaults:
    def test_defaults(self) -> None:
        s = _settings()
        assert s.access_token_ttl_seconds == 900
        assert s.refresh_token_ttl_seconds == 7 * 24 * 3600
        assert s.bcrypt_cost == 12
        assert s.rsa_key_bits == 2048
        assert s.jwt_issuer == "authgate"

    @pytest.mark.parametrize("value", [0, -1])
    def test_non_positive_ttls_use_defaults(self, value: int) -> None:
        s = _settings(access_token_ttl_seconds=value, refresh_token_ttl_seconds=value)
        assert s.access_token_ttl_seconds == DEFAULT_ACCESS_TOKEN_TTL
        assert s.refresh_token_ttl_seconds == DEFAULT_REFRESH_TOKEN_TTL

    def test_non_positive_bcrypt_cost_uses_default(self) -> None:
        assert _settings(bcrypt_cost=0).bcrypt_cost == DEFAULT_BCRYPT_COST


class TestRejected:
    @pytest.mark.parametrize("cost", [3, 32])
    def test_bcrypt_cost_out_of_range(self, cost: int) -> None:
        with pytest.raises(ValidationError):
            _settings(bcrypt_cost=cost)

    def test_short_rsa_key(self) -> None:
        with pytest.raises(ValidationError):
            _settings(rsa_key_bits=1024)

    def test_non_positive_cleanup_interval(self) -> None:
        with pytest.raises(ValidationError):
            _settings(cleanup_interval_seconds=0)


class TestEnvironment:
    def test_env_override(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("ACCESS_TOKEN_TTL_SECONDS", "60")
        monkeypatch.setenv("JWT_ISSUER", "issuer-from-env")
        s = _settings()
        assert s.access_token_ttl_seconds == 60
        assert s.jwt_issuer == "issuer-from-env"

    def test_get_settings_is_cached(self) -> None:
        assert get_settings() is get_settings()
