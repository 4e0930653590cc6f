"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for authgate happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. bcrypt_cost -> BCRYPT_COST).

  @model_validator(mode="after"): Runs cross-field validation after all fields
      are resolved. Non-positive durations fall back to their defaults; values
      outside a safe range are rejected at startup rather than at first use.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import logging
from functools import lru_cache
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("authgate.config")

_ROOT = Path(__file__).resolve().parent.parent

DEFAULT_ACCESS_TOKEN_TTL = 15 * 60
DEFAULT_REFRESH_TOKEN_TTL = 7 * 24 * 60 * 60
DEFAULT_BCRYPT_COST = 12
MIN_RSA_KEY_BITS = 2048


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    debug: bool = False
    log_level: str = "INFO"
    database_url: str = f"sqlite:///{_ROOT / 'authgate.db'}"
    # SQLite busy timeout; bounds how long a write waits on a locked database.
    db_busy_timeout_seconds: float = 5.0

    # ------------------------------------------------------------------
    # Signing keys
    # ------------------------------------------------------------------

    jwt_private_key_path: str = str(_ROOT / "keys" / "private.pem")
    jwt_public_key_path: str = str(_ROOT / "keys" / "public.pem")
    jwt_issuer: str = "authgate"
    rsa_key_bits: int = MIN_RSA_KEY_BITS

    # ------------------------------------------------------------------
    # Token lifetimes and hashing
    # ------------------------------------------------------------------

    access_token_ttl_seconds: int = DEFAULT_ACCESS_TOKEN_TTL
    refresh_token_ttl_seconds: int = DEFAULT_REFRESH_TOKEN_TTL
    bcrypt_cost: int = DEFAULT_BCRYPT_COST

    # ------------------------------------------------------------------
    # Expiry sweeper
    # ------------------------------------------------------------------

    cleanup_interval_seconds: float = 60 * 60
    cleanup_timeout_seconds: float = 30

    # ------------------------------------------------------------------
    # Rate limiting
    # ------------------------------------------------------------------

    rate_limit_enabled: bool = True
    login_rate_limit: str = "10/minute"

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_auth_settings(self) -> "Settings":
        """Apply defaults for unset durations and enforce safe bounds.

        bcrypt_cost: 0 or negative means "use the default" (12). Anything else
            outside bcrypt's supported range [4, 31] is a startup failure.

        rsa_key_bits: below 2048 is rejected outright. Shorter RSA moduli are
            within reach of well-funded factoring efforts.
        """
        if self.access_token_ttl_seconds <= 0:
            self.access_token_ttl_seconds = DEFAULT_ACCESS_TOKEN_TTL
        if self.refresh_token_ttl_seconds <= 0:
            self.refresh_token_ttl_seconds = DEFAULT_REFRESH_TOKEN_TTL
        if self.bcrypt_cost <= 0:
            self.bcrypt_cost = DEFAULT_BCRYPT_COST
        if not 4 <= self.bcrypt_cost <= 31:
            raise ValueError("BCRYPT_COST must be between 4 and 31.")
        if self.rsa_key_bits < MIN_RSA_KEY_BITS:
            raise ValueError(f"RSA_KEY_BITS must be at least {MIN_RSA_KEY_BITS}.")
        if not self.jwt_private_key_path or not self.jwt_public_key_path:
            raise ValueError("JWT_PRIVATE_KEY_PATH and JWT_PUBLIC_KEY_PATH are required.")
        if not self.jwt_issuer:
            self.jwt_issuer = "authgate"
        if self.cleanup_interval_seconds <= 0:
            raise ValueError("CLEANUP_INTERVAL_SECONDS must be positive.")
        if self.cleanup_timeout_seconds <= 0:
            raise ValueError("CLEANUP_TIMEOUT_SECONDS must be positive.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
