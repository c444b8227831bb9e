"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for AdminGate happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. secret_key -> SECRET_KEY, rate_limit_max_attempts ->
      RATE_LIMIT_MAX_ATTEMPTS). Type coercion and validation are built in.

  @model_validator(mode="after"): Cross-field validation once every field is
      resolved. Enforces the SECRET_KEY policy and keeps the durable store
      timeout inside the 2-4 second band.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import logging
import secrets
from functools import lru_cache
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("admingate.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'auth' / 'admingate.db'}"


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
    # Empty string is the sentinel for "not configured". The model_validator
    # below either generates a dev key or raises, so callers never see "".
    secret_key: str = ""

    # JSON lists in the environment, e.g. ALLOWED_HOSTS='["admin.example.com"]'
    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost"]
    cors_origins: list[str] = ["http://localhost", "http://localhost:3000", "http://127.0.0.1"]

    # ------------------------------------------------------------------
    # Durable store
    # ------------------------------------------------------------------

    database_url: str = _DEFAULT_DB_URL
    # Applied as connect, busy and pool-checkout timeout. A store call that
    # cannot complete inside it fails closed as infrastructure_error.
    store_timeout_seconds: float = 3.0

    # ------------------------------------------------------------------
    # Ephemeral rate limiter
    # ------------------------------------------------------------------

    rate_limit_max_attempts: int = 5
    rate_limit_window_seconds: int = 15 * 60
    rate_limit_lockout_seconds: int = 30 * 60
    rate_limit_sweep_seconds: int = 5 * 60

    # ------------------------------------------------------------------
    # Durable lockout ledger
    # ------------------------------------------------------------------

    ledger_max_failed_attempts: int = 5
    ledger_lock_seconds: int = 30 * 60

    # ------------------------------------------------------------------
    # Session
    # ------------------------------------------------------------------

    session_cookie_name: str = "admin_session"
    session_max_age_seconds: int = 2 * 60 * 60
    session_refresh_seconds: int = 30 * 60
    secure_cookies: bool = False
    post_login_redirect: str = "/admin/dashboard"

    # ------------------------------------------------------------------
    # HTTP throttle (per client address, in front of the login route)
    # ------------------------------------------------------------------

    login_rate_limit: str = "30/minute"

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Enforce the SECRET_KEY policy.

        Dev mode (DEBUG=true): auto-generate a random key with a warning.
            Sessions will not survive restart -- acceptable for local dev.

        Production mode (DEBUG=false or not set): refuse to start if
            SECRET_KEY is missing.

        Both modes: reject keys shorter than 32 characters.
        """
        if not self.secret_key:
            if self.debug:
                self.secret_key = secrets.token_hex(32)
                logger.warning(
                    "WARNING: Using auto-generated SECRET_KEY. " "Sessions will not persist across restarts."
                )
            else:
                raise ValueError(
                    "SECRET_KEY is required in production mode. "
                    "Set SECRET_KEY in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")
        return self

    @model_validator(mode="after")
    def validate_store_timeout(self) -> "Settings":
        """Keep the durable store timeout between 2 and 4 seconds."""
        if not 2.0 <= self.store_timeout_seconds <= 4.0:
            raise ValueError("STORE_TIMEOUT_SECONDS must be between 2 and 4.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
