"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for Express Connect happen here. No module
should call os.getenv() or os.environ.get() directly.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call. Only the composition root (api/main.py lifespan, asgi.py) calls it.
      Every service receives the Settings instance through its constructor, so
      auth/ and notify/ never perform ambient lookups.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. secret_key -> SECRET_KEY). Type coercion and validation are built in.

  @model_validator(mode="after"): DEBUG-conditional SECRET_KEY policy. Dev
      mode generates a key with a warning, production refuses to start.

Security notes:
  [M6] SECRET_KEY shorter than 32 chars is rejected outright. It signs session
       JWTs and keys the one-time-code HMAC.

  [M7] In production mode a missing SECRET_KEY is a hard startup failure.

  bcrypt_rounds below 12 is rejected.

Layer rule: core/ is the kernel. This module may not import from api/, auth/,
or notify/.
"""

import logging
import secrets
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("expressconnect.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'expressconnect.db'}"


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
    # Public origin used to build magic-link and reset-link URLs.
    base_url: str = "http://localhost:3000"
    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost", "testserver"]

    # ------------------------------------------------------------------
    # Account store
    # ------------------------------------------------------------------

    database_url: str = _DEFAULT_DB_URL
    store_timeout_seconds: float = 5.0

    # ------------------------------------------------------------------
    # Sessions and credentials
    # ------------------------------------------------------------------

    secure_cookies: bool = False
    session_max_age_seconds: int = 30 * 24 * 3600
    bcrypt_rounds: int = Field(default=12, ge=12, le=16)
    otp_max_age_seconds: int = 600
    reset_token_ttl_seconds: int = 15 * 60

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    notifier_backend: Literal["log", "resend"] = "log"
    email_code_delivery: Literal["otp", "magic-link"] = "otp"
    resend_api_key: str = ""
    email_from: str = "no-reply@localhost"
    email_from_name: str = "CEIC EAST"
    email_support_from: str = "support@localhost"
    notifier_timeout_seconds: float = 10.0

    # ------------------------------------------------------------------
    # Rate limiting
    # ------------------------------------------------------------------

    login_rate_limit: str = "10/minute"

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Enforce SECRET_KEY policy [M7].

        Dev mode (DEBUG=true): auto-generate a random key with a warning.
            Sessions will not survive restart.

        Production mode: refuse to start if SECRET_KEY is missing.

        Both modes: reject keys shorter than 32 characters [M6].
        """
        if not self.secret_key:
            if self.debug:
                self.secret_key = secrets.token_hex(32)
                logger.warning("WARNING: Using auto-generated SECRET_KEY. Sessions will not persist across restarts.")
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
    def validate_notifier(self) -> "Settings":
        """The Resend backend cannot start without an API key."""
        if self.notifier_backend == "resend" and not self.resend_api_key:
            raise ValueError("RESEND_API_KEY is required when NOTIFIER_BACKEND=resend.")
        self.base_url = self.base_url.rstrip("/")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    Call this only where the application is assembled. Services take the
    returned instance as a constructor argument.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables, or build Settings(...) directly.
    """
    return Settings()
