"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for the Samaj backend happen here. No module
should call os.getenv() or os.environ.get() directly -- import get_settings()
instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call. This is
      the FastAPI dependency injection pattern for config.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. secret_key -> SECRET_KEY). Type coercion and validation are built in.

  @model_validator(mode="after"): Runs cross-field validation after all fields
      are resolved from environment.

Security notes:
  [S1] SECRET_KEY has no default and no fallback. A missing key is a hard
       startup failure in every mode, DEBUG included. Tokens are never signed
       with a well-known or generated placeholder.

  [S2] SECRET_KEY shorter than 32 chars is rejected outright. JWT HS256
       signing relies on key entropy -- a short key weakens every session.

Layer rule: core/ is the kernel. This module may not import from api/,
auth/, or realtime/.
"""

import logging
from functools import lru_cache

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("samaj.config")

SEVEN_DAYS = 7 * 24 * 60 * 60


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    Everything except SECRET_KEY has a default so a deployment only has to
    provide the signing secret to boot. Environment variable names are the
    uppercased field names (`smtp_host` reads SMTP_HOST).
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    app_name: str = "VS Samaj App"
    debug: bool = False
    # Empty string is the sentinel for "not configured"; the validator
    # below refuses to continue, so callers never see "".
    secret_key: str = ""
    database_url: str = "sqlite:///samaj_identity.db"

    # ------------------------------------------------------------------
    # Sessions and one-time codes
    # ------------------------------------------------------------------

    token_expire_seconds: int = SEVEN_DAYS
    otp_ttl_seconds: int = 120

    # ------------------------------------------------------------------
    # HTTP surface
    # ------------------------------------------------------------------

    allowed_hosts: list[str] = ["*"]
    cors_origins: list[str] = ["http://localhost", "http://localhost:3000", "http://127.0.0.1"]

    # ------------------------------------------------------------------
    # Outbound email (empty SMTP_HOST means delivery is not configured)
    # ------------------------------------------------------------------

    smtp_host: str = ""
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""
    smtp_use_tls: bool = True
    email_from: str = ""
    email_from_name: str = "VS Samaj App"

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Refuse to load without a usable signing secret [S1][S2]."""
        if not self.secret_key:
            raise ValueError(
                "SECRET_KEY is required. "
                "Set SECRET_KEY in your environment or .env file; "
                "there is no built-in default."
            )
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")
        return self

    @model_validator(mode="after")
    def validate_otp_policy(self) -> "Settings":
        if self.otp_ttl_seconds <= 0 or self.token_expire_seconds <= 0:
            raise ValueError("OTP_TTL_SECONDS and TOKEN_EXPIRE_SECONDS must be positive.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
