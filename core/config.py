"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for Passgate happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call. The app
      lifespan hands that one object to the token issuer, cookie carrier,
      password hasher and stores -- nothing reads config ad hoc.

  Frozen BaseSettings: the instance is immutable after construction. Secret
      generation for dev mode happens inside field validators (before the
      model is frozen), cross-field rules in an after-validator that only reads.

Security notes:
  [M6] Token secrets shorter than 32 chars are rejected outright.

  [M7] In production mode (DEBUG not set or false), missing token secrets are
       a hard startup failure.

  [S1] ACCESS_TOKEN_SECRET and RENEWAL_TOKEN_SECRET must differ. Sharing one
       key would let a leaked access-signing key mint renewal tokens.

Layer rule: core/ is the kernel. This module may not import from api/, auth/,
messaging/, or media/.
"""

import logging
import secrets
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, ValidationInfo, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("passgate.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'passgate.db'}"
_DEFAULT_MEDIA_ROOT = str(Path(__file__).resolve().parent.parent / "media_files")


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    Environment variable name mapping: field names are uppercased automatically.
    E.g. `access_token_secret` reads from ACCESS_TOKEN_SECRET.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    # Declared first: the secret validators below read it from info.data.
    debug: bool = False
    database_url: str = _DEFAULT_DB_URL

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    # Empty string means "not configured". validate_default=True makes the
    # validator run on the default too, so callers never see "".
    access_token_secret: str = Field(default="", validate_default=True)
    renewal_token_secret: str = Field(default="", validate_default=True)
    access_token_expire_seconds: int = Field(default=3600, gt=0)  # 1 hour
    renewal_token_expire_seconds: int = Field(default=30 * 24 * 3600, gt=0)  # 30 days

    # ------------------------------------------------------------------
    # Pending credentials
    # ------------------------------------------------------------------

    otp_expire_seconds: int = Field(default=600, gt=0)
    reset_token_expire_seconds: int = Field(default=3600, gt=0)
    purge_interval_seconds: int = Field(default=6 * 60 * 60, gt=0)
    # Echo the OTP in the send-otp response. Only for local development and
    # harnesses without a mail/SMS gateway -- it defeats out-of-band delivery.
    expose_otp_in_response: bool = False

    # ------------------------------------------------------------------
    # Passwords
    # ------------------------------------------------------------------

    # bcrypt accepts 4..31. 12 is the library default; tests drop to 4.
    bcrypt_rounds: int = Field(default=12, ge=4, le=31)

    # ------------------------------------------------------------------
    # Cookies
    # ------------------------------------------------------------------

    secure_cookies: bool = False
    cookie_samesite: Literal["lax", "strict", "none"] = "lax"

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    client_app_url: str = "http://localhost:3000"
    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost"]
    cors_origins: list[str] = ["http://localhost", "http://localhost:3000", "http://127.0.0.1"]

    # ------------------------------------------------------------------
    # Rate limiting
    # ------------------------------------------------------------------

    rate_limit_enabled: bool = True
    login_rate_limit: str = "10/minute"
    otp_rate_limit: str = "5/minute"

    # ------------------------------------------------------------------
    # Outbound messaging (empty URL means "log instead of send")
    # ------------------------------------------------------------------

    email_gateway_url: str = ""
    email_api_key: str = ""
    email_from: str = "no-reply@localhost"
    sms_gateway_url: str = ""
    sms_api_key: str = ""
    sms_from: str = ""

    # ------------------------------------------------------------------
    # Media (empty cloud name means "store avatars on local disk")
    # ------------------------------------------------------------------

    cloudinary_cloud_name: str = ""
    cloudinary_api_key: str = ""
    cloudinary_api_secret: str = ""
    media_root: str = _DEFAULT_MEDIA_ROOT

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @field_validator("access_token_secret", "renewal_token_secret")
    @classmethod
    def resolve_token_secret(cls, value: str, info: ValidationInfo) -> str:
        """Enforce the token secret policy [M6][M7].

        Dev mode (DEBUG=true): auto-generate a random secret with a warning.
            Sessions will not survive restart -- acceptable for local dev.

        Production mode: refuse to start if the secret is missing.
        """
        env_name = info.field_name.upper()
        if not value:
            if info.data.get("debug"):
                logger.warning(
                    "WARNING: Using auto-generated %s. Sessions will not persist across restarts.", env_name
                )
                return secrets.token_hex(32)
            raise ValueError(
                f"{env_name} is required in production mode. "
                "Set it in your environment or .env file. "
                "To run in development mode, set DEBUG=true."
            )
        if len(value) < 32:
            raise ValueError(f"{env_name} must be at least 32 characters.")
        return value

    @model_validator(mode="after")
    def check_cross_field_rules(self) -> "Settings":
        """Reject combinations that are individually valid but unsafe together."""
        if self.access_token_secret == self.renewal_token_secret:
            raise ValueError("ACCESS_TOKEN_SECRET and RENEWAL_TOKEN_SECRET must differ.")  # [S1]
        if self.cookie_samesite == "none" and not self.secure_cookies:
            # Browsers drop SameSite=None cookies that are not also Secure.
            raise ValueError("COOKIE_SAMESITE=none requires SECURE_COOKIES=true.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
