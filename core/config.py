"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for Pocketbook happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. secret_key -> SECRET_KEY, credential_iterations ->
      CREDENTIAL_ITERATIONS). Type coercion and validation are built in.

  @model_validator(mode="after"): cross-field validation after all fields
      are resolved. Dev mode generates a SECRET_KEY with a warning; production
      mode refuses to start without one.

Security notes:
  SECRET_KEY shorter than 32 chars is rejected outright. JWT signing relies
  on key entropy.

  Credential parameters (salt/hash length, PBKDF2 iteration count) only
  affect newly written credentials. Stored credentials carry their own salt
  length and iteration count, so lowering CREDENTIAL_ITERATIONS in tests or
  raising it in production never invalidates existing passwords. Changing
  CREDENTIAL_HASH_BYTES does not break them either, because hash length is
  inferred from the stored blob.

Layer rule: core/ is the kernel. This module may not import from api/,
auth/ or ledger/.
"""

import logging
import secrets
from functools import lru_cache
from pathlib import Path

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("pocketbook.config")

_PROJECT_ROOT = Path(__file__).resolve().parent.parent


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file. The model_validator enforces
    production-safety rules at startup.
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
    default_locale: str = "en"

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    allowed_hosts: list[str] = Field(default_factory=lambda: ["localhost", "127.0.0.1", "*.localhost"])
    cors_origins: list[str] = Field(
        default_factory=lambda: ["http://localhost", "http://localhost:3000", "http://127.0.0.1"]
    )

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------

    auth_db_url: str = f"sqlite:///{_PROJECT_ROOT / 'pocketbook_auth.db'}"
    ledger_db_url: str = f"sqlite:///{_PROJECT_ROOT / 'pocketbook_ledger.db'}"

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    secure_cookies: bool = False
    token_expire_seconds: int = 3600
    login_rate_limit: str = "10/minute"

    # ------------------------------------------------------------------
    # Credentials (PBKDF2-HMAC-SHA512)
    # ------------------------------------------------------------------

    credential_salt_bytes: int = Field(default=16, ge=1)
    credential_hash_bytes: int = Field(default=32, ge=1, le=64)
    credential_iterations: int = Field(default=743243, ge=1, le=0xFFFFFFFF)

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Enforce SECRET_KEY policy.

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


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
