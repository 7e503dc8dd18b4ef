"""
Application Configuration.

Pydantic Settings model shared by the Campus Connect backend and the
client library.  All configuration is loaded from environment variables
and ``.env`` files.  Inject an ``AppConfig`` instance via dependency
injection where needed.
"""

from __future__ import annotations

import logging
import secrets
import threading
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field, SecretStr, model_validator
from pydantic_settings import BaseSettings


class AppConfig(BaseSettings):
    """Central configuration loaded from environment variables and defaults."""

    # --- HTTP server ---
    SERVER_HOST: str = "127.0.0.1"
    SERVER_PORT: int = 5000
    CORS_ORIGINS: list[str] = Field(default_factory=lambda: ["http://localhost:5173"])

    # --- HTTP client ---
    API_BASE_URL: str = "http://127.0.0.1:5000"
    HTTP_TIMEOUT_SECONDS: float = 30.0

    # --- Storage ---
    DATABASE_PATH: str = "campus_connect.db"
    CLIENT_DATABASE_PATH: str = "campus_connect_client.db"

    # --- Tokens ---
    JWT_SECRET_KEY: SecretStr = SecretStr("")
    JWT_ALGORITHM: str = "HS256"
    TOKEN_EXPIRE_DAYS: int = 7

    # --- OTP challenges ---
    OTP_EXPIRY_MINUTES: int = 10
    OTP_MAX_ATTEMPTS: int = 5
    OTP_SECRET_KEY: SecretStr = SecretStr("")

    # --- Password verifiers ---
    BCRYPT_ROUNDS: int = 12

    # --- Registration ---
    LEGACY_REGISTRATION_ENABLED: bool = False

    # --- Email / SMTP ---
    MAIL_BACKEND: Literal["console", "smtp"] = "console"
    MAIL_SERVER: str = "smtp.gmail.com"
    MAIL_PORT: int = 587
    MAIL_USERNAME: str = ""
    MAIL_PASSWORD: SecretStr = SecretStr("")
    MAIL_FROM: str = ""

    # --- Client session cache ---
    SESSION_MAX_AGE_DAYS: int = 7
    SESSION_KDF_ITERATIONS: int = 600_000
    SESSION_SALT_PATH: str = str(Path.home() / ".campus_connect_session_salt")

    # --- Logging ---
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = "campus_connect.log"
    LOG_MAX_BYTES: int = 5_242_880  # 5 MB
    LOG_BACKUP_COUNT: int = 3

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    @model_validator(mode="after")
    def _warn_missing_env(self) -> "AppConfig":
        """Emit startup warnings when critical configuration is empty.

        A missing ``JWT_SECRET_KEY`` is replaced with a random per-process
        secret so the backend still boots; every token it issues becomes
        unverifiable after a restart.
        """
        _log = logging.getLogger("campus_connect.config")

        if not Path(".env").exists():
            _log.warning(
                "No .env file found. All configuration loaded from "
                "environment variables or defaults."
            )

        if not self.JWT_SECRET_KEY.get_secret_value():
            _log.warning(
                "JWT_SECRET_KEY is empty. Using an ephemeral secret; "
                "issued tokens will not survive a restart."
            )
            self.JWT_SECRET_KEY = SecretStr(secrets.token_urlsafe(48))

        if not self.OTP_SECRET_KEY.get_secret_value():
            self.OTP_SECRET_KEY = SecretStr(self.JWT_SECRET_KEY.get_secret_value())

        if self.MAIL_BACKEND == "smtp" and not self.MAIL_USERNAME:
            _log.warning(
                "MAIL_BACKEND is 'smtp' but MAIL_USERNAME is empty. "
                "Verification codes cannot be delivered."
            )

        return self

    def validate_email_config(self) -> None:
        """Validate that SMTP configuration is complete.

        Raises:
            ValueError: If required email settings are missing.
        """
        if not self.MAIL_USERNAME or not self.MAIL_PASSWORD.get_secret_value():
            raise ValueError("MAIL_USERNAME and MAIL_PASSWORD must be set")
        if not self.MAIL_SERVER:
            raise ValueError("MAIL_SERVER must be set")


# ---------------------------------------------------------------------------
# Module-level singleton factory
# ---------------------------------------------------------------------------

_config_instance: Optional[AppConfig] = None
_config_lock: threading.Lock = threading.Lock()


def get_config() -> AppConfig:
    """Return a cached ``AppConfig`` singleton.

    Uses a check-lock-check pattern so the fast path skips the lock while
    first initialisation stays thread-safe.  Prefer constructor injection
    of ``AppConfig``; this factory serves entry points and the logger.
    """
    global _config_instance
    if _config_instance is None:
        with _config_lock:
            if _config_instance is None:
                _config_instance = AppConfig()
    return _config_instance


def reset_config() -> None:
    """Drop the cached singleton so the next ``get_config()`` re-reads the env."""
    global _config_instance
    with _config_lock:
        _config_instance = None
