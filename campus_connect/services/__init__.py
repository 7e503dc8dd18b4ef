"""
Business Logic Services Package.

Two composition roots, one per side of the network boundary:

- ``create_services()`` wires the backend repositories and services and
  returns a typed dict that the FastAPI application stores on
  ``app.state``.
- ``create_client_services()`` wires the client auth stack (HTTP client,
  session holder, encrypted cache, controller, route registry).

Callers consume the containers without knowing the dependency graph.
"""

from __future__ import annotations

from datetime import datetime
from typing import Callable, Optional, TypedDict

import httpx

from campus_connect.auth import SessionManager
from campus_connect.config import AppConfig
from campus_connect.database import DatabaseManager
from campus_connect.logger import get_logger
from campus_connect.repositories.otp_repository import OtpChallengeRepository
from campus_connect.repositories.user_repository import UserRepository
from campus_connect.services.account_service import AccountService
from campus_connect.services.api_client import AuthApiClient
from campus_connect.services.auth_service import AuthService
from campus_connect.services.authorization import RouteRegistry
from campus_connect.services.email_service import (
    ConsoleEmailService,
    EmailSender,
    EmailService,
)
from campus_connect.services.otp_service import OtpChallengeManager
from campus_connect.services.session_cache import SessionCacheService
from campus_connect.services.token_service import TokenService
from campus_connect.utils.passwords import PasswordHasher


class ServerServiceContainer(TypedDict):
    """Typed container for the backend services."""

    config: AppConfig
    db: DatabaseManager
    user_repo: UserRepository
    otp_repo: OtpChallengeRepository
    email_service: EmailSender
    otp_manager: OtpChallengeManager
    token_service: TokenService
    account_service: AccountService


class ClientServiceContainer(TypedDict):
    """Typed container for the client auth stack."""

    session: SessionManager
    session_cache: SessionCacheService
    api_client: AuthApiClient
    auth_service: AuthService
    route_registry: RouteRegistry


def create_services(
    db: DatabaseManager,
    config: AppConfig,
    email_sender: Optional[EmailSender] = None,
    clock: Optional[Callable[[], datetime]] = None,
) -> ServerServiceContainer:
    """
    Wire all backend repositories and services together.

    This is the single composition root for the backend.  ``main.py``
    calls it once at startup and hands the result to ``create_app()``.

    Args:
        db: Initialised DatabaseManager with the server schema applied.
        config: Application configuration.
        email_sender: Overrides the mail backend chosen by
            ``MAIL_BACKEND`` (tests pass a ``ConsoleEmailService``).
        clock: Overrides the UTC clock of time-dependent services.

    Returns:
        ServerServiceContainer mapping service names to wired instances.
    """
    logger = get_logger("campus_connect.services")
    clock_kwargs = {"clock": clock} if clock is not None else {}

    # ------------------------------------------------------------------
    # 1. Repositories (data-access layer)
    # ------------------------------------------------------------------
    user_repo = UserRepository(db=db, logger=logger)
    otp_repo = OtpChallengeRepository(db=db, logger=logger)

    # ------------------------------------------------------------------
    # 2. Leaf services
    # ------------------------------------------------------------------
    if email_sender is None:
        email_sender = (
            EmailService(config=config, logger=logger)
            if config.MAIL_BACKEND == "smtp"
            else ConsoleEmailService(logger=logger)
        )
    password_hasher = PasswordHasher(rounds=config.BCRYPT_ROUNDS)
    token_service = TokenService(
        user_repo=user_repo,
        secret_key=config.JWT_SECRET_KEY.get_secret_value(),
        logger=logger,
        algorithm=config.JWT_ALGORITHM,
        expire_days=config.TOKEN_EXPIRE_DAYS,
        **clock_kwargs,
    )
    otp_manager = OtpChallengeManager(
        db=db,
        repo=otp_repo,
        email_sender=email_sender,
        secret_key=config.OTP_SECRET_KEY.get_secret_value(),
        logger=logger,
        expiry_minutes=config.OTP_EXPIRY_MINUTES,
        max_attempts=config.OTP_MAX_ATTEMPTS,
        **clock_kwargs,
    )

    # ------------------------------------------------------------------
    # 3. Orchestration services
    # ------------------------------------------------------------------
    account_service = AccountService(
        user_repo=user_repo,
        otp_manager=otp_manager,
        token_service=token_service,
        password_hasher=password_hasher,
        email_sender=email_sender,
        logger=logger,
        legacy_registration_enabled=config.LEGACY_REGISTRATION_ENABLED,
    )

    return ServerServiceContainer(
        config=config,
        db=db,
        user_repo=user_repo,
        otp_repo=otp_repo,
        email_service=email_sender,
        otp_manager=otp_manager,
        token_service=token_service,
        account_service=account_service,
    )


def create_client_services(
    db: DatabaseManager,
    config: AppConfig,
    http_client: Optional[httpx.Client] = None,
    session_cache: Optional[SessionCacheService] = None,
) -> ClientServiceContainer:
    """
    Wire the client auth stack.

    Args:
        db: Initialised DatabaseManager with the client schema applied.
        config: Application configuration.
        http_client: Pre-built ``httpx.Client`` (e.g. a FastAPI
            ``TestClient``); a new one targeting ``API_BASE_URL`` otherwise.
        session_cache: Overrides the encrypted session cache.

    Returns:
        ClientServiceContainer mapping service names to wired instances.
    """
    logger = get_logger("campus_connect.client")

    session = SessionManager()
    if session_cache is None:
        session_cache = SessionCacheService(
            db=db,
            logger=logger,
            max_age_days=config.SESSION_MAX_AGE_DAYS,
            salt_path=config.SESSION_SALT_PATH,
            kdf_iterations=config.SESSION_KDF_ITERATIONS,
        )
    api_client = AuthApiClient(
        base_url=config.API_BASE_URL,
        logger=logger,
        timeout=config.HTTP_TIMEOUT_SECONDS,
        client=http_client,
    )
    auth_service = AuthService(
        api=api_client,
        session=session,
        session_cache=session_cache,
        logger=logger,
    )

    return ClientServiceContainer(
        session=session,
        session_cache=session_cache,
        api_client=api_client,
        auth_service=auth_service,
        route_registry=RouteRegistry(logger=logger),
    )
