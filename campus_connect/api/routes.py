"""
``/auth`` HTTP endpoints.

Thin handlers: each one delegates to ``AccountService`` and lets the
application-level exception handler render failures.
"""

from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, status

from campus_connect.api.dependencies import Accounts, CurrentUser
from campus_connect.models.api_models import (
    AuthenticatedUserResponse,
    LoginRequest,
    OtpDispatchResponse,
    ProfileUpdateRequest,
    RegisterRequest,
    ResendOtpRequest,
    VerifyOtpRequest,
)
from campus_connect.models.user import User

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/login", response_model=AuthenticatedUserResponse)
def login(body: LoginRequest, accounts: Accounts) -> AuthenticatedUserResponse:
    return accounts.login(body.email, body.password)


@router.post(
    "/register",
    response_model=AuthenticatedUserResponse,
    status_code=status.HTTP_201_CREATED,
    deprecated=True,
)
def register(body: RegisterRequest, accounts: Accounts) -> AuthenticatedUserResponse:
    """Direct registration without email verification (disabled by default)."""
    return accounts.register_direct(body)


@router.post("/send-otp", response_model=OtpDispatchResponse)
def send_otp(body: RegisterRequest, accounts: Accounts) -> OtpDispatchResponse:
    challenge = accounts.start_registration(body)
    return OtpDispatchResponse(
        message="Verification code sent to your email.",
        email=challenge.email,
        issued_at=challenge.issued_at,
        expires_at=challenge.expires_at,
    )


@router.post("/resend-otp", response_model=OtpDispatchResponse)
def resend_otp(body: ResendOtpRequest, accounts: Accounts) -> OtpDispatchResponse:
    challenge = accounts.resend_registration(body)
    return OtpDispatchResponse(
        message="A new verification code has been sent.",
        email=challenge.email,
        issued_at=challenge.issued_at,
        expires_at=challenge.expires_at,
    )


@router.post(
    "/verify-otp",
    response_model=AuthenticatedUserResponse,
    status_code=status.HTTP_201_CREATED,
)
def verify_otp(
    body: VerifyOtpRequest,
    accounts: Accounts,
    background_tasks: BackgroundTasks,
) -> AuthenticatedUserResponse:
    response = accounts.complete_registration(body.email, body.code)
    background_tasks.add_task(accounts.send_welcome_email, response.to_user())
    return response


@router.get("/me", response_model=User)
def me(user: CurrentUser) -> User:
    return user


@router.put("/profile", response_model=AuthenticatedUserResponse)
def update_profile(
    body: ProfileUpdateRequest,
    user: CurrentUser,
    accounts: Accounts,
) -> AuthenticatedUserResponse:
    return accounts.update_profile(user, body)
