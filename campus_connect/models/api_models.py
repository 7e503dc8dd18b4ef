"""
HTTP Wire Models.

Request and response bodies for the ``/auth`` endpoints.  The client
``AuthApiClient`` builds requests from these and validates responses
back into them, so both sides share one contract.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from campus_connect.models.enums import IssueCategory, UserRole
from campus_connect.models.user import User


class LoginRequest(BaseModel):
    email: str
    password: str = Field(repr=False)


class RegisterRequest(BaseModel):
    """Account details for ``send-otp`` and the legacy ``register`` path."""

    name: str
    email: str
    password: str = Field(repr=False)
    role: UserRole
    department: str = ""
    categories: list[IssueCategory] = Field(default_factory=list)


class ResendOtpRequest(BaseModel):
    """Resend request.

    The registration fields are optional; when omitted the backend
    carries over the details stored with the superseded challenge.
    """

    name: str
    email: str
    password: Optional[str] = Field(default=None, repr=False)
    role: Optional[UserRole] = None
    department: Optional[str] = None
    categories: Optional[list[IssueCategory]] = None


class VerifyOtpRequest(BaseModel):
    email: str
    code: str


class ProfileUpdateRequest(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    department: Optional[str] = None
    avatar: Optional[str] = None
    password: Optional[str] = Field(default=None, repr=False)


class AuthenticatedUserResponse(User):
    """Principal fields plus the bearer token issued for them."""

    token: str

    def to_user(self) -> User:
        return User.model_validate(self.model_dump(exclude={"token"}))


class OtpDispatchResponse(BaseModel):
    """Acknowledgement of a sent code.

    ``expires_at - issued_at`` is the code's lifetime; clients count
    down from it instead of comparing against their own wall clock.
    """

    success: bool = True
    message: str
    email: str
    issued_at: datetime
    expires_at: datetime


class ErrorResponse(BaseModel):
    success: bool = False
    message: str
    error_code: str


class HealthResponse(BaseModel):
    status: str = "ok"
    version: str
