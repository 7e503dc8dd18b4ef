"""
Authentication Pipeline Models.

Pydantic models and enumerations for the contracts between the client
``AuthService`` and the UI layer.  Every auth operation returns a
structured, inspectable result rather than raw strings or exception
side-channels.
"""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from campus_connect.models.enums import AuthPhase
from campus_connect.models.user import User


# ---------------------------------------------------------------------------
# Error classification
# ---------------------------------------------------------------------------

class AuthErrorCode(StrEnum):
    """Exhaustive enumeration of authentication error categories.

    Shared by the backend error bodies and the client so the UI can
    tell "check your code" apart from "request a new code".
    """

    VALIDATION_ERROR = "validation_error"
    INVALID_CREDENTIALS = "invalid_credentials"
    EMAIL_ALREADY_EXISTS = "email_already_exists"
    OTP_EXPIRED = "otp_expired"
    OTP_MISMATCH = "otp_mismatch"
    OTP_NOT_FOUND = "otp_not_found"
    DELIVERY_FAILED = "delivery_failed"
    SESSION_EXPIRED = "session_expired"
    FORBIDDEN = "forbidden"
    REGISTRATION_DISABLED = "registration_disabled"
    NETWORK_ERROR = "network_error"
    NETWORK_TIMEOUT = "network_timeout"
    OPERATION_IN_PROGRESS = "operation_in_progress"
    INVALID_STATE = "invalid_state"
    UNKNOWN_ERROR = "unknown_error"


GENERIC_CREDENTIALS_MESSAGE: str = "Invalid email or password."


# ---------------------------------------------------------------------------
# Validation results
# ---------------------------------------------------------------------------

class ValidationResult(BaseModel):
    """Result of a single client-side field validation check.

    Attributes
    ----------
    is_valid:
        ``True`` when the value passes the validation rule.
    error_message:
        Human-readable description of the failure, or ``None`` on success.
    reason:
        Machine-readable failure tag (e.g. ``"invalid_format"``).
    """

    is_valid: bool
    error_message: Optional[str] = None
    reason: Optional[str] = None

    model_config = {"from_attributes": True}


class PasswordRequirement(StrEnum):
    """Individual rules of the password policy."""

    TOO_SHORT = "too_short"
    MISSING_UPPERCASE = "missing_uppercase"
    MISSING_LOWERCASE = "missing_lowercase"
    MISSING_DIGIT = "missing_digit"


class PasswordRuleStatus(BaseModel):
    """One line of the live password checklist."""

    requirement: PasswordRequirement
    label: str
    met: bool


class PasswordCheck(BaseModel):
    """Password policy evaluation reporting every unmet rule at once."""

    unmet: list[PasswordRequirement] = Field(default_factory=list)
    checklist: list[PasswordRuleStatus] = Field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.unmet

    @property
    def error_message(self) -> Optional[str]:
        """Sentence naming every unmet rule, or ``None`` when valid."""
        if not self.unmet:
            return None
        labels = [item.label.lower() for item in self.checklist if not item.met]
        return "Password must contain " + ", ".join(labels) + "."


# ---------------------------------------------------------------------------
# Unified auth response
# ---------------------------------------------------------------------------

class AuthResult(BaseModel):
    """Unified response for every client auth operation.

    The UI inspects ``success`` to pick the happy or error path and uses
    ``error_code`` to decide which extra controls to show (for example
    a "resend code" button after ``otp_expired``).

    Attributes
    ----------
    success:
        ``True`` when the operation completed without error.
    error_code:
        Structured error category (``None`` on success).
    error_message:
        Human-readable error description (``None`` on success).
    user:
        The principal after the operation, when one exists.
    otp_expires_at:
        Server-issued expiry of a freshly sent verification code.
    """

    success: bool
    error_code: Optional[AuthErrorCode] = None
    error_message: Optional[str] = None
    user: Optional[User] = None
    otp_expires_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


# ---------------------------------------------------------------------------
# Persisted client session
# ---------------------------------------------------------------------------

class CachedSession(BaseModel):
    """Decrypted session payload: a bearer token and its principal.

    Attributes
    ----------
    token:
        The bearer token issued by the backend.
    user:
        Snapshot of the principal the token was issued for.
    cached_at:
        UTC timestamp of the write, used for the maximum-age check.
    """

    token: str = Field(min_length=1)
    user: User
    cached_at: datetime

    model_config = {"from_attributes": True}


# ---------------------------------------------------------------------------
# Observable auth state
# ---------------------------------------------------------------------------

class AuthState(BaseModel):
    """Observable state of the client auth state machine.

    The validator rejects the combinations a loose flag record would
    allow: a principal is present exactly in the ``authenticated`` and
    ``updating`` phases.
    """

    phase: AuthPhase = AuthPhase.ANONYMOUS
    principal: Optional[User] = None
    error: Optional[str] = None
    error_code: Optional[AuthErrorCode] = None

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def _principal_matches_phase(self) -> "AuthState":
        holds_principal = self.phase in (AuthPhase.AUTHENTICATED, AuthPhase.UPDATING)
        if holds_principal != (self.principal is not None):
            raise ValueError(
                f"Phase {self.phase!s} "
                f"{'requires' if holds_principal else 'forbids'} a principal."
            )
        return self

    @property
    def is_authenticated(self) -> bool:
        return self.principal is not None

    @property
    def is_loading(self) -> bool:
        return self.phase in (AuthPhase.AUTHENTICATING, AuthPhase.UPDATING)


class AuthActionKind(StrEnum):
    """Events fed into the auth transition function."""

    RESTORE = "restore"
    LOGIN_START = "login_start"
    REGISTER_START = "register_start"
    CHALLENGE_SENT = "challenge_sent"
    AUTH_SUCCESS = "auth_success"
    AUTH_FAILURE = "auth_failure"
    UPDATE_START = "update_start"
    UPDATE_SUCCESS = "update_success"
    UPDATE_FAILURE = "update_failure"
    PRINCIPAL_REFRESHED = "principal_refreshed"
    SESSION_EXPIRED = "session_expired"
    LOGOUT = "logout"
    REJECT = "reject"
    CLEAR_ERROR = "clear_error"


class AuthAction(BaseModel):
    """A single event for :func:`campus_connect.services.auth_state.transition`."""

    kind: AuthActionKind
    principal: Optional[User] = None
    error: Optional[str] = None
    error_code: Optional[AuthErrorCode] = None

    model_config = {"frozen": True}
