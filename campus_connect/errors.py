"""
Backend Exception Hierarchy.

Services on the backend raise these; a single FastAPI exception handler
(``campus_connect.api.app``) turns them into
``{"success": false, "message": ..., "error_code": ...}`` bodies with the
status code declared on each class.
"""

from __future__ import annotations

from campus_connect.models.auth_models import AuthErrorCode, GENERIC_CREDENTIALS_MESSAGE
from campus_connect.models.enums import OtpVerification


class CampusConnectError(Exception):
    """Base class for every error the HTTP layer knows how to render."""

    status_code: int = 500
    error_code: AuthErrorCode = AuthErrorCode.UNKNOWN_ERROR

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationFailedError(CampusConnectError):
    status_code = 400
    error_code = AuthErrorCode.VALIDATION_ERROR


class InvalidCredentialsError(CampusConnectError):
    """Wrong email or password.  The message never says which."""

    status_code = 401
    error_code = AuthErrorCode.INVALID_CREDENTIALS

    def __init__(self, message: str = GENERIC_CREDENTIALS_MESSAGE) -> None:
        super().__init__(message)


class EmailAlreadyRegisteredError(CampusConnectError):
    status_code = 409
    error_code = AuthErrorCode.EMAIL_ALREADY_EXISTS

    def __init__(self, message: str = "An account with this email already exists.") -> None:
        super().__init__(message)


class RegistrationDisabledError(CampusConnectError):
    status_code = 410
    error_code = AuthErrorCode.REGISTRATION_DISABLED

    def __init__(
        self,
        message: str = "Direct registration is disabled. Verify your email with a code instead.",
    ) -> None:
        super().__init__(message)


# ---------------------------------------------------------------------------
# OTP challenges
# ---------------------------------------------------------------------------

_OTP_MESSAGES: dict[OtpVerification, tuple[AuthErrorCode, str]] = {
    OtpVerification.EXPIRED: (
        AuthErrorCode.OTP_EXPIRED,
        "Verification code has expired. Please request a new one.",
    ),
    OtpVerification.MISMATCH: (
        AuthErrorCode.OTP_MISMATCH,
        "Invalid verification code.",
    ),
    OtpVerification.NOT_FOUND: (
        AuthErrorCode.OTP_NOT_FOUND,
        "No pending verification for this email. Please request a new code.",
    ),
}


class OtpError(CampusConnectError):
    """Base class for OTP failures."""


class OtpVerificationError(OtpError):
    """A submitted code was not accepted; ``outcome`` says why."""

    status_code = 400

    def __init__(self, outcome: OtpVerification) -> None:
        error_code, message = _OTP_MESSAGES[outcome]
        super().__init__(message)
        self.outcome = outcome
        self.error_code = error_code


class OtpDeliveryError(OtpError):
    """The code was stored but the email could not be sent."""

    status_code = 500
    error_code = AuthErrorCode.DELIVERY_FAILED

    def __init__(
        self,
        message: str = "Failed to send verification email. Please try resending the code.",
    ) -> None:
        super().__init__(message)


# ---------------------------------------------------------------------------
# Tokens
# ---------------------------------------------------------------------------

class TokenError(CampusConnectError):
    status_code = 401
    error_code = AuthErrorCode.SESSION_EXPIRED


class TokenInvalidError(TokenError):
    def __init__(self, message: str = "Not authorized, invalid token.") -> None:
        super().__init__(message)


class TokenExpiredError(TokenError):
    def __init__(self, message: str = "Not authorized, token expired.") -> None:
        super().__init__(message)


class ForbiddenError(CampusConnectError):
    """Authenticated, but the principal's role is not allowed here."""

    status_code = 403
    error_code = AuthErrorCode.FORBIDDEN

    def __init__(self, message: str = "You do not have permission to access this resource.") -> None:
        super().__init__(message)
