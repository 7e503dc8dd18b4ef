"""
Data Models Package.

Re-exports the models most call sites need:
    from campus_connect.models import User, UserRole, AuthState
"""

from campus_connect.models.auth_models import (
    AuthErrorCode,
    AuthResult,
    AuthState,
    CachedSession,
    PasswordCheck,
    ValidationResult,
)
from campus_connect.models.enums import (
    AccessDecision,
    AuthPhase,
    IssueCategory,
    OtpVerification,
    UserRole,
)
from campus_connect.models.registration import (
    OtpChallenge,
    PendingRegistration,
    ProfilePatch,
    RegistrationData,
)
from campus_connect.models.user import User

__all__ = [
    "AccessDecision",
    "AuthErrorCode",
    "AuthPhase",
    "AuthResult",
    "AuthState",
    "CachedSession",
    "IssueCategory",
    "OtpChallenge",
    "OtpVerification",
    "PasswordCheck",
    "PendingRegistration",
    "ProfilePatch",
    "RegistrationData",
    "User",
    "UserRole",
    "ValidationResult",
]
