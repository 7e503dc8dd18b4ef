"""
Shared Enumerations for Campus Connect Models.

StrEnum values compare equal to their string equivalents, so
``role == "student"`` keeps working alongside ``UserRole.STUDENT``.
"""

from __future__ import annotations

from enum import StrEnum


class UserRole(StrEnum):
    """Roles a principal may hold.

    ``AUTHORITY`` principals handle issues in the categories listed on
    their profile; students and faculty belong to a department.
    """

    STUDENT = "student"
    FACULTY = "faculty"
    AUTHORITY = "authority"


class IssueCategory(StrEnum):
    """Issue categories an authority can be responsible for."""

    MAINTENANCE = "maintenance"
    CANTEEN = "canteen"
    CLASSROOM = "classroom"
    HOSTEL = "hostel"
    TRANSPORT = "transport"
    OTHER = "other"


class AuthPhase(StrEnum):
    """Phases of the client-side auth state machine."""

    ANONYMOUS = "anonymous"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"
    UPDATING = "updating"


class OtpVerification(StrEnum):
    """Outcome of checking a submitted code against a challenge."""

    VERIFIED = "verified"
    EXPIRED = "expired"
    MISMATCH = "mismatch"
    NOT_FOUND = "not_found"


class AccessDecision(StrEnum):
    """What a protected navigation should do for a given principal."""

    ALLOW = "allow"
    REDIRECT_LOGIN = "redirect_login"
    FORBIDDEN = "forbidden"
