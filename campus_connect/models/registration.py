"""
Registration and Profile Models.

Form payloads collected by the client and the server-side records that
carry a pending registration across the OTP step.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from campus_connect.models.enums import IssueCategory, UserRole


class RegistrationData(BaseModel):
    """Sign-up form contents.

    Kept in client memory only while the user enters the emailed code;
    never written to the session cache.
    """

    name: str
    email: str
    password: str = Field(repr=False)
    confirm_password: Optional[str] = Field(default=None, repr=False)
    role: UserRole = UserRole.STUDENT
    department: str = ""
    categories: list[IssueCategory] = Field(default_factory=list)


class ProfilePatch(BaseModel):
    """Partial profile update.  ``None`` fields are left untouched."""

    name: Optional[str] = None
    email: Optional[str] = None
    department: Optional[str] = None
    avatar: Optional[str] = None
    password: Optional[str] = Field(default=None, repr=False)

    def changes(self) -> dict[str, str]:
        """Return only the fields the caller actually supplied."""
        return self.model_dump(exclude_none=True)


class PendingRegistration(BaseModel):
    """Account details held with an OTP challenge until it is verified.

    Only the password verifier is stored, never the password itself.
    """

    name: str
    email: str
    role: UserRole
    department: str = ""
    categories: list[IssueCategory] = Field(default_factory=list)
    password_hash: str = Field(repr=False)


class OtpChallenge(BaseModel):
    """Server-side OTP challenge record, keyed by lower-cased email.

    ``code`` is populated only on the instance returned by a fresh issue
    so the caller can dispatch it; it is never persisted or serialised.
    """

    email: str
    code_hash: str = Field(repr=False)
    issued_at: datetime
    expires_at: datetime
    attempts: int = 0
    consumed: bool = False
    name: str = ""
    registration: Optional[PendingRegistration] = None
    code: Optional[str] = Field(default=None, exclude=True, repr=False)

    model_config = {"from_attributes": True}

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at
