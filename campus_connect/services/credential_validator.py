"""
Credential Validator.

Stateless shape and strength rules for the sign-in, sign-up and profile
forms.  No I/O and no logging: cheap enough to run on every keystroke,
and safe to call on the backend to re-check what a client submitted.
"""

from __future__ import annotations

import re
from typing import Callable, Optional

from campus_connect.models.auth_models import (
    PasswordCheck,
    PasswordRequirement,
    PasswordRuleStatus,
    ValidationResult,
)
from campus_connect.models.enums import UserRole
from campus_connect.models.registration import RegistrationData

__all__ = [
    "MIN_PASSWORD_LENGTH",
    "normalize_email",
    "validate_confirmation",
    "validate_email",
    "validate_name",
    "validate_otp_code",
    "validate_password",
    "validate_registration",
]

MIN_PASSWORD_LENGTH: int = 8

_EMAIL_RE: re.Pattern[str] = re.compile(
    r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$"
)

_OTP_RE: re.Pattern[str] = re.compile(r"^\d{6}$")

# C0 controls, DEL and C1 controls.
_CONTROL_CHAR_RE: re.Pattern[str] = re.compile(r"[\x00-\x1f\x7f-\x9f]")

_PASSWORD_RULES: list[tuple[PasswordRequirement, str, Callable[[str], bool]]] = [
    (
        PasswordRequirement.TOO_SHORT,
        f"At least {MIN_PASSWORD_LENGTH} characters",
        lambda value: len(value) >= MIN_PASSWORD_LENGTH,
    ),
    (
        PasswordRequirement.MISSING_UPPERCASE,
        "One uppercase letter",
        lambda value: re.search(r"[A-Z]", value) is not None,
    ),
    (
        PasswordRequirement.MISSING_LOWERCASE,
        "One lowercase letter",
        lambda value: re.search(r"[a-z]", value) is not None,
    ),
    (
        PasswordRequirement.MISSING_DIGIT,
        "One number",
        lambda value: re.search(r"\d", value) is not None,
    ),
]


def normalize_email(email: str) -> str:
    """Normalise an email address: strip whitespace and lowercase."""
    return email.strip().lower()


def validate_email(email: Optional[str]) -> ValidationResult:
    """Validate an email address against the standard shape pattern.

    Parameters
    ----------
    email:
        The raw email string to validate.

    Returns
    -------
    ValidationResult
        ``is_valid=True`` if the email matches, otherwise a
        human-readable ``error_message`` and ``reason``.
    """
    if not email or not email.strip():
        return ValidationResult(
            is_valid=False,
            error_message="Email is required.",
            reason="required",
        )
    if not _EMAIL_RE.match(email.strip()):
        return ValidationResult(
            is_valid=False,
            error_message="Please enter a valid email address.",
            reason="invalid_format",
        )
    return ValidationResult(is_valid=True)


def validate_password(password: Optional[str]) -> PasswordCheck:
    """Evaluate every password rule and report all unmet ones together.

    Policy: at least 8 characters with one uppercase letter, one
    lowercase letter and one digit.  The ``checklist`` lists every rule
    with its status so a form can render a live checklist.
    """
    value = password or ""
    checklist: list[PasswordRuleStatus] = [
        PasswordRuleStatus(requirement=requirement, label=label, met=rule(value))
        for requirement, label, rule in _PASSWORD_RULES
    ]
    return PasswordCheck(
        unmet=[item.requirement for item in checklist if not item.met],
        checklist=checklist,
    )


def validate_confirmation(value: Optional[str], original: Optional[str]) -> ValidationResult:
    if not value:
        return ValidationResult(
            is_valid=False,
            error_message="Please confirm your password.",
            reason="required",
        )
    if value != original:
        return ValidationResult(
            is_valid=False,
            error_message="Passwords do not match.",
            reason="mismatch",
        )
    return ValidationResult(is_valid=True)


def validate_name(name: Optional[str], field_label: str = "Name") -> ValidationResult:
    """Validate a display-name field.

    Rejects control characters (including newlines and tabs) so names
    cannot inject lines into logs or emails.
    """
    stripped = (name or "").strip()
    if not stripped:
        return ValidationResult(
            is_valid=False,
            error_message=f"{field_label} is required.",
            reason="required",
        )
    if len(stripped) < 2:
        return ValidationResult(
            is_valid=False,
            error_message=f"{field_label} must be at least 2 characters.",
            reason="too_short",
        )
    if _CONTROL_CHAR_RE.search(stripped):
        return ValidationResult(
            is_valid=False,
            error_message=f"{field_label} contains invalid characters.",
            reason="invalid_characters",
        )
    return ValidationResult(is_valid=True)


def validate_otp_code(code: Optional[str]) -> ValidationResult:
    """A verification code is exactly six digits; leading zeros count."""
    if not code or not _OTP_RE.match(code.strip()):
        return ValidationResult(
            is_valid=False,
            error_message="Please enter the 6-digit verification code.",
            reason="invalid_format",
        )
    return ValidationResult(is_valid=True)


def validate_department(role: UserRole, department: str) -> ValidationResult:
    """Students and faculty always carry a non-blank department."""
    if role in (UserRole.STUDENT, UserRole.FACULTY) and not department.strip():
        return ValidationResult(
            is_valid=False,
            error_message="Department is required for students and faculty.",
            reason="department_required",
        )
    return ValidationResult(is_valid=True)


def validate_registration(
    data: RegistrationData,
    require_confirmation: bool = False,
) -> ValidationResult:
    """Run every sign-up rule and return the first failure.

    Students and faculty must name a department; authorities must pick
    at least one issue category they handle.
    """
    checks: list[ValidationResult] = [
        validate_name(data.name),
        validate_email(data.email),
    ]
    password_check = validate_password(data.password)
    checks.append(
        ValidationResult(
            is_valid=password_check.is_valid,
            error_message=password_check.error_message,
            reason=password_check.unmet[0] if password_check.unmet else None,
        )
    )
    if require_confirmation or data.confirm_password is not None:
        checks.append(validate_confirmation(data.confirm_password, data.password))

    checks.append(validate_department(data.role, data.department))
    if data.role == UserRole.AUTHORITY and not data.categories:
        checks.append(
            ValidationResult(
                is_valid=False,
                error_message="Please select at least one category.",
                reason="categories_required",
            )
        )

    for result in checks:
        if not result.is_valid:
            return result
    return ValidationResult(is_valid=True)
