"""
Account Service.

Backend orchestrator behind the ``/auth`` endpoints: credential login,
OTP-gated registration, the deprecated direct registration path,
and profile updates.

Every request is re-validated here with the same rules the client
runs, so a hand-crafted request gets the same answers as the UI.
Failures are raised as ``CampusConnectError`` subclasses and rendered
by the HTTP layer.
"""

from __future__ import annotations

from typing import Optional

from campus_connect.errors import (
    EmailAlreadyRegisteredError,
    InvalidCredentialsError,
    OtpVerificationError,
    RegistrationDisabledError,
    TokenInvalidError,
    ValidationFailedError,
)
from campus_connect.logger import StructuredLogger
from campus_connect.models.api_models import (
    AuthenticatedUserResponse,
    ProfileUpdateRequest,
    RegisterRequest,
    ResendOtpRequest,
)
from campus_connect.models.auth_models import ValidationResult
from campus_connect.models.enums import OtpVerification
from campus_connect.models.registration import (
    OtpChallenge,
    PendingRegistration,
    RegistrationData,
)
from campus_connect.models.user import User
from campus_connect.repositories.user_repository import UserRepository
from campus_connect.services import credential_validator as rules
from campus_connect.services.base_service import BaseService
from campus_connect.services.email_service import EmailSender
from campus_connect.services.otp_service import OtpChallengeManager
from campus_connect.services.token_service import TokenService
from campus_connect.utils.audit import log_audit_event
from campus_connect.utils.passwords import PasswordHasher


class AccountService(BaseService):
    """Creates, authenticates and updates principals.

    Parameters
    ----------
    user_repo:
        Principal store.
    otp_manager:
        Issues and verifies registration challenges.
    token_service:
        Mints bearer tokens for authenticated principals.
    password_hasher:
        Derives and checks password verifiers.
    email_sender:
        Used for the best-effort welcome email.
    logger:
        Structured logger.
    legacy_registration_enabled:
        When ``False`` (default) :meth:`register_direct` is refused.
    """

    def __init__(
        self,
        user_repo: UserRepository,
        otp_manager: OtpChallengeManager,
        token_service: TokenService,
        password_hasher: PasswordHasher,
        email_sender: EmailSender,
        logger: StructuredLogger,
        legacy_registration_enabled: bool = False,
    ) -> None:
        super().__init__(logger)
        self._user_repo = user_repo
        self._otp_manager = otp_manager
        self._token_service = token_service
        self._password_hasher = password_hasher
        self._email_sender = email_sender
        self._legacy_registration_enabled = legacy_registration_enabled
        # Checked against when the email is unknown so both failure paths
        # cost one bcrypt check.
        self._dummy_hash: str = password_hasher.hash("campus-connect-timing-guard")

    # ==================================================================
    # Login
    # ==================================================================

    def login(self, email: str, password: str) -> AuthenticatedUserResponse:
        """Authenticate by email and password.

        Raises
        ------
        ValidationFailedError
            Email or password missing, or email malformed.
        InvalidCredentialsError
            Unknown email or wrong password; the message is identical.
        """
        if not email or not password:
            raise ValidationFailedError("Please provide email and password.")
        self._raise_if_invalid(rules.validate_email(email))
        email = rules.normalize_email(email)

        credentials = self._user_repo.get_credentials(email)
        if credentials is None:
            self._password_hasher.verify(password, self._dummy_hash)
            self._logger.info(
                "Login rejected.", extra={"event": "LOGIN_FAILED", "email": email},
            )
            raise InvalidCredentialsError()

        user, password_hash = credentials
        if not self._password_hasher.verify(password, password_hash):
            self._logger.info(
                "Login rejected.", extra={"event": "LOGIN_FAILED", "email": email},
            )
            raise InvalidCredentialsError()

        log_audit_event(
            logger=self._logger,
            action="LOGIN",
            entity_type="User",
            entity_id=user.id,
            user_id=user.id,
            details={"role": str(user.role)},
        )
        return self._authenticated(user)

    # ==================================================================
    # Registration
    # ==================================================================

    def start_registration(self, request: RegisterRequest) -> OtpChallenge:
        """Validate sign-up details and email a verification code.

        Nothing is created yet: the account details wait with the
        challenge until :meth:`complete_registration`.

        Raises
        ------
        ValidationFailedError, EmailAlreadyRegisteredError, OtpDeliveryError
        """
        pending = self._prepare_registration(request)
        return self._otp_manager.issue_challenge(pending.email, pending.name, pending)

    def resend_registration(self, request: ResendOtpRequest) -> OtpChallenge:
        """Issue a new code for a pending registration.

        Full account details in *request* replace the stored ones;
        otherwise the details held with the previous challenge are kept.
        """
        self._raise_if_invalid(rules.validate_email(request.email))
        email = rules.normalize_email(request.email)

        if request.password is not None and request.role is not None:
            pending: Optional[PendingRegistration] = self._prepare_registration(
                RegisterRequest(
                    name=request.name,
                    email=email,
                    password=request.password,
                    role=request.role,
                    department=request.department or "",
                    categories=request.categories or [],
                )
            )
        else:
            if self._user_repo.email_exists(email):
                raise EmailAlreadyRegisteredError()
            previous = self._otp_manager.get_challenge(email)
            if previous is None or previous.registration is None:
                raise OtpVerificationError(OtpVerification.NOT_FOUND)
            pending = None

        return self._otp_manager.resend(email, request.name.strip(), pending)

    def complete_registration(self, email: str, code: str) -> AuthenticatedUserResponse:
        """Create the account once *code* proves ownership of *email*.

        Raises
        ------
        ValidationFailedError
            The code is not six digits.
        OtpVerificationError
            Expired, mismatched or missing challenge.
        EmailAlreadyRegisteredError
            The email was taken while the challenge was pending.
        """
        self._raise_if_invalid(rules.validate_email(email))
        self._raise_if_invalid(rules.validate_otp_code(code))

        challenge = self._otp_manager.consume_verified(email, code)
        pending = challenge.registration
        if pending is None:
            raise OtpVerificationError(OtpVerification.NOT_FOUND)

        user = self._user_repo.create(
            name=pending.name,
            email=pending.email,
            password_hash=pending.password_hash,
            role=pending.role,
            department=pending.department,
            categories=pending.categories,
        )
        log_audit_event(
            logger=self._logger,
            action="REGISTER",
            entity_type="User",
            entity_id=user.id,
            user_id=user.id,
            details={"role": str(user.role), "verified": True},
        )
        return self._authenticated(user)

    def register_direct(self, request: RegisterRequest) -> AuthenticatedUserResponse:
        """Deprecated: create an account without email verification.

        Raises
        ------
        RegistrationDisabledError
            Unless ``legacy_registration_enabled`` was set.
        """
        if not self._legacy_registration_enabled:
            raise RegistrationDisabledError()

        pending = self._prepare_registration(request)
        user = self._user_repo.create(
            name=pending.name,
            email=pending.email,
            password_hash=pending.password_hash,
            role=pending.role,
            department=pending.department,
            categories=pending.categories,
        )
        log_audit_event(
            logger=self._logger,
            action="REGISTER",
            entity_type="User",
            entity_id=user.id,
            user_id=user.id,
            details={"role": str(user.role), "verified": False},
        )
        return self._authenticated(user)

    def send_welcome_email(self, user: User) -> None:
        """Best-effort welcome message; failures are logged only."""
        result = self._email_sender.send_welcome_email(user.email, user.name, user.role)
        if not result.success:
            self._logger.warning(
                "Welcome email to %s failed: %s", user.email, result.error,
            )

    # ==================================================================
    # Profile
    # ==================================================================

    def update_profile(
        self, user: User, request: ProfileUpdateRequest,
    ) -> AuthenticatedUserResponse:
        """Apply a partial profile update and return a fresh token.

        Raises
        ------
        ValidationFailedError, EmailAlreadyRegisteredError
        TokenInvalidError
            The principal disappeared between authentication and update.
        """
        changes: dict[str, Optional[str]] = {}

        if request.name is not None:
            self._raise_if_invalid(rules.validate_name(request.name))
            changes["name"] = request.name.strip()

        if request.email is not None:
            self._raise_if_invalid(rules.validate_email(request.email))
            new_email = rules.normalize_email(request.email)
            if self._user_repo.email_exists(new_email, exclude_user_id=user.id):
                raise EmailAlreadyRegisteredError("Email is already in use.")
            changes["email"] = new_email

        if request.department is not None:
            self._raise_if_invalid(rules.validate_department(user.role, request.department))
            changes["department"] = request.department.strip()

        if request.avatar is not None:
            changes["avatar"] = request.avatar

        password_hash: Optional[str] = None
        if request.password is not None:
            password_check = rules.validate_password(request.password)
            if not password_check.is_valid:
                raise ValidationFailedError(password_check.error_message or "Invalid password.")
            password_hash = self._password_hasher.hash(request.password)

        updated = self._user_repo.update(user.id, changes, password_hash=password_hash)
        if updated is None:
            raise TokenInvalidError("Not authorized, user not found.")

        fields = sorted(changes) + (["password"] if password_hash else [])
        log_audit_event(
            logger=self._logger,
            action="PROFILE_UPDATE",
            entity_type="User",
            entity_id=updated.id,
            user_id=updated.id,
            details={"fields": ",".join(fields)},
        )
        return self._authenticated(updated)

    # ==================================================================
    # Private helpers
    # ==================================================================

    def _prepare_registration(self, request: RegisterRequest) -> PendingRegistration:
        data = RegistrationData(
            name=request.name,
            email=request.email,
            password=request.password,
            role=request.role,
            department=request.department,
            categories=request.categories,
        )
        self._raise_if_invalid(rules.validate_registration(data))

        email = rules.normalize_email(request.email)
        if self._user_repo.email_exists(email):
            raise EmailAlreadyRegisteredError()

        return PendingRegistration(
            name=request.name.strip(),
            email=email,
            role=request.role,
            department=request.department.strip(),
            categories=request.categories,
            password_hash=self._password_hasher.hash(request.password),
        )

    def _authenticated(self, user: User) -> AuthenticatedUserResponse:
        return AuthenticatedUserResponse(
            **user.model_dump(), token=self._token_service.issue(user),
        )

    @staticmethod
    def _raise_if_invalid(result: ValidationResult) -> None:
        if not result.is_valid:
            raise ValidationFailedError(result.error_message or "Invalid input.")
