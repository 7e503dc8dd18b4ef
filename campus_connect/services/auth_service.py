"""
Authentication Service.

Single client-side orchestrator for every identity concern: login,
OTP-gated registration, profile updates, logout and session restore.

Sits between the UI layer and the HTTP / session-cache layer so that
views remain thin form handlers.  All public methods return a typed
``AuthResult``; the UI never inspects raw exceptions.  The observable
``AuthState`` changes only through
:func:`campus_connect.services.auth_state.transition`.

Concurrency
-----------
One state-mutating operation runs at a time.  A call made while
another is in flight is rejected immediately with
``operation_in_progress`` rather than queued.  ``logout()`` is the
exception: it always succeeds locally, and any operation still in
flight when it happens discards its result.
"""

from __future__ import annotations

import threading
from typing import Callable, Optional

from campus_connect.auth import SessionManager
from campus_connect.logger import StructuredLogger
from campus_connect.models.api_models import (
    AuthenticatedUserResponse,
    LoginRequest,
    OtpDispatchResponse,
    ProfileUpdateRequest,
    RegisterRequest,
    ResendOtpRequest,
    VerifyOtpRequest,
)
from campus_connect.models.auth_models import (
    AuthAction,
    AuthActionKind,
    AuthErrorCode,
    AuthResult,
    AuthState,
    GENERIC_CREDENTIALS_MESSAGE,
    ValidationResult,
)
from campus_connect.models.enums import AuthPhase
from campus_connect.models.registration import ProfilePatch, RegistrationData
from campus_connect.models.user import User
from campus_connect.services import credential_validator as rules
from campus_connect.services.api_client import (
    ApiError,
    ApiTimeoutError,
    ApiUnavailableError,
    AuthApiClient,
)
from campus_connect.services.auth_state import (
    INITIAL_STATE,
    SESSION_EXPIRED_MESSAGE,
    transition,
)
from campus_connect.services.otp_countdown import OtpCountdown
from campus_connect.services.session_cache import SessionCacheService
from campus_connect.utils.audit import log_audit_event
from campus_connect.utils.general import mask_email

StateListener = Callable[[AuthState], None]

_BUSY_MESSAGE: str = "Another request is already in progress. Please wait."
_NETWORK_MESSAGE: str = "Cannot reach the server. Check your internet connection."
_TIMEOUT_MESSAGE: str = "The server took too long to respond. Please try again."
_UNKNOWN_MESSAGE: str = "An unexpected error occurred. Please try again later."

_KNOWN_CODES: frozenset[str] = frozenset(code.value for code in AuthErrorCode)

_STATUS_CODES: dict[int, AuthErrorCode] = {
    400: AuthErrorCode.VALIDATION_ERROR,
    401: AuthErrorCode.SESSION_EXPIRED,
    403: AuthErrorCode.FORBIDDEN,
    409: AuthErrorCode.EMAIL_ALREADY_EXISTS,
    410: AuthErrorCode.REGISTRATION_DISABLED,
}


class AuthService:
    """Client auth controller.

    Parameters
    ----------
    api:
        HTTP client for the ``/auth`` endpoints.
    session:
        In-memory holder for the token and principal.
    session_cache:
        Encrypted persistence for the session.
    logger:
        Structured JSON logger.
    countdown:
        Advisory timer for the pending registration; a fresh
        ``OtpCountdown`` when omitted.
    """

    def __init__(
        self,
        api: AuthApiClient,
        session: SessionManager,
        session_cache: SessionCacheService,
        logger: StructuredLogger,
        countdown: Optional[OtpCountdown] = None,
    ) -> None:
        self._api: AuthApiClient = api
        self._session: SessionManager = session
        self._session_cache: SessionCacheService = session_cache
        self._logger: StructuredLogger = logger
        self._countdown: OtpCountdown = countdown or OtpCountdown()

        self._state: AuthState = INITIAL_STATE
        self._state_lock: threading.RLock = threading.RLock()
        self._operation_lock: threading.Lock = threading.Lock()
        self._listeners: list[StateListener] = []
        self._initialized: bool = False
        # Bumped by logout(); an operation that started under an older
        # epoch must not write its result.
        self._epoch: int = 0
        self._pending: Optional[RegistrationData] = None

    # ==================================================================
    # Observable state
    # ==================================================================

    @property
    def state(self) -> AuthState:
        with self._state_lock:
            return self._state

    @property
    def countdown(self) -> OtpCountdown:
        return self._countdown

    @property
    def pending_email(self) -> Optional[str]:
        """Email of the registration awaiting its code, if any."""
        with self._state_lock:
            return rules.normalize_email(self._pending.email) if self._pending else None

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Call *listener* with every new state; returns an unsubscribe callable."""
        with self._state_lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._state_lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def clear_error(self) -> None:
        self._dispatch(AuthAction(kind=AuthActionKind.CLEAR_ERROR))

    # ==================================================================
    # Startup
    # ==================================================================

    def initialize_auth(self) -> AuthResult:
        """Restore a persisted session, once per process, without network.

        A stale token is only discovered by the next protected call
        (see :meth:`refresh_principal`), which then forces logout.
        """
        with self._operation_lock:
            if self._initialized or self.state.phase != AuthPhase.ANONYMOUS:
                self._initialized = True
                return AuthResult(success=True, user=self.state.principal)
            self._initialized = True

            cached = self._session_cache.load_session()
            if cached is None:
                self._dispatch(AuthAction(kind=AuthActionKind.RESTORE))
                return AuthResult(success=True)

            self._session.set_session(cached.token, cached.user)
            self._dispatch(AuthAction(kind=AuthActionKind.RESTORE, principal=cached.user))
            self._logger.info(
                "Session restored for %s.", mask_email(cached.user.email),
                extra={"event": "SESSION_RESTORED", "user_id": cached.user.id},
            )
            return AuthResult(success=True, user=cached.user)

    # ==================================================================
    # Login
    # ==================================================================

    def login(self, email: str, password: str) -> AuthResult:
        """Authenticate with email and password.

        Shape errors are reported without any network call.  A rejected
        login always reads "Invalid email or password."
        """
        if self.state.is_authenticated:
            return self._invalid_state("You are already signed in.")

        checked = self._check_login_form(email, password)
        if checked is not None:
            return self._reject(AuthErrorCode.VALIDATION_ERROR, checked)

        if not self._operation_lock.acquire(blocking=False):
            return self._busy()
        try:
            epoch = self._epoch
            self._dispatch(AuthAction(kind=AuthActionKind.LOGIN_START))
            try:
                response = self._api.login(
                    LoginRequest(email=rules.normalize_email(email), password=password),
                )
            except ApiError as exc:
                return self._auth_failure(exc, epoch, login=True)
            return self._complete_authentication(response, epoch, "LOGIN")
        finally:
            self._operation_lock.release()

    # ==================================================================
    # Registration
    # ==================================================================

    def register(self, data: RegistrationData) -> AuthResult:
        """Validate the sign-up form and request a verification code.

        On success the form is held in memory (never persisted) as the
        pending registration and the countdown starts.
        """
        if self.state.is_authenticated:
            return self._invalid_state("You are already signed in.")

        checked = rules.validate_registration(data)
        if not checked.is_valid:
            return self._reject(AuthErrorCode.VALIDATION_ERROR, checked)

        if not self._operation_lock.acquire(blocking=False):
            return self._busy()
        try:
            epoch = self._epoch
            self._dispatch(AuthAction(kind=AuthActionKind.REGISTER_START))
            try:
                dispatched = self._api.send_otp(self._register_request(data))
            except ApiError as exc:
                if exc.error_code == AuthErrorCode.DELIVERY_FAILED:
                    # The challenge is stored; only the email failed.
                    with self._state_lock:
                        if epoch == self._epoch:
                            self._pending = data
                return self._auth_failure(exc, epoch)
            return self._challenge_sent(dispatched, data, epoch)
        finally:
            self._operation_lock.release()

    def confirm_registration(self, code: str) -> AuthResult:
        """Submit the emailed code; creates the account and signs in.

        The pending registration survives a failed attempt so the user
        can retry or resend.
        """
        if self.state.is_authenticated:
            return self._invalid_state("You are already signed in.")
        with self._state_lock:
            pending = self._pending
        if pending is None:
            return self._invalid_state("There is no registration awaiting verification.")

        checked = rules.validate_otp_code(code)
        if not checked.is_valid:
            return self._reject(AuthErrorCode.VALIDATION_ERROR, checked)

        if not self._operation_lock.acquire(blocking=False):
            return self._busy()
        try:
            epoch = self._epoch
            self._dispatch(AuthAction(kind=AuthActionKind.REGISTER_START))
            try:
                response = self._api.verify_otp(
                    VerifyOtpRequest(
                        email=rules.normalize_email(pending.email), code=code.strip(),
                    ),
                )
            except ApiError as exc:
                return self._auth_failure(exc, epoch)

            result = self._complete_authentication(response, epoch, "REGISTER")
            if result.success:
                self._drop_pending()
            return result
        finally:
            self._operation_lock.release()

    def resend_registration_code(self) -> AuthResult:
        """Request a new code for the pending registration."""
        if self.state.is_authenticated:
            return self._invalid_state("You are already signed in.")
        with self._state_lock:
            pending = self._pending
        if pending is None:
            return self._invalid_state("There is no registration awaiting verification.")

        if not self._operation_lock.acquire(blocking=False):
            return self._busy()
        try:
            epoch = self._epoch
            self._dispatch(AuthAction(kind=AuthActionKind.REGISTER_START))
            request = self._register_request(pending)
            try:
                dispatched = self._api.resend_otp(
                    ResendOtpRequest(**request.model_dump()),
                )
            except ApiError as exc:
                return self._auth_failure(exc, epoch)
            return self._challenge_sent(dispatched, pending, epoch)
        finally:
            self._operation_lock.release()

    def cancel_registration(self) -> None:
        self._drop_pending()

    # ==================================================================
    # Profile
    # ==================================================================

    def update_profile(self, patch: ProfilePatch) -> AuthResult:
        """Apply a partial profile update and adopt the rotated token."""
        token = self._session.access_token
        if self.state.phase != AuthPhase.AUTHENTICATED or token is None:
            return self._invalid_state("Please sign in to update your profile.")

        changes = patch.changes()
        if not changes:
            return self._reject(
                AuthErrorCode.VALIDATION_ERROR,
                ValidationResult(is_valid=False, error_message="There are no changes to save."),
            )
        checked = self._check_patch(patch, self.state.principal)
        if checked is not None:
            return self._reject(AuthErrorCode.VALIDATION_ERROR, checked)

        if not self._operation_lock.acquire(blocking=False):
            return self._busy()
        try:
            epoch = self._epoch
            self._dispatch(AuthAction(kind=AuthActionKind.UPDATE_START))
            try:
                response = self._api.update_profile(token, ProfileUpdateRequest(**changes))
            except ApiError as exc:
                if self._is_token_rejection(exc):
                    return self._expire_session(epoch)
                code, message = self._classify(exc)
                self._dispatch_if_current(
                    epoch,
                    AuthAction(
                        kind=AuthActionKind.UPDATE_FAILURE, error=message, error_code=code,
                    ),
                )
                return AuthResult(success=False, error_code=code, error_message=message)

            user = response.to_user()
            with self._state_lock:
                if epoch != self._epoch:
                    return self._superseded()
                self._adopt_session(response.token, user)
                self._dispatch(AuthAction(kind=AuthActionKind.UPDATE_SUCCESS, principal=user))
            log_audit_event(
                logger=self._logger,
                action="PROFILE_UPDATE",
                entity_type="User",
                entity_id=user.id,
                user_id=user.id,
                details={"fields": ",".join(sorted(changes))},
            )
            return AuthResult(success=True, user=user)
        finally:
            self._operation_lock.release()

    def refresh_principal(self) -> AuthResult:
        """Re-read the principal through ``GET /auth/me``.

        A rejected token forces a silent logout with ``session_expired``.
        """
        token = self._session.access_token
        if self.state.phase != AuthPhase.AUTHENTICATED or token is None:
            return self._invalid_state("Please sign in first.")

        if not self._operation_lock.acquire(blocking=False):
            return self._busy()
        try:
            epoch = self._epoch
            try:
                user = self._api.me(token)
            except ApiError as exc:
                if self._is_token_rejection(exc):
                    return self._expire_session(epoch)
                code, message = self._classify(exc)
                self._dispatch_if_current(
                    epoch,
                    AuthAction(kind=AuthActionKind.REJECT, error=message, error_code=code),
                )
                return AuthResult(success=False, error_code=code, error_message=message)

            with self._state_lock:
                if epoch != self._epoch:
                    return self._superseded()
                self._adopt_session(token, user)
                self._dispatch(
                    AuthAction(kind=AuthActionKind.PRINCIPAL_REFRESHED, principal=user),
                )
            return AuthResult(success=True, user=user)
        finally:
            self._operation_lock.release()

    # ==================================================================
    # Logout
    # ==================================================================

    def logout(self) -> AuthResult:
        """Clear every trace of the session.  Always succeeds locally."""
        with self._state_lock:
            self._epoch += 1
            user = self._session.current_user
            self._session.clear()
            self._clear_cache()
            self._drop_pending()
            self._dispatch(AuthAction(kind=AuthActionKind.LOGOUT))

        log_audit_event(
            logger=self._logger,
            action="LOGOUT",
            entity_type="User",
            entity_id=user.id if user else "unknown",
            user_id=user.id if user else "anonymous",
        )
        return AuthResult(success=True)

    # ==================================================================
    # Private helpers
    # ==================================================================

    def _dispatch(self, action: AuthAction) -> AuthState:
        with self._state_lock:
            self._state = transition(self._state, action)
            state = self._state
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(state)
            except Exception:
                self._logger.exception("Auth state listener failed.")
        return state

    def _dispatch_if_current(self, epoch: int, action: AuthAction) -> bool:
        """Dispatch *action* unless a logout happened since *epoch*."""
        with self._state_lock:
            if epoch != self._epoch:
                return False
            self._dispatch(action)
            return True

    def _complete_authentication(
        self, response: AuthenticatedUserResponse, epoch: int, action: str,
    ) -> AuthResult:
        user = response.to_user()
        with self._state_lock:
            if epoch != self._epoch:
                return self._superseded()
            self._adopt_session(response.token, user)
            self._dispatch(AuthAction(kind=AuthActionKind.AUTH_SUCCESS, principal=user))
        log_audit_event(
            logger=self._logger,
            action=action,
            entity_type="User",
            entity_id=user.id,
            user_id=user.id,
            details={"role": str(user.role)},
        )
        return AuthResult(success=True, user=user)

    def _adopt_session(self, token: str, user: User) -> None:
        """Write the session in memory and through to the cache."""
        self._session.set_session(token, user)
        if not self._session_cache.save_session(token, user):
            self._logger.warning(
                "Session caching failed for %s; it will not survive a restart.",
                mask_email(user.email),
            )

    def _challenge_sent(
        self, dispatched: OtpDispatchResponse, data: RegistrationData, epoch: int,
    ) -> AuthResult:
        with self._state_lock:
            if epoch != self._epoch:
                return self._superseded()
            self._pending = data
            self._countdown.start(dispatched.issued_at, dispatched.expires_at)
            self._dispatch(AuthAction(kind=AuthActionKind.CHALLENGE_SENT))
        self._logger.info(
            "Verification code sent to %s.", mask_email(dispatched.email),
            extra={"event": "OTP_REQUESTED"},
        )
        return AuthResult(success=True, otp_expires_at=dispatched.expires_at)

    def _auth_failure(self, exc: ApiError, epoch: int, login: bool = False) -> AuthResult:
        if login and exc.status_code == 401:
            code, message = AuthErrorCode.INVALID_CREDENTIALS, GENERIC_CREDENTIALS_MESSAGE
        else:
            code, message = self._classify(exc)
        self._dispatch_if_current(
            epoch,
            AuthAction(kind=AuthActionKind.AUTH_FAILURE, error=message, error_code=code),
        )
        return AuthResult(success=False, error_code=code, error_message=message)

    def _expire_session(self, epoch: int) -> AuthResult:
        with self._state_lock:
            if epoch == self._epoch:
                self._epoch += 1
                self._session.clear()
                self._clear_cache()
                self._dispatch(AuthAction(kind=AuthActionKind.SESSION_EXPIRED))
        self._logger.warning(
            "Session rejected by the server. Signed out.",
            extra={"event": "SESSION_EXPIRED"},
        )
        return AuthResult(
            success=False,
            error_code=AuthErrorCode.SESSION_EXPIRED,
            error_message=SESSION_EXPIRED_MESSAGE,
        )

    def _clear_cache(self) -> None:
        if not self._session_cache.clear_session():
            self._logger.warning(
                "Cached session could not be deleted and may be restored on next start.",
                extra={"event": "SESSION_CACHE_CLEAR_FAILED"},
            )

    def _drop_pending(self) -> None:
        with self._state_lock:
            self._pending = None
            self._countdown.stop()

    def _reject(self, code: AuthErrorCode, checked: ValidationResult) -> AuthResult:
        message = checked.error_message or "Invalid input."
        with self._state_lock:
            if self._state.phase in (AuthPhase.ANONYMOUS, AuthPhase.AUTHENTICATED):
                self._dispatch(
                    AuthAction(kind=AuthActionKind.REJECT, error=message, error_code=code),
                )
        return AuthResult(success=False, error_code=code, error_message=message)

    def _invalid_state(self, message: str) -> AuthResult:
        return AuthResult(
            success=False, error_code=AuthErrorCode.INVALID_STATE, error_message=message,
        )

    @staticmethod
    def _busy() -> AuthResult:
        return AuthResult(
            success=False,
            error_code=AuthErrorCode.OPERATION_IN_PROGRESS,
            error_message=_BUSY_MESSAGE,
        )

    def _superseded(self) -> AuthResult:
        self._logger.info("Discarding the result of an operation interrupted by logout.")
        return AuthResult(
            success=False,
            error_code=AuthErrorCode.INVALID_STATE,
            error_message="You were signed out while the request was in progress.",
        )

    @staticmethod
    def _classify(exc: ApiError) -> tuple[AuthErrorCode, str]:
        """Map a failed API call onto an error code and display message."""
        if isinstance(exc, ApiTimeoutError):
            return AuthErrorCode.NETWORK_TIMEOUT, _TIMEOUT_MESSAGE
        if isinstance(exc, ApiUnavailableError):
            return AuthErrorCode.NETWORK_ERROR, _NETWORK_MESSAGE
        if exc.error_code in _KNOWN_CODES:
            return AuthErrorCode(exc.error_code), exc.message
        code = _STATUS_CODES.get(exc.status_code)
        if code is not None:
            return code, exc.message
        return AuthErrorCode.UNKNOWN_ERROR, exc.message or _UNKNOWN_MESSAGE

    @staticmethod
    def _is_token_rejection(exc: ApiError) -> bool:
        return exc.status_code == 401

    @staticmethod
    def _check_login_form(email: str, password: str) -> Optional[ValidationResult]:
        checked = rules.validate_email(email)
        if not checked.is_valid:
            return checked
        if not password:
            return ValidationResult(
                is_valid=False, error_message="Password is required.", reason="required",
            )
        return None

    @staticmethod
    def _check_patch(
        patch: ProfilePatch, principal: Optional[User],
    ) -> Optional[ValidationResult]:
        if patch.name is not None:
            checked = rules.validate_name(patch.name)
            if not checked.is_valid:
                return checked
        if patch.email is not None:
            checked = rules.validate_email(patch.email)
            if not checked.is_valid:
                return checked
        if patch.department is not None and principal is not None:
            checked = rules.validate_department(principal.role, patch.department)
            if not checked.is_valid:
                return checked
        if patch.password is not None:
            password_check = rules.validate_password(patch.password)
            if not password_check.is_valid:
                return ValidationResult(
                    is_valid=False,
                    error_message=password_check.error_message,
                    reason=password_check.unmet[0],
                )
        return None

    @staticmethod
    def _register_request(data: RegistrationData) -> RegisterRequest:
        return RegisterRequest(
            name=data.name.strip(),
            email=rules.normalize_email(data.email),
            password=data.password,
            role=data.role,
            department=data.department.strip(),
            categories=data.categories,
        )
