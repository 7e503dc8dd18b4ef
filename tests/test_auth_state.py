"""
Unit Tests for the Auth State Machine
Tests for: legal transitions, illegal transitions, state consistency
"""
import random

import pytest
from pydantic import ValidationError

from campus_connect.models.auth_models import (
    AuthAction,
    AuthActionKind,
    AuthErrorCode,
    AuthState,
)
from campus_connect.models.enums import AuthPhase, UserRole
from campus_connect.models.user import User
from campus_connect.services.auth_state import (
    INITIAL_STATE,
    SESSION_EXPIRED_MESSAGE,
    InvalidTransitionError,
    transition,
)


@pytest.fixture
def principal():
    return User(
        id="u-1", name="Asha Rao", email="asha.rao@campus.edu",
        role=UserRole.STUDENT, department="Computer Science",
    )


@pytest.fixture
def signed_in(principal):
    return AuthState(phase=AuthPhase.AUTHENTICATED, principal=principal)


def act(kind, **fields):
    return AuthAction(kind=kind, **fields)


class TestSignIn:
    """Test the anonymous -> authenticating -> authenticated path"""

    def test_initial_state_is_anonymous(self):
        assert INITIAL_STATE.phase == AuthPhase.ANONYMOUS
        assert not INITIAL_STATE.is_authenticated
        assert not INITIAL_STATE.is_loading

    def test_login_start_then_success(self, principal):
        loading = transition(INITIAL_STATE, act(AuthActionKind.LOGIN_START))
        assert loading.phase == AuthPhase.AUTHENTICATING
        assert loading.is_loading

        done = transition(loading, act(AuthActionKind.AUTH_SUCCESS, principal=principal))
        assert done.phase == AuthPhase.AUTHENTICATED
        assert done.principal == principal
        assert done.error is None

    def test_failure_returns_to_anonymous_with_error(self):
        loading = transition(INITIAL_STATE, act(AuthActionKind.LOGIN_START))

        failed = transition(loading, act(
            AuthActionKind.AUTH_FAILURE,
            error="Invalid email or password.",
            error_code=AuthErrorCode.INVALID_CREDENTIALS,
        ))

        assert failed.phase == AuthPhase.ANONYMOUS
        assert failed.principal is None
        assert failed.error_code == AuthErrorCode.INVALID_CREDENTIALS

    def test_start_clears_previous_error(self):
        errored = AuthState(error="old", error_code=AuthErrorCode.UNKNOWN_ERROR)

        loading = transition(errored, act(AuthActionKind.REGISTER_START))

        assert loading.error is None
        assert loading.error_code is None

    def test_challenge_sent_settles_anonymous(self):
        loading = transition(INITIAL_STATE, act(AuthActionKind.REGISTER_START))

        assert transition(loading, act(AuthActionKind.CHALLENGE_SENT)) == INITIAL_STATE

    def test_restore_with_principal(self, principal):
        restored = transition(INITIAL_STATE, act(AuthActionKind.RESTORE, principal=principal))

        assert restored.phase == AuthPhase.AUTHENTICATED
        assert restored.principal == principal

    def test_restore_without_principal(self):
        assert transition(INITIAL_STATE, act(AuthActionKind.RESTORE)) == INITIAL_STATE


class TestSignedIn:
    """Test updates, refreshes, expiry and logout"""

    def test_update_round_trip(self, signed_in, principal):
        updating = transition(signed_in, act(AuthActionKind.UPDATE_START))
        assert updating.phase == AuthPhase.UPDATING
        assert updating.principal == principal

        renamed = principal.model_copy(update={"name": "Asha R."})
        done = transition(updating, act(AuthActionKind.UPDATE_SUCCESS, principal=renamed))
        assert done.phase == AuthPhase.AUTHENTICATED
        assert done.principal.name == "Asha R."

    def test_update_failure_keeps_principal(self, signed_in, principal):
        updating = transition(signed_in, act(AuthActionKind.UPDATE_START))

        failed = transition(updating, act(
            AuthActionKind.UPDATE_FAILURE,
            error="Email already registered.",
            error_code=AuthErrorCode.EMAIL_ALREADY_EXISTS,
        ))

        assert failed.phase == AuthPhase.AUTHENTICATED
        assert failed.principal == principal
        assert failed.error == "Email already registered."

    def test_principal_refreshed(self, signed_in, principal):
        fresh = principal.model_copy(update={"department": "Physics"})

        refreshed = transition(signed_in, act(AuthActionKind.PRINCIPAL_REFRESHED, principal=fresh))

        assert refreshed.principal.department == "Physics"

    @pytest.mark.parametrize("phase", [AuthPhase.AUTHENTICATED, AuthPhase.UPDATING])
    def test_session_expired(self, principal, phase):
        state = AuthState(phase=phase, principal=principal)

        expired = transition(state, act(AuthActionKind.SESSION_EXPIRED))

        assert expired.phase == AuthPhase.ANONYMOUS
        assert expired.principal is None
        assert expired.error == SESSION_EXPIRED_MESSAGE
        assert expired.error_code == AuthErrorCode.SESSION_EXPIRED

    @pytest.mark.parametrize("phase", list(AuthPhase))
    def test_logout_from_any_phase(self, principal, phase):
        holds = phase in (AuthPhase.AUTHENTICATED, AuthPhase.UPDATING)
        state = AuthState(phase=phase, principal=principal if holds else None)

        assert transition(state, act(AuthActionKind.LOGOUT)) == INITIAL_STATE


class TestErrors:
    """Test REJECT and CLEAR_ERROR"""

    def test_reject_keeps_phase(self, signed_in):
        rejected = transition(signed_in, act(
            AuthActionKind.REJECT,
            error="There are no changes to save.",
            error_code=AuthErrorCode.VALIDATION_ERROR,
        ))

        assert rejected.phase == AuthPhase.AUTHENTICATED
        assert rejected.principal == signed_in.principal
        assert rejected.error_code == AuthErrorCode.VALIDATION_ERROR

    def test_clear_error(self):
        errored = AuthState(error="boom", error_code=AuthErrorCode.UNKNOWN_ERROR)

        assert transition(errored, act(AuthActionKind.CLEAR_ERROR)) == INITIAL_STATE


class TestIllegalTransitions:
    """Test that impossible events raise"""

    @pytest.mark.parametrize(
        "kind",
        [
            AuthActionKind.CHALLENGE_SENT,
            AuthActionKind.AUTH_FAILURE,
            AuthActionKind.UPDATE_START,
            AuthActionKind.UPDATE_FAILURE,
            AuthActionKind.SESSION_EXPIRED,
        ],
    )
    def test_from_anonymous(self, kind):
        with pytest.raises(InvalidTransitionError) as excinfo:
            transition(INITIAL_STATE, act(kind))

        assert excinfo.value.phase == AuthPhase.ANONYMOUS
        assert excinfo.value.kind == kind

    def test_login_while_signed_in(self, signed_in):
        with pytest.raises(InvalidTransitionError):
            transition(signed_in, act(AuthActionKind.LOGIN_START))

    def test_restore_while_signed_in(self, signed_in, principal):
        with pytest.raises(InvalidTransitionError):
            transition(signed_in, act(AuthActionKind.RESTORE, principal=principal))

    def test_reject_while_loading(self):
        loading = transition(INITIAL_STATE, act(AuthActionKind.LOGIN_START))

        with pytest.raises(InvalidTransitionError):
            transition(loading, act(AuthActionKind.REJECT, error="busy"))

    def test_success_without_principal(self):
        loading = transition(INITIAL_STATE, act(AuthActionKind.LOGIN_START))

        with pytest.raises(InvalidTransitionError):
            transition(loading, act(AuthActionKind.AUTH_SUCCESS))


class TestStateConsistency:
    """Test the AuthState validator"""

    def test_authenticated_requires_principal(self):
        with pytest.raises(ValidationError):
            AuthState(phase=AuthPhase.AUTHENTICATED)

    def test_anonymous_forbids_principal(self, principal):
        with pytest.raises(ValidationError):
            AuthState(phase=AuthPhase.ANONYMOUS, principal=principal)

    def test_state_is_immutable(self):
        with pytest.raises(ValidationError):
            INITIAL_STATE.phase = AuthPhase.AUTHENTICATED


class TestRandomSequences:
    """Test consistency over seeded random action sequences"""

    SIGNED_IN_PHASES = (AuthPhase.AUTHENTICATED, AuthPhase.UPDATING)

    def random_action(self, rng, principal):
        kind = rng.choice(list(AuthActionKind))
        return act(
            kind,
            principal=principal if rng.random() < 0.7 else None,
            error=rng.choice([None, "Something went wrong."]),
            error_code=rng.choice([None, AuthErrorCode.UNKNOWN_ERROR]),
        )

    @pytest.mark.parametrize("seed", range(20))
    def test_authenticated_iff_principal(self, principal, seed):
        rng = random.Random(seed)
        state = INITIAL_STATE
        applied = 0

        for _ in range(300):
            try:
                state = transition(state, self.random_action(rng, principal))
            except InvalidTransitionError:
                continue
            applied += 1

            assert state.is_authenticated == (state.principal is not None)
            assert state.is_authenticated == (state.phase in self.SIGNED_IN_PHASES)

        assert applied > 0

