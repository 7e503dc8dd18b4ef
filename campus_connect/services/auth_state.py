"""
Auth State Transitions.

The client auth lifecycle as an explicit finite-state machine::

    anonymous ──login/register──▶ authenticating ──success──▶ authenticated
        ▲                             │                           │    ▲
        └──────────failure────────────┘                     update    │
        ▲                                                         ▼    │
        └──── logout / session expired ──────────────────── updating ──┘

:func:`transition` is pure and exhaustive: every ``(phase, action)``
pair either yields the next ``AuthState`` or raises
:class:`InvalidTransitionError`.  ``AuthService`` owns the single
current state and is the only caller.
"""

from __future__ import annotations

from campus_connect.models.auth_models import (
    AuthAction,
    AuthActionKind,
    AuthErrorCode,
    AuthState,
)
from campus_connect.models.enums import AuthPhase

__all__ = ["INITIAL_STATE", "InvalidTransitionError", "transition"]

INITIAL_STATE: AuthState = AuthState()

SESSION_EXPIRED_MESSAGE: str = "Your session has expired. Please sign in again."

_SETTLED: frozenset[AuthPhase] = frozenset({AuthPhase.ANONYMOUS, AuthPhase.AUTHENTICATED})
_SIGNED_IN: frozenset[AuthPhase] = frozenset({AuthPhase.AUTHENTICATED, AuthPhase.UPDATING})

# Phases from which each action is legal.
_ALLOWED_FROM: dict[AuthActionKind, frozenset[AuthPhase]] = {
    AuthActionKind.RESTORE: frozenset({AuthPhase.ANONYMOUS}),
    AuthActionKind.LOGIN_START: frozenset({AuthPhase.ANONYMOUS}),
    AuthActionKind.REGISTER_START: frozenset({AuthPhase.ANONYMOUS}),
    AuthActionKind.CHALLENGE_SENT: frozenset({AuthPhase.AUTHENTICATING}),
    AuthActionKind.AUTH_SUCCESS: frozenset({AuthPhase.AUTHENTICATING}),
    AuthActionKind.AUTH_FAILURE: frozenset({AuthPhase.AUTHENTICATING}),
    AuthActionKind.UPDATE_START: frozenset({AuthPhase.AUTHENTICATED}),
    AuthActionKind.UPDATE_SUCCESS: frozenset({AuthPhase.UPDATING}),
    AuthActionKind.UPDATE_FAILURE: frozenset({AuthPhase.UPDATING}),
    AuthActionKind.PRINCIPAL_REFRESHED: frozenset({AuthPhase.AUTHENTICATED}),
    AuthActionKind.SESSION_EXPIRED: _SIGNED_IN,
    AuthActionKind.LOGOUT: frozenset(AuthPhase),
    AuthActionKind.REJECT: _SETTLED,
    AuthActionKind.CLEAR_ERROR: frozenset(AuthPhase),
}

_NEEDS_PRINCIPAL: frozenset[AuthActionKind] = frozenset({
    AuthActionKind.AUTH_SUCCESS,
    AuthActionKind.UPDATE_SUCCESS,
    AuthActionKind.PRINCIPAL_REFRESHED,
})


class InvalidTransitionError(RuntimeError):
    """An action arrived in a phase where it cannot happen."""

    def __init__(self, phase: AuthPhase, kind: AuthActionKind) -> None:
        super().__init__(f"Action '{kind}' is not valid in phase '{phase}'.")
        self.phase = phase
        self.kind = kind


def transition(state: AuthState, action: AuthAction) -> AuthState:
    """Return the state that follows *state* after *action*.

    Raises
    ------
    InvalidTransitionError
        When *action* is impossible in ``state.phase`` or lacks the
        principal it must carry.
    """
    if state.phase not in _ALLOWED_FROM[action.kind]:
        raise InvalidTransitionError(state.phase, action.kind)
    if action.kind in _NEEDS_PRINCIPAL and action.principal is None:
        raise InvalidTransitionError(state.phase, action.kind)

    kind = action.kind

    if kind == AuthActionKind.RESTORE:
        if action.principal is None:
            return INITIAL_STATE
        return AuthState(phase=AuthPhase.AUTHENTICATED, principal=action.principal)

    if kind in (AuthActionKind.LOGIN_START, AuthActionKind.REGISTER_START):
        return AuthState(phase=AuthPhase.AUTHENTICATING)

    if kind == AuthActionKind.CHALLENGE_SENT:
        return AuthState(phase=AuthPhase.ANONYMOUS)

    if kind in (
        AuthActionKind.AUTH_SUCCESS,
        AuthActionKind.UPDATE_SUCCESS,
        AuthActionKind.PRINCIPAL_REFRESHED,
    ):
        return AuthState(phase=AuthPhase.AUTHENTICATED, principal=action.principal)

    if kind == AuthActionKind.AUTH_FAILURE:
        return AuthState(
            phase=AuthPhase.ANONYMOUS,
            error=action.error,
            error_code=action.error_code,
        )

    if kind == AuthActionKind.UPDATE_START:
        return AuthState(phase=AuthPhase.UPDATING, principal=state.principal)

    if kind == AuthActionKind.UPDATE_FAILURE:
        return AuthState(
            phase=AuthPhase.AUTHENTICATED,
            principal=state.principal,
            error=action.error,
            error_code=action.error_code,
        )

    if kind == AuthActionKind.SESSION_EXPIRED:
        return AuthState(
            phase=AuthPhase.ANONYMOUS,
            error=action.error or SESSION_EXPIRED_MESSAGE,
            error_code=AuthErrorCode.SESSION_EXPIRED,
        )

    if kind == AuthActionKind.LOGOUT:
        return INITIAL_STATE

    if kind == AuthActionKind.REJECT:
        return state.model_copy(
            update={"error": action.error, "error_code": action.error_code},
        )

    # CLEAR_ERROR
    return state.model_copy(update={"error": None, "error_code": None})
