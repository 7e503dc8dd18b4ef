"""
Authentication Guard Decorator.

Provides a factory that produces a decorator for gating client-side
service functions behind an authenticated session and, optionally, a
set of roles.

Usage::

    from campus_connect.auth import SessionManager
    from campus_connect.jwt_auth import require_auth
    from campus_connect.models.enums import UserRole

    session = SessionManager()
    authority_only = require_auth(session, roles={UserRole.AUTHORITY})

    @authority_only
    def assign_issue(issue_id: str) -> str:
        return "only reachable by authorities"
"""

from __future__ import annotations

from collections.abc import Iterable
from functools import wraps
from typing import Callable, Optional, ParamSpec, TypeVar

from campus_connect.auth import SessionManager
from campus_connect.models.enums import UserRole
from campus_connect.services.authorization import can_access

P = ParamSpec("P")
R = TypeVar("R")


class AuthenticationError(RuntimeError):
    """Raised when a guarded function is called without an active session."""


class AuthorizationError(RuntimeError):
    """Raised when the signed-in principal lacks a required role."""


def require_auth(
    session: SessionManager,
    roles: Optional[Iterable[UserRole]] = None,
) -> Callable[[Callable[P, R]], Callable[P, R]]:
    """Return a decorator that enforces authentication via *session*.

    The returned decorator checks ``session.is_authenticated`` before
    every call to the wrapped function.  If no user is logged in, an
    :class:`AuthenticationError` is raised; if *roles* is given and the
    user holds none of them, an :class:`AuthorizationError` is raised.

    Args:
        session: The injectable ``SessionManager`` that holds the
            current user state.
        roles: Roles allowed to call the function.  ``None`` or empty
            admits any authenticated user.

    Returns:
        A decorator suitable for wrapping service-layer callables.
    """
    allowed: frozenset[UserRole] = frozenset(roles or ())

    def decorator(func: Callable[P, R]) -> Callable[P, R]:
        @wraps(func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            user = session.current_user
            if user is None:
                raise AuthenticationError(
                    "Authentication required. Please log in before "
                    "performing this action."
                )
            if not can_access(user, allowed):
                raise AuthorizationError(
                    f"Role '{user.role}' is not permitted to perform this action."
                )
            return func(*args, **kwargs)

        return wrapper

    return decorator
