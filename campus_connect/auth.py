"""
Authentication & Session State.

Provides an injectable ``SessionManager`` that holds the bearer token and
the authenticated principal (``User`` model) for the lifetime of one
client runtime.

Usage::

    from campus_connect.auth import SessionManager
    from campus_connect.models.user import User

    session = SessionManager()
    session.set_session("eyJhbGciOi...", User(
        id="6f1c...",
        name="Asha Rao",
        email="asha@campus.edu",
        role="student",
        department="Computer Science",
    ))
    user = session.get_current_user()
"""

from __future__ import annotations

import threading
from typing import Optional

from campus_connect.models.user import User


class SessionManager:
    """Injectable holder for the current token and principal.

    ``create_client_services()`` builds one and shares it between the
    ``AuthService`` (the only writer) and any ``require_auth`` guards.
    Token and principal are always replaced together; the encrypted
    copy on disk is the ``SessionCacheService``'s concern.
    """

    def __init__(self) -> None:
        self._lock: threading.RLock = threading.RLock()
        self._current_user: Optional[User] = None
        self._access_token: Optional[str] = None

    def set_session(self, token: str, user: User) -> None:
        """Record *token* and *user* as the active session."""
        if not token:
            raise ValueError("A session requires a non-empty token.")
        with self._lock:
            self._access_token = token
            self._current_user = user

    def set_current_user(self, user: User) -> None:
        """Replace the principal while keeping the current token."""
        with self._lock:
            if self._access_token is None:
                raise RuntimeError("Cannot set a user without an active session token.")
            self._current_user = user

    def get_current_user(self) -> User:
        """Return the authenticated user.

        Raises:
            RuntimeError: If no user is currently authenticated.
        """
        with self._lock:
            if self._current_user is None:
                raise RuntimeError(
                    "No user is currently authenticated. Login required."
                )
            return self._current_user

    @property
    def current_user(self) -> Optional[User]:
        """Return the principal, or ``None`` when signed out."""
        with self._lock:
            return self._current_user

    @property
    def access_token(self) -> Optional[str]:
        """Return the current bearer token, or ``None`` if not set."""
        with self._lock:
            return self._access_token

    def clear(self) -> None:
        """Remove the current user and token, ending the session."""
        with self._lock:
            self._current_user = None
            self._access_token = None

    @property
    def is_authenticated(self) -> bool:
        """``True`` when a user is currently logged in."""
        with self._lock:
            return self._current_user is not None
