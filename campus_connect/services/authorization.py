"""Authorization Gate.

Role-based access decisions shared by the backend route dependencies,
the service-layer guard decorator and the client's page registry.

A route with no required roles admits every authenticated principal.
An anonymous visitor is never admitted to a protected route.

Adding a page = one ``register()`` call on the ``RouteRegistry``.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Optional

from campus_connect.logger import StructuredLogger
from campus_connect.models.enums import AccessDecision, UserRole
from campus_connect.models.user import User

ALL_ROLES: frozenset[UserRole] = frozenset(UserRole)


def can_access(principal: Optional[User], required_roles: Iterable[UserRole] = ()) -> bool:
    """``True`` iff *principal* exists and holds one of *required_roles*.

    An empty *required_roles* means "any authenticated principal".
    """
    if principal is None:
        return False
    roles = frozenset(required_roles)
    return not roles or principal.role in roles


def decide_access(
    principal: Optional[User],
    required_roles: Iterable[UserRole] = (),
) -> AccessDecision:
    """Classify a protected navigation.

    Anonymous visitors are sent to the login page; authenticated
    principals without a matching role are refused.
    """
    if principal is None:
        return AccessDecision.REDIRECT_LOGIN
    if can_access(principal, required_roles):
        return AccessDecision.ALLOW
    return AccessDecision.FORBIDDEN


class RouteEntry:
    """Metadata for a single registered page.

    Attributes
    ----------
    path:
        Client-side path (e.g. ``'/dashboard'``).
    title:
        Human-readable page name.
    required_roles:
        Roles permitted to open the page; empty means any authenticated
        principal.
    public:
        ``True`` for pages reachable without signing in (login, sign-up).
    """

    __slots__ = ("path", "title", "required_roles", "public")

    def __init__(
        self,
        path: str,
        title: str,
        required_roles: frozenset[UserRole],
        public: bool,
    ) -> None:
        self.path = path
        self.title = title
        self.required_roles = required_roles
        self.public = public


class Navigation:
    """Outcome of :meth:`RouteRegistry.resolve`.

    ``target`` is the path the UI should render: the requested path on
    ``allow``, otherwise the login or the neutral page.
    """

    __slots__ = ("decision", "target", "requested")

    def __init__(self, decision: AccessDecision, target: str, requested: str) -> None:
        self.decision = decision
        self.target = target
        self.requested = requested

    @property
    def allowed(self) -> bool:
        return self.decision == AccessDecision.ALLOW


class RouteRegistry:
    """Records each page's required roles and resolves navigations.

    Parameters
    ----------
    logger:
        Structured logger for registration and refusal events.
    login_path:
        Where anonymous visitors of protected pages are sent.
    forbidden_path:
        Neutral page shown on a role mismatch.
    """

    def __init__(
        self,
        logger: StructuredLogger,
        login_path: str = "/login",
        forbidden_path: str = "/",
    ) -> None:
        self._entries: dict[str, RouteEntry] = {}
        self._logger = logger
        self._login_path = login_path
        self._forbidden_path = forbidden_path

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def register(
        self,
        path: str,
        title: str,
        required_roles: Iterable[UserRole] = (),
        *,
        public: bool = False,
    ) -> None:
        """Register a page.

        Parameters
        ----------
        path:
            Unique client-side path.
        title:
            Label for menus.
        required_roles:
            Roles permitted to open the page.  Ignored for public pages.
        public:
            If ``True`` the page needs no authentication.
        """
        if path in self._entries:
            self._logger.warning("Route '%s' already registered; overwriting.", path)
        self._entries[path] = RouteEntry(
            path=path,
            title=title,
            required_roles=frozenset(required_roles),
            public=public,
        )
        self._logger.debug("Route registered: %s (%s)", path, title)

    def get_route(self, path: str) -> RouteEntry:
        """Return a registered entry.

        Raises
        ------
        KeyError
            If *path* is not registered.
        """
        if path not in self._entries:
            raise KeyError(f"Route '{path}' is not registered.")
        return self._entries[path]

    def get_routes_for(self, principal: Optional[User]) -> list[RouteEntry]:
        """Return pages visible to *principal*, preserving registration order."""
        return [
            entry
            for entry in self._entries.values()
            if entry.public or can_access(principal, entry.required_roles)
        ]

    def resolve(self, path: str, principal: Optional[User]) -> Navigation:
        """Decide where a navigation to *path* should land.

        Raises
        ------
        KeyError
            If *path* is not registered.
        """
        entry = self.get_route(path)
        if entry.public:
            return Navigation(AccessDecision.ALLOW, path, path)

        decision = decide_access(principal, entry.required_roles)
        if decision == AccessDecision.ALLOW:
            return Navigation(decision, path, path)
        if decision == AccessDecision.REDIRECT_LOGIN:
            return Navigation(decision, self._login_path, path)

        self._logger.info(
            "Navigation to %s refused for role %s.",
            path,
            principal.role if principal is not None else "anonymous",
        )
        return Navigation(decision, self._forbidden_path, path)

    @property
    def login_path(self) -> str:
        return self._login_path

    @property
    def forbidden_path(self) -> str:
        return self._forbidden_path
