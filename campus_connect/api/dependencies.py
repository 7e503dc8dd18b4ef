"""FastAPI dependencies: service lookup, bearer authentication and role gates."""

from __future__ import annotations

from typing import Annotated, Callable, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from campus_connect.errors import ForbiddenError, TokenInvalidError
from campus_connect.models.enums import UserRole
from campus_connect.models.user import User
from campus_connect.services import ServerServiceContainer
from campus_connect.services.account_service import AccountService
from campus_connect.services.authorization import can_access

# auto_error=False so a missing header reaches our own 401 body.
bearer_scheme = HTTPBearer(auto_error=False)


def get_services(request: Request) -> ServerServiceContainer:
    return request.app.state.services


def get_account_service(
    services: Annotated[ServerServiceContainer, Depends(get_services)],
) -> AccountService:
    return services["account_service"]


def get_current_user(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(bearer_scheme)],
    services: Annotated[ServerServiceContainer, Depends(get_services)],
) -> User:
    """Resolve the bearer token to its principal or fail with 401."""
    if credentials is None or not credentials.credentials:
        raise TokenInvalidError("Not authorized, no token.")
    return services["token_service"].verify(credentials.credentials)


def require_roles(*roles: UserRole) -> Callable[..., User]:
    """Build a dependency admitting only principals holding one of *roles*.

    No roles means any authenticated principal.
    """
    allowed: frozenset[UserRole] = frozenset(roles)

    def dependency(user: Annotated[User, Depends(get_current_user)]) -> User:
        if not can_access(user, allowed):
            raise ForbiddenError(
                f"User role '{user.role}' is not authorized to access this route."
            )
        return user

    return dependency


CurrentUser = Annotated[User, Depends(get_current_user)]
Accounts = Annotated[AccountService, Depends(get_account_service)]
