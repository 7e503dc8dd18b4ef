"""
Token Issuer / Verifier.

Mints HS256 JWT bearer tokens bound to a principal id and validates them
on every protected request.  Verification is self-contained (signature
and expiry) plus one local lookup of the subject; no third party is
contacted.

Rotation policy: issuing a new token (after a profile update) revokes
nothing.  Earlier tokens stay valid until their own expiry.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from jose import JWTError, jwt

from campus_connect.errors import TokenExpiredError, TokenInvalidError
from campus_connect.logger import StructuredLogger
from campus_connect.models.user import User
from campus_connect.repositories.user_repository import UserRepository
from campus_connect.services.base_service import BaseService

_TOKEN_TYPE: str = "access"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TokenService(BaseService):
    """Issues and verifies bearer tokens.

    Parameters
    ----------
    user_repo:
        Principal store used to resolve a token's subject.
    secret_key:
        HMAC signing key.
    logger:
        Structured logger.
    algorithm:
        JOSE algorithm name (default ``HS256``).
    expire_days:
        Token lifetime.
    clock:
        Returns the current UTC time; injectable for tests.
    """

    def __init__(
        self,
        user_repo: UserRepository,
        secret_key: str,
        logger: StructuredLogger,
        algorithm: str = "HS256",
        expire_days: int = 7,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        super().__init__(logger)
        self._user_repo = user_repo
        self._secret_key = secret_key
        self._algorithm = algorithm
        self._lifetime = timedelta(days=expire_days)
        self._clock = clock

    def issue(self, user: User) -> str:
        """Return a signed token for *user*.

        Every token carries a random ``jti`` so two tokens minted in the
        same second for the same principal still differ.
        """
        now = self._clock()
        claims: dict[str, object] = {
            "sub": user.id,
            "jti": uuid.uuid4().hex,
            "iat": int(now.timestamp()),
            "exp": int((now + self._lifetime).timestamp()),
            "type": _TOKEN_TYPE,
        }
        return jwt.encode(claims, self._secret_key, algorithm=self._algorithm)

    def decode(self, token: str) -> dict[str, object]:
        """Check signature and expiry and return the claims.

        Raises
        ------
        TokenExpiredError
            The token is well formed and signed but past ``exp``.
        TokenInvalidError
            Malformed, tampered, or not an access token.
        """
        if not token:
            raise TokenInvalidError("Not authorized, no token.")
        try:
            claims = jwt.decode(
                token,
                self._secret_key,
                algorithms=[self._algorithm],
                options={"verify_exp": False},
            )
        except JWTError as exc:
            raise TokenInvalidError() from exc

        if claims.get("type") != _TOKEN_TYPE or not claims.get("sub"):
            raise TokenInvalidError()

        expires_at: Optional[object] = claims.get("exp")
        if not isinstance(expires_at, (int, float)):
            raise TokenInvalidError()
        if self._clock().timestamp() >= expires_at:
            raise TokenExpiredError()
        return claims

    def verify(self, token: str) -> User:
        """Resolve *token* to its principal.

        Raises
        ------
        TokenExpiredError
            The token has lapsed.
        TokenInvalidError
            The token is invalid or its subject no longer exists.
        """
        claims = self.decode(token)
        user = self._user_repo.get_by_id(str(claims["sub"]))
        if user is None:
            self._logger.warning("Token subject %s not found.", claims["sub"])
            raise TokenInvalidError("Not authorized, user not found.")
        return user
