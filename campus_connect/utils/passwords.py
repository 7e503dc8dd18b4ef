"""
Password Verifier Hashing.

bcrypt verifiers (``$2b$<rounds>$...``).  The cost factor is embedded in
each hash, so raising ``BCRYPT_ROUNDS`` later leaves existing accounts
verifiable.
"""

from __future__ import annotations

import bcrypt

# bcrypt only reads the first 72 bytes of its input.
_MAX_PASSWORD_BYTES: int = 72


def _encode(password: str) -> bytes:
    return password.encode("utf-8")[:_MAX_PASSWORD_BYTES]


class PasswordHasher:
    """Derives and checks password verifiers.

    Parameters
    ----------
    rounds:
        bcrypt cost factor for new hashes (4-31).
    """

    def __init__(self, rounds: int = 12) -> None:
        self._rounds: int = rounds

    def hash(self, password: str) -> str:
        hashed: bytes = bcrypt.hashpw(_encode(password), bcrypt.gensalt(rounds=self._rounds))
        return hashed.decode("utf-8")

    def verify(self, password: str, stored: str) -> bool:
        """Check *password* against *stored*.  A malformed hash never matches."""
        try:
            return bcrypt.checkpw(_encode(password), stored.encode("utf-8"))
        except ValueError:
            return False
