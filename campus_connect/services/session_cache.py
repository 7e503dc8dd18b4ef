"""
Encrypted Session Cache Service.

Persists the client session (bearer token + principal snapshot) in the
local SQLite ``encrypted_sessions`` table so a restarted client comes
back signed in without a network call.

Security model
--------------
- The encryption key is derived at runtime from machine-specific
  characteristics (hostname + OS username) via PBKDF2-HMAC-SHA256 with
  a per-installation random salt.  The key is **never** persisted.
- Token and principal are serialised into ONE payload and encrypted
  with AES-256-GCM, so both land together or neither does, and any
  tampering fails authentication on load.
- Cached sessions expire after a configurable number of days (default 7).
- Explicit logout deletes the cached row entirely.

Storage layout (single-row table, ``id = 1``)::

    encrypted_sessions
    ├── id                INTEGER PRIMARY KEY  (always 1)
    ├── encrypted_payload BLOB
    ├── nonce             BLOB
    └── tag               BLOB
"""

from __future__ import annotations

import getpass
import os
import socket
import stat
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Optional, Union

from Crypto.Cipher import AES
from Crypto.Hash import SHA256
from Crypto.Protocol.KDF import PBKDF2
from pydantic import ValidationError

from campus_connect.database import DatabaseManager
from campus_connect.logger import StructuredLogger
from campus_connect.models.auth_models import CachedSession
from campus_connect.models.user import User
from campus_connect.utils.general import mask_email


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionCacheService:
    """Manages encrypted session persistence for the client.

    Architecture Note
    -----------------
    This service accesses SQLite directly rather than through a
    Repository, because the encrypted session is infrastructure state
    (a bearer token), not domain data.

    Parameters
    ----------
    db:
        An initialised ``DatabaseManager`` for the client database.
    logger:
        A ``StructuredLogger`` instance for structured JSON log output.
    max_age_days:
        Maximum number of days a cached session remains valid.  After
        this period ``load_session`` returns ``None``.
    salt_path:
        Location of the per-installation salt file.
    kdf_iterations:
        PBKDF2 iteration count for the key derivation.
    clock:
        Returns the current UTC time; injectable for tests.
    """

    _KEY_LENGTH: int = 32  # 256 bits
    _SALT_LENGTH: int = 32

    def __init__(
        self,
        db: DatabaseManager,
        logger: StructuredLogger,
        max_age_days: int = 7,
        salt_path: Union[Path, str, None] = None,
        kdf_iterations: int = 600_000,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._db: DatabaseManager = db
        self._logger: StructuredLogger = logger
        self._max_age: timedelta = timedelta(days=max_age_days)
        self._salt_path: Path = (
            Path(salt_path) if salt_path is not None
            else Path.home() / ".campus_connect_session_salt"
        )
        self._kdf_iterations: int = kdf_iterations
        self._clock = clock
        self._key: Optional[bytes] = None
        self._key_lock: threading.Lock = threading.Lock()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def save_session(self, token: str, user: User) -> bool:
        """Encrypt and persist *token* together with *user*.

        Returns
        -------
        bool
            ``True`` if the session was encrypted and written.  ``False``
            if encryption or the database write failed; the error is
            logged, not raised, since persistence is not required for
            the in-memory session to work.
        """
        try:
            session = CachedSession(token=token, user=user, cached_at=self._clock())
        except ValidationError as exc:
            self._logger.warning("Refusing to cache an incomplete session: %s", exc)
            return False

        plaintext: bytes = session.model_dump_json().encode("utf-8")

        try:
            key: bytes = self._derive_key()
            cipher = AES.new(key, AES.MODE_GCM)
            ciphertext, tag = cipher.encrypt_and_digest(plaintext)
            nonce: bytes = cipher.nonce
        except (OSError, ValueError) as exc:
            self._logger.warning("Failed to encrypt session payload: %s", exc)
            return False

        try:
            with self._db.write_lock:
                self._db.sqlite.execute(
                    """
                    INSERT INTO encrypted_sessions (id, encrypted_payload, nonce, tag)
                    VALUES (1, ?, ?, ?)
                    ON CONFLICT(id) DO UPDATE SET
                        encrypted_payload = excluded.encrypted_payload,
                        nonce             = excluded.nonce,
                        tag               = excluded.tag,
                        created_at        = CURRENT_TIMESTAMP
                    """,
                    (ciphertext, nonce, tag),
                )
                self._db.sqlite.commit()
        except Exception as exc:
            self._logger.warning("Failed to write encrypted session to database: %s", exc)
            return False

        self._logger.info("Session cached for %s.", mask_email(user.email))
        return True

    def load_session(self) -> Optional[CachedSession]:
        """Load, decrypt and validate the cached session.

        Returns
        -------
        CachedSession or None
            ``None`` when no row exists, when decryption or validation
            fails (corrupted data or machine identity changed), or when
            the session is older than ``max_age_days``.
        """
        try:
            row = self._db.sqlite.execute(
                "SELECT encrypted_payload, nonce, tag FROM encrypted_sessions WHERE id = 1",
            ).fetchone()
        except Exception as exc:
            self._logger.warning("Failed to read cached session from database: %s", exc)
            return None

        if row is None:
            self._logger.debug("No cached session found.")
            return None

        # --- Decrypt ---
        try:
            key: bytes = self._derive_key()
            cipher = AES.new(key, AES.MODE_GCM, nonce=bytes(row["nonce"]))
            plaintext: bytes = cipher.decrypt_and_verify(
                bytes(row["encrypted_payload"]), bytes(row["tag"]),
            )
        except (ValueError, KeyError, TypeError) as exc:
            self._logger.warning(
                "Decryption of cached session failed (corrupted data or "
                "machine identity changed): %s",
                exc,
            )
            return None
        except OSError as exc:
            self._logger.warning("Session key unavailable: %s", exc)
            return None

        # --- Deserialize ---
        try:
            session = CachedSession.model_validate_json(plaintext)
        except ValidationError as exc:
            self._logger.warning("Cached session payload is malformed: %s", exc)
            return None

        # --- Expiry check ---
        cached_at = session.cached_at
        if cached_at.tzinfo is None:
            cached_at = cached_at.replace(tzinfo=timezone.utc)
        if self._clock() > cached_at + self._max_age:
            self._logger.info(
                "Cached session for %s has expired (cached at %s).",
                mask_email(session.user.email),
                cached_at.isoformat(),
            )
            return None

        self._logger.info("Loaded cached session for %s.", mask_email(session.user.email))
        return session

    def clear_session(self) -> bool:
        """Delete the cached session.  Safe to call when none exists.

        Returns ``False`` when the row could not be deleted and may still
        be on disk.
        """
        try:
            with self._db.write_lock:
                self._db.sqlite.execute("DELETE FROM encrypted_sessions WHERE id = 1")
                self._db.sqlite.commit()
        except Exception as exc:
            self._logger.error("Failed to clear cached session: %s", exc)
            return False

        self._logger.info("Cached session cleared.")
        return True

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _derive_key(self) -> bytes:
        """Derive (once per instance) the AES-256 key from machine identity.

        ``hostname:username`` binds the key to this machine and account;
        the random salt supplies the entropy.  A copied database file is
        useless elsewhere.

        Raises
        ------
        OSError
            If the salt file cannot be created or read.
        """
        with self._key_lock:
            if self._key is None:
                password: str = f"{socket.gethostname()}:{getpass.getuser()}"
                self._key = PBKDF2(
                    password=password,
                    salt=self._get_or_create_salt(),
                    dkLen=self._KEY_LENGTH,
                    count=self._kdf_iterations,
                    hmac_hash_module=SHA256,
                )
            return self._key

    def _get_or_create_salt(self) -> bytes:
        """Return the installation salt, creating it on first run.

        Raises
        ------
        OSError
            If the salt file cannot be read or written.
        """
        if self._salt_path.exists():
            data: bytes = self._salt_path.read_bytes()
            if len(data) == self._SALT_LENGTH:
                return data
            self._logger.warning(
                "Salt file has unexpected length (%d); regenerating.", len(data),
            )
        salt: bytes = os.urandom(self._SALT_LENGTH)
        self._salt_path.parent.mkdir(parents=True, exist_ok=True)
        self._salt_path.write_bytes(salt)
        if os.name == "posix":
            self._salt_path.chmod(stat.S_IRUSR | stat.S_IWUSR)  # 0o600

        self._logger.info("Session salt created at %s.", self._salt_path)
        return salt
