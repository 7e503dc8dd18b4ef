"""
User Repository.

Principal persistence for the backend.  Emails are stored lower-cased
and the column collates case-insensitively, so lookups and the
uniqueness constraint both ignore case.
"""

from __future__ import annotations

import json
import sqlite3
import uuid
from datetime import datetime, timezone
from typing import Optional

from campus_connect.database import DatabaseManager
from campus_connect.errors import EmailAlreadyRegisteredError
from campus_connect.logger import StructuredLogger
from campus_connect.models.enums import IssueCategory, UserRole
from campus_connect.models.user import User
from campus_connect.repositories.base_repository import BaseRepository

_UPDATABLE_COLUMNS: frozenset[str] = frozenset({"name", "email", "department", "avatar"})


class UserRepository(BaseRepository):
    """Data access layer for User entities.

    There is no ``delete()``: principals are never removed by the
    identity subsystem.
    """

    TABLE = "users"

    def __init__(self, db: DatabaseManager, logger: StructuredLogger) -> None:
        super().__init__(db, logger)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_by_id(self, user_id: str) -> Optional[User]:
        row = self.sqlite.execute(
            f"SELECT * FROM {self.TABLE} WHERE id = ?", (user_id,)
        ).fetchone()
        return self._to_user(row) if row else None

    def get_by_email(self, email: str) -> Optional[User]:
        """Fetch a user by email address (case-insensitive)."""
        row = self.sqlite.execute(
            f"SELECT * FROM {self.TABLE} WHERE email = ?", (email.strip().lower(),)
        ).fetchone()
        return self._to_user(row) if row else None

    def get_credentials(self, email: str) -> Optional[tuple[User, str]]:
        """Return ``(user, password_hash)`` for login checks, or ``None``."""
        row = self.sqlite.execute(
            f"SELECT * FROM {self.TABLE} WHERE email = ?", (email.strip().lower(),)
        ).fetchone()
        if row is None:
            return None
        return self._to_user(row), row["password_hash"]

    def email_exists(self, email: str, exclude_user_id: Optional[str] = None) -> bool:
        row = self.sqlite.execute(
            f"SELECT id FROM {self.TABLE} WHERE email = ?", (email.strip().lower(),)
        ).fetchone()
        return row is not None and row["id"] != exclude_user_id

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create(
        self,
        name: str,
        email: str,
        password_hash: str,
        role: UserRole,
        department: str = "",
        categories: Optional[list[IssueCategory]] = None,
    ) -> User:
        """Insert a new principal and return it.

        Raises:
            EmailAlreadyRegisteredError: If the email is already taken.
        """
        now = datetime.now(timezone.utc)
        user = User(
            id=uuid.uuid4().hex,
            name=name.strip(),
            email=email.strip().lower(),
            role=role,
            department=department.strip(),
            categories=list(categories or []),
            created_at=now,
            updated_at=now,
        )
        with self._db.write_lock:
            try:
                self.sqlite.execute(
                    f"""
                    INSERT INTO {self.TABLE}
                        (id, name, email, password_hash, role, department,
                         categories, avatar, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        user.id,
                        user.name,
                        user.email,
                        password_hash,
                        str(user.role),
                        user.department,
                        json.dumps([str(c) for c in user.categories]),
                        user.avatar,
                        now.isoformat(),
                        now.isoformat(),
                    ),
                )
                self._commit()
            except sqlite3.IntegrityError as exc:
                self.sqlite.rollback()
                raise EmailAlreadyRegisteredError() from exc

        self._logger.info("User created: %s (role: %s)", user.id, user.role)
        return user

    def update(
        self,
        user_id: str,
        changes: dict[str, Optional[str]],
        password_hash: Optional[str] = None,
    ) -> Optional[User]:
        """Apply a partial update and return the refreshed user.

        Unknown keys in *changes* are ignored.  Returns ``None`` when the
        user does not exist.

        Raises:
            EmailAlreadyRegisteredError: If a new email collides.
        """
        columns: dict[str, Optional[str]] = {
            key: value for key, value in changes.items() if key in _UPDATABLE_COLUMNS
        }
        if "email" in columns and columns["email"] is not None:
            columns["email"] = columns["email"].strip().lower()
        if password_hash is not None:
            columns["password_hash"] = password_hash
        columns["updated_at"] = datetime.now(timezone.utc).isoformat()

        assignments = ", ".join(f"{column} = ?" for column in columns)
        with self._db.write_lock:
            try:
                cursor = self.sqlite.execute(
                    f"UPDATE {self.TABLE} SET {assignments} WHERE id = ?",
                    (*columns.values(), user_id),
                )
                self._commit()
            except sqlite3.IntegrityError as exc:
                self.sqlite.rollback()
                raise EmailAlreadyRegisteredError() from exc

        if cursor.rowcount == 0:
            return None
        self._logger.info(
            "User updated: %s (fields: %s)",
            user_id,
            ", ".join(sorted(k for k in columns if k != "updated_at")),
        )
        return self.get_by_id(user_id)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _to_user(row: sqlite3.Row) -> User:
        data = dict(row)
        data.pop("password_hash", None)
        data["categories"] = json.loads(data.get("categories") or "[]")
        return User(**data)
