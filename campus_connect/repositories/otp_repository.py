"""
OTP Challenge Repository.

One row per email in ``otp_challenges``.  Writing a challenge replaces
any previous row for the same email, which is what makes a fresh issue
or a resend invalidate the older code.
"""

from __future__ import annotations

import sqlite3
from datetime import datetime
from typing import Optional

from campus_connect.database import DatabaseManager
from campus_connect.logger import StructuredLogger
from campus_connect.models.registration import OtpChallenge, PendingRegistration
from campus_connect.repositories.base_repository import BaseRepository


class OtpChallengeRepository(BaseRepository):
    """Data access layer for pending OTP challenges.

    Callers that need a read-modify-write (verification) hold
    ``db.write_lock`` around the whole sequence; the lock is re-entrant
    so the methods below may take it again.
    """

    TABLE = "otp_challenges"

    def __init__(self, db: DatabaseManager, logger: StructuredLogger) -> None:
        super().__init__(db, logger)

    def get(self, email: str) -> Optional[OtpChallenge]:
        row = self.sqlite.execute(
            f"SELECT * FROM {self.TABLE} WHERE email = ?", (email,)
        ).fetchone()
        return self._to_challenge(row) if row else None

    def replace(self, challenge: OtpChallenge) -> None:
        """Store *challenge*, superseding any existing row for its email."""
        registration_json: Optional[str] = (
            challenge.registration.model_dump_json()
            if challenge.registration is not None
            else None
        )
        with self._db.write_lock:
            self.sqlite.execute(
                f"DELETE FROM {self.TABLE} WHERE email = ?", (challenge.email,)
            )
            self.sqlite.execute(
                f"""
                INSERT INTO {self.TABLE}
                    (email, code_hash, issued_at, expires_at, attempts, name, registration)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    challenge.email,
                    challenge.code_hash,
                    challenge.issued_at.isoformat(),
                    challenge.expires_at.isoformat(),
                    challenge.attempts,
                    challenge.name,
                    registration_json,
                ),
            )
            self._commit()

    def increment_attempts(self, email: str) -> int:
        """Add one failed attempt and return the new count."""
        with self._db.write_lock:
            self.sqlite.execute(
                f"UPDATE {self.TABLE} SET attempts = attempts + 1 WHERE email = ?",
                (email,),
            )
            self._commit()
            row = self.sqlite.execute(
                f"SELECT attempts FROM {self.TABLE} WHERE email = ?", (email,)
            ).fetchone()
        return int(row["attempts"]) if row else 0

    def delete(self, email: str) -> bool:
        with self._db.write_lock:
            cursor = self.sqlite.execute(
                f"DELETE FROM {self.TABLE} WHERE email = ?", (email,)
            )
            self._commit()
        return cursor.rowcount > 0

    def delete_expired(self, now: datetime) -> int:
        """Remove every challenge whose expiry is before *now*."""
        with self._db.write_lock:
            cursor = self.sqlite.execute(
                f"DELETE FROM {self.TABLE} WHERE expires_at < ?", (now.isoformat(),)
            )
            self._commit()
        return cursor.rowcount

    @staticmethod
    def _to_challenge(row: sqlite3.Row) -> OtpChallenge:
        data = dict(row)
        raw_registration: Optional[str] = data.pop("registration", None)
        registration = (
            PendingRegistration.model_validate_json(raw_registration)
            if raw_registration
            else None
        )
        return OtpChallenge(
            email=data["email"],
            code_hash=data["code_hash"],
            issued_at=datetime.fromisoformat(data["issued_at"]),
            expires_at=datetime.fromisoformat(data["expires_at"]),
            attempts=int(data["attempts"]),
            name=data["name"],
            registration=registration,
        )
