"""
OTP Challenge Manager.

Issues, stores and verifies the one-time codes that gate account
creation on proof of email ownership.

Policy
------
- Codes are six uniformly random digits (leading zeros kept).
- A challenge expires ``expiry_minutes`` after issue (default 10).
- At most one challenge exists per email; issuing or resending replaces
  the previous one, so an older code can never verify.
- A wrong code increments the attempt counter; reaching
  ``max_attempts`` deletes the challenge and forces a re-issue.
- A verified challenge is consumed (deleted): verifying it again
  reports ``not_found``.
- Only a keyed HMAC of the code is stored.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from campus_connect.database import DatabaseManager
from campus_connect.errors import OtpDeliveryError, OtpVerificationError
from campus_connect.logger import StructuredLogger
from campus_connect.models.enums import OtpVerification
from campus_connect.models.registration import OtpChallenge, PendingRegistration
from campus_connect.repositories.otp_repository import OtpChallengeRepository
from campus_connect.services.base_service import BaseService
from campus_connect.services.email_service import EmailSender
from campus_connect.utils.audit import log_audit_event

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_code() -> str:
    return f"{secrets.randbelow(1_000_000):06d}"


class OtpChallengeManager(BaseService):
    """Owns the lifecycle of pending-registration OTP challenges.

    Parameters
    ----------
    db:
        Database manager; its write lock makes verification an atomic
        read-modify-write.
    repo:
        Challenge persistence.
    email_sender:
        Delivery collaborator for the code.
    secret_key:
        Key for the stored code HMAC.
    logger:
        Structured logger.
    expiry_minutes:
        Lifetime of a challenge.
    max_attempts:
        Wrong codes tolerated before the challenge is discarded.
    clock:
        Returns the current UTC time; injectable for tests.
    """

    def __init__(
        self,
        db: DatabaseManager,
        repo: OtpChallengeRepository,
        email_sender: EmailSender,
        secret_key: str,
        logger: StructuredLogger,
        expiry_minutes: int = 10,
        max_attempts: int = 5,
        clock: Clock = _utcnow,
    ) -> None:
        super().__init__(logger)
        self._db = db
        self._repo = repo
        self._email_sender = email_sender
        self._secret: bytes = secret_key.encode("utf-8")
        self._expiry = timedelta(minutes=max(expiry_minutes, 1))
        self._max_attempts: int = max(max_attempts, 1)
        self._clock: Clock = clock

    # ------------------------------------------------------------------
    # Issue / resend
    # ------------------------------------------------------------------

    def issue_challenge(
        self,
        email: str,
        name: str,
        registration: Optional[PendingRegistration] = None,
    ) -> OtpChallenge:
        """Create a fresh challenge for *email* and email the code.

        Any earlier challenge for the same email is replaced.

        Returns
        -------
        OtpChallenge
            The stored challenge, with ``code`` populated on this
            instance only.

        Raises
        ------
        OtpDeliveryError
            The challenge was stored but the email could not be sent.
            The caller may retry through :meth:`resend`.
        """
        email = email.strip().lower()
        code = generate_code()
        now = self._clock()
        challenge = OtpChallenge(
            email=email,
            code_hash=self._hash_code(email, code),
            issued_at=now,
            expires_at=now + self._expiry,
            name=name.strip(),
            registration=registration,
        )
        self._repo.replace(challenge)

        log_audit_event(
            logger=self._logger,
            action="OTP_ISSUED",
            entity_type="OtpChallenge",
            entity_id=email,
            user_id="anonymous",
            details={"expires_at": challenge.expires_at.isoformat()},
        )

        self._deliver(challenge, code)
        return challenge.model_copy(update={"code": code})

    def resend(
        self,
        email: str,
        name: str,
        registration: Optional[PendingRegistration] = None,
    ) -> OtpChallenge:
        """Re-issue the challenge for *email*, invalidating the old code.

        When *registration* is omitted the details stored with the
        superseded challenge are carried over.
        """
        email = email.strip().lower()
        if registration is None:
            previous = self._repo.get(email)
            if previous is not None:
                registration = previous.registration
                name = name or previous.name
        return self.issue_challenge(email, name, registration)

    # ------------------------------------------------------------------
    # Verify
    # ------------------------------------------------------------------

    def verify(self, email: str, code: str) -> OtpVerification:
        """Check *code* against the live challenge for *email*."""
        outcome, _ = self._check(email, code)
        return outcome

    def consume_verified(self, email: str, code: str) -> OtpChallenge:
        """Verify *code* and return the consumed challenge.

        Raises
        ------
        OtpVerificationError
            For any outcome other than ``verified``; ``outcome`` on the
            exception says which.
        """
        outcome, challenge = self._check(email, code)
        if outcome != OtpVerification.VERIFIED or challenge is None:
            raise OtpVerificationError(outcome)
        return challenge

    def get_challenge(self, email: str) -> Optional[OtpChallenge]:
        return self._repo.get(email.strip().lower())

    def purge_expired(self) -> int:
        """Delete every expired challenge; returns how many were removed."""
        removed = self._repo.delete_expired(self._clock())
        if removed:
            self._logger.info("Purged %d expired OTP challenge(s).", removed)
        return removed

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _check(
        self, email: str, code: str,
    ) -> tuple[OtpVerification, Optional[OtpChallenge]]:
        email = email.strip().lower()
        code = (code or "").strip()

        with self._db.write_lock:
            challenge = self._repo.get(email)
            if challenge is None:
                return OtpVerification.NOT_FOUND, None

            if challenge.is_expired(self._clock()):
                self._repo.delete(email)
                self._logger.info("OTP challenge for %s expired.", email)
                return OtpVerification.EXPIRED, None

            if not hmac.compare_digest(challenge.code_hash, self._hash_code(email, code)):
                attempts = self._repo.increment_attempts(email)
                if attempts >= self._max_attempts:
                    self._repo.delete(email)
                    self._logger.warning(
                        "OTP challenge for %s discarded after %d failed attempts.",
                        email,
                        attempts,
                    )
                log_audit_event(
                    logger=self._logger,
                    action="OTP_FAILED",
                    entity_type="OtpChallenge",
                    entity_id=email,
                    user_id="anonymous",
                    details={"attempts": attempts},
                )
                return OtpVerification.MISMATCH, None

            self._repo.delete(email)

        log_audit_event(
            logger=self._logger,
            action="OTP_VERIFIED",
            entity_type="OtpChallenge",
            entity_id=email,
            user_id="anonymous",
        )
        return OtpVerification.VERIFIED, challenge.model_copy(update={"consumed": True})

    def _hash_code(self, email: str, code: str) -> str:
        message = f"{email}:{code}".encode("utf-8")
        return hmac.new(self._secret, message, hashlib.sha256).hexdigest()

    def _deliver(self, challenge: OtpChallenge, code: str) -> None:
        minutes = int(self._expiry.total_seconds() // 60)
        try:
            result = self._email_sender.send_otp_email(
                challenge.email, challenge.name, code, minutes,
            )
        except Exception as exc:
            self._logger.error(
                "OTP delivery to %s raised: %s", challenge.email, exc, exc_info=True,
            )
            raise OtpDeliveryError() from exc

        if not result.success:
            self._logger.error(
                "OTP delivery to %s failed: %s", challenge.email, result.error,
            )
            raise OtpDeliveryError()
