"""
Email Notification Service.

Outbound mail for the identity flow: verification codes and the welcome
message sent after an account is created.

Two backends share one interface:
    - ``EmailService`` sends synchronously over SMTP with STARTTLS.
    - ``ConsoleEmailService`` writes the message to the log instead,
      for local development and tests.

Both return a ``ServiceResult`` so callers never handle raw SMTP
exceptions.
"""

from __future__ import annotations

import smtplib
from email.message import EmailMessage
from typing import Optional, Protocol

from campus_connect.config import AppConfig
from campus_connect.logger import StructuredLogger
from campus_connect.models.enums import UserRole
from campus_connect.models.service_models import ServiceResult
from campus_connect.services.base_service import BaseService
from campus_connect.utils.audit import log_audit_event


class EmailSender(Protocol):
    """What the OTP manager and the account service need from mail."""

    def send_otp_email(
        self, to_address: str, name: str, code: str, expires_minutes: int,
    ) -> ServiceResult: ...  # noqa: E704

    def send_welcome_email(
        self, to_address: str, name: str, role: UserRole,
    ) -> ServiceResult: ...  # noqa: E704


def _otp_message(name: str, code: str, expires_minutes: int) -> tuple[str, str]:
    subject = "Campus Connect - Email Verification Code"
    body = (
        f"Hello {name},\n\n"
        "Thank you for registering with Campus Connect. Use the code below "
        "to verify your email address:\n\n"
        f"    {code}\n\n"
        f"This code expires in {expires_minutes} minutes. If you did not "
        "request it, you can ignore this email.\n"
    )
    return subject, body


def _welcome_message(name: str, role: UserRole) -> tuple[str, str]:
    subject = "Welcome to Campus Connect"
    body = (
        f"Hello {name},\n\n"
        f"Your {role} account is ready. You can now sign in to report "
        "and track campus issues.\n"
    )
    return subject, body


class EmailService(BaseService):
    """Composes and sends notification emails over SMTP.

    SMTP settings are validated lazily on the first send; a
    misconfiguration is reported as a failed ``ServiceResult``.

    Parameters
    ----------
    config:
        Application configuration holding the ``MAIL_*`` settings.
    logger:
        Structured logger for send attempts and failures.
    """

    def __init__(self, config: AppConfig, logger: StructuredLogger) -> None:
        super().__init__(logger)
        self._config: AppConfig = config
        self._validated: bool = False

    # ------------------------------------------------------------------
    # Core send method
    # ------------------------------------------------------------------

    def send_email(self, to_address: str, subject: str, body_text: str) -> ServiceResult:
        """Compose and send one plain-text email synchronously."""
        if not self._validated:
            try:
                self._config.validate_email_config()
                self._validated = True
            except ValueError as exc:
                self._logger.error("Email configuration error: %s", exc)
                return ServiceResult(
                    success=False,
                    error=f"Email configuration error: {exc}",
                    status_code=500,
                )

        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = self._config.MAIL_FROM or self._config.MAIL_USERNAME
        msg["To"] = to_address
        msg.set_content(body_text)

        return self._dispatch_smtp(msg)

    # ------------------------------------------------------------------
    # Identity notifications
    # ------------------------------------------------------------------

    def send_otp_email(
        self, to_address: str, name: str, code: str, expires_minutes: int,
    ) -> ServiceResult:
        subject, body = _otp_message(name, code, expires_minutes)
        return self.send_email(to_address, subject, body)

    def send_welcome_email(self, to_address: str, name: str, role: UserRole) -> ServiceResult:
        subject, body = _welcome_message(name, role)
        return self.send_email(to_address, subject, body)

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _dispatch_smtp(self, msg: EmailMessage) -> ServiceResult:
        """Open an SMTP connection, authenticate, send, and close."""
        smtp: Optional[smtplib.SMTP] = None
        try:
            smtp = smtplib.SMTP(
                self._config.MAIL_SERVER, self._config.MAIL_PORT, timeout=30,
            )
            smtp.starttls()
            smtp.login(
                self._config.MAIL_USERNAME,
                self._config.MAIL_PASSWORD.get_secret_value(),
            )
            smtp.send_message(msg)

            self._logger.info("Email sent successfully to %s", msg["To"])
            log_audit_event(
                logger=self._logger,
                action="EMAIL_SENT",
                entity_type="Email",
                entity_id=msg["Subject"] or "",
                user_id="system",
                details={"to": msg["To"]},
            )
            return ServiceResult(success=True)

        except smtplib.SMTPAuthenticationError as exc:
            self._logger.error(
                "SMTP authentication failed for '%s': %s",
                self._config.MAIL_USERNAME,
                exc,
            )
            return ServiceResult(
                success=False,
                error=f"SMTP authentication failed: {exc}",
                status_code=500,
            )

        except smtplib.SMTPException as exc:
            self._logger.error("SMTP error sending to %s: %s", msg["To"], exc)
            return ServiceResult(success=False, error=f"SMTP error: {exc}", status_code=500)

        except OSError as exc:
            self._logger.error(
                "Network error connecting to %s:%d: %s",
                self._config.MAIL_SERVER,
                self._config.MAIL_PORT,
                exc,
            )
            return ServiceResult(success=False, error=f"Network error: {exc}", status_code=500)

        finally:
            if smtp is not None:
                try:
                    smtp.quit()
                except (smtplib.SMTPException, OSError):
                    self._logger.debug("SMTP quit failed; connection already closed.")


class ConsoleEmailService(BaseService):
    """Development backend: logs each message instead of sending it.

    ``outbox`` keeps ``(to, subject, body)`` tuples so tests can read the
    verification code that would have been emailed.
    """

    def __init__(self, logger: StructuredLogger) -> None:
        super().__init__(logger)
        self.outbox: list[tuple[str, str, str]] = []

    def send_otp_email(
        self, to_address: str, name: str, code: str, expires_minutes: int,
    ) -> ServiceResult:
        subject, body = _otp_message(name, code, expires_minutes)
        return self._record(to_address, subject, body)

    def send_welcome_email(self, to_address: str, name: str, role: UserRole) -> ServiceResult:
        subject, body = _welcome_message(name, role)
        return self._record(to_address, subject, body)

    def _record(self, to_address: str, subject: str, body: str) -> ServiceResult:
        self.outbox.append((to_address, subject, body))
        self._logger.info(
            "Console email to %s: %s", to_address, subject,
            extra={"event": "EMAIL_CONSOLE"},
        )
        return ServiceResult(success=True)
