"""
Structured Audit Logging Utility.

Every identity state change (login, logout, registration, OTP issue and
verification, profile update) is emitted as one validated JSON line.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Optional, Union

from pydantic import BaseModel, Field

from campus_connect.logger import StructuredLogger

__all__ = ["AuditEvent", "log_audit_event"]

# Scalar values only; nested structures belong in their own model.
DetailValue = Union[str, int, float, bool, None]


class AuditEvent(BaseModel):
    """Schema-validated representation of a single audit trail entry."""

    timestamp: str
    action: str
    entity_type: str
    entity_id: str
    user_id: str
    details: dict[str, DetailValue] = Field(default_factory=dict)


def log_audit_event(
    logger: StructuredLogger,
    action: str,
    entity_type: str,
    entity_id: str,
    user_id: str,
    details: Optional[dict[str, DetailValue]] = None,
) -> AuditEvent:
    """Log a structured JSON audit event and return it.

    Args:
        logger: The logger instance to write to.
        action: What happened (e.g. ``"LOGIN"``, ``"OTP_ISSUED"``).
        entity_type: Type of entity affected (``"User"``, ``"OtpChallenge"``).
        entity_id: Key of the affected entity.
        user_id: Id of the acting principal, or ``"anonymous"``.
        details: Optional extra context.  Never pass secrets here.
    """
    event = AuditEvent(
        timestamp=datetime.now(timezone.utc).isoformat(),
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        user_id=user_id,
        details=details or {},
    )
    logger.info("AUDIT: %s", json.dumps(event.model_dump(), default=str))
    return event
