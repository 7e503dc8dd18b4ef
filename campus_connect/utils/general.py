"""General Utility Functions."""

from __future__ import annotations

__all__ = ["mask_email"]


def mask_email(email: str) -> str:
    """Return *email* with most of the local part hidden, for client logs.

    ``"alice@campus.edu"`` becomes ``"a***@campus.edu"``.
    """
    local, sep, domain = email.partition("@")
    if not sep:
        return "***"
    return f"{local[:1]}***@{domain}"
