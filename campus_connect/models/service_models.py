"""
Service Layer Data Transfer Objects.

Generic result envelope for services whose failures are reported to the
caller rather than raised (email delivery).
"""

from __future__ import annotations

from typing import Generic, Optional, TypeVar

from pydantic import BaseModel

T = TypeVar("T")

__all__ = ["ServiceResult"]


class ServiceResult(BaseModel, Generic[T]):
    """
    Standard service return envelope.

    Generic over ``T`` so callers can annotate precisely
    (``ServiceResult[str]``); the bare form behaves as
    ``ServiceResult[Any]``.
    """

    success: bool
    data: Optional[T] = None
    error: Optional[str] = None
    status_code: int = 200
