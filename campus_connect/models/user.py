"""
User Model.

The principal record shared by the backend (persisted in ``users``) and
the client (embedded in the cached session).  The password verifier is
deliberately not a field: it never leaves the repository layer.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from campus_connect.models.enums import IssueCategory, UserRole


class User(BaseModel):
    """Represents an authenticated identity.

    ``department`` is required for students and faculty and may be empty
    for authorities.  ``categories`` lists the issue categories an
    authority handles and is empty for everyone else.
    """

    id: str
    name: str
    email: str
    role: UserRole
    department: str = ""
    categories: list[IssueCategory] = Field(default_factory=list)
    avatar: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}
