"""
Base Repository.

Shared infrastructure for the backend repositories:
- DatabaseManager reference and its write lock
- Logger reference
- Batch-aware commit helper
"""

from __future__ import annotations

import sqlite3

from campus_connect.database import DatabaseManager
from campus_connect.logger import StructuredLogger


class BaseRepository:
    """Base class for all repositories. Receives dependencies via __init__."""

    TABLE: str = ""

    def __init__(self, db: DatabaseManager, logger: StructuredLogger) -> None:
        self._db = db
        self._logger = logger

    @property
    def sqlite(self) -> sqlite3.Connection:
        """Returns the SQLite connection."""
        return self._db.sqlite

    def _commit(self) -> None:
        """Commit unless a :meth:`DatabaseManager.batch_write` is active.

        Repository code calls ``self._commit()`` instead of
        ``self.sqlite.commit()`` so batch writes work transparently.
        """
        if not self._db.in_batch:
            self.sqlite.commit()
