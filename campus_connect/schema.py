"""
Centralized SQLite Schema Initialization.

Defines the canonical DDL for both databases and exposes one idempotent
entry-point per side of the network boundary:

- :func:`initialize_server_schema` creates ``users`` and
  ``otp_challenges`` in the backend database.
- :func:`initialize_client_schema` creates ``encrypted_sessions`` in the
  client database.

A single-row ``schema_version`` table records the applied version so
later changes can be rolled forward through :data:`_MIGRATIONS`.

Usage::

    from campus_connect.schema import initialize_server_schema

    initialize_server_schema(db.sqlite, StructuredLogger(name="schema"))
"""

from __future__ import annotations

import sqlite3
from collections.abc import Callable

from campus_connect.logger import StructuredLogger

__all__ = [
    "CURRENT_SCHEMA_VERSION",
    "initialize_client_schema",
    "initialize_server_schema",
]

CURRENT_SCHEMA_VERSION: int = 1

_VERSION_TABLE: str = """
    CREATE TABLE IF NOT EXISTS schema_version (
        id INTEGER PRIMARY KEY CHECK (id = 1),
        version INTEGER NOT NULL,
        applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
"""

_SERVER_TABLES: list[str] = [
    # -- principals ------------------------------------------------------------
    """
    CREATE TABLE IF NOT EXISTS users (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        email TEXT NOT NULL UNIQUE COLLATE NOCASE,
        password_hash TEXT NOT NULL,
        role TEXT NOT NULL
             CHECK (role IN ('student', 'faculty', 'authority')),
        department TEXT NOT NULL DEFAULT '',
        categories TEXT NOT NULL DEFAULT '[]',
        avatar TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    # -- pending OTP challenges, one per email ---------------------------------
    """
    CREATE TABLE IF NOT EXISTS otp_challenges (
        email TEXT PRIMARY KEY COLLATE NOCASE,
        code_hash TEXT NOT NULL,
        issued_at TEXT NOT NULL,
        expires_at TEXT NOT NULL,
        attempts INTEGER NOT NULL DEFAULT 0,
        name TEXT NOT NULL DEFAULT '',
        registration TEXT
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_otp_challenges_expires_at ON otp_challenges(expires_at)",
]

_CLIENT_TABLES: list[str] = [
    # -- encrypted single-row session (token + principal snapshot) -------------
    """
    CREATE TABLE IF NOT EXISTS encrypted_sessions (
        id INTEGER PRIMARY KEY CHECK (id = 1),
        encrypted_payload BLOB NOT NULL,
        nonce BLOB NOT NULL,
        tag BLOB NOT NULL,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
]

_MIGRATIONS: dict[int, Callable[[sqlite3.Connection, StructuredLogger], None]] = {}
"""Maps a source version ``N`` to the function upgrading ``N`` to ``N + 1``."""


# ---------------------------------------------------------------------------
# Private helpers
# ---------------------------------------------------------------------------

def _get_schema_version(conn: sqlite3.Connection) -> int:
    """Return the current schema version, or ``0`` for a fresh database."""
    row = conn.execute("SELECT version FROM schema_version WHERE id = 1").fetchone()
    return int(row[0]) if row is not None else 0


def _set_schema_version(conn: sqlite3.Connection, version: int) -> None:
    """Upsert the version tracker.  Does **not** commit."""
    conn.execute(
        """
        INSERT INTO schema_version (id, version) VALUES (1, ?)
        ON CONFLICT(id) DO UPDATE SET version = excluded.version,
                                      applied_at = CURRENT_TIMESTAMP
        """,
        (version,),
    )


def _initialize(
    conn: sqlite3.Connection,
    logger: StructuredLogger,
    tables: list[str],
    label: str,
) -> None:
    conn.execute(_VERSION_TABLE)
    conn.commit()

    current = _get_schema_version(conn)
    if current >= CURRENT_SCHEMA_VERSION:
        # Tables are still verified so a half-created database self-heals.
        for ddl in tables:
            conn.execute(ddl)
        conn.commit()
        logger.debug("%s schema already at version %d.", label, current)
        return

    try:
        if current == 0:
            for ddl in tables:
                conn.execute(ddl)
        else:
            for version in range(current, CURRENT_SCHEMA_VERSION):
                migrate = _MIGRATIONS.get(version)
                if migrate is not None:
                    migrate(conn, logger)
        _set_schema_version(conn, CURRENT_SCHEMA_VERSION)
        conn.commit()
    except sqlite3.Error:
        conn.rollback()
        logger.error("%s schema initialisation failed; rolled back.", label, exc_info=True)
        raise

    logger.info(
        "%s schema initialised at version %d (%d statements).",
        label,
        CURRENT_SCHEMA_VERSION,
        len(tables),
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def initialize_server_schema(conn: sqlite3.Connection, logger: StructuredLogger) -> None:
    """Create the backend tables idempotently."""
    _initialize(conn, logger, _SERVER_TABLES, "Server")


def initialize_client_schema(conn: sqlite3.Connection, logger: StructuredLogger) -> None:
    """Create the client session-cache table idempotently."""
    _initialize(conn, logger, _CLIENT_TABLES, "Client")
