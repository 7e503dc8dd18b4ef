"""
Campus Connect Identity Backend Entry Point.

Bootstraps the dependency graph via constructor injection, initialises
the SQLite schema, and serves the FastAPI application with uvicorn.
Every subsystem is wired here; no module-level globals.

Usage::

    python main.py
"""

from __future__ import annotations

import atexit
import sys
from pathlib import Path

import uvicorn

from campus_connect.api import create_app
from campus_connect.config import get_config
from campus_connect.database import DatabaseManager
from campus_connect.logger import StructuredLogger, get_logger
from campus_connect.schema import initialize_server_schema
from campus_connect.services import create_services


def main() -> None:
    """Application entry point: wire dependencies and serve HTTP."""
    logger: StructuredLogger = get_logger("main")
    logger.info("Starting Campus Connect identity backend...")

    # ------------------------------------------------------------------
    # 1. Configuration (from .env / environment variables)
    # ------------------------------------------------------------------
    config = get_config()

    # ------------------------------------------------------------------
    # 2. Database Manager
    # ------------------------------------------------------------------
    db = DatabaseManager(
        sqlite_path=Path(config.DATABASE_PATH),
        logger=StructuredLogger(name="database"),
    )

    # Ensure db.close() runs even on unclean exit; close() is idempotent.
    atexit.register(db.close)

    # ------------------------------------------------------------------
    # 3. SQLite Schema Initialization (idempotent)
    # ------------------------------------------------------------------
    initialize_server_schema(db.sqlite, StructuredLogger(name="schema"))

    # ------------------------------------------------------------------
    # 4. Service Container (repositories + services, single composition root)
    # ------------------------------------------------------------------
    services = create_services(db=db, config=config)

    # ------------------------------------------------------------------
    # 5. Serve (blocks until shutdown)
    # ------------------------------------------------------------------
    app = create_app(services)
    logger.info("Listening on %s:%d", config.SERVER_HOST, config.SERVER_PORT)
    try:
        uvicorn.run(
            app,
            host=config.SERVER_HOST,
            port=config.SERVER_PORT,
            log_level=config.LOG_LEVEL.lower(),
        )
    finally:
        db.close()
        logger.info("Campus Connect identity backend shut down.")


if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        pass
    except Exception as exc:
        sys.stderr.write(f"FATAL: {type(exc).__name__}: {exc}\n")
        sys.exit(1)
