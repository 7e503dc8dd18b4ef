"""
Campus Connect - Test Configuration and Fixtures
"""
import os
import re
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Generator

import pytest

# Set testing environment before any campus_connect import reads it
os.environ["LOG_FILE"] = ""
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["JWT_SECRET_KEY"] = "test-jwt-secret-key-for-testing"
os.environ["OTP_SECRET_KEY"] = "test-otp-secret-key-for-testing"
os.environ["MAIL_BACKEND"] = "console"

from fastapi.testclient import TestClient

from campus_connect.api import create_app
from campus_connect.config import AppConfig
from campus_connect.database import DatabaseManager
from campus_connect.logger import StructuredLogger
from campus_connect.models.enums import IssueCategory, UserRole
from campus_connect.models.registration import RegistrationData
from campus_connect.schema import initialize_client_schema, initialize_server_schema
from campus_connect.services import (
    ClientServiceContainer,
    ServerServiceContainer,
    create_client_services,
    create_services,
)
from campus_connect.services.email_service import ConsoleEmailService
from campus_connect.services.session_cache import SessionCacheService

STRONG_PASSWORD = "Campus2024"

_CODE_RE = re.compile(r"^\s+(\d{6})\s*$", re.MULTILINE)


class FakeClock:
    """Settable UTC clock shared by every time-dependent service."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> None:
        self.now = self.now + timedelta(**delta)


def latest_code(mailer: ConsoleEmailService, email: str) -> str:
    """Return the most recent verification code mailed to *email*."""
    for to_address, _subject, body in reversed(mailer.outbox):
        if to_address == email:
            match = _CODE_RE.search(body)
            if match:
                return match.group(1)
    raise AssertionError(f"No verification code was sent to {email}")


@pytest.fixture
def logger() -> StructuredLogger:
    return StructuredLogger(name="tests", log_file="")


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def config(tmp_path: Path) -> AppConfig:
    """Fast-hashing configuration isolated to the test's temp dir"""
    return AppConfig(
        BCRYPT_ROUNDS=4,
        SESSION_KDF_ITERATIONS=1_000,
        SESSION_SALT_PATH=str(tmp_path / "session_salt"),
        DATABASE_PATH=str(tmp_path / "server.db"),
        CLIENT_DATABASE_PATH=str(tmp_path / "client.db"),
    )


@pytest.fixture
def server_db(logger: StructuredLogger) -> Generator[DatabaseManager, None, None]:
    db = DatabaseManager(sqlite_path=":memory:", logger=logger)
    initialize_server_schema(db.sqlite, logger)
    yield db
    db.close()


@pytest.fixture
def client_db(logger: StructuredLogger) -> Generator[DatabaseManager, None, None]:
    db = DatabaseManager(sqlite_path=":memory:", logger=logger)
    initialize_client_schema(db.sqlite, logger)
    yield db
    db.close()


@pytest.fixture
def mailer(logger: StructuredLogger) -> ConsoleEmailService:
    return ConsoleEmailService(logger=logger)


@pytest.fixture
def services(
    server_db: DatabaseManager,
    config: AppConfig,
    mailer: ConsoleEmailService,
    clock: FakeClock,
) -> ServerServiceContainer:
    return create_services(db=server_db, config=config, email_sender=mailer, clock=clock)


@pytest.fixture
def http(services: ServerServiceContainer) -> Generator[TestClient, None, None]:
    """FastAPI test client over the in-memory backend"""
    with TestClient(create_app(services)) as test_client:
        yield test_client


@pytest.fixture
def session_cache(
    client_db: DatabaseManager,
    logger: StructuredLogger,
    tmp_path: Path,
    clock: FakeClock,
) -> SessionCacheService:
    return SessionCacheService(
        db=client_db,
        logger=logger,
        max_age_days=7,
        salt_path=tmp_path / "session_salt",
        kdf_iterations=1_000,
        clock=clock,
    )


@pytest.fixture
def client(
    client_db: DatabaseManager,
    config: AppConfig,
    http: TestClient,
    session_cache: SessionCacheService,
) -> ClientServiceContainer:
    """Client auth stack talking to the test backend"""
    return create_client_services(
        db=client_db,
        config=config,
        http_client=http,
        session_cache=session_cache,
    )


@pytest.fixture
def student_form() -> RegistrationData:
    return RegistrationData(
        name="Asha Rao",
        email="Asha.Rao@Campus.edu",
        password=STRONG_PASSWORD,
        confirm_password=STRONG_PASSWORD,
        role=UserRole.STUDENT,
        department="Computer Science",
    )


@pytest.fixture
def authority_form() -> RegistrationData:
    return RegistrationData(
        name="Ravi Menon",
        email="ravi.menon@campus.edu",
        password=STRONG_PASSWORD,
        confirm_password=STRONG_PASSWORD,
        role=UserRole.AUTHORITY,
        categories=[IssueCategory.HOSTEL, IssueCategory.CANTEEN],
    )


@pytest.fixture
def register_payload() -> dict[str, object]:
    return {
        "name": "Asha Rao",
        "email": "asha.rao@campus.edu",
        "password": STRONG_PASSWORD,
        "role": "student",
        "department": "Computer Science",
    }


@pytest.fixture
def registered_user(
    http: TestClient,
    mailer: ConsoleEmailService,
    register_payload: dict[str, object],
) -> dict[str, object]:
    """Register through the OTP flow and return the verify-otp body"""
    http.post("/auth/send-otp", json=register_payload)
    code = latest_code(mailer, "asha.rao@campus.edu")
    response = http.post(
        "/auth/verify-otp", json={"email": "asha.rao@campus.edu", "code": code},
    )
    assert response.status_code == 201
    return response.json()


@pytest.fixture
def auth_headers(registered_user: dict[str, object]) -> dict[str, str]:
    return {"Authorization": f"Bearer {registered_user['token']}"}
