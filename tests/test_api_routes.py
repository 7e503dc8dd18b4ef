"""
Integration Tests for the /auth HTTP Endpoints
Tests for: login, OTP registration, legacy registration, /me, profile, role gate
"""
from typing import Annotated

import pytest
from fastapi import Depends
from fastapi.testclient import TestClient

from campus_connect.api import create_app
from campus_connect.api.dependencies import require_roles
from campus_connect.models.enums import UserRole
from campus_connect.models.user import User
from campus_connect.services import create_services

from conftest import STRONG_PASSWORD, latest_code

EMAIL = "asha.rao@campus.edu"


def register(http, mailer, **overrides):
    payload = {
        "name": "Ravi Menon",
        "email": "ravi.menon@campus.edu",
        "password": STRONG_PASSWORD,
        "role": "authority",
        "categories": ["hostel"],
    }
    payload.update(overrides)
    http.post("/auth/send-otp", json=payload)
    code = latest_code(mailer, payload["email"])
    response = http.post("/auth/verify-otp", json={"email": payload["email"], "code": code})
    assert response.status_code == 201
    return response.json()


class TestHealth:
    def test_health(self, http):
        response = http.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "ok"


class TestLogin:
    """Test POST /auth/login"""

    def test_login_success(self, http, registered_user):
        response = http.post(
            "/auth/login", json={"email": "Asha.Rao@Campus.edu", "password": STRONG_PASSWORD},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["id"] == registered_user["id"]
        assert data["email"] == EMAIL
        assert data["token"]
        assert "password_hash" not in data

    def test_wrong_password_and_unknown_email_look_alike(self, http, registered_user):
        wrong = http.post("/auth/login", json={"email": EMAIL, "password": "Campus2025"})
        unknown = http.post("/auth/login", json={"email": "ghost@campus.edu", "password": STRONG_PASSWORD})

        assert wrong.status_code == unknown.status_code == 401
        assert wrong.json() == unknown.json()
        assert wrong.json()["message"] == "Invalid email or password."
        assert wrong.json()["error_code"] == "invalid_credentials"

    def test_missing_password(self, http):
        response = http.post("/auth/login", json={"email": EMAIL, "password": ""})

        assert response.status_code == 400
        assert response.json()["error_code"] == "validation_error"

    def test_malformed_body(self, http):
        response = http.post("/auth/login", json={"email": EMAIL})

        assert response.status_code == 400
        body = response.json()
        assert body["success"] is False
        assert body["error_code"] == "validation_error"
        assert "password" in body["message"]


class TestSendOtp:
    """Test POST /auth/send-otp"""

    def test_sends_code_with_server_window(self, http, mailer, register_payload):
        response = http.post("/auth/send-otp", json=register_payload)

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["email"] == EMAIL
        assert data["issued_at"].startswith("2026-03-02T09:00:00")
        assert data["expires_at"].startswith("2026-03-02T09:10:00")
        assert len(latest_code(mailer, EMAIL)) == 6

    def test_no_account_before_verification(self, http, register_payload):
        http.post("/auth/send-otp", json=register_payload)

        response = http.post(
            "/auth/login", json={"email": EMAIL, "password": STRONG_PASSWORD},
        )

        assert response.status_code == 401

    def test_weak_password(self, http, register_payload):
        register_payload["password"] = "short"

        response = http.post("/auth/send-otp", json=register_payload)

        assert response.status_code == 400
        assert response.json()["error_code"] == "validation_error"

    def test_student_needs_department(self, http, register_payload):
        register_payload["department"] = ""

        response = http.post("/auth/send-otp", json=register_payload)

        assert response.status_code == 400

    def test_unknown_role(self, http, register_payload):
        register_payload["role"] = "admin"

        response = http.post("/auth/send-otp", json=register_payload)

        assert response.status_code == 400

    def test_existing_email(self, http, registered_user, register_payload):
        register_payload["email"] = "ASHA.RAO@campus.edu"

        response = http.post("/auth/send-otp", json=register_payload)

        assert response.status_code == 409
        assert response.json()["error_code"] == "email_already_exists"


class TestVerifyOtp:
    """Test POST /auth/verify-otp"""

    def test_creates_account_and_sends_welcome(self, registered_user, mailer):
        assert registered_user["email"] == EMAIL
        assert registered_user["role"] == "student"
        assert registered_user["department"] == "Computer Science"
        assert registered_user["token"]

        to_address, subject, _body = mailer.outbox[-1]
        assert to_address == EMAIL
        assert subject == "Welcome to Campus Connect"

    def test_wrong_code(self, http, mailer, register_payload):
        http.post("/auth/send-otp", json=register_payload)
        code = latest_code(mailer, EMAIL)
        wrong = "000000" if code != "000000" else "111111"

        response = http.post("/auth/verify-otp", json={"email": EMAIL, "code": wrong})

        assert response.status_code == 400
        assert response.json()["error_code"] == "otp_mismatch"

    def test_expired_code(self, http, mailer, register_payload, clock):
        http.post("/auth/send-otp", json=register_payload)
        code = latest_code(mailer, EMAIL)
        clock.advance(minutes=11)

        response = http.post("/auth/verify-otp", json={"email": EMAIL, "code": code})

        assert response.status_code == 400
        assert response.json()["error_code"] == "otp_expired"

    def test_no_pending_challenge(self, http):
        response = http.post("/auth/verify-otp", json={"email": EMAIL, "code": "123456"})

        assert response.status_code == 400
        assert response.json()["error_code"] == "otp_not_found"

    def test_code_must_be_six_digits(self, http):
        response = http.post("/auth/verify-otp", json={"email": EMAIL, "code": "12ab"})

        assert response.status_code == 400
        assert response.json()["error_code"] == "validation_error"

    def test_code_cannot_be_reused(self, http, mailer, register_payload):
        http.post("/auth/send-otp", json=register_payload)
        code = latest_code(mailer, EMAIL)
        http.post("/auth/verify-otp", json={"email": EMAIL, "code": code})

        response = http.post("/auth/verify-otp", json={"email": EMAIL, "code": code})

        assert response.status_code == 400
        assert response.json()["error_code"] == "otp_not_found"


class TestResendOtp:
    """Test POST /auth/resend-otp"""

    def test_resend_keeps_pending_details(self, http, mailer, register_payload):
        http.post("/auth/send-otp", json=register_payload)

        response = http.post("/auth/resend-otp", json={"name": "Asha Rao", "email": EMAIL})
        assert response.status_code == 200

        code = latest_code(mailer, EMAIL)
        verified = http.post("/auth/verify-otp", json={"email": EMAIL, "code": code})
        assert verified.status_code == 201
        assert verified.json()["department"] == "Computer Science"

    def test_resend_with_full_details(self, http, mailer, register_payload):
        http.post("/auth/send-otp", json=register_payload)
        register_payload["department"] = "Physics"

        http.post("/auth/resend-otp", json=register_payload)
        code = latest_code(mailer, EMAIL)
        verified = http.post("/auth/verify-otp", json={"email": EMAIL, "code": code})

        assert verified.json()["department"] == "Physics"

    def test_resend_without_pending(self, http):
        response = http.post("/auth/resend-otp", json={"name": "Asha Rao", "email": EMAIL})

        assert response.status_code == 400
        assert response.json()["error_code"] == "otp_not_found"

    def test_resend_restarts_window(self, http, register_payload, clock):
        http.post("/auth/send-otp", json=register_payload)
        clock.advance(minutes=4)

        data = http.post("/auth/resend-otp", json={"name": "Asha Rao", "email": EMAIL}).json()

        assert data["issued_at"].startswith("2026-03-02T09:04:00")
        assert data["expires_at"].startswith("2026-03-02T09:14:00")


class TestLegacyRegister:
    """Test the deprecated POST /auth/register"""

    def test_disabled_by_default(self, http, register_payload):
        response = http.post("/auth/register", json=register_payload)

        assert response.status_code == 410
        assert response.json()["error_code"] == "registration_disabled"

    def test_enabled_creates_account(self, server_db, config, mailer, clock, register_payload):
        legacy = config.model_copy(update={"LEGACY_REGISTRATION_ENABLED": True})
        services = create_services(db=server_db, config=legacy, email_sender=mailer, clock=clock)

        with TestClient(create_app(services)) as http:
            response = http.post("/auth/register", json=register_payload)

        assert response.status_code == 201
        assert response.json()["email"] == EMAIL
        assert response.json()["token"]


class TestMe:
    """Test GET /auth/me"""

    def test_returns_principal(self, http, auth_headers, registered_user):
        response = http.get("/auth/me", headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["id"] == registered_user["id"]
        assert "token" not in response.json()

    def test_no_token(self, http):
        response = http.get("/auth/me")

        assert response.status_code == 401
        assert response.json()["message"] == "Not authorized, no token."

    def test_invalid_token(self, http):
        response = http.get("/auth/me", headers={"Authorization": "Bearer not-a-token"})

        assert response.status_code == 401
        assert response.json()["error_code"] == "session_expired"

    def test_expired_token(self, http, auth_headers, clock):
        clock.advance(days=8)

        response = http.get("/auth/me", headers=auth_headers)

        assert response.status_code == 401
        assert response.json()["message"] == "Not authorized, token expired."


class TestProfile:
    """Test PUT /auth/profile"""

    def test_update_returns_fresh_token(self, http, auth_headers, registered_user):
        response = http.put("/auth/profile", json={"name": "Asha R."}, headers=auth_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["name"] == "Asha R."
        assert data["department"] == "Computer Science"
        assert data["token"]

        me = http.get("/auth/me", headers={"Authorization": f"Bearer {data['token']}"})
        assert me.json()["name"] == "Asha R."

    def test_old_token_still_valid_after_update(self, http, auth_headers):
        http.put("/auth/profile", json={"department": "Physics"}, headers=auth_headers)

        assert http.get("/auth/me", headers=auth_headers).status_code == 200

    def test_password_change(self, http, auth_headers):
        http.put("/auth/profile", json={"password": "Library2026"}, headers=auth_headers)

        old = http.post("/auth/login", json={"email": EMAIL, "password": STRONG_PASSWORD})
        new = http.post("/auth/login", json={"email": EMAIL, "password": "Library2026"})

        assert old.status_code == 401
        assert new.status_code == 200

    def test_weak_password_rejected(self, http, auth_headers):
        response = http.put("/auth/profile", json={"password": "weak"}, headers=auth_headers)

        assert response.status_code == 400

    @pytest.mark.parametrize("department", ["", "   "])
    def test_student_cannot_clear_department(self, http, auth_headers, department):
        response = http.put(
            "/auth/profile", json={"department": department}, headers=auth_headers,
        )

        assert response.status_code == 400
        assert response.json()["error_code"] == "validation_error"
        me = http.get("/auth/me", headers=auth_headers).json()
        assert me["department"] == "Computer Science"

    def test_authority_may_leave_department_blank(self, http, mailer):
        ravi = register(http, mailer)

        response = http.put(
            "/auth/profile",
            json={"department": ""},
            headers={"Authorization": f"Bearer {ravi['token']}"},
        )

        assert response.status_code == 200
        assert response.json()["department"] == ""

    def test_duplicate_email(self, http, mailer, auth_headers):
        register(http, mailer)

        response = http.put(
            "/auth/profile", json={"email": "Ravi.Menon@campus.edu"}, headers=auth_headers,
        )

        assert response.status_code == 409
        assert response.json()["error_code"] == "email_already_exists"

    def test_requires_token(self, http):
        assert http.put("/auth/profile", json={"name": "Nobody"}).status_code == 401


class TestRoleGate:
    """Test the require_roles dependency"""

    @pytest.fixture
    def gated(self, services):
        app = create_app(services)

        @app.get("/queue")
        def queue(user: Annotated[User, Depends(require_roles(UserRole.AUTHORITY))]):
            return {"id": user.id}

        with TestClient(app) as http:
            yield http

    def test_matching_role(self, gated, mailer):
        authority = register(gated, mailer)

        response = gated.get("/queue", headers={"Authorization": f"Bearer {authority['token']}"})

        assert response.status_code == 200
        assert response.json()["id"] == authority["id"]

    def test_other_role_forbidden(self, gated, mailer):
        student = register(
            gated, mailer, name="Asha Rao", email=EMAIL, role="student",
            department="Computer Science", categories=[],
        )

        response = gated.get("/queue", headers={"Authorization": f"Bearer {student['token']}"})

        assert response.status_code == 403
        assert response.json()["error_code"] == "forbidden"

    def test_anonymous(self, gated):
        assert gated.get("/queue").status_code == 401
