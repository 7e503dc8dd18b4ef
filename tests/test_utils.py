"""
Unit Tests for Utilities
Tests for: password verifiers, email masking, audit events
"""
import pytest

from campus_connect.utils.audit import log_audit_event
from campus_connect.utils.general import mask_email
from campus_connect.utils.passwords import PasswordHasher


@pytest.fixture
def hasher():
    return PasswordHasher(rounds=4)


class TestPasswordHasher:
    """Test bcrypt verifiers"""

    def test_hash_and_verify(self, hasher):
        stored = hasher.hash("Campus2024")

        assert stored.startswith("$2b$04$")
        assert "Campus2024" not in stored
        assert hasher.verify("Campus2024", stored)
        assert not hasher.verify("Campus2025", stored)

    def test_salted(self, hasher):
        assert hasher.hash("Campus2024") != hasher.hash("Campus2024")

    def test_embedded_cost_is_honoured(self, hasher):
        stored = hasher.hash("Campus2024")

        assert PasswordHasher(rounds=5).verify("Campus2024", stored)

    @pytest.mark.parametrize("stored", ["", "plain", "$2b$04$tooshort"])
    def test_malformed_never_matches(self, hasher, stored):
        assert not hasher.verify("Campus2024", stored)


class TestMaskEmail:
    def test_masks_local_part(self):
        assert mask_email("asha.rao@campus.edu") == "a***@campus.edu"

    def test_not_an_email(self):
        assert mask_email("asha") == "***"


class TestAudit:
    def test_event_is_returned(self, logger):
        event = log_audit_event(
            logger=logger,
            action="LOGIN",
            entity_type="User",
            entity_id="u-1",
            user_id="u-1",
            details={"role": "student"},
        )

        assert event.action == "LOGIN"
        assert event.details == {"role": "student"}
        assert event.timestamp.endswith("+00:00")
