"""
Tests for core security utilities.

Tests:
- Password hashing and verification
- JWT token creation and validation
- Logout revocation
- PII masking in audit logs
"""

import json
import logging
from datetime import timedelta

import jwt as pyjwt
import pytest

from core.config import settings
from core.security import (
    AuditAction,
    ResourceType,
    create_access_token,
    hash_password,
    is_token_revoked,
    log_audit_event,
    mask_pii,
    revoke_token,
    verify_jwt_token,
    verify_password,
)


class TestPasswordHashing:
    """Test password hashing and verification."""

    def test_hash_password(self):
        hashed = hash_password("SecurePassword123!")

        assert isinstance(hashed, str)
        assert hashed != "SecurePassword123!"
        assert hashed.startswith("$2b$")

    def test_hash_password_different_each_time(self):
        """Same password, different salts."""
        assert hash_password("SecurePassword123!") != hash_password("SecurePassword123!")

    def test_verify_password_round_trip(self):
        hashed = hash_password("SecurePassword123!")

        assert verify_password("SecurePassword123!", hashed) is True
        assert verify_password("WrongPassword", hashed) is False

    @pytest.mark.parametrize("password,password_hash", [
        ("", "$2b$12$abcdefghijklmnopqrstuv"),
        ("secret", ""),
        ("secret", "not-a-bcrypt-hash"),
    ])
    def test_verify_password_bad_input(self, password, password_hash):
        """Empty values and malformed hashes never verify."""
        assert verify_password(password, password_hash) is False


class TestJWT:
    """Test access token issuance and validation."""

    def test_create_and_verify_token(self):
        token = create_access_token(42, 7, "recruiter")

        payload = verify_jwt_token(token, settings.jwt_secret_key, settings.jwt_algorithm)

        assert payload.user_id == 42
        assert payload.company_id == 7
        assert payload.role == "recruiter"
        assert payload.jti

    def test_tokens_have_unique_ids(self):
        first = verify_jwt_token(create_access_token(1, 1, "admin"), settings.jwt_secret_key)
        second = verify_jwt_token(create_access_token(1, 1, "admin"), settings.jwt_secret_key)

        assert first.jti != second.jti

    def test_expired_token_rejected(self):
        token = create_access_token(1, 1, "admin", expires_delta=timedelta(seconds=-10))

        with pytest.raises(pyjwt.ExpiredSignatureError):
            verify_jwt_token(token, settings.jwt_secret_key)

    def test_wrong_secret_rejected(self):
        token = create_access_token(1, 1, "admin")

        with pytest.raises(pyjwt.InvalidTokenError):
            verify_jwt_token(token, "another-secret-that-is-long-enough-for-hs256")

    def test_missing_claims_rejected(self):
        token = pyjwt.encode({"sub": "1"}, settings.jwt_secret_key, algorithm="HS256")

        with pytest.raises(pyjwt.InvalidTokenError):
            verify_jwt_token(token, settings.jwt_secret_key)


class TestRevocation:
    """Logout revokes a token until it expires."""

    def test_revoke_token(self):
        token = create_access_token(1, 1, "admin")
        payload = verify_jwt_token(token, settings.jwt_secret_key)

        assert is_token_revoked(payload.jti) is False
        assert revoke_token(token) is True
        assert is_token_revoked(payload.jti) is True

    def test_revoke_garbage_token(self):
        assert revoke_token("not.a.token") is False


class TestPIIMasking:
    """Audit details never carry raw personal data."""

    def test_mask_pii_fields(self):
        masked = mask_pii({
            "email": "jane@example.com",
            "expected_ctc": "30 LPA",
            "job_id": 12,
        })

        assert masked["email"] == "j***[16]"
        assert masked["expected_ctc"] == "3***[6]"
        assert masked["job_id"] == 12

    def test_mask_pii_nested(self):
        masked = mask_pii({"candidates": [{"name": "Jane", "source": "LinkedIn"}]})

        assert masked["candidates"][0]["name"] == "J***[4]"
        assert masked["candidates"][0]["source"] == "LinkedIn"

    def test_mask_pii_empty_value(self):
        assert mask_pii({"phone": None})["phone"] == "[MASKED]"

    def test_log_audit_event(self, caplog):
        with caplog.at_level(logging.INFO, logger="security.audit"):
            log_audit_event(
                AuditAction.CREATE, ResourceType.CANDIDATE, 5,
                user_id=1, company_id=2, details={"email": "jane@example.com"},
            )

        event = json.loads(caplog.records[-1].getMessage())
        assert event["event_type"] == "AUDIT"
        assert event["action"] == "CREATE"
        assert event["resource_type"] == "CANDIDATE"
        assert event["resource_id"] == "5"
        assert "jane@example.com" not in caplog.text
