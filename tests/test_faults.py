"""
Test 1: Fault System (faults/)

Tests Fault construction, domain defaults, public serialization and the
auth/session fault types.
"""

import pytest

from warden.faults import ConfigInvalidFault, Fault, FaultDomain, Severity
from warden.auth.faults import (
    AUTH_ACCOUNT_LOCKED,
    AUTH_INVALID_CREDENTIALS,
    AUTH_PASSWORD_WEAK,
    AUTH_SECOND_FACTOR_REQUIRED,
    AUTH_TOKEN_INVALID,
)
from warden.sessions.faults import SessionLimitExceededFault, SessionNotFoundFault


# ============================================================================
# Fault Base
# ============================================================================

class TestFault:

    def test_explicit_construction(self):
        fault = Fault(code="X_1", message="broken", domain=FaultDomain.IO, path="/tmp")
        assert fault.code == "X_1"
        assert fault.context == {"path": "/tmp"}
        assert str(fault) == "[X_1] broken"

    def test_missing_fields_rejected(self):
        with pytest.raises(TypeError):
            Fault(code="X_1")

    def test_domain_defaults(self):
        fault = Fault(code="X_2", message="m", domain=FaultDomain.IO)
        assert fault.severity == Severity.ERROR
        assert fault.retryable is True

        config_fault = Fault(code="X_3", message="m", domain=FaultDomain.CONFIG)
        assert config_fault.severity == Severity.FATAL
        assert config_fault.retryable is False

    def test_public_message_falls_back_to_message(self):
        fault = Fault(code="X_4", message="internal", domain=FaultDomain.SESSION)
        assert fault.to_public_dict() == {"code": "X_4", "message": "internal"}

    def test_hash_identifier_is_normalized(self):
        assert Fault._hash_identifier(" Alice@Example.com ") == Fault._hash_identifier("alice@example.com")
        assert Fault._hash_identifier("a@x.com").startswith("sha256:")

    def test_domain_equality(self):
        assert FaultDomain.SECURITY == FaultDomain("security")
        assert FaultDomain.SECURITY == "security"
        assert hash(FaultDomain.SECURITY) == hash(FaultDomain("security"))

    def test_config_invalid(self):
        fault = ConfigInvalidFault("session.session_ttl", "duration must be positive")
        assert fault.code == "CONFIG_INVALID"
        assert fault.context["key"] == "session.session_ttl"
        assert "duration must be positive" in fault.message


# ============================================================================
# Auth Faults
# ============================================================================

class TestAuthFaults:

    def test_invalid_credentials_hides_email(self):
        fault = AUTH_INVALID_CREDENTIALS(email="alice@example.com")
        assert "alice" not in repr(fault.context)
        assert fault.context["email_hash"].startswith("sha256:")
        assert fault.to_public_dict()["message"] == "Invalid email or password"

    def test_account_locked_rounds_retry_after_up(self):
        fault = AUTH_ACCOUNT_LOCKED(retry_after=12.2, account_id="acc_1")
        assert fault.retry_after == 13
        assert fault.retryable is True
        assert fault.to_public_dict()["retry_after"] == 13

    def test_account_locked_minimum_retry_after(self):
        assert AUTH_ACCOUNT_LOCKED(retry_after=0.01).retry_after == 1

    def test_second_factor_required_is_a_value(self):
        outcome = AUTH_SECOND_FACTOR_REQUIRED(account_id="acc_1")
        assert outcome.requires_second_factor
        assert outcome.account_id == "acc_1"
        assert outcome.severity == Severity.INFO

    def test_token_invalid_reason(self):
        fault = AUTH_TOKEN_INVALID(reason="bad signature")
        assert fault.message == "Invalid token: bad signature"
        assert fault.to_public_dict()["message"] == "Invalid authentication token"

    def test_password_weak_lists_errors(self):
        fault = AUTH_PASSWORD_WEAK(errors=["too short"])
        assert fault.to_public_dict()["errors"] == ["too short"]


# ============================================================================
# Session Faults
# ============================================================================

class TestSessionFaults:

    def test_not_found_hashes_token(self):
        fault = SessionNotFoundFault(session_token="sess_secret")
        assert "sess_secret" not in repr(fault.context)
        assert fault.domain == FaultDomain.SESSION

    def test_limit_exceeded_message(self):
        fault = SessionLimitExceededFault(account_id="acc_1", active_count=4, max_sessions=4)
        assert fault.code == "SESSION_LIMIT_EXCEEDED"
        assert fault.message == "Maximum active sessions reached (4/4)"
        assert fault.context["max_sessions"] == 4
