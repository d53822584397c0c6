"""
WardenAuth - Authentication Faults

Structured error types for credential, second-factor, token and account
lifecycle failures. Public messages never reveal whether an account
exists or how many attempts remain.
"""

from __future__ import annotations

import math

from warden.faults import Fault, FaultDomain, Severity


# ============================================================================
# Credential Faults
# ============================================================================

class AUTH_INVALID_CREDENTIALS(Fault):
    """Unknown email, wrong password or deactivated account."""
    domain = FaultDomain.SECURITY
    code = "AUTH_001"
    severity = Severity.WARN
    message = "Invalid credentials"
    public_message = "Invalid email or password"
    retryable = False

    def __init__(self, email: str | None = None, **context):
        super().__init__(**context)
        if email:
            self.context["email_hash"] = self._hash_identifier(email)


class AUTH_ACCOUNT_LOCKED(Fault):
    """Account is locked after repeated failed logins."""
    domain = FaultDomain.SECURITY
    code = "AUTH_008"
    severity = Severity.WARN
    message = "Account locked"
    public_message = "Account is temporarily locked. Please try again later."
    retryable = True

    def __init__(self, retry_after: float | None = None, account_id: str | None = None, **context):
        if retry_after is not None:
            retry_after = max(1, math.ceil(retry_after))
        super().__init__(retry_after=retry_after, **context)
        if account_id:
            self.context["account_id"] = account_id


# ============================================================================
# Second Factor Faults
# ============================================================================

class AUTH_SECOND_FACTOR_REQUIRED(Fault):
    """
    Password accepted but a second factor is enabled.

    Returned (not raised) by ``AuthManager.authenticate``; the caller
    continues with ``verify_second_factor``.
    """
    domain = FaultDomain.SECURITY
    code = "AUTH_005"
    severity = Severity.INFO
    message = "Second factor required"
    public_message = "Two-factor authentication required"
    retryable = True

    def __init__(self, account_id: str | None = None, **context):
        super().__init__(**context)
        self.account_id = account_id

    @property
    def requires_second_factor(self) -> bool:
        return True


class AUTH_SECOND_FACTOR_INVALID(Fault):
    """Wrong TOTP code and no matching unused backup code."""
    domain = FaultDomain.SECURITY
    code = "AUTH_006"
    severity = Severity.WARN
    message = "Invalid second factor code"
    public_message = "Invalid two-factor code"
    retryable = True


class AUTH_SECOND_FACTOR_NOT_ENROLLED(Fault):
    domain = FaultDomain.SECURITY
    code = "AUTH_401"
    severity = Severity.WARN
    message = "Second factor not set up"
    public_message = "Two-factor authentication is not set up"
    retryable = False


class AUTH_SECOND_FACTOR_ALREADY_ENABLED(Fault):
    domain = FaultDomain.SECURITY
    code = "AUTH_402"
    severity = Severity.WARN
    message = "Second factor already enabled"
    public_message = "Two-factor authentication is already enabled"
    retryable = False


# ============================================================================
# Token Faults
# ============================================================================

class AUTH_TOKEN_INVALID(Fault):
    """Invalid or malformed access token."""
    domain = FaultDomain.SECURITY
    code = "AUTH_002"
    severity = Severity.WARN
    message = "Invalid token"
    public_message = "Invalid authentication token"
    retryable = False

    def __init__(self, reason: str | None = None, **context):
        super().__init__(**context)
        if reason:
            self.message = f"Invalid token: {reason}"
            self.context["reason"] = reason


class AUTH_TOKEN_EXPIRED(Fault):
    """Access token has expired."""
    domain = FaultDomain.SECURITY
    code = "AUTH_003"
    severity = Severity.WARN
    message = "Token expired"
    public_message = "Your session has expired. Please log in again."
    retryable = False


class AUTH_REFRESH_TOKEN_INVALID(Fault):
    """Refresh token unknown, revoked or expired."""
    domain = FaultDomain.SECURITY
    code = "AUTH_012"
    severity = Severity.WARN
    message = "Invalid refresh token"
    public_message = "Invalid refresh token"
    retryable = False


# ============================================================================
# Account Lifecycle Faults
# ============================================================================

class AUTH_PASSWORD_WEAK(Fault):
    """Password fails the password policy."""
    domain = FaultDomain.SECURITY
    code = "AUTH_101"
    severity = Severity.INFO
    message = "Password does not meet policy"
    public_message = "Password does not meet security requirements"
    retryable = True

    def __init__(self, errors: list[str] | None = None, **context):
        super().__init__(**context)
        self.errors = list(errors or [])
        self.context["errors"] = self.errors

    def to_public_dict(self) -> dict:
        result = super().to_public_dict()
        result["errors"] = self.errors
        return result


class AUTH_ACCOUNT_EXISTS(Fault):
    """Email or username already taken."""
    domain = FaultDomain.SECURITY
    code = "AUTH_106"
    severity = Severity.INFO
    message = "Account already exists"
    public_message = "An account with this email or username already exists"
    retryable = False


class AUTH_VERIFICATION_TOKEN_INVALID(Fault):
    """Email verification or password reset token unknown or expired."""
    domain = FaultDomain.SECURITY
    code = "AUTH_107"
    severity = Severity.WARN
    message = "Invalid or expired token"
    public_message = "Invalid or expired token"
    retryable = False


class AUTH_ROLE_NOT_ALLOWED(Fault):
    """Requested role cannot be self-assigned."""
    domain = FaultDomain.SECURITY
    code = "AUTH_108"
    severity = Severity.WARN
    message = "Role not allowed"
    public_message = "This role cannot be requested"
    retryable = False

    def __init__(self, role: str | None = None, **context):
        super().__init__(**context)
        if role:
            self.context["role"] = role


class AUTH_ACCOUNT_NOT_FOUND(Fault):
    """Account id-scoped operation on a missing or deactivated account."""
    domain = FaultDomain.SECURITY
    code = "AUTH_109"
    severity = Severity.WARN
    message = "Account not found"
    public_message = "Account not found"
    retryable = False

    def __init__(self, account_id: str | None = None, **context):
        super().__init__(**context)
        if account_id:
            self.context["account_id"] = account_id
