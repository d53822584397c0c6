"""
WardenAuth - Authentication core.

Credential verification with lockout, second factor, stateless access
tokens with rotating refresh tokens, and the account lifecycle.

Core exports:
- AuthManager: login / 2FA / refresh / logout orchestration
- AccountService: signup, verification, reset, 2FA enrollment, deactivation
- Account, Role: account records
- PasswordHasher, PasswordPolicy: Argon2id hashing
- SecondFactorVerifier, TOTPProvider: TOTP and backup codes
- TokenIssuer, KeyRing, KeyDescriptor: token signing and refresh tokens
- AccountStore, RefreshTokenStore (+ memory implementations)
"""

from .accounts import AccountService, SecondFactorEnrollment, hash_token
from .core import (
    AccessClaims,
    Account,
    AccountUpdate,
    BackupCodesReplaced,
    Deactivation,
    EmailVerificationIssued,
    EmailVerified,
    FailedLogin,
    LastLogin,
    LockoutReset,
    PasswordChanged,
    PasswordRehashed,
    PasswordResetIssued,
    RefreshTokenRecord,
    Role,
    SecondFactorDisabled,
    SecondFactorEnabled,
    SecondFactorSetup,
    SessionResult,
    TokenPair,
)
from .faults import (
    AUTH_ACCOUNT_EXISTS,
    AUTH_ACCOUNT_LOCKED,
    AUTH_ACCOUNT_NOT_FOUND,
    AUTH_INVALID_CREDENTIALS,
    AUTH_PASSWORD_WEAK,
    AUTH_REFRESH_TOKEN_INVALID,
    AUTH_ROLE_NOT_ALLOWED,
    AUTH_SECOND_FACTOR_ALREADY_ENABLED,
    AUTH_SECOND_FACTOR_INVALID,
    AUTH_SECOND_FACTOR_NOT_ENROLLED,
    AUTH_SECOND_FACTOR_REQUIRED,
    AUTH_TOKEN_EXPIRED,
    AUTH_TOKEN_INVALID,
    AUTH_VERIFICATION_TOKEN_INVALID,
)
from .hashing import PasswordHasher, PasswordPolicy
from .manager import AuthManager, subject_for_email
from .mfa import SecondFactorVerifier, TOTPProvider
from .stores import (
    AccountStore,
    MemoryAccountStore,
    MemoryRefreshTokenStore,
    RefreshTokenStore,
)
from .tokens import KeyAlgorithm, KeyDescriptor, KeyRing, KeyStatus, TokenIssuer


__all__ = [
    # Orchestration
    "AuthManager",
    "AccountService",
    "SecondFactorEnrollment",
    "hash_token",
    "subject_for_email",
    # Core
    "AccessClaims",
    "Account",
    "AccountUpdate",
    "RefreshTokenRecord",
    "Role",
    "SessionResult",
    "TokenPair",
    # Updates
    "BackupCodesReplaced",
    "Deactivation",
    "EmailVerificationIssued",
    "EmailVerified",
    "FailedLogin",
    "LastLogin",
    "LockoutReset",
    "PasswordChanged",
    "PasswordRehashed",
    "PasswordResetIssued",
    "SecondFactorDisabled",
    "SecondFactorEnabled",
    "SecondFactorSetup",
    # Faults
    "AUTH_ACCOUNT_EXISTS",
    "AUTH_ACCOUNT_LOCKED",
    "AUTH_ACCOUNT_NOT_FOUND",
    "AUTH_INVALID_CREDENTIALS",
    "AUTH_PASSWORD_WEAK",
    "AUTH_REFRESH_TOKEN_INVALID",
    "AUTH_ROLE_NOT_ALLOWED",
    "AUTH_SECOND_FACTOR_ALREADY_ENABLED",
    "AUTH_SECOND_FACTOR_INVALID",
    "AUTH_SECOND_FACTOR_NOT_ENROLLED",
    "AUTH_SECOND_FACTOR_REQUIRED",
    "AUTH_TOKEN_EXPIRED",
    "AUTH_TOKEN_INVALID",
    "AUTH_VERIFICATION_TOKEN_INVALID",
    # Hashing
    "PasswordHasher",
    "PasswordPolicy",
    # Second factor
    "SecondFactorVerifier",
    "TOTPProvider",
    # Stores
    "AccountStore",
    "MemoryAccountStore",
    "MemoryRefreshTokenStore",
    "RefreshTokenStore",
    # Tokens
    "KeyAlgorithm",
    "KeyDescriptor",
    "KeyRing",
    "KeyStatus",
    "TokenIssuer",
]
