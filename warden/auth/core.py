"""
WardenAuth - Core Types

Accounts, refresh tokens, issued token pairs and the tagged update
structs that describe every partial account mutation.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import TYPE_CHECKING, Any, Union

from warden.utils.clock import utc_now

if TYPE_CHECKING:
    from warden.risk.core import RiskAssessment
    from warden.sessions.core import Session


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _from_iso(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


# ============================================================================
# Account Model
# ============================================================================

class Role(str, Enum):
    """Account role."""
    CLIENT = "client"
    DEVELOPER = "developer"
    ADMIN = "admin"


@dataclass
class Account:
    """
    Account record as held by the credential store.

    Design:
    - ``failed_login_attempts`` only ever changes through atomic store
      operations (see ``MemoryAccountStore.register_failed_login``)
    - Soft delete: ``is_deleted`` is flipped, the record is never removed
    - Verification and reset tokens are stored as SHA-256 hashes
    - Backup codes are stored as SHA-256 hashes
    """
    id: str
    email: str
    username: str
    password_hash: str
    role: Role = Role.CLIENT
    failed_login_attempts: int = 0
    account_locked_until: datetime | None = None
    second_factor_secret: str | None = None
    second_factor_enabled: bool = False
    backup_code_hashes: list[str] = field(default_factory=list)
    email_verified: bool = False
    email_verification_token_hash: str | None = None
    email_verification_expires: datetime | None = None
    password_reset_token_hash: str | None = None
    password_reset_expires: datetime | None = None
    is_deleted: bool = False
    deleted_at: datetime | None = None
    last_login_at: datetime | None = None
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    def is_locked(self, now: datetime) -> bool:
        """Check if a lock is set and still in the future."""
        return self.account_locked_until is not None and self.account_locked_until > now

    def lock_remaining(self, now: datetime) -> timedelta:
        if not self.is_locked(now):
            return timedelta(0)
        return self.account_locked_until - now

    def is_active(self) -> bool:
        return not self.is_deleted

    def copy(self) -> Account:
        """Detached copy (stores never hand out their own records)."""
        return copy.deepcopy(self)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dict."""
        return {
            "id": self.id,
            "email": self.email,
            "username": self.username,
            "password_hash": self.password_hash,
            "role": self.role.value,
            "failed_login_attempts": self.failed_login_attempts,
            "account_locked_until": _iso(self.account_locked_until),
            "second_factor_secret": self.second_factor_secret,
            "second_factor_enabled": self.second_factor_enabled,
            "backup_code_hashes": list(self.backup_code_hashes),
            "email_verified": self.email_verified,
            "email_verification_token_hash": self.email_verification_token_hash,
            "email_verification_expires": _iso(self.email_verification_expires),
            "password_reset_token_hash": self.password_reset_token_hash,
            "password_reset_expires": _iso(self.password_reset_expires),
            "is_deleted": self.is_deleted,
            "deleted_at": _iso(self.deleted_at),
            "last_login_at": _iso(self.last_login_at),
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Account:
        """Deserialize from dict."""
        return cls(
            id=data["id"],
            email=data["email"],
            username=data["username"],
            password_hash=data["password_hash"],
            role=Role(data.get("role", Role.CLIENT.value)),
            failed_login_attempts=data.get("failed_login_attempts", 0),
            account_locked_until=_from_iso(data.get("account_locked_until")),
            second_factor_secret=data.get("second_factor_secret"),
            second_factor_enabled=data.get("second_factor_enabled", False),
            backup_code_hashes=list(data.get("backup_code_hashes", [])),
            email_verified=data.get("email_verified", False),
            email_verification_token_hash=data.get("email_verification_token_hash"),
            email_verification_expires=_from_iso(data.get("email_verification_expires")),
            password_reset_token_hash=data.get("password_reset_token_hash"),
            password_reset_expires=_from_iso(data.get("password_reset_expires")),
            is_deleted=data.get("is_deleted", False),
            deleted_at=_from_iso(data.get("deleted_at")),
            last_login_at=_from_iso(data.get("last_login_at")),
            created_at=datetime.fromisoformat(data["created_at"]),
            updated_at=datetime.fromisoformat(data["updated_at"]),
        )


# ============================================================================
# Account Updates
# ============================================================================
#
# Each struct names one kind of partial mutation. Stores apply them inside
# their per-record critical section via ``apply_to``.

@dataclass(frozen=True)
class FailedLogin:
    """Increment the failure counter; lock once the threshold is reached."""
    max_attempts: int
    lockout_duration: timedelta
    at: datetime

    def apply_to(self, account: Account) -> None:
        account.failed_login_attempts += 1
        if account.failed_login_attempts >= self.max_attempts and not account.is_locked(self.at):
            account.account_locked_until = self.at + self.lockout_duration


@dataclass(frozen=True)
class LockoutReset:
    """Successful credential check: clear counter and lock."""
    at: datetime

    def apply_to(self, account: Account) -> None:
        account.failed_login_attempts = 0
        account.account_locked_until = None
        account.last_login_at = self.at


@dataclass(frozen=True)
class LastLogin:
    at: datetime

    def apply_to(self, account: Account) -> None:
        account.last_login_at = self.at


@dataclass(frozen=True)
class SecondFactorSetup:
    """Store a pending secret and fresh backup codes (not yet enabled)."""
    secret: str
    backup_code_hashes: tuple[str, ...]

    def apply_to(self, account: Account) -> None:
        account.second_factor_secret = self.secret
        account.backup_code_hashes = list(self.backup_code_hashes)


@dataclass(frozen=True)
class SecondFactorEnabled:
    def apply_to(self, account: Account) -> None:
        account.second_factor_enabled = True


@dataclass(frozen=True)
class SecondFactorDisabled:
    def apply_to(self, account: Account) -> None:
        account.second_factor_enabled = False
        account.second_factor_secret = None
        account.backup_code_hashes = []


@dataclass(frozen=True)
class BackupCodesReplaced:
    backup_code_hashes: tuple[str, ...]

    def apply_to(self, account: Account) -> None:
        account.backup_code_hashes = list(self.backup_code_hashes)


@dataclass(frozen=True)
class PasswordChanged:
    """New password hash; also clears reset token, counter and lock."""
    password_hash: str

    def apply_to(self, account: Account) -> None:
        account.password_hash = self.password_hash
        account.password_reset_token_hash = None
        account.password_reset_expires = None
        account.failed_login_attempts = 0
        account.account_locked_until = None


@dataclass(frozen=True)
class PasswordRehashed:
    """Same password, stronger hash parameters."""
    password_hash: str

    def apply_to(self, account: Account) -> None:
        account.password_hash = self.password_hash


@dataclass(frozen=True)
class EmailVerificationIssued:
    token_hash: str
    expires_at: datetime

    def apply_to(self, account: Account) -> None:
        account.email_verification_token_hash = self.token_hash
        account.email_verification_expires = self.expires_at


@dataclass(frozen=True)
class EmailVerified:
    def apply_to(self, account: Account) -> None:
        account.email_verified = True
        account.email_verification_token_hash = None
        account.email_verification_expires = None


@dataclass(frozen=True)
class PasswordResetIssued:
    token_hash: str
    expires_at: datetime

    def apply_to(self, account: Account) -> None:
        account.password_reset_token_hash = self.token_hash
        account.password_reset_expires = self.expires_at


@dataclass(frozen=True)
class Deactivation:
    at: datetime

    def apply_to(self, account: Account) -> None:
        account.is_deleted = True
        account.deleted_at = self.at


AccountUpdate = Union[
    FailedLogin,
    LockoutReset,
    LastLogin,
    SecondFactorSetup,
    SecondFactorEnabled,
    SecondFactorDisabled,
    BackupCodesReplaced,
    PasswordChanged,
    PasswordRehashed,
    EmailVerificationIssued,
    EmailVerified,
    PasswordResetIssued,
    Deactivation,
]


# ============================================================================
# Tokens
# ============================================================================

@dataclass
class RefreshTokenRecord:
    """
    Opaque refresh token row.

    One row per issuance. A row is never extended or reused; refresh and
    logout flip ``revoked``.
    """
    token: str
    account_id: str
    expires_at: datetime
    session_token: str | None = None
    revoked: bool = False
    revoked_at: datetime | None = None
    created_at: datetime = field(default_factory=utc_now)

    def is_usable(self, now: datetime) -> bool:
        return not self.revoked and self.expires_at > now

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dict."""
        return {
            "token": self.token,
            "account_id": self.account_id,
            "expires_at": self.expires_at.isoformat(),
            "session_token": self.session_token,
            "revoked": self.revoked,
            "revoked_at": _iso(self.revoked_at),
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RefreshTokenRecord:
        """Deserialize from dict."""
        return cls(
            token=data["token"],
            account_id=data["account_id"],
            expires_at=datetime.fromisoformat(data["expires_at"]),
            session_token=data.get("session_token"),
            revoked=data.get("revoked", False),
            revoked_at=_from_iso(data.get("revoked_at")),
            created_at=datetime.fromisoformat(data["created_at"]),
        )


@dataclass(frozen=True)
class TokenPair:
    """Issued bearer access token plus opaque refresh token."""
    access_token: str
    refresh_token: str
    access_expires_at: datetime
    refresh_expires_at: datetime
    token_type: str = "Bearer"

    def to_dict(self) -> dict[str, Any]:
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "token_type": self.token_type,
            "access_expires_at": self.access_expires_at.isoformat(),
            "refresh_expires_at": self.refresh_expires_at.isoformat(),
        }


@dataclass(frozen=True)
class AccessClaims:
    """Decoded, verified access token payload."""
    sub: str
    email: str
    role: str
    session_token: str | None
    issuer: str
    audience: tuple[str, ...]
    issued_at: int
    expires_at: int
    jti: str

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> AccessClaims:
        aud = payload.get("aud", [])
        if isinstance(aud, str):
            aud = [aud]
        return cls(
            sub=payload["sub"],
            email=payload.get("email", ""),
            role=payload.get("role", ""),
            session_token=payload.get("sessionToken"),
            issuer=payload.get("iss", ""),
            audience=tuple(aud),
            issued_at=payload.get("iat", 0),
            expires_at=payload["exp"],
            jti=payload.get("jti", ""),
        )


# ============================================================================
# Outcomes
# ============================================================================

@dataclass(frozen=True)
class SessionResult:
    """Successful login: session established and tokens issued."""
    account_id: str
    session: Session
    tokens: TokenPair
    risk: RiskAssessment | None = None

    @property
    def session_token(self) -> str:
        return self.session.token
