"""
WardenSessions - Core types.

Defines fundamental session data structures:
- Session: device-bound login session row
- generate_session_token: opaque cryptographic identifier
- TerminationReason: why a session stopped being active
"""

from __future__ import annotations

import base64
import hashlib
import secrets
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any

from warden.utils.clock import utc_now


# ============================================================================
# Session Token - Opaque Cryptographic Identifier
# ============================================================================

def generate_session_token(nbytes: int = 32) -> str:
    """
    Opaque session token.

    Rules:
    - Never encode meaning (no account id, no timestamps)
    - Cryptographically random (32 bytes = 256 bits by default)
    - URL-safe encoding, prefixed for identification (sess_)
    """
    raw = secrets.token_bytes(nbytes)
    return f"sess_{base64.urlsafe_b64encode(raw).decode().rstrip('=')}"


def token_digest(token: str) -> str:
    """Short hash of a token, safe for logs."""
    return f"sha256:{hashlib.sha256(token.encode()).hexdigest()[:16]}"


# ============================================================================
# TerminationReason
# ============================================================================

class TerminationReason(str, Enum):
    LOGOUT = "logout"
    LOGOUT_ALL = "logout_all"
    EXPIRED = "expired"
    TERMINATED = "terminated"
    PASSWORD_RESET = "password_reset"
    DEACTIVATED = "deactivated"


# ============================================================================
# Session - Core Data Object
# ============================================================================

@dataclass
class Session:
    """
    Device-bound login session.

    One logical device (fingerprint) maps to at most one active session
    row per account. Sessions are never deleted: termination flips
    ``is_active``.

    Attributes:
        id: Row identifier
        token: Opaque bearer identifier (sess_...)
        account_id: Owning account
        fingerprint: Device fingerprint hash
        device_name: Human label ("Chrome - Windows - Desktop")
        expires_at: Hard expiry; moved forward only by sliding extension
        remember_me: Long-lived session
    """

    id: str
    token: str
    account_id: str
    fingerprint: str
    expires_at: datetime
    user_agent: str = ""
    ip_address: str = ""
    device_name: str = ""
    is_private: bool = False
    remember_me: bool = False
    screen_resolution: str | None = None
    timezone: str | None = None
    language: str | None = None
    is_active: bool = True
    created_at: datetime = field(default_factory=utc_now)
    last_activity_at: datetime = field(default_factory=utc_now)
    terminated_at: datetime | None = None
    termination_reason: TerminationReason | None = None

    @staticmethod
    def new_id() -> str:
        return uuid.uuid4().hex

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at <= now

    def is_valid(self, now: datetime) -> bool:
        """Active and not past expiry."""
        return self.is_active and not self.is_expired(now)

    def time_to_live(self, now: datetime) -> timedelta:
        return self.expires_at - now

    def touch(self, now: datetime) -> None:
        self.last_activity_at = now

    def terminate(self, now: datetime, reason: TerminationReason) -> bool:
        """Flip to inactive. Returns False if already inactive."""
        if not self.is_active:
            return False
        self.is_active = False
        self.terminated_at = now
        self.termination_reason = reason
        return True

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dict."""
        return {
            "id": self.id,
            "token": self.token,
            "account_id": self.account_id,
            "fingerprint": self.fingerprint,
            "expires_at": self.expires_at.isoformat(),
            "user_agent": self.user_agent,
            "ip_address": self.ip_address,
            "device_name": self.device_name,
            "is_private": self.is_private,
            "remember_me": self.remember_me,
            "screen_resolution": self.screen_resolution,
            "timezone": self.timezone,
            "language": self.language,
            "is_active": self.is_active,
            "created_at": self.created_at.isoformat(),
            "last_activity_at": self.last_activity_at.isoformat(),
            "terminated_at": self.terminated_at.isoformat() if self.terminated_at else None,
            "termination_reason": self.termination_reason.value if self.termination_reason else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Session:
        """Deserialize from dict."""
        return cls(
            id=data["id"],
            token=data["token"],
            account_id=data["account_id"],
            fingerprint=data["fingerprint"],
            expires_at=datetime.fromisoformat(data["expires_at"]),
            user_agent=data.get("user_agent", ""),
            ip_address=data.get("ip_address", ""),
            device_name=data.get("device_name", ""),
            is_private=data.get("is_private", False),
            remember_me=data.get("remember_me", False),
            screen_resolution=data.get("screen_resolution"),
            timezone=data.get("timezone"),
            language=data.get("language"),
            is_active=data.get("is_active", True),
            created_at=datetime.fromisoformat(data["created_at"]),
            last_activity_at=datetime.fromisoformat(data["last_activity_at"]),
            terminated_at=(
                datetime.fromisoformat(data["terminated_at"]) if data.get("terminated_at") else None
            ),
            termination_reason=(
                TerminationReason(data["termination_reason"]) if data.get("termination_reason") else None
            ),
        )

    def to_public_dict(self) -> dict[str, Any]:
        """Listing view (no fingerprint)."""
        return {
            "id": self.id,
            "device_name": self.device_name,
            "ip_address": self.ip_address,
            "user_agent": self.user_agent,
            "remember_me": self.remember_me,
            "created_at": self.created_at.isoformat(),
            "last_activity_at": self.last_activity_at.isoformat(),
            "expires_at": self.expires_at.isoformat(),
        }
