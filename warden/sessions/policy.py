"""
WardenSessions - Policy types.

Defines the policies that govern session behavior:
- LifetimePolicy: TTLs and sliding extension
- ConcurrencyPolicy: per-account active session cap
- SessionPolicy: master policy built from ``SessionConfig``
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from warden.config import SessionConfig

if TYPE_CHECKING:
    from .core import Session


# ============================================================================
# Sub-Policies
# ============================================================================

@dataclass
class LifetimePolicy:
    """
    Session lifetime with sliding expiration.

    A session is renewed to a fresh full TTL only when its remaining
    lifetime falls below ``extension_threshold``; otherwise activity just
    bumps ``last_activity_at``.

    Example:
        >>> policy = LifetimePolicy(
        ...     ttl=timedelta(hours=24),
        ...     remember_me_ttl=timedelta(days=30),
        ...     extension_threshold=timedelta(minutes=30),
        ... )
        >>> policy.needs_extension(session, now)
        False
    """

    ttl: timedelta = timedelta(hours=24)
    remember_me_ttl: timedelta = timedelta(days=30)
    extension_threshold: timedelta = timedelta(minutes=30)

    def ttl_for(self, remember_me: bool) -> timedelta:
        return self.remember_me_ttl if remember_me else self.ttl

    def expiry(self, now: datetime, remember_me: bool) -> datetime:
        return now + self.ttl_for(remember_me)

    def needs_extension(self, session: Session, now: datetime) -> bool:
        """True when remaining time-to-live is below the threshold."""
        return session.time_to_live(now) < self.extension_threshold


@dataclass
class ConcurrencyPolicy:
    """
    Per-account active session limit.

    Reaching the limit rejects the new session; existing sessions are
    never evicted to make room.
    """

    max_sessions_per_account: int | None = 4

    def limit_reached(self, active_count: int) -> bool:
        if self.max_sessions_per_account is None:
            return False
        return active_count >= self.max_sessions_per_account


# ============================================================================
# Master Policy
# ============================================================================

@dataclass
class SessionPolicy:
    """
    Master policy that defines how sessions behave.

    Attributes:
        lifetime: TTL and sliding extension sub-policy
        concurrency: Active session cap sub-policy
        token_bytes: Entropy of generated session tokens
    """

    lifetime: LifetimePolicy = field(default_factory=LifetimePolicy)
    concurrency: ConcurrencyPolicy = field(default_factory=ConcurrencyPolicy)
    token_bytes: int = 32

    @classmethod
    def from_config(cls, config: SessionConfig) -> SessionPolicy:
        return cls(
            lifetime=LifetimePolicy(
                ttl=config.session_ttl,
                remember_me_ttl=config.remember_me_ttl,
                extension_threshold=config.extension_threshold,
            ),
            concurrency=ConcurrencyPolicy(
                max_sessions_per_account=config.max_sessions_per_account,
            ),
            token_bytes=config.token_bytes,
        )
