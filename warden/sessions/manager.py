"""
WardenSessions - Session manager.

Owns the session lifecycle:
- create (find-or-extend per device fingerprint, concurrency cap)
- sliding extension
- validation with lazy expiry
- idempotent termination
"""

from __future__ import annotations

import logging
from datetime import datetime

from warden.config import SessionConfig
from warden.utils.clock import Clock, utc_now

from .core import Session, TerminationReason, generate_session_token, token_digest
from .faults import SessionLimitExceededFault, SessionNotFoundFault
from .fingerprint import (
    DeviceMetadata,
    compute_fingerprint,
    create_device_name,
    parse_user_agent,
)
from .policy import SessionPolicy
from .store import SessionStore


class SessionManager:
    """
    Session lifecycle manager.

    One logical device (account + fingerprint) maps to one active row:
    a login from a device that already holds an active session renews
    that session instead of creating another. New devices are rejected
    with ``SessionLimitExceededFault`` once the account holds
    ``max_sessions_per_account`` active sessions.

    Example:
        >>> manager = SessionManager(MemorySessionStore())
        >>> session = await manager.create_session("acc_1", ua, "10.0.0.1")
        >>> await manager.validate_session(session.token)
        Session(...)
    """

    def __init__(
        self,
        store: SessionStore,
        config: SessionConfig | None = None,
        clock: Clock | None = None,
        logger: logging.Logger | None = None,
    ):
        self.store = store
        self.config = config or SessionConfig()
        self.policy = SessionPolicy.from_config(self.config)
        self.clock = clock or utc_now
        self.logger = logger or logging.getLogger("warden.sessions")

    # ========================================================================
    # Creation
    # ========================================================================

    async def create_session(
        self,
        account_id: str,
        user_agent: str,
        ip_address: str,
        remember_me: bool = False,
        metadata: DeviceMetadata | None = None,
    ) -> Session:
        """
        Create a session, or renew the device's existing one.

        Raises:
            SessionLimitExceededFault: New device and the cap is reached
        """
        info = parse_user_agent(user_agent)
        fingerprint = compute_fingerprint(ip_address, user_agent, metadata)

        async with self.store.locked(account_id):
            now = self.clock()

            existing = await self.store.find_active_by_fingerprint(account_id, fingerprint, now)
            if existing is not None:
                return await self._renew_on_login(existing, remember_me, now)

            active_count = await self.store.count_active(account_id, now)
            if self.policy.concurrency.limit_reached(active_count):
                self.logger.info(
                    "Session limit reached for account %s (%d active)", account_id, active_count
                )
                raise SessionLimitExceededFault(
                    account_id=account_id,
                    active_count=active_count,
                    max_sessions=self.policy.concurrency.max_sessions_per_account,
                )

            metadata = metadata or DeviceMetadata()
            session = Session(
                id=Session.new_id(),
                token=generate_session_token(self.policy.token_bytes),
                account_id=account_id,
                fingerprint=fingerprint,
                expires_at=self.policy.lifetime.expiry(now, remember_me),
                user_agent=user_agent or "",
                ip_address=ip_address or "",
                device_name=create_device_name(info),
                is_private=info.is_private,
                remember_me=remember_me,
                screen_resolution=metadata.screen_resolution,
                timezone=metadata.timezone,
                language=metadata.language,
                created_at=now,
                last_activity_at=now,
            )
            await self.store.insert(session)

        self.logger.info(
            "Created session %s for account %s (%s)",
            token_digest(session.token), account_id, session.device_name,
        )
        return session

    async def _renew_on_login(self, session: Session, remember_me: bool, now: datetime) -> Session:
        """A fresh login renews the device's session to a full TTL (never shortens it)."""
        remember_me = remember_me or session.remember_me
        renewed_expiry = max(session.expires_at, self.policy.lifetime.expiry(now, remember_me))
        renewed = await self.store.renew(session.id, now, renewed_expiry, remember_me)
        if renewed is None:
            raise SessionNotFoundFault(session_id=session.id)
        session = renewed

        self.logger.info(
            "Renewed session %s for account %s on login",
            token_digest(session.token), session.account_id,
        )
        return session

    # ========================================================================
    # Extension & Validation
    # ========================================================================

    async def extend_session(self, session_id: str, remember_me: bool = False) -> Session:
        """
        Sliding extension.

        Pushes expiry to a fresh full TTL only when the remaining lifetime
        is below the extension threshold; otherwise just bumps activity.

        Raises:
            SessionNotFoundFault: Missing, inactive or expired session
        """
        now = self.clock()
        session = await self.store.get(session_id)
        if session is None or not session.is_valid(now):
            raise SessionNotFoundFault(session_id=session_id)

        expires_at = None
        if self.policy.lifetime.needs_extension(session, now):
            expires_at = self.policy.lifetime.expiry(now, remember_me or session.remember_me)

        renewed = await self.store.renew(session_id, now, expires_at)
        if renewed is None:
            raise SessionNotFoundFault(session_id=session_id)
        if expires_at is not None:
            self.logger.debug("Extended session %s", token_digest(renewed.token))
        return renewed

    async def validate_session(self, token: str) -> Session | None:
        """
        Return the active session for ``token`` and touch its activity.

        Returns None for missing, inactive or expired sessions. An expired
        session still flagged active is flipped inactive here.
        """
        return await self.store.touch(token, self.clock())

    async def get_session(self, token: str) -> Session | None:
        """Look up a session in any state without touching it."""
        return await self.store.get_by_token(token)

    async def list_active_sessions(self, account_id: str) -> list[Session]:
        return await self.store.list_active(account_id, self.clock())

    # ========================================================================
    # Termination
    # ========================================================================

    async def terminate_session(
        self, token: str, reason: TerminationReason = TerminationReason.LOGOUT
    ) -> bool:
        """
        Idempotent termination.

        Returns True if this call deactivated the session; terminating a
        missing or already inactive session is a no-op.
        """
        terminated = await self.store.terminate(token, self.clock(), reason)
        if terminated:
            self.logger.info("Terminated session %s (%s)", token_digest(token), reason.value)
        return terminated

    async def terminate_account_session(
        self,
        account_id: str,
        token: str,
        reason: TerminationReason = TerminationReason.TERMINATED,
    ) -> bool:
        """
        Terminate one of the account's own sessions.

        Raises:
            SessionNotFoundFault: Unknown token or owned by another account
        """
        session = await self.store.get_by_token(token)
        if session is None or session.account_id != account_id:
            raise SessionNotFoundFault(session_token=token)
        return await self.terminate_session(token, reason)

    async def terminate_all_sessions(
        self,
        account_id: str,
        reason: TerminationReason = TerminationReason.LOGOUT_ALL,
    ) -> list[str]:
        """Deactivate every active session of the account."""
        tokens = await self.store.terminate_all(account_id, self.clock(), reason)
        if tokens:
            self.logger.info(
                "Terminated %d session(s) for account %s (%s)", len(tokens), account_id, reason.value
            )
        return tokens

    async def cleanup_expired_sessions(self) -> int:
        """Flip sessions past expiry that are still flagged active."""
        count = await self.store.expire_stale(self.clock())
        if count:
            self.logger.info("Expired %d stale session(s)", count)
        return count
