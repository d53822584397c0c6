"""
WardenSessions - Session storage abstraction.

Defines the SessionStore protocol and the in-memory implementation.
Stores persist rows and provide per-account critical sections; policy is
enforced by SessionManager.
"""

from __future__ import annotations

import asyncio
import contextlib
import dataclasses
from collections import defaultdict
from datetime import datetime
from typing import AsyncContextManager, Protocol

from .core import Session, TerminationReason


# ============================================================================
# SessionStore Protocol
# ============================================================================

class SessionStore(Protocol):
    """
    Abstract session storage interface.

    All methods must be async. Returned sessions are detached copies;
    mutations go through the atomic operations below.
    """

    def locked(self, account_id: str) -> AsyncContextManager[None]:
        """
        Per-account critical section.

        Find-or-extend, cap check and insert for one account run inside
        this context so concurrent logins from one device cannot create
        duplicate rows.
        """
        ...

    async def insert(self, session: Session) -> None:
        ...

    async def touch(self, token: str, now: datetime) -> Session | None:
        """
        Bump activity of a valid session and return it.

        Returns None for missing, inactive or expired sessions; an expired
        session still flagged active is flipped inactive.
        """
        ...

    async def renew(
        self,
        session_id: str,
        now: datetime,
        expires_at: datetime | None = None,
        remember_me: bool | None = None,
    ) -> Session | None:
        """
        Atomically move expiry (if given) and bump activity.

        Returns None if the session is no longer valid.
        """
        ...

    async def get_by_token(self, token: str) -> Session | None:
        ...

    async def get(self, session_id: str) -> Session | None:
        ...

    async def find_active_by_fingerprint(
        self, account_id: str, fingerprint: str, now: datetime
    ) -> Session | None:
        """Active, unexpired session for (account, device)."""
        ...

    async def list_active(self, account_id: str, now: datetime) -> list[Session]:
        """Active, unexpired sessions, most recently used first."""
        ...

    async def count_active(self, account_id: str, now: datetime) -> int:
        ...

    async def terminate(self, token: str, now: datetime, reason: TerminationReason) -> bool:
        """Flip one session inactive. False if missing or already inactive."""
        ...

    async def terminate_all(self, account_id: str, now: datetime, reason: TerminationReason) -> list[str]:
        """Flip every active session of an account; returns terminated tokens."""
        ...

    async def expire_stale(self, now: datetime) -> int:
        """Flip sessions past expiry that are still flagged active."""
        ...


# ============================================================================
# MemorySessionStore - In-Memory Storage
# ============================================================================

class MemorySessionStore:
    """
    In-memory session storage for development and testing.

    Features:
    - Token index and account index
    - Per-account asyncio locks for the find-or-extend critical section
    - Store-wide lock for row mutations

    NOT suitable for production (no persistence across restarts).

    Example:
        >>> store = MemorySessionStore()
        >>> async with store.locked(account_id):
        ...     await store.insert(session)
        >>> loaded = await store.get_by_token(session.token)
    """

    def __init__(self):
        self._sessions: dict[str, Session] = {}  # token -> session
        self._by_id: dict[str, str] = {}  # id -> token
        self._account_index: dict[str, set[str]] = defaultdict(set)  # account_id -> tokens
        self._account_locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}  # account_id -> holders and waiters
        self._lock = asyncio.Lock()

    @contextlib.asynccontextmanager
    async def locked(self, account_id: str):
        lock = self._account_locks.setdefault(account_id, asyncio.Lock())
        self._lock_users[account_id] = self._lock_users.get(account_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[account_id] -= 1
            if not self._lock_users[account_id]:
                # No holders or waiters left
                del self._lock_users[account_id]
                del self._account_locks[account_id]

    async def insert(self, session: Session) -> None:
        async with self._lock:
            if session.token in self._sessions:
                raise ValueError("Session token already exists")
            self._store(session)

    async def touch(self, token: str, now: datetime) -> Session | None:
        async with self._lock:
            session = self._sessions.get(token)
            if session is None or not session.is_active:
                return None
            if session.is_expired(now):
                session.terminate(now, TerminationReason.EXPIRED)
                return None
            session.touch(now)
            return dataclasses.replace(session)

    async def renew(
        self,
        session_id: str,
        now: datetime,
        expires_at: datetime | None = None,
        remember_me: bool | None = None,
    ) -> Session | None:
        async with self._lock:
            token = self._by_id.get(session_id)
            session = self._sessions.get(token) if token else None
            if session is None or not session.is_valid(now):
                return None
            if expires_at is not None:
                session.expires_at = expires_at
            if remember_me is not None:
                session.remember_me = remember_me
            session.touch(now)
            return dataclasses.replace(session)

    async def get_by_token(self, token: str) -> Session | None:
        session = self._sessions.get(token)
        return dataclasses.replace(session) if session else None

    async def get(self, session_id: str) -> Session | None:
        token = self._by_id.get(session_id)
        return await self.get_by_token(token) if token else None

    async def find_active_by_fingerprint(
        self, account_id: str, fingerprint: str, now: datetime
    ) -> Session | None:
        for session in self._account_sessions(account_id):
            if session.fingerprint == fingerprint and session.is_valid(now):
                return dataclasses.replace(session)
        return None

    async def list_active(self, account_id: str, now: datetime) -> list[Session]:
        sessions = [
            dataclasses.replace(s) for s in self._account_sessions(account_id) if s.is_valid(now)
        ]
        sessions.sort(key=lambda s: s.last_activity_at, reverse=True)
        return sessions

    async def count_active(self, account_id: str, now: datetime) -> int:
        return sum(1 for s in self._account_sessions(account_id) if s.is_valid(now))

    async def list_by_account(self, account_id: str) -> list[Session]:
        """Every row for the account, active or not."""
        return [dataclasses.replace(s) for s in self._account_sessions(account_id)]

    async def terminate(self, token: str, now: datetime, reason: TerminationReason) -> bool:
        async with self._lock:
            session = self._sessions.get(token)
            if session is None:
                return False
            return session.terminate(now, reason)

    async def terminate_all(self, account_id: str, now: datetime, reason: TerminationReason) -> list[str]:
        async with self._lock:
            return [
                s.token for s in self._account_sessions(account_id) if s.terminate(now, reason)
            ]

    async def expire_stale(self, now: datetime) -> int:
        async with self._lock:
            count = 0
            for session in self._sessions.values():
                if session.is_active and session.is_expired(now):
                    session.terminate(now, TerminationReason.EXPIRED)
                    count += 1
            return count

    def _store(self, session: Session) -> None:
        stored = dataclasses.replace(session)
        self._sessions[stored.token] = stored
        self._by_id[stored.id] = stored.token
        self._account_index[stored.account_id].add(stored.token)

    def _account_sessions(self, account_id: str) -> list[Session]:
        return [self._sessions[t] for t in self._account_index.get(account_id, ())]
