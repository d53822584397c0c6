"""
WardenAuth - Credential and Token Stores

Store protocols for accounts and refresh tokens plus in-memory
implementations for development and testing.

Stores:
- MemoryAccountStore: accounts with atomic per-record updates
- MemoryRefreshTokenStore: opaque refresh tokens with atomic consume
"""

from __future__ import annotations

import asyncio
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Protocol

from .core import Account, AccountUpdate, FailedLogin, RefreshTokenRecord
from .faults import AUTH_ACCOUNT_EXISTS


# ============================================================================
# Protocols
# ============================================================================


class AccountStore(Protocol):
    """
    Credential store gateway.

    Every mutation is a single atomic operation on one record so that
    concurrent requests against the same account never lose updates.
    """

    async def create(self, account: Account) -> Account:
        """Insert; raises AUTH_ACCOUNT_EXISTS on duplicate email/username."""
        ...

    async def get(self, account_id: str) -> Account | None:
        ...

    async def get_by_email(self, email: str) -> Account | None:
        """Case-insensitive lookup."""
        ...

    async def get_by_username(self, username: str) -> Account | None:
        ...

    async def get_by_verification_token(self, token_hash: str) -> Account | None:
        ...

    async def get_by_reset_token(self, token_hash: str) -> Account | None:
        ...

    async def apply(
        self, account_id: str, update: AccountUpdate, now: datetime | None = None
    ) -> Account | None:
        """Apply one tagged update atomically; returns the updated record."""
        ...

    async def register_failed_login(
        self,
        account_id: str,
        max_attempts: int,
        lockout_duration: timedelta,
        now: datetime,
    ) -> tuple[Account, bool] | None:
        """
        Atomically increment the failure counter.

        Returns (account, newly_locked).
        """
        ...

    async def consume_backup_code(self, account_id: str, code_hash: str) -> bool:
        """Remove one backup code hash; False if it was not present."""
        ...


class RefreshTokenStore(Protocol):
    """Opaque refresh token persistence."""

    async def save(self, record: RefreshTokenRecord) -> None:
        ...

    async def get(self, token: str) -> RefreshTokenRecord | None:
        ...

    async def consume(self, token: str, now: datetime) -> RefreshTokenRecord | None:
        """
        Atomically revoke a usable token and return it.

        Returns None if unknown, revoked or expired; two concurrent
        consumers of one token never both succeed.
        """
        ...

    async def revoke(self, token: str, now: datetime) -> bool:
        """Idempotent revoke. False if unknown or already revoked."""
        ...

    async def revoke_by_account(self, account_id: str, now: datetime) -> int:
        ...

    async def revoke_by_session(self, session_token: str, now: datetime) -> int:
        ...

    async def list_by_account(self, account_id: str) -> list[RefreshTokenRecord]:
        ...


# ============================================================================
# Memory Stores (for development and testing)
# ============================================================================


class MemoryAccountStore:
    """In-memory account storage for development/testing."""

    def __init__(self):
        self._accounts: dict[str, Account] = {}
        self._by_email: dict[str, str] = {}
        self._by_username: dict[str, str] = {}
        self._lock = asyncio.Lock()

    @staticmethod
    def _key(value: str) -> str:
        return value.strip().lower()

    async def create(self, account: Account) -> Account:
        """Create new account."""
        async with self._lock:
            if (
                account.id in self._accounts
                or self._key(account.email) in self._by_email
                or self._key(account.username) in self._by_username
            ):
                raise AUTH_ACCOUNT_EXISTS()

            stored = account.copy()
            self._accounts[stored.id] = stored
            self._by_email[self._key(stored.email)] = stored.id
            self._by_username[self._key(stored.username)] = stored.id
            return stored.copy()

    async def get(self, account_id: str) -> Account | None:
        account = self._accounts.get(account_id)
        return account.copy() if account else None

    async def get_by_email(self, email: str) -> Account | None:
        account_id = self._by_email.get(self._key(email))
        return await self.get(account_id) if account_id else None

    async def get_by_username(self, username: str) -> Account | None:
        account_id = self._by_username.get(self._key(username))
        return await self.get(account_id) if account_id else None

    async def get_by_verification_token(self, token_hash: str) -> Account | None:
        for account in self._accounts.values():
            if account.email_verification_token_hash == token_hash:
                return account.copy()
        return None

    async def get_by_reset_token(self, token_hash: str) -> Account | None:
        for account in self._accounts.values():
            if account.password_reset_token_hash == token_hash:
                return account.copy()
        return None

    async def apply(
        self, account_id: str, update: AccountUpdate, now: datetime | None = None
    ) -> Account | None:
        """Apply update under the store lock."""
        async with self._lock:
            account = self._accounts.get(account_id)
            if account is None:
                return None
            update.apply_to(account)
            if now is not None:
                account.updated_at = now
            return account.copy()

    async def register_failed_login(
        self,
        account_id: str,
        max_attempts: int,
        lockout_duration: timedelta,
        now: datetime,
    ) -> tuple[Account, bool] | None:
        async with self._lock:
            account = self._accounts.get(account_id)
            if account is None:
                return None
            was_locked = account.is_locked(now)
            FailedLogin(max_attempts, lockout_duration, now).apply_to(account)
            account.updated_at = now
            newly_locked = not was_locked and account.is_locked(now)
            return account.copy(), newly_locked

    async def consume_backup_code(self, account_id: str, code_hash: str) -> bool:
        async with self._lock:
            account = self._accounts.get(account_id)
            if account is None or code_hash not in account.backup_code_hashes:
                return False
            account.backup_code_hashes.remove(code_hash)
            return True


class MemoryRefreshTokenStore:
    """In-memory refresh token storage for development/testing."""

    def __init__(self):
        self._tokens: dict[str, RefreshTokenRecord] = {}
        self._by_account: dict[str, set[str]] = defaultdict(set)
        self._by_session: dict[str, set[str]] = defaultdict(set)
        self._lock = asyncio.Lock()

    async def save(self, record: RefreshTokenRecord) -> None:
        """Save refresh token."""
        async with self._lock:
            self._tokens[record.token] = RefreshTokenRecord.from_dict(record.to_dict())
            self._by_account[record.account_id].add(record.token)
            if record.session_token:
                self._by_session[record.session_token].add(record.token)

    async def get(self, token: str) -> RefreshTokenRecord | None:
        record = self._tokens.get(token)
        return RefreshTokenRecord.from_dict(record.to_dict()) if record else None

    async def consume(self, token: str, now: datetime) -> RefreshTokenRecord | None:
        async with self._lock:
            record = self._tokens.get(token)
            if record is None or not record.is_usable(now):
                return None
            record.revoked = True
            record.revoked_at = now
            return RefreshTokenRecord.from_dict(record.to_dict())

    async def revoke(self, token: str, now: datetime) -> bool:
        """Revoke single refresh token."""
        async with self._lock:
            return self._revoke(token, now)

    async def revoke_by_account(self, account_id: str, now: datetime) -> int:
        """Revoke all tokens for account."""
        async with self._lock:
            return sum(self._revoke(t, now) for t in list(self._by_account.get(account_id, ())))

    async def revoke_by_session(self, session_token: str, now: datetime) -> int:
        """Revoke all tokens bound to a session."""
        async with self._lock:
            return sum(self._revoke(t, now) for t in list(self._by_session.get(session_token, ())))

    async def list_by_account(self, account_id: str) -> list[RefreshTokenRecord]:
        return [
            RefreshTokenRecord.from_dict(self._tokens[t].to_dict())
            for t in self._by_account.get(account_id, ())
        ]

    def _revoke(self, token: str, now: datetime) -> bool:
        record = self._tokens.get(token)
        if record is None or record.revoked:
            return False
        record.revoked = True
        record.revoked_at = now
        return True
