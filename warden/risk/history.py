"""
WardenRisk - Login history

The risk engine reads history through ``LoginHistoryQuery`` only; the
orchestrator appends attempts through ``LoginHistoryRecorder``. The engine
never holds a reference to the session manager.
"""

from __future__ import annotations

import asyncio
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol

from warden.utils.clock import utc_now


@dataclass(frozen=True)
class LoginAttemptRecord:
    """
    One credential attempt.

    ``account_id`` is None when the email matched no account; ``subject``
    then carries the hashed identifier so attempts can still be grouped.
    """
    ip_address: str
    success: bool
    subject: str
    account_id: str | None = None
    user_agent: str = ""
    fingerprint: str | None = None
    timestamp: datetime = field(default_factory=utc_now)


class LoginHistoryQuery(Protocol):
    """Read-only view over login attempts."""

    async def successful_logins(self, account_id: str, limit: int) -> list[LoginAttemptRecord]:
        """Most recent first."""
        ...

    async def failures_for_account(self, account_id: str, since: datetime) -> list[LoginAttemptRecord]:
        ...

    async def failures_from_ip(self, ip_address: str, since: datetime) -> list[LoginAttemptRecord]:
        ...

    async def failures_since(self, since: datetime) -> list[LoginAttemptRecord]:
        ...

    async def attempts_from_ip(self, ip_address: str, since: datetime) -> list[LoginAttemptRecord]:
        ...


class LoginHistoryRecorder(Protocol):
    async def record(self, attempt: LoginAttemptRecord) -> None:
        ...


class MemoryLoginHistory:
    """
    Bounded in-memory attempt log for development/testing.

    Oldest attempts fall off once ``max_records`` is reached.
    """

    def __init__(self, max_records: int = 10000):
        self._attempts: deque[LoginAttemptRecord] = deque(maxlen=max_records)
        self._lock = asyncio.Lock()

    async def record(self, attempt: LoginAttemptRecord) -> None:
        async with self._lock:
            self._attempts.append(attempt)

    async def successful_logins(self, account_id: str, limit: int) -> list[LoginAttemptRecord]:
        result = []
        for attempt in reversed(self._attempts):
            if attempt.success and attempt.account_id == account_id:
                result.append(attempt)
                if len(result) >= limit:
                    break
        return result

    async def failures_for_account(self, account_id: str, since: datetime) -> list[LoginAttemptRecord]:
        return [
            a for a in self._attempts
            if not a.success and a.account_id == account_id and a.timestamp >= since
        ]

    async def failures_from_ip(self, ip_address: str, since: datetime) -> list[LoginAttemptRecord]:
        return [
            a for a in self._attempts
            if not a.success and a.ip_address == ip_address and a.timestamp >= since
        ]

    async def failures_since(self, since: datetime) -> list[LoginAttemptRecord]:
        return [a for a in self._attempts if not a.success and a.timestamp >= since]

    async def attempts_from_ip(self, ip_address: str, since: datetime) -> list[LoginAttemptRecord]:
        return [
            a for a in self._attempts
            if a.ip_address == ip_address and a.timestamp >= since
        ]

    def __len__(self) -> int:
        return len(self._attempts)
