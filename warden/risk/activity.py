"""
WardenRisk - Suspicious activity records

Escalated assessments and attack detections are stored for review.
"""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Protocol

from warden.utils.clock import utc_now

from .core import RiskFactor


class ActivityType(str, Enum):
    NEW_IP_ADDRESS = "new_ip_address"
    UNUSUAL_LOGIN_TIME = "unusual_login_time"
    NEW_DEVICE = "new_device"
    IMPOSSIBLE_TRAVEL = "impossible_travel"
    HIGH_VELOCITY = "high_velocity"
    RECENT_FAILURES = "recent_failures"
    BRUTE_FORCE_ATTACK = "brute_force_attack"
    PASSWORD_SPRAY_ATTACK = "password_spray_attack"

    @classmethod
    def from_factor(cls, factor: RiskFactor) -> ActivityType:
        return cls(factor.value)


class ActivityStatus(str, Enum):
    """Review state."""
    PENDING = "pending"
    REVIEWED = "reviewed"
    FALSE_POSITIVE = "false_positive"
    CONFIRMED = "confirmed"


@dataclass
class SuspiciousActivity:
    activity_type: ActivityType
    description: str
    account_id: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None
    risk_score: int = 0
    details: dict[str, Any] = field(default_factory=dict)
    status: ActivityStatus = ActivityStatus.PENDING
    detected_at: datetime = field(default_factory=utc_now)
    reviewed_by: str | None = None
    reviewed_at: datetime | None = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "activity_type": self.activity_type.value,
            "description": self.description,
            "account_id": self.account_id,
            "ip_address": self.ip_address,
            "user_agent": self.user_agent,
            "risk_score": self.risk_score,
            "details": dict(self.details),
            "status": self.status.value,
            "detected_at": self.detected_at.isoformat(),
            "reviewed_by": self.reviewed_by,
            "reviewed_at": self.reviewed_at.isoformat() if self.reviewed_at else None,
        }


class SuspiciousActivityStore(Protocol):

    async def add(self, activity: SuspiciousActivity) -> None:
        ...

    async def get(self, activity_id: str) -> SuspiciousActivity | None:
        ...

    async def list_by_status(self, status: ActivityStatus | None = None) -> list[SuspiciousActivity]:
        """Newest first."""
        ...

    async def find_since(
        self, activity_type: ActivityType, ip_address: str, since: datetime
    ) -> list[SuspiciousActivity]:
        ...

    async def update_status(
        self,
        activity_id: str,
        status: ActivityStatus,
        reviewer_id: str,
        now: datetime,
    ) -> SuspiciousActivity | None:
        ...


class MemorySuspiciousActivityStore:
    """In-memory activity storage for development/testing."""

    def __init__(self):
        self._activities: dict[str, SuspiciousActivity] = {}
        self._lock = asyncio.Lock()

    async def add(self, activity: SuspiciousActivity) -> None:
        async with self._lock:
            self._activities[activity.id] = replace(activity, details=dict(activity.details))

    async def get(self, activity_id: str) -> SuspiciousActivity | None:
        activity = self._activities.get(activity_id)
        return replace(activity) if activity else None

    async def list_by_status(self, status: ActivityStatus | None = None) -> list[SuspiciousActivity]:
        result = [
            replace(a) for a in self._activities.values()
            if status is None or a.status == status
        ]
        result.sort(key=lambda a: a.detected_at, reverse=True)
        return result

    async def find_since(
        self, activity_type: ActivityType, ip_address: str, since: datetime
    ) -> list[SuspiciousActivity]:
        return [
            replace(a) for a in self._activities.values()
            if a.activity_type == activity_type
            and a.ip_address == ip_address
            and a.detected_at >= since
        ]

    async def update_status(
        self,
        activity_id: str,
        status: ActivityStatus,
        reviewer_id: str,
        now: datetime,
    ) -> SuspiciousActivity | None:
        async with self._lock:
            activity = self._activities.get(activity_id)
            if activity is None:
                return None
            activity.status = status
            activity.reviewed_by = reviewer_id
            activity.reviewed_at = now
            return replace(activity)
