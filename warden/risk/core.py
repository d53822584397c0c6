"""
WardenRisk - Core Types

Login context, risk factors, assessments and the per-account login
pattern the engine scores against.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class RiskFactor(str, Enum):
    """Contributing signal in a risk assessment."""
    NEW_IP_ADDRESS = "new_ip_address"
    UNUSUAL_LOGIN_TIME = "unusual_login_time"
    NEW_DEVICE = "new_device"
    IMPOSSIBLE_TRAVEL = "impossible_travel"
    HIGH_VELOCITY = "high_velocity"
    RECENT_FAILURES = "recent_failures"


@dataclass(frozen=True)
class LoginContext:
    """One login being scored."""
    account_id: str
    ip_address: str
    user_agent: str
    timestamp: datetime
    fingerprint: str | None = None


@dataclass(frozen=True)
class RiskAssessment:
    """
    Outcome of scoring one login.

    ``risk_factors`` is ordered by contribution, heaviest first.
    """
    risk_score: int
    risk_factors: tuple[RiskFactor, ...]
    confidence: float
    context: LoginContext
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def primary_factor(self) -> RiskFactor | None:
        return self.risk_factors[0] if self.risk_factors else None

    def to_dict(self) -> dict[str, Any]:
        return {
            "risk_score": self.risk_score,
            "risk_factors": [f.value for f in self.risk_factors],
            "confidence": self.confidence,
            "account_id": self.context.account_id,
            "ip_address": self.context.ip_address,
            "timestamp": self.context.timestamp.isoformat(),
            "details": dict(self.details),
        }


@dataclass
class LoginPattern:
    """Summary of an account's successful login history."""
    account_id: str
    typical_ips: list[str] = field(default_factory=list)
    typical_hours: list[int] = field(default_factory=list)
    typical_devices: list[str] = field(default_factory=list)
    last_login_at: datetime | None = None
    last_login_ip: str | None = None
    sample_size: int = 0

    @property
    def is_empty(self) -> bool:
        return self.sample_size == 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "account_id": self.account_id,
            "typical_ips": list(self.typical_ips),
            "typical_hours": list(self.typical_hours),
            "typical_devices": list(self.typical_devices),
            "last_login_at": self.last_login_at.isoformat() if self.last_login_at else None,
            "last_login_ip": self.last_login_ip,
            "sample_size": self.sample_size,
        }
