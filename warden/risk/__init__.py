"""
WardenRisk - Login risk scoring and attack detection.

Core exports:
- RiskEngine: per-login scoring, brute-force and spray detection
- SpraySweep: periodic spray detection
- LoginContext, RiskAssessment, RiskFactor, LoginPattern: scoring types
- LoginHistoryQuery, MemoryLoginHistory: attempt log
- SuspiciousActivity, ActivityStatus: review records
- GeoResolver, StaticGeoResolver: IP geolocation
"""

from .activity import (
    ActivityStatus,
    ActivityType,
    MemorySuspiciousActivityStore,
    SuspiciousActivity,
    SuspiciousActivityStore,
)
from .core import LoginContext, LoginPattern, RiskAssessment, RiskFactor
from .engine import RiskEngine, SpraySweep
from .geo import GeoLocation, GeoResolver, StaticGeoResolver, haversine_km
from .history import (
    LoginAttemptRecord,
    LoginHistoryQuery,
    LoginHistoryRecorder,
    MemoryLoginHistory,
)


__all__ = [
    # Core
    "LoginContext",
    "LoginPattern",
    "RiskAssessment",
    "RiskFactor",
    # Engine
    "RiskEngine",
    "SpraySweep",
    # History
    "LoginAttemptRecord",
    "LoginHistoryQuery",
    "LoginHistoryRecorder",
    "MemoryLoginHistory",
    # Activity
    "ActivityStatus",
    "ActivityType",
    "MemorySuspiciousActivityStore",
    "SuspiciousActivity",
    "SuspiciousActivityStore",
    # Geo
    "GeoLocation",
    "GeoResolver",
    "StaticGeoResolver",
    "haversine_km",
]
