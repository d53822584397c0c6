"""
WardenSessions - Device-bound session lifecycle.

Sessions are explicit, device-bound rows with sliding expiration and a
per-account concurrency cap.

Core exports:
- Session, TerminationReason: session rows
- SessionManager: lifecycle (create / extend / validate / terminate)
- SessionStore, MemorySessionStore: storage
- SessionPolicy: TTL and concurrency rules
- SessionReaper: background expiry sweep
- compute_fingerprint, parse_user_agent: device fingerprinting
"""

from .core import Session, TerminationReason, generate_session_token, token_digest
from .faults import SessionFault, SessionLimitExceededFault, SessionNotFoundFault
from .fingerprint import (
    DeviceInfo,
    DeviceMetadata,
    compute_fingerprint,
    create_device_name,
    detect_private_mode,
    parse_user_agent,
)
from .manager import SessionManager
from .policy import ConcurrencyPolicy, LifetimePolicy, SessionPolicy
from .reaper import SessionReaper
from .store import MemorySessionStore, SessionStore


__all__ = [
    # Core
    "Session",
    "TerminationReason",
    "generate_session_token",
    "token_digest",
    # Faults
    "SessionFault",
    "SessionLimitExceededFault",
    "SessionNotFoundFault",
    # Fingerprint
    "DeviceInfo",
    "DeviceMetadata",
    "compute_fingerprint",
    "create_device_name",
    "detect_private_mode",
    "parse_user_agent",
    # Lifecycle
    "SessionManager",
    "SessionReaper",
    # Policy
    "ConcurrencyPolicy",
    "LifetimePolicy",
    "SessionPolicy",
    # Stores
    "MemorySessionStore",
    "SessionStore",
]
