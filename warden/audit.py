"""
WardenAudit - Append-only security event log.

The core emits structured events (login success/failure, lock/unlock,
session lifecycle, second-factor changes, suspicious activity) to an
``AuditSink``. Storage of the log belongs to the sink.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Protocol

from warden.utils.clock import utc_now


class AuditEventType(str, Enum):
    """Audit event taxonomy."""
    LOGIN_SUCCESS = "login_success"
    LOGIN_FAILED = "login_failed"
    ACCOUNT_LOCKED = "account_locked"
    ACCOUNT_UNLOCKED = "account_unlocked"
    LOGOUT = "logout"
    SESSION_CREATED = "session_created"
    SESSION_TERMINATED = "session_terminated"
    TOKEN_REFRESHED = "token_refreshed"
    SECOND_FACTOR_SETUP = "second_factor_setup"
    SECOND_FACTOR_ENABLED = "second_factor_enabled"
    SECOND_FACTOR_DISABLED = "second_factor_disabled"
    SECOND_FACTOR_FAILED = "second_factor_failed"
    BACKUP_CODE_USED = "backup_code_used"
    BACKUP_CODES_REGENERATED = "backup_codes_regenerated"
    ACCOUNT_REGISTERED = "account_registered"
    EMAIL_VERIFIED = "email_verified"
    PASSWORD_RESET_REQUESTED = "password_reset_requested"
    PASSWORD_RESET = "password_reset"
    ACCOUNT_DEACTIVATED = "account_deactivated"
    SUSPICIOUS_ACTIVITY = "suspicious_activity"


@dataclass
class AuditEvent:
    """One audit record: who did what to whom, from where."""
    event_type: AuditEventType
    actor_id: str | None = None
    target_id: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None
    details: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=utc_now)
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "event_type": self.event_type.value,
            "actor_id": self.actor_id,
            "target_id": self.target_id,
            "ip_address": self.ip_address,
            "user_agent": self.user_agent,
            "details": dict(self.details),
            "timestamp": self.timestamp.isoformat(),
        }


class AuditSink(Protocol):
    """Append-only event log collaborator."""

    async def record(self, event: AuditEvent) -> None:
        ...


class LoggingAuditSink:
    """
    Emit each event as one structured log record.

    The full event is attached as ``record.audit`` for handlers and
    formatters that ship it elsewhere.
    """

    def __init__(self, logger: logging.Logger | None = None, level: int = logging.INFO):
        self.logger = logger or logging.getLogger("warden.audit")
        self.level = level

    async def record(self, event: AuditEvent) -> None:
        self.logger.log(
            self.level,
            "audit %s actor=%s target=%s",
            event.event_type.value,
            event.actor_id,
            event.target_id,
            extra={"audit": event.to_dict()},
        )


class MemoryAuditSink:
    """In-memory audit log for development/testing."""

    def __init__(self):
        self.events: list[AuditEvent] = []

    async def record(self, event: AuditEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type: AuditEventType) -> list[AuditEvent]:
        return [e for e in self.events if e.event_type == event_type]

    def clear(self) -> None:
        self.events.clear()
