"""
WardenNotify - Notifier interface and in-memory/logging backends.

Notifications are fire-and-forget from the core's perspective: the
orchestrator logs notifier failures and carries on.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from warden.utils.clock import utc_now


@runtime_checkable
class Notifier(Protocol):
    """Outbound user notifications."""

    async def send_verification(self, email: str, token: str) -> None:
        ...

    async def send_password_reset(self, email: str, token: str) -> None:
        ...

    async def send_second_factor_setup(self, email: str, secret: str, provisioning_uri: str) -> None:
        ...


@dataclass
class MailMessage:
    """Rendered message handed to a transport."""
    to: str
    subject: str
    body_text: str
    from_email: str
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    created_at: datetime = field(default_factory=utc_now)


class MailTransport(Protocol):
    """Delivery backend (SMTP, API provider, ...)."""

    async def send(self, message: MailMessage) -> None:
        ...


class LoggingMailTransport:
    """
    Transport that logs messages instead of sending them.

    Only the envelope is logged; bodies carry one-time tokens.
    """

    def __init__(self, logger: logging.Logger | None = None):
        self.logger = logger or logging.getLogger("warden.notify")

    async def send(self, message: MailMessage) -> None:
        self.logger.info(
            "Mail not sent (logging transport)",
            extra={"message_id": message.id, "to": message.to, "subject": message.subject},
        )


@dataclass
class SentNotification:
    kind: str
    email: str
    payload: dict[str, Any]


class MemoryNotifier:
    """Record notifications in an outbox for development/testing."""

    def __init__(self):
        self.outbox: list[SentNotification] = []

    async def send_verification(self, email: str, token: str) -> None:
        self.outbox.append(SentNotification("verification", email, {"token": token}))

    async def send_password_reset(self, email: str, token: str) -> None:
        self.outbox.append(SentNotification("password_reset", email, {"token": token}))

    async def send_second_factor_setup(self, email: str, secret: str, provisioning_uri: str) -> None:
        self.outbox.append(SentNotification(
            "second_factor_setup", email,
            {"secret": secret, "provisioning_uri": provisioning_uri},
        ))

    def last(self, kind: str | None = None) -> SentNotification | None:
        for sent in reversed(self.outbox):
            if kind is None or sent.kind == kind:
                return sent
        return None
