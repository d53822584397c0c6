"""
WardenNotify - Outbound account notifications.

Core exports:
- Notifier: protocol consumed by the auth core
- TemplateNotifier: Jinja2-rendered messages over a MailTransport
- LoggingMailTransport: development transport
- MemoryNotifier: outbox for tests
"""

from .base import (
    LoggingMailTransport,
    MailMessage,
    MailTransport,
    MemoryNotifier,
    Notifier,
    SentNotification,
)
from .mailer import TemplateNotifier


__all__ = [
    "LoggingMailTransport",
    "MailMessage",
    "MailTransport",
    "MemoryNotifier",
    "Notifier",
    "SentNotification",
    "TemplateNotifier",
]
