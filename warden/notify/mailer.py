"""
WardenNotify - Jinja2-rendered notifications.

Bodies live in ``warden/notify/templates/*.txt`` and are rendered with
an async Jinja2 environment, then handed to a ``MailTransport``.
"""

from __future__ import annotations

import logging
from typing import Any

from jinja2 import Environment, PackageLoader, StrictUndefined

from warden.config import VerificationConfig

from .base import MailMessage, MailTransport


class TemplateNotifier:
    """
    Render and send account notifications.

    Example:
        >>> notifier = TemplateNotifier(
        ...     LoggingMailTransport(),
        ...     sender="security@example.com",
        ...     base_url="https://app.example.com",
        ... )
        >>> await notifier.send_password_reset("a@x.com", token)
    """

    SUBJECTS = {
        "verification": "Verify your email address",
        "password_reset": "Reset your password",
        "second_factor_setup": "Set up two-factor authentication",
    }

    def __init__(
        self,
        transport: MailTransport,
        sender: str = "no-reply@warden.local",
        product: str = "Warden",
        base_url: str | None = None,
        verification: VerificationConfig | None = None,
        environment: Environment | None = None,
        logger: logging.Logger | None = None,
    ):
        self.transport = transport
        self.sender = sender
        self.product = product
        self.base_url = base_url.rstrip("/") if base_url else None
        self.verification = verification or VerificationConfig()
        self.env = environment or Environment(
            loader=PackageLoader("warden.notify", "templates"),
            autoescape=False,
            undefined=StrictUndefined,
            keep_trailing_newline=True,
            enable_async=True,
        )
        self.logger = logger or logging.getLogger("warden.notify")

    async def render(self, kind: str, **context: Any) -> str:
        template = self.env.get_template(f"{kind}.txt")
        return await template.render_async(
            product=self.product,
            base_url=self.base_url,
            **context,
        )

    async def send_verification(self, email: str, token: str) -> None:
        hours = int(self.verification.email_verification_ttl.total_seconds() // 3600)
        await self._send("verification", email, token=token, expires_hours=hours)

    async def send_password_reset(self, email: str, token: str) -> None:
        hours = int(self.verification.password_reset_ttl.total_seconds() // 3600)
        await self._send("password_reset", email, token=token, expires_hours=max(hours, 1))

    async def send_second_factor_setup(self, email: str, secret: str, provisioning_uri: str) -> None:
        await self._send(
            "second_factor_setup", email, secret=secret, provisioning_uri=provisioning_uri,
        )

    async def _send(self, kind: str, email: str, **context: Any) -> None:
        body = await self.render(kind, **context)
        message = MailMessage(
            to=email,
            subject=self.SUBJECTS[kind],
            body_text=body,
            from_email=self.sender,
        )
        await self.transport.send(message)
        self.logger.debug("Sent %s notification %s", kind, message.id)
