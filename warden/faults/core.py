"""
WardenFaults - Core types and fault taxonomy.

Defines:
- Fault base class
- FaultDomain, the functional area a fault belongs to
- Severity levels
"""

from __future__ import annotations

import hashlib
from enum import Enum
from typing import Any, NamedTuple, Optional


# ============================================================================
# Severity & Domain
# ============================================================================

class Severity(str, Enum):
    """How loudly a fault should be logged."""
    INFO = "info"
    WARN = "warn"
    ERROR = "error"
    FATAL = "fatal"


class FaultDomain(str, Enum):
    """Where a fault originated."""
    CONFIG = "config"
    SECURITY = "security"
    SESSION = "session"
    IO = "io"


class DomainDefaults(NamedTuple):
    severity: Severity
    retryable: bool


DOMAIN_DEFAULTS: dict[FaultDomain, DomainDefaults] = {
    FaultDomain.CONFIG: DomainDefaults(Severity.FATAL, False),
    FaultDomain.SECURITY: DomainDefaults(Severity.WARN, False),
    FaultDomain.SESSION: DomainDefaults(Severity.WARN, False),
    # Store and delivery failures are worth retrying
    FaultDomain.IO: DomainDefaults(Severity.ERROR, True),
}


# ============================================================================
# Fault - Base Class
# ============================================================================

class Fault(Exception):
    """
    Structured error with a stable code.

    Each fault has an internal ``message`` for logs and a ``public_message``
    that is safe to show to the caller, plus ``severity``, ``retryable``,
    an optional ``retry_after`` (seconds) and a free-form ``context``.
    Context never holds secrets; identifiers such as emails go in hashed.

    Subclasses declare ``code``, ``message`` and ``domain`` as class
    attributes. Unset severity and retryability come from the domain.
    A fault may also be returned as a value where the outcome is expected
    (``AUTH_SECOND_FACTOR_REQUIRED``).

    Example:
        ```python
        raise Fault(code="STORE_TIMEOUT", message="Account store timed out", domain=FaultDomain.IO)
        ```
    """

    code: Optional[str] = None
    message: Optional[str] = None
    public_message: Optional[str] = None
    domain: Optional[FaultDomain] = None
    severity: Optional[Severity] = None
    retryable: Optional[bool] = None
    retry_after: Optional[int] = None

    def __init__(
        self,
        code: str | None = None,
        message: str | None = None,
        *,
        domain: FaultDomain | None = None,
        severity: Optional[Severity] = None,
        retryable: Optional[bool] = None,
        retry_after: Optional[int] = None,
        public_message: Optional[str] = None,
        **context: Any,
    ):
        cls = type(self)
        self.code = cls.code if code is None else code
        self.message = cls.message if message is None else message
        self.domain = cls.domain if domain is None else FaultDomain(domain)
        if None in (self.code, self.message, self.domain):
            raise TypeError(f"{cls.__name__} requires code, message and domain")

        super().__init__(self.message)

        defaults = DOMAIN_DEFAULTS[self.domain]
        self.severity = severity or cls.severity or defaults.severity
        self.retryable = next(
            r for r in (retryable, cls.retryable, defaults.retryable) if r is not None
        )
        self.retry_after = cls.retry_after if retry_after is None else retry_after
        self.public_message = public_message or cls.public_message or self.message
        self.context: dict[str, Any] = dict(context)

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.code} {self.domain.value}/{self.severity.value}>"

    @staticmethod
    def _hash_identifier(identifier: str) -> str:
        """Short, normalized digest of an email or token for fault context."""
        digest = hashlib.sha256(identifier.strip().lower().encode()).hexdigest()
        return f"sha256:{digest[:16]}"

    def to_dict(self) -> dict[str, Any]:
        """Full representation for logs."""
        return {
            "code": self.code,
            "message": self.message,
            "domain": self.domain.value,
            "severity": self.severity.value,
            "retryable": self.retryable,
            "retry_after": self.retry_after,
            "context": self.context,
        }

    def to_public_dict(self) -> dict[str, Any]:
        """Caller-safe representation: code, public message, retry hint."""
        result: dict[str, Any] = {"code": self.code, "message": self.public_message}
        if self.retry_after is not None:
            result["retry_after"] = self.retry_after
        return result
