"""
Warden - Authentication, session lifecycle and login-risk core.

Subsystems:
- warden.auth: credential verification, lockout, second factor, tokens
- warden.sessions: device-bound sessions with sliding expiry
- warden.risk: login risk scoring and attack detection
- warden.audit / warden.notify: audit sink and notifier collaborators
- warden.config: typed, injected configuration
"""

__version__ = "0.1.0"

from .config import ConfigLoader, WardenConfig, parse_duration
from .faults import ConfigInvalidFault, Fault, FaultDomain, Severity


__all__ = [
    "__version__",
    "ConfigInvalidFault",
    "ConfigLoader",
    "Fault",
    "FaultDomain",
    "Severity",
    "WardenConfig",
    "parse_duration",
]
