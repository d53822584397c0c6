"""
WardenFaults - Structured fault handling.

Errors in Warden are typed fault signals with a stable code, a caller-safe
public message and context, rather than bare exceptions.

Core exports:
- Fault: Base fault class
- FaultDomain: Domain taxonomy
- Severity: Severity levels
- ConfigInvalidFault: Configuration loading/validation failure
"""

from .core import (
    DOMAIN_DEFAULTS,
    Fault,
    FaultDomain,
    Severity,
)
from .domains import ConfigInvalidFault


__all__ = [
    "DOMAIN_DEFAULTS",
    "Fault",
    "FaultDomain",
    "Severity",
    "ConfigInvalidFault",
]
