"""
WardenFaults - Domain-specific fault types shared across subsystems.
"""

from typing import Any

from .core import Fault, FaultDomain, Severity


# ============================================================================
# CONFIG Faults
# ============================================================================

class ConfigInvalidFault(Fault):
    """Configuration value is invalid."""

    domain = FaultDomain.CONFIG
    severity = Severity.FATAL
    retryable = False

    def __init__(self, key: str, reason: str, **context: Any):
        super().__init__(
            code="CONFIG_INVALID",
            message=f"Configuration key '{key}' is invalid: {reason}",
            key=key,
            reason=reason,
            **context,
        )
