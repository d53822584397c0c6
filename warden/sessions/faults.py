"""
WardenSessions - Fault definitions.

All session errors are structured Faults, not bare exceptions.
"""

from __future__ import annotations

from warden.faults import Fault, FaultDomain, Severity

from .core import token_digest


# ============================================================================
# Session Fault Base
# ============================================================================

class SessionFault(Fault):
    """Base class for session-related faults."""

    domain = FaultDomain.SESSION


class SessionNotFoundFault(SessionFault):
    """
    Session missing, inactive or expired.

    The client should re-authenticate.
    """

    code = "SESSION_NOT_FOUND"
    message = "Session not found or expired"
    public_message = "Session not found or expired"
    severity = Severity.WARN
    retryable = False

    def __init__(self, session_token: str | None = None, session_id: str | None = None, **kwargs):
        super().__init__(**kwargs)
        if session_token:
            self.context["session_token_hash"] = token_digest(session_token)
        if session_id:
            self.context["session_id"] = session_id


class SessionLimitExceededFault(SessionFault):
    """
    Too many concurrent sessions for the account.

    No session is evicted automatically; the account holder must log out
    another device first.
    """

    code = "SESSION_LIMIT_EXCEEDED"
    message = "Maximum active sessions reached"
    public_message = "Maximum active sessions reached. Please log out from another device first."
    severity = Severity.WARN
    retryable = False

    def __init__(self, account_id: str | None = None, active_count: int | None = None,
                 max_sessions: int | None = None, **kwargs):
        super().__init__(**kwargs)
        self.active_count = active_count
        self.max_sessions = max_sessions
        if account_id:
            self.context["account_id"] = account_id
        if active_count is not None:
            self.context["active_count"] = active_count
        if max_sessions is not None:
            self.context["max_sessions"] = max_sessions
            self.message = f"Maximum active sessions reached ({active_count}/{max_sessions})"
