"""
WardenAuth - Authentication Manager

Central coordinator for login, second-factor, token refresh and logout.
Orchestrates credential verification, lockout, risk scoring, session
creation and token issuance.
"""

from __future__ import annotations

import logging
from typing import Any

from warden.audit import AuditEvent, AuditEventType, AuditSink, LoggingAuditSink
from warden.config import LockoutConfig
from warden.faults import Fault
from warden.risk import LoginAttemptRecord, LoginContext, LoginHistoryRecorder, RiskEngine
from warden.sessions import (
    DeviceMetadata,
    Session,
    SessionManager,
    SessionNotFoundFault,
    TerminationReason,
    compute_fingerprint,
    token_digest,
)
from warden.utils.clock import Clock, utc_now

from .core import (
    AccessClaims,
    Account,
    LastLogin,
    LockoutReset,
    PasswordRehashed,
    SessionResult,
    TokenPair,
)
from .faults import (
    AUTH_ACCOUNT_LOCKED,
    AUTH_INVALID_CREDENTIALS,
    AUTH_REFRESH_TOKEN_INVALID,
    AUTH_SECOND_FACTOR_INVALID,
    AUTH_SECOND_FACTOR_REQUIRED,
)
from .hashing import PasswordHasher
from .mfa import SecondFactorVerifier
from .stores import AccountStore
from .tokens import TokenIssuer


def subject_for_email(email: str) -> str:
    """Grouping key for attempts against an email that matched no account."""
    return f"email:{Fault._hash_identifier(email)}"


class AuthManager:
    """
    Central authentication manager.

    Credential state machine (per account)::

        Unlocked --(failure, count < max)--> Unlocked
        Unlocked --(failure, count == max)--> Locked (until now + lockout)
        Locked   --(lock expires, success)--> Unlocked, count reset

    The lock is checked before the password so a locked account never
    costs a hash verification. Risk scoring runs on every successful
    login and is advisory: escalation never blocks the login.
    """

    def __init__(
        self,
        accounts: AccountStore,
        sessions: SessionManager,
        tokens: TokenIssuer,
        risk: RiskEngine,
        history: LoginHistoryRecorder,
        hasher: PasswordHasher | None = None,
        second_factor: SecondFactorVerifier | None = None,
        audit: AuditSink | None = None,
        lockout: LockoutConfig | None = None,
        clock: Clock | None = None,
        logger: logging.Logger | None = None,
    ):
        self.accounts = accounts
        self.sessions = sessions
        self.tokens = tokens
        self.risk = risk
        self.history = history
        self.hasher = hasher or PasswordHasher()
        self.clock = clock or utc_now
        self.second_factor = second_factor or SecondFactorVerifier(clock=self.clock)
        self.audit = audit or LoggingAuditSink()
        self.lockout = lockout or LockoutConfig()
        self.logger = logger or logging.getLogger("warden.auth")
        # Verified against for unknown emails so every failure costs one verify
        self._dummy_hash = self.hasher.hash("warden-timing-equalizer")

    # ========================================================================
    # Login
    # ========================================================================

    async def authenticate(
        self,
        email: str,
        password: str,
        ip_address: str,
        user_agent: str,
        remember_me: bool = False,
        metadata: DeviceMetadata | None = None,
    ) -> SessionResult | AUTH_SECOND_FACTOR_REQUIRED:
        """
        Authenticate with email and password.

        Returns:
            SessionResult, or an ``AUTH_SECOND_FACTOR_REQUIRED`` instance
            when the account has a second factor enabled (no session is
            created; continue with ``verify_second_factor``)

        Raises:
            AUTH_INVALID_CREDENTIALS: Unknown email, wrong password or
                deactivated account
            AUTH_ACCOUNT_LOCKED: Lock in effect, regardless of password
            SessionLimitExceededFault: New device and the session cap is reached
        """
        account = await self._check_credentials(email, password, ip_address, user_agent)

        if account.second_factor_enabled and account.second_factor_secret:
            self.logger.info("Second factor required for account %s", account.id)
            return AUTH_SECOND_FACTOR_REQUIRED(account_id=account.id)

        return await self._complete_login(
            account, ip_address, user_agent, remember_me, metadata, method="password",
        )

    async def verify_second_factor(
        self,
        email: str,
        password: str,
        code: str,
        ip_address: str,
        user_agent: str,
        remember_me: bool = False,
        metadata: DeviceMetadata | None = None,
    ) -> SessionResult:
        """
        Complete a login with a TOTP code or an unused backup code.

        The password is verified again; lockout applies as for
        ``authenticate``.

        Raises:
            AUTH_INVALID_CREDENTIALS: Bad credentials or second factor not enabled
            AUTH_ACCOUNT_LOCKED: Lock in effect
            AUTH_SECOND_FACTOR_INVALID: Wrong code and no matching backup code
        """
        account = await self._check_credentials(email, password, ip_address, user_agent)

        if not account.second_factor_enabled or not account.second_factor_secret:
            raise AUTH_INVALID_CREDENTIALS(email=email)

        if self.second_factor.verify_token(code, account.second_factor_secret):
            method = "totp"
        else:
            code_hash = self.second_factor.match_backup_code(code, account.backup_code_hashes)
            if code_hash is None or not await self.accounts.consume_backup_code(account.id, code_hash):
                await self._audit(
                    AuditEventType.SECOND_FACTOR_FAILED, account.id, ip_address, user_agent,
                )
                self.logger.info("Second factor rejected for account %s", account.id)
                raise AUTH_SECOND_FACTOR_INVALID()

            method = "backup_code"
            await self._audit(
                AuditEventType.BACKUP_CODE_USED, account.id, ip_address, user_agent,
                remaining=len(account.backup_code_hashes) - 1,
            )

        return await self._complete_login(
            account, ip_address, user_agent, remember_me, metadata, method=method,
        )

    async def _check_credentials(
        self, email: str, password: str, ip_address: str, user_agent: str
    ) -> Account:
        """Run the credential state machine; returns the account on success."""
        now = self.clock()
        account = await self.accounts.get_by_email(email)

        if account is None or not account.is_active():
            # Equalize timing with the wrong-password path
            await self.hasher.verify_async(self._dummy_hash, password)
            await self._record_failure(
                subject_for_email(email), None, ip_address, user_agent, reason="unknown_account",
            )
            raise AUTH_INVALID_CREDENTIALS(email=email)

        if account.is_locked(now):
            await self._record_failure(
                account.id, account.id, ip_address, user_agent, reason="locked",
            )
            raise AUTH_ACCOUNT_LOCKED(
                retry_after=account.lock_remaining(now).total_seconds(),
                account_id=account.id,
            )

        if not await self.hasher.verify_async(account.password_hash, password):
            result = await self.accounts.register_failed_login(
                account.id,
                self.lockout.max_failed_attempts,
                self.lockout.lockout_duration,
                now,
            )
            if result is not None:
                updated, newly_locked = result
                if newly_locked:
                    self.logger.warning(
                        "Account %s locked after %d failed attempts",
                        account.id, updated.failed_login_attempts,
                    )
                    await self._audit(
                        AuditEventType.ACCOUNT_LOCKED, account.id, ip_address, user_agent,
                        locked_until=updated.account_locked_until.isoformat(),
                    )
            await self._record_failure(
                account.id, account.id, ip_address, user_agent, reason="bad_password",
            )
            raise AUTH_INVALID_CREDENTIALS(email=email)

        if account.failed_login_attempts > 0 or account.account_locked_until is not None:
            account = await self.accounts.apply(account.id, LockoutReset(now), now) or account
            await self._audit(AuditEventType.ACCOUNT_UNLOCKED, account.id, ip_address, user_agent)

        if self.hasher.check_needs_rehash(account.password_hash):
            new_hash = await self.hasher.hash_async(password)
            account = await self.accounts.apply(account.id, PasswordRehashed(new_hash), now) or account
            self.logger.debug("Rehashed password for account %s", account.id)

        return account

    async def _record_failure(
        self,
        subject: str,
        account_id: str | None,
        ip_address: str,
        user_agent: str,
        reason: str,
    ) -> None:
        await self.history.record(LoginAttemptRecord(
            ip_address=ip_address,
            success=False,
            subject=subject,
            account_id=account_id,
            user_agent=user_agent or "",
            timestamp=self.clock(),
        ))
        await self._audit(
            AuditEventType.LOGIN_FAILED, account_id, ip_address, user_agent, reason=reason,
        )
        await self.risk.detect_brute_force_attack(ip_address)

    async def _complete_login(
        self,
        account: Account,
        ip_address: str,
        user_agent: str,
        remember_me: bool,
        metadata: DeviceMetadata | None,
        method: str,
    ) -> SessionResult:
        """Score, establish the session and issue tokens."""
        now = self.clock()
        fingerprint = compute_fingerprint(ip_address, user_agent, metadata)
        context = LoginContext(
            account_id=account.id,
            ip_address=ip_address,
            user_agent=user_agent or "",
            timestamp=now,
            fingerprint=fingerprint,
        )
        # Scored before this login joins the history
        assessment = await self.risk.analyze_login(context)

        session = await self.sessions.create_session(
            account.id, user_agent, ip_address, remember_me=remember_me, metadata=metadata,
        )
        tokens = await self.tokens.issue_tokens(
            account.id, account.email, account.role.value, session.token,
        )

        await self.history.record(LoginAttemptRecord(
            ip_address=ip_address,
            success=True,
            subject=account.id,
            account_id=account.id,
            user_agent=user_agent or "",
            fingerprint=fingerprint,
            timestamp=now,
        ))
        await self.accounts.apply(account.id, LastLogin(now), now)

        await self.risk.escalate(assessment)

        await self._audit(
            AuditEventType.SESSION_CREATED, account.id, ip_address, user_agent,
            session_id=session.id, device_name=session.device_name,
        )
        await self._audit(
            AuditEventType.LOGIN_SUCCESS, account.id, ip_address, user_agent,
            method=method, risk_score=assessment.risk_score,
        )
        self.logger.info(
            "Login for account %s via %s (risk %d)", account.id, method, assessment.risk_score,
        )
        return SessionResult(
            account_id=account.id, session=session, tokens=tokens, risk=assessment,
        )

    # ========================================================================
    # Tokens
    # ========================================================================

    async def issue_tokens(
        self,
        account_id: str,
        email: str,
        role: str,
        session_token: str | None = None,
    ) -> TokenPair:
        return await self.tokens.issue_tokens(account_id, email, role, session_token)

    async def refresh_tokens(self, refresh_token: str) -> TokenPair:
        """
        Exchange a refresh token for a new access token.

        With rotation (the default) the presented token is revoked and a
        new refresh token is returned; a token can be redeemed once.

        Raises:
            AUTH_REFRESH_TOKEN_INVALID: Unknown, revoked or expired token,
                deactivated account, or the bound session has ended
        """
        record = await self.tokens.redeem_refresh_token(refresh_token)

        account = await self.accounts.get(record.account_id)
        if account is None or not account.is_active():
            raise AUTH_REFRESH_TOKEN_INVALID()

        if record.session_token is not None:
            if await self.sessions.validate_session(record.session_token) is None:
                await self.tokens.revoke_refresh_token(refresh_token)
                raise AUTH_REFRESH_TOKEN_INVALID()

        if self.tokens.config.rotate_refresh_tokens:
            pair = await self.tokens.issue_tokens(
                account.id, account.email, account.role.value, record.session_token,
            )
        else:
            access_token, access_expires = self.tokens.mint_access_token(
                account.id, account.email, account.role.value, record.session_token,
            )
            pair = TokenPair(
                access_token=access_token,
                refresh_token=record.token,
                access_expires_at=access_expires,
                refresh_expires_at=record.expires_at,
            )

        await self._audit(AuditEventType.TOKEN_REFRESHED, account.id)
        return pair

    def verify_access_token(self, token: str) -> AccessClaims:
        """
        Verify signature, issuer/audience and expiry.

        Raises:
            AUTH_TOKEN_INVALID, AUTH_TOKEN_EXPIRED
        """
        return self.tokens.validate_access_token(token)

    async def validate_session(self, session_token: str) -> Session | None:
        return await self.sessions.validate_session(session_token)

    # ========================================================================
    # Logout & Sessions
    # ========================================================================

    async def logout(
        self,
        account_id: str,
        session_token: str | None = None,
        refresh_token: str | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> None:
        """
        Log out of one device, or of every device when no session token
        is given.

        Idempotent: repeating a logout is a no-op. The presented refresh
        token is revoked only if it belongs to the account.

        Raises:
            SessionNotFoundFault: Session token owned by another account
        """
        if refresh_token:
            record = await self.tokens.store.get(refresh_token)
            if record is not None and record.account_id == account_id:
                await self.tokens.revoke_refresh_token(refresh_token)

        if session_token:
            session = await self.sessions.get_session(session_token)
            if session is not None and session.account_id != account_id:
                raise SessionNotFoundFault(session_token=session_token)
            terminated = await self.sessions.terminate_session(session_token, TerminationReason.LOGOUT)
            await self.tokens.revoke_session_tokens(session_token)
            await self._audit(
                AuditEventType.LOGOUT, account_id, ip_address, user_agent,
                session=token_digest(session_token),
            )
            if terminated:
                await self._audit(
                    AuditEventType.SESSION_TERMINATED, account_id, ip_address, user_agent,
                    session_id=session.id, reason=TerminationReason.LOGOUT.value,
                )
            return

        await self._terminate_everything(
            account_id, TerminationReason.LOGOUT_ALL, ip_address, user_agent,
        )
        await self._audit(AuditEventType.LOGOUT, account_id, ip_address, user_agent, scope="all")

    async def list_active_sessions(self, account_id: str) -> list[Session]:
        return await self.sessions.list_active_sessions(account_id)

    async def terminate_session(self, account_id: str, session_token: str) -> bool:
        """
        Terminate one of the account's sessions (e.g. a lost device).

        Returns False if the session was already inactive.

        Raises:
            SessionNotFoundFault: Unknown token or owned by another account
        """
        terminated = await self.sessions.terminate_account_session(account_id, session_token)
        await self.tokens.revoke_session_tokens(session_token)
        if terminated:
            await self._audit(
                AuditEventType.SESSION_TERMINATED, account_id,
                session=token_digest(session_token), reason=TerminationReason.TERMINATED.value,
            )
        return terminated

    async def terminate_all_sessions(self, account_id: str) -> int:
        """Terminate every session and revoke every refresh token of the account."""
        return await self._terminate_everything(account_id, TerminationReason.LOGOUT_ALL)

    async def _terminate_everything(
        self,
        account_id: str,
        reason: TerminationReason,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> int:
        tokens = await self.sessions.terminate_all_sessions(account_id, reason)
        await self.tokens.revoke_account_tokens(account_id)
        if tokens:
            await self._audit(
                AuditEventType.SESSION_TERMINATED, account_id, ip_address, user_agent,
                count=len(tokens), reason=reason.value,
            )
        return len(tokens)

    # ========================================================================
    # Audit
    # ========================================================================

    async def _audit(
        self,
        event_type: AuditEventType,
        account_id: str | None,
        ip_address: str | None = None,
        user_agent: str | None = None,
        **details: Any,
    ) -> None:
        await self.audit.record(AuditEvent(
            event_type=event_type,
            actor_id=account_id,
            target_id=account_id,
            ip_address=ip_address,
            user_agent=user_agent,
            details=details,
            timestamp=self.clock(),
        ))
