"""
WardenAuth - Account Lifecycle

Signup, email verification, password reset, second-factor enrollment
and deactivation. Every flow that ends an account's current access
terminates its sessions and revokes its refresh tokens.
"""

from __future__ import annotations

import hashlib
import logging
import secrets
import uuid
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from warden.audit import AuditEvent, AuditEventType, AuditSink, LoggingAuditSink
from warden.config import VerificationConfig
from warden.notify import Notifier
from warden.sessions import SessionManager, TerminationReason
from warden.utils.clock import Clock, utc_now

from .core import (
    Account,
    BackupCodesReplaced,
    Deactivation,
    EmailVerificationIssued,
    EmailVerified,
    PasswordChanged,
    PasswordResetIssued,
    Role,
    SecondFactorDisabled,
    SecondFactorEnabled,
    SecondFactorSetup,
)
from .faults import (
    AUTH_ACCOUNT_NOT_FOUND,
    AUTH_INVALID_CREDENTIALS,
    AUTH_PASSWORD_WEAK,
    AUTH_ROLE_NOT_ALLOWED,
    AUTH_SECOND_FACTOR_ALREADY_ENABLED,
    AUTH_SECOND_FACTOR_INVALID,
    AUTH_SECOND_FACTOR_NOT_ENROLLED,
    AUTH_VERIFICATION_TOKEN_INVALID,
)
from .hashing import PasswordHasher, PasswordPolicy
from .mfa import SecondFactorVerifier
from .stores import AccountStore
from .tokens import TokenIssuer


SELF_SIGNUP_ROLES = (Role.CLIENT, Role.DEVELOPER)


def hash_token(token: str) -> str:
    """Stored form of a one-time verification/reset token."""
    return hashlib.sha256(token.encode()).hexdigest()


@dataclass(frozen=True)
class SecondFactorEnrollment:
    """Shown to the account holder once; backup codes are stored hashed."""
    secret: str
    provisioning_uri: str
    backup_codes: list[str]

    def to_dict(self) -> dict[str, Any]:
        return {
            "secret": self.secret,
            "provisioning_uri": self.provisioning_uri,
            "backup_codes": list(self.backup_codes),
        }


class AccountService:
    """
    Account lifecycle operations.

    Example:
        >>> account = await service.register_account("a@x.com", "alice", "S3cure-pass")
        >>> await service.verify_email(token_from_mail)
    """

    def __init__(
        self,
        accounts: AccountStore,
        sessions: SessionManager,
        tokens: TokenIssuer,
        notifier: Notifier,
        hasher: PasswordHasher | None = None,
        policy: PasswordPolicy | None = None,
        second_factor: SecondFactorVerifier | None = None,
        audit: AuditSink | None = None,
        config: VerificationConfig | None = None,
        clock: Clock | None = None,
        logger: logging.Logger | None = None,
    ):
        self.accounts = accounts
        self.sessions = sessions
        self.tokens = tokens
        self.notifier = notifier
        self.hasher = hasher or PasswordHasher()
        self.policy = policy or PasswordPolicy()
        self.clock = clock or utc_now
        self.second_factor = second_factor or SecondFactorVerifier(clock=self.clock)
        self.audit = audit or LoggingAuditSink()
        self.config = config or VerificationConfig()
        self.logger = logger or logging.getLogger("warden.accounts")

    # ========================================================================
    # Signup & Email Verification
    # ========================================================================

    async def register_account(
        self,
        email: str,
        username: str,
        password: str,
        role: Role | str = Role.CLIENT,
    ) -> Account:
        """
        Create an unverified account and send the verification email.

        Raises:
            AUTH_ROLE_NOT_ALLOWED: Admin (or unknown) role requested
            AUTH_PASSWORD_WEAK: Password fails policy
            AUTH_ACCOUNT_EXISTS: Email or username taken
        """
        try:
            role = Role(role)
        except ValueError:
            raise AUTH_ROLE_NOT_ALLOWED(role=str(role)) from None
        if role not in SELF_SIGNUP_ROLES:
            raise AUTH_ROLE_NOT_ALLOWED(role=role.value)

        self._check_policy(password)

        now = self.clock()
        token = secrets.token_hex(self.config.token_bytes)
        account = Account(
            id=uuid.uuid4().hex,
            email=email.strip().lower(),
            username=username.strip(),
            password_hash=await self.hasher.hash_async(password),
            role=role,
            email_verification_token_hash=hash_token(token),
            email_verification_expires=now + self.config.email_verification_ttl,
            created_at=now,
            updated_at=now,
        )
        account = await self.accounts.create(account)

        await self._notify("verification", self.notifier.send_verification, account.email, token)
        await self._audit(AuditEventType.ACCOUNT_REGISTERED, account.id, role=role.value)
        self.logger.info("Registered account %s (%s)", account.id, role.value)
        return account

    async def verify_email(self, token: str) -> Account:
        """
        Raises:
            AUTH_VERIFICATION_TOKEN_INVALID: Unknown or expired token
        """
        now = self.clock()
        account = await self.accounts.get_by_verification_token(hash_token(token))
        if (
            account is None
            or account.email_verification_expires is None
            or account.email_verification_expires <= now
        ):
            raise AUTH_VERIFICATION_TOKEN_INVALID()

        account = await self.accounts.apply(account.id, EmailVerified(), now)
        await self._audit(AuditEventType.EMAIL_VERIFIED, account.id)
        return account

    async def resend_verification(self, email: str) -> None:
        """Issue a fresh verification token. Silent for unknown or verified emails."""
        account = await self.accounts.get_by_email(email)
        if account is None or not account.is_active() or account.email_verified:
            return

        now = self.clock()
        token = secrets.token_hex(self.config.token_bytes)
        await self.accounts.apply(
            account.id,
            EmailVerificationIssued(hash_token(token), now + self.config.email_verification_ttl),
            now,
        )
        await self._notify("verification", self.notifier.send_verification, account.email, token)

    # ========================================================================
    # Password Reset
    # ========================================================================

    async def request_password_reset(
        self,
        email: str,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> None:
        """
        Send a reset token if the email belongs to an active account.

        The outcome is identical whether or not the account exists.
        """
        account = await self.accounts.get_by_email(email)
        if account is None or not account.is_active():
            self.logger.debug("Password reset requested for unknown email")
            return

        now = self.clock()
        token = secrets.token_hex(self.config.token_bytes)
        await self.accounts.apply(
            account.id,
            PasswordResetIssued(hash_token(token), now + self.config.password_reset_ttl),
            now,
        )
        await self._notify("password_reset", self.notifier.send_password_reset, account.email, token)
        await self._audit(
            AuditEventType.PASSWORD_RESET_REQUESTED, account.id, ip_address, user_agent,
        )

    async def reset_password(
        self,
        token: str,
        new_password: str,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> Account:
        """
        Set a new password from a reset token.

        Clears the failure counter and lock, terminates every session and
        revokes every refresh token.

        Raises:
            AUTH_VERIFICATION_TOKEN_INVALID: Unknown or expired token
            AUTH_PASSWORD_WEAK: Password fails policy
        """
        now = self.clock()
        account = await self.accounts.get_by_reset_token(hash_token(token))
        if (
            account is None
            or not account.is_active()
            or account.password_reset_expires is None
            or account.password_reset_expires <= now
        ):
            raise AUTH_VERIFICATION_TOKEN_INVALID()

        self._check_policy(new_password)

        new_hash = await self.hasher.hash_async(new_password)
        account = await self.accounts.apply(account.id, PasswordChanged(new_hash), now)
        await self._end_access(account.id, TerminationReason.PASSWORD_RESET)
        await self._audit(AuditEventType.PASSWORD_RESET, account.id, ip_address, user_agent)
        self.logger.info("Password reset for account %s", account.id)
        return account

    # ========================================================================
    # Second Factor Enrollment
    # ========================================================================

    async def setup_second_factor(
        self,
        account_id: str,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> SecondFactorEnrollment:
        """
        Generate a pending secret and backup codes.

        The second factor is not enforced until ``enable_second_factor``
        confirms a code from the authenticator app.

        Raises:
            AUTH_ACCOUNT_NOT_FOUND
            AUTH_SECOND_FACTOR_ALREADY_ENABLED
        """
        account = await self._get_active(account_id)
        if account.second_factor_enabled:
            raise AUTH_SECOND_FACTOR_ALREADY_ENABLED()

        secret, uri = self.second_factor.generate_secret(account.email)
        codes = self.second_factor.generate_backup_codes()
        await self.accounts.apply(
            account.id,
            SecondFactorSetup(secret, tuple(self.second_factor.hash_backup_codes(codes))),
            self.clock(),
        )

        await self._notify(
            "second_factor_setup", self.notifier.send_second_factor_setup,
            account.email, secret, uri,
        )
        await self._audit(AuditEventType.SECOND_FACTOR_SETUP, account.id, ip_address, user_agent)
        return SecondFactorEnrollment(secret=secret, provisioning_uri=uri, backup_codes=codes)

    async def enable_second_factor(
        self,
        account_id: str,
        code: str,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> None:
        """
        Raises:
            AUTH_ACCOUNT_NOT_FOUND
            AUTH_SECOND_FACTOR_NOT_ENROLLED: No pending secret
            AUTH_SECOND_FACTOR_ALREADY_ENABLED
            AUTH_SECOND_FACTOR_INVALID: Code does not match the pending secret
        """
        account = await self._get_active(account_id)
        if account.second_factor_enabled:
            raise AUTH_SECOND_FACTOR_ALREADY_ENABLED()
        if not account.second_factor_secret:
            raise AUTH_SECOND_FACTOR_NOT_ENROLLED()

        await self._require_code(account, code, ip_address, user_agent)

        await self.accounts.apply(account.id, SecondFactorEnabled(), self.clock())
        await self._audit(AuditEventType.SECOND_FACTOR_ENABLED, account.id, ip_address, user_agent)
        self.logger.info("Second factor enabled for account %s", account.id)

    async def disable_second_factor(
        self,
        account_id: str,
        code: str,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> None:
        """
        Raises:
            AUTH_ACCOUNT_NOT_FOUND
            AUTH_SECOND_FACTOR_NOT_ENROLLED: Second factor not enabled
            AUTH_SECOND_FACTOR_INVALID
        """
        account = await self._get_active(account_id)
        if not account.second_factor_enabled:
            raise AUTH_SECOND_FACTOR_NOT_ENROLLED()

        await self._require_code(account, code, ip_address, user_agent)

        await self.accounts.apply(account.id, SecondFactorDisabled(), self.clock())
        await self._audit(AuditEventType.SECOND_FACTOR_DISABLED, account.id, ip_address, user_agent)
        self.logger.info("Second factor disabled for account %s", account.id)

    async def regenerate_backup_codes(self, account_id: str, code: str) -> list[str]:
        """Replace all backup codes; the old ones stop working."""
        account = await self._get_active(account_id)
        if not account.second_factor_enabled:
            raise AUTH_SECOND_FACTOR_NOT_ENROLLED()

        await self._require_code(account, code)

        codes = self.second_factor.generate_backup_codes()
        await self.accounts.apply(
            account.id,
            BackupCodesReplaced(tuple(self.second_factor.hash_backup_codes(codes))),
            self.clock(),
        )
        await self._audit(AuditEventType.BACKUP_CODES_REGENERATED, account.id)
        return codes

    async def _require_code(
        self,
        account: Account,
        code: str,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> None:
        if not self.second_factor.verify_token(code, account.second_factor_secret):
            await self._audit(
                AuditEventType.SECOND_FACTOR_FAILED, account.id, ip_address, user_agent,
            )
            raise AUTH_SECOND_FACTOR_INVALID()

    # ========================================================================
    # Deactivation
    # ========================================================================

    async def deactivate_account(self, account_id: str, password: str) -> None:
        """
        Self-service soft delete, confirmed by password.

        Raises:
            AUTH_ACCOUNT_NOT_FOUND
            AUTH_INVALID_CREDENTIALS: Wrong password
        """
        account = await self._get_active(account_id)
        if not await self.hasher.verify_async(account.password_hash, password):
            raise AUTH_INVALID_CREDENTIALS()

        await self._deactivate(account, actor_id=account.id)

    async def deactivate_account_by_admin(
        self,
        account_id: str,
        admin_id: str,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> None:
        """
        Raises:
            AUTH_ACCOUNT_NOT_FOUND
        """
        account = await self._get_active(account_id)
        await self._deactivate(account, actor_id=admin_id, ip_address=ip_address, user_agent=user_agent)

    async def _deactivate(
        self,
        account: Account,
        actor_id: str,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> None:
        now = self.clock()
        await self.accounts.apply(account.id, Deactivation(now), now)
        await self._end_access(account.id, TerminationReason.DEACTIVATED)
        await self.audit.record(AuditEvent(
            event_type=AuditEventType.ACCOUNT_DEACTIVATED,
            actor_id=actor_id,
            target_id=account.id,
            ip_address=ip_address,
            user_agent=user_agent,
            timestamp=now,
        ))
        self.logger.info("Deactivated account %s (by %s)", account.id, actor_id)

    # ========================================================================
    # Helpers
    # ========================================================================

    async def _get_active(self, account_id: str) -> Account:
        account = await self.accounts.get(account_id)
        if account is None or not account.is_active():
            raise AUTH_ACCOUNT_NOT_FOUND(account_id=account_id)
        return account

    def _check_policy(self, password: str) -> None:
        valid, errors = self.policy.validate(password)
        if not valid:
            raise AUTH_PASSWORD_WEAK(errors=errors)

    async def _end_access(self, account_id: str, reason: TerminationReason) -> None:
        await self.sessions.terminate_all_sessions(account_id, reason)
        await self.tokens.revoke_account_tokens(account_id)

    async def _notify(self, kind: str, send: Callable[..., Awaitable[None]], *args: Any) -> None:
        """Notifications are best effort: a failed send is logged, not raised."""
        try:
            await send(*args)
        except Exception:
            self.logger.exception("Failed to send %s notification", kind)

    async def _audit(
        self,
        event_type: AuditEventType,
        account_id: str,
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
