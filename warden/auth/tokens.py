"""
WardenAuth - Token Management

Signed stateless access tokens, opaque rotating refresh tokens, and the
signing key ring.
"""

from __future__ import annotations

import base64
import json
import logging
import secrets
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from functools import cached_property
from pathlib import Path
from typing import Any, Callable

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, ed25519, padding, rsa

from warden.config import TokenConfig
from warden.utils.clock import Clock, utc_now

from .core import AccessClaims, RefreshTokenRecord, TokenPair
from .faults import AUTH_REFRESH_TOKEN_INVALID, AUTH_TOKEN_EXPIRED, AUTH_TOKEN_INVALID
from .stores import RefreshTokenStore


# ============================================================================
# Key Management
# ============================================================================

class KeyAlgorithm:
    """Asymmetric signing algorithms (JOSE names)."""
    RS256 = "RS256"
    ES256 = "ES256"
    EdDSA = "EdDSA"

    ALL = (RS256, ES256, EdDSA)


class KeyStatus(str, Enum):
    """
    Key lifecycle: ACTIVE signs and verifies, RETIRED only verifies
    tokens minted before a rotation, REVOKED does neither.
    """
    ACTIVE = "active"
    RETIRED = "retired"
    REVOKED = "revoked"


_GENERATORS: dict[str, Callable[[], Any]] = {
    KeyAlgorithm.RS256: lambda: rsa.generate_private_key(public_exponent=65537, key_size=2048),
    KeyAlgorithm.ES256: lambda: ec.generate_private_key(ec.SECP256R1()),
    KeyAlgorithm.EdDSA: ed25519.Ed25519PrivateKey.generate,
}

# Extra positional arguments to ``sign``/``verify`` per algorithm
_SIGNATURE_PARAMS: dict[str, Callable[[], tuple]] = {
    KeyAlgorithm.RS256: lambda: (padding.PKCS1v15(), hashes.SHA256()),
    KeyAlgorithm.ES256: lambda: (ec.ECDSA(hashes.SHA256()),),
    KeyAlgorithm.EdDSA: lambda: (),
}


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _parse_iso(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


@dataclass
class KeyDescriptor:
    """
    One signing key, identified in token headers by ``kid``.

    The private half is optional: a ring loaded from a public-only export
    can verify but never sign.
    """
    kid: str
    algorithm: str
    public_key_pem: str
    private_key_pem: str | None = None
    status: KeyStatus = KeyStatus.ACTIVE
    created_at: datetime = field(default_factory=utc_now)
    retired_at: datetime | None = None
    revoked_at: datetime | None = None

    @classmethod
    def generate(cls, kid: str, algorithm: str = KeyAlgorithm.EdDSA) -> KeyDescriptor:
        try:
            private_key = _GENERATORS[algorithm]()
        except KeyError:
            raise ValueError(f"Unsupported algorithm: {algorithm}") from None

        return cls(
            kid=kid,
            algorithm=algorithm,
            public_key_pem=private_key.public_key().public_bytes(
                serialization.Encoding.PEM,
                serialization.PublicFormat.SubjectPublicKeyInfo,
            ).decode(),
            private_key_pem=private_key.private_bytes(
                serialization.Encoding.PEM,
                serialization.PrivateFormat.PKCS8,
                serialization.NoEncryption(),
            ).decode(),
        )

    @cached_property
    def _private_key(self) -> Any:
        return serialization.load_pem_private_key(self.private_key_pem.encode(), password=None)

    @cached_property
    def _public_key(self) -> Any:
        return serialization.load_pem_public_key(self.public_key_pem.encode())

    def is_active(self) -> bool:
        return self.status == KeyStatus.ACTIVE and self.private_key_pem is not None

    def can_verify(self) -> bool:
        return self.status != KeyStatus.REVOKED

    def sign(self, message: bytes) -> bytes:
        if self.private_key_pem is None:
            raise ValueError(f"Key {self.kid} has no private key")
        return self._private_key.sign(message, *_SIGNATURE_PARAMS[self.algorithm]())

    def verify(self, message: bytes, signature: bytes) -> bool:
        params = _SIGNATURE_PARAMS.get(self.algorithm)
        if params is None:
            return False
        try:
            self._public_key.verify(signature, message, *params())
        except InvalidSignature:
            return False
        return True

    def to_dict(self, include_private: bool = True) -> dict[str, Any]:
        data: dict[str, Any] = {
            "kid": self.kid,
            "alg": self.algorithm,
            "status": self.status.value,
            "public_pem": self.public_key_pem,
            "created_at": _iso(self.created_at),
            "retired_at": _iso(self.retired_at),
            "revoked_at": _iso(self.revoked_at),
        }
        if include_private and self.private_key_pem:
            data["private_pem"] = self.private_key_pem
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> KeyDescriptor:
        return cls(
            kid=data["kid"],
            algorithm=data["alg"],
            public_key_pem=data["public_pem"],
            private_key_pem=data.get("private_pem"),
            status=KeyStatus(data.get("status", KeyStatus.ACTIVE)),
            created_at=_parse_iso(data.get("created_at")) or utc_now(),
            retired_at=_parse_iso(data.get("retired_at")),
            revoked_at=_parse_iso(data.get("revoked_at")),
        )


class KeyRing:
    """
    The signing key plus every key still trusted for verification.

    Rotation generates a new key, makes it current and retires the old
    one; tokens signed before the rotation keep validating until they
    expire. Revoking a key invalidates its tokens immediately.

    Persisted as JSON (``to_file``/``from_file``) by ``warden keys``.
    """

    def __init__(self, keys: list[KeyDescriptor], current_kid: str | None = None):
        self.keys: dict[str, KeyDescriptor] = {k.kid: k for k in keys}
        if current_kid is None:
            current_kid = next((k.kid for k in keys if k.is_active()), None)
        current = self.keys.get(current_kid) if current_kid else None
        if current is None or not current.is_active():
            raise ValueError("Key ring has no active signing key")
        self.current_kid = current_kid

    @classmethod
    def generate(cls, algorithm: str = KeyAlgorithm.EdDSA, kid: str | None = None) -> KeyRing:
        """Ring holding one freshly generated signing key."""
        return cls([KeyDescriptor.generate(kid or _new_kid(), algorithm)])

    def get_signing_key(self) -> KeyDescriptor:
        key = self.keys[self.current_kid]
        if not key.is_active():
            raise ValueError(f"Signing key {self.current_kid} is not active")
        return key

    def get_verification_key(self, kid: str) -> KeyDescriptor | None:
        key = self.keys.get(kid)
        return key if key is not None and key.can_verify() else None

    def rotate(self, algorithm: str | None = None, kid: str | None = None) -> KeyDescriptor:
        """Add a new signing key (same algorithm by default) and retire the current one."""
        new_key = KeyDescriptor.generate(
            kid or _new_kid(), algorithm or self.get_signing_key().algorithm,
        )
        self.keys[new_key.kid] = new_key
        self.promote_key(new_key.kid)
        return new_key

    def promote_key(self, kid: str) -> None:
        if kid not in self.keys:
            raise ValueError(f"Unknown key: {kid}")
        if kid != self.current_kid:
            previous = self.keys[self.current_kid]
            previous.status = KeyStatus.RETIRED
            previous.retired_at = utc_now()
        self.keys[kid].status = KeyStatus.ACTIVE
        self.current_kid = kid

    def revoke_key(self, kid: str) -> None:
        key = self.keys.get(kid)
        if key is not None:
            key.status = KeyStatus.REVOKED
            key.revoked_at = utc_now()

    def to_dict(self) -> dict[str, Any]:
        return {
            "current_kid": self.current_kid,
            "keys": [key.to_dict() for key in self.keys.values()],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> KeyRing:
        return cls(
            [KeyDescriptor.from_dict(item) for item in data["keys"]],
            current_kid=data.get("current_kid"),
        )

    @classmethod
    def from_file(cls, path: Path) -> KeyRing:
        return cls.from_dict(json.loads(Path(path).read_text()))

    def to_file(self, path: Path) -> None:
        Path(path).write_text(json.dumps(self.to_dict(), indent=2))


def _new_kid() -> str:
    return f"key_{secrets.token_hex(4)}"


# ============================================================================
# Token Issuer
# ============================================================================

def _b64encode(data: bytes) -> str:
    """URL-safe base64 encode without padding."""
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode()


def _b64decode(data: str) -> bytes:
    """URL-safe base64 decode, restoring padding."""
    return base64.urlsafe_b64decode(data + "=" * (-len(data) % 4))


class TokenIssuer:
    """
    Token lifecycle.

    Responsibilities:
    - Mint signed, stateless access tokens ``{sub, email, role, sessionToken}``
    - Persist opaque refresh tokens (one row per issuance)
    - Validate access token signature and claims
    - Redeem refresh tokens, revoking them on use when rotation is enabled

    Access tokens cannot be revoked before they expire; terminating the
    session and revoking refresh tokens is the kill switch.
    """

    def __init__(
        self,
        key_ring: KeyRing,
        store: RefreshTokenStore,
        config: TokenConfig | None = None,
        clock: Clock | None = None,
        logger: logging.Logger | None = None,
    ):
        self.key_ring = key_ring
        self.store = store
        self.config = config or TokenConfig()
        self.clock = clock or utc_now
        self.logger = logger or logging.getLogger("warden.tokens")

    async def issue_tokens(
        self,
        account_id: str,
        email: str,
        role: str,
        session_token: str | None = None,
    ) -> TokenPair:
        """Mint an access token and persist a new refresh token."""
        access_token, access_expires = self.mint_access_token(account_id, email, role, session_token)
        record = await self.issue_refresh_token(account_id, session_token)
        return TokenPair(
            access_token=access_token,
            refresh_token=record.token,
            access_expires_at=access_expires,
            refresh_expires_at=record.expires_at,
        )

    def mint_access_token(
        self,
        account_id: str,
        email: str,
        role: str,
        session_token: str | None = None,
    ) -> tuple[str, datetime]:
        """
        Sign an access token.

        Format: header.payload.signature
        - header: {"alg": "EdDSA", "kid": "key_001", "typ": "JWT"}
        - payload: {"iss", "sub", "aud", "exp", "iat", "nbf", "jti",
                    "email", "role", "sessionToken"}
        """
        now = self.clock()
        expires = now + self.config.access_token_ttl
        payload: dict[str, Any] = {
            "iss": self.config.issuer,
            "sub": account_id,
            "aud": list(self.config.audience),
            "exp": int(expires.timestamp()),
            "iat": int(now.timestamp()),
            "nbf": int(now.timestamp()),
            "jti": f"at_{secrets.token_urlsafe(16)}",
            "email": email,
            "role": role,
        }
        if session_token:
            payload["sessionToken"] = session_token

        return self._sign(payload), expires

    async def issue_refresh_token(
        self, account_id: str, session_token: str | None = None
    ) -> RefreshTokenRecord:
        """Persist a new opaque refresh token."""
        now = self.clock()
        record = RefreshTokenRecord(
            token=secrets.token_hex(self.config.refresh_token_bytes),
            account_id=account_id,
            session_token=session_token,
            expires_at=now + self.config.refresh_token_ttl,
            created_at=now,
        )
        await self.store.save(record)
        return record

    async def redeem_refresh_token(self, token: str) -> RefreshTokenRecord:
        """
        Check a refresh token for use.

        With rotation enabled the token is revoked atomically here, so it
        can be redeemed at most once.

        Raises:
            AUTH_REFRESH_TOKEN_INVALID: Unknown, revoked or expired
        """
        now = self.clock()
        if self.config.rotate_refresh_tokens:
            record = await self.store.consume(token, now)
        else:
            record = await self.store.get(token)
            if record is not None and not record.is_usable(now):
                record = None

        if record is None:
            self.logger.info("Rejected refresh token")
            raise AUTH_REFRESH_TOKEN_INVALID()
        return record

    async def revoke_refresh_token(self, token: str) -> bool:
        return await self.store.revoke(token, self.clock())

    async def revoke_account_tokens(self, account_id: str) -> int:
        return await self.store.revoke_by_account(account_id, self.clock())

    async def revoke_session_tokens(self, session_token: str) -> int:
        return await self.store.revoke_by_session(session_token, self.clock())

    def validate_access_token(self, token: str) -> AccessClaims:
        """
        Validate and decode access token.

        Checks:
        1. Format (3 parts)
        2. Header (kid known and usable)
        3. Signature
        4. Issuer and audience
        5. Expiration / not-before

        Raises:
            AUTH_TOKEN_INVALID: Malformed, bad signature or wrong claims
            AUTH_TOKEN_EXPIRED: Past ``exp``
        """
        try:
            header_b64, payload_b64, signature_b64 = token.split(".")
            header = json.loads(_b64decode(header_b64))
            payload = json.loads(_b64decode(payload_b64))
            signature = _b64decode(signature_b64)
        except (ValueError, TypeError) as exc:
            raise AUTH_TOKEN_INVALID(reason="malformed") from exc

        if not isinstance(header, dict) or not isinstance(payload, dict):
            raise AUTH_TOKEN_INVALID(reason="malformed")
        if not isinstance(header.get("kid"), str) or not isinstance(header.get("alg"), str):
            raise AUTH_TOKEN_INVALID(reason="malformed")

        key = self.key_ring.get_verification_key(header["kid"])
        if key is None or header.get("alg") != key.algorithm:
            raise AUTH_TOKEN_INVALID(reason="unknown key")

        if not key.verify(f"{header_b64}.{payload_b64}".encode(), signature):
            raise AUTH_TOKEN_INVALID(reason="bad signature")

        if payload.get("iss") != self.config.issuer:
            raise AUTH_TOKEN_INVALID(reason="issuer mismatch")

        audience = payload.get("aud", [])
        if isinstance(audience, str):
            audience = [audience]
        if not set(audience) & set(self.config.audience):
            raise AUTH_TOKEN_INVALID(reason="audience mismatch")

        now = int(self.clock().timestamp())
        exp = payload.get("exp")
        if not isinstance(exp, int) or "sub" not in payload:
            raise AUTH_TOKEN_INVALID(reason="missing claims")
        if exp <= now:
            raise AUTH_TOKEN_EXPIRED()
        if payload.get("nbf", 0) > now:
            raise AUTH_TOKEN_INVALID(reason="not yet valid")

        return AccessClaims.from_payload(payload)

    def _sign(self, payload: dict[str, Any]) -> str:
        key = self.key_ring.get_signing_key()
        header = {"alg": key.algorithm, "kid": key.kid, "typ": "JWT"}

        header_b64 = _b64encode(json.dumps(header, separators=(",", ":")).encode())
        payload_b64 = _b64encode(json.dumps(payload, separators=(",", ":")).encode())
        signature = key.sign(f"{header_b64}.{payload_b64}".encode())

        return f"{header_b64}.{payload_b64}.{_b64encode(signature)}"
