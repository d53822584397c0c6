"""
WardenAuth - Second Factor

RFC 6238 TOTP codes plus single-use backup codes.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import secrets
import struct
from datetime import datetime
from urllib.parse import quote, urlencode

from warden.config import SecondFactorConfig
from warden.utils.clock import Clock, utc_now


# ============================================================================
# TOTP Provider (Time-based One-Time Password)
# ============================================================================


class TOTPProvider:
    """
    TOTP (Time-based One-Time Password) provider.

    Implements RFC 6238 with HMAC-SHA1. Compatible with Google
    Authenticator, Authy, etc.
    """

    def __init__(self, issuer: str = "Warden", digits: int = 6, period: int = 30):
        """
        Initialize TOTP provider.

        Args:
            issuer: Issuer name shown in authenticator apps
            digits: Number of digits in code (default 6)
            period: Time step in seconds (default 30)
        """
        self.issuer = issuer
        self.digits = digits
        self.period = period

    def generate_secret(self) -> str:
        """
        Generate random TOTP secret.

        Returns:
            Base32-encoded secret string (160 bits)
        """
        return base64.b32encode(secrets.token_bytes(20)).decode("ascii").rstrip("=")

    def generate_code(self, secret: str, timestamp: int) -> str:
        """
        Generate TOTP code for given secret and Unix time.

        Args:
            secret: Base32-encoded secret
            timestamp: Unix timestamp

        Returns:
            Zero-padded code string
        """
        counter = timestamp // self.period
        key = base64.b32decode(secret.upper() + "=" * (-len(secret) % 8))

        digest = hmac.new(key, struct.pack(">Q", counter), hashlib.sha1).digest()

        # Dynamic truncation
        offset = digest[-1] & 0x0F
        code = struct.unpack(">I", digest[offset : offset + 4])[0] & 0x7FFFFFFF

        return str(code % (10**self.digits)).zfill(self.digits)

    def verify_code(self, secret: str, code: str, timestamp: int, window: int = 1) -> bool:
        """
        Verify TOTP code.

        Args:
            secret: Base32-encoded secret
            code: User-provided code
            timestamp: Unix timestamp to verify against
            window: Adjacent time steps accepted on each side (clock skew)
        """
        code = code.strip().replace(" ", "")
        if len(code) != self.digits or not (code.isascii() and code.isdigit()):
            return False

        matched = False
        for offset in range(-window, window + 1):
            expected = self.generate_code(secret, timestamp + offset * self.period)
            # No early exit: every candidate is compared
            if secrets.compare_digest(code, expected):
                matched = True
        return matched

    def generate_provisioning_uri(self, secret: str, account_name: str) -> str:
        """
        Generate provisioning URI for QR code.

        Returns:
            otpauth:// URI for authenticator apps
        """
        label = quote(f"{self.issuer}:{account_name}")
        params = urlencode({
            "secret": secret,
            "issuer": self.issuer,
            "algorithm": "SHA1",
            "digits": self.digits,
            "period": self.period,
        })
        return f"otpauth://totp/{label}?{params}"


# ============================================================================
# Second Factor Verifier
# ============================================================================


class SecondFactorVerifier:
    """
    Secret generation, TOTP verification and backup code handling.

    Backup codes are shown to the account holder once in plaintext
    (format ``XXXX-XXXX-XXXX``) and stored only as SHA-256 hashes.
    Consuming a code removes its hash, so each code is valid once.

    Example:
        >>> verifier = SecondFactorVerifier()
        >>> secret, uri = verifier.generate_secret("a@x.com")
        >>> verifier.verify_token(verifier.totp.generate_code(secret, now), secret)
        True
    """

    def __init__(self, config: SecondFactorConfig | None = None, clock: Clock | None = None):
        self.config = config or SecondFactorConfig()
        self.clock = clock or utc_now
        self.totp = TOTPProvider(
            issuer=self.config.issuer,
            digits=self.config.digits,
            period=self.config.period,
        )

    def generate_secret(self, account_label: str) -> tuple[str, str]:
        """Returns (secret, provisioning_uri)."""
        secret = self.totp.generate_secret()
        return secret, self.totp.generate_provisioning_uri(secret, account_label)

    def current_code(self, secret: str, at: datetime | None = None) -> str:
        """Code for the time step containing ``at`` (default: now)."""
        return self.totp.generate_code(secret, int((at or self.clock()).timestamp()))

    def verify_token(self, code: str, secret: str, at: datetime | None = None) -> bool:
        """Check a TOTP code, allowing +-``valid_window`` time steps."""
        if not code or not secret:
            return False
        timestamp = int((at or self.clock()).timestamp())
        return self.totp.verify_code(secret, code, timestamp, window=self.config.valid_window)

    def generate_backup_codes(self, count: int | None = None) -> list[str]:
        """
        Generate backup recovery codes.

        Returns:
            List of distinct codes (format: XXXX-XXXX-XXXX)
        """
        count = count or self.config.backup_code_count
        codes: list[str] = []
        while len(codes) < count:
            raw = secrets.token_hex(6).upper()
            formatted = f"{raw[0:4]}-{raw[4:8]}-{raw[8:12]}"
            if formatted not in codes:
                codes.append(formatted)
        return codes

    @staticmethod
    def normalize_backup_code(code: str) -> str:
        """Accept lowercase and missing dashes."""
        raw = code.strip().upper().replace("-", "").replace(" ", "")
        if len(raw) != 12:
            return code.strip().upper()
        return f"{raw[0:4]}-{raw[4:8]}-{raw[8:12]}"

    @classmethod
    def hash_backup_code(cls, code: str) -> str:
        """SHA-256 hash of the normalized code."""
        return hashlib.sha256(cls.normalize_backup_code(code).encode()).hexdigest()

    def hash_backup_codes(self, codes: list[str]) -> list[str]:
        return [self.hash_backup_code(code) for code in codes]

    def match_backup_code(self, code: str, code_hashes: list[str]) -> str | None:
        """Return the stored hash matching ``code``, if any."""
        if not code:
            return None
        candidate = self.hash_backup_code(code)
        match = None
        for code_hash in code_hashes:
            if secrets.compare_digest(candidate, code_hash):
                match = code_hash
        return match

    def verify_backup_code(self, code: str, code_hashes: list[str]) -> tuple[bool, list[str]]:
        """
        Verify backup code and remove it.

        Returns:
            Tuple of (valid, remaining_hashes)
        """
        match = self.match_backup_code(code, code_hashes)
        if match is None:
            return False, list(code_hashes)
        return True, [h for h in code_hashes if h != match]
