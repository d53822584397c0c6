"""
WardenAuth - Password Hashing

Argon2id hashing with parameters from ``HashingConfig``, and the
password policy checked on signup and reset.
"""

from __future__ import annotations

import asyncio
import string

import argon2
from argon2.exceptions import InvalidHashError, VerificationError

from warden.config import HashingConfig


class PasswordHasher:
    """
    Argon2id password hasher.

    Encoded hashes carry their own parameters, so raising the cost in
    configuration only affects new hashes; ``check_needs_rehash`` tells
    the login path when a stored hash should be upgraded. The ``*_async``
    variants run in a worker thread to keep the event loop responsive.

    Example:
        >>> hasher = PasswordHasher()
        >>> encoded = hasher.hash("correct horse")
        >>> hasher.verify(encoded, "correct horse")
        True
    """

    def __init__(self, config: HashingConfig | None = None):
        self.config = config or HashingConfig()
        self._argon2 = argon2.PasswordHasher(
            time_cost=self.config.time_cost,
            memory_cost=self.config.memory_cost,
            parallelism=self.config.parallelism,
            hash_len=self.config.hash_len,
            salt_len=self.config.salt_len,
            type=argon2.Type.ID,
        )

    def hash(self, password: str) -> str:
        """Encoded form: ``$argon2id$v=19$m=...,t=...,p=...$salt$digest``."""
        return self._argon2.hash(password)

    def verify(self, password_hash: str, password: str) -> bool:
        """False on mismatch and on hashes argon2 cannot parse."""
        try:
            return self._argon2.verify(password_hash, password)
        except (VerificationError, InvalidHashError):
            return False

    def check_needs_rehash(self, password_hash: str) -> bool:
        try:
            return self._argon2.check_needs_rehash(password_hash)
        except InvalidHashError:
            return True

    async def hash_async(self, password: str) -> str:
        return await asyncio.to_thread(self.hash, password)

    async def verify_async(self, password_hash: str, password: str) -> bool:
        return await asyncio.to_thread(self.verify, password_hash, password)


# ============================================================================
# Password Policy
# ============================================================================

COMMON_PASSWORDS = frozenset({
    "password", "password1", "password123", "12345678", "123456789",
    "qwerty123", "qwertyuiop", "abc12345", "letmein1", "trustno1",
    "iloveyou", "sunshine1", "passw0rd", "welcome1", "admin123",
})

SPECIAL_CHARACTERS = frozenset(string.punctuation)


class PasswordPolicy:
    """
    Composition rules for new passwords.

    ``validate`` reports every violated rule at once so a signup form can
    show them together.
    """

    def __init__(
        self,
        min_length: int = 8,
        require_uppercase: bool = True,
        require_lowercase: bool = True,
        require_digit: bool = True,
        require_special: bool = False,
        common_passwords: frozenset[str] = COMMON_PASSWORDS,
    ):
        self.min_length = min_length
        self.common_passwords = common_passwords
        self.character_rules = [
            (test, f"Password must contain at least one {label}")
            for enabled, test, label in (
                (require_uppercase, str.isupper, "uppercase letter"),
                (require_lowercase, str.islower, "lowercase letter"),
                (require_digit, str.isdigit, "digit"),
                (require_special, SPECIAL_CHARACTERS.__contains__, "special character"),
            )
            if enabled
        ]

    def validate(self, password: str) -> tuple[bool, list[str]]:
        """Returns (is_valid, error_messages)."""
        errors = []
        if len(password) < self.min_length:
            errors.append(f"Password must be at least {self.min_length} characters")

        for test, message in self.character_rules:
            if not any(test(c) for c in password):
                errors.append(message)

        if password.lower() in self.common_passwords:
            errors.append("Password is too common")

        return not errors, errors
