"""
Test 3: Password Hashing (auth/hashing.py)

Tests Argon2id hashing, rehash detection and the password policy.
"""

import pytest

from warden.auth.hashing import PasswordHasher, PasswordPolicy
from warden.config import HashingConfig
from warden.testing import FAST_HASHING


# ============================================================================
# PasswordHasher
# ============================================================================

class TestPasswordHasher:

    def setup_method(self):
        self.hasher = PasswordHasher(FAST_HASHING)

    def test_hash_is_argon2id(self):
        encoded = self.hasher.hash("correct horse")
        assert encoded.startswith("$argon2id$")

    def test_hash_is_salted(self):
        assert self.hasher.hash("same") != self.hasher.hash("same")

    def test_verify(self):
        encoded = self.hasher.hash("correct horse")
        assert self.hasher.verify(encoded, "correct horse") is True
        assert self.hasher.verify(encoded, "wrong horse") is False

    def test_verify_corrupt_hash(self):
        assert self.hasher.verify("not-a-hash", "anything") is False

    def test_needs_rehash_on_parameter_change(self):
        encoded = self.hasher.hash("pw")
        assert self.hasher.check_needs_rehash(encoded) is False

        stronger = PasswordHasher(HashingConfig(time_cost=2, memory_cost=8192, parallelism=1))
        assert stronger.check_needs_rehash(encoded) is True

    def test_needs_rehash_on_foreign_hash(self):
        assert self.hasher.check_needs_rehash("$2b$12$invalid") is True

    @pytest.mark.asyncio
    async def test_async_variants(self):
        encoded = await self.hasher.hash_async("async pw")
        assert await self.hasher.verify_async(encoded, "async pw") is True
        assert await self.hasher.verify_async(encoded, "nope") is False


# ============================================================================
# PasswordPolicy
# ============================================================================

class TestPasswordPolicy:

    def setup_method(self):
        self.policy = PasswordPolicy()

    def test_strong_password(self):
        valid, errors = self.policy.validate("Correct-Horse-42")
        assert valid is True
        assert errors == []

    def test_collects_every_error(self):
        valid, errors = self.policy.validate("abc")
        assert valid is False
        assert len(errors) == 3  # length, uppercase, digit

    def test_common_password(self):
        valid, errors = PasswordPolicy(require_uppercase=False).validate("password123")
        assert valid is False
        assert "Password is too common" in errors

    def test_special_character_requirement(self):
        policy = PasswordPolicy(require_special=True)
        assert policy.validate("Abcdefg1")[0] is False
        assert policy.validate("Abcdefg1!")[0] is True
