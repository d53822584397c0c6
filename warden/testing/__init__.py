"""
Warden Testing - Helpers for tests of Warden and of applications using it.

Usage:
    from warden.testing import build_test_stack

    stack = build_test_stack()
    await stack.create_account("a@x.com", "pw1")
    result = await stack.auth.authenticate("a@x.com", "pw1", "10.0.0.1", UA)
    stack.clock.advance(minutes=16)
"""

from .clock import FrozenClock
from .stack import FAST_HASHING, TestStack, build_test_stack


__all__ = [
    "FAST_HASHING",
    "FrozenClock",
    "TestStack",
    "build_test_stack",
]
