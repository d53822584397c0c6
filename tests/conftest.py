"""
Shared test fixtures and helpers for the Warden test suite.
"""

import pytest
import pytest_asyncio

from warden.testing import FrozenClock, build_test_stack


# ============================================================================
# Request Metadata
# ============================================================================

CHROME_WINDOWS = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
FIREFOX_LINUX = "Mozilla/5.0 (X11; Linux x86_64; rv:121.0) Gecko/20100101 Firefox/121.0"
SAFARI_IPHONE = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_2 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.2 Mobile/15E148 Safari/604.1"
)

IP_HOME = "10.0.0.1"
IP_OFFICE = "10.0.0.2"

PASSWORD = "Correct-Horse-42"


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def stack(clock):
    """Fully wired in-memory Warden."""
    return build_test_stack(clock=clock)


@pytest_asyncio.fixture
async def account(stack):
    """Verified client account with password ``PASSWORD``."""
    return await stack.create_account("alice@example.com", PASSWORD, username="alice")
