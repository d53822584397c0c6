"""
Test 6: Sessions System (sessions/)

Tests Session, SessionPolicy, MemorySessionStore, SessionManager
(find-or-extend, concurrency cap, sliding expiry, lazy expiry,
termination) and SessionReaper.
"""

import asyncio
import pytest
from datetime import timedelta

from warden.config import SessionConfig
from warden.sessions import (
    DeviceMetadata,
    MemorySessionStore,
    Session,
    SessionLimitExceededFault,
    SessionManager,
    SessionNotFoundFault,
    SessionPolicy,
    SessionReaper,
    TerminationReason,
    generate_session_token,
    token_digest,
)
from warden.testing import FrozenClock
from tests.conftest import CHROME_WINDOWS, FIREFOX_LINUX, IP_HOME, SAFARI_IPHONE


# ============================================================================
# Core
# ============================================================================

class TestSessionToken:

    def test_prefix_and_entropy(self):
        token = generate_session_token()
        assert token.startswith("sess_")
        assert len(token) == 5 + 43  # 32 bytes, unpadded base64url

    def test_unique(self):
        assert len({generate_session_token() for _ in range(100)}) == 100

    def test_digest_does_not_leak(self):
        token = generate_session_token()
        digest = token_digest(token)
        assert digest.startswith("sha256:")
        assert token not in digest


class TestSession:

    def _session(self, clock, **kwargs):
        return Session(
            id=Session.new_id(),
            token=generate_session_token(),
            account_id="acc_1",
            fingerprint="fp",
            expires_at=clock() + timedelta(hours=1),
            **kwargs,
        )

    def test_validity(self):
        clock = FrozenClock()
        session = self._session(clock)
        assert session.is_valid(clock())
        assert not session.is_valid(clock() + timedelta(hours=1))

    def test_terminate_once(self):
        clock = FrozenClock()
        session = self._session(clock)
        assert session.terminate(clock(), TerminationReason.LOGOUT) is True
        assert session.terminate(clock(), TerminationReason.EXPIRED) is False
        assert session.termination_reason == TerminationReason.LOGOUT
        assert not session.is_valid(clock())

    def test_to_dict(self):
        clock = FrozenClock()
        data = self._session(clock).to_dict()
        assert data["account_id"] == "acc_1"
        assert data["is_active"] is True


class TestSessionPolicy:

    def test_from_config(self):
        policy = SessionPolicy.from_config(SessionConfig(max_sessions_per_account=2))
        assert policy.concurrency.max_sessions_per_account == 2
        assert policy.lifetime.ttl == timedelta(hours=24)
        assert policy.lifetime.ttl_for(True) == timedelta(days=30)

    def test_limit_reached(self):
        policy = SessionPolicy.from_config(SessionConfig(max_sessions_per_account=2))
        assert not policy.concurrency.limit_reached(1)
        assert policy.concurrency.limit_reached(2)


# ============================================================================
# SessionManager
# ============================================================================

class TestSessionManager:

    def setup_method(self):
        self.clock = FrozenClock()
        self.store = MemorySessionStore()
        self.manager = SessionManager(self.store, SessionConfig(), clock=self.clock)

    @pytest.mark.asyncio
    async def test_create(self):
        session = await self.manager.create_session("acc_1", CHROME_WINDOWS, IP_HOME)
        assert session.token.startswith("sess_")
        assert session.device_name == "Chrome - Windows - Desktop"
        assert session.expires_at == self.clock() + timedelta(hours=24)
        assert session.is_active

    @pytest.mark.asyncio
    async def test_remember_me_ttl(self):
        normal = await self.manager.create_session("acc_1", CHROME_WINDOWS, IP_HOME)
        remembered = await self.manager.create_session("acc_1", FIREFOX_LINUX, IP_HOME, remember_me=True)
        assert remembered.expires_at == self.clock() + timedelta(days=30)
        assert remembered.expires_at > normal.expires_at

    @pytest.mark.asyncio
    async def test_metadata_is_stored(self):
        metadata = DeviceMetadata(screen_resolution="1920x1080", timezone="UTC", language="en")
        session = await self.manager.create_session("acc_1", CHROME_WINDOWS, IP_HOME, metadata=metadata)
        assert session.screen_resolution == "1920x1080"
        assert session.language == "en"

    @pytest.mark.asyncio
    async def test_same_device_reuses_session(self):
        first = await self.manager.create_session("acc_1", CHROME_WINDOWS, IP_HOME)
        self.clock.advance(hours=2)
        second = await self.manager.create_session("acc_1", CHROME_WINDOWS, IP_HOME)

        assert second.id == first.id
        assert second.token == first.token
        assert second.expires_at > first.expires_at
        assert second.last_activity_at == self.clock()
        assert len(await self.manager.list_active_sessions("acc_1")) == 1

    @pytest.mark.asyncio
    async def test_renew_on_login_never_shortens(self):
        first = await self.manager.create_session("acc_1", CHROME_WINDOWS, IP_HOME, remember_me=True)
        again = await self.manager.create_session("acc_1", CHROME_WINDOWS, IP_HOME)
        assert again.expires_at == first.expires_at
        assert again.remember_me is True

    @pytest.mark.asyncio
    async def test_concurrent_same_device_logins(self):
        sessions = await asyncio.gather(*[
            self.manager.create_session("acc_1", CHROME_WINDOWS, IP_HOME) for _ in range(5)
        ])
        assert len({s.id for s in sessions}) == 1
        assert await self.store.count_active("acc_1", self.clock()) == 1

    @pytest.mark.asyncio
    async def test_account_locks_are_released(self):
        await asyncio.gather(*[
            self.manager.create_session(f"acc_{i % 3}", CHROME_WINDOWS, IP_HOME) for i in range(9)
        ])
        assert self.store._account_locks == {}
        assert self.store._lock_users == {}

    @pytest.mark.asyncio
    async def test_account_lock_serializes_waiters(self):
        order = []

        async def worker(name):
            async with self.store.locked("acc_1"):
                order.append(f"{name}-in")
                await asyncio.sleep(0)
                order.append(f"{name}-out")

        await asyncio.gather(worker("a"), worker("b"), worker("c"))
        assert order == ["a-in", "a-out", "b-in", "b-out", "c-in", "c-out"]
        assert self.store._account_locks == {}

    @pytest.mark.asyncio
    async def test_limit_rejects_new_device(self):
        for i in range(4):
            await self.manager.create_session("acc_1", CHROME_WINDOWS, f"10.0.1.{i}")

        with pytest.raises(SessionLimitExceededFault) as exc_info:
            await self.manager.create_session("acc_1", CHROME_WINDOWS, "10.0.1.99")
        assert exc_info.value.active_count == 4

        # Existing devices still renew at the cap
        renewed = await self.manager.create_session("acc_1", CHROME_WINDOWS, "10.0.1.0")
        assert renewed.is_active
        assert await self.store.count_active("acc_1", self.clock()) == 4

    @pytest.mark.asyncio
    async def test_concurrent_new_devices_respect_limit(self):
        results = await asyncio.gather(*[
            self.manager.create_session("acc_1", CHROME_WINDOWS, f"10.0.2.{i}") for i in range(6)
        ], return_exceptions=True)
        created = [r for r in results if isinstance(r, Session)]
        rejected = [r for r in results if isinstance(r, SessionLimitExceededFault)]
        assert len(created) == 4
        assert len(rejected) == 2

    @pytest.mark.asyncio
    async def test_limit_is_per_account(self):
        for i in range(4):
            await self.manager.create_session("acc_1", CHROME_WINDOWS, f"10.0.1.{i}")
        session = await self.manager.create_session("acc_2", CHROME_WINDOWS, "10.0.1.0")
        assert session.account_id == "acc_2"

    @pytest.mark.asyncio
    async def test_validate_touches_activity(self):
        session = await self.manager.create_session("acc_1", CHROME_WINDOWS, IP_HOME)
        self.clock.advance(minutes=5)
        validated = await self.manager.validate_session(session.token)
        assert validated.last_activity_at == self.clock()
        assert validated.expires_at == session.expires_at

    @pytest.mark.asyncio
    async def test_validate_unknown(self):
        assert await self.manager.validate_session("sess_unknown") is None

    @pytest.mark.asyncio
    async def test_lazy_expiry(self):
        session = await self.manager.create_session("acc_1", CHROME_WINDOWS, IP_HOME)
        self.clock.advance(hours=25)
        assert await self.manager.validate_session(session.token) is None

        stored = await self.manager.get_session(session.token)
        assert stored.is_active is False
        assert stored.termination_reason == TerminationReason.EXPIRED

    @pytest.mark.asyncio
    async def test_expired_slot_frees_capacity(self):
        for i in range(4):
            await self.manager.create_session("acc_1", CHROME_WINDOWS, f"10.0.1.{i}")
        self.clock.advance(hours=25)
        session = await self.manager.create_session("acc_1", CHROME_WINDOWS, "10.0.1.99")
        assert session.is_active

    @pytest.mark.asyncio
    async def test_extend_only_below_threshold(self):
        session = await self.manager.create_session("acc_1", CHROME_WINDOWS, IP_HOME)

        self.clock.advance(hours=1)
        untouched = await self.manager.extend_session(session.id)
        assert untouched.expires_at == session.expires_at
        assert untouched.last_activity_at == self.clock()

        self.clock.advance(hours=22, minutes=45)
        extended = await self.manager.extend_session(session.id)
        assert extended.expires_at == self.clock() + timedelta(hours=24)

    @pytest.mark.asyncio
    async def test_extend_missing_session(self):
        with pytest.raises(SessionNotFoundFault):
            await self.manager.extend_session("missing")

    @pytest.mark.asyncio
    async def test_extend_terminated_session(self):
        session = await self.manager.create_session("acc_1", CHROME_WINDOWS, IP_HOME)
        await self.manager.terminate_session(session.token)
        with pytest.raises(SessionNotFoundFault):
            await self.manager.extend_session(session.id)

    @pytest.mark.asyncio
    async def test_terminate_is_idempotent(self):
        session = await self.manager.create_session("acc_1", CHROME_WINDOWS, IP_HOME)
        assert await self.manager.terminate_session(session.token) is True
        assert await self.manager.terminate_session(session.token) is False
        assert await self.manager.terminate_session("sess_unknown") is False
        assert await self.manager.validate_session(session.token) is None

    @pytest.mark.asyncio
    async def test_terminated_row_is_kept(self):
        session = await self.manager.create_session("acc_1", CHROME_WINDOWS, IP_HOME)
        await self.manager.terminate_session(session.token, TerminationReason.TERMINATED)
        rows = await self.store.list_by_account("acc_1")
        assert len(rows) == 1
        assert rows[0].terminated_at == self.clock()

    @pytest.mark.asyncio
    async def test_terminate_account_session_checks_owner(self):
        session = await self.manager.create_session("acc_1", CHROME_WINDOWS, IP_HOME)
        with pytest.raises(SessionNotFoundFault):
            await self.manager.terminate_account_session("acc_2", session.token)
        with pytest.raises(SessionNotFoundFault):
            await self.manager.terminate_account_session("acc_1", "sess_unknown")
        assert await self.manager.terminate_account_session("acc_1", session.token) is True
        assert await self.manager.terminate_account_session("acc_1", session.token) is False

    @pytest.mark.asyncio
    async def test_new_login_after_termination_creates_new_row(self):
        first = await self.manager.create_session("acc_1", CHROME_WINDOWS, IP_HOME)
        await self.manager.terminate_session(first.token)
        second = await self.manager.create_session("acc_1", CHROME_WINDOWS, IP_HOME)
        assert second.id != first.id

    @pytest.mark.asyncio
    async def test_terminate_all(self):
        await self.manager.create_session("acc_1", CHROME_WINDOWS, IP_HOME)
        await self.manager.create_session("acc_1", SAFARI_IPHONE, IP_HOME)
        other = await self.manager.create_session("acc_2", CHROME_WINDOWS, IP_HOME)

        tokens = await self.manager.terminate_all_sessions("acc_1")
        assert len(tokens) == 2
        assert await self.manager.list_active_sessions("acc_1") == []
        assert await self.manager.validate_session(other.token) is not None
        assert await self.manager.terminate_all_sessions("acc_1") == []

    @pytest.mark.asyncio
    async def test_list_active_most_recent_first(self):
        older = await self.manager.create_session("acc_1", CHROME_WINDOWS, IP_HOME)
        self.clock.advance(minutes=1)
        newer = await self.manager.create_session("acc_1", SAFARI_IPHONE, IP_HOME)
        listed = await self.manager.list_active_sessions("acc_1")
        assert [s.id for s in listed] == [newer.id, older.id]

    @pytest.mark.asyncio
    async def test_store_returns_copies(self):
        session = await self.manager.create_session("acc_1", CHROME_WINDOWS, IP_HOME)
        session.is_active = False
        assert (await self.manager.get_session(session.token)).is_active is True


# ============================================================================
# Reaper
# ============================================================================

class TestSessionReaper:

    def setup_method(self):
        self.clock = FrozenClock()
        self.manager = SessionManager(MemorySessionStore(), SessionConfig(), clock=self.clock)

    @pytest.mark.asyncio
    async def test_reap_flips_expired_rows(self):
        expired = await self.manager.create_session("acc_1", CHROME_WINDOWS, IP_HOME)
        self.clock.advance(hours=23)
        fresh = await self.manager.create_session("acc_1", SAFARI_IPHONE, IP_HOME)
        self.clock.advance(hours=2)

        reaper = SessionReaper(self.manager)
        assert await reaper.reap() == 1
        assert await reaper.reap() == 0

        assert (await self.manager.get_session(expired.token)).termination_reason == TerminationReason.EXPIRED
        assert (await self.manager.get_session(fresh.token)).is_active

    def test_default_interval_from_config(self):
        reaper = SessionReaper(self.manager)
        assert reaper.task.interval == 3600

    @pytest.mark.asyncio
    async def test_start_stop(self):
        reaper = SessionReaper(self.manager, interval=0.01)
        reaper.start()
        assert reaper.running
        await asyncio.sleep(0.03)
        await reaper.stop()
        assert not reaper.running
