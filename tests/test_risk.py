"""
Test 8: Risk System (risk/)

Tests login pattern extraction, per-login scoring, escalation,
brute-force and password-spray detection, activity review and the
periodic spray sweep.
"""

import asyncio
import pytest
from datetime import timedelta

from warden.audit import AuditEventType, MemoryAuditSink
from warden.config import RiskConfig
from warden.risk import (
    ActivityStatus,
    ActivityType,
    GeoLocation,
    LoginAttemptRecord,
    LoginContext,
    MemoryLoginHistory,
    MemorySuspiciousActivityStore,
    RiskEngine,
    RiskFactor,
    SpraySweep,
    StaticGeoResolver,
    haversine_km,
)
from warden.testing import FrozenClock


BERLIN = GeoLocation(52.52, 13.40, "DE", "Berlin")
NEW_YORK = GeoLocation(40.71, -74.00, "US", "New York")
POTSDAM = GeoLocation(52.39, 13.06, "DE", "Potsdam")


# ============================================================================
# Geo
# ============================================================================

class TestGeo:

    def test_haversine(self):
        distance = haversine_km(BERLIN, NEW_YORK)
        assert 6300 < distance < 6450
        assert haversine_km(BERLIN, BERLIN) == 0

    @pytest.mark.asyncio
    async def test_static_resolver(self):
        geo = StaticGeoResolver({
            "10.0.0.0/8": BERLIN,
            "10.9.0.0/16": POTSDAM,
            "203.0.113.7": NEW_YORK,
        })
        assert await geo.resolve("10.1.2.3") == BERLIN
        assert await geo.resolve("10.9.1.1") == POTSDAM
        assert await geo.resolve("203.0.113.7") == NEW_YORK
        assert await geo.resolve("192.168.1.1") is None
        assert await geo.resolve("not-an-ip") is None
        assert await geo.resolve("::1") is None


# ============================================================================
# Login History
# ============================================================================

class TestMemoryLoginHistory:

    @pytest.mark.asyncio
    async def test_queries(self):
        clock = FrozenClock()
        history = MemoryLoginHistory()
        start = clock()
        await history.record(LoginAttemptRecord("10.0.0.1", True, "acc_1", "acc_1", timestamp=start))
        await history.record(LoginAttemptRecord("10.0.0.1", False, "acc_1", "acc_1", timestamp=start))
        await history.record(LoginAttemptRecord(
            "10.0.0.2", False, "email:x", None, timestamp=start + timedelta(minutes=5),
        ))
        await history.record(LoginAttemptRecord(
            "10.0.0.1", True, "acc_1", "acc_1", timestamp=start + timedelta(minutes=10),
        ))

        logins = await history.successful_logins("acc_1", 10)
        assert [a.timestamp for a in logins] == [start + timedelta(minutes=10), start]
        assert len(await history.successful_logins("acc_1", 1)) == 1
        assert len(await history.failures_for_account("acc_1", start)) == 1
        assert len(await history.failures_from_ip("10.0.0.2", start)) == 1
        assert len(await history.failures_since(start + timedelta(minutes=1))) == 1
        assert len(await history.attempts_from_ip("10.0.0.1", start)) == 3

    @pytest.mark.asyncio
    async def test_bounded(self):
        history = MemoryLoginHistory(max_records=3)
        for i in range(5):
            await history.record(LoginAttemptRecord("10.0.0.1", False, f"acc_{i}"))
        assert len(history) == 3


# ============================================================================
# Engine
# ============================================================================

class TestRiskEngine:

    def setup_method(self):
        self.clock = FrozenClock()
        self.history = MemoryLoginHistory()
        self.activities = MemorySuspiciousActivityStore()
        self.audit = MemoryAuditSink()
        self.geo = StaticGeoResolver({"10.0.0.0/8": BERLIN, "203.0.113.0/24": NEW_YORK})
        self.engine = RiskEngine(
            self.history, self.activities, RiskConfig(),
            geo=self.geo, audit=self.audit, clock=self.clock,
        )

    async def _login(self, account_id="acc_1", ip="10.0.0.1", fingerprint="fp_laptop", at=None):
        await self.history.record(LoginAttemptRecord(
            ip_address=ip,
            success=True,
            subject=account_id,
            account_id=account_id,
            fingerprint=fingerprint,
            timestamp=at or self.clock(),
        ))

    async def _fail(self, subject="acc_1", ip="10.0.0.1", account_id="acc_1"):
        await self.history.record(LoginAttemptRecord(
            ip_address=ip,
            success=False,
            subject=subject,
            account_id=account_id,
            timestamp=self.clock(),
        ))

    def _context(self, account_id="acc_1", ip="10.0.0.1", fingerprint="fp_laptop"):
        return LoginContext(
            account_id=account_id,
            ip_address=ip,
            user_agent="ua",
            timestamp=self.clock(),
            fingerprint=fingerprint,
        )

    @pytest.mark.asyncio
    async def test_empty_pattern(self):
        pattern = await self.engine.get_login_pattern("acc_1")
        assert pattern.is_empty
        assert pattern.typical_ips == []

    @pytest.mark.asyncio
    async def test_login_pattern(self):
        await self._login(ip="10.0.0.1")
        await self._login(ip="10.0.0.1")
        await self._login(ip="10.0.0.2", fingerprint="fp_phone", at=self.clock() + timedelta(hours=3))

        pattern = await self.engine.get_login_pattern("acc_1")
        assert pattern.sample_size == 3
        assert pattern.typical_ips == ["10.0.0.1", "10.0.0.2"]
        assert pattern.typical_hours == [9, 12]
        assert set(pattern.typical_devices) == {"fp_laptop", "fp_phone"}
        assert pattern.last_login_ip == "10.0.0.2"

    @pytest.mark.asyncio
    async def test_first_login_scores_zero(self):
        assessment = await self.engine.analyze_login(self._context())
        assert assessment.risk_score == 0
        assert assessment.risk_factors == ()
        assert assessment.confidence == 0.2

    @pytest.mark.asyncio
    async def test_familiar_login_scores_zero(self):
        await self._login()
        self.clock.advance(days=1)
        assessment = await self.engine.analyze_login(self._context())
        assert assessment.risk_score == 0
        assert assessment.confidence == 0.28

    @pytest.mark.asyncio
    async def test_confidence_caps_at_one(self):
        for _ in range(12):
            await self._login()
        self.clock.advance(days=1)
        assessment = await self.engine.analyze_login(self._context())
        assert assessment.confidence == 1.0

    @pytest.mark.asyncio
    async def test_new_ip_and_device(self):
        await self._login()
        self.clock.advance(days=1)
        assessment = await self.engine.analyze_login(self._context(ip="10.0.0.9", fingerprint="fp_new"))
        assert assessment.risk_factors == (RiskFactor.NEW_DEVICE, RiskFactor.NEW_IP_ADDRESS)
        assert assessment.risk_score == 45
        assert assessment.primary_factor == RiskFactor.NEW_DEVICE

    @pytest.mark.asyncio
    async def test_unusual_hour(self):
        await self._login()
        self.clock.advance(hours=12)
        assessment = await self.engine.analyze_login(self._context())
        assert assessment.risk_factors == (RiskFactor.UNUSUAL_LOGIN_TIME,)
        assert assessment.risk_score == 15

    @pytest.mark.asyncio
    async def test_hour_tolerance_wraps_midnight(self):
        self.clock.set(self.clock().replace(hour=23))
        await self._login()
        self.clock.advance(hours=2)  # 01:00 next day
        assessment = await self.engine.analyze_login(self._context())
        assert RiskFactor.UNUSUAL_LOGIN_TIME not in assessment.risk_factors

    @pytest.mark.asyncio
    async def test_impossible_travel(self):
        await self._login(ip="10.0.0.1")
        self.clock.advance(hours=1)
        assessment = await self.engine.analyze_login(self._context(ip="203.0.113.5"))
        assert RiskFactor.IMPOSSIBLE_TRAVEL in assessment.risk_factors
        assert assessment.primary_factor == RiskFactor.IMPOSSIBLE_TRAVEL
        assert assessment.details["travel_speed_kmh"] > 900

    @pytest.mark.asyncio
    async def test_plausible_travel(self):
        await self._login(ip="10.0.0.1")
        self.clock.advance(hours=12)
        assessment = await self.engine.analyze_login(self._context(ip="203.0.113.5"))
        assert RiskFactor.IMPOSSIBLE_TRAVEL not in assessment.risk_factors

    @pytest.mark.asyncio
    async def test_no_travel_without_geo(self):
        engine = RiskEngine(self.history, self.activities, RiskConfig(), clock=self.clock)
        await self._login(ip="10.0.0.1")
        self.clock.advance(minutes=5)
        assessment = await engine.analyze_login(self._context(ip="203.0.113.5"))
        assert RiskFactor.IMPOSSIBLE_TRAVEL not in assessment.risk_factors

    @pytest.mark.asyncio
    async def test_high_velocity(self):
        await self._fail(subject="acc_2", account_id="acc_2")
        await self._fail(subject="email:abc", account_id=None)
        assessment = await self.engine.analyze_login(self._context())
        assert RiskFactor.HIGH_VELOCITY in assessment.risk_factors
        assert assessment.details["accounts_from_ip"] == 3

    @pytest.mark.asyncio
    async def test_velocity_window(self):
        await self._fail(subject="acc_2", account_id="acc_2")
        await self._fail(subject="acc_3", account_id="acc_3")
        self.clock.advance(minutes=11)
        assessment = await self.engine.analyze_login(self._context())
        assert RiskFactor.HIGH_VELOCITY not in assessment.risk_factors

    @pytest.mark.asyncio
    async def test_recent_failures(self):
        await self._fail()
        assessment = await self.engine.analyze_login(self._context())
        assert assessment.risk_factors == (RiskFactor.RECENT_FAILURES,)
        assert assessment.details["recent_failures"] == 1

    @pytest.mark.asyncio
    async def test_score_is_capped(self):
        await self._login(ip="10.0.0.1")
        await self._fail(subject="acc_1", ip="203.0.113.5")
        await self._fail(subject="acc_2", ip="203.0.113.5", account_id="acc_2")
        await self._fail(subject="acc_3", ip="203.0.113.5", account_id="acc_3")
        self.clock.advance(minutes=5)
        assessment = await self.engine.analyze_login(
            self._context(ip="203.0.113.5", fingerprint="fp_new")
        )
        assert assessment.risk_score == 100
        assert len(assessment.risk_factors) >= 4

    # ------------------------------------------------------------------
    # Escalation
    # ------------------------------------------------------------------

    @pytest.mark.asyncio
    async def test_escalate_below_threshold(self):
        await self._login()
        self.clock.advance(hours=12)
        assessment = await self.engine.analyze_login(self._context())
        assert await self.engine.escalate(assessment) is None
        assert await self.engine.list_suspicious_activities() == []

    @pytest.mark.asyncio
    async def test_escalate_at_threshold(self):
        await self._login()
        self.clock.advance(days=1)
        assessment = await self.engine.analyze_login(self._context(ip="10.0.0.9"))
        assert assessment.risk_score == 20

        activity = await self.engine.escalate(assessment)
        assert activity.activity_type == ActivityType.NEW_IP_ADDRESS
        assert activity.description == "Suspicious login detected with risk score: 20"
        assert activity.status == ActivityStatus.PENDING
        assert activity.details["risk_factors"] == ["new_ip_address"]

        events = self.audit.of_type(AuditEventType.SUSPICIOUS_ACTIVITY)
        assert len(events) == 1
        assert events[0].details["activity_id"] == activity.id

    # ------------------------------------------------------------------
    # Attack detection
    # ------------------------------------------------------------------

    @pytest.mark.asyncio
    async def test_brute_force_threshold(self):
        for i in range(9):
            await self._fail(subject=f"acc_{i}", account_id=f"acc_{i}", ip="198.51.100.1")
        assert await self.engine.detect_brute_force_attack("198.51.100.1") is None

        await self._fail(subject="acc_9", account_id="acc_9", ip="198.51.100.1")
        activity = await self.engine.detect_brute_force_attack("198.51.100.1")
        assert activity.activity_type == ActivityType.BRUTE_FORCE_ATTACK
        assert activity.description == "Brute force attack detected from IP: 198.51.100.1"
        assert activity.details["failed_attempts"] == 10
        assert activity.details["distinct_accounts"] == 10

    @pytest.mark.asyncio
    async def test_brute_force_flagged_once_per_window(self):
        for _ in range(12):
            await self._fail(ip="198.51.100.1")
        assert await self.engine.detect_brute_force_attack("198.51.100.1") is not None
        assert await self.engine.detect_brute_force_attack("198.51.100.1") is None

        self.clock.advance(minutes=16)
        for _ in range(10):
            await self._fail(ip="198.51.100.1")
        assert await self.engine.detect_brute_force_attack("198.51.100.1") is not None

    @pytest.mark.asyncio
    async def test_brute_force_window(self):
        for _ in range(9):
            await self._fail(ip="198.51.100.1")
        self.clock.advance(minutes=16)
        await self._fail(ip="198.51.100.1")
        assert await self.engine.detect_brute_force_attack("198.51.100.1") is None

    @pytest.mark.asyncio
    async def test_password_spray(self):
        for i in range(5):
            await self._fail(subject=f"acc_{i}", account_id=f"acc_{i}", ip="198.51.100.7")
            await self._fail(subject=f"acc_{i}", account_id=f"acc_{i}", ip="198.51.100.7")

        flagged = await self.engine.detect_password_spray_attack()
        assert len(flagged) == 1
        assert flagged[0].activity_type == ActivityType.PASSWORD_SPRAY_ATTACK
        assert flagged[0].ip_address == "198.51.100.7"
        assert flagged[0].details["distinct_accounts"] == 5

        assert await self.engine.detect_password_spray_attack() == []

    @pytest.mark.asyncio
    async def test_spray_requires_spread(self):
        for i in range(4):
            await self._fail(subject=f"acc_{i}", account_id=f"acc_{i}", ip="198.51.100.7")
        assert await self.engine.detect_password_spray_attack() == []

    @pytest.mark.asyncio
    async def test_concentrated_attack_is_not_spray(self):
        for i in range(5):
            await self._fail(subject=f"acc_{i}", account_id=f"acc_{i}", ip="198.51.100.7")
        for _ in range(3):
            await self._fail(subject="acc_0", account_id="acc_0", ip="198.51.100.7")
        assert await self.engine.detect_password_spray_attack() == []

    @pytest.mark.asyncio
    async def test_spray_window(self):
        for i in range(5):
            await self._fail(subject=f"acc_{i}", account_id=f"acc_{i}", ip="198.51.100.7")
        self.clock.advance(minutes=31)
        assert await self.engine.detect_password_spray_attack() == []

    # ------------------------------------------------------------------
    # Review
    # ------------------------------------------------------------------

    @pytest.mark.asyncio
    async def test_review_flow(self):
        for _ in range(10):
            await self._fail(ip="198.51.100.1")
        activity = await self.engine.detect_brute_force_attack("198.51.100.1")

        pending = await self.engine.list_suspicious_activities(ActivityStatus.PENDING)
        assert [a.id for a in pending] == [activity.id]

        updated = await self.engine.update_activity_status(
            activity.id, ActivityStatus.CONFIRMED, "admin_1",
        )
        assert updated.status == ActivityStatus.CONFIRMED
        assert updated.reviewed_by == "admin_1"
        assert updated.reviewed_at == self.clock()
        assert await self.engine.list_suspicious_activities(ActivityStatus.PENDING) == []

    @pytest.mark.asyncio
    async def test_review_unknown(self):
        assert await self.engine.update_activity_status("missing", ActivityStatus.REVIEWED, "admin_1") is None


# ============================================================================
# Spray Sweep
# ============================================================================

class TestSpraySweep:

    @pytest.mark.asyncio
    async def test_run_once(self):
        clock = FrozenClock()
        history = MemoryLoginHistory()
        engine = RiskEngine(history, MemorySuspiciousActivityStore(), clock=clock)
        for i in range(5):
            await history.record(LoginAttemptRecord(
                "198.51.100.7", False, f"acc_{i}", f"acc_{i}", timestamp=clock(),
            ))

        sweep = SpraySweep(engine)
        assert sweep.task.interval == 600
        flagged = await sweep.run_once()
        assert len(flagged) == 1

    @pytest.mark.asyncio
    async def test_start_stop(self):
        engine = RiskEngine(MemoryLoginHistory(), MemorySuspiciousActivityStore())
        sweep = SpraySweep(engine, interval=0.01)
        sweep.start()
        assert sweep.running
        await asyncio.sleep(0.03)
        await sweep.stop()
        assert not sweep.running
