"""
WardenRisk - Risk Scoring Engine

Scores each login against the account's historical pattern and flags
brute-force and password-spray activity from the attempt log.

Risk scoring is detective, not preventive: nothing here blocks a login.
Assessments at or above ``RiskConfig.escalation_threshold`` are stored
as suspicious activity and sent to the audit sink.
"""

from __future__ import annotations

import logging
from collections import Counter, defaultdict

from warden.audit import AuditEvent, AuditEventType, AuditSink
from warden.config import RiskConfig
from warden.utils.clock import Clock, utc_now
from warden.utils.periodic import PeriodicTask

from .activity import (
    ActivityStatus,
    ActivityType,
    SuspiciousActivity,
    SuspiciousActivityStore,
)
from .core import LoginContext, LoginPattern, RiskAssessment, RiskFactor
from .geo import GeoResolver, haversine_km
from .history import LoginHistoryQuery


def _hour_distance(a: int, b: int) -> int:
    """Distance between two hours on a 24h clock."""
    diff = abs(a - b) % 24
    return min(diff, 24 - diff)


class RiskEngine:
    """
    Heuristic login risk scoring.

    Factors and default weights:
    - new IP address (20), unusual hour (15), new device (25) and
      impossible travel (40): compared against the login pattern, skipped
      when the account has no history
    - high velocity (30): many distinct accounts tried from one IP
    - recent failures (10): failed attempts on this account within the
      brute-force window

    The score is the capped sum of weights. Confidence grows with the
    number of historical logins the pattern is built from.
    """

    def __init__(
        self,
        history: LoginHistoryQuery,
        activities: SuspiciousActivityStore,
        config: RiskConfig | None = None,
        geo: GeoResolver | None = None,
        audit: AuditSink | None = None,
        clock: Clock | None = None,
        logger: logging.Logger | None = None,
    ):
        self.history = history
        self.activities = activities
        self.config = config or RiskConfig()
        self.geo = geo
        self.audit = audit
        self.clock = clock or utc_now
        self.logger = logger or logging.getLogger("warden.risk")

    # ------------------------------------------------------------------
    # Login patterns
    # ------------------------------------------------------------------

    async def get_login_pattern(self, account_id: str) -> LoginPattern:
        """Summarize the most recent successful logins of an account."""
        logins = await self.history.successful_logins(account_id, self.config.history_limit)
        if not logins:
            return LoginPattern(account_id=account_id)

        ips = Counter(a.ip_address for a in logins)
        hours = Counter(a.timestamp.hour for a in logins)
        devices = Counter(a.fingerprint for a in logins if a.fingerprint)

        return LoginPattern(
            account_id=account_id,
            typical_ips=[ip for ip, _ in ips.most_common()],
            typical_hours=sorted(hours),
            typical_devices=[d for d, _ in devices.most_common()],
            last_login_at=logins[0].timestamp,
            last_login_ip=logins[0].ip_address,
            sample_size=len(logins),
        )

    # ------------------------------------------------------------------
    # Scoring
    # ------------------------------------------------------------------

    async def analyze_login(self, context: LoginContext) -> RiskAssessment:
        """
        Score one login.

        Must run before the login itself is appended to the history, or the
        login would be compared against itself.
        """
        cfg = self.config
        pattern = await self.get_login_pattern(context.account_id)
        weights: dict[RiskFactor, int] = {}
        details: dict[str, object] = {}

        if not pattern.is_empty:
            if context.ip_address not in pattern.typical_ips:
                weights[RiskFactor.NEW_IP_ADDRESS] = cfg.weight_new_ip

            hour = context.timestamp.hour
            if all(_hour_distance(hour, h) > cfg.unusual_hour_tolerance for h in pattern.typical_hours):
                weights[RiskFactor.UNUSUAL_LOGIN_TIME] = cfg.weight_unusual_hour

            if context.fingerprint and context.fingerprint not in pattern.typical_devices:
                weights[RiskFactor.NEW_DEVICE] = cfg.weight_new_device

            speed = await self._travel_speed(pattern, context)
            if speed is not None:
                details["travel_speed_kmh"] = round(speed, 1)
                if speed > cfg.impossible_travel_kmh:
                    weights[RiskFactor.IMPOSSIBLE_TRAVEL] = cfg.weight_impossible_travel

        now = context.timestamp
        recent = await self.history.attempts_from_ip(context.ip_address, now - cfg.velocity_window)
        subjects = {a.subject for a in recent} | {context.account_id}
        details["accounts_from_ip"] = len(subjects)
        if len(subjects) >= cfg.velocity_account_threshold:
            weights[RiskFactor.HIGH_VELOCITY] = cfg.weight_velocity

        failures = await self.history.failures_for_account(
            context.account_id, now - cfg.brute_force_window
        )
        if failures:
            details["recent_failures"] = len(failures)
            weights[RiskFactor.RECENT_FAILURES] = cfg.weight_recent_failures

        # Heaviest first; ties keep detection order
        factors = tuple(sorted(weights, key=lambda f: weights[f], reverse=True))
        score = min(100, sum(weights.values()))

        if pattern.is_empty:
            confidence = 0.2
        else:
            sample = min(pattern.sample_size, cfg.confident_sample_size)
            confidence = round(0.2 + 0.8 * sample / cfg.confident_sample_size, 2)

        return RiskAssessment(
            risk_score=score,
            risk_factors=factors,
            confidence=confidence,
            context=context,
            details=details,
        )

    async def _travel_speed(self, pattern: LoginPattern, context: LoginContext) -> float | None:
        """Implied speed in km/h from the previous login, if locatable."""
        if (
            self.geo is None
            or pattern.last_login_ip is None
            or pattern.last_login_at is None
            or pattern.last_login_ip == context.ip_address
        ):
            return None

        previous = await self.geo.resolve(pattern.last_login_ip)
        current = await self.geo.resolve(context.ip_address)
        if previous is None or current is None:
            return None

        distance = haversine_km(previous, current)
        hours = (context.timestamp - pattern.last_login_at).total_seconds() / 3600
        # Clamp to one second so simultaneous logins still yield a finite speed
        return distance / max(hours, 1 / 3600)

    async def escalate(self, assessment: RiskAssessment) -> SuspiciousActivity | None:
        """
        Store and audit an assessment at or above the escalation threshold.

        The activity type is the heaviest contributing factor.
        """
        if assessment.risk_score < self.config.escalation_threshold or not assessment.risk_factors:
            return None

        context = assessment.context
        activity = SuspiciousActivity(
            activity_type=ActivityType.from_factor(assessment.primary_factor),
            description=f"Suspicious login detected with risk score: {assessment.risk_score}",
            account_id=context.account_id,
            ip_address=context.ip_address,
            user_agent=context.user_agent,
            risk_score=assessment.risk_score,
            details={
                "risk_factors": [f.value for f in assessment.risk_factors],
                "confidence": assessment.confidence,
                **assessment.details,
            },
            detected_at=self.clock(),
        )
        await self._flag(activity)
        return activity

    # ------------------------------------------------------------------
    # Attack detection
    # ------------------------------------------------------------------

    async def detect_brute_force_attack(self, ip_address: str) -> SuspiciousActivity | None:
        """
        Flag an IP with too many recent failures across any accounts.

        At most one flag per IP per window.
        """
        cfg = self.config
        since = self.clock() - cfg.brute_force_window
        failures = await self.history.failures_from_ip(ip_address, since)
        if len(failures) < cfg.brute_force_threshold:
            return None

        if await self.activities.find_since(ActivityType.BRUTE_FORCE_ATTACK, ip_address, since):
            return None

        targets = {a.subject for a in failures}
        activity = SuspiciousActivity(
            activity_type=ActivityType.BRUTE_FORCE_ATTACK,
            description=f"Brute force attack detected from IP: {ip_address}",
            ip_address=ip_address,
            risk_score=100,
            details={
                "failed_attempts": len(failures),
                "distinct_accounts": len(targets),
                "window_seconds": int(cfg.brute_force_window.total_seconds()),
            },
            detected_at=self.clock(),
        )
        await self._flag(activity)
        return activity

    async def detect_password_spray_attack(self) -> list[SuspiciousActivity]:
        """
        Sweep recent failures for spray patterns.

        A source is spraying when it failed against at least
        ``spray_min_accounts`` distinct accounts while no single account
        took more than ``spray_max_attempts_per_account`` attempts.
        """
        cfg = self.config
        since = self.clock() - cfg.spray_window
        failures = await self.history.failures_since(since)

        per_ip: dict[str, Counter] = defaultdict(Counter)
        for attempt in failures:
            per_ip[attempt.ip_address][attempt.subject] += 1

        flagged = []
        for ip_address, per_account in per_ip.items():
            if len(per_account) < cfg.spray_min_accounts:
                continue
            if max(per_account.values()) > cfg.spray_max_attempts_per_account:
                continue
            if await self.activities.find_since(ActivityType.PASSWORD_SPRAY_ATTACK, ip_address, since):
                continue

            activity = SuspiciousActivity(
                activity_type=ActivityType.PASSWORD_SPRAY_ATTACK,
                description=f"Password spray attack detected from IP: {ip_address}",
                ip_address=ip_address,
                risk_score=100,
                details={
                    "distinct_accounts": len(per_account),
                    "failed_attempts": sum(per_account.values()),
                    "window_seconds": int(cfg.spray_window.total_seconds()),
                },
                detected_at=self.clock(),
            )
            await self._flag(activity)
            flagged.append(activity)

        if flagged:
            self.logger.warning("Spray sweep flagged %d source(s)", len(flagged))
        return flagged

    # ------------------------------------------------------------------
    # Review
    # ------------------------------------------------------------------

    async def list_suspicious_activities(
        self, status: ActivityStatus | None = None
    ) -> list[SuspiciousActivity]:
        return await self.activities.list_by_status(status)

    async def update_activity_status(
        self, activity_id: str, status: ActivityStatus, reviewer_id: str
    ) -> SuspiciousActivity | None:
        """Record a review decision. Returns None for an unknown id."""
        activity = await self.activities.update_status(activity_id, status, reviewer_id, self.clock())
        if activity is not None:
            self.logger.info(
                "Activity %s marked %s by %s", activity_id, status.value, reviewer_id
            )
        return activity

    async def _flag(self, activity: SuspiciousActivity) -> None:
        await self.activities.add(activity)
        self.logger.warning(
            "%s: %s", activity.activity_type.value, activity.description,
        )
        if self.audit is not None:
            await self.audit.record(AuditEvent(
                event_type=AuditEventType.SUSPICIOUS_ACTIVITY,
                target_id=activity.account_id,
                ip_address=activity.ip_address,
                user_agent=activity.user_agent,
                details={
                    "activity_id": activity.id,
                    "activity_type": activity.activity_type.value,
                    "risk_score": activity.risk_score,
                    **activity.details,
                },
                timestamp=activity.detected_at,
            ))


class SpraySweep:
    """Periodic password-spray sweep."""

    def __init__(
        self,
        engine: RiskEngine,
        interval: float | None = None,
        logger: logging.Logger | None = None,
    ):
        self.engine = engine
        if interval is None:
            interval = engine.config.spray_sweep_interval.total_seconds()
        self.task = PeriodicTask(
            "spray-sweep", interval, self.engine.detect_password_spray_attack,
            logger=logger or engine.logger,
        )

    @property
    def running(self) -> bool:
        return self.task.running

    def start(self) -> None:
        self.task.start()

    async def stop(self) -> None:
        await self.task.stop()

    async def run_once(self) -> list[SuspiciousActivity]:
        return await self.task.run_once()
