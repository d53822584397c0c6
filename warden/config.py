"""
Config system - Typed, injected configuration.

Every tunable lives in a dataclass section that components receive at
construction. ``ConfigLoader`` layers sources with precedence:

    overrides > environment variables (WARDEN_*) > .env file > defaults
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field, fields, replace
from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import dotenv_values

from .faults import ConfigInvalidFault


logger = logging.getLogger("warden.config")


_DURATION_RE = re.compile(r"^\s*(\d+)\s*([smhd]?)\s*$")

_DURATION_UNITS = {
    "": 1,
    "s": 1,
    "m": 60,
    "h": 3600,
    "d": 86400,
}


def parse_duration(value: Any) -> timedelta:
    """
    Parse a duration.

    Accepts a ``timedelta``, a number of seconds, or a string with an
    optional ``s``/``m``/``h``/``d`` suffix ("90", "15m", "24h", "30d").

    Raises:
        ValueError: Unparseable value
    """
    if isinstance(value, timedelta):
        return value
    if isinstance(value, bool):
        raise ValueError(f"Invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        return timedelta(seconds=value)

    match = _DURATION_RE.match(str(value).lower())
    if not match:
        raise ValueError(f"Invalid duration: {value!r}")

    amount, unit = match.groups()
    return timedelta(seconds=int(amount) * _DURATION_UNITS[unit])


# ============================================================================
# Sections
# ============================================================================

@dataclass
class LockoutConfig:
    """Credential lockout policy."""
    max_failed_attempts: int = 5
    lockout_duration: timedelta = timedelta(minutes=15)


@dataclass
class SessionConfig:
    """Session lifetime and concurrency policy."""
    session_ttl: timedelta = timedelta(hours=24)
    remember_me_ttl: timedelta = timedelta(days=30)
    extension_threshold: timedelta = timedelta(minutes=30)
    max_sessions_per_account: int = 4
    cleanup_interval: timedelta = timedelta(hours=1)
    token_bytes: int = 32


@dataclass
class TokenConfig:
    """Access/refresh token issuance."""
    issuer: str = "warden"
    audience: list[str] = field(default_factory=lambda: ["api"])
    access_token_ttl: timedelta = timedelta(minutes=15)
    refresh_token_ttl: timedelta = timedelta(days=7)
    algorithm: str = "EdDSA"
    rotate_refresh_tokens: bool = True
    refresh_token_bytes: int = 40


@dataclass
class SecondFactorConfig:
    """TOTP and backup code parameters."""
    issuer: str = "Warden"
    digits: int = 6
    period: int = 30
    valid_window: int = 1
    backup_code_count: int = 10


@dataclass
class HashingConfig:
    """Argon2id cost parameters."""
    time_cost: int = 3
    memory_cost: int = 65536  # KiB
    parallelism: int = 4
    hash_len: int = 32
    salt_len: int = 16


@dataclass
class RiskConfig:
    """Risk scoring thresholds, windows and factor weights."""
    escalation_threshold: int = 20
    brute_force_window: timedelta = timedelta(minutes=15)
    brute_force_threshold: int = 10
    spray_window: timedelta = timedelta(minutes=30)
    spray_min_accounts: int = 5
    spray_max_attempts_per_account: int = 2
    spray_sweep_interval: timedelta = timedelta(minutes=10)
    velocity_window: timedelta = timedelta(minutes=10)
    velocity_account_threshold: int = 3
    history_limit: int = 50
    unusual_hour_tolerance: int = 2
    impossible_travel_kmh: float = 900.0
    confident_sample_size: int = 10

    # Factor weights (score is capped at 100)
    weight_new_ip: int = 20
    weight_unusual_hour: int = 15
    weight_new_device: int = 25
    weight_impossible_travel: int = 40
    weight_velocity: int = 30
    weight_recent_failures: int = 10


@dataclass
class VerificationConfig:
    """Email verification and password reset tokens."""
    email_verification_ttl: timedelta = timedelta(hours=24)
    password_reset_ttl: timedelta = timedelta(hours=1)
    token_bytes: int = 32


@dataclass
class WardenConfig:
    """Root configuration object."""
    lockout: LockoutConfig = field(default_factory=LockoutConfig)
    session: SessionConfig = field(default_factory=SessionConfig)
    token: TokenConfig = field(default_factory=TokenConfig)
    second_factor: SecondFactorConfig = field(default_factory=SecondFactorConfig)
    hashing: HashingConfig = field(default_factory=HashingConfig)
    risk: RiskConfig = field(default_factory=RiskConfig)
    verification: VerificationConfig = field(default_factory=VerificationConfig)

    def validate(self) -> "WardenConfig":
        """
        Check cross-field constraints.

        Raises:
            ConfigInvalidFault: First violated constraint
        """
        for section_name, section in self.sections().items():
            for f in fields(section):
                value = getattr(section, f.name)
                if isinstance(value, timedelta) and value <= timedelta(0):
                    raise ConfigInvalidFault(f"{section_name}.{f.name}", "duration must be positive")

        if self.session.remember_me_ttl <= self.session.session_ttl:
            raise ConfigInvalidFault(
                "session.remember_me_ttl", "must be longer than session.session_ttl"
            )
        if self.lockout.max_failed_attempts < 1:
            raise ConfigInvalidFault("lockout.max_failed_attempts", "must be at least 1")
        if self.session.max_sessions_per_account < 1:
            raise ConfigInvalidFault("session.max_sessions_per_account", "must be at least 1")
        if self.token.algorithm not in ("RS256", "ES256", "EdDSA"):
            raise ConfigInvalidFault("token.algorithm", f"unsupported algorithm {self.token.algorithm!r}")
        return self

    def sections(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to plain values (durations as seconds)."""
        result: Dict[str, Any] = {}
        for section_name, section in self.sections().items():
            values = {}
            for f in fields(section):
                value = getattr(section, f.name)
                if isinstance(value, timedelta):
                    value = int(value.total_seconds())
                elif isinstance(value, list):
                    value = list(value)
                values[f.name] = value
            result[section_name] = values
        return result


# ============================================================================
# Loader
# ============================================================================

class ConfigLoader:
    """
    Loads and merges configuration with precedence:
    overrides > environment variables > .env file > defaults

    Environment keys map onto ``<section>_<field>``, e.g.
    ``WARDEN_SESSION_REMEMBER_ME_TTL=30d`` or
    ``WARDEN_SECOND_FACTOR_DIGITS=8``.
    Environment keys that match no section are ignored; unknown
    sections or fields in ``overrides`` raise ``ConfigInvalidFault``.
    """

    def __init__(self, env_prefix: str = "WARDEN_"):
        self.env_prefix = env_prefix
        self.config_data: Dict[str, Dict[str, Any]] = {}

    @classmethod
    def load(
        cls,
        env_file: Optional[str | Path] = None,
        env_prefix: str = "WARDEN_",
        overrides: Optional[Dict[str, Any]] = None,
        environ: Optional[Dict[str, str]] = None,
    ) -> WardenConfig:
        """
        Build a validated ``WardenConfig``.

        Args:
            env_file: Path to a .env file (ignored if missing)
            env_prefix: Prefix for environment variables
            overrides: Nested dict ``{"session": {"session_ttl": "2h"}}``
            environ: Environment mapping (default: ``os.environ``)

        Raises:
            ConfigInvalidFault: Unknown key or invalid value
        """
        loader = cls(env_prefix=env_prefix)

        if env_file and Path(env_file).exists():
            loader._load_mapping(dotenv_values(env_file))

        loader._load_mapping(os.environ if environ is None else environ)

        if overrides:
            for section_name, values in overrides.items():
                for key, value in values.items():
                    loader._set(section_name, key, value)

        return loader.build()

    def build(self) -> WardenConfig:
        config = WardenConfig()
        for section_name, values in self.config_data.items():
            section = getattr(config, section_name)
            coerced = {
                key: self._coerce(section_name, key, getattr(section, key), value)
                for key, value in values.items()
            }
            setattr(config, section_name, replace(section, **coerced))
        return config.validate()

    def _load_mapping(self, mapping: Any) -> None:
        for key, value in mapping.items():
            if not key.startswith(self.env_prefix) or value is None:
                continue
            split = self._split_key(key)
            if split is None:
                logger.debug("Ignoring %s: not a configuration key", key)
                continue
            self._set(*split, value)

    def _split_key(self, key: str) -> tuple[str, str] | None:
        """Map WARDEN_SECOND_FACTOR_DIGITS -> ("second_factor", "digits"); None if no section matches."""
        name = key[len(self.env_prefix):].lower()
        # Longest section name first so "second_factor" wins over shorter prefixes
        for section_name in sorted(WardenConfig().sections(), key=len, reverse=True):
            if name.startswith(section_name + "_"):
                return section_name, name[len(section_name) + 1:]
        return None

    def _set(self, section_name: str, key: str, value: Any) -> None:
        sections = WardenConfig().sections()
        if section_name not in sections:
            raise ConfigInvalidFault(section_name, "unknown configuration section")
        if key not in {f.name for f in fields(sections[section_name])}:
            raise ConfigInvalidFault(f"{section_name}.{key}", "unknown configuration key")
        self.config_data.setdefault(section_name, {})[key] = value

    @staticmethod
    def _coerce(section_name: str, key: str, current: Any, value: Any) -> Any:
        """Convert a raw value to the type of the field's default."""
        try:
            if isinstance(current, timedelta):
                return parse_duration(value)
            if isinstance(current, bool):
                if isinstance(value, bool):
                    return value
                lowered = str(value).strip().lower()
                if lowered in ("true", "yes", "1", "on"):
                    return True
                if lowered in ("false", "no", "0", "off"):
                    return False
                raise ValueError(f"not a boolean: {value!r}")
            if isinstance(current, int):
                return int(value)
            if isinstance(current, float):
                return float(value)
            if isinstance(current, list):
                if isinstance(value, (list, tuple)):
                    return list(value)
                return [part.strip() for part in str(value).split(",") if part.strip()]
            return str(value)
        except (TypeError, ValueError) as exc:
            raise ConfigInvalidFault(f"{section_name}.{key}", str(exc)) from exc
