"""
Test 2: Config System (config.py)

Tests duration parsing, validation and ConfigLoader precedence
(overrides > environment > .env > defaults).
"""

import logging
import pytest
from datetime import timedelta

from warden.config import ConfigLoader, WardenConfig, parse_duration
from warden.faults import ConfigInvalidFault


# ============================================================================
# Durations
# ============================================================================

class TestParseDuration:

    @pytest.mark.parametrize("raw,expected", [
        ("90", timedelta(seconds=90)),
        ("15m", timedelta(minutes=15)),
        ("24h", timedelta(hours=24)),
        ("30d", timedelta(days=30)),
        (" 2H ", timedelta(hours=2)),
        (45, timedelta(seconds=45)),
        (timedelta(minutes=1), timedelta(minutes=1)),
    ])
    def test_valid(self, raw, expected):
        assert parse_duration(raw) == expected

    @pytest.mark.parametrize("raw", ["", "ten", "5w", "-5m", True])
    def test_invalid(self, raw):
        with pytest.raises(ValueError):
            parse_duration(raw)


# ============================================================================
# Defaults & Validation
# ============================================================================

class TestWardenConfig:

    def test_defaults(self):
        config = WardenConfig()
        assert config.lockout.max_failed_attempts == 5
        assert config.lockout.lockout_duration == timedelta(minutes=15)
        assert config.session.session_ttl == timedelta(hours=24)
        assert config.session.remember_me_ttl == timedelta(days=30)
        assert config.session.max_sessions_per_account == 4
        assert config.token.access_token_ttl == timedelta(minutes=15)
        assert config.token.refresh_token_ttl == timedelta(days=7)
        assert config.risk.escalation_threshold == 20
        assert config.risk.brute_force_threshold == 10

    def test_validate_returns_self(self):
        config = WardenConfig()
        assert config.validate() is config

    def test_remember_me_must_outlive_session(self):
        config = WardenConfig()
        config.session.remember_me_ttl = timedelta(hours=1)
        with pytest.raises(ConfigInvalidFault) as exc_info:
            config.validate()
        assert exc_info.value.context["key"] == "session.remember_me_ttl"

    def test_durations_must_be_positive(self):
        config = WardenConfig()
        config.lockout.lockout_duration = timedelta(0)
        with pytest.raises(ConfigInvalidFault):
            config.validate()

    def test_unknown_algorithm(self):
        config = WardenConfig()
        config.token.algorithm = "HS256"
        with pytest.raises(ConfigInvalidFault):
            config.validate()

    def test_to_dict_uses_seconds(self):
        data = WardenConfig().to_dict()
        assert data["session"]["session_ttl"] == 86400
        assert data["token"]["audience"] == ["api"]
        assert set(data) == {
            "lockout", "session", "token", "second_factor", "hashing", "risk", "verification",
        }


# ============================================================================
# Loader
# ============================================================================

class TestConfigLoader:

    def test_empty_environment_gives_defaults(self):
        config = ConfigLoader.load(environ={})
        assert config.to_dict() == WardenConfig().to_dict()

    def test_environment_values_are_coerced(self):
        config = ConfigLoader.load(environ={
            "WARDEN_LOCKOUT_MAX_FAILED_ATTEMPTS": "3",
            "WARDEN_SESSION_REMEMBER_ME_TTL": "14d",
            "WARDEN_SECOND_FACTOR_DIGITS": "8",
            "WARDEN_TOKEN_AUDIENCE": "api, admin",
            "WARDEN_TOKEN_ROTATE_REFRESH_TOKENS": "false",
            "WARDEN_RISK_IMPOSSIBLE_TRAVEL_KMH": "1000.5",
            "UNRELATED": "ignored",
        })
        assert config.lockout.max_failed_attempts == 3
        assert config.session.remember_me_ttl == timedelta(days=14)
        assert config.second_factor.digits == 8
        assert config.token.audience == ["api", "admin"]
        assert config.token.rotate_refresh_tokens is False
        assert config.risk.impossible_travel_kmh == 1000.5

    def test_env_file(self, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text("WARDEN_SESSION_SESSION_TTL=2h\n")
        config = ConfigLoader.load(env_file=env_file, environ={})
        assert config.session.session_ttl == timedelta(hours=2)

    def test_precedence(self, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text("WARDEN_LOCKOUT_MAX_FAILED_ATTEMPTS=7\n")

        from_env = ConfigLoader.load(
            env_file=env_file,
            environ={"WARDEN_LOCKOUT_MAX_FAILED_ATTEMPTS": "6"},
        )
        assert from_env.lockout.max_failed_attempts == 6

        overridden = ConfigLoader.load(
            env_file=env_file,
            environ={"WARDEN_LOCKOUT_MAX_FAILED_ATTEMPTS": "6"},
            overrides={"lockout": {"max_failed_attempts": 9}},
        )
        assert overridden.lockout.max_failed_attempts == 9

    def test_missing_env_file_is_ignored(self, tmp_path):
        config = ConfigLoader.load(env_file=tmp_path / "missing.env", environ={})
        assert config.lockout.max_failed_attempts == 5

    def test_unknown_key(self):
        with pytest.raises(ConfigInvalidFault) as exc_info:
            ConfigLoader.load(environ={"WARDEN_SESSION_COLOR": "blue"})
        assert exc_info.value.context["key"] == "session.color"

    def test_unrelated_environment_variables_are_ignored(self, caplog):
        with caplog.at_level(logging.DEBUG, logger="warden.config"):
            config = ConfigLoader.load(environ={
                "WARDEN_HOME": "/opt/warden",
                "WARDEN_CACHE_SIZE": "10",
                "WARDEN_LOCKOUT_MAX_FAILED_ATTEMPTS": "3",
            })
        assert config.lockout.max_failed_attempts == 3
        assert "Ignoring WARDEN_HOME" in caplog.text

    def test_unknown_section_in_overrides(self):
        with pytest.raises(ConfigInvalidFault):
            ConfigLoader.load(environ={}, overrides={"cache": {"size": 10}})

    def test_bad_value(self):
        with pytest.raises(ConfigInvalidFault) as exc_info:
            ConfigLoader.load(environ={"WARDEN_LOCKOUT_MAX_FAILED_ATTEMPTS": "many"})
        assert exc_info.value.context["key"] == "lockout.max_failed_attempts"

    def test_bad_boolean(self):
        with pytest.raises(ConfigInvalidFault):
            ConfigLoader.load(environ={"WARDEN_TOKEN_ROTATE_REFRESH_TOKENS": "maybe"})

    def test_loaded_config_is_validated(self):
        with pytest.raises(ConfigInvalidFault):
            ConfigLoader.load(environ={"WARDEN_SESSION_REMEMBER_ME_TTL": "1h"})
