"""
Tests for environment configuration loading.
"""

import os
from datetime import timedelta

import pytest

from core.config import AppConfig, LivenessPolicy, load_config
from core.exceptions import ConfigurationError


CONFIG_ENV_VARS = [
    "OFFLINE_THRESHOLD_MINUTES",
    "CRITICAL_OFFLINE_THRESHOLD_MINUTES",
    "STALE_THRESHOLD_MINUTES",
    "TEMPERATURE_THRESHOLD",
    "CLEANING_INTERVAL_DAYS",
    "AUTO_RESOLVE_ON_RECOVERY",
    "SWEEP_MAX_CONCURRENCY",
    "SWEEP_MACHINE_TIMEOUT_SECONDS",
    "EMAIL_PROVIDER",
    "FROM_EMAIL",
    "SENDGRID_API_KEY",
    "SMTP_PORT",
    "SMTP_USE_TLS",
    "COMMAND_TIMEOUT_SECONDS",
    "DEVICE_GATEWAY_URL",
    "STORAGE_BACKEND",
    "DATABASE_URL",
    "SCHEDULER_ENABLED",
    "DEAD_LETTER_RETRY_INTERVAL_SECONDS",
]


@pytest.fixture
def env(monkeypatch, tmp_path):
    """Clean environment and a .env path that does not exist."""
    for name in CONFIG_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return str(tmp_path / "absent.env")


class TestDefaults:

    def test_defaults(self, env):
        config = load_config(env)

        assert config.liveness.offline_after == timedelta(minutes=5)
        assert config.liveness.critical_after == timedelta(minutes=30)
        assert config.liveness.stale_after == timedelta(minutes=30)
        assert config.rules.temperature_threshold == 5.0
        assert config.rules.cleaning_interval_days == 7
        assert config.rules.auto_resolve_on_recovery is False
        assert config.sweep.max_concurrency == 10
        assert config.email.provider == "console"
        assert config.commands.default_timeout_seconds == 60
        assert config.commands.gateway_url is None
        assert config.database.backend == "memory"
        assert config.scheduler.enabled is False
        assert config.scheduler.dead_letter_retry_interval_seconds == 600.0

    def test_for_testing(self):
        config = AppConfig.for_testing()

        assert config.database.backend == "memory"
        assert config.liveness.offline_after_ms == 5 * 60 * 1000


class TestOverrides:

    def test_environment_overrides(self, env, monkeypatch):
        monkeypatch.setenv("OFFLINE_THRESHOLD_MINUTES", "10")
        monkeypatch.setenv("CRITICAL_OFFLINE_THRESHOLD_MINUTES", "60")
        monkeypatch.setenv("AUTO_RESOLVE_ON_RECOVERY", "yes")
        monkeypatch.setenv("EMAIL_PROVIDER", "SendGrid")
        monkeypatch.setenv("SENDGRID_API_KEY", "SG.test")
        monkeypatch.setenv("STORAGE_BACKEND", "sql")
        monkeypatch.setenv("SCHEDULER_ENABLED", "1")
        monkeypatch.setenv("DEAD_LETTER_RETRY_INTERVAL_SECONDS", "45")
        monkeypatch.setenv("DEVICE_GATEWAY_URL", "http://gateway.local")

        config = load_config(env)

        assert config.liveness.offline_after == timedelta(minutes=10)
        assert config.liveness.critical_after == timedelta(minutes=60)
        assert config.rules.auto_resolve_on_recovery is True
        assert config.email.provider == "sendgrid"
        assert config.email.sendgrid_api_key == "SG.test"
        assert config.database.backend == "sql"
        assert config.scheduler.enabled is True
        assert config.scheduler.dead_letter_retry_interval_seconds == 45.0
        assert config.commands.gateway_url == "http://gateway.local"

    def test_empty_value_uses_default(self, env, monkeypatch):
        monkeypatch.setenv("SWEEP_MAX_CONCURRENCY", "")

        assert load_config(env).sweep.max_concurrency == 10

    def test_dotenv_file(self, env, monkeypatch, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text("COMMAND_TIMEOUT_SECONDS=90\n")

        try:
            config = load_config(str(env_file))
        finally:
            os.environ.pop("COMMAND_TIMEOUT_SECONDS", None)

        assert config.commands.default_timeout_seconds == 90


class TestInvalidValues:

    @pytest.mark.parametrize("name,value", [
        ("OFFLINE_THRESHOLD_MINUTES", "five"),
        ("SWEEP_MAX_CONCURRENCY", "0"),
        ("SWEEP_MAX_CONCURRENCY", "many"),
        ("SCHEDULER_ENABLED", "maybe"),
        ("SMTP_PORT", "smtp"),
    ])
    def test_invalid_value(self, env, monkeypatch, name, value):
        monkeypatch.setenv(name, value)

        with pytest.raises(ConfigurationError) as exc_info:
            load_config(env)

        assert exc_info.value.context["config_key"] == name

    def test_critical_below_offline(self, env, monkeypatch):
        monkeypatch.setenv("OFFLINE_THRESHOLD_MINUTES", "20")
        monkeypatch.setenv("CRITICAL_OFFLINE_THRESHOLD_MINUTES", "10")

        with pytest.raises(ConfigurationError):
            load_config(env)

    def test_policy_rejects_non_positive(self):
        with pytest.raises(ConfigurationError):
            LivenessPolicy(offline_after=timedelta(0))
