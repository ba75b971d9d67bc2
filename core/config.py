"""
Core Module - Configuration.

============================================================
PURPOSE
============================================================
All configuration for the fleet service.

Every threshold that derives machine status lives in ONE
LivenessPolicy instance, injected into every code path that
reports whether a machine is online.

============================================================
SOURCES
============================================================
Defaults are defined on the dataclasses below.
load_config() overlays environment variables (and a .env
file, via python-dotenv) on top of them.

============================================================
"""

import os
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Callable, List, Optional, TypeVar

from dotenv import load_dotenv

from core.exceptions import ConfigurationError


T = TypeVar("T")


# ============================================================
# LIVENESS POLICY
# ============================================================

@dataclass(frozen=True)
class LivenessPolicy:
    """
    Heartbeat age thresholds.

    A heartbeat older than offline_after is offline; older than
    critical_after is critical-offline. stale_after is the coarser
    tier reported by the status-check snapshot.
    """

    offline_after: timedelta = timedelta(minutes=5)
    """Canonical offline threshold."""

    critical_after: timedelta = timedelta(minutes=30)
    """Critical-offline threshold."""

    stale_after: timedelta = timedelta(minutes=30)
    """Status-check "stale" tier."""

    def __post_init__(self):
        if self.offline_after <= timedelta(0):
            raise ConfigurationError("offline_after must be positive", config_key="offline_after")
        if self.critical_after < self.offline_after:
            raise ConfigurationError(
                "critical_after must not be shorter than offline_after",
                config_key="critical_after",
                actual_value=self.critical_after,
            )

    @property
    def offline_after_ms(self) -> int:
        return self.offline_after // timedelta(milliseconds=1)

    @property
    def critical_after_ms(self) -> int:
        return self.critical_after // timedelta(milliseconds=1)

    @property
    def stale_after_ms(self) -> int:
        return self.stale_after // timedelta(milliseconds=1)


# ============================================================
# ALARM RULES
# ============================================================

@dataclass
class AlarmRuleConfig:
    """
    Telemetry rule thresholds.
    """

    temperature_threshold: float = 5.0
    """Mean zone temperature above which TEMPERATURE_HIGH fires."""

    cleaning_interval_days: int = 7
    """Days after the last cleaning before CLEANING_OVERDUE fires."""

    allowed_operational_modes: List[str] = field(default_factory=lambda: [
        "Automatic",
        "Auto",
        "Keep Fresh",
        "Preservation",
        "Standby",
    ])
    """Modes whose entry raises MODE_CHANGE."""

    notify_severities: List[str] = field(default_factory=lambda: ["high", "critical"])
    """Severities that reach the notification dispatcher."""

    auto_resolve_on_recovery: bool = False
    """Resolve active alarms automatically when their condition clears."""


# ============================================================
# SWEEP
# ============================================================

@dataclass
class SweepConfig:
    """
    Fleet sweep execution limits.
    """

    max_concurrency: int = 10
    """Machines evaluated at the same time."""

    machine_timeout_seconds: float = 5.0
    """Upper bound on one machine's evaluation."""


# ============================================================
# EMAIL
# ============================================================

@dataclass
class EmailConfig:
    """
    Mail transport configuration.
    """

    provider: str = "console"
    """console, sendgrid or smtp."""

    from_email: str = "noreply@fleet-telemetry.local"
    """Default sender address."""

    from_name: str = "Fleet Telemetry"
    """Default sender display name."""

    sendgrid_api_key: Optional[str] = None
    """SendGrid API key (provider=sendgrid)."""

    sendgrid_url: str = "https://api.sendgrid.com/v3/mail/send"
    """SendGrid mail endpoint."""

    smtp_host: Optional[str] = None
    """SMTP relay host (provider=smtp)."""

    smtp_port: int = 587
    """SMTP relay port."""

    smtp_username: Optional[str] = None
    """SMTP username."""

    smtp_password: Optional[str] = None
    """SMTP password."""

    smtp_use_tls: bool = True
    """Issue STARTTLS before authenticating."""

    request_timeout_seconds: float = 10.0
    """HTTP / SMTP request timeout."""


# ============================================================
# COMMANDS
# ============================================================

@dataclass
class CommandConfig:
    """
    Command dispatch configuration.
    """

    default_timeout_seconds: int = 60
    """Seconds a command may stay pending before timing out."""

    gateway_url: Optional[str] = None
    """Device gateway base URL. Forwarding is skipped when unset."""

    gateway_timeout_seconds: float = 10.0
    """Gateway request timeout."""


# ============================================================
# DATABASE
# ============================================================

@dataclass
class DatabaseConfig:
    """
    Storage backend configuration.
    """

    backend: str = "memory"
    """memory or sql."""

    url: str = "sqlite+aiosqlite:///./fleet.db"
    """SQLAlchemy async URL (backend=sql)."""

    pool_size: int = 5
    """Connection pool size (ignored by SQLite)."""

    echo: bool = False
    """Log emitted SQL."""


# ============================================================
# SCHEDULER
# ============================================================

@dataclass
class SchedulerConfig:
    """
    In-process periodic task configuration.
    """

    enabled: bool = False
    """Run sweeps inside the API process."""

    sweep_interval_seconds: float = 120.0
    """Seconds between fleet sweeps."""

    command_sweep_interval_seconds: float = 30.0
    """Seconds between command timeout sweeps."""

    dead_letter_retry_interval_seconds: float = 600.0
    """Seconds between dead-letter email retries."""


# ============================================================
# MASTER CONFIGURATION
# ============================================================

@dataclass
class AppConfig:
    """
    Master configuration for the fleet service.
    """

    liveness: LivenessPolicy = field(default_factory=LivenessPolicy)
    """Liveness thresholds."""

    rules: AlarmRuleConfig = field(default_factory=AlarmRuleConfig)
    """Telemetry rule configuration."""

    sweep: SweepConfig = field(default_factory=SweepConfig)
    """Sweep configuration."""

    email: EmailConfig = field(default_factory=EmailConfig)
    """Email configuration."""

    commands: CommandConfig = field(default_factory=CommandConfig)
    """Command configuration."""

    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    """Storage configuration."""

    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    """Scheduler configuration."""

    @classmethod
    def for_testing(cls) -> "AppConfig":
        """Get configuration for testing."""
        return cls(
            sweep=SweepConfig(max_concurrency=4, machine_timeout_seconds=2.0),
            database=DatabaseConfig(backend="memory"),
        )


# ============================================================
# ENVIRONMENT LOADING
# ============================================================

def _env(name: str, default: T, parse: Callable[[str], T]) -> T:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return parse(raw)
    except ValueError as e:
        raise ConfigurationError(
            f"Invalid value for {name}",
            config_key=name,
            actual_value=raw,
            cause=e,
        ) from e


def _parse_bool(raw: str) -> bool:
    value = raw.strip().lower()
    if value in ("1", "true", "yes", "on"):
        return True
    if value in ("0", "false", "no", "off"):
        return False
    raise ValueError(f"not a boolean: {raw}")


def _minutes(raw: str) -> timedelta:
    return timedelta(minutes=float(raw))


def load_config(env_file: Optional[str] = None) -> AppConfig:
    """
    Build AppConfig from defaults overlaid with environment variables.

    Args:
        env_file: Optional .env path (python-dotenv searches upward when omitted)

    Raises:
        ConfigurationError: On an unparsable value
    """
    load_dotenv(env_file)

    defaults = AppConfig()

    liveness = LivenessPolicy(
        offline_after=_env("OFFLINE_THRESHOLD_MINUTES", defaults.liveness.offline_after, _minutes),
        critical_after=_env("CRITICAL_OFFLINE_THRESHOLD_MINUTES", defaults.liveness.critical_after, _minutes),
        stale_after=_env("STALE_THRESHOLD_MINUTES", defaults.liveness.stale_after, _minutes),
    )

    rules = AlarmRuleConfig(
        temperature_threshold=_env("TEMPERATURE_THRESHOLD", defaults.rules.temperature_threshold, float),
        cleaning_interval_days=_env("CLEANING_INTERVAL_DAYS", defaults.rules.cleaning_interval_days, int),
        auto_resolve_on_recovery=_env("AUTO_RESOLVE_ON_RECOVERY", False, _parse_bool),
    )

    sweep = SweepConfig(
        max_concurrency=_env("SWEEP_MAX_CONCURRENCY", defaults.sweep.max_concurrency, int),
        machine_timeout_seconds=_env(
            "SWEEP_MACHINE_TIMEOUT_SECONDS", defaults.sweep.machine_timeout_seconds, float
        ),
    )
    if sweep.max_concurrency < 1:
        raise ConfigurationError(
            "SWEEP_MAX_CONCURRENCY must be at least 1",
            config_key="SWEEP_MAX_CONCURRENCY",
            actual_value=sweep.max_concurrency,
        )

    email = EmailConfig(
        provider=os.getenv("EMAIL_PROVIDER", defaults.email.provider).lower(),
        from_email=os.getenv("FROM_EMAIL", defaults.email.from_email),
        from_name=os.getenv("FROM_NAME", defaults.email.from_name),
        sendgrid_api_key=os.getenv("SENDGRID_API_KEY") or None,
        smtp_host=os.getenv("SMTP_HOST") or None,
        smtp_port=_env("SMTP_PORT", defaults.email.smtp_port, int),
        smtp_username=os.getenv("SMTP_USERNAME") or None,
        smtp_password=os.getenv("SMTP_PASSWORD") or None,
        smtp_use_tls=_env("SMTP_USE_TLS", defaults.email.smtp_use_tls, _parse_bool),
    )

    commands = CommandConfig(
        default_timeout_seconds=_env(
            "COMMAND_TIMEOUT_SECONDS", defaults.commands.default_timeout_seconds, int
        ),
        gateway_url=os.getenv("DEVICE_GATEWAY_URL") or None,
    )

    database = DatabaseConfig(
        backend=os.getenv("STORAGE_BACKEND", defaults.database.backend).lower(),
        url=os.getenv("DATABASE_URL", defaults.database.url),
        pool_size=_env("DATABASE_POOL_SIZE", defaults.database.pool_size, int),
        echo=_env("DATABASE_ECHO", defaults.database.echo, _parse_bool),
    )

    scheduler = SchedulerConfig(
        enabled=_env("SCHEDULER_ENABLED", defaults.scheduler.enabled, _parse_bool),
        sweep_interval_seconds=_env(
            "SWEEP_INTERVAL_SECONDS", defaults.scheduler.sweep_interval_seconds, float
        ),
        command_sweep_interval_seconds=_env(
            "COMMAND_SWEEP_INTERVAL_SECONDS", defaults.scheduler.command_sweep_interval_seconds, float
        ),
        dead_letter_retry_interval_seconds=_env(
            "DEAD_LETTER_RETRY_INTERVAL_SECONDS",
            defaults.scheduler.dead_letter_retry_interval_seconds,
            float,
        ),
    )

    return AppConfig(
        liveness=liveness,
        rules=rules,
        sweep=sweep,
        email=email,
        commands=commands,
        database=database,
        scheduler=scheduler,
    )


__all__ = [
    "LivenessPolicy",
    "AlarmRuleConfig",
    "SweepConfig",
    "EmailConfig",
    "CommandConfig",
    "DatabaseConfig",
    "SchedulerConfig",
    "AppConfig",
    "load_config",
]
