"""
Telemetry and Cleaning Rules.

============================================================
PURPOSE
============================================================
Deterministic checks over one machine's latest telemetry
sample and cleaning history.

Each rule returns a RuleResult:
- raises: alarms the sweep hands to the alarm manager
- cleared: conditions that are no longer present (used only
  when auto-resolve-on-recovery is enabled)
- machine_changes: counter updates to persist on the machine

Rules never touch the store themselves.

============================================================
RULES
============================================================
- OperationalModeRule: entry into a watched operating mode
- PowerStatusRule: power loss and outage duration
- MachineErrorRule: device-reported errors
- TemperatureRule: mean zone temperature above threshold
- CleaningRule: never cleaned / cleaning overdue

============================================================
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from core.config import AlarmRuleConfig
from fleet.models import CleaningLog, Machine, TelemetrySample
from monitoring.models import AlarmCode, AlarmSeverity, AlarmType


logger = logging.getLogger(__name__)


# ============================================================
# RULE TYPES
# ============================================================

@dataclass(frozen=True)
class AlarmSpec:
    """An alarm a rule wants raised."""
    alarm_type: AlarmType
    code: AlarmCode
    severity: AlarmSeverity
    message: str


@dataclass
class RuleContext:
    """Inputs for one machine's rule evaluation."""
    machine: Machine
    now: datetime
    sample: Optional[TelemetrySample] = None
    last_cleaning: Optional[CleaningLog] = None


@dataclass
class RuleResult:
    """Output of one rule."""
    raises: List[AlarmSpec] = field(default_factory=list)
    cleared: List[Tuple[AlarmType, AlarmCode]] = field(default_factory=list)
    machine_changes: Dict[str, Any] = field(default_factory=dict)

    def merge(self, other: "RuleResult") -> None:
        self.raises.extend(other.raises)
        self.cleared.extend(other.cleared)
        self.machine_changes.update(other.machine_changes)


class MachineRule(ABC):
    """
    Base class for machine rules.

    All rules MUST be deterministic given the context.
    """

    rule_id: str = "base"

    def __init__(self, config: Optional[AlarmRuleConfig] = None):
        self.config = config or AlarmRuleConfig()

    @abstractmethod
    def evaluate(self, context: RuleContext) -> RuleResult:
        pass


class TelemetryRule(MachineRule):
    """A rule that reads the latest telemetry sample. Skipped when there is none."""

    def evaluate(self, context: RuleContext) -> RuleResult:
        if context.sample is None:
            return RuleResult()
        return self.check(context.machine, context.sample, context.now)

    @abstractmethod
    def check(self, machine: Machine, sample: TelemetrySample, now: datetime) -> RuleResult:
        pass


# ============================================================
# TELEMETRY RULES
# ============================================================

class OperationalModeRule(TelemetryRule):
    """
    Raises MODE_CHANGE when the machine enters a watched mode
    from a different, previously observed mode. The observed
    mode is always persisted.
    """

    rule_id = "operational_mode"

    def check(self, machine: Machine, sample: TelemetrySample, now: datetime) -> RuleResult:
        result = RuleResult()
        current = sample.operational_mode
        if not current:
            return result

        previous = machine.last_operational_mode
        if (
            previous
            and previous != current
            and current in self.config.allowed_operational_modes
        ):
            result.raises.append(AlarmSpec(
                AlarmType.MODE_CHANGE,
                AlarmCode.MODE_CHANGE,
                AlarmSeverity.MEDIUM,
                f"Operating mode changed: {previous} -> {current}",
            ))

        if previous != current:
            result.machine_changes["last_operational_mode"] = current
        return result


class PowerStatusRule(TelemetryRule):
    """
    Raises POWER_OFF while the device reports no power and
    tracks the outage duration in whole hours.
    """

    rule_id = "power_status"

    def check(self, machine: Machine, sample: TelemetrySample, now: datetime) -> RuleResult:
        result = RuleResult()
        result.machine_changes["last_power_check"] = now

        if sample.power_status is False:
            outage_start = machine.power_outage_start or now
            hours = int((now - outage_start) // timedelta(hours=1))
            result.machine_changes["power_outage_start"] = outage_start
            result.machine_changes["hours_without_power"] = max(hours, 0)
            result.raises.append(AlarmSpec(
                AlarmType.ERROR,
                AlarmCode.POWER_OFF,
                AlarmSeverity.HIGH,
                "Machine power outage",
            ))

        elif sample.power_status is True:
            if machine.power_outage_start is not None or machine.hours_without_power:
                result.machine_changes["power_outage_start"] = None
                result.machine_changes["hours_without_power"] = 0
            result.cleared.append((AlarmType.ERROR, AlarmCode.POWER_OFF))

        return result


class MachineErrorRule(TelemetryRule):
    """Raises MACHINE_ERROR for a non-empty error list."""

    rule_id = "machine_error"

    def check(self, machine: Machine, sample: TelemetrySample, now: datetime) -> RuleResult:
        result = RuleResult()
        if sample.errors:
            result.raises.append(AlarmSpec(
                AlarmType.ERROR,
                AlarmCode.MACHINE_ERROR,
                AlarmSeverity.HIGH,
                f"Machine error: {', '.join(str(e) for e in sample.errors)}",
            ))
        else:
            result.cleared.append((AlarmType.ERROR, AlarmCode.MACHINE_ERROR))
        return result


class TemperatureRule(TelemetryRule):
    """Raises TEMPERATURE_HIGH when the mean zone temperature exceeds the threshold."""

    rule_id = "temperature"

    def check(self, machine: Machine, sample: TelemetrySample, now: datetime) -> RuleResult:
        result = RuleResult()
        mean = sample.mean_temperature
        if mean is None:
            return result

        if mean > self.config.temperature_threshold:
            result.raises.append(AlarmSpec(
                AlarmType.ERROR,
                AlarmCode.TEMPERATURE_HIGH,
                AlarmSeverity.HIGH,
                f"Temperature too high: {mean:.1f}°C",
            ))
        else:
            result.cleared.append((AlarmType.ERROR, AlarmCode.TEMPERATURE_HIGH))
        return result


# ============================================================
# CLEANING RULE
# ============================================================

class CleaningRule(MachineRule):
    """
    Tracks days since the last cleaning.

    Runs for every machine regardless of liveness.
    """

    rule_id = "cleaning"

    def evaluate(self, context: RuleContext) -> RuleResult:
        result = RuleResult()
        machine = context.machine
        now = context.now
        day = timedelta(days=1)

        if context.last_cleaning is None:
            created = machine.created_at or now
            days = int((now - created) // day)
            result.raises.append(AlarmSpec(
                AlarmType.MAINTENANCE,
                AlarmCode.NEVER_CLEANED,
                AlarmSeverity.MEDIUM,
                f"{machine.name} has no cleaning record",
            ))
        else:
            elapsed = now - context.last_cleaning.timestamp
            days = int(elapsed // day)
            if elapsed > timedelta(days=self.config.cleaning_interval_days):
                result.raises.append(AlarmSpec(
                    AlarmType.MAINTENANCE,
                    AlarmCode.CLEANING_OVERDUE,
                    AlarmSeverity.MEDIUM,
                    f"{machine.name} last cleaned {days} days ago",
                ))
            else:
                result.cleared.append((AlarmType.MAINTENANCE, AlarmCode.CLEANING_OVERDUE))
            result.cleared.append((AlarmType.MAINTENANCE, AlarmCode.NEVER_CLEANED))

        result.machine_changes["days_since_cleaning"] = max(days, 0)
        result.machine_changes["last_cleaning_check"] = now
        return result


# ============================================================
# FACTORY
# ============================================================

def get_telemetry_rules(config: Optional[AlarmRuleConfig] = None) -> List[TelemetryRule]:
    """Telemetry rules in evaluation order."""
    return [
        OperationalModeRule(config),
        PowerStatusRule(config),
        MachineErrorRule(config),
        TemperatureRule(config),
    ]
