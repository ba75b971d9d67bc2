"""
Fleet Data Models.

============================================================
PURPOSE
============================================================
Domain records for machines and the data devices report.

- Machine: one physical unit with notification settings and
  the monitoring counters mutated by the fleet sweep
- HeartbeatRecord: last-seen timestamp per machine
- TelemetrySample: append-only richer device report
- CleaningLog: operator cleaning record

============================================================
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


# ============================================================
# ENUMS
# ============================================================

class MachineType(str, Enum):
    """Kind of vending unit."""
    SNACK = "snack"
    ICE_CREAM = "ice_cream"
    COFFEE = "coffee"
    PERFUME = "perfume"


class HeartbeatStatus(str, Enum):
    """Last reported connection status."""
    ONLINE = "online"
    OFFLINE = "offline"


# ============================================================
# MACHINE
# ============================================================

@dataclass
class NotificationSettings:
    """Per-machine alarm email configuration."""

    email_addresses: List[str] = field(default_factory=list)
    enable_offline_alerts: bool = True
    enable_error_alerts: bool = True
    alert_threshold_minutes: int = 5


@dataclass
class DeviceStatus:
    """Latest device-reported vitals."""

    battery_level: Optional[float] = None
    signal_strength: Optional[float] = None
    temperature: Optional[float] = None
    last_error: Optional[str] = None
    last_updated: Optional[datetime] = None


@dataclass
class Machine:
    """
    One physical unit.

    iot_number is the device-facing join key. It is expected to
    be unique but the store does not enforce it.
    """

    id: str
    name: str
    serial_number: str
    type: MachineType = MachineType.SNACK
    iot_number: Optional[str] = None
    model: Optional[str] = None
    location: Optional[str] = None
    is_test: bool = False
    notifications: NotificationSettings = field(default_factory=NotificationSettings)

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    # Connection info (written by heartbeat ingestion)
    connection_status: HeartbeatStatus = HeartbeatStatus.OFFLINE
    last_heartbeat: Optional[datetime] = None
    device_status: DeviceStatus = field(default_factory=DeviceStatus)

    # Monitoring counters (written by the fleet sweep)
    days_since_cleaning: Optional[int] = None
    last_cleaning_check: Optional[datetime] = None
    hours_without_power: int = 0
    power_outage_start: Optional[datetime] = None
    last_power_check: Optional[datetime] = None
    last_operational_mode: Optional[str] = None

    @property
    def is_valid(self) -> bool:
        """Only machines with full identity take part in sweeps."""
        return bool(self.id and self.name and self.serial_number)


# Fields the monitoring and ingestion paths may change after registration.
MUTABLE_MACHINE_FIELDS = frozenset({
    "name",
    "model",
    "location",
    "is_test",
    "notifications",
    "updated_at",
    "connection_status",
    "last_heartbeat",
    "device_status",
    "days_since_cleaning",
    "last_cleaning_check",
    "hours_without_power",
    "power_outage_start",
    "last_power_check",
    "last_operational_mode",
})


# ============================================================
# HEARTBEAT & TELEMETRY
# ============================================================

@dataclass
class HeartbeatRecord:
    """
    Liveness signal for one machine.

    last_seen_ms is epoch milliseconds. It is typed loosely
    because records written by older devices may carry a
    missing or non-numeric value; the classifier treats those
    as invalid.
    """

    machine_id: str
    last_seen_ms: Any
    status: HeartbeatStatus = HeartbeatStatus.OFFLINE
    device_id: Optional[str] = None
    updated_at: Optional[datetime] = None


@dataclass
class TelemetrySample:
    """Append-only device report. Rules read the latest by timestamp."""

    machine_id: str
    timestamp: datetime
    power_status: Optional[bool] = None
    operational_mode: Optional[str] = None
    errors: List[str] = field(default_factory=list)
    temperature_readings: Dict[str, float] = field(default_factory=dict)
    sales_data: Optional[Dict[str, Any]] = None
    cleaning_status: Optional[Dict[str, Any]] = None
    id: Optional[str] = None

    @property
    def mean_temperature(self) -> Optional[float]:
        if not self.temperature_readings:
            return None
        values = [float(v) for v in self.temperature_readings.values()]
        return sum(values) / len(values)


# ============================================================
# CLEANING
# ============================================================

@dataclass
class CleaningLog:
    """A cleaning performed on a machine."""

    machine_id: str
    timestamp: datetime
    machine_type: Optional[MachineType] = None
    performed_by: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    id: Optional[str] = None
