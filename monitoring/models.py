"""
Monitoring Data Models.

============================================================
PURPOSE
============================================================
Alarm records, liveness status and sweep reporting types.

An alarm is keyed by (machine_id, type, code). At most one
alarm per key is ACTIVE at any time.

============================================================
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


# ============================================================
# ENUMS
# ============================================================

class LivenessStatus(str, Enum):
    """Derived machine status."""
    ONLINE = "online"
    OFFLINE = "offline"
    CRITICAL_OFFLINE = "critical_offline"


class AlarmType(str, Enum):
    """Alarm category. Drives notification opt-in gating."""
    OFFLINE = "offline"
    ERROR = "error"
    MAINTENANCE = "maintenance"
    MODE_CHANGE = "mode_change"


class AlarmCode(str, Enum):
    """Discriminator within an alarm type."""
    NO_HEARTBEAT = "NO_HEARTBEAT"
    INVALID_HEARTBEAT = "INVALID_HEARTBEAT"
    OFFLINE = "OFFLINE"
    CRITICAL_OFFLINE = "CRITICAL_OFFLINE"
    POWER_OFF = "POWER_OFF"
    MACHINE_ERROR = "MACHINE_ERROR"
    TEMPERATURE_HIGH = "TEMPERATURE_HIGH"
    NEVER_CLEANED = "NEVER_CLEANED"
    CLEANING_OVERDUE = "CLEANING_OVERDUE"
    MODE_CHANGE = "MODE_CHANGE"


class AlarmSeverity(str, Enum):
    """Alarm severity."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class AlarmStatus(str, Enum):
    """Alarm lifecycle state."""
    ACTIVE = "active"
    ACKNOWLEDGED = "acknowledged"
    RESOLVED = "resolved"


# Codes raised by the liveness path.
LIVENESS_CODES = (
    AlarmCode.NO_HEARTBEAT,
    AlarmCode.INVALID_HEARTBEAT,
    AlarmCode.OFFLINE,
    AlarmCode.CRITICAL_OFFLINE,
)


# ============================================================
# ALARM
# ============================================================

@dataclass
class Alarm:
    """One raised condition instance."""

    machine_id: str
    type: AlarmType
    code: AlarmCode
    severity: AlarmSeverity
    message: str
    timestamp: datetime
    status: AlarmStatus = AlarmStatus.ACTIVE
    id: Optional[str] = None
    acknowledged_by: Optional[str] = None
    acknowledged_at: Optional[datetime] = None
    resolved_by: Optional[str] = None
    resolved_at: Optional[datetime] = None
    notified: bool = False

    @property
    def key(self) -> Tuple[str, str, str]:
        return (self.machine_id, self.type.value, self.code.value)

    @property
    def is_active(self) -> bool:
        return self.status == AlarmStatus.ACTIVE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "machineId": self.machine_id,
            "type": self.type.value,
            "code": self.code.value,
            "severity": self.severity.value,
            "status": self.status.value,
            "message": self.message,
            "timestamp": self.timestamp.isoformat(),
            "acknowledgedBy": self.acknowledged_by,
            "acknowledgedAt": self.acknowledged_at.isoformat() if self.acknowledged_at else None,
            "resolvedBy": self.resolved_by,
            "resolvedAt": self.resolved_at.isoformat() if self.resolved_at else None,
            "notified": self.notified,
        }


@dataclass
class RaiseOutcome:
    """
    Result of a raise-or-get.

    created is False when an active alarm with the same key
    already existed (duplicate suppressed, not an error).
    """

    alarm_id: str
    created: bool
    notified: bool = False


# ============================================================
# NOTIFICATIONS
# ============================================================

@dataclass
class EmailMessage:
    """A rendered email ready for a transport."""

    to: List[str]
    subject: str
    html_content: str
    from_email: Optional[str] = None
    from_name: Optional[str] = None


@dataclass
class NotificationDelivery:
    """Dead-letter record for a notification the provider did not accept."""

    machine_id: Optional[str]
    alarm_id: Optional[str]
    recipients: List[str]
    subject: str
    html_content: str
    provider: str
    error: str
    created_at: datetime
    retried: bool = False
    retried_at: Optional[datetime] = None
    id: Optional[str] = None


# ============================================================
# SWEEP REPORTING
# ============================================================

@dataclass
class SweepSummary:
    """Counts for one sweep cycle, over successfully evaluated machines."""

    total_machines: int = 0
    offline_machines: int = 0
    critical_offline_machines: int = 0
    alarms_created: int = 0
    failed_machines: int = 0
    failed_machine_ids: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalMachines": self.total_machines,
            "offlineMachines": self.offline_machines,
            "criticalOfflineMachines": self.critical_offline_machines,
            "alarmsCreated": self.alarms_created,
            "failedMachines": self.failed_machines,
        }


@dataclass
class MachineStatusView:
    """One row of the status-check snapshot."""

    id: str
    name: str
    status: str
    liveness: Optional[LivenessStatus] = None
    last_seen_ms: Optional[int] = None
    minutes_since_last_heartbeat: Optional[int] = None
    reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "status": self.status,
            "liveness": self.liveness.value if self.liveness else None,
            "lastSeen": self.last_seen_ms,
            "minutesSinceLastHeartbeat": self.minutes_since_last_heartbeat,
            "reason": self.reason,
        }
