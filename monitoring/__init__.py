"""
Monitoring Package.

============================================================
PURPOSE
============================================================
Machine liveness and alarm pipeline for the fleet.

device -> heartbeat store -> liveness classifier
       -> alarm manager (deduplicated) -> notification dispatcher

The telemetry rule sweep runs in the same cycle and feeds the
same alarm manager.

============================================================
MODULES
============================================================
- models: alarm records and enums
- liveness: heartbeat age classification
- alarms/: alarm manager (raise-or-get, operator actions)
- rules: telemetry and cleaning rules
- notifications/: email rendering, transports, dispatcher
- sweep: one fleet-wide evaluation cycle
- scheduler: periodic in-process trigger

Services are imported from their modules; this package only
re-exports the data types.

============================================================
"""

from .models import (
    LivenessStatus,
    AlarmType,
    AlarmCode,
    AlarmSeverity,
    AlarmStatus,
    Alarm,
    RaiseOutcome,
    EmailMessage,
    NotificationDelivery,
    SweepSummary,
    MachineStatusView,
)


__all__ = [
    "LivenessStatus",
    "AlarmType",
    "AlarmCode",
    "AlarmSeverity",
    "AlarmStatus",
    "Alarm",
    "RaiseOutcome",
    "EmailMessage",
    "NotificationDelivery",
    "SweepSummary",
    "MachineStatusView",
]
