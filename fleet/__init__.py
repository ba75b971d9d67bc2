"""
Fleet Package.

Machines, heartbeat ingestion and the development simulator.

Modules:
- models: machine, heartbeat, telemetry and cleaning records
- registry: MachineRegistry
- heartbeat: HeartbeatService
- simulator: DeviceSimulator (development only)
"""

from .models import (
    MachineType,
    HeartbeatStatus,
    NotificationSettings,
    DeviceStatus,
    Machine,
    HeartbeatRecord,
    TelemetrySample,
    CleaningLog,
)


__all__ = [
    "MachineType",
    "HeartbeatStatus",
    "NotificationSettings",
    "DeviceStatus",
    "Machine",
    "HeartbeatRecord",
    "TelemetrySample",
    "CleaningLog",
]
