"""
Storage Models Package.

This package contains all ORM models for the fleet database.
Models are organized by domain.

============================================================
MODEL ORGANIZATION
============================================================

Domain 1: Fleet (fleet.py)
- MachineRecord
- HeartbeatRow
- TelemetrySampleRow
- CleaningLogRow

Domain 2: Alarms (alarms.py)
- AlarmRow
- NotificationDeadLetterRow

Domain 3: Commands (commands.py)
- MachineCommandRow

============================================================
DESIGN PRINCIPLES
============================================================
- All models use explicit column definitions
- All timestamps are timezone-aware
- Indexes live in __table_args__
- No business logic in models

============================================================
"""

from storage.models.base import Base, TimestampMixin
from storage.models.fleet import (
    MachineRecord,
    HeartbeatRow,
    TelemetrySampleRow,
    CleaningLogRow,
)
from storage.models.alarms import (
    AlarmRow,
    NotificationDeadLetterRow,
)
from storage.models.commands import MachineCommandRow


__all__ = [
    "Base",
    "TimestampMixin",
    "MachineRecord",
    "HeartbeatRow",
    "TelemetrySampleRow",
    "CleaningLogRow",
    "AlarmRow",
    "NotificationDeadLetterRow",
    "MachineCommandRow",
]
