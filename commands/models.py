"""
Command Dispatch - Data Models.

============================================================
PURPOSE
============================================================
Remote command records and their enums.

Priority determines the retry budget recorded on the
command (critical 5, high 3, normal 2, low 1).

============================================================
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


# ============================================================
# ENUMS
# ============================================================

class CommandType(str, Enum):
    """Every command a machine can be sent, grouped by machine family."""

    # Ice cream
    ICE_CREAM_SET_MODE = "ICE_CREAM_SET_MODE"
    ICE_CREAM_SET_FLAVOR_COMBINATION = "ICE_CREAM_SET_FLAVOR_COMBINATION"
    ICE_CREAM_SET_LOCK_SETTINGS = "ICE_CREAM_SET_LOCK_SETTINGS"
    ICE_CREAM_CHECK_STATUS = "ICE_CREAM_CHECK_STATUS"
    ICE_CREAM_VIEW_PRODUCTION_STATS = "ICE_CREAM_VIEW_PRODUCTION_STATS"
    ICE_CREAM_GET_TEMPERATURE_READINGS = "ICE_CREAM_GET_TEMPERATURE_READINGS"

    # Snack vending
    VENDING_CONFIGURE_SLOT = "VENDING_CONFIGURE_SLOT"
    VENDING_DISPENSE_PRODUCT = "VENDING_DISPENSE_PRODUCT"
    VENDING_SET_PRICES = "VENDING_SET_PRICES"
    VENDING_DISABLE_SLOT = "VENDING_DISABLE_SLOT"
    VENDING_ENABLE_SLOT = "VENDING_ENABLE_SLOT"
    VENDING_SET_TEMPERATURE = "VENDING_SET_TEMPERATURE"
    VENDING_SET_PAYMENT_MODES = "VENDING_SET_PAYMENT_MODES"
    VENDING_SET_ENERGY_MODE = "VENDING_SET_ENERGY_MODE"

    # Coffee
    COFFEE_SET_RECIPE = "COFFEE_SET_RECIPE"
    COFFEE_SET_WATER_TEMP = "COFFEE_SET_WATER_TEMP"
    COFFEE_START_CLEANING = "COFFEE_START_CLEANING"
    COFFEE_SET_STRENGTH = "COFFEE_SET_STRENGTH"
    COFFEE_MANAGE_BEANS = "COFFEE_MANAGE_BEANS"

    # Perfume
    PERFUME_SET_SPRAY_AMOUNT = "PERFUME_SET_SPRAY_AMOUNT"
    PERFUME_SELECT_SCENT = "PERFUME_SELECT_SCENT"
    PERFUME_LOCK_CONTROL = "PERFUME_LOCK_CONTROL"
    PERFUME_TEST_DISPENSE = "PERFUME_TEST_DISPENSE"

    # Any machine
    UNIVERSAL_REBOOT = "UNIVERSAL_REBOOT"
    UNIVERSAL_UPDATE_FIRMWARE = "UNIVERSAL_UPDATE_FIRMWARE"
    UNIVERSAL_SYNC_TIME = "UNIVERSAL_SYNC_TIME"
    UNIVERSAL_GET_STATUS = "UNIVERSAL_GET_STATUS"
    UNIVERSAL_SET_DISPLAY_MESSAGE = "UNIVERSAL_SET_DISPLAY_MESSAGE"
    UNIVERSAL_ENABLE_MAINTENANCE_MODE = "UNIVERSAL_ENABLE_MAINTENANCE_MODE"
    UNIVERSAL_DISABLE_MAINTENANCE_MODE = "UNIVERSAL_DISABLE_MAINTENANCE_MODE"
    UNIVERSAL_EMERGENCY_STOP = "UNIVERSAL_EMERGENCY_STOP"
    UNIVERSAL_RESET_ALARMS = "UNIVERSAL_RESET_ALARMS"
    UNIVERSAL_SET_OPERATION_HOURS = "UNIVERSAL_SET_OPERATION_HOURS"

    # Diagnostics
    DIAGNOSTIC_RUN_SELF_TEST = "DIAGNOSTIC_RUN_SELF_TEST"
    DIAGNOSTIC_TEST_SENSORS = "DIAGNOSTIC_TEST_SENSORS"
    DIAGNOSTIC_COLLECT_LOGS = "DIAGNOSTIC_COLLECT_LOGS"
    DIAGNOSTIC_NETWORK_TEST = "DIAGNOSTIC_NETWORK_TEST"


class CommandPriority(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    CRITICAL = "critical"


class CommandStatus(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    DELIVERED = "delivered"
    EXECUTED = "executed"
    FAILED = "failed"
    TIMEOUT = "timeout"


PRIORITY_MAX_RETRIES: Dict[CommandPriority, int] = {
    CommandPriority.CRITICAL: 5,
    CommandPriority.HIGH: 3,
    CommandPriority.NORMAL: 2,
    CommandPriority.LOW: 1,
}


def max_retries_for(priority: CommandPriority) -> int:
    return PRIORITY_MAX_RETRIES.get(priority, 2)


# ============================================================
# COMMAND
# ============================================================

@dataclass
class MachineCommand:
    """A persisted remote command."""

    machine_id: str
    type: CommandType
    parameters: Dict[str, Any]
    priority: CommandPriority
    max_retries: int
    created_at: datetime
    created_by: str
    timeout_seconds: int = 60
    status: CommandStatus = CommandStatus.PENDING
    retry_count: int = 0
    updated_at: Optional[datetime] = None
    response: Optional[Dict[str, Any]] = None
    id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "machineId": self.machine_id,
            "type": self.type.value,
            "parameters": self.parameters,
            "priority": self.priority.value,
            "status": self.status.value,
            "maxRetries": self.max_retries,
            "retryCount": self.retry_count,
            "timeout": self.timeout_seconds,
            "createdBy": self.created_by,
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
            "response": self.response,
        }
