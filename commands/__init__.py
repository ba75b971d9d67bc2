"""
Commands Package.

Remote command queue for fleet machines.

Modules:
- models: MachineCommand and its enums
- parameters: per-type parameter schemas
- queue: CommandQueue
- gateway: DeviceGatewayClient
"""

from .models import (
    CommandType,
    CommandPriority,
    CommandStatus,
    MachineCommand,
    PRIORITY_MAX_RETRIES,
    max_retries_for,
)


__all__ = [
    "CommandType",
    "CommandPriority",
    "CommandStatus",
    "MachineCommand",
    "PRIORITY_MAX_RETRIES",
    "max_retries_for",
]
