"""
Command Dispatch Queue.

============================================================
PURPOSE
============================================================
Persist remote commands and track their status.

    submit -> PENDING -> SENT -> DELIVERED -> EXECUTED
                 |                      +-> FAILED
                 +-> TIMEOUT (sweep_timeouts)

max_retries is recorded from the priority when the command
is submitted. Nothing re-sends a command automatically.

============================================================
"""

import logging
from datetime import timedelta
from typing import Any, Dict, List, Optional, Union

from commands.gateway import DeviceGatewayClient
from commands.models import (
    CommandPriority,
    CommandStatus,
    CommandType,
    MachineCommand,
    max_retries_for,
)
from commands.parameters import dump_parameters, parse_parameters
from core.clock import ClockFactory, ClockProtocol
from core.config import CommandConfig
from core.exceptions import (
    CommandNotFoundError,
    GatewayError,
    InvalidInputError,
    MachineNotFoundError,
)
from storage.store import FleetStore


logger = logging.getLogger(__name__)


def _coerce_enum(enum_cls, value, field: str):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        raise InvalidInputError(f"Unknown {field}: {value}", field=field)


class CommandQueue:
    """
    Command submission, status updates and timeout sweeps.
    """

    def __init__(
        self,
        store: FleetStore,
        config: Optional[CommandConfig] = None,
        gateway: Optional[DeviceGatewayClient] = None,
        clock: Optional[ClockProtocol] = None,
    ):
        self._store = store
        self._config = config or CommandConfig()
        self._gateway = gateway
        self._clock = clock or ClockFactory.get_clock()

    # --------------------------------------------------------
    # Submission
    # --------------------------------------------------------

    async def submit(
        self,
        machine_id: str,
        command_type: Union[CommandType, str],
        parameters: Optional[Dict[str, Any]] = None,
        priority: Union[CommandPriority, str] = CommandPriority.NORMAL,
        created_by: str = "system",
        timeout: Optional[int] = None,
    ) -> str:
        """
        Queue a command for a machine.

        Raises:
            InvalidInputError: Unknown type / priority or invalid parameters
            MachineNotFoundError: Unknown machine
        """
        command_type = _coerce_enum(CommandType, command_type, "type")
        priority = _coerce_enum(CommandPriority, priority, "priority")
        timeout = self._config.default_timeout_seconds if timeout is None else timeout
        if timeout <= 0:
            raise InvalidInputError("timeout must be positive", field="timeout")

        params = dump_parameters(parse_parameters(command_type, parameters))

        if await self._store.get_machine(machine_id) is None:
            raise MachineNotFoundError(machine_id)

        now = self._clock.now()
        command = MachineCommand(
            machine_id=machine_id,
            type=command_type,
            parameters=params,
            priority=priority,
            max_retries=max_retries_for(priority),
            created_at=now,
            updated_at=now,
            created_by=created_by,
            timeout_seconds=timeout,
        )
        command_id = await self._store.insert_command(command)
        logger.info(
            f"Command {command_type.value} queued for {machine_id} "
            f"[{priority.value}] id={command_id}"
        )

        await self._forward(machine_id, command_type, params)
        return command_id

    async def _forward(
        self,
        machine_id: str,
        command_type: CommandType,
        params: Dict[str, Any],
    ) -> None:
        if self._gateway is None:
            return
        try:
            await self._gateway.forward(machine_id, command_type, params)
        except GatewayError as e:
            logger.warning(f"Gateway forward failed for {command_type.value} on {machine_id}: {e.message}")

    # --------------------------------------------------------
    # Status
    # --------------------------------------------------------

    async def get(self, command_id: str) -> MachineCommand:
        command = await self._store.get_command(command_id)
        if command is None:
            raise CommandNotFoundError(command_id)
        return command

    async def list_commands(
        self,
        status: Optional[CommandStatus] = None,
        machine_id: Optional[str] = None,
    ) -> List[MachineCommand]:
        return await self._store.list_commands(status=status, machine_id=machine_id)

    async def update_status(
        self,
        command_id: str,
        status: Union[CommandStatus, str],
        response: Optional[Dict[str, Any]] = None,
    ) -> MachineCommand:
        """
        Record a status reported by the device or operator.

        Raises:
            CommandNotFoundError: Unknown id
            InvalidInputError: Unknown status
        """
        status = _coerce_enum(CommandStatus, status, "status")
        await self.get(command_id)

        changes: Dict[str, Any] = {
            "status": status,
            "updated_at": self._clock.now(),
        }
        if response is not None:
            changes["response"] = response
        await self._store.update_command(command_id, changes)

        logger.info(f"Command {command_id} -> {status.value}")
        return await self.get(command_id)

    # --------------------------------------------------------
    # Timeouts
    # --------------------------------------------------------

    async def sweep_timeouts(self) -> int:
        """
        Mark PENDING commands older than their timeout as TIMEOUT.

        Returns:
            Number of commands timed out
        """
        now = self._clock.now()
        timed_out = 0

        for command in await self._store.list_commands(status=CommandStatus.PENDING):
            if now - command.created_at <= timedelta(seconds=command.timeout_seconds):
                continue
            await self._store.update_command(command.id, {
                "status": CommandStatus.TIMEOUT,
                "updated_at": now,
            })
            timed_out += 1
            logger.warning(
                f"Command {command.id} ({command.type.value}) for {command.machine_id} timed out"
            )

        return timed_out
