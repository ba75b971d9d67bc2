"""
Machine Registry.

============================================================
PURPOSE
============================================================
Machine registration, lookup and removal.

- register(): creates the machine and its initial OFFLINE
  heartbeat (last seen = registration time)
- delete(): removes the machine with its heartbeat, telemetry
  and cleaning logs
- get_by_iot_number(): device-facing lookup, first match wins
- record_cleaning(): operator cleaning log

iot_number is expected to be unique. A duplicate is accepted
with a warning because the device side may re-register.

============================================================
"""

import logging
from typing import List, Optional

from core.clock import ClockFactory, ClockProtocol, to_epoch_ms
from core.exceptions import InvalidInputError, MachineNotFoundError
from fleet.models import (
    CleaningLog,
    HeartbeatRecord,
    HeartbeatStatus,
    Machine,
    MachineType,
    NotificationSettings,
)
from storage.store import FleetStore, new_id


logger = logging.getLogger(__name__)


class MachineRegistry:
    """
    Machine lifecycle operations.
    """

    def __init__(self, store: FleetStore, clock: Optional[ClockProtocol] = None):
        self._store = store
        self._clock = clock or ClockFactory.get_clock()

    # --------------------------------------------------------
    # Registration
    # --------------------------------------------------------

    async def register(
        self,
        name: str,
        serial_number: str,
        machine_type: MachineType = MachineType.SNACK,
        iot_number: Optional[str] = None,
        model: Optional[str] = None,
        location: Optional[str] = None,
        is_test: bool = False,
        notifications: Optional[NotificationSettings] = None,
        machine_id: Optional[str] = None,
    ) -> Machine:
        """
        Register a machine.

        Raises:
            InvalidInputError: name or serial number missing
        """
        if not name or not name.strip():
            raise InvalidInputError("Machine name is required", field="name")
        if not serial_number or not serial_number.strip():
            raise InvalidInputError("Serial number is required", field="serial_number")

        if iot_number:
            existing = await self._store.find_machines_by_iot_number(iot_number)
            if existing:
                logger.warning(
                    f"IoT number {iot_number} already used by machine(s) "
                    f"{', '.join(m.id for m in existing)}; lookups resolve to the first"
                )

        now = self._clock.now()
        machine = Machine(
            id=machine_id or new_id(),
            name=name.strip(),
            serial_number=serial_number.strip(),
            type=machine_type,
            iot_number=iot_number,
            model=model,
            location=location,
            is_test=is_test,
            notifications=notifications or NotificationSettings(),
            created_at=now,
            updated_at=now,
        )
        machine = await self._store.add_machine(machine)

        await self._store.upsert_heartbeat(HeartbeatRecord(
            machine_id=machine.id,
            last_seen_ms=to_epoch_ms(now),
            status=HeartbeatStatus.OFFLINE,
            updated_at=now,
        ))

        logger.info(f"Machine registered: {machine.name} ({machine.serial_number}) id={machine.id}")
        return machine

    async def delete(self, machine_id: str) -> None:
        """
        Delete a machine and everything it owns.

        Raises:
            MachineNotFoundError: Unknown id
        """
        if not await self._store.delete_machine(machine_id):
            raise MachineNotFoundError(machine_id)
        logger.info(f"Machine deleted: {machine_id}")

    # --------------------------------------------------------
    # Lookup
    # --------------------------------------------------------

    async def get(self, machine_id: str) -> Machine:
        machine = await self._store.get_machine(machine_id)
        if machine is None:
            raise MachineNotFoundError(machine_id)
        return machine

    async def list_all(self) -> List[Machine]:
        return await self._store.list_machines()

    async def get_by_iot_number(self, iot_number: str) -> Optional[Machine]:
        matches = await self._store.find_machines_by_iot_number(iot_number)
        if not matches:
            return None
        if len(matches) > 1:
            logger.warning(f"IoT number {iot_number} matches {len(matches)} machines; using {matches[0].id}")
        return matches[0]

    async def resolve(self, identifier: str) -> Machine:
        """
        Find a machine by id, falling back to IoT number.

        Raises:
            MachineNotFoundError: Neither matches
        """
        machine = await self._store.get_machine(identifier)
        if machine is None:
            machine = await self.get_by_iot_number(identifier)
        if machine is None:
            raise MachineNotFoundError(identifier)
        return machine

    # --------------------------------------------------------
    # Cleaning
    # --------------------------------------------------------

    async def record_cleaning(
        self,
        machine_id: str,
        performed_by: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> CleaningLog:
        """
        Record a cleaning.

        Raises:
            MachineNotFoundError: Unknown id
        """
        machine = await self.get(machine_id)
        now = self._clock.now()

        log = CleaningLog(
            machine_id=machine.id,
            timestamp=now,
            machine_type=machine.type,
            performed_by=performed_by,
            notes=notes,
            created_at=now,
        )
        log.id = await self._store.add_cleaning_log(log)
        await self._store.update_machine(machine.id, {
            "days_since_cleaning": 0,
            "last_cleaning_check": now,
        })

        logger.info(f"Cleaning log created for {machine.name} ({machine.serial_number})")
        return log
