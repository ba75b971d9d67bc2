"""
Storage - Fleet Store.

============================================================
RESPONSIBILITY
============================================================
Backend-agnostic async persistence for the fleet service.

- FleetStore: abstract interface every service depends on
- InMemoryFleetStore: process-local backend for development
  and tests

The SQLAlchemy backend lives in storage.sql_store.

============================================================
ATOMICITY
============================================================
insert_alarm() is an insert-if-absent keyed by
(machine_id, type, code) over ACTIVE alarms. A conflicting
insert raises DuplicateRecordError. The in-memory backend
checks and inserts without yielding to the event loop; the
SQL backend relies on a partial unique index.

============================================================
"""

import asyncio
import copy
import logging
import uuid
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional

from commands.models import CommandStatus, MachineCommand
from fleet.models import (
    CleaningLog,
    HeartbeatRecord,
    HeartbeatStatus,
    Machine,
    MUTABLE_MACHINE_FIELDS,
    TelemetrySample,
)
from monitoring.models import (
    Alarm,
    AlarmCode,
    AlarmStatus,
    AlarmType,
    NotificationDelivery,
)
from storage.repositories.exceptions import (
    DuplicateRecordError,
    ImmutableFieldError,
    RecordNotFoundError,
)


logger = logging.getLogger(__name__)


def new_id() -> str:
    return str(uuid.uuid4())


# ============================================================
# STORE INTERFACE
# ============================================================

class FleetStore(ABC):
    """Abstract async persistence interface."""

    # --------------------------------------------------------
    # Machines
    # --------------------------------------------------------

    @abstractmethod
    async def get_machine(self, machine_id: str) -> Optional[Machine]:
        pass

    @abstractmethod
    async def list_machines(self) -> List[Machine]:
        pass

    @abstractmethod
    async def find_machines_by_iot_number(self, iot_number: str) -> List[Machine]:
        """All machines with iot_number, in registration order."""
        pass

    @abstractmethod
    async def add_machine(self, machine: Machine) -> Machine:
        pass

    @abstractmethod
    async def update_machine(self, machine_id: str, changes: Dict[str, Any]) -> None:
        pass

    @abstractmethod
    async def delete_machine(self, machine_id: str) -> bool:
        """Delete a machine with its heartbeat, telemetry and cleaning logs."""
        pass

    # --------------------------------------------------------
    # Heartbeats & telemetry
    # --------------------------------------------------------

    @abstractmethod
    async def get_heartbeat(self, machine_id: str) -> Optional[HeartbeatRecord]:
        pass

    @abstractmethod
    async def upsert_heartbeat(self, record: HeartbeatRecord) -> None:
        pass

    @abstractmethod
    async def set_heartbeat_status(self, machine_id: str, status: HeartbeatStatus) -> None:
        pass

    @abstractmethod
    async def append_telemetry(self, sample: TelemetrySample) -> str:
        pass

    @abstractmethod
    async def latest_telemetry(self, machine_id: str) -> Optional[TelemetrySample]:
        pass

    # --------------------------------------------------------
    # Cleaning logs
    # --------------------------------------------------------

    @abstractmethod
    async def add_cleaning_log(self, log: CleaningLog) -> str:
        pass

    @abstractmethod
    async def latest_cleaning_log(self, machine_id: str) -> Optional[CleaningLog]:
        pass

    # --------------------------------------------------------
    # Alarms
    # --------------------------------------------------------

    @abstractmethod
    async def find_active_alarm(
        self,
        machine_id: str,
        alarm_type: AlarmType,
        code: AlarmCode,
    ) -> Optional[Alarm]:
        pass

    @abstractmethod
    async def insert_alarm(self, alarm: Alarm) -> str:
        """
        Insert an ACTIVE alarm if its key is free.

        Raises:
            DuplicateRecordError: An active alarm with the same key exists
        """
        pass

    @abstractmethod
    async def get_alarm(self, alarm_id: str) -> Optional[Alarm]:
        pass

    @abstractmethod
    async def list_alarms(
        self,
        status: Optional[AlarmStatus] = None,
        machine_id: Optional[str] = None,
    ) -> List[Alarm]:
        """Alarms newest first."""
        pass

    @abstractmethod
    async def update_alarm(self, alarm_id: str, changes: Dict[str, Any]) -> None:
        pass

    @abstractmethod
    async def delete_alarms(
        self,
        status: Optional[AlarmStatus] = None,
        older_than: Optional[datetime] = None,
    ) -> int:
        pass

    # --------------------------------------------------------
    # Commands
    # --------------------------------------------------------

    @abstractmethod
    async def insert_command(self, command: MachineCommand) -> str:
        pass

    @abstractmethod
    async def get_command(self, command_id: str) -> Optional[MachineCommand]:
        pass

    @abstractmethod
    async def list_commands(
        self,
        status: Optional[CommandStatus] = None,
        machine_id: Optional[str] = None,
    ) -> List[MachineCommand]:
        pass

    @abstractmethod
    async def update_command(self, command_id: str, changes: Dict[str, Any]) -> None:
        pass

    # --------------------------------------------------------
    # Notification dead letters
    # --------------------------------------------------------

    @abstractmethod
    async def add_dead_letter(self, delivery: NotificationDelivery) -> str:
        pass

    @abstractmethod
    async def list_dead_letters(self, include_retried: bool = False) -> List[NotificationDelivery]:
        pass

    @abstractmethod
    async def update_dead_letter(self, delivery_id: str, changes: Dict[str, Any]) -> None:
        pass

    async def close(self) -> None:
        """Release backend resources."""
        return None


# ============================================================
# IN-MEMORY STORE
# ============================================================

class InMemoryFleetStore(FleetStore):
    """
    Process-local store.

    Records are deep-copied on the way in and out so callers
    never share state with the store.
    """

    STORE_NAME = "InMemoryFleetStore"

    def __init__(self):
        self._machines: Dict[str, Machine] = {}
        self._heartbeats: Dict[str, HeartbeatRecord] = {}
        self._telemetry: Dict[str, List[TelemetrySample]] = {}
        self._cleaning_logs: Dict[str, List[CleaningLog]] = {}
        self._alarms: Dict[str, Alarm] = {}
        self._active_alarm_index: Dict[tuple, str] = {}
        self._commands: Dict[str, MachineCommand] = {}
        self._dead_letters: Dict[str, NotificationDelivery] = {}
        self._lock = asyncio.Lock()

    def _not_found(self, record_id: str, id_field: str) -> RecordNotFoundError:
        return RecordNotFoundError(self.STORE_NAME, record_id, id_field)

    # --------------------------------------------------------
    # Machines
    # --------------------------------------------------------

    async def get_machine(self, machine_id: str) -> Optional[Machine]:
        machine = self._machines.get(machine_id)
        return copy.deepcopy(machine) if machine else None

    async def list_machines(self) -> List[Machine]:
        return [copy.deepcopy(m) for m in self._machines.values()]

    async def find_machines_by_iot_number(self, iot_number: str) -> List[Machine]:
        return [
            copy.deepcopy(m) for m in self._machines.values()
            if m.iot_number == iot_number
        ]

    async def add_machine(self, machine: Machine) -> Machine:
        async with self._lock:
            if machine.id in self._machines:
                raise DuplicateRecordError(self.STORE_NAME, "id", machine.id)
            self._machines[machine.id] = copy.deepcopy(machine)
        return copy.deepcopy(machine)

    async def update_machine(self, machine_id: str, changes: Dict[str, Any]) -> None:
        unknown = set(changes) - MUTABLE_MACHINE_FIELDS
        if unknown:
            raise ImmutableFieldError(self.STORE_NAME, "update_machine", unknown)
        async with self._lock:
            machine = self._machines.get(machine_id)
            if machine is None:
                raise self._not_found(machine_id, "machine_id")
            for name, value in changes.items():
                setattr(machine, name, copy.deepcopy(value))

    async def delete_machine(self, machine_id: str) -> bool:
        async with self._lock:
            machine = self._machines.pop(machine_id, None)
            self._heartbeats.pop(machine_id, None)
            self._telemetry.pop(machine_id, None)
            self._cleaning_logs.pop(machine_id, None)
        return machine is not None

    # --------------------------------------------------------
    # Heartbeats & telemetry
    # --------------------------------------------------------

    async def get_heartbeat(self, machine_id: str) -> Optional[HeartbeatRecord]:
        record = self._heartbeats.get(machine_id)
        return copy.deepcopy(record) if record else None

    async def upsert_heartbeat(self, record: HeartbeatRecord) -> None:
        async with self._lock:
            self._heartbeats[record.machine_id] = copy.deepcopy(record)

    async def set_heartbeat_status(self, machine_id: str, status: HeartbeatStatus) -> None:
        async with self._lock:
            record = self._heartbeats.get(machine_id)
            if record is None:
                raise self._not_found(machine_id, "machine_id")
            record.status = status

    async def append_telemetry(self, sample: TelemetrySample) -> str:
        sample = copy.deepcopy(sample)
        sample.id = sample.id or new_id()
        async with self._lock:
            self._telemetry.setdefault(sample.machine_id, []).append(sample)
        return sample.id

    async def latest_telemetry(self, machine_id: str) -> Optional[TelemetrySample]:
        samples = self._telemetry.get(machine_id)
        if not samples:
            return None
        return copy.deepcopy(max(samples, key=lambda s: s.timestamp))

    # --------------------------------------------------------
    # Cleaning logs
    # --------------------------------------------------------

    async def add_cleaning_log(self, log: CleaningLog) -> str:
        log = copy.deepcopy(log)
        log.id = log.id or new_id()
        async with self._lock:
            self._cleaning_logs.setdefault(log.machine_id, []).append(log)
        return log.id

    async def latest_cleaning_log(self, machine_id: str) -> Optional[CleaningLog]:
        logs = self._cleaning_logs.get(machine_id)
        if not logs:
            return None
        return copy.deepcopy(max(logs, key=lambda entry: entry.timestamp))

    # --------------------------------------------------------
    # Alarms
    # --------------------------------------------------------

    async def find_active_alarm(
        self,
        machine_id: str,
        alarm_type: AlarmType,
        code: AlarmCode,
    ) -> Optional[Alarm]:
        alarm_id = self._active_alarm_index.get((machine_id, alarm_type.value, code.value))
        if alarm_id is None:
            return None
        return copy.deepcopy(self._alarms[alarm_id])

    async def insert_alarm(self, alarm: Alarm) -> str:
        alarm = copy.deepcopy(alarm)
        alarm.id = alarm.id or new_id()
        async with self._lock:
            if alarm.status == AlarmStatus.ACTIVE:
                if alarm.key in self._active_alarm_index:
                    raise DuplicateRecordError(
                        self.STORE_NAME, "machine_id,type,code", "/".join(alarm.key)
                    )
                self._active_alarm_index[alarm.key] = alarm.id
            self._alarms[alarm.id] = alarm
        return alarm.id

    async def get_alarm(self, alarm_id: str) -> Optional[Alarm]:
        alarm = self._alarms.get(alarm_id)
        return copy.deepcopy(alarm) if alarm else None

    async def list_alarms(
        self,
        status: Optional[AlarmStatus] = None,
        machine_id: Optional[str] = None,
    ) -> List[Alarm]:
        alarms = [
            a for a in self._alarms.values()
            if (status is None or a.status == status)
            and (machine_id is None or a.machine_id == machine_id)
        ]
        alarms.sort(key=lambda a: a.timestamp, reverse=True)
        return [copy.deepcopy(a) for a in alarms]

    async def update_alarm(self, alarm_id: str, changes: Dict[str, Any]) -> None:
        async with self._lock:
            alarm = self._alarms.get(alarm_id)
            if alarm is None:
                raise self._not_found(alarm_id, "alarm_id")
            was_active = alarm.is_active
            for name, value in changes.items():
                setattr(alarm, name, value)
            if was_active and not alarm.is_active:
                self._active_alarm_index.pop(alarm.key, None)

    async def delete_alarms(
        self,
        status: Optional[AlarmStatus] = None,
        older_than: Optional[datetime] = None,
    ) -> int:
        async with self._lock:
            doomed = [
                a for a in self._alarms.values()
                if (status is None or a.status == status)
                and (older_than is None or a.timestamp < older_than)
            ]
            for alarm in doomed:
                del self._alarms[alarm.id]
                if self._active_alarm_index.get(alarm.key) == alarm.id:
                    del self._active_alarm_index[alarm.key]
        return len(doomed)

    # --------------------------------------------------------
    # Commands
    # --------------------------------------------------------

    async def insert_command(self, command: MachineCommand) -> str:
        command = copy.deepcopy(command)
        command.id = command.id or new_id()
        async with self._lock:
            self._commands[command.id] = command
        return command.id

    async def get_command(self, command_id: str) -> Optional[MachineCommand]:
        command = self._commands.get(command_id)
        return copy.deepcopy(command) if command else None

    async def list_commands(
        self,
        status: Optional[CommandStatus] = None,
        machine_id: Optional[str] = None,
    ) -> List[MachineCommand]:
        return [
            copy.deepcopy(c) for c in self._commands.values()
            if (status is None or c.status == status)
            and (machine_id is None or c.machine_id == machine_id)
        ]

    async def update_command(self, command_id: str, changes: Dict[str, Any]) -> None:
        async with self._lock:
            command = self._commands.get(command_id)
            if command is None:
                raise self._not_found(command_id, "command_id")
            for name, value in changes.items():
                setattr(command, name, copy.deepcopy(value))

    # --------------------------------------------------------
    # Notification dead letters
    # --------------------------------------------------------

    async def add_dead_letter(self, delivery: NotificationDelivery) -> str:
        delivery = copy.deepcopy(delivery)
        delivery.id = delivery.id or new_id()
        async with self._lock:
            self._dead_letters[delivery.id] = delivery
        return delivery.id

    async def list_dead_letters(self, include_retried: bool = False) -> List[NotificationDelivery]:
        return [
            copy.deepcopy(d) for d in self._dead_letters.values()
            if include_retried or not d.retried
        ]

    async def update_dead_letter(self, delivery_id: str, changes: Dict[str, Any]) -> None:
        async with self._lock:
            delivery = self._dead_letters.get(delivery_id)
            if delivery is None:
                raise self._not_found(delivery_id, "delivery_id")
            for name, value in changes.items():
                setattr(delivery, name, value)
