"""
Storage - SQL Fleet Store.

============================================================
RESPONSIBILITY
============================================================
FleetStore backed by SQLAlchemy async sessions.

- One short transaction per store call
- Row <-> domain record conversion lives here; repositories
  only see ORM rows
- SQLite returns naive datetimes; everything leaving this
  module is UTC-aware

============================================================
"""

import logging
from dataclasses import asdict
from datetime import datetime
from typing import Any, Dict, List, Optional

from commands.models import (
    CommandPriority,
    CommandStatus,
    CommandType,
    MachineCommand,
)
from core.clock import ensure_utc
from fleet.models import (
    CleaningLog,
    DeviceStatus,
    HeartbeatRecord,
    HeartbeatStatus,
    Machine,
    MachineType,
    MUTABLE_MACHINE_FIELDS,
    NotificationSettings,
    TelemetrySample,
)
from monitoring.models import (
    Alarm,
    AlarmCode,
    AlarmSeverity,
    AlarmStatus,
    AlarmType,
    NotificationDelivery,
)
from storage.database import Database
from storage.models import (
    AlarmRow,
    CleaningLogRow,
    HeartbeatRow,
    MachineCommandRow,
    MachineRecord,
    NotificationDeadLetterRow,
    TelemetrySampleRow,
)
from storage.repositories.alarms import AlarmRepository, DeadLetterRepository
from storage.repositories.commands import CommandRepository
from storage.repositories.exceptions import ImmutableFieldError
from storage.repositories.fleet import (
    CleaningLogRepository,
    HeartbeatRepository,
    MachineRepository,
    TelemetryRepository,
)
from storage.store import FleetStore, new_id


logger = logging.getLogger(__name__)


# ============================================================
# CONVERSIONS
# ============================================================

def _device_status_to_json(status: DeviceStatus) -> Dict[str, Any]:
    data = asdict(status)
    data["last_updated"] = status.last_updated.isoformat() if status.last_updated else None
    return data


def _device_status_from_json(data: Optional[Dict[str, Any]]) -> DeviceStatus:
    data = dict(data or {})
    last_updated = data.pop("last_updated", None)
    return DeviceStatus(
        last_updated=ensure_utc(datetime.fromisoformat(last_updated)) if last_updated else None,
        **data,
    )


def _machine_column_value(name: str, value: Any) -> Any:
    if name == "notifications":
        return asdict(value)
    if name == "device_status":
        return _device_status_to_json(value)
    if name == "connection_status":
        return HeartbeatStatus(value).value
    return value


def machine_to_row(machine: Machine) -> MachineRecord:
    return MachineRecord(
        id=machine.id,
        name=machine.name,
        serial_number=machine.serial_number,
        type=machine.type.value,
        iot_number=machine.iot_number,
        model=machine.model,
        location=machine.location,
        is_test=machine.is_test,
        notifications=asdict(machine.notifications),
        created_at=machine.created_at,
        updated_at=machine.updated_at or machine.created_at,
        connection_status=machine.connection_status.value,
        last_heartbeat=machine.last_heartbeat,
        device_status=_device_status_to_json(machine.device_status),
        days_since_cleaning=machine.days_since_cleaning,
        last_cleaning_check=machine.last_cleaning_check,
        hours_without_power=machine.hours_without_power,
        power_outage_start=machine.power_outage_start,
        last_power_check=machine.last_power_check,
        last_operational_mode=machine.last_operational_mode,
    )


def machine_from_row(row: MachineRecord) -> Machine:
    return Machine(
        id=row.id,
        name=row.name,
        serial_number=row.serial_number,
        type=MachineType(row.type),
        iot_number=row.iot_number,
        model=row.model,
        location=row.location,
        is_test=row.is_test,
        notifications=NotificationSettings(**(row.notifications or {})),
        created_at=ensure_utc(row.created_at),
        updated_at=ensure_utc(row.updated_at),
        connection_status=HeartbeatStatus(row.connection_status),
        last_heartbeat=ensure_utc(row.last_heartbeat),
        device_status=_device_status_from_json(row.device_status),
        days_since_cleaning=row.days_since_cleaning,
        last_cleaning_check=ensure_utc(row.last_cleaning_check),
        hours_without_power=row.hours_without_power or 0,
        power_outage_start=ensure_utc(row.power_outage_start),
        last_power_check=ensure_utc(row.last_power_check),
        last_operational_mode=row.last_operational_mode,
    )


def heartbeat_from_row(row: HeartbeatRow) -> HeartbeatRecord:
    return HeartbeatRecord(
        machine_id=row.machine_id,
        last_seen_ms=row.last_seen_ms,
        status=HeartbeatStatus(row.status),
        device_id=row.device_id,
        updated_at=ensure_utc(row.updated_at),
    )


def telemetry_from_row(row: TelemetrySampleRow) -> TelemetrySample:
    return TelemetrySample(
        id=row.id,
        machine_id=row.machine_id,
        timestamp=ensure_utc(row.timestamp),
        power_status=row.power_status,
        operational_mode=row.operational_mode,
        errors=list(row.errors or []),
        temperature_readings=dict(row.temperature_readings or {}),
        sales_data=row.sales_data,
        cleaning_status=row.cleaning_status,
    )


def cleaning_log_from_row(row: CleaningLogRow) -> CleaningLog:
    return CleaningLog(
        id=row.id,
        machine_id=row.machine_id,
        timestamp=ensure_utc(row.timestamp),
        machine_type=MachineType(row.machine_type) if row.machine_type else None,
        performed_by=row.performed_by,
        notes=row.notes,
        created_at=ensure_utc(row.created_at),
    )


def alarm_from_row(row: AlarmRow) -> Alarm:
    return Alarm(
        id=row.id,
        machine_id=row.machine_id,
        type=AlarmType(row.type),
        code=AlarmCode(row.code),
        severity=AlarmSeverity(row.severity),
        status=AlarmStatus(row.status),
        message=row.message,
        timestamp=ensure_utc(row.timestamp),
        acknowledged_by=row.acknowledged_by,
        acknowledged_at=ensure_utc(row.acknowledged_at),
        resolved_by=row.resolved_by,
        resolved_at=ensure_utc(row.resolved_at),
        notified=row.notified,
    )


def command_from_row(row: MachineCommandRow) -> MachineCommand:
    return MachineCommand(
        id=row.id,
        machine_id=row.machine_id,
        type=CommandType(row.type),
        parameters=dict(row.parameters or {}),
        priority=CommandPriority(row.priority),
        status=CommandStatus(row.status),
        max_retries=row.max_retries,
        retry_count=row.retry_count,
        timeout_seconds=row.timeout_seconds,
        created_by=row.created_by,
        created_at=ensure_utc(row.created_at),
        updated_at=ensure_utc(row.updated_at),
        response=row.response,
    )


def dead_letter_from_row(row: NotificationDeadLetterRow) -> NotificationDelivery:
    return NotificationDelivery(
        id=row.id,
        machine_id=row.machine_id,
        alarm_id=row.alarm_id,
        recipients=list(row.recipients or []),
        subject=row.subject,
        html_content=row.html_content,
        provider=row.provider,
        error=row.error,
        created_at=ensure_utc(row.created_at),
        retried=row.retried,
        retried_at=ensure_utc(row.retried_at),
    )


def _enum_values(changes: Dict[str, Any]) -> Dict[str, Any]:
    """Flatten enum members to their stored string values."""
    return {k: (v.value if hasattr(v, "value") else v) for k, v in changes.items()}


# ============================================================
# SQL STORE
# ============================================================

class SqlFleetStore(FleetStore):
    """
    FleetStore over a Database.

    close() disposes of the Database engine.
    """

    STORE_NAME = "SqlFleetStore"

    def __init__(self, database: Database):
        self._db = database

    @property
    def database(self) -> Database:
        return self._db

    async def close(self) -> None:
        await self._db.disconnect()

    # --------------------------------------------------------
    # Machines
    # --------------------------------------------------------

    async def get_machine(self, machine_id: str) -> Optional[Machine]:
        async with self._db.session() as session:
            row = await MachineRepository(session).get(machine_id)
            return machine_from_row(row) if row else None

    async def list_machines(self) -> List[Machine]:
        async with self._db.session() as session:
            rows = await MachineRepository(session).list_all()
            return [machine_from_row(r) for r in rows]

    async def find_machines_by_iot_number(self, iot_number: str) -> List[Machine]:
        async with self._db.session() as session:
            rows = await MachineRepository(session).list_by_iot_number(iot_number)
            return [machine_from_row(r) for r in rows]

    async def add_machine(self, machine: Machine) -> Machine:
        async with self._db.session() as session:
            repo = MachineRepository(session)
            await repo.create(machine_to_row(machine))
            await repo.commit()
        return machine

    async def update_machine(self, machine_id: str, changes: Dict[str, Any]) -> None:
        unknown = set(changes) - MUTABLE_MACHINE_FIELDS
        if unknown:
            raise ImmutableFieldError(self.STORE_NAME, "update_machine", unknown)
        columns = {name: _machine_column_value(name, value) for name, value in changes.items()}
        async with self._db.session() as session:
            repo = MachineRepository(session)
            await repo.update_fields(machine_id, columns)
            await repo.commit()

    async def delete_machine(self, machine_id: str) -> bool:
        async with self._db.session() as session:
            repo = MachineRepository(session)
            deleted = await repo.delete_cascade(machine_id)
            await repo.commit()
            return deleted

    # --------------------------------------------------------
    # Heartbeats & telemetry
    # --------------------------------------------------------

    async def get_heartbeat(self, machine_id: str) -> Optional[HeartbeatRecord]:
        async with self._db.session() as session:
            row = await HeartbeatRepository(session).get(machine_id)
            return heartbeat_from_row(row) if row else None

    async def upsert_heartbeat(self, record: HeartbeatRecord) -> None:
        last_seen = record.last_seen_ms if isinstance(record.last_seen_ms, int) else None
        async with self._db.session() as session:
            repo = HeartbeatRepository(session)
            await repo.upsert(
                machine_id=record.machine_id,
                last_seen_ms=last_seen,
                status=HeartbeatStatus(record.status).value,
                device_id=record.device_id,
                updated_at=record.updated_at,
            )
            await repo.commit()

    async def set_heartbeat_status(self, machine_id: str, status: HeartbeatStatus) -> None:
        async with self._db.session() as session:
            repo = HeartbeatRepository(session)
            await repo.set_status(machine_id, status.value)
            await repo.commit()

    async def append_telemetry(self, sample: TelemetrySample) -> str:
        row = TelemetrySampleRow(
            id=sample.id or new_id(),
            machine_id=sample.machine_id,
            timestamp=sample.timestamp,
            power_status=sample.power_status,
            operational_mode=sample.operational_mode,
            errors=list(sample.errors),
            temperature_readings=dict(sample.temperature_readings),
            sales_data=sample.sales_data,
            cleaning_status=sample.cleaning_status,
        )
        async with self._db.session() as session:
            repo = TelemetryRepository(session)
            await repo.append(row)
            await repo.commit()
        return row.id

    async def latest_telemetry(self, machine_id: str) -> Optional[TelemetrySample]:
        async with self._db.session() as session:
            row = await TelemetryRepository(session).latest(machine_id)
            return telemetry_from_row(row) if row else None

    # --------------------------------------------------------
    # Cleaning logs
    # --------------------------------------------------------

    async def add_cleaning_log(self, log: CleaningLog) -> str:
        row = CleaningLogRow(
            id=log.id or new_id(),
            machine_id=log.machine_id,
            timestamp=log.timestamp,
            machine_type=log.machine_type.value if log.machine_type else None,
            performed_by=log.performed_by,
            notes=log.notes,
            created_at=log.created_at,
        )
        async with self._db.session() as session:
            repo = CleaningLogRepository(session)
            await repo.append(row)
            await repo.commit()
        return row.id

    async def latest_cleaning_log(self, machine_id: str) -> Optional[CleaningLog]:
        async with self._db.session() as session:
            row = await CleaningLogRepository(session).latest(machine_id)
            return cleaning_log_from_row(row) if row else None

    # --------------------------------------------------------
    # Alarms
    # --------------------------------------------------------

    async def find_active_alarm(
        self,
        machine_id: str,
        alarm_type: AlarmType,
        code: AlarmCode,
    ) -> Optional[Alarm]:
        async with self._db.session() as session:
            row = await AlarmRepository(session).find_active(machine_id, alarm_type.value, code.value)
            return alarm_from_row(row) if row else None

    async def insert_alarm(self, alarm: Alarm) -> str:
        row = AlarmRow(
            id=alarm.id or new_id(),
            machine_id=alarm.machine_id,
            type=alarm.type.value,
            code=alarm.code.value,
            severity=alarm.severity.value,
            status=alarm.status.value,
            message=alarm.message,
            timestamp=alarm.timestamp,
            notified=alarm.notified,
        )
        async with self._db.session() as session:
            repo = AlarmRepository(session)
            await repo.insert(row)
            await repo.commit()
        return row.id

    async def get_alarm(self, alarm_id: str) -> Optional[Alarm]:
        async with self._db.session() as session:
            row = await AlarmRepository(session).get(alarm_id)
            return alarm_from_row(row) if row else None

    async def list_alarms(
        self,
        status: Optional[AlarmStatus] = None,
        machine_id: Optional[str] = None,
    ) -> List[Alarm]:
        async with self._db.session() as session:
            rows = await AlarmRepository(session).list_filtered(
                status=status.value if status else None,
                machine_id=machine_id,
            )
            return [alarm_from_row(r) for r in rows]

    async def update_alarm(self, alarm_id: str, changes: Dict[str, Any]) -> None:
        async with self._db.session() as session:
            repo = AlarmRepository(session)
            await repo.update_fields(alarm_id, _enum_values(changes))
            await repo.commit()

    async def delete_alarms(
        self,
        status: Optional[AlarmStatus] = None,
        older_than: Optional[datetime] = None,
    ) -> int:
        async with self._db.session() as session:
            repo = AlarmRepository(session)
            deleted = await repo.delete_matching(
                status=status.value if status else None,
                older_than=older_than,
            )
            await repo.commit()
            return deleted

    # --------------------------------------------------------
    # Commands
    # --------------------------------------------------------

    async def insert_command(self, command: MachineCommand) -> str:
        row = MachineCommandRow(
            id=command.id or new_id(),
            machine_id=command.machine_id,
            type=command.type.value,
            parameters=dict(command.parameters),
            priority=command.priority.value,
            status=command.status.value,
            max_retries=command.max_retries,
            retry_count=command.retry_count,
            timeout_seconds=command.timeout_seconds,
            created_by=command.created_by,
            created_at=command.created_at,
            updated_at=command.updated_at or command.created_at,
            response=command.response,
        )
        async with self._db.session() as session:
            repo = CommandRepository(session)
            await repo.insert(row)
            await repo.commit()
        return row.id

    async def get_command(self, command_id: str) -> Optional[MachineCommand]:
        async with self._db.session() as session:
            row = await CommandRepository(session).get(command_id)
            return command_from_row(row) if row else None

    async def list_commands(
        self,
        status: Optional[CommandStatus] = None,
        machine_id: Optional[str] = None,
    ) -> List[MachineCommand]:
        async with self._db.session() as session:
            rows = await CommandRepository(session).list_filtered(
                status=status.value if status else None,
                machine_id=machine_id,
            )
            return [command_from_row(r) for r in rows]

    async def update_command(self, command_id: str, changes: Dict[str, Any]) -> None:
        async with self._db.session() as session:
            repo = CommandRepository(session)
            await repo.update_fields(command_id, _enum_values(changes))
            await repo.commit()

    # --------------------------------------------------------
    # Notification dead letters
    # --------------------------------------------------------

    async def add_dead_letter(self, delivery: NotificationDelivery) -> str:
        row = NotificationDeadLetterRow(
            id=delivery.id or new_id(),
            machine_id=delivery.machine_id,
            alarm_id=delivery.alarm_id,
            recipients=list(delivery.recipients),
            subject=delivery.subject,
            html_content=delivery.html_content,
            provider=delivery.provider,
            error=delivery.error,
            created_at=delivery.created_at,
            retried=delivery.retried,
        )
        async with self._db.session() as session:
            repo = DeadLetterRepository(session)
            await repo.append(row)
            await repo.commit()
        return row.id

    async def list_dead_letters(self, include_retried: bool = False) -> List[NotificationDelivery]:
        async with self._db.session() as session:
            rows = await DeadLetterRepository(session).list_pending(include_retried)
            return [dead_letter_from_row(r) for r in rows]

    async def update_dead_letter(self, delivery_id: str, changes: Dict[str, Any]) -> None:
        async with self._db.session() as session:
            repo = DeadLetterRepository(session)
            await repo.update_fields(delivery_id, changes)
            await repo.commit()
