"""
Fleet Repositories.

============================================================
PURPOSE
============================================================
SQL access for machines, heartbeats, telemetry samples and
cleaning logs.

============================================================
REPOSITORIES
============================================================
- MachineRepository: machine rows and cascading delete
- HeartbeatRepository: one upserted row per machine
- TelemetryRepository: append-only samples, latest-by-time
- CleaningLogRepository: append-only logs, latest-by-time

============================================================
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, desc, select
from sqlalchemy.ext.asyncio import AsyncSession

from storage.models.fleet import (
    CleaningLogRow,
    HeartbeatRow,
    MachineRecord,
    TelemetrySampleRow,
)
from storage.repositories.base import BaseRepository


class MachineRepository(BaseRepository[MachineRecord]):
    """Machine rows."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session, MachineRecord, "MachineRepository")

    async def get(self, machine_id: str) -> Optional[MachineRecord]:
        return await self._get_by_id(machine_id)

    async def list_all(self) -> List[MachineRecord]:
        stmt = select(MachineRecord).order_by(MachineRecord.created_at)
        return await self._scalars(stmt)

    async def list_by_iot_number(self, iot_number: str) -> List[MachineRecord]:
        stmt = (
            select(MachineRecord)
            .where(MachineRecord.iot_number == iot_number)
            .order_by(MachineRecord.created_at)
        )
        return await self._scalars(stmt)

    async def create(self, row: MachineRecord) -> MachineRecord:
        return await self._add(row, {"field": "id", "value": row.id})

    async def update_fields(self, machine_id: str, changes: Dict[str, Any]) -> MachineRecord:
        return await self._update(machine_id, changes, "machine_id")

    async def delete_cascade(self, machine_id: str) -> bool:
        """
        Delete a machine and everything it owns.

        Child rows are removed explicitly; SQLite does not enforce
        ON DELETE CASCADE unless foreign keys are switched on.
        """
        await self._execute(delete(HeartbeatRow).where(HeartbeatRow.machine_id == machine_id), "delete_heartbeat")
        await self._execute(
            delete(TelemetrySampleRow).where(TelemetrySampleRow.machine_id == machine_id),
            "delete_telemetry",
        )
        await self._execute(
            delete(CleaningLogRow).where(CleaningLogRow.machine_id == machine_id),
            "delete_cleaning_logs",
        )
        deleted = await self._execute(delete(MachineRecord).where(MachineRecord.id == machine_id), "delete_machine")
        return deleted > 0


class HeartbeatRepository(BaseRepository[HeartbeatRow]):
    """One heartbeat row per machine."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session, HeartbeatRow, "HeartbeatRepository")

    async def get(self, machine_id: str) -> Optional[HeartbeatRow]:
        return await self._get_by_id(machine_id)

    async def upsert(
        self,
        machine_id: str,
        last_seen_ms: Optional[int],
        status: str,
        device_id: Optional[str],
        updated_at: Optional[datetime],
    ) -> HeartbeatRow:
        row = await self._get_by_id(machine_id)
        if row is None:
            row = HeartbeatRow(
                machine_id=machine_id,
                last_seen_ms=last_seen_ms,
                status=status,
                device_id=device_id,
                updated_at=updated_at,
            )
            return await self._add(row, key={"field": "machine_id", "value": machine_id})
        row.last_seen_ms = last_seen_ms
        row.status = status
        row.device_id = device_id
        row.updated_at = updated_at
        return row

    async def set_status(self, machine_id: str, status: str) -> None:
        row = await self._get_by_id_or_raise(machine_id, "machine_id")
        row.status = status


class TelemetryRepository(BaseRepository[TelemetrySampleRow]):
    """Append-only telemetry samples."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session, TelemetrySampleRow, "TelemetryRepository")

    async def append(self, row: TelemetrySampleRow) -> TelemetrySampleRow:
        return await self._add(row)

    async def latest(self, machine_id: str) -> Optional[TelemetrySampleRow]:
        stmt = (
            select(TelemetrySampleRow)
            .where(TelemetrySampleRow.machine_id == machine_id)
            .order_by(desc(TelemetrySampleRow.timestamp))
            .limit(1)
        )
        return await self._first(stmt)


class CleaningLogRepository(BaseRepository[CleaningLogRow]):
    """Append-only cleaning logs."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session, CleaningLogRow, "CleaningLogRepository")

    async def append(self, row: CleaningLogRow) -> CleaningLogRow:
        return await self._add(row)

    async def latest(self, machine_id: str) -> Optional[CleaningLogRow]:
        stmt = (
            select(CleaningLogRow)
            .where(CleaningLogRow.machine_id == machine_id)
            .order_by(desc(CleaningLogRow.timestamp))
            .limit(1)
        )
        return await self._first(stmt)
