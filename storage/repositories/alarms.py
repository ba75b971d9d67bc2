"""
Alarm Repositories.

============================================================
PURPOSE
============================================================
SQL access for alarms and notification dead letters.

AlarmRepository.insert() relies on the uq_alarm_active_key partial
unique index: a second active row for the same key fails at
flush time and surfaces as DuplicateRecordError.

============================================================
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import and_, delete, desc, select
from sqlalchemy.ext.asyncio import AsyncSession

from storage.models.alarms import AlarmRow, NotificationDeadLetterRow
from storage.repositories.base import BaseRepository


class AlarmRepository(BaseRepository[AlarmRow]):
    """Alarm rows."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session, AlarmRow, "AlarmRepository")

    async def get(self, alarm_id: str) -> Optional[AlarmRow]:
        return await self._get_by_id(alarm_id)

    async def find_active(self, machine_id: str, alarm_type: str, code: str) -> Optional[AlarmRow]:
        stmt = select(AlarmRow).where(
            and_(
                AlarmRow.machine_id == machine_id,
                AlarmRow.type == alarm_type,
                AlarmRow.code == code,
                AlarmRow.status == "active",
            )
        )
        return await self._first(stmt)

    async def insert(self, row: AlarmRow) -> AlarmRow:
        return await self._add(
            row,
            {
                "field": "machine_id,type,code",
                "value": f"{row.machine_id}/{row.type}/{row.code}",
            },
        )

    async def list_filtered(
        self,
        status: Optional[str] = None,
        machine_id: Optional[str] = None,
    ) -> List[AlarmRow]:
        stmt = select(AlarmRow)
        if status is not None:
            stmt = stmt.where(AlarmRow.status == status)
        if machine_id is not None:
            stmt = stmt.where(AlarmRow.machine_id == machine_id)
        stmt = stmt.order_by(desc(AlarmRow.timestamp))
        return await self._scalars(stmt)

    async def update_fields(self, alarm_id: str, changes: Dict[str, Any]) -> AlarmRow:
        return await self._update(alarm_id, changes, "alarm_id")

    async def delete_matching(
        self,
        status: Optional[str] = None,
        older_than: Optional[datetime] = None,
    ) -> int:
        stmt = delete(AlarmRow)
        if status is not None:
            stmt = stmt.where(AlarmRow.status == status)
        if older_than is not None:
            stmt = stmt.where(AlarmRow.timestamp < older_than)
        return await self._execute(stmt, "delete_alarms")


class DeadLetterRepository(BaseRepository[NotificationDeadLetterRow]):
    """Failed notification deliveries."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session, NotificationDeadLetterRow, "DeadLetterRepository")

    async def append(self, row: NotificationDeadLetterRow) -> NotificationDeadLetterRow:
        return await self._add(row)

    async def list_pending(self, include_retried: bool = False) -> List[NotificationDeadLetterRow]:
        stmt = select(NotificationDeadLetterRow)
        if not include_retried:
            stmt = stmt.where(NotificationDeadLetterRow.retried.is_(False))
        stmt = stmt.order_by(NotificationDeadLetterRow.created_at)
        return await self._scalars(stmt)

    async def update_fields(self, delivery_id: str, changes: Dict[str, Any]) -> None:
        await self._update(delivery_id, changes, "delivery_id")
