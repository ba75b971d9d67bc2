"""
Command Repository.
"""

from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from storage.models.commands import MachineCommandRow
from storage.repositories.base import BaseRepository


class CommandRepository(BaseRepository[MachineCommandRow]):
    """Machine command rows."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session, MachineCommandRow, "CommandRepository")

    async def get(self, command_id: str) -> Optional[MachineCommandRow]:
        return await self._get_by_id(command_id)

    async def insert(self, row: MachineCommandRow) -> MachineCommandRow:
        return await self._add(row)

    async def list_filtered(
        self,
        status: Optional[str] = None,
        machine_id: Optional[str] = None,
    ) -> List[MachineCommandRow]:
        stmt = select(MachineCommandRow)
        if status is not None:
            stmt = stmt.where(MachineCommandRow.status == status)
        if machine_id is not None:
            stmt = stmt.where(MachineCommandRow.machine_id == machine_id)
        stmt = stmt.order_by(MachineCommandRow.created_at)
        return await self._scalars(stmt)

    async def update_fields(self, command_id: str, changes: Dict[str, Any]) -> MachineCommandRow:
        return await self._update(command_id, changes, "command_id")
