"""
Command Domain ORM Models.
"""

import uuid
from typing import Any, Dict, Optional

from sqlalchemy import JSON, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from storage.models.base import Base, TimestampMixin


def _uuid() -> str:
    return str(uuid.uuid4())


class MachineCommandRow(Base, TimestampMixin):
    """
    A remote command queued for a machine.

    Moves out of 'pending' either through an external executor
    or the timeout sweep.
    """

    __tablename__ = "machine_commands"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)

    machine_id: Mapped[str] = mapped_column(String(64), nullable=False)

    type: Mapped[str] = mapped_column(String(64), nullable=False, comment="CommandType tag")

    parameters: Mapped[Dict[str, Any]] = mapped_column(
        JSON,
        nullable=False,
        default=dict,
        comment="Parameters shaped by the command type"
    )

    priority: Mapped[str] = mapped_column(String(10), nullable=False)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")

    max_retries: Mapped[int] = mapped_column(Integer, nullable=False)

    retry_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    timeout_seconds: Mapped[int] = mapped_column(Integer, nullable=False, default=60)

    created_by: Mapped[str] = mapped_column(String(128), nullable=False)

    response: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)

    __table_args__ = (
        Index("idx_command_status", "status"),
        Index("idx_command_machine", "machine_id"),
    )
