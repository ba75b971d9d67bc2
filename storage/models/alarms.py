"""
Alarm Domain ORM Models.

============================================================
PURPOSE
============================================================
Alarm rows and failed notification deliveries.

============================================================
INVARIANT
============================================================
uq_alarm_active_key is a partial unique index: at most one
row per (machine_id, type, code) with status = 'active'.
Acknowledged and resolved rows are unconstrained.

============================================================
"""

import uuid
from datetime import datetime
from typing import List, Optional

from sqlalchemy import JSON, Boolean, DateTime, Index, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from storage.models.base import Base


def _uuid() -> str:
    return str(uuid.uuid4())


ACTIVE_ONLY = text("status = 'active'")


class AlarmRow(Base):
    """
    One raised condition instance.
    """

    __tablename__ = "alarms"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)

    machine_id: Mapped[str] = mapped_column(String(64), nullable=False, comment="Owning machine")

    type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        comment="offline, error, maintenance, mode_change"
    )

    code: Mapped[str] = mapped_column(String(40), nullable=False, comment="Discriminator within type")

    severity: Mapped[str] = mapped_column(String(10), nullable=False, comment="low, medium, high, critical")

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="active",
        comment="active, acknowledged, resolved"
    )

    message: Mapped[str] = mapped_column(Text, nullable=False)

    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    acknowledged_by: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    acknowledged_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    resolved_by: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    notified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    __table_args__ = (
        Index(
            "uq_alarm_active_key",
            "machine_id",
            "type",
            "code",
            unique=True,
            sqlite_where=ACTIVE_ONLY,
            postgresql_where=ACTIVE_ONLY,
        ),
        Index("idx_alarm_machine_status", "machine_id", "status"),
        Index("idx_alarm_timestamp", "timestamp"),
    )


class NotificationDeadLetterRow(Base):
    """
    A notification the mail provider did not accept.
    """

    __tablename__ = "notification_dead_letters"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)

    machine_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    alarm_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)

    recipients: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)

    subject: Mapped[str] = mapped_column(String(500), nullable=False)

    html_content: Mapped[str] = mapped_column(Text, nullable=False)

    provider: Mapped[str] = mapped_column(String(40), nullable=False)

    error: Mapped[str] = mapped_column(Text, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    retried: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    retried_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("idx_dead_letter_retried", "retried"),
    )
