"""
Fleet Domain ORM Models.

============================================================
PURPOSE
============================================================
Tables for machines and what devices report about them.

============================================================
DATA LIFECYCLE ROLE
============================================================
- machines: MUTABLE (monitoring counters, connection info)
- heartbeats: one row per machine, upserted on every receipt
- telemetry_samples: APPEND-ONLY
- cleaning_logs: APPEND-ONLY

Heartbeats, telemetry and cleaning logs are deleted with
their machine.

============================================================
"""

import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column

from storage.models.base import Base, TimestampMixin


def _uuid() -> str:
    return str(uuid.uuid4())


class MachineRecord(Base, TimestampMixin):
    """
    One physical vending unit.
    """

    __tablename__ = "machines"

    id: Mapped[str] = mapped_column(
        String(64),
        primary_key=True,
        comment="Machine identifier"
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False, comment="Display name")

    serial_number: Mapped[str] = mapped_column(String(128), nullable=False, comment="Serial number")

    type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        comment="snack, ice_cream, coffee, perfume"
    )

    iot_number: Mapped[Optional[str]] = mapped_column(
        String(128),
        nullable=True,
        comment="Device-facing identifier (not unique-enforced)"
    )

    model: Mapped[Optional[str]] = mapped_column(String(128), nullable=True, comment="Hardware model")

    location: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, comment="Site description")

    is_test: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        comment="Explicit test flag used by the cleanup script"
    )

    notifications: Mapped[Dict[str, Any]] = mapped_column(
        JSON,
        nullable=False,
        default=dict,
        comment="Recipients and alarm opt-in flags"
    )

    # Connection info
    connection_status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="offline",
        comment="Last reported connection status"
    )

    last_heartbeat: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="Receipt time of the last heartbeat"
    )

    device_status: Mapped[Dict[str, Any]] = mapped_column(
        JSON,
        nullable=False,
        default=dict,
        comment="Battery, signal, temperature, last error"
    )

    # Monitoring counters
    days_since_cleaning: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    last_cleaning_check: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    hours_without_power: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    power_outage_start: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    last_power_check: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    last_operational_mode: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    __table_args__ = (
        Index("idx_machine_iot_number", "iot_number"),
        Index("idx_machine_is_test", "is_test"),
    )


class HeartbeatRow(Base):
    """
    Latest liveness signal per machine.
    """

    __tablename__ = "heartbeats"

    machine_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("machines.id", ondelete="CASCADE"),
        primary_key=True,
        comment="Owning machine"
    )

    last_seen_ms: Mapped[Optional[int]] = mapped_column(
        BigInteger,
        nullable=True,
        comment="Epoch milliseconds of the last heartbeat"
    )

    status: Mapped[str] = mapped_column(String(20), nullable=False, default="offline")

    device_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)

    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)


class TelemetrySampleRow(Base):
    """
    Append-only device report.
    """

    __tablename__ = "telemetry_samples"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)

    machine_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("machines.id", ondelete="CASCADE"),
        nullable=False,
    )

    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    power_status: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)

    operational_mode: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    errors: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)

    temperature_readings: Mapped[Dict[str, float]] = mapped_column(JSON, nullable=False, default=dict)

    sales_data: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)

    cleaning_status: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)

    __table_args__ = (
        Index("idx_telemetry_machine_time", "machine_id", "timestamp"),
    )


class CleaningLogRow(Base):
    """
    Operator cleaning record.
    """

    __tablename__ = "cleaning_logs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)

    machine_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("machines.id", ondelete="CASCADE"),
        nullable=False,
    )

    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    machine_type: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    performed_by: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)

    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("idx_cleaning_machine_time", "machine_id", "timestamp"),
    )
