"""
Heartbeat Ingestion.

============================================================
PURPOSE
============================================================
Accept a device report and record it.

1. Resolve the machine (id, then IoT number)
2. Upsert the heartbeat: last_seen_ms = now, status online
3. Update the machine's connection info and device status
4. Append a TelemetrySample when the report carries any
   telemetry field

The server clock stamps every heartbeat; device clocks are
not trusted.

============================================================
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, ValidationError
from pydantic.alias_generators import to_camel

from core.clock import ClockFactory, ClockProtocol, to_epoch_ms
from core.exceptions import InvalidInputError
from fleet.models import (
    DeviceStatus,
    HeartbeatRecord,
    HeartbeatStatus,
    Machine,
    TelemetrySample,
)
from fleet.registry import MachineRegistry
from storage.store import FleetStore


logger = logging.getLogger(__name__)


# ============================================================
# DEVICE REPORT
# ============================================================

TELEMETRY_FIELDS = frozenset({
    "operational_mode",
    "errors",
    "temperature_readings",
    "sales_data",
    "cleaning_status",
    "power_status",
})


class DeviceReport(BaseModel):
    """Optional payload a device sends with its heartbeat."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    device_id: Optional[str] = None
    battery_level: Optional[float] = None
    signal_strength: Optional[float] = None
    temperature: Optional[float] = None
    last_error: Optional[str] = None

    operational_mode: Optional[str] = None
    errors: Optional[List[str]] = None
    temperature_readings: Optional[Dict[str, float]] = None
    sales_data: Optional[Dict[str, Any]] = None
    cleaning_status: Optional[Dict[str, Any]] = None
    power_status: Optional[bool] = None

    @property
    def has_telemetry(self) -> bool:
        return bool(self.model_fields_set & TELEMETRY_FIELDS)


def parse_device_report(device_data: Optional[Dict[str, Any]]) -> Optional[DeviceReport]:
    """
    Validate raw device data.

    Raises:
        InvalidInputError: Not an object, or a field has the wrong type
    """
    if device_data is None:
        return None
    if not isinstance(device_data, dict):
        raise InvalidInputError("deviceData must be an object", field="deviceData")
    try:
        return DeviceReport.model_validate(device_data)
    except ValidationError as e:
        first = e.errors()[0]
        location = ".".join(str(part) for part in first["loc"])
        raise InvalidInputError(
            f"Invalid deviceData.{location}: {first['msg']}",
            field=f"deviceData.{location}",
        ) from e


@dataclass
class HeartbeatReceipt:
    """What ingestion recorded."""
    machine_id: str
    last_seen_ms: int
    telemetry_id: Optional[str] = None


# ============================================================
# HEARTBEAT SERVICE
# ============================================================

class HeartbeatService:
    """
    Records device heartbeats and telemetry.
    """

    def __init__(
        self,
        store: FleetStore,
        registry: MachineRegistry,
        clock: Optional[ClockProtocol] = None,
    ):
        self._store = store
        self._registry = registry
        self._clock = clock or ClockFactory.get_clock()

    async def record_heartbeat(
        self,
        machine_id: Optional[str],
        device_data: Optional[Dict[str, Any]] = None,
    ) -> HeartbeatReceipt:
        """
        Record a heartbeat.

        Args:
            machine_id: Machine id or IoT number
            device_data: Optional device report (camelCase keys)

        Raises:
            InvalidInputError: machine_id missing or device_data malformed
            MachineNotFoundError: No machine matches machine_id
        """
        if not machine_id or not str(machine_id).strip():
            raise InvalidInputError("Machine ID is required", field="machineId")

        report = parse_device_report(device_data)
        machine = await self._registry.resolve(str(machine_id).strip())

        now = self._clock.now()
        now_ms = to_epoch_ms(now)

        await self._store.upsert_heartbeat(HeartbeatRecord(
            machine_id=machine.id,
            last_seen_ms=now_ms,
            status=HeartbeatStatus.ONLINE,
            device_id=report.device_id if report else None,
            updated_at=now,
        ))

        changes: Dict[str, Any] = {
            "connection_status": HeartbeatStatus.ONLINE,
            "last_heartbeat": now,
        }
        if report is not None:
            changes["device_status"] = self._merge_device_status(machine, report)
        await self._store.update_machine(machine.id, changes)

        receipt = HeartbeatReceipt(machine_id=machine.id, last_seen_ms=now_ms)
        if report is not None and report.has_telemetry:
            receipt.telemetry_id = await self._store.append_telemetry(TelemetrySample(
                machine_id=machine.id,
                timestamp=now,
                power_status=report.power_status,
                operational_mode=report.operational_mode,
                errors=list(report.errors or []),
                temperature_readings=dict(report.temperature_readings or {}),
                sales_data=report.sales_data,
                cleaning_status=report.cleaning_status,
            ))

        logger.debug(f"Heartbeat recorded for {machine.id} at {now_ms}")
        return receipt

    def _merge_device_status(self, machine: Machine, report: DeviceReport) -> DeviceStatus:
        previous = machine.device_status
        return DeviceStatus(
            battery_level=report.battery_level if report.battery_level is not None else previous.battery_level,
            signal_strength=(
                report.signal_strength if report.signal_strength is not None else previous.signal_strength
            ),
            temperature=report.temperature if report.temperature is not None else previous.temperature,
            last_error=report.last_error,
            last_updated=self._clock.now(),
        )
