from fastapi import APIRouter, Depends, status

from dashboard.dependencies import get_registry, get_timestamp
from dashboard.schemas import (
    BaseResponse,
    CleaningLogCreate,
    CleaningLogResponse,
    MachineCreate,
    MachineRecordModel,
    MachineResponse,
)
from fleet.models import Machine, NotificationSettings
from fleet.registry import MachineRegistry

router = APIRouter(prefix="/machines", tags=["Machines"])


def _to_record(machine: Machine) -> MachineRecordModel:
    return MachineRecordModel(
        id=machine.id,
        name=machine.name,
        serial_number=machine.serial_number,
        type=machine.type.value,
        iot_number=machine.iot_number,
        model=machine.model,
        location=machine.location,
        is_test=machine.is_test,
        created_at=machine.created_at.isoformat() if machine.created_at else None,
    )

@router.post("", response_model=MachineResponse, status_code=status.HTTP_201_CREATED)
async def register_machine(
    body: MachineCreate,
    registry: MachineRegistry = Depends(get_registry),
    timestamp: str = Depends(get_timestamp),
):
    """
    Register a machine. Its heartbeat starts offline at registration time.
    """
    machine = await registry.register(
        name=body.name,
        serial_number=body.serial_number,
        machine_type=body.type,
        iot_number=body.iot_number,
        model=body.model,
        location=body.location,
        is_test=body.is_test,
        notifications=NotificationSettings(**body.notifications.model_dump()),
    )
    return MachineResponse(
        success=True,
        message="Machine registered",
        timestamp=timestamp,
        data=_to_record(machine),
    )

@router.delete("/{machine_id}", response_model=BaseResponse)
async def delete_machine(
    machine_id: str,
    registry: MachineRegistry = Depends(get_registry),
    timestamp: str = Depends(get_timestamp),
):
    """
    Delete a machine with its heartbeat, telemetry and cleaning logs.
    """
    await registry.delete(machine_id)
    return BaseResponse(success=True, message=f"Machine {machine_id} deleted", timestamp=timestamp)

@router.post("/{machine_id}/cleaning-logs", response_model=CleaningLogResponse, status_code=status.HTTP_201_CREATED)
async def create_cleaning_log(
    machine_id: str,
    body: CleaningLogCreate = CleaningLogCreate(),
    registry: MachineRegistry = Depends(get_registry),
    timestamp: str = Depends(get_timestamp),
):
    log = await registry.record_cleaning(machine_id, performed_by=body.performed_by, notes=body.notes)
    return CleaningLogResponse(
        success=True,
        message="Cleaning log recorded",
        timestamp=timestamp,
        id=log.id,
        machine_id=log.machine_id,
    )
