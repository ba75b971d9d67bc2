from fastapi import APIRouter, Depends, status

from commands.queue import CommandQueue
from dashboard.dependencies import get_command_queue, get_timestamp
from dashboard.schemas import (
    CommandCreate,
    CommandRecord,
    CommandResponse,
    CommandStatusUpdate,
    CommandSubmitResponse,
    SweepTimeoutsResponse,
)

router = APIRouter(prefix="/commands", tags=["Commands"])

@router.post("", response_model=CommandSubmitResponse, status_code=status.HTTP_201_CREATED)
async def submit_command(
    body: CommandCreate,
    queue: CommandQueue = Depends(get_command_queue),
    timestamp: str = Depends(get_timestamp),
):
    """
    Queue a command. Parameters are validated against the command type.
    """
    command_id = await queue.submit(
        machine_id=body.machine_id,
        command_type=body.type,
        parameters=body.parameters,
        priority=body.priority,
        created_by=body.created_by,
        timeout=body.timeout,
    )
    return CommandSubmitResponse(
        success=True,
        message="Command queued",
        timestamp=timestamp,
        command_id=command_id,
    )

@router.post("/sweep-timeouts", response_model=SweepTimeoutsResponse)
async def sweep_command_timeouts(
    queue: CommandQueue = Depends(get_command_queue),
    timestamp: str = Depends(get_timestamp),
):
    timed_out = await queue.sweep_timeouts()
    return SweepTimeoutsResponse(success=True, timestamp=timestamp, timed_out=timed_out)

@router.get("/{command_id}", response_model=CommandResponse)
async def get_command(
    command_id: str,
    queue: CommandQueue = Depends(get_command_queue),
    timestamp: str = Depends(get_timestamp),
):
    command = await queue.get(command_id)
    return CommandResponse(success=True, timestamp=timestamp, data=CommandRecord.model_validate(command.to_dict()))

@router.patch("/{command_id}", response_model=CommandResponse)
async def update_command_status(
    command_id: str,
    body: CommandStatusUpdate,
    queue: CommandQueue = Depends(get_command_queue),
    timestamp: str = Depends(get_timestamp),
):
    """
    Record a status reported by the device or an operator.
    """
    command = await queue.update_status(command_id, body.status, response=body.response)
    return CommandResponse(
        success=True,
        message=f"Command {command.status.value}",
        timestamp=timestamp,
        data=CommandRecord.model_validate(command.to_dict()),
    )
