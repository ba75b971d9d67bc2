import json
from typing import Optional

from fastapi import APIRouter, Depends, Query

from core.exceptions import InvalidInputError
from dashboard.dependencies import get_heartbeat_service, get_timestamp
from dashboard.schemas import HeartbeatRequest, HeartbeatResponse
from fleet.heartbeat import HeartbeatService

router = APIRouter(tags=["Heartbeat"])

@router.post("/heartbeat", response_model=HeartbeatResponse)
async def post_heartbeat(
    body: HeartbeatRequest,
    service: HeartbeatService = Depends(get_heartbeat_service),
    timestamp: str = Depends(get_timestamp),
):
    """
    Record a device heartbeat (JSON body).
    """
    receipt = await service.record_heartbeat(body.machine_id, body.device_data)
    return HeartbeatResponse(
        success=True,
        message="Heartbeat updated successfully",
        machine_id=receipt.machine_id,
        timestamp=timestamp,
    )

@router.get("/heartbeat", response_model=HeartbeatResponse)
async def get_heartbeat(
    machine_id: Optional[str] = Query(None, alias="machineId"),
    device_data: Optional[str] = Query(None, alias="deviceData", description="JSON-encoded device report"),
    service: HeartbeatService = Depends(get_heartbeat_service),
    timestamp: str = Depends(get_timestamp),
):
    """
    Record a device heartbeat (query string, for devices that can only GET).
    """
    data = None
    if device_data:
        try:
            data = json.loads(device_data)
        except json.JSONDecodeError as e:
            raise InvalidInputError("deviceData is not valid JSON", field="deviceData") from e

    receipt = await service.record_heartbeat(machine_id, data)
    return HeartbeatResponse(
        success=True,
        message="Heartbeat updated successfully",
        machine_id=receipt.machine_id,
        timestamp=timestamp,
    )
