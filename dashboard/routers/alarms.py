from typing import Optional

from fastapi import APIRouter, Depends, Query

from dashboard.dependencies import get_alarm_manager, get_timestamp
from dashboard.schemas import (
    AlarmActionRequest,
    AlarmRecord,
    AlarmResponse,
    AlarmsResponse,
    AlarmStatsResponse,
    DeleteResponse,
)
from monitoring.alarms.manager import AlarmManager
from monitoring.models import AlarmStatus

router = APIRouter(prefix="/alarms", tags=["Alarms"])

@router.get("", response_model=AlarmsResponse)
async def list_alarms(
    status: Optional[AlarmStatus] = Query(None, description="Filter by status"),
    machine_id: Optional[str] = Query(None, alias="machineId"),
    limit: int = Query(100, ge=1, le=1000),
    alarms: AlarmManager = Depends(get_alarm_manager),
    timestamp: str = Depends(get_timestamp),
):
    """
    Alarms, newest first.
    """
    records = await alarms.list_alarms(status=status, machine_id=machine_id)
    return AlarmsResponse(
        success=True,
        timestamp=timestamp,
        data=[AlarmRecord.model_validate(a.to_dict()) for a in records[:limit]],
    )

@router.get("/stats", response_model=AlarmStatsResponse)
async def alarm_statistics(
    alarms: AlarmManager = Depends(get_alarm_manager),
    timestamp: str = Depends(get_timestamp),
):
    return AlarmStatsResponse(success=True, timestamp=timestamp, data=await alarms.statistics())

@router.delete("/resolved", response_model=DeleteResponse)
async def delete_resolved_alarms(
    alarms: AlarmManager = Depends(get_alarm_manager),
    timestamp: str = Depends(get_timestamp),
):
    deleted = await alarms.delete_resolved()
    return DeleteResponse(success=True, message=f"Deleted {deleted} resolved alarms", timestamp=timestamp, deleted=deleted)

@router.delete("/old", response_model=DeleteResponse)
async def delete_old_alarms(
    days: int = Query(30, ge=0, description="Delete alarms raised more than this many days ago"),
    alarms: AlarmManager = Depends(get_alarm_manager),
    timestamp: str = Depends(get_timestamp),
):
    deleted = await alarms.delete_older_than(days)
    return DeleteResponse(
        success=True,
        message=f"Deleted {deleted} alarms older than {days} days",
        timestamp=timestamp,
        deleted=deleted,
    )

@router.get("/{alarm_id}", response_model=AlarmResponse)
async def get_alarm(
    alarm_id: str,
    alarms: AlarmManager = Depends(get_alarm_manager),
    timestamp: str = Depends(get_timestamp),
):
    alarm = await alarms.get(alarm_id)
    return AlarmResponse(success=True, timestamp=timestamp, data=AlarmRecord.model_validate(alarm.to_dict()))

@router.post("/{alarm_id}/acknowledge", response_model=AlarmResponse)
async def acknowledge_alarm(
    alarm_id: str,
    body: Optional[AlarmActionRequest] = None,
    alarms: AlarmManager = Depends(get_alarm_manager),
    timestamp: str = Depends(get_timestamp),
):
    user = body.user if body else "operator"
    alarm = await alarms.acknowledge(alarm_id, user)
    return AlarmResponse(
        success=True,
        message="Alarm acknowledged",
        timestamp=timestamp,
        data=AlarmRecord.model_validate(alarm.to_dict()),
    )

@router.post("/{alarm_id}/resolve", response_model=AlarmResponse)
async def resolve_alarm(
    alarm_id: str,
    body: Optional[AlarmActionRequest] = None,
    alarms: AlarmManager = Depends(get_alarm_manager),
    timestamp: str = Depends(get_timestamp),
):
    user = body.user if body else "operator"
    alarm = await alarms.resolve(alarm_id, user)
    return AlarmResponse(
        success=True,
        message="Alarm resolved",
        timestamp=timestamp,
        data=AlarmRecord.model_validate(alarm.to_dict()),
    )
