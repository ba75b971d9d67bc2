from fastapi import APIRouter, Depends

from dashboard.dependencies import get_monitor, get_timestamp
from dashboard.schemas import (
    MachineStatus,
    MonitorResponse,
    StatusCheckResponse,
    StatusStats,
)
from monitoring.sweep import FleetMonitor

router = APIRouter(tags=["Monitoring"])

@router.post("/monitor", response_model=MonitorResponse)
async def run_monitor(
    monitor: FleetMonitor = Depends(get_monitor),
    timestamp: str = Depends(get_timestamp),
):
    """
    Run one fleet sweep and report what it found.
    """
    summary = await monitor.run_sweep()
    return MonitorResponse(
        success=True,
        message="Machine monitoring completed",
        timestamp=timestamp,
        total_machines=summary.total_machines,
        offline_machines=summary.offline_machines,
        critical_offline_machines=summary.critical_offline_machines,
        alarms_created=summary.alarms_created,
        failed_machines=summary.failed_machines,
    )

@router.get("/status-check", response_model=StatusCheckResponse)
async def status_check(
    monitor: FleetMonitor = Depends(get_monitor),
    timestamp: str = Depends(get_timestamp),
):
    """
    Snapshot of every machine's heartbeat age.
    """
    snapshot = await monitor.status_snapshot()
    return StatusCheckResponse(
        success=True,
        message="Machine status check completed",
        timestamp=timestamp,
        stats=StatusStats.model_validate(snapshot["stats"]),
        machines=[MachineStatus.model_validate(v.to_dict()) for v in snapshot["machines"]],
    )
