from fastapi import APIRouter, Depends

from dashboard.container import ServiceContainer
from dashboard.dependencies import get_container

router = APIRouter(tags=["System Health"])

@router.get("/")
async def root(container: ServiceContainer = Depends(get_container)):
    scheduler = container.scheduler
    return {
        "status": "ok",
        "message": "Fleet Telemetry API is running",
        "emailProvider": container.dispatcher.provider,
        "schedulerRunning": bool(scheduler and scheduler.is_running),
        "timestamp": container.clock.format_iso(),
    }
