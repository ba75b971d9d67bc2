"""
FastAPI dependencies.

Every router pulls its service from the container stored on
app.state by create_app().
"""

from fastapi import Depends, Request

from commands.queue import CommandQueue
from dashboard.container import ServiceContainer
from fleet.heartbeat import HeartbeatService
from fleet.registry import MachineRegistry
from monitoring.alarms.manager import AlarmManager
from monitoring.notifications.dispatcher import NotificationDispatcher
from monitoring.sweep import FleetMonitor


# =============================================================
# HELPER: Container
# =============================================================

def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container


# =============================================================
# HELPER: Services
# =============================================================

def get_heartbeat_service(container: ServiceContainer = Depends(get_container)) -> HeartbeatService:
    return container.heartbeats


def get_registry(container: ServiceContainer = Depends(get_container)) -> MachineRegistry:
    return container.registry


def get_monitor(container: ServiceContainer = Depends(get_container)) -> FleetMonitor:
    return container.monitor


def get_alarm_manager(container: ServiceContainer = Depends(get_container)) -> AlarmManager:
    return container.alarms


def get_dispatcher(container: ServiceContainer = Depends(get_container)) -> NotificationDispatcher:
    return container.dispatcher


def get_command_queue(container: ServiceContainer = Depends(get_container)) -> CommandQueue:
    return container.commands


def get_timestamp(container: ServiceContainer = Depends(get_container)) -> str:
    """Response timestamp from the container clock."""
    return container.clock.format_iso()
