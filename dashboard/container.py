"""
Service Container.

============================================================
PURPOSE
============================================================
Wires the fleet services together once per process.

    store -> registry -> heartbeat service
          -> dispatcher -> alarm manager -> fleet monitor
          -> command queue (+ gateway)
          -> scheduler

The API reads everything from app.state.container; tests
build a container around an in-memory store and a MockClock.

============================================================
"""

import logging
from dataclasses import dataclass
from typing import Optional

from commands.gateway import DeviceGatewayClient
from commands.queue import CommandQueue
from core.clock import ClockFactory, ClockProtocol
from core.config import AppConfig
from fleet.heartbeat import HeartbeatService
from fleet.registry import MachineRegistry
from monitoring.alarms.manager import AlarmManager
from monitoring.notifications.dispatcher import NotificationDispatcher
from monitoring.notifications.mail import EmailTransport, create_transport
from monitoring.scheduler import MonitoringScheduler
from monitoring.sweep import FleetMonitor
from storage import create_store
from storage.store import FleetStore


logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    """All long-lived services."""

    config: AppConfig
    clock: ClockProtocol
    store: FleetStore
    registry: MachineRegistry
    heartbeats: HeartbeatService
    dispatcher: NotificationDispatcher
    alarms: AlarmManager
    monitor: FleetMonitor
    commands: CommandQueue
    gateway: DeviceGatewayClient
    scheduler: Optional[MonitoringScheduler] = None

    async def close(self) -> None:
        """Release HTTP sessions and storage."""
        await self.dispatcher.close()
        await self.gateway.close()
        await self.store.close()
        logger.info("Service container closed")


def build_container(
    config: AppConfig,
    store: FleetStore,
    clock: Optional[ClockProtocol] = None,
    transport: Optional[EmailTransport] = None,
) -> ServiceContainer:
    """
    Wire services around an existing store.

    Args:
        config: Application configuration
        store: Fleet store
        clock: Time source (ClockFactory default when omitted)
        transport: Mail transport override (else from config.email)
    """
    clock = clock or ClockFactory.get_clock()
    transport = transport or create_transport(config.email, clock=clock)

    registry = MachineRegistry(store, clock=clock)
    heartbeats = HeartbeatService(store, registry, clock=clock)
    dispatcher = NotificationDispatcher(transport, store=store, config=config.email, clock=clock)
    alarms = AlarmManager(store, dispatcher=dispatcher, config=config.rules, clock=clock)
    monitor = FleetMonitor(
        store,
        alarms,
        policy=config.liveness,
        rule_config=config.rules,
        sweep_config=config.sweep,
        clock=clock,
    )
    gateway = DeviceGatewayClient(config.commands)
    commands = CommandQueue(store, config=config.commands, gateway=gateway, clock=clock)

    scheduler = None
    if config.scheduler.enabled:
        scheduler = MonitoringScheduler(
            monitor,
            commands=commands,
            config=config.scheduler,
            dispatcher=dispatcher,
        )

    logger.info(
        f"Services wired (email provider: {dispatcher.provider}, "
        f"scheduler: {'on' if scheduler else 'off'})"
    )

    return ServiceContainer(
        config=config,
        clock=clock,
        store=store,
        registry=registry,
        heartbeats=heartbeats,
        dispatcher=dispatcher,
        alarms=alarms,
        monitor=monitor,
        commands=commands,
        gateway=gateway,
        scheduler=scheduler,
    )


async def create_container(config: AppConfig) -> ServiceContainer:
    """Create the configured store, then wire services around it."""
    store = await create_store(config.database)
    return build_container(config, store)
