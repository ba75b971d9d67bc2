"""
Shared fixtures for the fleet service tests.

Everything runs against the in-memory store and a MockClock
frozen at a fixed instant, so threshold tests are exact.
"""

from datetime import datetime, timezone
from typing import List

import pytest
from fastapi.testclient import TestClient

from core.clock import MockClock
from core.config import AppConfig, EmailConfig
from core.exceptions import NotificationDeliveryError
from dashboard.container import build_container
from dashboard.main import create_app
from fleet.heartbeat import HeartbeatService
from fleet.models import NotificationSettings
from fleet.registry import MachineRegistry
from monitoring.alarms.manager import AlarmManager
from monitoring.models import EmailMessage
from monitoring.notifications.dispatcher import NotificationDispatcher
from monitoring.notifications.mail import EmailTransport
from monitoring.sweep import FleetMonitor
from storage.store import InMemoryFleetStore


START_TIME = datetime(2024, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


# ============================================================
# TEST DOUBLES
# ============================================================

class RecordingTransport(EmailTransport):
    """Mail transport that records messages, or fails on demand."""

    name = "recording"

    def __init__(self, fail: bool = False):
        super().__init__(EmailConfig())
        self.fail = fail
        self.sent: List[EmailMessage] = []

    async def send(self, message: EmailMessage) -> None:
        if self.fail:
            raise NotificationDeliveryError("provider unavailable", provider=self.name)
        self.sent.append(message)


# ============================================================
# FIXTURES
# ============================================================

@pytest.fixture
def clock():
    return MockClock(START_TIME)


@pytest.fixture
def store():
    return InMemoryFleetStore()


@pytest.fixture
def config():
    return AppConfig.for_testing()


@pytest.fixture
def transport():
    return RecordingTransport()


@pytest.fixture
def failing_transport():
    return RecordingTransport(fail=True)


@pytest.fixture
def registry(store, clock):
    return MachineRegistry(store, clock=clock)


@pytest.fixture
def heartbeats(store, registry, clock):
    return HeartbeatService(store, registry, clock=clock)


@pytest.fixture
def dispatcher(transport, store, config, clock):
    return NotificationDispatcher(transport, store=store, config=config.email, clock=clock)


@pytest.fixture
def alarm_manager(store, dispatcher, config, clock):
    return AlarmManager(store, dispatcher=dispatcher, config=config.rules, clock=clock)


@pytest.fixture
def monitor(store, alarm_manager, config, clock):
    return FleetMonitor(
        store,
        alarm_manager,
        policy=config.liveness,
        rule_config=config.rules,
        sweep_config=config.sweep,
        clock=clock,
    )


@pytest.fixture
def make_machine(registry):
    """Register a machine with alarm emails enabled."""

    async def _make(name: str = "Lobby Snack", serial: str = "SN-001", **kwargs):
        kwargs.setdefault(
            "notifications",
            NotificationSettings(email_addresses=["ops@example.com"]),
        )
        return await registry.register(name=name, serial_number=serial, **kwargs)

    return _make


@pytest.fixture
def container(config, store, clock, transport):
    return build_container(config, store, clock=clock, transport=transport)


@pytest.fixture
def client(container):
    app = create_app(container)
    with TestClient(app) as test_client:
        yield test_client
