"""
Device Simulator.

============================================================
PURPOSE
============================================================
Development-only source of synthetic heartbeats.

Every interval, each machine flagged is_test reports a
heartbeat through HeartbeatService, with a randomized
telemetry payload. Production wiring simply does not create
one.

============================================================
"""

import asyncio
import logging
import random
from typing import Any, Dict, List, Optional

from fleet.heartbeat import HeartbeatService
from fleet.models import Machine, MachineType
from fleet.registry import MachineRegistry


logger = logging.getLogger(__name__)


OPERATIONAL_MODES = ["Automatic", "Keep Fresh", "Standby"]


class DeviceSimulator:
    """
    Posts synthetic device reports for test machines.
    """

    def __init__(
        self,
        heartbeats: HeartbeatService,
        registry: MachineRegistry,
        interval_seconds: float = 30.0,
        include_telemetry: bool = True,
        rng: Optional[random.Random] = None,
    ):
        self._heartbeats = heartbeats
        self._registry = registry
        self._interval = interval_seconds
        self._include_telemetry = include_telemetry
        self._rng = rng or random.Random()
        self._running = False
        self._task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._run())
        logger.info(f"Device simulator started (every {self._interval}s)")

    async def stop(self) -> None:
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Device simulator stopped")

    def build_report(self, machine: Machine) -> Dict[str, Any]:
        """Synthetic device data for one machine."""
        report: Dict[str, Any] = {
            "deviceId": f"SIM-{machine.iot_number or machine.id}",
            "batteryLevel": round(self._rng.uniform(60, 100), 1),
            "signalStrength": round(self._rng.uniform(-90, -40), 1),
        }
        if not self._include_telemetry:
            return report

        if machine.type == MachineType.ICE_CREAM:
            readings = {
                "zoneA": round(self._rng.uniform(-2.0, 4.5), 1),
                "zoneB": round(self._rng.uniform(-2.0, 4.5), 1),
            }
        else:
            readings = {"main": round(self._rng.uniform(2.0, 4.5), 1)}

        report.update({
            "operationalMode": self._rng.choice(OPERATIONAL_MODES),
            "powerStatus": True,
            "errors": [],
            "temperatureReadings": readings,
        })
        return report

    async def tick(self) -> int:
        """Send one round of reports. Returns machines reported."""
        machines: List[Machine] = [m for m in await self._registry.list_all() if m.is_test]
        sent = 0
        for machine in machines:
            try:
                await self._heartbeats.record_heartbeat(machine.id, self.build_report(machine))
                sent += 1
            except Exception as e:
                logger.warning(f"Simulated heartbeat failed for {machine.id}: {e}")
        return sent

    async def _run(self) -> None:
        while self._running:
            try:
                await self.tick()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Device simulator error: {e}")

            await asyncio.sleep(self._interval)
