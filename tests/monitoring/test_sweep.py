"""
Tests for the fleet sweep.

============================================================
PURPOSE
============================================================
- End-to-end offline / recovery / telemetry scenarios
- One machine's failure or timeout never aborts the sweep
- Concurrency stays within the configured cap
- Status-check snapshot uses the stale tier

============================================================
"""

import asyncio

import pytest

from core.config import AlarmRuleConfig, SweepConfig
from fleet.models import CleaningLog, HeartbeatStatus, Machine, NotificationSettings
from monitoring.alarms.manager import AlarmManager
from monitoring.models import (
    AlarmCode,
    AlarmSeverity,
    AlarmStatus,
    AlarmType,
    LivenessStatus,
)
from monitoring.rules import MachineRule
from monitoring.sweep import FleetMonitor


async def cleaned_machine(make_machine, registry, **kwargs):
    """A registered machine with a cleaning log, so only the rule under test fires."""
    machine = await make_machine(**kwargs)
    await registry.record_cleaning(machine.id, performed_by="tech")
    return machine


async def alarms_of_type(store, machine_id, alarm_type):
    return [a for a in await store.list_alarms(machine_id=machine_id) if a.type == alarm_type]


class ExplodingRule(MachineRule):
    rule_id = "exploding"

    def evaluate(self, context):
        raise RuntimeError("bad sample")


# ============================================================
# END-TO-END SCENARIOS
# ============================================================

class TestScenarios:
    """End-to-end sweep behavior."""

    @pytest.mark.asyncio
    async def test_machine_that_never_reported(self, monitor, store, transport, clock):
        await store.add_machine(Machine(
            id="M1",
            name="Station Coffee",
            serial_number="SN-M1",
            created_at=clock.now(),
            notifications=NotificationSettings(email_addresses=["ops@example.com"]),
        ))
        await store.add_cleaning_log(CleaningLog(machine_id="M1", timestamp=clock.now()))

        summary = await monitor.run_sweep()

        alarms = await store.list_alarms(machine_id="M1")
        assert len(alarms) == 1
        assert alarms[0].type == AlarmType.OFFLINE
        assert alarms[0].code == AlarmCode.NO_HEARTBEAT
        assert alarms[0].severity == AlarmSeverity.HIGH
        assert summary.alarms_created == 1
        assert summary.offline_machines == 1
        assert len(transport.sent) == 1

        again = await monitor.run_sweep()

        assert again.alarms_created == 0
        assert len(await store.list_alarms(machine_id="M1")) == 1
        assert len(transport.sent) == 1

    @pytest.mark.asyncio
    async def test_offline_then_recovered(self, monitor, store, registry, heartbeats, make_machine, clock):
        machine = await cleaned_machine(make_machine, registry, name="M2", serial="SN-M2")
        await heartbeats.record_heartbeat(machine.id)
        clock.advance(minutes=6)

        summary = await monitor.run_sweep()

        offline = await alarms_of_type(store, machine.id, AlarmType.OFFLINE)
        assert [a.code for a in offline] == [AlarmCode.OFFLINE]
        assert offline[0].message == "M2 offline for 6 minutes"
        assert summary.offline_machines == 1
        assert (await store.get_heartbeat(machine.id)).status == HeartbeatStatus.OFFLINE

        await heartbeats.record_heartbeat(machine.id)
        recovered = await monitor.run_sweep()

        assert recovered.offline_machines == 0
        assert recovered.alarms_created == 0
        offline = await alarms_of_type(store, machine.id, AlarmType.OFFLINE)
        assert len(offline) == 1
        assert offline[0].status == AlarmStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_high_temperature_stays_active(self, monitor, store, registry, heartbeats, make_machine, clock):
        machine = await cleaned_machine(make_machine, registry)
        await heartbeats.record_heartbeat(machine.id, {"temperatureReadings": {"zoneA": 6.0, "zoneB": 8.0}})

        await monitor.run_sweep()

        errors = await alarms_of_type(store, machine.id, AlarmType.ERROR)
        assert [a.code for a in errors] == [AlarmCode.TEMPERATURE_HIGH]
        assert errors[0].message == "Temperature too high: 7.0°C"

        clock.advance(seconds=30)
        await heartbeats.record_heartbeat(machine.id, {"temperatureReadings": {"zoneA": 3.0, "zoneB": 3.0}})
        await monitor.run_sweep()

        errors = await alarms_of_type(store, machine.id, AlarmType.ERROR)
        assert len(errors) == 1
        assert errors[0].status == AlarmStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_critical_offline(self, monitor, store, registry, make_machine, clock):
        machine = await cleaned_machine(make_machine, registry)
        clock.advance(minutes=31)

        summary = await monitor.run_sweep()

        offline = await alarms_of_type(store, machine.id, AlarmType.OFFLINE)
        assert [a.code for a in offline] == [AlarmCode.CRITICAL_OFFLINE]
        assert offline[0].severity == AlarmSeverity.CRITICAL
        assert offline[0].message.endswith("(critical)")
        assert summary.critical_offline_machines == 1
        assert summary.offline_machines == 1

    @pytest.mark.asyncio
    async def test_invalid_heartbeat(self, monitor, store, registry, make_machine):
        machine = await cleaned_machine(make_machine, registry)
        record = await store.get_heartbeat(machine.id)
        record.last_seen_ms = "yesterday"
        await store.upsert_heartbeat(record)

        await monitor.run_sweep()

        offline = await alarms_of_type(store, machine.id, AlarmType.OFFLINE)
        assert [a.code for a in offline] == [AlarmCode.INVALID_HEARTBEAT]

    @pytest.mark.asyncio
    async def test_offline_machine_skips_telemetry_rules(self, monitor, store, registry, heartbeats, make_machine, clock):
        machine = await cleaned_machine(make_machine, registry)
        await heartbeats.record_heartbeat(machine.id, {"errors": ["E42 coin jam"]})
        clock.advance(minutes=10)

        await monitor.run_sweep()

        assert await alarms_of_type(store, machine.id, AlarmType.ERROR) == []

    @pytest.mark.asyncio
    async def test_incomplete_machines_are_skipped(self, monitor, store):
        await store.add_machine(Machine(id="bad", name="", serial_number="SN-X"))

        summary = await monitor.run_sweep()

        assert summary.total_machines == 0
        assert await store.list_alarms() == []


# ============================================================
# AUTO-RESOLVE
# ============================================================

class TestAutoResolve:
    """Tests for opt-in resolution of cleared conditions."""

    @pytest.fixture
    def resolving_monitor(self, store, dispatcher, config, clock):
        rules = AlarmRuleConfig(auto_resolve_on_recovery=True)
        alarms = AlarmManager(store, dispatcher=dispatcher, config=rules, clock=clock)
        return FleetMonitor(store, alarms, rule_config=rules, sweep_config=config.sweep, clock=clock)

    @pytest.mark.asyncio
    async def test_recovery_resolves_offline(self, resolving_monitor, store, registry, heartbeats, make_machine, clock):
        machine = await cleaned_machine(make_machine, registry)
        clock.advance(minutes=6)
        await resolving_monitor.run_sweep()

        await heartbeats.record_heartbeat(machine.id)
        await resolving_monitor.run_sweep()

        offline = await alarms_of_type(store, machine.id, AlarmType.OFFLINE)
        assert offline[0].status == AlarmStatus.RESOLVED
        assert offline[0].resolved_by == "system"

    @pytest.mark.asyncio
    async def test_temperature_drop_resolves(self, resolving_monitor, store, registry, heartbeats, make_machine, clock):
        machine = await cleaned_machine(make_machine, registry)
        await heartbeats.record_heartbeat(machine.id, {"temperatureReadings": {"zoneA": 9.0}})
        await resolving_monitor.run_sweep()

        clock.advance(seconds=30)
        await heartbeats.record_heartbeat(machine.id, {"temperatureReadings": {"zoneA": 2.0}})
        await resolving_monitor.run_sweep()

        errors = await alarms_of_type(store, machine.id, AlarmType.ERROR)
        assert errors[0].status == AlarmStatus.RESOLVED


# ============================================================
# ISOLATION
# ============================================================

class TestSweepIsolation:
    """Tests for partial failure handling."""

    @pytest.mark.asyncio
    async def test_one_failure_does_not_abort(self, monitor, store, registry, make_machine, clock, monkeypatch):
        first = await cleaned_machine(make_machine, registry, name="Unit 1", serial="SN-1")
        broken = await cleaned_machine(make_machine, registry, name="Unit 2", serial="SN-2")
        third = await cleaned_machine(make_machine, registry, name="Unit 3", serial="SN-3")
        clock.advance(minutes=6)
        original = store.get_heartbeat

        async def flaky(machine_id):
            if machine_id == broken.id:
                raise RuntimeError("storage hiccup")
            return await original(machine_id)

        monkeypatch.setattr(store, "get_heartbeat", flaky)

        summary = await monitor.run_sweep()

        assert summary.total_machines == 2
        assert summary.failed_machines == 1
        assert summary.failed_machine_ids == [broken.id]
        assert summary.alarms_created == 2
        for machine in (first, third):
            offline = await alarms_of_type(store, machine.id, AlarmType.OFFLINE)
            assert [a.code for a in offline] == [AlarmCode.OFFLINE]
        assert await alarms_of_type(store, broken.id, AlarmType.OFFLINE) == []

    @pytest.mark.asyncio
    async def test_cleaning_runs_when_liveness_fails(self, monitor, store, make_machine, monkeypatch):
        machine = await make_machine()

        async def broken(machine_id):
            raise RuntimeError("read failed")

        monkeypatch.setattr(store, "get_heartbeat", broken)

        summary = await monitor.run_sweep()

        assert summary.failed_machine_ids == [machine.id]
        maintenance = await alarms_of_type(store, machine.id, AlarmType.MAINTENANCE)
        assert [a.code for a in maintenance] == [AlarmCode.NEVER_CLEANED]
        assert summary.alarms_created == 1
        assert (await store.get_machine(machine.id)).days_since_cleaning == 0

    @pytest.mark.asyncio
    async def test_cleaning_runs_after_timeout(self, store, alarm_manager, make_machine, clock):
        machine = await make_machine()
        monitor = FleetMonitor(
            store,
            alarm_manager,
            sweep_config=SweepConfig(max_concurrency=4, machine_timeout_seconds=0.05),
            clock=clock,
        )

        async def hangs(machine):
            await asyncio.sleep(1)

        monitor.evaluate_machine = hangs

        summary = await monitor.run_sweep()

        assert summary.failed_machine_ids == [machine.id]
        maintenance = await alarms_of_type(store, machine.id, AlarmType.MAINTENANCE)
        assert [a.code for a in maintenance] == [AlarmCode.NEVER_CLEANED]

    @pytest.mark.asyncio
    async def test_slow_machine_times_out(self, store, alarm_manager, registry, make_machine, clock):
        slow = await cleaned_machine(make_machine, registry, name="Slow", serial="SN-1")
        await cleaned_machine(make_machine, registry, name="Fast", serial="SN-2")
        monitor = FleetMonitor(
            store,
            alarm_manager,
            sweep_config=SweepConfig(max_concurrency=4, machine_timeout_seconds=0.05),
            clock=clock,
        )
        original = monitor.evaluate_machine

        async def slow_for_one(machine):
            if machine.id == slow.id:
                await asyncio.sleep(1)
            return await original(machine)

        monitor.evaluate_machine = slow_for_one

        summary = await monitor.run_sweep()

        assert summary.total_machines == 1
        assert summary.failed_machine_ids == [slow.id]

    @pytest.mark.asyncio
    async def test_concurrency_cap(self, store, alarm_manager, registry, make_machine, clock):
        for i in range(6):
            await cleaned_machine(make_machine, registry, name=f"Unit {i}", serial=f"SN-{i}")
        monitor = FleetMonitor(
            store,
            alarm_manager,
            sweep_config=SweepConfig(max_concurrency=2, machine_timeout_seconds=5.0),
            clock=clock,
        )
        original = monitor.evaluate_machine
        in_flight = 0
        peak = 0

        async def tracked(machine):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            try:
                return await original(machine)
            finally:
                in_flight -= 1

        monitor.evaluate_machine = tracked

        summary = await monitor.run_sweep()

        assert summary.total_machines == 6
        assert peak <= 2

    @pytest.mark.asyncio
    async def test_failing_rule_is_logged_not_raised(self, store, alarm_manager, registry, heartbeats, make_machine, clock):
        machine = await make_machine()
        await heartbeats.record_heartbeat(machine.id, {"errors": ["E1"]})
        monitor = FleetMonitor(store, alarm_manager, clock=clock, telemetry_rules=[ExplodingRule()])

        summary = await monitor.run_sweep()

        assert summary.failed_machines == 0
        maintenance = await alarms_of_type(store, machine.id, AlarmType.MAINTENANCE)
        assert [a.code for a in maintenance] == [AlarmCode.NEVER_CLEANED]
        assert (await store.get_machine(machine.id)).days_since_cleaning == 0


# ============================================================
# STATUS SNAPSHOT
# ============================================================

class TestStatusSnapshot:
    """Tests for the status-check view."""

    @pytest.mark.asyncio
    async def test_snapshot_tiers(self, monitor, store, make_machine, clock):
        fresh = await make_machine(name="Fresh", serial="SN-1")
        clock.advance(minutes=10)
        lagging = await make_machine(name="Lagging", serial="SN-2")
        clock.advance(minutes=21)
        await store.add_machine(Machine(id="ghost", name="Ghost", serial_number="SN-3"))
        # fresh: 31 min old, lagging: 21 min old
        snapshot = await monitor.status_snapshot()

        rows = {v.id: v for v in snapshot["machines"]}
        assert rows[fresh.id].status == "offline"
        assert rows[fresh.id].liveness == LivenessStatus.CRITICAL_OFFLINE
        assert rows[fresh.id].minutes_since_last_heartbeat == 31
        assert rows[lagging.id].status == "online"
        assert rows[lagging.id].liveness == LivenessStatus.OFFLINE
        assert rows["ghost"].status == "offline"
        assert rows["ghost"].reason == "No heartbeat data"
        assert snapshot["stats"] == {
            "totalMachines": 3,
            "onlineMachines": 1,
            "offlineMachines": 2,
            "errorMachines": 0,
        }

    @pytest.mark.asyncio
    async def test_snapshot_error_row(self, monitor, store, make_machine, monkeypatch):
        machine = await make_machine()

        async def broken(machine_id):
            raise RuntimeError("read failed")

        monkeypatch.setattr(store, "get_heartbeat", broken)

        snapshot = await monitor.status_snapshot()

        row = snapshot["machines"][0]
        assert row.id == machine.id
        assert row.status == "error"
        assert row.reason == "read failed"
        assert snapshot["stats"]["errorMachines"] == 1
