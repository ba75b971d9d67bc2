"""
Tests for the Alarm Manager.

============================================================
PURPOSE
============================================================
- Raise is idempotent per (machine, type, code) while active
- Concurrent raises create exactly one alarm
- Only HIGH / CRITICAL alarms notify, and only when the
  machine opted in to that alarm type
- Operator lifecycle: acknowledge, resolve, housekeeping

============================================================
"""

import asyncio
import pytest
from unittest.mock import AsyncMock, MagicMock

from core.config import AlarmRuleConfig
from core.exceptions import AlarmNotFoundError, InvalidInputError
from fleet.models import NotificationSettings
from monitoring.alarms.manager import AlarmManager
from monitoring.models import AlarmCode, AlarmSeverity, AlarmStatus, AlarmType
from storage.repositories.exceptions import DuplicateRecordError


async def raise_offline(manager, machine_id, severity=AlarmSeverity.HIGH):
    return await manager.raise_alarm(
        machine_id,
        AlarmType.OFFLINE,
        AlarmCode.OFFLINE,
        severity,
        "offline for 6 minutes",
    )


# ============================================================
# RAISE
# ============================================================

class TestRaiseAlarm:
    """Tests for raise-or-get."""

    @pytest.mark.asyncio
    async def test_first_raise_creates(self, alarm_manager, make_machine, store):
        machine = await make_machine()

        outcome = await raise_offline(alarm_manager, machine.id)

        assert outcome.created
        alarm = await store.get_alarm(outcome.alarm_id)
        assert alarm.status == AlarmStatus.ACTIVE
        assert alarm.severity == AlarmSeverity.HIGH

    @pytest.mark.asyncio
    async def test_second_raise_returns_existing(self, alarm_manager, make_machine, store):
        machine = await make_machine()

        first = await raise_offline(alarm_manager, machine.id)
        second = await raise_offline(alarm_manager, machine.id)

        assert not second.created
        assert second.alarm_id == first.alarm_id
        assert len(await store.list_alarms()) == 1

    @pytest.mark.asyncio
    async def test_different_code_is_separate_alarm(self, alarm_manager, make_machine, store):
        machine = await make_machine()

        await raise_offline(alarm_manager, machine.id)
        outcome = await alarm_manager.raise_alarm(
            machine.id, AlarmType.OFFLINE, AlarmCode.CRITICAL_OFFLINE, AlarmSeverity.CRITICAL, "critical"
        )

        assert outcome.created
        assert len(await store.list_alarms()) == 2

    @pytest.mark.asyncio
    async def test_concurrent_raises_create_one(self, alarm_manager, make_machine, store):
        machine = await make_machine()

        outcomes = await asyncio.gather(*(raise_offline(alarm_manager, machine.id) for _ in range(10)))

        assert sum(1 for o in outcomes if o.created) == 1
        assert len({o.alarm_id for o in outcomes}) == 1
        assert len(await store.list_alarms(status=AlarmStatus.ACTIVE)) == 1

    @pytest.mark.asyncio
    async def test_resolved_alarm_allows_new_raise(self, alarm_manager, make_machine):
        machine = await make_machine()

        first = await raise_offline(alarm_manager, machine.id)
        await alarm_manager.resolve(first.alarm_id, "operator")
        second = await raise_offline(alarm_manager, machine.id)

        assert second.created
        assert second.alarm_id != first.alarm_id

    @pytest.mark.asyncio
    async def test_acknowledged_alarm_allows_new_raise(self, alarm_manager, make_machine):
        machine = await make_machine()

        first = await raise_offline(alarm_manager, machine.id)
        await alarm_manager.acknowledge(first.alarm_id, "operator")
        second = await raise_offline(alarm_manager, machine.id)

        assert second.created

    @pytest.mark.asyncio
    async def test_lost_insert_race_returns_winner(self, clock):
        winner = MagicMock()
        winner.id = "alarm-winner"
        store = AsyncMock()
        store.find_active_alarm = AsyncMock(side_effect=[None, winner])
        store.insert_alarm = AsyncMock(side_effect=DuplicateRecordError("test", "key", "m-1"))

        manager = AlarmManager(store, clock=clock)
        outcome = await raise_offline(manager, "m-1")

        assert not outcome.created
        assert outcome.alarm_id == "alarm-winner"


# ============================================================
# NOTIFICATION GATE
# ============================================================

class TestSeverityGate:
    """Tests for which severities reach the dispatcher."""

    @pytest.mark.asyncio
    async def test_high_notifies_and_marks(self, alarm_manager, make_machine, transport, store):
        machine = await make_machine()

        outcome = await raise_offline(alarm_manager, machine.id, AlarmSeverity.HIGH)

        assert outcome.notified
        assert len(transport.sent) == 1
        assert (await store.get_alarm(outcome.alarm_id)).notified

    @pytest.mark.asyncio
    async def test_critical_notifies(self, alarm_manager, make_machine, transport):
        machine = await make_machine()

        await raise_offline(alarm_manager, machine.id, AlarmSeverity.CRITICAL)

        assert len(transport.sent) == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("severity", [AlarmSeverity.LOW, AlarmSeverity.MEDIUM])
    async def test_low_and_medium_do_not_notify(self, alarm_manager, make_machine, transport, store, severity):
        machine = await make_machine()

        outcome = await raise_offline(alarm_manager, machine.id, severity)

        assert outcome.created
        assert not outcome.notified
        assert transport.sent == []
        assert not (await store.get_alarm(outcome.alarm_id)).notified

    @pytest.mark.asyncio
    async def test_offline_alerts_disabled(self, alarm_manager, make_machine, transport, store):
        machine = await make_machine(notifications=NotificationSettings(
            email_addresses=["ops@example.com"],
            enable_offline_alerts=False,
        ))

        outcome = await raise_offline(alarm_manager, machine.id, AlarmSeverity.HIGH)

        assert outcome.created
        assert not outcome.notified
        alarm = await store.get_alarm(outcome.alarm_id)
        assert alarm.status == AlarmStatus.ACTIVE
        assert not alarm.notified
        assert transport.sent == []
        assert await store.list_dead_letters() == []

    @pytest.mark.asyncio
    async def test_duplicate_does_not_notify_again(self, alarm_manager, make_machine, transport):
        machine = await make_machine()

        await raise_offline(alarm_manager, machine.id)
        await raise_offline(alarm_manager, machine.id)

        assert len(transport.sent) == 1

    @pytest.mark.asyncio
    async def test_dispatcher_error_does_not_fail_raise(self, store, clock, make_machine):
        machine = await make_machine()
        dispatcher = AsyncMock()
        dispatcher.notify = AsyncMock(side_effect=RuntimeError("boom"))
        manager = AlarmManager(store, dispatcher=dispatcher, clock=clock)

        outcome = await raise_offline(manager, machine.id)

        assert outcome.created
        assert not outcome.notified

    def test_configurable_notify_severities(self, store, clock):
        manager = AlarmManager(store, config=AlarmRuleConfig(notify_severities=["medium"]), clock=clock)

        assert manager.should_notify(AlarmSeverity.MEDIUM)
        assert not manager.should_notify(AlarmSeverity.HIGH)


# ============================================================
# LIFECYCLE
# ============================================================

class TestAlarmLifecycle:
    """Tests for operator actions and queries."""

    @pytest.mark.asyncio
    async def test_acknowledge(self, alarm_manager, make_machine, clock):
        machine = await make_machine()
        outcome = await raise_offline(alarm_manager, machine.id)

        alarm = await alarm_manager.acknowledge(outcome.alarm_id, "alice")

        assert alarm.status == AlarmStatus.ACKNOWLEDGED
        assert alarm.acknowledged_by == "alice"
        assert alarm.acknowledged_at == clock.now()

    @pytest.mark.asyncio
    async def test_acknowledge_resolved_rejected(self, alarm_manager, make_machine):
        machine = await make_machine()
        outcome = await raise_offline(alarm_manager, machine.id)
        await alarm_manager.resolve(outcome.alarm_id, "alice")

        with pytest.raises(InvalidInputError):
            await alarm_manager.acknowledge(outcome.alarm_id, "bob")

    @pytest.mark.asyncio
    async def test_resolve_is_idempotent(self, alarm_manager, make_machine, clock):
        machine = await make_machine()
        outcome = await raise_offline(alarm_manager, machine.id)

        first = await alarm_manager.resolve(outcome.alarm_id, "alice")
        clock.advance(minutes=5)
        second = await alarm_manager.resolve(outcome.alarm_id, "bob")

        assert second.status == AlarmStatus.RESOLVED
        assert second.resolved_by == "alice"
        assert second.resolved_at == first.resolved_at

    @pytest.mark.asyncio
    async def test_unknown_alarm(self, alarm_manager):
        with pytest.raises(AlarmNotFoundError):
            await alarm_manager.get("missing")
        with pytest.raises(AlarmNotFoundError):
            await alarm_manager.resolve("missing", "alice")

    @pytest.mark.asyncio
    async def test_resolve_condition(self, alarm_manager, make_machine, store):
        machine = await make_machine()
        outcome = await raise_offline(alarm_manager, machine.id)

        resolved = await alarm_manager.resolve_condition(
            machine.id, AlarmType.OFFLINE, [AlarmCode.OFFLINE, AlarmCode.NO_HEARTBEAT]
        )

        assert resolved == [outcome.alarm_id]
        alarm = await store.get_alarm(outcome.alarm_id)
        assert alarm.status == AlarmStatus.RESOLVED
        assert alarm.resolved_by == "system"

    @pytest.mark.asyncio
    async def test_statistics(self, alarm_manager, make_machine):
        machine = await make_machine()
        first = await raise_offline(alarm_manager, machine.id)
        await alarm_manager.raise_alarm(
            machine.id, AlarmType.MAINTENANCE, AlarmCode.NEVER_CLEANED, AlarmSeverity.MEDIUM, "never cleaned"
        )
        await alarm_manager.resolve(first.alarm_id, "alice")

        stats = await alarm_manager.statistics()

        assert stats["total"] == 2
        assert stats["active"] == 1
        assert stats["resolved"] == 1
        assert stats["high"] == 1
        assert stats["medium"] == 1
        assert stats["critical"] == 0

    @pytest.mark.asyncio
    async def test_delete_resolved(self, alarm_manager, make_machine, store):
        machine = await make_machine()
        first = await raise_offline(alarm_manager, machine.id)
        await alarm_manager.raise_alarm(
            machine.id, AlarmType.ERROR, AlarmCode.MACHINE_ERROR, AlarmSeverity.HIGH, "jam"
        )
        await alarm_manager.resolve(first.alarm_id, "alice")

        assert await alarm_manager.delete_resolved() == 1
        remaining = await store.list_alarms()
        assert [a.code for a in remaining] == [AlarmCode.MACHINE_ERROR]

    @pytest.mark.asyncio
    async def test_delete_older_than(self, alarm_manager, make_machine, clock, store):
        machine = await make_machine()
        await raise_offline(alarm_manager, machine.id)
        clock.advance(days=40)
        await alarm_manager.raise_alarm(
            machine.id, AlarmType.ERROR, AlarmCode.MACHINE_ERROR, AlarmSeverity.HIGH, "jam"
        )

        assert await alarm_manager.delete_older_than(30) == 1
        assert len(await store.list_alarms()) == 1

    @pytest.mark.asyncio
    async def test_delete_older_than_rejects_negative(self, alarm_manager):
        with pytest.raises(InvalidInputError):
            await alarm_manager.delete_older_than(-1)

    @pytest.mark.asyncio
    async def test_list_newest_first(self, alarm_manager, make_machine, clock):
        machine = await make_machine()
        await raise_offline(alarm_manager, machine.id)
        clock.advance(minutes=1)
        await alarm_manager.raise_alarm(
            machine.id, AlarmType.ERROR, AlarmCode.MACHINE_ERROR, AlarmSeverity.HIGH, "jam"
        )

        alarms = await alarm_manager.list_alarms(machine_id=machine.id)

        assert [a.code for a in alarms] == [AlarmCode.MACHINE_ERROR, AlarmCode.OFFLINE]
        assert len(await alarm_manager.get_active_alarms(machine.id)) == 2
