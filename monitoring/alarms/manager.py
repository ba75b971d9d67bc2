"""
Alarm Manager.

============================================================
PURPOSE
============================================================
Raise-or-get for alarms, plus the operator lifecycle.

    raise -> ACTIVE -> acknowledge -> ACKNOWLEDGED
                    +-> resolve ----> RESOLVED

PRINCIPLES:
- At most one ACTIVE alarm per (machine_id, type, code)
- A duplicate raise is a normal outcome, not an error
- Only newly created HIGH / CRITICAL alarms notify
- Notification failures never fail a raise

============================================================
ATOMICITY
============================================================
Raises are serialized per machine with an asyncio.Lock. The
store's insert is itself insert-if-absent, so a writer in
another process that wins the race surfaces here as
DuplicateRecordError and the existing alarm is returned.

============================================================
"""

import asyncio
import logging
from datetime import timedelta
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Optional

from core.clock import ClockFactory, ClockProtocol
from core.config import AlarmRuleConfig
from core.exceptions import AlarmNotFoundError, InvalidInputError
from fleet.models import Machine
from monitoring.models import (
    Alarm,
    AlarmCode,
    AlarmSeverity,
    AlarmStatus,
    AlarmType,
    RaiseOutcome,
)
from storage.repositories.exceptions import DuplicateRecordError
from storage.store import FleetStore

if TYPE_CHECKING:
    from monitoring.notifications.dispatcher import NotificationDispatcher


logger = logging.getLogger(__name__)


# ============================================================
# ALARM MANAGER
# ============================================================

class AlarmManager:
    """
    Central alarm coordination point.

    Every rule and the liveness path raise through here.
    """

    def __init__(
        self,
        store: FleetStore,
        dispatcher: Optional["NotificationDispatcher"] = None,
        config: Optional[AlarmRuleConfig] = None,
        clock: Optional[ClockProtocol] = None,
    ):
        """
        Initialize alarm manager.

        Args:
            store: Fleet store
            dispatcher: Notification dispatcher (None disables email)
            config: Rule configuration (notify severities)
            clock: Time source
        """
        self._store = store
        self._dispatcher = dispatcher
        self._config = config or AlarmRuleConfig()
        self._clock = clock or ClockFactory.get_clock()

        self._notify_severities = {
            AlarmSeverity(s) for s in self._config.notify_severities
        }

        # Per-machine raise locks
        self._locks: Dict[str, asyncio.Lock] = {}

    def _lock_for(self, machine_id: str) -> asyncio.Lock:
        lock = self._locks.get(machine_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[machine_id] = lock
        return lock

    def should_notify(self, severity: AlarmSeverity) -> bool:
        """Severity gate for notifications."""
        return severity in self._notify_severities

    # --------------------------------------------------------
    # Raise
    # --------------------------------------------------------

    async def raise_alarm(
        self,
        machine_id: str,
        alarm_type: AlarmType,
        code: AlarmCode,
        severity: AlarmSeverity,
        message: str,
        machine: Optional[Machine] = None,
    ) -> RaiseOutcome:
        """
        Create an ACTIVE alarm unless one with the same key exists.

        Args:
            machine_id: Owning machine
            alarm_type: Alarm category
            code: Discriminator within the type
            severity: Alarm severity
            message: Human-readable description
            machine: Machine record for notification rendering
                (loaded from the store when omitted)

        Returns:
            RaiseOutcome with created=False for a suppressed duplicate

        Raises:
            StoreError: Persistence failed
        """
        async with self._lock_for(machine_id):
            existing = await self._store.find_active_alarm(machine_id, alarm_type, code)
            if existing is not None:
                logger.debug(
                    f"Duplicate alarm suppressed: {machine_id} {alarm_type.value}/{code.value}"
                )
                return RaiseOutcome(alarm_id=existing.id, created=False)

            alarm = Alarm(
                machine_id=machine_id,
                type=alarm_type,
                code=code,
                severity=severity,
                message=message,
                timestamp=self._clock.now(),
            )

            try:
                alarm_id = await self._store.insert_alarm(alarm)
            except DuplicateRecordError:
                winner = await self._store.find_active_alarm(machine_id, alarm_type, code)
                if winner is None:
                    raise
                logger.debug(
                    f"Concurrent alarm insert lost: {machine_id} {alarm_type.value}/{code.value}"
                )
                return RaiseOutcome(alarm_id=winner.id, created=False)

        alarm.id = alarm_id
        logger.info(
            f"Alarm raised: {machine_id} {alarm_type.value}/{code.value} "
            f"[{severity.value}] {message}"
        )

        notified = False
        if self.should_notify(severity):
            notified = await self._notify(alarm, machine)

        return RaiseOutcome(alarm_id=alarm_id, created=True, notified=notified)

    async def _notify(self, alarm: Alarm, machine: Optional[Machine]) -> bool:
        """Dispatch an email for a new alarm. Never raises."""
        if self._dispatcher is None:
            return False

        try:
            if machine is None:
                machine = await self._store.get_machine(alarm.machine_id)
            if machine is None:
                logger.warning(f"Cannot notify for alarm {alarm.id}: machine {alarm.machine_id} missing")
                return False

            sent = await self._dispatcher.notify(machine, alarm)
            if sent:
                await self._store.update_alarm(alarm.id, {"notified": True})
            return sent

        except Exception as e:
            logger.error(f"Notification for alarm {alarm.id} failed: {e}")
            return False

    # --------------------------------------------------------
    # Operator actions
    # --------------------------------------------------------

    async def get(self, alarm_id: str) -> Alarm:
        alarm = await self._store.get_alarm(alarm_id)
        if alarm is None:
            raise AlarmNotFoundError(alarm_id)
        return alarm

    async def acknowledge(self, alarm_id: str, acknowledged_by: str) -> Alarm:
        """
        Acknowledge an alarm.

        Raises:
            AlarmNotFoundError: Unknown id
            InvalidInputError: Alarm is already resolved
        """
        alarm = await self.get(alarm_id)
        if alarm.status == AlarmStatus.RESOLVED:
            raise InvalidInputError(f"Alarm {alarm_id} is already resolved", field="status")

        changes = {
            "status": AlarmStatus.ACKNOWLEDGED,
            "acknowledged_by": acknowledged_by,
            "acknowledged_at": self._clock.now(),
        }
        await self._store.update_alarm(alarm_id, changes)
        logger.info(f"Alarm {alarm_id} acknowledged by {acknowledged_by}")
        return await self.get(alarm_id)

    async def resolve(self, alarm_id: str, resolved_by: str) -> Alarm:
        """
        Resolve an alarm. Resolving a resolved alarm is a no-op.

        Raises:
            AlarmNotFoundError: Unknown id
        """
        alarm = await self.get(alarm_id)
        if alarm.status == AlarmStatus.RESOLVED:
            return alarm

        changes = {
            "status": AlarmStatus.RESOLVED,
            "resolved_by": resolved_by,
            "resolved_at": self._clock.now(),
        }
        await self._store.update_alarm(alarm_id, changes)
        logger.info(f"Alarm {alarm_id} resolved by {resolved_by}")
        return await self.get(alarm_id)

    async def resolve_condition(
        self,
        machine_id: str,
        alarm_type: AlarmType,
        codes: Iterable[AlarmCode],
        resolved_by: str = "system",
    ) -> List[str]:
        """
        Resolve the active alarms for a condition that has cleared.

        Returns:
            Ids of the alarms resolved
        """
        resolved = []
        async with self._lock_for(machine_id):
            for code in codes:
                alarm = await self._store.find_active_alarm(machine_id, alarm_type, code)
                if alarm is None:
                    continue
                await self._store.update_alarm(alarm.id, {
                    "status": AlarmStatus.RESOLVED,
                    "resolved_by": resolved_by,
                    "resolved_at": self._clock.now(),
                })
                resolved.append(alarm.id)

        if resolved:
            logger.info(f"Auto-resolved {len(resolved)} {alarm_type.value} alarm(s) for {machine_id}")
        return resolved

    # --------------------------------------------------------
    # Queries
    # --------------------------------------------------------

    async def list_alarms(
        self,
        status: Optional[AlarmStatus] = None,
        machine_id: Optional[str] = None,
    ) -> List[Alarm]:
        """Alarms newest first."""
        return await self._store.list_alarms(status=status, machine_id=machine_id)

    async def get_active_alarms(self, machine_id: Optional[str] = None) -> List[Alarm]:
        return await self._store.list_alarms(status=AlarmStatus.ACTIVE, machine_id=machine_id)

    async def statistics(self) -> Dict[str, Any]:
        """Counts by status and by severity."""
        alarms = await self._store.list_alarms()

        stats: Dict[str, Any] = {"total": len(alarms)}
        for status in AlarmStatus:
            stats[status.value] = sum(1 for a in alarms if a.status == status)
        for severity in AlarmSeverity:
            stats[severity.value] = sum(1 for a in alarms if a.severity == severity)
        return stats

    # --------------------------------------------------------
    # Housekeeping
    # --------------------------------------------------------

    async def delete_resolved(self) -> int:
        deleted = await self._store.delete_alarms(status=AlarmStatus.RESOLVED)
        logger.info(f"Deleted {deleted} resolved alarm(s)")
        return deleted

    async def delete_older_than(self, days: int = 30) -> int:
        """Delete alarms of any status raised more than `days` ago."""
        if days < 0:
            raise InvalidInputError("days must not be negative", field="days")

        cutoff = self._clock.now() - timedelta(days=days)
        deleted = await self._store.delete_alarms(older_than=cutoff)
        logger.info(f"Deleted {deleted} alarm(s) older than {days} days")
        return deleted
