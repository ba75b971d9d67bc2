"""
Fleet Sweep.

============================================================
PURPOSE
============================================================
One evaluation cycle over every valid machine.

Per machine:
1. Classify liveness from the heartbeat
2. Offline -> raise the liveness alarm, mark the stored
   heartbeat offline, skip telemetry rules
3. Online -> run the telemetry rules on the latest sample
4. Persist counter updates, raise through the AlarmManager

A second pass runs the cleaning rule for every machine, in
its own guarded step, so a liveness failure never hides a
cleaning alarm.

============================================================
EXECUTION
============================================================
Machines are evaluated concurrently under a semaphore, each
bounded by a timeout. One machine failing (exception or
timeout) is logged and counted; the rest of the fleet is
still evaluated.

============================================================
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from core.clock import ClockFactory, ClockProtocol
from core.config import AlarmRuleConfig, LivenessPolicy, SweepConfig
from fleet.models import HeartbeatStatus, Machine
from monitoring import liveness
from monitoring.alarms.manager import AlarmManager
from monitoring.liveness import LivenessVerdict
from monitoring.models import (
    AlarmCode,
    AlarmSeverity,
    AlarmType,
    LIVENESS_CODES,
    LivenessStatus,
    MachineStatusView,
    SweepSummary,
)
from monitoring.rules import (
    CleaningRule,
    MachineRule,
    RuleContext,
    RuleResult,
    get_telemetry_rules,
)
from storage.store import FleetStore


logger = logging.getLogger(__name__)


@dataclass
class MachineEvaluation:
    """Outcome of evaluating one machine."""
    machine_id: str
    liveness: LivenessStatus
    alarms_created: int = 0


# ============================================================
# FLEET MONITOR
# ============================================================

class FleetMonitor:
    """
    Runs fleet sweeps and builds status snapshots.

    Externally triggered: by POST /monitor or the scheduler.
    """

    def __init__(
        self,
        store: FleetStore,
        alarms: AlarmManager,
        policy: Optional[LivenessPolicy] = None,
        rule_config: Optional[AlarmRuleConfig] = None,
        sweep_config: Optional[SweepConfig] = None,
        clock: Optional[ClockProtocol] = None,
        telemetry_rules: Optional[List[MachineRule]] = None,
    ):
        self._store = store
        self._alarms = alarms
        self._policy = policy or LivenessPolicy()
        self._rule_config = rule_config or AlarmRuleConfig()
        self._sweep_config = sweep_config or SweepConfig()
        self._clock = clock or ClockFactory.get_clock()

        self._telemetry_rules = (
            telemetry_rules if telemetry_rules is not None
            else get_telemetry_rules(self._rule_config)
        )
        self._cleaning_rule = CleaningRule(self._rule_config)

    @property
    def policy(self) -> LivenessPolicy:
        return self._policy

    # --------------------------------------------------------
    # Sweep
    # --------------------------------------------------------

    async def run_sweep(self) -> SweepSummary:
        """
        Evaluate every valid machine once.

        Two passes: liveness plus telemetry, then cleaning. The
        cleaning pass runs for every machine even when its first
        pass failed or timed out.

        Returns:
            SweepSummary over the machines evaluated successfully
        """
        machines = [m for m in await self._store.list_machines() if m.is_valid]
        semaphore = asyncio.Semaphore(self._sweep_config.max_concurrency)
        timeout = self._sweep_config.machine_timeout_seconds

        async def bounded(step, machine: Machine):
            async with semaphore:
                return await asyncio.wait_for(step(machine), timeout=timeout)

        results = await asyncio.gather(
            *(bounded(self.evaluate_machine, m) for m in machines),
            return_exceptions=True,
        )

        summary = SweepSummary()
        for machine, result in zip(machines, results):
            if isinstance(result, BaseException):
                self._log_failure("Sweep", machine, result, timeout)
                summary.failed_machines += 1
                summary.failed_machine_ids.append(machine.id)
                continue

            summary.total_machines += 1
            summary.alarms_created += result.alarms_created
            if result.liveness != LivenessStatus.ONLINE:
                summary.offline_machines += 1
            if result.liveness == LivenessStatus.CRITICAL_OFFLINE:
                summary.critical_offline_machines += 1

        cleaning = await asyncio.gather(
            *(bounded(self.evaluate_cleaning, m) for m in machines),
            return_exceptions=True,
        )
        for machine, created in zip(machines, cleaning):
            if isinstance(created, BaseException):
                self._log_failure("Cleaning check", machine, created, timeout)
                continue
            summary.alarms_created += created

        logger.info(
            f"Sweep completed: {summary.total_machines} machines, "
            f"{summary.offline_machines} offline, "
            f"{summary.critical_offline_machines} critical, "
            f"{summary.alarms_created} alarms created, "
            f"{summary.failed_machines} failed"
        )
        return summary

    @staticmethod
    def _log_failure(step: str, machine: Machine, error: BaseException, timeout: float) -> None:
        if isinstance(error, asyncio.TimeoutError):
            logger.error(f"{step} timed out for machine {machine.id} after {timeout}s")
        else:
            logger.error(f"{step} failed for machine {machine.id}: {error}")

    async def evaluate_machine(self, machine: Machine) -> MachineEvaluation:
        """Run liveness and telemetry checks for one machine."""
        now = self._clock.now()
        heartbeat = await self._store.get_heartbeat(machine.id)
        verdict = liveness.evaluate(heartbeat, self._clock.now_ms(), self._policy)

        evaluation = MachineEvaluation(machine_id=machine.id, liveness=verdict.status)
        result = RuleResult()

        if not verdict.is_online:
            outcome = await self._alarms.raise_alarm(
                machine.id,
                AlarmType.OFFLINE,
                verdict.alarm_code,
                self._liveness_severity(verdict),
                self._liveness_message(machine, verdict),
                machine=machine,
            )
            if outcome.created:
                evaluation.alarms_created += 1

            if (
                verdict.has_valid_heartbeat
                and heartbeat.status != HeartbeatStatus.OFFLINE
            ):
                await self._store.set_heartbeat_status(machine.id, HeartbeatStatus.OFFLINE)
        else:
            result.cleared.extend((AlarmType.OFFLINE, code) for code in LIVENESS_CODES)
            sample = await self._store.latest_telemetry(machine.id)
            context = RuleContext(machine=machine, now=now, sample=sample)
            for rule in self._telemetry_rules:
                try:
                    result.merge(rule.evaluate(context))
                except Exception as e:
                    logger.error(f"Error evaluating rule {rule.rule_id} for {machine.id}: {e}")

        evaluation.alarms_created += await self._apply(machine, result)
        return evaluation

    async def evaluate_cleaning(self, machine: Machine) -> int:
        """
        Cleaning staleness check for one machine.

        Returns:
            Number of alarms created
        """
        last_cleaning = await self._store.latest_cleaning_log(machine.id)
        result = self._cleaning_rule.evaluate(
            RuleContext(machine=machine, now=self._clock.now(), last_cleaning=last_cleaning)
        )
        return await self._apply(machine, result)

    async def _apply(self, machine: Machine, result: RuleResult) -> int:
        """Persist machine changes, raise alarms, resolve cleared conditions."""
        created = 0
        if result.machine_changes:
            await self._store.update_machine(machine.id, result.machine_changes)

        for spec in result.raises:
            outcome = await self._alarms.raise_alarm(
                machine.id,
                spec.alarm_type,
                spec.code,
                spec.severity,
                spec.message,
                machine=machine,
            )
            if outcome.created:
                created += 1

        if self._rule_config.auto_resolve_on_recovery:
            await self._resolve_cleared(machine.id, result)

        return created

    async def _resolve_cleared(self, machine_id: str, result: RuleResult) -> None:
        by_type: Dict[AlarmType, List[AlarmCode]] = {}
        for alarm_type, code in result.cleared:
            by_type.setdefault(alarm_type, []).append(code)
        for alarm_type, codes in by_type.items():
            await self._alarms.resolve_condition(machine_id, alarm_type, codes)

    @staticmethod
    def _liveness_severity(verdict: LivenessVerdict) -> AlarmSeverity:
        if verdict.status == LivenessStatus.CRITICAL_OFFLINE:
            return AlarmSeverity.CRITICAL
        return AlarmSeverity.HIGH

    @staticmethod
    def _liveness_message(machine: Machine, verdict: LivenessVerdict) -> str:
        if verdict.alarm_code == AlarmCode.NO_HEARTBEAT:
            return f"{machine.name} has never sent a heartbeat"
        if verdict.alarm_code == AlarmCode.INVALID_HEARTBEAT:
            return f"{machine.name} heartbeat has no valid timestamp"

        minutes = verdict.delta_ms // 60000
        if verdict.status == LivenessStatus.CRITICAL_OFFLINE:
            return f"{machine.name} offline for {minutes} minutes (critical)"
        return f"{machine.name} offline for {minutes} minutes"

    # --------------------------------------------------------
    # Status snapshot
    # --------------------------------------------------------

    async def status_snapshot(self) -> Dict[str, Any]:
        """
        Per-machine status using the stale tier.

        status is "online" unless the heartbeat is older than the
        stale threshold; liveness carries the canonical
        classification alongside it.
        """
        machines = await self._store.list_machines()
        now_ms = self._clock.now_ms()
        views: List[MachineStatusView] = []

        for machine in machines:
            try:
                heartbeat = await self._store.get_heartbeat(machine.id)
            except Exception as e:
                logger.error(f"Status check failed for machine {machine.id}: {e}")
                views.append(MachineStatusView(
                    id=machine.id, name=machine.name, status="error", reason=str(e),
                ))
                continue

            verdict = liveness.evaluate(heartbeat, now_ms, self._policy)
            last_seen = liveness.valid_last_seen(heartbeat)

            if last_seen is None:
                reason = "No heartbeat data" if heartbeat is None else "Invalid heartbeat timestamp"
                views.append(MachineStatusView(
                    id=machine.id,
                    name=machine.name,
                    status="offline",
                    liveness=verdict.status,
                    reason=reason,
                ))
                continue

            stale = liveness.is_stale(heartbeat, now_ms, self._policy)
            views.append(MachineStatusView(
                id=machine.id,
                name=machine.name,
                status="offline" if stale else "online",
                liveness=verdict.status,
                last_seen_ms=last_seen,
                minutes_since_last_heartbeat=(now_ms - last_seen) // 60000,
            ))

        stats = {
            "totalMachines": len(machines),
            "onlineMachines": sum(1 for v in views if v.status == "online"),
            "offlineMachines": sum(1 for v in views if v.status == "offline"),
            "errorMachines": sum(1 for v in views if v.status == "error"),
        }
        return {"stats": stats, "machines": views}
