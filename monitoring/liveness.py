"""
Liveness Classifier.

============================================================
PURPOSE
============================================================
Derive a machine's effective status from its heartbeat.

    delta = now - last_seen_ms
    delta > critical_after  -> CRITICAL_OFFLINE
    delta > offline_after   -> OFFLINE
    otherwise               -> ONLINE

A missing heartbeat, or one whose last_seen_ms is absent or
not an integer, is OFFLINE with its own alarm code.

Pure functions over (heartbeat, now, policy). No I/O.

============================================================
"""

from dataclasses import dataclass
from typing import Optional

from core.config import LivenessPolicy
from fleet.models import HeartbeatRecord
from monitoring.models import AlarmCode, LivenessStatus


@dataclass(frozen=True)
class LivenessVerdict:
    """Classification plus the alarm code an offline result maps to."""

    status: LivenessStatus
    alarm_code: Optional[AlarmCode] = None
    delta_ms: Optional[int] = None

    @property
    def is_online(self) -> bool:
        return self.status == LivenessStatus.ONLINE

    @property
    def has_valid_heartbeat(self) -> bool:
        return self.alarm_code not in (AlarmCode.NO_HEARTBEAT, AlarmCode.INVALID_HEARTBEAT)


def valid_last_seen(heartbeat: Optional[HeartbeatRecord]) -> Optional[int]:
    """Return last_seen_ms when it is a usable integer, else None."""
    if heartbeat is None:
        return None
    value = heartbeat.last_seen_ms
    # bool is an int subclass; a True/False timestamp is garbage.
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return value


def evaluate(
    heartbeat: Optional[HeartbeatRecord],
    now_ms: int,
    policy: LivenessPolicy,
) -> LivenessVerdict:
    """
    Classify a heartbeat.

    Args:
        heartbeat: Stored record, or None when the machine never reported
        now_ms: Current time as epoch milliseconds
        policy: Thresholds

    Returns:
        LivenessVerdict
    """
    if heartbeat is None:
        return LivenessVerdict(LivenessStatus.OFFLINE, AlarmCode.NO_HEARTBEAT)

    last_seen = valid_last_seen(heartbeat)
    if last_seen is None:
        return LivenessVerdict(LivenessStatus.OFFLINE, AlarmCode.INVALID_HEARTBEAT)

    delta = now_ms - last_seen
    if delta > policy.critical_after_ms:
        return LivenessVerdict(LivenessStatus.CRITICAL_OFFLINE, AlarmCode.CRITICAL_OFFLINE, delta)
    if delta > policy.offline_after_ms:
        return LivenessVerdict(LivenessStatus.OFFLINE, AlarmCode.OFFLINE, delta)
    return LivenessVerdict(LivenessStatus.ONLINE, None, delta)


def classify(
    heartbeat: Optional[HeartbeatRecord],
    now_ms: int,
    policy: Optional[LivenessPolicy] = None,
) -> LivenessStatus:
    """Shorthand for evaluate(...).status with the default policy."""
    return evaluate(heartbeat, now_ms, policy or LivenessPolicy()).status


def is_stale(
    heartbeat: Optional[HeartbeatRecord],
    now_ms: int,
    policy: LivenessPolicy,
) -> bool:
    """Status-check tier: True when the heartbeat is older than stale_after."""
    last_seen = valid_last_seen(heartbeat)
    if last_seen is None:
        return True
    return now_ms - last_seen > policy.stale_after_ms
