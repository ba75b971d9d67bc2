"""
Core Module - System Clock.

============================================================
RESPONSIBILITY
============================================================
Single time source for the fleet service.

- Liveness thresholds, alarm timestamps and command timeouts
  all read time through an injected ClockProtocol
- Heartbeats are stored as integer epoch milliseconds;
  to_epoch_ms() is the only datetime -> ms conversion

============================================================
DESIGN PRINCIPLES
============================================================
- UTC only
- MockClock arithmetic is exact to the millisecond, so the
  5 / 30 minute boundaries can be tested at +/- 1 ms

============================================================
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Optional
import threading


_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_ONE_MS = timedelta(milliseconds=1)


# ============================================================
# TIMESTAMP UTILITIES
# ============================================================

def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes (SQLite drops tzinfo)."""
    if dt is not None and dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def to_epoch_ms(dt: datetime) -> int:
    """Integer epoch milliseconds, without float rounding."""
    return (ensure_utc(dt) - _EPOCH) // _ONE_MS


# ============================================================
# CLOCK PROTOCOL
# ============================================================

class ClockProtocol(ABC):
    """Abstract interface for the service clock."""

    @abstractmethod
    def now(self) -> datetime:
        """Current UTC datetime."""
        pass

    def now_ms(self) -> int:
        return to_epoch_ms(self.now())

    def format_iso(self, dt: Optional[datetime] = None) -> str:
        """ISO 8601 for API responses."""
        return (dt or self.now()).isoformat()


# ============================================================
# SYSTEM CLOCK (PRODUCTION)
# ============================================================

class SystemClock(ClockProtocol):

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


# ============================================================
# MOCK CLOCK (TESTING)
# ============================================================

class MockClock(ClockProtocol):
    """
    Manually advanced clock.

    Time only moves when advance() is called, so a whole sweep
    sees one instant.
    """

    def __init__(self, initial_time: Optional[datetime] = None):
        self._time = ensure_utc(initial_time) or datetime.now(timezone.utc)
        self._lock = threading.Lock()

    def now(self) -> datetime:
        with self._lock:
            return self._time

    def advance(self, seconds: float = 0, **kwargs) -> None:
        """
        Move time forward.

        Args:
            seconds: Seconds to advance
            **kwargs: Extra timedelta fields (milliseconds, minutes, days...)
        """
        with self._lock:
            self._time = self._time + timedelta(seconds=seconds, **kwargs)


# ============================================================
# CLOCK FACTORY
# ============================================================

class ClockFactory:
    """Process-wide default clock for services built without one."""

    _instance: Optional[ClockProtocol] = None
    _lock = threading.Lock()

    @classmethod
    def get_clock(cls) -> ClockProtocol:
        with cls._lock:
            if cls._instance is None:
                cls._instance = SystemClock()
            return cls._instance


__all__ = [
    "ClockProtocol",
    "SystemClock",
    "MockClock",
    "ClockFactory",
    "to_epoch_ms",
    "ensure_utc",
]
