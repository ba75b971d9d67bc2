"""
Alarms Package.

Deduplicated alarm creation and the operator lifecycle.
"""

from .manager import AlarmManager


__all__ = [
    "AlarmManager",
]
