"""
Fleet API Routers.
"""
from . import health, heartbeat, monitor, notifications, alarms, machines, commands

__all__ = ["health", "heartbeat", "monitor", "notifications", "alarms", "machines", "commands"]
