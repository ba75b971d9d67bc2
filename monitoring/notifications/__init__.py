"""
Notifications Package.

Email notification for the monitoring subsystem.
"""

from .mail import (
    EmailFormatter,
    EmailTransport,
    ConsoleEmailTransport,
    SendGridEmailTransport,
    SmtpEmailTransport,
    create_transport,
)
from .dispatcher import NotificationDispatcher


__all__ = [
    "EmailFormatter",
    "EmailTransport",
    "ConsoleEmailTransport",
    "SendGridEmailTransport",
    "SmtpEmailTransport",
    "create_transport",
    "NotificationDispatcher",
]
