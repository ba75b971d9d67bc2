"""
Notification Dispatcher.

============================================================
PURPOSE
============================================================
Decide whether an alarm is emailed, and deliver it.

GATING (in order):
1. No recipient addresses          -> not sent
2. offline alarm, offline alerts off -> not sent
3. error alarm, error alerts off     -> not sent
4. maintenance / mode_change       -> always sent

FAILURE HANDLING:
A provider failure never propagates. It is logged, replayed
through the console transport so the content is not lost,
and recorded as a dead letter for retry_dead_letters().

============================================================
"""

import logging
from typing import List, Optional

from core.clock import ClockFactory, ClockProtocol
from core.config import EmailConfig
from core.exceptions import NotificationDeliveryError
from fleet.models import Machine
from monitoring.models import Alarm, AlarmType, EmailMessage, NotificationDelivery
from monitoring.notifications.mail import (
    ConsoleEmailTransport,
    EmailFormatter,
    EmailTransport,
)
from storage.store import FleetStore


logger = logging.getLogger(__name__)


class NotificationDispatcher:
    """
    Sends alarm emails through one transport.
    """

    def __init__(
        self,
        transport: EmailTransport,
        store: Optional[FleetStore] = None,
        config: Optional[EmailConfig] = None,
        clock: Optional[ClockProtocol] = None,
    ):
        """
        Initialize dispatcher.

        Args:
            transport: Primary mail provider
            store: Where dead letters are recorded (None skips recording)
            config: Sender defaults
            clock: Time source
        """
        self._transport = transport
        self._store = store
        self._config = config or EmailConfig()
        self._clock = clock or ClockFactory.get_clock()
        self._formatter = EmailFormatter()

        if isinstance(transport, ConsoleEmailTransport):
            self._fallback: Optional[EmailTransport] = None
        else:
            self._fallback = ConsoleEmailTransport(self._config, clock=self._clock)

    @property
    def provider(self) -> str:
        return self._transport.name

    async def close(self) -> None:
        await self._transport.close()

    # --------------------------------------------------------
    # Gating
    # --------------------------------------------------------

    @staticmethod
    def is_enabled_for(machine: Machine, alarm: Alarm) -> bool:
        settings = machine.notifications
        if not settings.email_addresses:
            return False
        if alarm.type == AlarmType.OFFLINE and not settings.enable_offline_alerts:
            return False
        if alarm.type == AlarmType.ERROR and not settings.enable_error_alerts:
            return False
        return True

    # --------------------------------------------------------
    # Sending
    # --------------------------------------------------------

    async def notify(self, machine: Machine, alarm: Alarm) -> bool:
        """
        Email an alarm to the machine's recipients.

        Returns:
            True when the provider accepted the message
        """
        if not self.is_enabled_for(machine, alarm):
            logger.debug(
                f"Notification skipped for {machine.id} {alarm.type.value}/{alarm.code.value}"
            )
            return False

        message = self._formatter.build(
            machine,
            alarm,
            from_email=self._config.from_email,
            from_name=self._config.from_name,
        )
        return await self._deliver(message, machine_id=machine.id, alarm_id=alarm.id)

    async def send_raw(
        self,
        to: List[str],
        subject: str,
        html_content: str,
        from_email: Optional[str] = None,
    ) -> bool:
        """Send a caller-composed email."""
        message = EmailMessage(
            to=list(to),
            subject=subject,
            html_content=html_content,
            from_email=from_email,
        )
        return await self._deliver(message)

    async def _deliver(
        self,
        message: EmailMessage,
        machine_id: Optional[str] = None,
        alarm_id: Optional[str] = None,
    ) -> bool:
        try:
            await self._transport.send(message)
            logger.info(f"Email sent via {self.provider} to: {', '.join(message.to)}")
            return True

        except NotificationDeliveryError as e:
            error = e.message
        except Exception as e:
            error = f"{type(e).__name__}: {e}"

        logger.error(f"Email delivery via {self.provider} failed: {error}")

        if self._fallback is not None:
            try:
                await self._fallback.send(message)
            except Exception as e:
                logger.error(f"Console fallback failed: {e}")

        await self._record_dead_letter(message, error, machine_id, alarm_id)
        return False

    async def _record_dead_letter(
        self,
        message: EmailMessage,
        error: str,
        machine_id: Optional[str],
        alarm_id: Optional[str],
    ) -> None:
        if self._store is None:
            return

        delivery = NotificationDelivery(
            machine_id=machine_id,
            alarm_id=alarm_id,
            recipients=list(message.to),
            subject=message.subject,
            html_content=message.html_content,
            provider=self.provider,
            error=error,
            created_at=self._clock.now(),
        )
        try:
            await self._store.add_dead_letter(delivery)
        except Exception as e:
            logger.error(f"Failed to record dead letter for '{message.subject}': {e}")

    # --------------------------------------------------------
    # Retry
    # --------------------------------------------------------

    async def retry_dead_letters(self) -> int:
        """
        Re-send every recorded failure that has not been retried.

        Returns:
            Number of dead letters delivered on this pass
        """
        if self._store is None:
            return 0

        delivered = 0
        for delivery in await self._store.list_dead_letters():
            message = EmailMessage(
                to=delivery.recipients,
                subject=delivery.subject,
                html_content=delivery.html_content,
                from_email=self._config.from_email,
                from_name=self._config.from_name,
            )
            try:
                await self._transport.send(message)
            except Exception as e:
                logger.warning(f"Dead letter {delivery.id} still failing: {e}")
                await self._store.update_dead_letter(delivery.id, {"error": str(e)})
                continue

            await self._store.update_dead_letter(delivery.id, {
                "retried": True,
                "retried_at": self._clock.now(),
            })
            delivered += 1

        if delivered:
            logger.info(f"Re-sent {delivered} dead-lettered email(s)")
        return delivered
