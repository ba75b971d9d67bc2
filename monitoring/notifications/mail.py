"""
Email Rendering and Transports.

============================================================
PURPOSE
============================================================
Turn alarms into emails and hand them to a mail provider.

- EmailFormatter: subject + HTML body for an alarm
- ConsoleEmailTransport: log-only simulation (development)
- SendGridEmailTransport: SendGrid v3 HTTP API via aiohttp
- SmtpEmailTransport: any SMTP relay via smtplib

Transports raise NotificationDeliveryError on failure; the
dispatcher decides what happens next.

============================================================
"""

import asyncio
import html
import logging
import re
import smtplib
from abc import ABC, abstractmethod
from email.message import EmailMessage as MimeMessage
from email.utils import formataddr
from typing import Any, Dict, Optional

import aiohttp

from core.clock import ClockFactory, ClockProtocol
from core.config import EmailConfig
from core.exceptions import ConfigurationError, NotificationDeliveryError
from fleet.models import Machine
from monitoring.models import Alarm, AlarmType, EmailMessage


logger = logging.getLogger(__name__)


# ============================================================
# EMAIL FORMATTER
# ============================================================

class EmailFormatter:
    """
    Formats alarms as HTML email.
    """

    TITLES = {
        AlarmType.OFFLINE: "Machine Offline",
        AlarmType.ERROR: "Machine Error",
        AlarmType.MAINTENANCE: "Maintenance Required",
        AlarmType.MODE_CHANGE: "Operating Mode Change",
    }

    DEFAULT_TITLE = "System Alarm"

    SEVERITY_COLORS = {
        "low": "#2e7d32",
        "medium": "#f9a825",
        "high": "#ef6c00",
        "critical": "#c62828",
    }

    @classmethod
    def title_for(cls, alarm_type: AlarmType) -> str:
        return cls.TITLES.get(alarm_type, cls.DEFAULT_TITLE)

    @classmethod
    def format_subject(cls, machine: Machine, alarm: Alarm) -> str:
        return f"{machine.name} - {cls.title_for(alarm.type)}"

    @classmethod
    def format_alarm(cls, machine: Machine, alarm: Alarm) -> str:
        """Render the HTML body for an alarm."""
        title = html.escape(cls.title_for(alarm.type))
        severity = alarm.severity.value.upper()
        color = cls.SEVERITY_COLORS.get(alarm.severity.value, "#424242")
        time_str = alarm.timestamp.strftime("%Y-%m-%d %H:%M:%S UTC")

        rows = [
            ("Machine", f"{html.escape(machine.name)} ({html.escape(machine.serial_number)})"),
            ("Alarm Type", html.escape(alarm.type.value)),
            ("Severity", f'<span style="color:{color};font-weight:bold">{severity}</span>'),
            ("Message", html.escape(alarm.message)),
            ("Time", time_str),
        ]
        if machine.location:
            rows.insert(1, ("Location", html.escape(machine.location)))

        table = "\n".join(
            f"<tr><td><b>{label}</b></td><td>{value}</td></tr>"
            for label, value in rows
        )

        return (
            "<html><body>"
            f"<h2>{title}</h2>"
            f'<table cellpadding="6" border="1" style="border-collapse:collapse">\n{table}\n</table>'
            "<p>This is an automated message from the fleet telemetry system.</p>"
            "</body></html>"
        )

    @classmethod
    def build(
        cls,
        machine: Machine,
        alarm: Alarm,
        from_email: Optional[str] = None,
        from_name: Optional[str] = None,
    ) -> EmailMessage:
        return EmailMessage(
            to=list(machine.notifications.email_addresses),
            subject=cls.format_subject(machine, alarm),
            html_content=cls.format_alarm(machine, alarm),
            from_email=from_email,
            from_name=from_name,
        )


def html_to_text(content: str, limit: int = 500) -> str:
    """Strip tags, collapse whitespace and truncate for log display."""
    text = re.sub(r"<[^>]*>", "", content)
    text = re.sub(r"\s+", " ", text).strip()
    if len(text) > limit:
        return text[:limit] + "..."
    return text


# ============================================================
# TRANSPORT BASE
# ============================================================

class EmailTransport(ABC):
    """
    Base class for mail providers.

    send() returns on success and raises NotificationDeliveryError
    on any failure.
    """

    name: str = "base"

    def __init__(self, config: Optional[EmailConfig] = None):
        self._config = config or EmailConfig()

    def sender(self, message: EmailMessage) -> Dict[str, str]:
        return {
            "email": message.from_email or self._config.from_email,
            "name": message.from_name or self._config.from_name,
        }

    @abstractmethod
    async def send(self, message: EmailMessage) -> None:
        pass

    async def close(self) -> None:
        return None


# ============================================================
# CONSOLE
# ============================================================

class ConsoleEmailTransport(EmailTransport):
    """
    Logs emails instead of sending them. Always succeeds.
    """

    name = "console"

    def __init__(
        self,
        config: Optional[EmailConfig] = None,
        clock: Optional[ClockProtocol] = None,
    ):
        super().__init__(config)
        self._clock = clock or ClockFactory.get_clock()

    async def send(self, message: EmailMessage) -> None:
        sender = self.sender(message)
        separator = "-" * 70

        logger.info(
            "EMAIL NOTIFICATION (CONSOLE SIMULATION)\n"
            f"{separator}\n"
            f"From: {sender['name']} <{sender['email']}>\n"
            f"To: {', '.join(message.to)}\n"
            f"Subject: {message.subject}\n"
            f"Time: {self._clock.format_iso()}\n"
            f"{separator}\n"
            f"{html_to_text(message.html_content)}\n"
            f"{separator}"
        )


# ============================================================
# SENDGRID
# ============================================================

class SendGridEmailTransport(EmailTransport):
    """
    SendGrid v3 mail/send client.
    """

    name = "sendgrid"

    def __init__(self, config: EmailConfig):
        super().__init__(config)
        self._api_key = config.sendgrid_api_key
        self._url = config.sendgrid_url
        self._session: Optional[aiohttp.ClientSession] = None

        if not self._api_key:
            logger.warning("SendGridEmailTransport NOT configured - check SENDGRID_API_KEY")

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP session."""
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self._config.request_timeout_seconds)
            self._session = aiohttp.ClientSession(timeout=timeout)
        return self._session

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None

    def build_payload(self, message: EmailMessage) -> Dict[str, Any]:
        return {
            "personalizations": [{
                "to": [{"email": address} for address in message.to],
                "subject": message.subject,
            }],
            "from": self.sender(message),
            "content": [{
                "type": "text/html",
                "value": message.html_content,
            }],
        }

    async def send(self, message: EmailMessage) -> None:
        if not self._api_key:
            raise NotificationDeliveryError("SendGrid API key not configured", provider=self.name)

        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }

        try:
            session = await self._get_session()
            async with session.post(self._url, json=self.build_payload(message), headers=headers) as response:
                if 200 <= response.status < 300:
                    return
                body = await response.text()
        except aiohttp.ClientError as e:
            raise NotificationDeliveryError(
                f"SendGrid request failed: {e}", provider=self.name, cause=e
            ) from e
        except asyncio.TimeoutError as e:
            raise NotificationDeliveryError(
                "SendGrid request timed out", provider=self.name, cause=e
            ) from e

        raise NotificationDeliveryError(
            f"SendGrid API error: {response.status} - {body}",
            provider=self.name,
            context={"status": response.status},
        )


# ============================================================
# SMTP
# ============================================================

class SmtpEmailTransport(EmailTransport):
    """
    SMTP relay client.

    smtplib is blocking; each send runs in a worker thread.
    """

    name = "smtp"

    def __init__(self, config: EmailConfig):
        super().__init__(config)
        if not config.smtp_host:
            raise ConfigurationError("SMTP_HOST is required for the smtp provider", config_key="SMTP_HOST")

    def build_mime(self, message: EmailMessage) -> MimeMessage:
        sender = self.sender(message)
        mime = MimeMessage()
        mime["From"] = formataddr((sender["name"], sender["email"]))
        mime["To"] = ", ".join(message.to)
        mime["Subject"] = message.subject
        mime.set_content(html_to_text(message.html_content, limit=10000))
        mime.add_alternative(message.html_content, subtype="html")
        return mime

    def _send_blocking(self, mime: MimeMessage) -> None:
        config = self._config
        with smtplib.SMTP(config.smtp_host, config.smtp_port, timeout=config.request_timeout_seconds) as smtp:
            if config.smtp_use_tls:
                smtp.starttls()
            if config.smtp_username:
                smtp.login(config.smtp_username, config.smtp_password or "")
            smtp.send_message(mime)

    async def send(self, message: EmailMessage) -> None:
        try:
            await asyncio.to_thread(self._send_blocking, self.build_mime(message))
        except (smtplib.SMTPException, OSError) as e:
            raise NotificationDeliveryError(
                f"SMTP delivery failed: {e}", provider=self.name, cause=e
            ) from e


# ============================================================
# FACTORY
# ============================================================

def create_transport(
    config: EmailConfig,
    clock: Optional[ClockProtocol] = None,
) -> EmailTransport:
    """
    Build the transport named by EMAIL_PROVIDER.

    Raises:
        ConfigurationError: Unknown provider
    """
    provider = (config.provider or "console").lower()

    if provider == "console":
        return ConsoleEmailTransport(config, clock=clock)
    if provider == "sendgrid":
        return SendGridEmailTransport(config)
    if provider == "smtp":
        return SmtpEmailTransport(config)

    raise ConfigurationError(
        f"Unknown email provider: {config.provider}",
        config_key="EMAIL_PROVIDER",
        actual_value=config.provider,
    )
