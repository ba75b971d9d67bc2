"""
Tests for email notifications.

============================================================
PURPOSE
============================================================
- Per-machine opt-in gating
- Formatting of alarm emails
- Provider failure: console fallback + dead letter + retry
- Transport selection from configuration

============================================================
"""

import logging

import pytest

from core.config import EmailConfig
from core.exceptions import ConfigurationError, NotificationDeliveryError
from fleet.models import Machine, NotificationSettings
from monitoring.models import Alarm, AlarmCode, AlarmSeverity, AlarmType, EmailMessage
from monitoring.notifications.dispatcher import NotificationDispatcher
from monitoring.notifications.mail import (
    ConsoleEmailTransport,
    EmailFormatter,
    SendGridEmailTransport,
    SmtpEmailTransport,
    create_transport,
    html_to_text,
)


def make_machine(**settings) -> Machine:
    settings.setdefault("email_addresses", ["ops@example.com", "lead@example.com"])
    return Machine(
        id="m-1",
        name="Lobby Snack",
        serial_number="SN-001",
        notifications=NotificationSettings(**settings),
    )


def make_alarm(clock, alarm_type=AlarmType.OFFLINE, code=AlarmCode.OFFLINE) -> Alarm:
    return Alarm(
        id="a-1",
        machine_id="m-1",
        type=alarm_type,
        code=code,
        severity=AlarmSeverity.HIGH,
        message="Lobby Snack offline for 6 minutes",
        timestamp=clock.now(),
    )


# ============================================================
# GATING
# ============================================================

class TestNotificationGating:
    """Tests for per-machine opt-in."""

    @pytest.mark.asyncio
    async def test_sends_to_all_recipients(self, dispatcher, transport, clock):
        sent = await dispatcher.notify(make_machine(), make_alarm(clock))

        assert sent
        assert transport.sent[0].to == ["ops@example.com", "lead@example.com"]

    @pytest.mark.asyncio
    async def test_no_recipients(self, dispatcher, transport, clock):
        sent = await dispatcher.notify(make_machine(email_addresses=[]), make_alarm(clock))

        assert not sent
        assert transport.sent == []

    @pytest.mark.asyncio
    async def test_offline_alerts_disabled(self, dispatcher, transport, clock):
        machine = make_machine(enable_offline_alerts=False)

        assert not await dispatcher.notify(machine, make_alarm(clock))
        assert transport.sent == []

    @pytest.mark.asyncio
    async def test_error_alerts_disabled(self, dispatcher, transport, clock):
        machine = make_machine(enable_error_alerts=False)
        alarm = make_alarm(clock, AlarmType.ERROR, AlarmCode.MACHINE_ERROR)

        assert not await dispatcher.notify(machine, alarm)
        assert transport.sent == []

    @pytest.mark.asyncio
    async def test_error_alerts_disabled_still_sends_offline(self, dispatcher, transport, clock):
        machine = make_machine(enable_error_alerts=False)

        assert await dispatcher.notify(machine, make_alarm(clock))

    @pytest.mark.asyncio
    @pytest.mark.parametrize("alarm_type,code", [
        (AlarmType.MAINTENANCE, AlarmCode.CLEANING_OVERDUE),
        (AlarmType.MODE_CHANGE, AlarmCode.MODE_CHANGE),
    ])
    async def test_other_types_ignore_toggles(self, dispatcher, transport, clock, alarm_type, code):
        machine = make_machine(enable_offline_alerts=False, enable_error_alerts=False)

        assert await dispatcher.notify(machine, make_alarm(clock, alarm_type, code))
        assert len(transport.sent) == 1


# ============================================================
# FORMATTING
# ============================================================

class TestEmailFormatter:
    """Tests for alarm email rendering."""

    def test_subject(self, clock):
        subject = EmailFormatter.format_subject(make_machine(), make_alarm(clock))
        assert subject == "Lobby Snack - Machine Offline"

    @pytest.mark.parametrize("alarm_type,title", [
        (AlarmType.OFFLINE, "Machine Offline"),
        (AlarmType.ERROR, "Machine Error"),
        (AlarmType.MAINTENANCE, "Maintenance Required"),
        (AlarmType.MODE_CHANGE, "Operating Mode Change"),
    ])
    def test_titles(self, alarm_type, title):
        assert EmailFormatter.title_for(alarm_type) == title

    def test_body(self, clock):
        body = EmailFormatter.format_alarm(make_machine(), make_alarm(clock))

        assert "Lobby Snack (SN-001)" in body
        assert "HIGH" in body
        assert "Lobby Snack offline for 6 minutes" in body
        assert "2024-06-01 12:00:00 UTC" in body
        assert "Location" not in body

    def test_body_with_location_and_escaping(self, clock):
        machine = make_machine()
        machine.location = "Hall <B>"

        body = EmailFormatter.format_alarm(machine, make_alarm(clock))

        assert "Hall &lt;B&gt;" in body

    def test_build_uses_sender_defaults(self, clock):
        message = EmailFormatter.build(make_machine(), make_alarm(clock), "noreply@example.com", "Fleet")

        assert message.from_email == "noreply@example.com"
        assert message.from_name == "Fleet"
        assert message.subject == "Lobby Snack - Machine Offline"

    def test_html_to_text(self):
        assert html_to_text("<p>Hello   <b>world</b></p>") == "Hello world"
        assert html_to_text("x" * 20, limit=5) == "xxxxx..."


# ============================================================
# FAILURE HANDLING
# ============================================================

class TestDeliveryFailure:
    """Tests for provider failures."""

    @pytest.fixture
    def failing_dispatcher(self, failing_transport, store, config, clock):
        return NotificationDispatcher(failing_transport, store=store, config=config.email, clock=clock)

    @pytest.mark.asyncio
    async def test_failure_returns_false_and_records_dead_letter(self, failing_dispatcher, store, clock):
        sent = await failing_dispatcher.notify(make_machine(), make_alarm(clock))

        assert not sent
        letters = await store.list_dead_letters()
        assert len(letters) == 1
        assert letters[0].alarm_id == "a-1"
        assert letters[0].machine_id == "m-1"
        assert letters[0].provider == "recording"
        assert "provider unavailable" in letters[0].error

    @pytest.mark.asyncio
    async def test_failure_replays_to_console(self, failing_dispatcher, clock, caplog):
        with caplog.at_level(logging.INFO):
            await failing_dispatcher.notify(make_machine(), make_alarm(clock))

        assert "CONSOLE SIMULATION" in caplog.text
        assert "Lobby Snack - Machine Offline" in caplog.text

    @pytest.mark.asyncio
    async def test_unexpected_exception_is_contained(self, store, clock):
        class ExplodingTransport(ConsoleEmailTransport):
            name = "exploding"

            async def send(self, message):
                raise RuntimeError("socket closed")

        dispatcher = NotificationDispatcher(ExplodingTransport(), store=store, clock=clock)

        assert not await dispatcher.send_raw(["ops@example.com"], "Hi", "<p>Hi</p>")
        letters = await store.list_dead_letters()
        assert "RuntimeError" in letters[0].error

    @pytest.mark.asyncio
    async def test_retry_dead_letters(self, failing_dispatcher, failing_transport, store, clock):
        await failing_dispatcher.notify(make_machine(), make_alarm(clock))

        assert await failing_dispatcher.retry_dead_letters() == 0

        failing_transport.fail = False
        assert await failing_dispatcher.retry_dead_letters() == 1

        assert failing_transport.sent[0].subject == "Lobby Snack - Machine Offline"
        assert await store.list_dead_letters() == []
        retried = await store.list_dead_letters(include_retried=True)
        assert retried[0].retried
        assert retried[0].retried_at == clock.now()

    @pytest.mark.asyncio
    async def test_no_store_skips_dead_letter(self, failing_transport, clock):
        dispatcher = NotificationDispatcher(failing_transport, clock=clock)

        assert not await dispatcher.send_raw(["ops@example.com"], "Hi", "<p>Hi</p>")
        assert await dispatcher.retry_dead_letters() == 0


class TestSendRaw:
    """Tests for caller-composed emails."""

    @pytest.mark.asyncio
    async def test_send_raw(self, dispatcher, transport):
        sent = await dispatcher.send_raw(["a@example.com"], "Report", "<p>ok</p>", "me@example.com")

        assert sent
        assert transport.sent == [EmailMessage(
            to=["a@example.com"],
            subject="Report",
            html_content="<p>ok</p>",
            from_email="me@example.com",
        )]

    def test_provider_name(self, dispatcher):
        assert dispatcher.provider == "recording"


# ============================================================
# TRANSPORTS
# ============================================================

class TestTransports:
    """Tests for transport construction."""

    def test_console_is_default(self):
        assert isinstance(create_transport(EmailConfig()), ConsoleEmailTransport)

    def test_sendgrid(self):
        transport = create_transport(EmailConfig(provider="sendgrid", sendgrid_api_key="key"))
        assert isinstance(transport, SendGridEmailTransport)

    def test_smtp_requires_host(self):
        with pytest.raises(ConfigurationError):
            create_transport(EmailConfig(provider="smtp"))

    def test_unknown_provider(self):
        with pytest.raises(ConfigurationError):
            create_transport(EmailConfig(provider="pigeon"))

    def test_sendgrid_payload(self):
        transport = SendGridEmailTransport(EmailConfig(sendgrid_api_key="key", from_email="noreply@example.com"))
        message = EmailMessage(to=["a@example.com", "b@example.com"], subject="S", html_content="<p>x</p>")

        payload = transport.build_payload(message)

        assert payload["personalizations"][0]["to"] == [{"email": "a@example.com"}, {"email": "b@example.com"}]
        assert payload["personalizations"][0]["subject"] == "S"
        assert payload["from"]["email"] == "noreply@example.com"
        assert payload["content"] == [{"type": "text/html", "value": "<p>x</p>"}]

    @pytest.mark.asyncio
    async def test_sendgrid_without_key_fails(self):
        transport = SendGridEmailTransport(EmailConfig())

        with pytest.raises(NotificationDeliveryError):
            await transport.send(EmailMessage(to=["a@example.com"], subject="S", html_content="x"))

    def test_smtp_mime(self):
        transport = SmtpEmailTransport(EmailConfig(provider="smtp", smtp_host="mail.example.com"))
        message = EmailMessage(to=["a@example.com"], subject="Alarm", html_content="<p>Hot</p>")

        mime = transport.build_mime(message)

        assert mime["To"] == "a@example.com"
        assert mime["Subject"] == "Alarm"
