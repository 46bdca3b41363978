"""Unit tests for the SendGrid email helper and the email delivery channel."""

from __future__ import annotations

import json
import types

import pytest

from app.domain.entities import Notification, User
from app.domain.exceptions import ChannelDeliveryFailure
from app.infrastructure import email as email_module
from app.infrastructure.notifications import EmailChannel


class DummySettings:
    sendgrid_api_key = "SG.fake"
    sendgrid_sender = "sender@example.com"


class UnconfiguredSettings:
    sendgrid_api_key = None
    sendgrid_sender = None


class RecordingClient:
    sent: list = []

    def __init__(self, api_key: str) -> None:
        self.api_key = api_key

    def send(self, message):
        RecordingClient.sent.append(message)
        return types.SimpleNamespace(status_code=202, body=None)


def _notification(**overrides) -> Notification:
    values = {
        "id": 7,
        "recipient_id": 3,
        "type": "general",
        "category": "system",
        "title": "Aviso <importante>",
        "message": "Mensaje & detalles",
    }
    values.update(overrides)
    return Notification(**values)


def test_send_email_without_configuration(monkeypatch: pytest.MonkeyPatch) -> None:
    """When SendGrid settings are missing the helper should exit early."""

    monkeypatch.setattr(email_module, "get_settings", lambda: UnconfiguredSettings())

    assert email_module.send_email("Subject", "<p>Body</p>", "user@example.com") is False


def test_send_email_success(monkeypatch: pytest.MonkeyPatch) -> None:
    """A successful SendGrid response should return ``True``."""

    RecordingClient.sent = []
    monkeypatch.setattr(email_module, "get_settings", lambda: DummySettings())
    monkeypatch.setattr(email_module, "SendGridAPIClient", RecordingClient)

    assert email_module.send_email("Subject", "<p>Body</p>", "user@example.com") is True
    assert len(RecordingClient.sent) == 1


def test_send_email_rejects_non_success_status(monkeypatch: pytest.MonkeyPatch, caplog) -> None:
    class RejectingClient(RecordingClient):
        def send(self, message):
            return types.SimpleNamespace(status_code=400, body=b'{"errors": [{"message": "bad to", "field": "to"}]}')

    monkeypatch.setattr(email_module, "get_settings", lambda: DummySettings())
    monkeypatch.setattr(email_module, "SendGridAPIClient", RejectingClient)

    with caplog.at_level("ERROR"):
        assert email_module.send_email("Subject", "<p>Body</p>", "user@example.com") is False

    assert "status 400" in caplog.text
    assert "bad to (field: to)" in caplog.text


def test_send_email_logs_forbidden_error(monkeypatch: pytest.MonkeyPatch, caplog) -> None:
    """Forbidden responses from SendGrid should surface meaningful log details."""

    class FakeForbiddenError(Exception):
        status_code = 403
        body = json.dumps(
            {"errors": [{"message": "The provided authorization grant is invalid."}]}
        ).encode()

    class FailingClient(RecordingClient):
        def send(self, message):
            raise FakeForbiddenError()

    monkeypatch.setattr(email_module, "get_settings", lambda: DummySettings())
    monkeypatch.setattr(email_module, "SendGridAPIClient", FailingClient)

    with caplog.at_level("ERROR"):
        result = email_module.send_email("Subject", "<p>Body</p>", "user@example.com")

    assert result is False
    assert "status 403" in caplog.text
    assert "authorization grant is invalid" in caplog.text


def test_render_notification_email_escapes_content() -> None:
    html = email_module.render_notification_email(
        "Aviso <b>", "Uno & dos", recipient_name="Ana", action_url="/orders/1?x=1&y=2"
    )

    assert "Hola Ana," in html
    assert "Aviso &lt;b&gt;" in html
    assert "Uno &amp; dos" in html
    assert 'href="/orders/1?x=1&amp;y=2"' in html


@pytest.mark.anyio
async def test_email_channel_sends_rendered_message() -> None:
    calls = []

    def sender(subject: str, html: str, recipient: str) -> bool:
        calls.append((subject, html, recipient))
        return True

    channel = EmailChannel(sender)
    recipient = User(id=3, name="Ana", email="ana@example.com", role="staff")

    outcome = await channel.send(recipient, _notification())

    assert outcome.success is True
    assert calls[0][0] == "Aviso <importante>"
    assert "Mensaje &amp; detalles" in calls[0][1]
    assert calls[0][2] == "ana@example.com"


@pytest.mark.anyio
async def test_email_channel_reports_provider_rejection() -> None:
    channel = EmailChannel(lambda subject, html, recipient: False)
    recipient = User(id=3, name="Ana", email="ana@example.com", role="staff")

    outcome = await channel.send(recipient, _notification())

    assert outcome.success is False
    assert outcome.error == "email provider did not accept the message"


@pytest.mark.anyio
async def test_email_channel_requires_an_address() -> None:
    channel = EmailChannel(lambda subject, html, recipient: True)
    recipient = User(id=3, name="Ana", email="", role="staff")

    with pytest.raises(ChannelDeliveryFailure):
        await channel.send(recipient, _notification())
