"""Utility helpers for sending notification emails via SendGrid."""

from __future__ import annotations

import json
import logging
from html import escape
from typing import Any

from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Mail

from app.config import get_settings

logger = logging.getLogger(__name__)


def email_configured() -> bool:
    """Return ``True`` when SendGrid credentials are available."""

    settings = get_settings()
    return bool(settings.sendgrid_api_key and settings.sendgrid_sender)


def _describe_sendgrid_body(body: Any) -> str | None:
    """Turn a SendGrid error payload into a readable summary."""

    if isinstance(body, bytes):
        try:
            body = body.decode("utf-8")
        except UnicodeDecodeError:
            return None
    if isinstance(body, str):
        body = body.strip()
        if not body:
            return None
        try:
            body = json.loads(body)
        except json.JSONDecodeError:
            return body
    if isinstance(body, dict):
        messages = [
            f"{item['message']} (field: {item['field']})" if item.get("field") else str(item["message"])
            for item in body.get("errors") or []
            if isinstance(item, dict) and item.get("message")
        ]
        if messages:
            return "; ".join(messages)
        return json.dumps(body, default=str)
    if isinstance(body, list) and body:
        return "; ".join(str(item) for item in body)
    return None


def _log_sendgrid_failure(source: Any, *, recipient: str) -> None:
    status_code = getattr(source, "status_code", None)
    details = _describe_sendgrid_body(getattr(source, "body", None))
    if status_code is None and details is None and isinstance(source, Exception):
        logger.exception("Error sending email to %s via SendGrid: %s", recipient, source)
        return
    logger.error(
        "SendGrid rejected email to %s (status %s): %s",
        recipient,
        status_code if status_code is not None else "unknown",
        details or "no details",
    )


def send_email(subject: str, html_content: str, recipient: str) -> bool:
    """Send an email using the configured SendGrid credentials."""

    settings = get_settings()
    if not email_configured():
        logger.info("SendGrid configuration incomplete; skipping email to %s", recipient)
        return False

    message = Mail(
        from_email=settings.sendgrid_sender,
        to_emails=recipient,
        subject=subject,
        html_content=html_content,
    )

    try:
        response = SendGridAPIClient(settings.sendgrid_api_key).send(message)
    except Exception as exc:  # pragma: no cover - network failures depend on environment
        _log_sendgrid_failure(exc, recipient=recipient)
        return False

    status_code = getattr(response, "status_code", None)
    if not isinstance(status_code, int) or not 200 <= status_code < 300:
        _log_sendgrid_failure(response, recipient=recipient)
        return False

    return True


def render_notification_email(
    title: str,
    message: str,
    *,
    recipient_name: str | None = None,
    action_url: str | None = None,
) -> str:
    """Return the HTML body used for notification emails."""

    greeting = f"<p>Hola {escape(recipient_name)},</p>" if recipient_name else "<p>Hola,</p>"
    parts = [greeting, f"<h2>{escape(title)}</h2>", f"<p>{escape(message)}</p>"]
    if action_url:
        parts.append(f'<p><a href="{escape(action_url, quote=True)}">Ver detalles</a></p>')
    parts.append(
        "<p>Recibes este correo porque tienes las notificaciones activadas en tu cuenta.</p>"
    )
    return "".join(parts)


__all__ = ["email_configured", "render_notification_email", "send_email"]
