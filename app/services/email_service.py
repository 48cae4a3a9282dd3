"""
Outbound email for marketplace notifications.

Every message is recorded as an EmailLog row before delivery is attempted.
Without MAIL_SERVER the row is marked sent and nothing leaves the process,
which is how development and test runs behave.

Configuration keys (see app.config):
    MAIL_SERVER, MAIL_PORT, MAIL_USE_TLS, MAIL_USERNAME,
    MAIL_PASSWORD, MAIL_DEFAULT_SENDER
"""

from __future__ import annotations

import logging
import smtplib
from email.message import EmailMessage
from email.utils import formataddr
from typing import Any

from flask import current_app

from app.models import db
from app.models.scheduling import EmailLog
from app.utils.helpers import utcnow

logger = logging.getLogger(__name__)

_FOOTER = "Manage your notification preferences in your account settings."

# Each template has a subject, a plain-text body and the HTML fragment placed
# inside _HTML_WRAPPER. Placeholders are str.format fields.
_TEMPLATES: dict[str, dict[str, str]] = {
    "notification": {
        "subject": "[Marketplace] {title}",
        "text": "{title}\n\n{message}\n",
        "html": '<h3 style="margin:0 0 8px;color:#1e293b">{title}</h3>'
                '<p style="color:#64748b;line-height:1.6">{message}</p>',
    },
    "problem_refunded": {
        "subject": "[Marketplace] {refund_amount} tokens refunded for problem #{problem_id}",
        "text": "Your tokens have been refunded.\n\n{message}\n\nRefunded: {refund_amount} tokens\n",
        "html": '<h3 style="margin:0 0 8px;color:#1e293b">Your tokens have been refunded</h3>'
                '<p style="color:#64748b;line-height:1.6">{message}</p>'
                '<p style="color:#1e293b">Refunded: <strong>{refund_amount}</strong> tokens</p>',
    },
}

_HTML_WRAPPER = (
    '<div style="font-family:Arial,sans-serif;max-width:600px;margin:0 auto">'
    '<div style="background:#1e293b;color:#fff;padding:16px 24px">'
    '<h2 style="margin:0;font-size:18px">Consultation Marketplace</h2></div>'
    '<div style="background:#f8fafc;padding:24px;border:1px solid #e2e8f0">{content}</div>'
    '<p style="color:#94a3b8;font-size:12px;text-align:center">' + _FOOTER + "</p></div>"
)


class _Placeholders(dict):
    def __missing__(self, key):
        return "{" + key + "}"


def render(template_name: str, context: dict[str, Any]) -> tuple[str, str, str] | None:
    """Return (subject, text, html) for a template, or None if it is unknown.

    Missing context keys are left in the output as ``{key}``.
    """
    template = _TEMPLATES.get(template_name)
    if template is None:
        return None
    values = _Placeholders(context)
    subject = template["subject"].format_map(values)
    text = template["text"].format_map(values) + "\n" + _FOOTER
    html = _HTML_WRAPPER.format(content=template["html"].format_map(values))
    return subject, text, html


class EmailService:
    """Sends email and keeps the EmailLog delivery record."""

    @staticmethod
    def is_configured() -> bool:
        return bool(current_app.config.get("MAIL_SERVER"))

    @classmethod
    def send(
        cls,
        *,
        to_email: str,
        subject: str,
        html_body: str,
        text_body: str | None = None,
        to_name: str | None = None,
        template_name: str | None = None,
        notification_type: str = "system",
        notification_id: int | None = None,
        user_id: int | None = None,
    ) -> EmailLog:
        """Record and deliver one email. Flushes only; the caller commits."""
        log = EmailLog(
            recipient_email=to_email,
            recipient_name=to_name,
            subject=subject,
            template_name=template_name,
            notification_type=notification_type,
            notification_id=notification_id,
            user_id=user_id,
            status="queued",
        )
        db.session.add(log)
        db.session.flush()

        if not cls.is_configured():
            logger.info("Email not sent (no MAIL_SERVER): to=%s subject=%r", to_email, subject)
            log.status, log.sent_at = "sent", utcnow()
            return log

        message = EmailMessage()
        message["Subject"] = subject
        message["From"] = current_app.config.get("MAIL_DEFAULT_SENDER") or "noreply@localhost"
        message["To"] = formataddr((to_name, to_email)) if to_name else to_email
        message.set_content(text_body or subject)
        message.add_alternative(html_body, subtype="html")

        try:
            cls._deliver(message)
        except (smtplib.SMTPException, OSError) as exc:
            log.status = "failed"
            log.error_message = str(exc)[:1000]
            logger.error("Email delivery failed: to=%s error=%s", to_email, exc)
        else:
            log.status, log.sent_at = "sent", utcnow()
            logger.info("Email sent: to=%s subject=%r", to_email, subject)
        return log

    @classmethod
    def send_from_template(
        cls,
        *,
        to_email: str,
        template_name: str,
        context: dict[str, Any],
        to_name: str | None = None,
        notification_type: str = "system",
        notification_id: int | None = None,
        user_id: int | None = None,
    ) -> EmailLog | None:
        rendered = render(template_name, context)
        if rendered is None:
            logger.warning("Unknown email template: %s", template_name)
            return None
        subject, text, html = rendered
        return cls.send(
            to_email=to_email,
            to_name=to_name,
            subject=subject,
            text_body=text,
            html_body=html,
            template_name=template_name,
            notification_type=notification_type,
            notification_id=notification_id,
            user_id=user_id,
        )

    @staticmethod
    def _deliver(message: EmailMessage) -> None:
        cfg = current_app.config
        with smtplib.SMTP(cfg["MAIL_SERVER"], cfg.get("MAIL_PORT", 587), timeout=30) as smtp:
            if cfg.get("MAIL_USE_TLS", True):
                smtp.starttls()
            if cfg.get("MAIL_USERNAME") and cfg.get("MAIL_PASSWORD"):
                smtp.login(cfg["MAIL_USERNAME"], cfg["MAIL_PASSWORD"])
            smtp.send_message(message)
