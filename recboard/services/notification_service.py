# SPDX-License-Identifier: Apache-2.0
"""Reviewer-assignment email notifications.

When ``smtp_host`` is not configured the mailer runs in log-only mode: the
message is built and logged but not delivered. Delivery failures are
returned to the caller as a result, never raised.
"""
from __future__ import annotations

import html
import logging
import smtplib
from dataclasses import asdict, dataclass
from datetime import datetime
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import make_msgid

from recboard.config import Settings, settings as default_settings
from recboard.models import Protocol, Reviewer

_logger = logging.getLogger("recboard.notifications")

ASSIGNMENT_SUBJECT = "New Protocol Assignment: {code}"

ASSIGNMENT_HTML = """
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
    <h2 style="color: #036635;">New Protocol Assignment</h2>
    <p>Dear {reviewer_name},</p>
    <p>You have been assigned to review the following protocol:</p>
    <p><strong>{code}</strong><br>{title}</p>
    {deadline_line}
    <p><a href="{link}">Open the protocol</a></p>
</div>
"""


@dataclass
class NotificationResult:
    sent: bool
    message_id: str | None = None
    error: str | None = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class EmailMessage:
    to_email: str
    to_name: str | None
    subject: str
    html_body: str


class Mailer:
    """SMTP transport with STARTTLS; log-only when no host is configured."""

    def __init__(self, config: Settings | None = None):
        self.config = config or default_settings

    @property
    def configured(self) -> bool:
        return self.config.email_enabled

    def send(self, message: EmailMessage) -> str:
        """Deliver one message and return its Message-ID."""
        message_id = make_msgid(domain=self.config.smtp_sender.rpartition("@")[2] or None)
        if not self.configured:
            _logger.info("Email (log-only): to=%s subject='%s'", message.to_email, message.subject)
            return message_id
        msg = MIMEMultipart("alternative")
        msg["Subject"] = message.subject
        msg["From"] = self.config.smtp_sender
        msg["To"] = f"{message.to_name} <{message.to_email}>" if message.to_name else message.to_email
        msg["Message-ID"] = message_id
        msg.attach(MIMEText(message.html_body, "html"))
        with smtplib.SMTP(self.config.smtp_host, self.config.smtp_port, timeout=30) as smtp:
            if self.config.smtp_use_tls:
                smtp.starttls()
            if self.config.smtp_user and self.config.smtp_password:
                smtp.login(self.config.smtp_user, self.config.smtp_password)
            smtp.send_message(msg)
        _logger.info("Email sent: to=%s subject='%s'", message.to_email, message.subject)
        return message_id


def protocol_link(protocol_id: str, base_url: str | None = None) -> str:
    base = (base_url or default_settings.app_base_url).rstrip("/")
    return f"{base}/rec/reviewers/protocol/{protocol_id}"


def build_assignment_email(
    reviewer: Reviewer,
    protocol: Protocol,
    deadline: datetime | None = None,
    base_url: str | None = None,
) -> EmailMessage:
    code = protocol.permanent_code or protocol.temporary_code
    deadline_line = (
        f"<p>Please complete your review by <strong>{deadline:%B %d, %Y}</strong>.</p>" if deadline else ""
    )
    body = ASSIGNMENT_HTML.format(
        reviewer_name=html.escape(reviewer.name or "Reviewer"),
        code=html.escape(code),
        title=html.escape(protocol.title),
        deadline_line=deadline_line,
        link=protocol_link(protocol.id, base_url),
    )
    return EmailMessage(
        to_email=reviewer.email,
        to_name=reviewer.name or None,
        subject=ASSIGNMENT_SUBJECT.format(code=code),
        html_body=body,
    )


def notify_reviewer_assignment(
    mailer: Mailer,
    reviewer: Reviewer,
    protocol: Protocol,
    deadline: datetime | None = None,
) -> NotificationResult:
    """Send the assignment email. Failures come back in the result."""
    if not reviewer.email:
        _logger.warning("Reviewer %s has no email; assignment on %s not notified", reviewer.id, protocol.id)
        return NotificationResult(sent=False, error="Reviewer has no email address")
    message = build_assignment_email(reviewer, protocol, deadline, mailer.config.app_base_url)
    try:
        message_id = mailer.send(message)
    except (smtplib.SMTPException, OSError) as exc:
        _logger.warning("Assignment email to %s failed: %s", reviewer.email, exc)
        return NotificationResult(sent=False, error=str(exc)[:500])
    return NotificationResult(sent=True, message_id=message_id)


_default_mailer: Mailer | None = None


def get_mailer() -> Mailer:
    global _default_mailer
    if _default_mailer is None:
        _default_mailer = Mailer()
    return _default_mailer
