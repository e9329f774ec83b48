"""Outbound email over SMTP.

With no SMTP_HOST configured (development, tests) messages are written to the
log instead of being sent.
"""
import logging
import smtplib
import ssl
from email.message import EmailMessage
from typing import List, Optional, Tuple

from quickpharma.core.config import settings

logger = logging.getLogger(__name__)

# (filename, bytes_content, mime_type)
Attachment = Tuple[str, bytes, str]


def _build_message(
    to_email: str,
    subject: str,
    body: str,
    html: Optional[str] = None,
    attachments: Optional[List[Attachment]] = None,
) -> EmailMessage:
    msg = EmailMessage()
    msg["From"] = settings.SMTP_FROM or settings.SMTP_USER
    msg["To"] = to_email
    msg["Subject"] = subject
    msg.set_content(body)
    if html:
        msg.add_alternative(html, subtype="html")

    for filename, content, mime_type in attachments or []:
        maintype, _, subtype = (mime_type or "application/octet-stream").partition("/")
        if not maintype or not subtype:
            maintype, subtype = "application", "octet-stream"
        msg.add_attachment(content, maintype=maintype, subtype=subtype, filename=filename)

    return msg


def send_email(
    to_email: str,
    subject: str,
    body: str,
    html: Optional[str] = None,
    attachments: Optional[List[Attachment]] = None,
) -> None:
    """Send one message. Raises smtplib/OSError errors to the caller."""
    msg = _build_message(to_email, subject, body, html, attachments)

    if not settings.SMTP_HOST:
        logger.info(f"[email:dry-run] to={to_email} subject={subject!r}")
        return

    with smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT, timeout=30) as server:
        if settings.SMTP_USE_TLS:
            server.starttls(context=ssl.create_default_context())
        if settings.SMTP_USER:
            server.login(settings.SMTP_USER, settings.SMTP_PASSWORD)
        server.send_message(msg)

    logger.info(f"Email sent to {to_email}: {subject!r}")
