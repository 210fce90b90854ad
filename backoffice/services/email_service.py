"""
Notification sender.

Plain-text email over SMTP (Google Workspace by default), optionally with
one attachment (the invoice PDF). Sending is synchronous: callers change
state only after delivery succeeded, so failures surface as DeliveryError.

Usage:
    from backoffice.services.email_service import send_email

    send_email(
        to="client@example.com",
        subject="Invoice #42",
        body="Hi Jane, ...",
        attachment=("invoice-42.pdf", pdf_bytes, "application/pdf"),
    )
"""

import logging
import smtplib
from email.mime.application import MIMEApplication
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from flask import current_app

from backoffice.errors import DeliveryError

logger = logging.getLogger(__name__)


def _build_message(config, to, subject, body, attachment=None):
    from_name = config.get("MAIL_FROM_NAME", "BackOffice Autopilot")
    from_email = config.get("MAIL_FROM_ADDRESS") or config.get("MAIL_USERNAME", "")

    msg = MIMEMultipart()
    msg["Subject"] = subject
    msg["From"] = f"{from_name} <{from_email}>"
    msg["To"] = to if isinstance(to, str) else ", ".join(to)
    msg.attach(MIMEText(body, "plain", "utf-8"))

    if attachment:
        filename, content, mimetype = attachment
        subtype = mimetype.split("/", 1)[-1] if mimetype else "octet-stream"
        part = MIMEApplication(content, _subtype=subtype)
        part.add_header("Content-Disposition", "attachment", filename=filename)
        msg.attach(part)

    return msg


def _send_smtp(config, msg):
    host = config.get("MAIL_SMTP_HOST", "smtp.gmail.com")
    port = config.get("MAIL_SMTP_PORT", 587)
    username = config.get("MAIL_USERNAME")
    password = config.get("MAIL_PASSWORD")

    if not username or not password:
        logger.warning("Email not sent — MAIL_USERNAME or MAIL_PASSWORD not configured.")
        raise DeliveryError("Email is not configured.", code="email_not_configured")

    try:
        with smtplib.SMTP(host, port, timeout=30) as server:
            server.ehlo()
            server.starttls()
            server.ehlo()
            server.login(username, password)
            server.send_message(msg)
    except (smtplib.SMTPException, OSError) as e:
        logger.error(f"Failed to send email to {msg['To']}: {e}")
        raise DeliveryError(f"Failed to send email: {e}")

    logger.info(f"Email sent to {msg['To']} — {msg['Subject']}")


def send_email(to, subject, body, attachment=None):
    """Send a plain-text email and block until the SMTP server accepts it.

    Args:
        to:          Recipient address (str or list).
        subject:     Subject line.
        body:        Plain-text body.
        attachment:  Optional (filename, bytes, mimetype) tuple.

    Raises:
        DeliveryError: not configured, or the SMTP exchange failed.
    """
    if not to:
        raise DeliveryError("No recipient address.", code="missing_email")

    config = current_app.config
    msg = _build_message(config, to, subject, body, attachment)
    _send_smtp(config, msg)
