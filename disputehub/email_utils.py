"""
Email Utilities
===============

Email sending for case notifications.
SMTP when configured in Settings, log-only otherwise.
"""

import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional

from .config import Settings, get_settings
from .db.models import NotificationType

logger = logging.getLogger(__name__)


# Subject + first line of the body, per notification type
EMAIL_TEMPLATES = {
    NotificationType.DOCUMENT_READY: (
        "Your DisputeHub documents are ready",
        'Your documents for "{title}" are ready.',
    ),
    NotificationType.DOCUMENT_SENT: (
        "Document marked as sent",
        'Your document for "{title}" has been marked as sent.',
    ),
    NotificationType.DEADLINE_APPROACHING: (
        "Deadline approaching for your case",
        'You have {days} days left to receive a response for "{title}".',
    ),
    NotificationType.DEADLINE_MISSED: (
        "Response deadline missed",
        'No response was received within the deadline for "{title}".',
    ),
    NotificationType.FOLLOW_UP_GENERATED: (
        "Follow-up letter generated",
        'A follow-up letter has been generated automatically for "{title}".',
    ),
    NotificationType.CASE_CLOSED: (
        "Case closed",
        'Your case "{title}" has been closed.',
    ),
}


def is_email_configured(settings: Optional[Settings] = None) -> bool:
    settings = settings or get_settings()
    return bool(settings.smtp_host and settings.smtp_user and settings.smtp_password)


def _build_message(sender: str, to_email: str, subject: str, html_body: str, text_body: Optional[str]) -> MIMEMultipart:
    msg = MIMEMultipart("alternative")
    msg["Subject"] = subject
    msg["From"] = sender
    msg["To"] = to_email
    if text_body:
        msg.attach(MIMEText(text_body, "plain", "utf-8"))
    msg.attach(MIMEText(html_body, "html", "utf-8"))
    return msg


def send_email(
    to_email: str,
    subject: str,
    html_body: str,
    text_body: Optional[str] = None,
    settings: Optional[Settings] = None,
) -> bool:
    """
    Send one email over SMTP.

    Without SMTP settings the email is only logged and counts as sent.
    SMTP failures are logged and reported as False.
    """
    settings = settings or get_settings()

    if not is_email_configured(settings):
        logger.info(f"[DEV MODE] Email to {to_email}: {subject}")
        logger.debug(f"[DEV MODE] {text_body or html_body[:200]}")
        return True

    msg = _build_message(settings.smtp_from, to_email, subject, html_body, text_body)
    try:
        with smtplib.SMTP(settings.smtp_host, settings.smtp_port) as server:
            if settings.smtp_use_tls:
                server.starttls()
            server.login(settings.smtp_user, settings.smtp_password)
            server.sendmail(settings.smtp_from, to_email, msg.as_string())
    except (smtplib.SMTPException, OSError) as e:
        logger.error(f"[Email] Failed to send '{subject}' to {to_email}: {e}")
        return False

    logger.info(f"[Email] Sent '{subject}' to {to_email}")
    return True


def send_case_notification_email(
    to_email: str,
    case_id: str,
    case_title: str,
    notification_type: NotificationType,
    days_remaining: Optional[int] = None,
) -> bool:
    """
    Send a factual case-status email.

    Args:
        to_email: Recipient email address
        case_id: Dispute ID (used for the case link)
        case_title: Dispute title shown in the message
        notification_type: Which template to use
        days_remaining: Only used by DEADLINE_APPROACHING

    Returns:
        True if sent (or logged in dev mode), False otherwise
    """
    template = EMAIL_TEMPLATES.get(notification_type)
    if template is None:
        logger.error(f"Unknown email template type: {notification_type}")
        return False

    case_link = f"{get_settings().app_url.rstrip('/')}/disputes/{case_id}/case"
    subject, line = template
    message = line.format(title=case_title, days=days_remaining or 3)

    html_body = f"""
    <!DOCTYPE html>
    <html lang="en">
    <head>
        <meta charset="UTF-8">
        <style>
            body {{ font-family: Arial, sans-serif; }}
            .container {{ max-width: 600px; margin: 0 auto; padding: 20px; }}
            .content {{ background: #f8f9fa; padding: 30px; border-radius: 10px; }}
            .button {{ display: inline-block; background: #4F46E5; color: white; padding: 12px 24px; text-decoration: none; border-radius: 8px; font-weight: bold; margin: 16px 0; }}
            .footer {{ text-align: center; color: #666; font-size: 12px; margin-top: 20px; }}
        </style>
    </head>
    <body>
        <div class="container">
            <div class="content">
                <p>{message}</p>
                <a href="{case_link}" class="button">View case</a>
            </div>
            <div class="footer">
                <p>DisputeHub</p>
                <p>This is an automated message. Please do not reply directly to this email.</p>
            </div>
        </div>
    </body>
    </html>
    """

    text_body = f"""
{message}

View case: {case_link}

---
DisputeHub
"""

    return send_email(
        to_email=to_email,
        subject=subject,
        html_body=html_body,
        text_body=text_body
    )
