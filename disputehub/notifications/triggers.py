"""
Notification Triggers
=====================

Maps system events to in-app notifications and emails.
"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from ..db.models import CaseEventType, Dispute, NotificationType
from ..email_utils import send_case_notification_email
from .service import create_notification

logger = logging.getLogger(__name__)


NOTIFICATION_MESSAGES = {
    NotificationType.DOCUMENT_READY: "Your documents are ready.",
    NotificationType.DOCUMENT_SENT: "Your document has been marked as sent.",
    NotificationType.DEADLINE_APPROACHING: "You have {days} days left to receive a response.",
    NotificationType.DEADLINE_MISSED: "No response was received within the deadline.",
    NotificationType.FOLLOW_UP_GENERATED: "A follow-up letter has been generated automatically.",
    NotificationType.CASE_CLOSED: "This case has been closed.",
}

# Timeline events that notify the case owner
EVENT_NOTIFICATIONS = {
    CaseEventType.DOCUMENT_SENT: NotificationType.DOCUMENT_SENT,
    CaseEventType.DEADLINE_MISSED: NotificationType.DEADLINE_MISSED,
    CaseEventType.FOLLOW_UP_GENERATED: NotificationType.FOLLOW_UP_GENERATED,
    CaseEventType.CASE_CLOSED: NotificationType.CASE_CLOSED,
}


def notify_case_owner(
    db: Session,
    case: Dispute,
    notification_type: NotificationType,
    days_remaining: Optional[int] = None,
):
    """Create the in-app notification and send the matching email"""
    message = NOTIFICATION_MESSAGES[notification_type].format(days=days_remaining)
    notification = create_notification(db, case.user_id, case.id, notification_type, message)

    if case.user and case.user.email:
        send_case_notification_email(
            to_email=case.user.email,
            case_id=case.id,
            case_title=case.title,
            notification_type=notification_type,
            days_remaining=days_remaining,
        )
    return notification


def notify_document_ready(db: Session, case: Dispute):
    return notify_case_owner(db, case, NotificationType.DOCUMENT_READY)


def notify_deadline_approaching(db: Session, case: Dispute, days_remaining: int):
    return notify_case_owner(db, case, NotificationType.DEADLINE_APPROACHING, days_remaining)


def dispatch_event_notifications(db: Session, case: Dispute, event_type: CaseEventType):
    """Notify the case owner if this event type has a notification"""
    notification_type = EVENT_NOTIFICATIONS.get(event_type)
    if notification_type is None:
        return None
    logger.info(f"[Notifications] {event_type.value} -> {notification_type.value} for case {case.id}")
    return notify_case_owner(db, case, notification_type)
