"""
Notification Service
====================

System-only creation and reading of in-app notifications.
Creation is deduplicated on (case_id, type) within a time window.
"""

import logging
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy.orm import Session

from ..config import get_settings
from ..db.models import Notification, NotificationType

logger = logging.getLogger(__name__)


def create_notification(
    db: Session,
    user_id: str,
    case_id: Optional[str],
    notification_type: NotificationType,
    message: str,
    dedup_minutes: Optional[int] = None,
    now: Optional[datetime] = None,
) -> Notification:
    """
    Create a notification unless one with the same case and type exists
    inside the dedup window, in which case the existing row is returned.
    """
    if dedup_minutes is None:
        dedup_minutes = get_settings().notification_dedup_minutes
    now = now or datetime.utcnow()
    window_start = now - timedelta(minutes=dedup_minutes)

    existing = db.query(Notification).filter(
        Notification.case_id == case_id,
        Notification.type == notification_type,
        Notification.created_at >= window_start,
    ).first()
    if existing:
        logger.debug(f"[Notifications] Duplicate {notification_type.value} for case {case_id} skipped")
        return existing

    notification = Notification(
        user_id=user_id,
        case_id=case_id,
        type=notification_type,
        message=message,
        read=False,
        created_at=now,
    )
    db.add(notification)
    db.flush()
    return notification


def mark_notification_as_read(db: Session, notification_id: str, user_id: str) -> bool:
    """Mark one of the user's notifications read. False if not found."""
    notification = db.query(Notification).filter(
        Notification.id == notification_id,
        Notification.user_id == user_id,
    ).first()
    if not notification:
        return False
    notification.read = True
    db.flush()
    return True


def mark_all_notifications_as_read(db: Session, user_id: str) -> int:
    count = db.query(Notification).filter(
        Notification.user_id == user_id,
        Notification.read == False,  # noqa: E712
    ).update({Notification.read: True}, synchronize_session=False)
    db.flush()
    return count


def get_unread_notification_count(db: Session, user_id: str) -> int:
    return db.query(Notification).filter(
        Notification.user_id == user_id,
        Notification.read == False,  # noqa: E712
    ).count()


def get_user_notifications(db: Session, user_id: str, limit: int = 50) -> List[Notification]:
    return db.query(Notification).filter(
        Notification.user_id == user_id,
    ).order_by(Notification.created_at.desc()).limit(limit).all()


def notification_to_dict(notification: Notification) -> dict:
    return {
        "id": notification.id,
        "case_id": notification.case_id,
        "type": notification.type.value,
        "message": notification.message,
        "read": notification.read,
        "created_at": notification.created_at.isoformat() if notification.created_at else None,
    }
