"""
Notifications Package
=====================

In-app notifications (deduplicated) and their email fan-out.
"""

from .service import (
    create_notification,
    mark_notification_as_read,
    mark_all_notifications_as_read,
    get_unread_notification_count,
    get_user_notifications,
    notification_to_dict,
)
from .triggers import (
    NOTIFICATION_MESSAGES,
    notify_case_owner,
    notify_document_ready,
    notify_deadline_approaching,
    dispatch_event_notifications,
)

__all__ = [
    "create_notification",
    "mark_notification_as_read",
    "mark_all_notifications_as_read",
    "get_unread_notification_count",
    "get_user_notifications",
    "notification_to_dict",
    "NOTIFICATION_MESSAGES",
    "notify_case_owner",
    "notify_document_ready",
    "notify_deadline_approaching",
    "dispatch_event_notifications",
]
