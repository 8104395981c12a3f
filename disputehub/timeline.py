"""
Case Timeline
=============

System-owned, append-only event log for case history.

Events are only ever inserted; there is no update or delete path. Writing
an event may notify the case owner. Notification work runs inside a
savepoint, so a failure there is logged and rolled back on its own while
the event row stays in the caller's transaction.
"""

import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from .db.models import CaseEvent, CaseEventType, Dispute
from .notifications.triggers import dispatch_event_notifications, notify_document_ready

logger = logging.getLogger(__name__)


def _case_for_notifications(db: Session, case_id: str) -> Optional[Dispute]:
    return db.query(Dispute).filter(Dispute.id == case_id).first()


def create_timeline_event(
    db: Session,
    case_id: str,
    event_type: CaseEventType,
    description: str,
    related_document_id: Optional[str] = None,
    occurred_at: Optional[datetime] = None,
) -> CaseEvent:
    """
    Append a timeline event (flush only; the caller commits).

    Args:
        db: Session owning the transaction
        case_id: Dispute ID
        event_type: CaseEventType
        description: Human-readable description
        related_document_id: Optional GeneratedDocument ID
        occurred_at: When the event happened (defaults to now)
    """
    event = CaseEvent(
        case_id=case_id,
        type=event_type,
        description=description,
        related_document_id=related_document_id,
        occurred_at=occurred_at or datetime.utcnow(),
    )
    db.add(event)
    db.flush()

    logger.info(f"[Timeline] {event_type.value} for case {case_id}: {description}")

    try:
        with db.begin_nested():
            case = _case_for_notifications(db, case_id)
            if case is not None:
                dispatch_event_notifications(db, case, event_type)
    except Exception as e:
        logger.error(f"[Timeline] Failed to send notification for {event_type.value} on case {case_id}: {e}")

    return event


def create_document_generated_event(
    db: Session,
    case_id: str,
    document_id: str,
    document_type: str,
    success: bool,
) -> CaseEvent:
    """Record a generation outcome; successful documents also notify DOCUMENT_READY"""
    description = (
        f"Document '{document_type}' generated successfully"
        if success
        else f"Document '{document_type}' failed to generate"
    )
    event = create_timeline_event(db, case_id, CaseEventType.DOCUMENT_GENERATED, description, document_id)

    if success:
        try:
            with db.begin_nested():
                case = _case_for_notifications(db, case_id)
                if case is not None:
                    notify_document_ready(db, case)
        except Exception as e:
            logger.error(f"[Timeline] Failed to send document ready notification for case {case_id}: {e}")

    return event


def get_case_timeline(db: Session, case_id: str) -> List[CaseEvent]:
    """Events for a case, oldest first"""
    return db.query(CaseEvent).filter(
        CaseEvent.case_id == case_id,
    ).order_by(CaseEvent.occurred_at.asc(), CaseEvent.created_at.asc()).all()


def event_to_dict(event: CaseEvent) -> dict:
    return {
        "id": event.id,
        "type": event.type.value,
        "description": event.description,
        "related_document_id": event.related_document_id,
        "occurred_at": event.occurred_at.isoformat() if event.occurred_at else None,
        "created_at": event.created_at.isoformat() if event.created_at else None,
    }
