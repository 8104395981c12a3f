"""
Deadline Engine
===============

Response deadlines after a document is sent.

- mark_document_as_sent: COMPLETED document -> SENT, case waits for a reply
- check_missed_deadlines: waiting cases past their deadline -> DEADLINE_MISSED
- check_approaching_deadlines: warn owners whose deadline is close
- generate_follow_up_letter: firmer letter once a deadline is missed
- close_case: terminal CLOSED status

Every function flushes; the route handler or cron caller commits.
"""

import logging
import math
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy.orm import Session

from .config import Settings, get_settings
from .db.models import (
    CaseEventType, CaseStrategy, Dispute, DocumentPlan, DocumentStatus, GeneratedDocument, LifecycleStatus,
)
from .documents.generator import (
    FOLLOW_UP_LETTER, DocumentGenerator, case_evidence_refs, generate_document, get_document_generator,
)
from .errors import CaseNotFoundError, DocumentGenerationError, DocumentNotFoundError, DocumentStateError
from .notifications.triggers import notify_deadline_approaching
from .timeline import create_timeline_event

logger = logging.getLogger(__name__)


def mark_document_as_sent(
    db: Session,
    document_id: str,
    now: Optional[datetime] = None,
    settings: Optional[Settings] = None,
) -> GeneratedDocument:
    """
    Record that the user sent a document and start the response deadline.

    Raises:
        DocumentNotFoundError: no such document
        DocumentStateError: document is not COMPLETED
    """
    settings = settings or get_settings()
    now = now or datetime.utcnow()

    document = db.query(GeneratedDocument).filter(GeneratedDocument.id == document_id).first()
    if not document:
        raise DocumentNotFoundError(document_id)
    if document.status != DocumentStatus.COMPLETED:
        raise DocumentStateError(f"Only completed documents can be sent (status: {document.status.value})")

    case = document.plan.case
    deadline = now + timedelta(days=settings.response_deadline_days)

    document.status = DocumentStatus.SENT
    case.lifecycle_status = LifecycleStatus.AWAITING_RESPONSE
    case.waiting_until = deadline
    db.flush()

    create_timeline_event(
        db, case.id, CaseEventType.DOCUMENT_SENT,
        f"Document '{document.type}' was sent",
        related_document_id=document.id,
        occurred_at=now,
    )
    create_timeline_event(
        db, case.id, CaseEventType.DEADLINE_SET,
        f"Response due by {deadline.strftime('%d %B %Y')}",
        related_document_id=document.id,
        occurred_at=now,
    )
    logger.info(f"[Deadlines] Case {case.id} awaiting response until {deadline.isoformat()}")
    return document


def check_missed_deadlines(db: Session, now: Optional[datetime] = None) -> List[str]:
    """Move every waiting case past its deadline to DEADLINE_MISSED; returns their IDs"""
    now = now or datetime.utcnow()

    cases = db.query(Dispute).filter(
        Dispute.lifecycle_status == LifecycleStatus.AWAITING_RESPONSE,
        Dispute.waiting_until.isnot(None),
        Dispute.waiting_until < now,
    ).all()

    missed = []
    for case in cases:
        case.lifecycle_status = LifecycleStatus.DEADLINE_MISSED
        db.flush()
        create_timeline_event(db, case.id, CaseEventType.DEADLINE_MISSED, "Response deadline missed", occurred_at=now)
        missed.append(case.id)

    if missed:
        logger.info(f"[Deadlines] {len(missed)} cases missed their response deadline")
    return missed


def check_approaching_deadlines(
    db: Session,
    now: Optional[datetime] = None,
    settings: Optional[Settings] = None,
) -> int:
    """Notify owners of waiting cases whose deadline falls inside the warning window"""
    settings = settings or get_settings()
    now = now or datetime.utcnow()
    horizon = now + timedelta(days=settings.deadline_warning_days)

    cases = db.query(Dispute).filter(
        Dispute.lifecycle_status == LifecycleStatus.AWAITING_RESPONSE,
        Dispute.waiting_until >= now,
        Dispute.waiting_until <= horizon,
    ).all()

    notified = 0
    for case in cases:
        days_remaining = math.ceil((case.waiting_until - now).total_seconds() / 86400)
        try:
            with db.begin_nested():
                notify_deadline_approaching(db, case, days_remaining)
            notified += 1
        except Exception as e:
            logger.error(f"[Deadlines] Failed to notify approaching deadline for case {case.id}: {e}")

    return notified


def generate_follow_up_letter(
    db: Session,
    case_id: str,
    generator: Optional[DocumentGenerator] = None,
) -> GeneratedDocument:
    """
    Add a follow-up letter to the plan of a case whose deadline was missed
    and draft it. Only one follow-up is created per case; a failed draft
    stays FAILED and goes through the normal retry path.

    Raises:
        CaseNotFoundError: no such case
        DocumentStateError: case has not missed its deadline, or has no plan
    """
    case = db.query(Dispute).filter(Dispute.id == case_id).first()
    if not case:
        raise CaseNotFoundError(case_id)
    if case.lifecycle_status != LifecycleStatus.DEADLINE_MISSED:
        raise DocumentStateError(f"Case {case_id} has not missed a deadline")

    plan = db.query(DocumentPlan).filter(DocumentPlan.case_id == case_id).first()
    strategy = db.query(CaseStrategy).filter(CaseStrategy.case_id == case_id).first()
    if not plan or not strategy:
        raise DocumentStateError(f"Case {case_id} has no document plan")

    existing = [d for d in plan.documents if d.type == FOLLOW_UP_LETTER]
    if existing:
        return existing[0]

    document = GeneratedDocument(
        type=FOLLOW_UP_LETTER,
        title="Follow-up Letter",
        description="Firmer letter after the response deadline passed",
        order=max((d.order for d in plan.documents), default=0) + 1,
        required=True,
        status=DocumentStatus.PENDING,
        retry_count=0,
    )
    plan.documents.append(document)
    db.flush()

    try:
        generate_document(
            db, document, strategy, len(plan.documents),
            generator or get_document_generator(),
            case_evidence_refs(db, case_id),
        )
    except DocumentGenerationError:
        logger.warning(f"[Deadlines] Follow-up letter for case {case_id} failed to generate")
        return document

    create_timeline_event(
        db, case_id, CaseEventType.FOLLOW_UP_GENERATED,
        "Follow-up letter generated",
        related_document_id=document.id,
    )
    return document


def close_case(db: Session, case_id: str) -> Dispute:
    """Close a case; closing an already closed case is a no-op"""
    case = db.query(Dispute).filter(Dispute.id == case_id).first()
    if not case:
        raise CaseNotFoundError(case_id)
    if case.lifecycle_status == LifecycleStatus.CLOSED:
        return case

    case.lifecycle_status = LifecycleStatus.CLOSED
    case.waiting_until = None
    db.flush()
    create_timeline_event(db, case.id, CaseEventType.CASE_CLOSED, "Case closed")
    return case
