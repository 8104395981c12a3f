"""
Evidence Service
================

Evidence items with permanent per-case index numbers.

Indices start at 1 and come from an atomic increment of the case's
`last_evidence_index` counter, so an index is never reissued after a
deletion and surviving items are never renumbered. Only title,
description and evidence_date can change after upload.
"""

import logging
import os
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from .db.models import CaseEventType, Dispute, EvidenceItem, EvidenceType
from .errors import CaseNotFoundError, EvidenceNotFoundError
from .timeline import create_timeline_event

logger = logging.getLogger(__name__)


IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png", ".gif", ".webp", ".heic"}
DOCUMENT_EXTENSIONS = {".doc", ".docx", ".txt", ".rtf", ".odt", ".eml", ".msg"}

MUTABLE_FIELDS = ("title", "description", "evidence_date")


def infer_evidence_type(file_name: str, content_type: Optional[str] = None) -> EvidenceType:
    """Classify an upload from its MIME type, falling back to the extension"""
    content_type = (content_type or "").lower()
    if content_type.startswith("image/"):
        return EvidenceType.IMAGE
    if content_type == "application/pdf":
        return EvidenceType.PDF

    ext = os.path.splitext(file_name or "")[1].lower()
    if ext in IMAGE_EXTENSIONS:
        return EvidenceType.IMAGE
    if ext == ".pdf":
        return EvidenceType.PDF
    if ext in DOCUMENT_EXTENSIONS:
        return EvidenceType.DOCUMENT
    return EvidenceType.OTHER


def _next_evidence_index(db: Session, case_id: str) -> int:
    updated = db.query(Dispute).filter(Dispute.id == case_id).update(
        {Dispute.last_evidence_index: Dispute.last_evidence_index + 1},
        synchronize_session=False,
    )
    if updated == 0:
        raise CaseNotFoundError(case_id)
    return db.query(Dispute.last_evidence_index).filter(Dispute.id == case_id).scalar()


def create_evidence(
    db: Session,
    case_id: str,
    user_id: Optional[str],
    file_url: str,
    file_name: str,
    title: str,
    file_type: Optional[EvidenceType] = None,
    file_size: Optional[int] = None,
    description: Optional[str] = None,
    evidence_date: Optional[datetime] = None,
) -> EvidenceItem:
    """
    Create an evidence item with the next permanent index and append an
    EVIDENCE_UPLOADED event. Flushes; the caller commits.

    Raises:
        CaseNotFoundError: dispute does not exist
    """
    evidence_index = _next_evidence_index(db, case_id)

    evidence = EvidenceItem(
        case_id=case_id,
        evidence_index=evidence_index,
        file_url=file_url,
        file_type=file_type or infer_evidence_type(file_name),
        file_name=file_name,
        file_size=file_size,
        title=title,
        description=description,
        evidence_date=evidence_date,
        uploaded_by=user_id,
    )
    db.add(evidence)
    db.flush()

    create_timeline_event(
        db,
        case_id,
        CaseEventType.EVIDENCE_UPLOADED,
        f"Evidence Item #{evidence_index} uploaded: {title}",
    )
    logger.info(f"[Evidence] Case {case_id}: item #{evidence_index} created")
    return evidence


def list_case_evidence(db: Session, case_id: str) -> List[EvidenceItem]:
    return db.query(EvidenceItem).filter(
        EvidenceItem.case_id == case_id,
    ).order_by(EvidenceItem.evidence_index.asc()).all()


def count_case_evidence(db: Session, case_id: str) -> int:
    return db.query(EvidenceItem).filter(EvidenceItem.case_id == case_id).count()


def get_evidence(db: Session, evidence_id: str) -> Optional[EvidenceItem]:
    return db.query(EvidenceItem).filter(EvidenceItem.id == evidence_id).first()


def get_evidence_by_index(db: Session, case_id: str, evidence_index: int) -> Optional[EvidenceItem]:
    return db.query(EvidenceItem).filter(
        EvidenceItem.case_id == case_id,
        EvidenceItem.evidence_index == evidence_index,
    ).first()


def update_evidence_metadata(db: Session, evidence_id: str, **updates) -> EvidenceItem:
    """
    Update title, description and/or evidence_date. Other fields (file,
    index, type) are immutable and rejected with ValueError.
    """
    evidence = get_evidence(db, evidence_id)
    if not evidence:
        raise EvidenceNotFoundError(evidence_id)

    illegal = [k for k in updates if k not in MUTABLE_FIELDS]
    if illegal:
        raise ValueError(f"Immutable evidence fields: {', '.join(sorted(illegal))}")

    for key, value in updates.items():
        setattr(evidence, key, value)
    db.flush()
    return evidence


def delete_evidence(db: Session, evidence_id: str) -> EvidenceItem:
    """Delete an item (surviving items keep their indices) and append EVIDENCE_REMOVED"""
    evidence = get_evidence(db, evidence_id)
    if not evidence:
        raise EvidenceNotFoundError(evidence_id)

    case_id, evidence_index, title = evidence.case_id, evidence.evidence_index, evidence.title
    db.delete(evidence)
    db.flush()

    create_timeline_event(
        db,
        case_id,
        CaseEventType.EVIDENCE_REMOVED,
        f"Evidence Item #{evidence_index} removed: {title}",
    )
    logger.info(f"[Evidence] Case {case_id}: item #{evidence_index} removed")
    return evidence


def evidence_to_dict(evidence: EvidenceItem) -> dict:
    return {
        "id": evidence.id,
        "case_id": evidence.case_id,
        "evidence_index": evidence.evidence_index,
        "file_url": evidence.file_url,
        "file_type": evidence.file_type.value,
        "file_name": evidence.file_name,
        "file_size": evidence.file_size,
        "title": evidence.title,
        "description": evidence.description,
        "evidence_date": evidence.evidence_date.isoformat() if evidence.evidence_date else None,
        "uploaded_by": evidence.uploaded_by,
        "created_at": evidence.created_at.isoformat() if evidence.created_at else None,
    }
