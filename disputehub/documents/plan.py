"""
Document Plan
=============

Computes a document plan from a completed strategy (complexity scoring,
forum routing, document routing) and persists it with PENDING document
stubs. Persisting flushes but never commits; the caller owns the
transaction.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, List, Optional

from sqlalchemy.orm import Session

from ..db.models import DocumentPlan, GeneratedDocument, DocumentStatus
from .complexity import ComplexityScore, ScoringConfig, score_complexity
from .forum import RoutingDecision, route_case
from .routing import PlannedDocument, route_documents

logger = logging.getLogger(__name__)


@dataclass
class PlanDraft:
    """In-memory plan, not yet persisted"""
    complexity: ComplexityScore
    routing: RoutingDecision
    documents: List[PlannedDocument] = field(default_factory=list)

    def summary(self) -> str:
        lines = [
            f"Complexity: {self.complexity.level.value} (score: {self.complexity.score})",
            f"Structure: {self.complexity.document_structure.value}",
            f"Forum: {self.routing.forum} ({self.routing.status})",
            f"Documents: {len(self.documents)} total",
        ]
        for doc in self.documents:
            label = "[REQUIRED]" if doc.required else "[OPTIONAL]"
            lines.append(f"  {doc.order}. {doc.title} {label}")
        return "\n".join(lines)


def compute_document_plan(
    strategy: Any,
    evidence_count: int,
    case_title: str = "",
    config: Optional[ScoringConfig] = None,
    now: Optional[datetime] = None,
) -> PlanDraft:
    """Score, route and select documents for a strategy"""
    complexity = score_complexity(strategy, evidence_count, config)
    routing = route_case(strategy, case_title, now=now)
    documents = route_documents(strategy, complexity.level)
    return PlanDraft(complexity=complexity, routing=routing, documents=documents)


def persist_document_plan(db: Session, case_id: str, draft: PlanDraft) -> DocumentPlan:
    """Write a plan and its PENDING document stubs (flush only)"""
    plan = DocumentPlan(
        case_id=case_id,
        complexity=draft.complexity.level,
        complexity_score=draft.complexity.score,
        complexity_breakdown=dict(draft.complexity.breakdown),
        document_type=draft.complexity.document_structure,
        allowed_documents=list(draft.routing.allowed_documents),
        blocked_documents=list(draft.routing.blocked_documents),
        routing=draft.routing.to_dict(),
    )
    db.add(plan)
    db.flush()

    for doc in draft.documents:
        db.add(GeneratedDocument(
            plan_id=plan.id,
            type=doc.type,
            title=doc.title,
            description=doc.description,
            order=doc.order,
            required=doc.required,
            status=DocumentStatus.PENDING,
            retry_count=0,
        ))
    db.flush()

    logger.info(f"[Document Plan] Persisted plan {plan.id} for case {case_id} with {len(draft.documents)} documents")
    return plan


def get_case_plan(db: Session, case_id: str) -> Optional[DocumentPlan]:
    return db.query(DocumentPlan).filter(DocumentPlan.case_id == case_id).first()


def plan_to_dict(plan: DocumentPlan) -> dict:
    return {
        "id": plan.id,
        "case_id": plan.case_id,
        "complexity": plan.complexity.value,
        "complexity_score": plan.complexity_score,
        "complexity_breakdown": plan.complexity_breakdown or {},
        "document_type": plan.document_type.value,
        "allowed_documents": plan.allowed_documents or [],
        "blocked_documents": plan.blocked_documents or [],
        "routing": plan.routing or {},
        "created_at": plan.created_at.isoformat() if plan.created_at else None,
        "documents": [document_to_dict(d) for d in plan.documents],
    }


def document_to_dict(doc: GeneratedDocument) -> dict:
    return {
        "id": doc.id,
        "type": doc.type,
        "title": doc.title,
        "description": doc.description,
        "order": doc.order,
        "required": doc.required,
        "status": doc.status.value,
        "retry_count": doc.retry_count,
        "last_error": doc.last_error,
        "file_url": doc.file_url,
        "content": doc.content,
        "updated_at": doc.updated_at.isoformat() if doc.updated_at else None,
    }
