"""
Documents Package
=================

Complexity scoring, forum routing, document selection, plan persistence
and generation.
"""

from .complexity import ComplexityScore, ScoringConfig, score_complexity
from .forum import RoutingDecision, route_case
from .routing import PlannedDocument, route_documents
from .plan import PlanDraft, compute_document_plan, persist_document_plan, get_case_plan
from .generator import (
    BatchResult,
    DocumentGenerator,
    LLMDocumentGenerator,
    batch_generate_documents,
    generate_document,
    get_document_generator,
    retry_document,
)

__all__ = [
    "ComplexityScore",
    "ScoringConfig",
    "score_complexity",
    "RoutingDecision",
    "route_case",
    "PlannedDocument",
    "route_documents",
    "PlanDraft",
    "compute_document_plan",
    "persist_document_plan",
    "get_case_plan",
    "BatchResult",
    "DocumentGenerator",
    "LLMDocumentGenerator",
    "batch_generate_documents",
    "generate_document",
    "get_document_generator",
    "retry_document",
]
