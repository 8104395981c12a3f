"""
Database Package - SQLAlchemy
=============================

Persistence layer for disputes, strategies, evidence, documents and timeline.
"""

from .models import (
    Base,
    User, Dispute, CaseStrategy,
    EvidenceItem,
    DocumentPlan, GeneratedDocument,
    CaseEvent, Notification,
    CasePhase, ChatState, LifecycleStatus, EvidenceType,
    ComplexityLevel, DocumentStructure, DocumentStatus,
    CaseEventType, NotificationType,
)
from .session import get_db, get_db_session, init_db, get_engine, reset_engine

__all__ = [
    # Base
    "Base",
    # Cases
    "User", "Dispute", "CaseStrategy",
    # Evidence
    "EvidenceItem",
    # Documents
    "DocumentPlan", "GeneratedDocument",
    # Timeline
    "CaseEvent", "Notification",
    # Enums
    "CasePhase", "ChatState", "LifecycleStatus", "EvidenceType",
    "ComplexityLevel", "DocumentStructure", "DocumentStatus",
    "CaseEventType", "NotificationType",
    # Session
    "get_db", "get_db_session", "init_db", "get_engine", "reset_engine",
]
