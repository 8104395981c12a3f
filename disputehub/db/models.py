"""
SQLAlchemy Models for Database
==============================

Schema for dispute case progression:
- Users and their disputes
- Case strategy (facts extracted by the chat agent)
- Evidence items with permanent index numbers
- Document plans and generated documents
- Append-only case timeline
- In-app notifications

Supports both PostgreSQL and SQLite via SQLAlchemy.
"""

import enum
from datetime import datetime
from sqlalchemy import (
    Column, String, Text, Integer, Boolean, DateTime, Enum, ForeignKey,
    BigInteger, UniqueConstraint, Index, JSON
)
from sqlalchemy.orm import relationship, declarative_base
import uuid

# Use JSON for cross-database compatibility (works with both PostgreSQL and SQLite)
JSONB = JSON

Base = declarative_base()


def generate_uuid():
    return str(uuid.uuid4())


# =============================================================================
# ENUMS
# =============================================================================

class CasePhase(str, enum.Enum):
    """Where the case is in the product flow"""
    GATHERING = "GATHERING"
    ROUTING = "ROUTING"
    DOCUMENTS = "DOCUMENTS"


class ChatState(str, enum.Enum):
    """Conversation state derived each turn"""
    GATHERING = "GATHERING"
    WAITING_FOR_EVIDENCE = "WAITING_FOR_EVIDENCE"
    READY = "READY"
    BLOCKED = "BLOCKED"


class LifecycleStatus(str, enum.Enum):
    """System-owned case lifecycle"""
    DRAFT = "DRAFT"
    DOCUMENTS_GENERATING = "DOCUMENTS_GENERATING"
    DOCUMENTS_READY = "DOCUMENTS_READY"
    AWAITING_RESPONSE = "AWAITING_RESPONSE"
    DEADLINE_MISSED = "DEADLINE_MISSED"
    CLOSED = "CLOSED"


class EvidenceType(str, enum.Enum):
    """Uploaded evidence file type"""
    IMAGE = "IMAGE"
    PDF = "PDF"
    DOCUMENT = "DOCUMENT"
    OTHER = "OTHER"


class ComplexityLevel(str, enum.Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class DocumentStructure(str, enum.Enum):
    BASIC = "BASIC"
    INTERMEDIATE = "INTERMEDIATE"
    COMPREHENSIVE = "COMPREHENSIVE"


class DocumentStatus(str, enum.Enum):
    """Generated document status"""
    PENDING = "PENDING"
    GENERATING = "GENERATING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    SENT = "SENT"


class CaseEventType(str, enum.Enum):
    """Timeline event types"""
    STRATEGY_FINALISED = "STRATEGY_FINALISED"
    DOCUMENT_PLAN_CREATED = "DOCUMENT_PLAN_CREATED"
    DOCUMENTS_GENERATING = "DOCUMENTS_GENERATING"
    DOCUMENT_GENERATED = "DOCUMENT_GENERATED"
    DOCUMENT_SENT = "DOCUMENT_SENT"
    DEADLINE_SET = "DEADLINE_SET"
    DEADLINE_MISSED = "DEADLINE_MISSED"
    FOLLOW_UP_GENERATED = "FOLLOW_UP_GENERATED"
    EVIDENCE_UPLOADED = "EVIDENCE_UPLOADED"
    EVIDENCE_REMOVED = "EVIDENCE_REMOVED"
    CASE_RESET = "CASE_RESET"
    CASE_CLOSED = "CASE_CLOSED"


class NotificationType(str, enum.Enum):
    """In-app notification types"""
    DOCUMENT_READY = "DOCUMENT_READY"
    DOCUMENT_SENT = "DOCUMENT_SENT"
    DEADLINE_APPROACHING = "DEADLINE_APPROACHING"
    DEADLINE_MISSED = "DEADLINE_MISSED"
    FOLLOW_UP_GENERATED = "FOLLOW_UP_GENERATED"
    CASE_CLOSED = "CASE_CLOSED"


# =============================================================================
# USERS & DISPUTES
# =============================================================================

class User(Base):
    """Person building a dispute"""
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    email = Column(String(255), nullable=False, unique=True)
    name = Column(String(255), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    disputes = relationship("Dispute", back_populates="user", cascade="all, delete-orphan")
    notifications = relationship("Notification", back_populates="user", cascade="all, delete-orphan")


class Dispute(Base):
    """Case aggregate root"""
    __tablename__ = "disputes"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)

    # Progression flags (system-owned)
    strategy_locked = Column(Boolean, default=False, nullable=False)
    restricted = Column(Boolean, default=False, nullable=False)
    phase = Column(Enum(CasePhase), default=CasePhase.GATHERING, nullable=False)
    chat_state = Column(Enum(ChatState), default=ChatState.GATHERING, nullable=False)
    lifecycle_status = Column(Enum(LifecycleStatus), default=LifecycleStatus.DRAFT, nullable=False)
    waiting_until = Column(DateTime, nullable=True)
    last_evidence_index = Column(Integer, default=0, nullable=False)  # highest index ever issued

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("ix_dispute_lifecycle_waiting", "lifecycle_status", "waiting_until"),
    )

    # Relationships
    user = relationship("User", back_populates="disputes")
    strategy = relationship("CaseStrategy", back_populates="case", uselist=False, cascade="all, delete-orphan")
    evidence_items = relationship("EvidenceItem", back_populates="case", cascade="all, delete-orphan")
    document_plan = relationship("DocumentPlan", back_populates="case", uselist=False, cascade="all, delete-orphan")
    events = relationship("CaseEvent", back_populates="case", cascade="all, delete-orphan")


class CaseStrategy(Base):
    """Facts extracted by the chat agent; frozen once the case is locked"""
    __tablename__ = "case_strategies"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    case_id = Column(String(36), ForeignKey("disputes.id", ondelete="CASCADE"), nullable=False, unique=True)
    dispute_type = Column(String(100), nullable=True)
    key_facts = Column(JSONB, default=list)
    evidence_mentioned = Column(JSONB, default=list)
    desired_outcome = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    case = relationship("Dispute", back_populates="strategy")


# =============================================================================
# EVIDENCE
# =============================================================================

class EvidenceItem(Base):
    """Uploaded evidence with a permanent per-case index"""
    __tablename__ = "evidence_items"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    case_id = Column(String(36), ForeignKey("disputes.id", ondelete="CASCADE"), nullable=False)
    evidence_index = Column(Integer, nullable=False)
    file_url = Column(String(500), nullable=False)
    file_type = Column(Enum(EvidenceType), default=EvidenceType.OTHER, nullable=False)
    file_name = Column(String(255), nullable=False)
    file_size = Column(BigInteger, nullable=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    evidence_date = Column(DateTime, nullable=True)
    uploaded_by = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("case_id", "evidence_index", name="uq_evidence_case_index"),
    )

    # Relationships
    case = relationship("Dispute", back_populates="evidence_items")


# =============================================================================
# DOCUMENTS
# =============================================================================

class DocumentPlan(Base):
    """Documents selected for a case, created once by the decision gate"""
    __tablename__ = "document_plans"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    case_id = Column(String(36), ForeignKey("disputes.id", ondelete="CASCADE"), nullable=False, unique=True)
    complexity = Column(Enum(ComplexityLevel), nullable=False)
    complexity_score = Column(Integer, nullable=False)
    complexity_breakdown = Column(JSONB, default=dict)
    document_type = Column(Enum(DocumentStructure), nullable=False)
    allowed_documents = Column(JSONB, default=list)
    blocked_documents = Column(JSONB, default=list)
    routing = Column(JSONB, default=dict)  # {jurisdiction, forum, prerequisites, time_limit}
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    case = relationship("Dispute", back_populates="document_plan")
    documents = relationship(
        "GeneratedDocument",
        back_populates="plan",
        cascade="all, delete-orphan",
        order_by="GeneratedDocument.order",
    )


class GeneratedDocument(Base):
    """One document in a plan"""
    __tablename__ = "generated_documents"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    plan_id = Column(String(36), ForeignKey("document_plans.id", ondelete="CASCADE"), nullable=False)
    type = Column(String(100), nullable=False)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    order = Column(Integer, nullable=False)
    required = Column(Boolean, default=True, nullable=False)
    status = Column(Enum(DocumentStatus), default=DocumentStatus.PENDING, nullable=False)
    retry_count = Column(Integer, default=0, nullable=False)
    last_error = Column(Text, nullable=True)
    file_url = Column(String(500), nullable=True)
    content = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("ix_generated_document_plan_status", "plan_id", "status"),
    )

    # Relationships
    plan = relationship("DocumentPlan", back_populates="documents")


# =============================================================================
# TIMELINE / NOTIFICATIONS
# =============================================================================

class CaseEvent(Base):
    """Append-only timeline event, written by the system only"""
    __tablename__ = "case_events"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    case_id = Column(String(36), ForeignKey("disputes.id", ondelete="CASCADE"), nullable=False)
    type = Column(Enum(CaseEventType), nullable=False)
    description = Column(Text, nullable=False)
    # No FK: events outlive the documents they mention
    related_document_id = Column(String(36), nullable=True, index=True)
    occurred_at = Column(DateTime, default=datetime.utcnow)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index("ix_case_event_case", "case_id", "occurred_at"),
    )

    # Relationships
    case = relationship("Dispute", back_populates="events")


class Notification(Base):
    """In-app notification"""
    __tablename__ = "notifications"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    case_id = Column(String(36), ForeignKey("disputes.id", ondelete="CASCADE"), nullable=True)
    type = Column(Enum(NotificationType), nullable=False)
    message = Column(Text, nullable=False)
    read = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index("ix_notification_case_type", "case_id", "type", "created_at"),
        Index("ix_notification_user_read", "user_id", "read"),
    )

    # Relationships
    user = relationship("User", back_populates="notifications")
