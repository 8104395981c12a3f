"""
DisputeHub API
==============

FastAPI endpoints for dispute case progression.

Endpoints (X-User-Id header required unless noted):
- GET    /health                               - Health check (open)
- POST   /disputes                             - Open a dispute
- GET    /disputes/{id}                        - Dispute with gate state
- GET    /disputes/{id}/strategy               - Strategy record
- GET    /disputes/{id}/strategy/completeness  - Readiness diagnostics
- POST   /disputes/{id}/turns                  - Apply a chat-agent turn
- POST   /disputes/{id}/reset                  - Back to fact gathering
- POST   /disputes/{id}/close                  - Close the case
- GET    /disputes/{id}/evidence               - List evidence
- POST   /disputes/{id}/evidence               - Register uploaded evidence
- PATCH  /evidence/{id}                        - Edit evidence metadata
- DELETE /evidence/{id}                        - Remove evidence
- GET    /disputes/{id}/documents/plan         - Document plan and statuses
- GET    /disputes/{id}/complexity             - Complexity score
- POST   /documents/{id}/retry                 - Retry a failed document
- POST   /documents/{id}/sent                  - Mark a document as sent
- GET    /disputes/{id}/timeline               - Case history
- GET    /notifications                        - Notifications + unread count
- POST   /notifications/{id}/read              - Mark one as read
- POST   /notifications/mark-all-read          - Mark all as read
- POST   /admin/trigger-gate                   - Run the decision gate (X-Admin-Token)
- POST   /cron/check-deadlines                 - Deadline sweep and follow-up letters (X-Admin-Token)

Run with:
    uvicorn disputehub.api:app --host 0.0.0.0 --port 8000
"""

import logging
import os
from datetime import datetime
from typing import List, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from .config import get_settings
from .conversation import StrategyDelta, process_agent_turn, reset_case
from .db.models import CaseStrategy, Dispute, DocumentStatus, EvidenceItem, GeneratedDocument, User
from .db.session import get_db, init_db
from .deadlines import (
    check_approaching_deadlines, check_missed_deadlines, close_case, generate_follow_up_letter, mark_document_as_sent,
)
from .documents.complexity import ScoringConfig, score_complexity
from .documents.generator import DocumentGenerator, close_document_generator, get_document_generator, retry_document
from .documents.plan import document_to_dict, get_case_plan, plan_to_dict
from .errors import (
    CaseNotFoundError, DisputeHubError, DocumentGenerationError, DocumentNotFoundError,
    DocumentNotRetryableError, DocumentStateError, EvidenceNotFoundError, StrategyLockedError,
)
from .evidence import (
    count_case_evidence, create_evidence, delete_evidence, evidence_to_dict,
    infer_evidence_type, list_case_evidence, update_evidence_metadata,
)
from .middleware.security import SecurityHeadersMiddleware
from .notifications import (
    get_unread_notification_count, get_user_notifications, mark_all_notifications_as_read,
    mark_notification_as_read, notification_to_dict,
)
from .schemas import (
    AgentTurnRequest, CreateDisputeRequest, CreateEvidenceRequest, HealthResponse,
    TriggerGateRequest, UpdateEvidenceRequest,
)
from .strategy.completeness import get_strategy_completeness_details
from .strategy.decision_gate import DecisionGate
from .strategy.snapshot import StrategySnapshot
from .strategy.state_validator import validate_conversation_state
from .strategy.sufficiency import check_case_sufficiency
from .timeline import event_to_dict, get_case_timeline

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


# =============================================================================
# FastAPI App
# =============================================================================

app = FastAPI(
    title="DisputeHub",
    description="Dispute case progression: strategy gate, document plans, deadlines",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
)


def _parse_cors_origins(raw: str) -> List[str]:
    origins: List[str] = []
    for item in raw.split(","):
        origin = item.strip().strip('"').strip("'").rstrip("/")
        if origin:
            origins.append(origin)
    return origins


CORS_ALLOW_ORIGINS = _parse_cors_origins(
    os.environ.get("CORS_ALLOW_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000")
)
logger.info(f"CORS allow origins: {CORS_ALLOW_ORIGINS}")

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ALLOW_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

app.add_middleware(SecurityHeadersMiddleware)


@app.on_event("startup")
async def startup():
    init_db()
    for warning in get_settings().validate_config():
        logger.warning(f"Config: {warning}")


@app.on_event("shutdown")
async def shutdown():
    close_document_generator()


ERROR_STATUS = {
    CaseNotFoundError: 404,
    EvidenceNotFoundError: 404,
    DocumentNotFoundError: 404,
    StrategyLockedError: 409,
    DocumentNotRetryableError: 409,
    DocumentStateError: 409,
    DocumentGenerationError: 502,
}


@app.exception_handler(DisputeHubError)
async def dispute_error_handler(request: Request, exc: DisputeHubError):
    status_code = ERROR_STATUS.get(type(exc), 400)
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    return JSONResponse(status_code=status_code, content={"detail": str(exc) or exc.__class__.__name__})


# =============================================================================
# Dependencies
# =============================================================================

def get_db_dependency():
    """Get database session for FastAPI dependency injection"""
    db = next(get_db())
    try:
        yield db
    finally:
        db.close()


def get_generator() -> DocumentGenerator:
    return get_document_generator()


def get_current_user(
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
    db: Session = Depends(get_db_dependency),
) -> User:
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Authentication required")
    user = db.query(User).filter(User.id == x_user_id).first()
    if not user:
        logger.warning(f"Auth failed: unknown user_id={x_user_id}")
        raise HTTPException(status_code=401, detail="Unknown user")
    return user


def require_admin(x_admin_token: Optional[str] = Header(None, alias="X-Admin-Token")):
    expected = get_settings().admin_token
    if expected and x_admin_token != expected:
        raise HTTPException(status_code=403, detail="Admin token required")


def _require_case(db: Session, user: User, case_id: str) -> Dispute:
    case = db.query(Dispute).filter(Dispute.id == case_id, Dispute.user_id == user.id).first()
    if not case:
        raise HTTPException(status_code=404, detail="Dispute not found")
    return case


def _require_evidence(db: Session, user: User, evidence_id: str) -> EvidenceItem:
    evidence = db.query(EvidenceItem).filter(EvidenceItem.id == evidence_id).first()
    if not evidence or evidence.case.user_id != user.id:
        raise HTTPException(status_code=404, detail="Evidence not found")
    return evidence


def _require_document(db: Session, user: User, document_id: str) -> GeneratedDocument:
    document = db.query(GeneratedDocument).filter(GeneratedDocument.id == document_id).first()
    if not document or document.plan.case.user_id != user.id:
        raise HTTPException(status_code=404, detail="Document not found")
    return document


def _get_strategy(db: Session, case_id: str) -> Optional[CaseStrategy]:
    return db.query(CaseStrategy).filter(CaseStrategy.case_id == case_id).first()


def dispute_to_dict(db: Session, case: Dispute) -> dict:
    state = DecisionGate(db).get_state(case.id)
    return {
        "id": case.id,
        "title": case.title,
        "description": case.description,
        "strategy_locked": case.strategy_locked,
        "restricted": case.restricted,
        "phase": case.phase.value,
        "chat_state": case.chat_state.value,
        "lifecycle_status": case.lifecycle_status.value,
        "waiting_until": case.waiting_until.isoformat() if case.waiting_until else None,
        "gate_state": state.value if state else None,
        "created_at": case.created_at.isoformat() if case.created_at else None,
        "updated_at": case.updated_at.isoformat() if case.updated_at else None,
    }


# =============================================================================
# Health
# =============================================================================

@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check():
    """Health check endpoint"""
    settings = get_settings()
    return HealthResponse(
        status="healthy",
        version=settings.service_version,
        timestamp=datetime.now(),
    )


# =============================================================================
# Disputes & strategy
# =============================================================================

@app.post("/disputes", status_code=201, tags=["Disputes"])
async def create_dispute(
    request: CreateDisputeRequest,
    db: Session = Depends(get_db_dependency),
    user: User = Depends(get_current_user),
):
    try:
        case = Dispute(user_id=user.id, title=request.title, description=request.description)
        db.add(case)
        db.commit()
        db.refresh(case)
        logger.info(f"Dispute {case.id} created for user {user.id}")
        return dispute_to_dict(db, case)
    except HTTPException:
        raise
    except Exception as e:
        db.rollback()
        logger.error(f"Create dispute failed: {e}")
        raise HTTPException(status_code=500, detail=f"Database error: {str(e)}")


@app.get("/disputes/{case_id}", tags=["Disputes"])
async def get_dispute(
    case_id: str,
    db: Session = Depends(get_db_dependency),
    user: User = Depends(get_current_user),
):
    return dispute_to_dict(db, _require_case(db, user, case_id))


@app.get("/disputes/{case_id}/strategy", tags=["Strategy"])
async def get_strategy(
    case_id: str,
    db: Session = Depends(get_db_dependency),
    user: User = Depends(get_current_user),
):
    case = _require_case(db, user, case_id)
    snapshot = StrategySnapshot.from_any(_get_strategy(db, case_id))
    return {
        "case_id": case.id,
        "locked": case.strategy_locked,
        "strategy": snapshot.to_dict() if snapshot else None,
    }


@app.get("/disputes/{case_id}/strategy/completeness", tags=["Strategy"])
async def get_strategy_completeness(
    case_id: str,
    db: Session = Depends(get_db_dependency),
    user: User = Depends(get_current_user),
):
    """Gate completeness plus the per-turn sufficiency and conversation state"""
    case = _require_case(db, user, case_id)
    settings = get_settings()
    strategy = _get_strategy(db, case_id)
    evidence_count = count_case_evidence(db, case_id)

    return {
        "completeness": get_strategy_completeness_details(strategy, settings.completeness).to_dict(),
        "sufficiency": check_case_sufficiency(strategy, evidence_count, settings.sufficiency).to_dict(),
        "conversation_state": validate_conversation_state(
            strategy, evidence_count, settings.conversation_state, case.restricted,
        ).to_dict(),
    }


@app.post("/disputes/{case_id}/turns", tags=["Strategy"])
def apply_agent_turn(
    case_id: str,
    request: AgentTurnRequest,
    db: Session = Depends(get_db_dependency),
    user: User = Depends(get_current_user),
    generator: DocumentGenerator = Depends(get_generator),
):
    """Merge the agent's extracted facts, police its reply and run the decision gate"""
    _require_case(db, user, case_id)
    delta = StrategyDelta(
        key_facts=request.delta.key_facts,
        evidence_mentioned=request.delta.evidence_mentioned,
        desired_outcome=request.delta.desired_outcome,
        dispute_type=request.delta.dispute_type,
    )
    result = process_agent_turn(db, case_id, delta, request.candidate_response, generator=generator)
    return result.to_dict()


@app.post("/disputes/{case_id}/reset", tags=["Disputes"])
async def reset_dispute(
    case_id: str,
    db: Session = Depends(get_db_dependency),
    user: User = Depends(get_current_user),
):
    _require_case(db, user, case_id)
    case = reset_case(db, case_id)
    db.commit()
    return dispute_to_dict(db, case)


@app.post("/disputes/{case_id}/close", tags=["Disputes"])
async def close_dispute(
    case_id: str,
    db: Session = Depends(get_db_dependency),
    user: User = Depends(get_current_user),
):
    _require_case(db, user, case_id)
    case = close_case(db, case_id)
    db.commit()
    return dispute_to_dict(db, case)


# =============================================================================
# Evidence
# =============================================================================

@app.get("/disputes/{case_id}/evidence", tags=["Evidence"])
async def list_evidence(
    case_id: str,
    db: Session = Depends(get_db_dependency),
    user: User = Depends(get_current_user),
):
    _require_case(db, user, case_id)
    return [evidence_to_dict(e) for e in list_case_evidence(db, case_id)]


@app.post("/disputes/{case_id}/evidence", status_code=201, tags=["Evidence"])
async def add_evidence(
    case_id: str,
    request: CreateEvidenceRequest,
    db: Session = Depends(get_db_dependency),
    user: User = Depends(get_current_user),
):
    _require_case(db, user, case_id)
    evidence = create_evidence(
        db,
        case_id,
        user.id,
        file_url=request.file_url,
        file_name=request.file_name,
        title=request.title,
        file_type=infer_evidence_type(request.file_name, request.content_type),
        file_size=request.file_size,
        description=request.description,
        evidence_date=request.evidence_date,
    )
    db.commit()
    return evidence_to_dict(evidence)


@app.patch("/evidence/{evidence_id}", tags=["Evidence"])
async def edit_evidence(
    evidence_id: str,
    request: UpdateEvidenceRequest,
    db: Session = Depends(get_db_dependency),
    user: User = Depends(get_current_user),
):
    _require_evidence(db, user, evidence_id)
    updates = request.model_dump(exclude_unset=True)
    evidence = update_evidence_metadata(db, evidence_id, **updates)
    db.commit()
    return evidence_to_dict(evidence)


@app.delete("/evidence/{evidence_id}", tags=["Evidence"])
async def remove_evidence(
    evidence_id: str,
    db: Session = Depends(get_db_dependency),
    user: User = Depends(get_current_user),
):
    evidence = _require_evidence(db, user, evidence_id)
    removed = evidence_to_dict(evidence)
    delete_evidence(db, evidence_id)
    db.commit()
    return {"deleted": True, "evidence": removed}


# =============================================================================
# Documents
# =============================================================================

@app.get("/disputes/{case_id}/documents/plan", tags=["Documents"])
async def get_document_plan(
    case_id: str,
    db: Session = Depends(get_db_dependency),
    user: User = Depends(get_current_user),
):
    _require_case(db, user, case_id)
    plan = get_case_plan(db, case_id)
    if not plan:
        raise HTTPException(status_code=404, detail="No document plan yet")
    return plan_to_dict(plan)


@app.get("/disputes/{case_id}/complexity", tags=["Documents"])
async def get_complexity(
    case_id: str,
    db: Session = Depends(get_db_dependency),
    user: User = Depends(get_current_user),
):
    _require_case(db, user, case_id)
    settings = get_settings()
    score = score_complexity(
        _get_strategy(db, case_id),
        count_case_evidence(db, case_id),
        ScoringConfig(dev_boost=settings.scoring_dev_boost),
    )
    return score.to_dict()


@app.post("/documents/{document_id}/retry", tags=["Documents"])
def retry_failed_document(
    document_id: str,
    db: Session = Depends(get_db_dependency),
    user: User = Depends(get_current_user),
    generator: DocumentGenerator = Depends(get_generator),
):
    _require_document(db, user, document_id)
    document = retry_document(db, document_id, generator)
    db.commit()
    return document_to_dict(document)


@app.post("/documents/{document_id}/sent", tags=["Documents"])
async def mark_sent(
    document_id: str,
    db: Session = Depends(get_db_dependency),
    user: User = Depends(get_current_user),
):
    _require_document(db, user, document_id)
    document = mark_document_as_sent(db, document_id)
    db.commit()
    return document_to_dict(document)


# =============================================================================
# Timeline & notifications
# =============================================================================

@app.get("/disputes/{case_id}/timeline", tags=["Timeline"])
async def get_timeline(
    case_id: str,
    db: Session = Depends(get_db_dependency),
    user: User = Depends(get_current_user),
):
    _require_case(db, user, case_id)
    return [event_to_dict(e) for e in get_case_timeline(db, case_id)]


@app.get("/notifications", tags=["Notifications"])
async def list_notifications(
    limit: int = 50,
    db: Session = Depends(get_db_dependency),
    user: User = Depends(get_current_user),
):
    return {
        "unread_count": get_unread_notification_count(db, user.id),
        "notifications": [notification_to_dict(n) for n in get_user_notifications(db, user.id, limit)],
    }


@app.post("/notifications/mark-all-read", tags=["Notifications"])
async def read_all_notifications(
    db: Session = Depends(get_db_dependency),
    user: User = Depends(get_current_user),
):
    updated = mark_all_notifications_as_read(db, user.id)
    db.commit()
    return {"updated": updated}


@app.post("/notifications/{notification_id}/read", tags=["Notifications"])
async def read_notification(
    notification_id: str,
    db: Session = Depends(get_db_dependency),
    user: User = Depends(get_current_user),
):
    if not mark_notification_as_read(db, notification_id, user.id):
        raise HTTPException(status_code=404, detail="Notification not found")
    db.commit()
    return {"read": True}


# =============================================================================
# Admin / cron
# =============================================================================

@app.post("/admin/trigger-gate", tags=["Admin"], dependencies=[Depends(require_admin)])
def trigger_gate(
    request: TriggerGateRequest,
    db: Session = Depends(get_db_dependency),
    generator: DocumentGenerator = Depends(get_generator),
):
    """Run the decision gate for a case, or resume generation if it is already locked"""
    try:
        gate = DecisionGate(db, generator=generator)
        if gate.get_state(request.case_id) is None:
            raise HTTPException(status_code=404, detail="Dispute not found")

        executed = gate.execute(request.case_id)
        if not executed:
            gate.resume_generation(request.case_id)

        state = gate.get_state(request.case_id)
        return {
            "case_id": request.case_id,
            "executed": executed,
            "state": state.value if state else None,
            "batch": gate.last_batch.to_dict() if gate.last_batch else None,
        }
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Trigger gate failed for case {request.case_id}: {e}")
        raise HTTPException(status_code=500, detail=f"Gate error: {str(e)}")


@app.post("/cron/check-deadlines", tags=["Admin"], dependencies=[Depends(require_admin)])
def run_deadline_checks(
    db: Session = Depends(get_db_dependency),
    generator: DocumentGenerator = Depends(get_generator),
):
    """Mark missed deadlines, draft follow-up letters and warn about close deadlines"""
    try:
        missed = check_missed_deadlines(db)
        db.commit()

        follow_ups = 0
        for case_id in missed:
            if get_case_plan(db, case_id) is None:
                continue
            document = generate_follow_up_letter(db, case_id, generator)
            db.commit()
            if document.status == DocumentStatus.COMPLETED:
                follow_ups += 1

        approaching = check_approaching_deadlines(db)
        db.commit()
        return {"missed": missed, "follow_ups_generated": follow_ups, "approaching_notified": approaching}
    except Exception as e:
        db.rollback()
        logger.error(f"Deadline check failed: {e}")
        raise HTTPException(status_code=500, detail=f"Deadline check error: {str(e)}")
