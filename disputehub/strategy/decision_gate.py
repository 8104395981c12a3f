"""
Decision Gate
=============

One-way transition from fact gathering to document generation.

    OPEN        strategy mutable, chat still collecting facts
    LOCKED      strategy frozen, plan being created
    GENERATING  plan exists, documents still pending
    COMPLETE    every document completed, failed or sent

The lock is taken with a conditional UPDATE (only rows still unlocked are
touched), so of two concurrent triggers exactly one wins. Locking, the
STRATEGY_FINALISED event, plan creation and the DOCUMENTS_GENERATING event
share one transaction: any failure rolls all of them back and the gate
reports that it did not run. Document generation starts after that commit
and can be resumed with `resume_generation()`.

Usage:
    gate = DecisionGate(db)
    if gate.should_trigger(case_id):
        gate.execute(case_id)
"""

import enum
import logging
from typing import Optional

from sqlalchemy.orm import Session

from ..config import Settings, get_settings
from ..db.models import (
    CaseEventType, CasePhase, CaseStrategy, Dispute, DocumentPlan, DocumentStatus, LifecycleStatus,
)
from ..documents.complexity import ScoringConfig
from ..documents.generator import BatchResult, DocumentGenerator, batch_generate_documents
from ..documents.plan import compute_document_plan, persist_document_plan
from ..evidence import count_case_evidence
from ..timeline import create_timeline_event
from .completeness import is_strategy_complete

logger = logging.getLogger(__name__)


class GateState(str, enum.Enum):
    OPEN = "OPEN"
    LOCKED = "LOCKED"
    GENERATING = "GENERATING"
    COMPLETE = "COMPLETE"


class DecisionGate:
    """Locks a complete strategy, creates its document plan and starts generation"""

    def __init__(
        self,
        db: Session,
        generator: Optional[DocumentGenerator] = None,
        settings: Optional[Settings] = None,
    ):
        self.db = db
        self.generator = generator
        self.settings = settings or get_settings()
        self.last_batch: Optional[BatchResult] = None

    def _get_case(self, case_id: str) -> Optional[Dispute]:
        return self.db.query(Dispute).filter(Dispute.id == case_id).first()

    def _get_strategy(self, case_id: str) -> Optional[CaseStrategy]:
        return self.db.query(CaseStrategy).filter(CaseStrategy.case_id == case_id).first()

    def _get_plan(self, case_id: str) -> Optional[DocumentPlan]:
        return self.db.query(DocumentPlan).filter(DocumentPlan.case_id == case_id).first()

    def should_trigger(self, case_id: str) -> bool:
        """True iff the case exists, is unlocked, is not restricted and its strategy is complete"""
        case = self._get_case(case_id)
        if not case:
            logger.info(f"[Decision Gate] Case {case_id} not found")
            return False

        if case.strategy_locked:
            logger.info(f"[Decision Gate] Case {case_id} already locked")
            return False

        if case.restricted:
            logger.info(f"[Decision Gate] Case {case_id} is restricted")
            return False

        complete = is_strategy_complete(self._get_strategy(case_id), self.settings.completeness)
        logger.info(f"[Decision Gate] Case {case_id} strategy complete: {complete}")
        return complete

    def _lock(self, case_id: str) -> bool:
        updated = self.db.query(Dispute).filter(
            Dispute.id == case_id,
            Dispute.strategy_locked.is_(False),
        ).update({Dispute.strategy_locked: True}, synchronize_session=False)
        return updated == 1

    def execute(self, case_id: str) -> bool:
        """
        Run the gate for a case.

        Returns:
            True if this call locked the case, False if it did not run
            (preconditions failed, another caller won the lock, or plan
            creation failed and was rolled back)
        """
        if not self.should_trigger(case_id):
            logger.info(f"[Decision Gate] Not executing for case {case_id}")
            return False

        try:
            # Step 1: compare-and-swap lock
            if not self._lock(case_id):
                self.db.rollback()
                logger.info(f"[Decision Gate] Case {case_id} was locked by another request")
                return False
            logger.info(f"[Decision Gate] Step 1: strategy locked for case {case_id}")

            # Step 2
            create_timeline_event(
                self.db, case_id, CaseEventType.STRATEGY_FINALISED,
                "Case strategy completed and locked",
            )
            logger.info(f"[Decision Gate] Step 2: STRATEGY_FINALISED recorded for case {case_id}")

            # Step 3
            plan = self._get_plan(case_id)
            if plan is None:
                strategy = self._get_strategy(case_id)
                if strategy is None:
                    raise ValueError(f"Strategy missing for case {case_id}")

                case = self._get_case(case_id)
                draft = compute_document_plan(
                    strategy,
                    count_case_evidence(self.db, case_id),
                    case_title=case.title if case else "",
                    config=ScoringConfig(dev_boost=self.settings.scoring_dev_boost),
                )
                plan = persist_document_plan(self.db, case_id, draft)
                create_timeline_event(
                    self.db, case_id, CaseEventType.DOCUMENT_PLAN_CREATED,
                    "Document plan created automatically",
                )
                logger.info(
                    f"[Decision Gate] Step 3: plan created for case {case_id} "
                    f"({draft.complexity.level.value}, {len(draft.documents)} documents)"
                )
            else:
                logger.info(f"[Decision Gate] Step 3: reusing existing plan {plan.id} for case {case_id}")

            # Step 4
            create_timeline_event(
                self.db, case_id, CaseEventType.DOCUMENTS_GENERATING,
                "Document generation started",
            )
            case = self._get_case(case_id)
            case.phase = CasePhase.DOCUMENTS
            case.lifecycle_status = LifecycleStatus.DOCUMENTS_GENERATING
            self.db.flush()
            logger.info(f"[Decision Gate] Step 4: DOCUMENTS_GENERATING recorded for case {case_id}")

            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"[Decision Gate] Execution failed for case {case_id}, rolled back: {e}")
            return False

        # Step 5: outside the transaction, failures stay per document
        self.resume_generation(case_id)
        return True

    def resume_generation(self, case_id: str) -> Optional[BatchResult]:
        """Generate the eligible documents of a locked case's plan"""
        case = self._get_case(case_id)
        if not case or not case.strategy_locked or self._get_plan(case_id) is None:
            logger.info(f"[Decision Gate] Nothing to generate for case {case_id}")
            return None

        try:
            self.last_batch = batch_generate_documents(self.db, case_id, self.generator, self.settings)
        except Exception as e:
            self.db.rollback()
            logger.error(f"[Decision Gate] Step 5: generation aborted for case {case_id}: {e}")
            return None

        logger.info(
            f"[Decision Gate] Step 5: generation finished for case {case_id}: "
            f"{self.last_batch.completed} completed, {self.last_batch.failed} failed"
        )
        return self.last_batch

    def get_state(self, case_id: str) -> Optional[GateState]:
        case = self._get_case(case_id)
        if not case:
            return None
        if not case.strategy_locked:
            return GateState.OPEN

        plan = self._get_plan(case_id)
        if plan is None:
            return GateState.LOCKED
        if any(d.status in (DocumentStatus.PENDING, DocumentStatus.GENERATING) for d in plan.documents):
            return GateState.GENERATING
        return GateState.COMPLETE


def should_trigger_decision_gate(db: Session, case_id: str) -> bool:
    return DecisionGate(db).should_trigger(case_id)


def execute_decision_gate(
    db: Session,
    case_id: str,
    generator: Optional[DocumentGenerator] = None,
) -> bool:
    return DecisionGate(db, generator=generator).execute(case_id)
