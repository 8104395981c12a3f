"""
Conversation Turn Handler
=========================

Applies one chat-agent turn to a case:

1. Merge the agent's extracted strategy delta (rejected once locked)
2. Score sufficiency and validate the agent's candidate reply
3. Classify the conversation state and store it on the case
4. Commit, then run the decision gate

The caller decides what to show from `TurnResult.action`:
SURFACE the candidate, REPLACE it with `TurnResult.response`, or
REGENERATE a new candidate.
"""

import enum
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from .config import Settings, get_settings
from .db.models import CaseEventType, CasePhase, CaseStrategy, ChatState, Dispute, DocumentPlan, LifecycleStatus
from .documents.generator import DocumentGenerator
from .errors import CaseNotFoundError, StrategyLockedError
from .evidence import count_case_evidence
from .strategy.decision_gate import DecisionGate
from .strategy.state_validator import StateValidationResult, validate_conversation_state
from .strategy.sufficiency import (
    ResponseValidation, SufficiencyCheck, check_case_sufficiency,
    get_final_confirmation_message, validate_ai_response,
)
from .timeline import create_timeline_event

logger = logging.getLogger(__name__)


class TurnAction(str, enum.Enum):
    SURFACE = "SURFACE"
    REPLACE = "REPLACE"
    REGENERATE = "REGENERATE"


def _string_list(value: Any, name: str) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, (list, tuple)) and all(isinstance(item, str) for item in value):
        return list(value)
    raise ValueError(f"{name} must be a list of strings")


@dataclass
class StrategyDelta:
    """Facts the chat agent extracted from the latest user message"""
    key_facts: List[str] = field(default_factory=list)
    evidence_mentioned: List[str] = field(default_factory=list)
    desired_outcome: Optional[str] = None
    dispute_type: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "StrategyDelta":
        """
        Accepts snake_case and camelCase keys. A single string where a list
        is expected counts as a one-item list.

        Raises:
            ValueError: a list field holds something other than strings
        """
        data = data or {}
        return cls(
            key_facts=_string_list(data.get("key_facts") or data.get("keyFacts"), "key_facts"),
            evidence_mentioned=_string_list(
                data.get("evidence_mentioned") or data.get("evidenceMentioned"), "evidence_mentioned",
            ),
            desired_outcome=data.get("desired_outcome") or data.get("desiredOutcome"),
            dispute_type=data.get("dispute_type") or data.get("disputeType"),
        )

    def is_empty(self) -> bool:
        return not (self.key_facts or self.evidence_mentioned or self.desired_outcome or self.dispute_type)


@dataclass
class TurnResult:
    action: TurnAction
    response: Optional[str]
    sufficiency: SufficiencyCheck
    validation: ResponseValidation
    state: StateValidationResult
    gate_triggered: bool = False

    def to_dict(self) -> dict:
        return {
            "action": self.action.value,
            "response": self.response,
            "sufficiency": self.sufficiency.to_dict(),
            "validation": {
                "is_valid": self.validation.is_valid,
                "reason": self.validation.reason,
                "should_block": self.validation.should_block,
            },
            "state": self.state.to_dict(),
            "gate_triggered": self.gate_triggered,
        }


def _merge_unique(existing: List[str], incoming: List[str]) -> List[str]:
    merged = list(existing or [])
    seen = {item.strip().lower() for item in merged}
    for item in incoming:
        text = (item or "").strip()
        if text and text.lower() not in seen:
            merged.append(text)
            seen.add(text.lower())
    return merged


def apply_strategy_delta(db: Session, case: Dispute, delta: StrategyDelta) -> CaseStrategy:
    """
    Merge a delta into the case strategy, creating it on first use.

    Raises:
        StrategyLockedError: the case strategy is locked
    """
    if case.strategy_locked:
        raise StrategyLockedError(f"Strategy for case {case.id} is locked")

    strategy = db.query(CaseStrategy).filter(CaseStrategy.case_id == case.id).first()
    if strategy is None:
        strategy = CaseStrategy(case_id=case.id, key_facts=[], evidence_mentioned=[])
        db.add(strategy)

    # JSON columns need a new list to register the change
    strategy.key_facts = _merge_unique(strategy.key_facts, delta.key_facts)
    strategy.evidence_mentioned = _merge_unique(strategy.evidence_mentioned, delta.evidence_mentioned)
    if delta.desired_outcome:
        strategy.desired_outcome = delta.desired_outcome
    if delta.dispute_type:
        strategy.dispute_type = delta.dispute_type

    db.flush()
    return strategy


def process_agent_turn(
    db: Session,
    case_id: str,
    delta: Optional[StrategyDelta],
    candidate_response: str,
    generator: Optional[DocumentGenerator] = None,
    settings: Optional[Settings] = None,
) -> TurnResult:
    """
    Apply one agent turn. Commits the strategy update before the gate runs.

    Raises:
        CaseNotFoundError: no such case
        StrategyLockedError: non-empty delta for a locked case
    """
    settings = settings or get_settings()
    delta = delta or StrategyDelta()

    case = db.query(Dispute).filter(Dispute.id == case_id).first()
    if not case:
        raise CaseNotFoundError(case_id)

    if delta.is_empty():
        strategy = db.query(CaseStrategy).filter(CaseStrategy.case_id == case_id).first()
    else:
        strategy = apply_strategy_delta(db, case, delta)

    evidence_count = count_case_evidence(db, case_id)
    sufficiency = check_case_sufficiency(strategy, evidence_count, settings.sufficiency)
    validation = validate_ai_response(candidate_response or "", sufficiency, evidence_count)
    state = validate_conversation_state(strategy, evidence_count, settings.conversation_state, case.restricted)

    case.chat_state = state.state
    db.commit()

    gate = DecisionGate(db, generator=generator, settings=settings)
    gate_triggered = gate.execute(case_id)

    if validation.is_valid:
        action, response = TurnAction.SURFACE, candidate_response
    elif sufficiency.is_sufficient or gate_triggered:
        action, response = TurnAction.REPLACE, get_final_confirmation_message()
    else:
        action, response = TurnAction.REGENERATE, None

    logger.info(
        f"[Conversation] Case {case_id}: state={state.state.value} "
        f"score={sufficiency.score} action={action.value} gate={gate_triggered}"
    )
    return TurnResult(
        action=action,
        response=response,
        sufficiency=sufficiency,
        validation=validation,
        state=state,
        gate_triggered=gate_triggered,
    )


def reset_case(db: Session, case_id: str) -> Dispute:
    """
    Return a case to fact gathering: unlock it and drop its strategy and
    document plan. Evidence items and the timeline are kept.
    """
    case = db.query(Dispute).filter(Dispute.id == case_id).first()
    if not case:
        raise CaseNotFoundError(case_id)

    plan = db.query(DocumentPlan).filter(DocumentPlan.case_id == case_id).first()
    if plan is not None:
        db.delete(plan)
    strategy = db.query(CaseStrategy).filter(CaseStrategy.case_id == case_id).first()
    if strategy is not None:
        db.delete(strategy)

    case.strategy_locked = False
    case.phase = CasePhase.GATHERING
    case.chat_state = ChatState.GATHERING
    case.lifecycle_status = LifecycleStatus.DRAFT
    case.waiting_until = None
    db.flush()

    create_timeline_event(db, case_id, CaseEventType.CASE_RESET, "Case reset to fact gathering")
    logger.info(f"[Conversation] Case {case_id} reset")
    return case
