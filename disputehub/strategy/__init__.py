"""
Strategy Package
================

Readiness policies for a case strategy:
- completeness: may the decision gate lock the case
- sufficiency: has the conversation gathered enough, is the agent's reply safe
- state_validator: GATHERING / WAITING_FOR_EVIDENCE / READY / BLOCKED

The decision gate lives in `strategy.decision_gate` and is imported from
there directly (it depends on the documents package).
"""

from .completeness import StrategyCompleteness, get_strategy_completeness_details, is_strategy_complete
from .snapshot import StrategySnapshot
from .state_validator import StateValidationResult, validate_conversation_state
from .sufficiency import (
    SufficiencyCheck,
    check_case_sufficiency,
    detect_evidence_hallucination,
    is_lawyer_question,
    validate_ai_response,
)

__all__ = [
    "StrategyCompleteness",
    "get_strategy_completeness_details",
    "is_strategy_complete",
    "StrategySnapshot",
    "StateValidationResult",
    "validate_conversation_state",
    "SufficiencyCheck",
    "check_case_sufficiency",
    "detect_evidence_hallucination",
    "is_lawyer_question",
    "validate_ai_response",
]
