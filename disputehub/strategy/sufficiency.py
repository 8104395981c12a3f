"""
Case Sufficiency & Response Guards
==================================

Per-turn checks run against the chat agent's candidate reply:

- check_case_sufficiency: 4 rules x 25 points, sufficient at 100
- detect_evidence_hallucination: claims about evidence that was never uploaded
- is_lawyer_question: questions demanding legal justification from the user
- validate_ai_response: combines the above into allow / block verdicts

These checks only police the conversation. Locking a case is decided by
the completeness evaluator, which uses its own (stricter) policy.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional

from ..config import SufficiencyPolicy
from .rules import (
    EVIDENCE_REQUIRED_DISPUTE_TYPES,
    UNKNOWN_DISPUTE_TYPES,
    FINAL_CONFIRMATION_MESSAGE,
    FINAL_CONFIRMATION_MARKERS,
    EVIDENCE_HALLUCINATION_PHRASES,
    LAWYER_QUESTIONS,
)
from .snapshot import StrategySnapshot

logger = logging.getLogger(__name__)


@dataclass
class SufficiencyCheck:
    is_sufficient: bool
    score: int
    missing_items: List[str] = field(default_factory=list)
    evidence_required: bool = False
    policy_version: str = ""

    def to_dict(self) -> dict:
        return {
            "is_sufficient": self.is_sufficient,
            "score": self.score,
            "missing_items": list(self.missing_items),
            "evidence_required": self.evidence_required,
            "policy_version": self.policy_version,
        }


@dataclass
class HallucinationCheck:
    has_hallucination: bool
    violations: List[str] = field(default_factory=list)


@dataclass
class ResponseValidation:
    is_valid: bool
    reason: Optional[str] = None
    should_block: bool = False


def check_case_sufficiency(
    strategy: Any,
    evidence_count: int,
    policy: Optional[SufficiencyPolicy] = None,
) -> SufficiencyCheck:
    """
    Score whether the conversation has gathered enough to prepare documents.

    Args:
        strategy: CaseStrategy row, mapping or None
        evidence_count: Number of evidence items actually uploaded
        policy: Scoring thresholds (defaults to SufficiencyPolicy())
    """
    policy = policy or SufficiencyPolicy()
    snapshot = StrategySnapshot.from_any(strategy) or StrategySnapshot()

    score = 0
    missing = []

    dispute_type = snapshot.dispute_type_key
    if dispute_type not in UNKNOWN_DISPUTE_TYPES:
        score += policy.points_per_rule
    else:
        missing.append("dispute type")

    if snapshot.key_facts:
        score += policy.points_per_rule
    else:
        missing.append("facts about what happened")

    if len(snapshot.desired_outcome or "") >= policy.min_outcome_chars:
        score += policy.points_per_rule
    else:
        missing.append("desired outcome")

    evidence_required = EVIDENCE_REQUIRED_DISPUTE_TYPES.matches(dispute_type)
    if evidence_count > 0:
        score += policy.points_per_rule
    elif evidence_required:
        missing.append("evidence upload")
    else:
        missing.append("evidence upload (recommended)")

    return SufficiencyCheck(
        is_sufficient=score >= policy.required_score,
        score=score,
        missing_items=missing,
        evidence_required=evidence_required,
        policy_version=policy.policy_version,
    )


def detect_evidence_hallucination(response: str, evidence_count: int) -> HallucinationCheck:
    """Flag evidence claims made when no evidence has been uploaded"""
    if evidence_count > 0:
        return HallucinationCheck(has_hallucination=False)

    violations = EVIDENCE_HALLUCINATION_PHRASES.all_matches(response)
    return HallucinationCheck(has_hallucination=bool(violations), violations=violations)


def is_lawyer_question(message: str) -> bool:
    return LAWYER_QUESTIONS.matches(message)


def get_final_confirmation_message() -> str:
    return FINAL_CONFIRMATION_MESSAGE


def validate_ai_response(
    response: str,
    sufficiency: SufficiencyCheck,
    evidence_count: int,
) -> ResponseValidation:
    """
    Decide whether a candidate reply may be shown to the user.

    Blocks (in order): lawyer questions, evidence hallucinations, and any
    reply other than the final confirmation once the case is sufficient.
    """
    if is_lawyer_question(response):
        logger.warning("[Sufficiency] Blocked lawyer-style question")
        return ResponseValidation(
            is_valid=False,
            reason="Response asks the user to justify a legal position",
            should_block=True,
        )

    hallucination = detect_evidence_hallucination(response, evidence_count)
    if hallucination.has_hallucination:
        logger.warning(
            f"[Sufficiency] Blocked evidence hallucination: {', '.join(hallucination.violations)}"
        )
        return ResponseValidation(
            is_valid=False,
            reason=f"Response references evidence that does not exist: {hallucination.violations[0]}",
            should_block=True,
        )

    if sufficiency.is_sufficient and not FINAL_CONFIRMATION_MARKERS.matches(response):
        return ResponseValidation(
            is_valid=False,
            reason="Case is sufficient; only the final confirmation may be sent",
            should_block=True,
        )

    return ResponseValidation(is_valid=True)
