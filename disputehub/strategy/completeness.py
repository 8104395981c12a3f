"""
Strategy Completeness Evaluator
===============================

Decides whether a strategy record has enough information for the decision
gate to lock the case and start document generation.

Rules (CompletenessPolicy defaults):
- dispute_type present and non-blank
- at least 8 key facts
- desired_outcome of at least 30 characters
- at least 1 evidence mention

Pure functions: no I/O, no exceptions. A missing strategy is incomplete.
"""

from dataclasses import dataclass, field
from typing import Any, List, Optional

from ..config import CompletenessPolicy
from .snapshot import StrategySnapshot


@dataclass
class StrategyCompleteness:
    """Per-field completeness breakdown for a strategy record"""
    is_complete: bool
    has_dispute_type: bool
    has_key_facts: bool
    has_desired_outcome: bool
    has_evidence: bool
    key_facts_count: int = 0
    evidence_count: int = 0
    outcome_length: int = 0
    missing_fields: List[str] = field(default_factory=list)
    policy_version: str = ""

    def to_dict(self) -> dict:
        return {
            "is_complete": self.is_complete,
            "has_dispute_type": self.has_dispute_type,
            "has_key_facts": self.has_key_facts,
            "has_desired_outcome": self.has_desired_outcome,
            "has_evidence": self.has_evidence,
            "key_facts_count": self.key_facts_count,
            "evidence_count": self.evidence_count,
            "outcome_length": self.outcome_length,
            "missing_fields": list(self.missing_fields),
            "policy_version": self.policy_version,
        }


def get_strategy_completeness_details(
    strategy: Any,
    policy: Optional[CompletenessPolicy] = None,
) -> StrategyCompleteness:
    """
    Evaluate a strategy against the completeness policy.

    Args:
        strategy: CaseStrategy row, mapping, StrategySnapshot or None
        policy: Thresholds to apply (defaults to CompletenessPolicy())

    Returns:
        StrategyCompleteness with flags, counts and missing field labels
    """
    policy = policy or CompletenessPolicy()
    snapshot = StrategySnapshot.from_any(strategy)

    if snapshot is None:
        return StrategyCompleteness(
            is_complete=False,
            has_dispute_type=False,
            has_key_facts=False,
            has_desired_outcome=False,
            has_evidence=False,
            missing_fields=[
                "dispute_type",
                f"key_facts (0/{policy.min_key_facts})",
                f"desired_outcome (min {policy.min_outcome_chars} chars)",
                f"evidence_mentioned (0/{policy.min_evidence_mentioned})",
            ],
            policy_version=policy.policy_version,
        )

    facts_count = len(snapshot.key_facts)
    evidence_count = len(snapshot.evidence_mentioned)
    outcome_length = len(snapshot.desired_outcome or "")

    has_dispute_type = bool((snapshot.dispute_type or "").strip())
    has_key_facts = facts_count >= policy.min_key_facts
    has_desired_outcome = snapshot.desired_outcome is not None and outcome_length >= policy.min_outcome_chars
    has_evidence = evidence_count >= policy.min_evidence_mentioned

    missing = []
    if not has_dispute_type:
        missing.append("dispute_type")
    if not has_key_facts:
        missing.append(f"key_facts ({facts_count}/{policy.min_key_facts})")
    if not has_desired_outcome:
        missing.append(f"desired_outcome (min {policy.min_outcome_chars} chars)")
    if not has_evidence:
        missing.append(f"evidence_mentioned ({evidence_count}/{policy.min_evidence_mentioned})")

    return StrategyCompleteness(
        is_complete=not missing,
        has_dispute_type=has_dispute_type,
        has_key_facts=has_key_facts,
        has_desired_outcome=has_desired_outcome,
        has_evidence=has_evidence,
        key_facts_count=facts_count,
        evidence_count=evidence_count,
        outcome_length=outcome_length,
        missing_fields=missing,
        policy_version=policy.policy_version,
    )


def is_strategy_complete(strategy: Any, policy: Optional[CompletenessPolicy] = None) -> bool:
    """True iff every completeness rule holds"""
    return get_strategy_completeness_details(strategy, policy).is_complete
