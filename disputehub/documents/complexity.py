"""
Case Complexity Scoring
=======================

Deterministic scoring of a completed strategy into a complexity tier and a
recommended document set.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..db.models import ComplexityLevel, DocumentStructure
from ..strategy.snapshot import StrategySnapshot


MAX_SCORE = 100

HIGH_THRESHOLD = 70
MEDIUM_THRESHOLD = 40

DISPUTE_TYPE_POINTS = {
    "employment": 25,
    "contract": 25,
    "property": 25,
    "consumer": 15,
    "debt": 15,
}
DEFAULT_DISPUTE_TYPE_POINTS = 10

BASE_DOCUMENTS = ["case_summary", "demand_letter"]

TYPE_SPECIFIC_DOCUMENTS = {
    "employment": ["employment_claim", "grievance_letter", "evidence_bundle"],
    "contract": ["breach_notice", "damages_calculation", "evidence_bundle"],
    "consumer": ["complaint_letter", "ccj_response", "evidence_bundle"],
    "property": ["dispute_notice", "claim_form", "evidence_bundle"],
    "debt": ["debt_validation", "dispute_letter", "statute_barred_notice"],
    "parking": ["appeal_letter", "witness_statement"],
}
DEFAULT_TYPE_SPECIFIC_DOCUMENTS = ["evidence_bundle"]

COMPREHENSIVE_EXTRAS = ["witness_statement", "chronology"]


@dataclass
class ScoringConfig:
    """Scorer tuning; dev_boost is added to every score before capping"""
    dev_boost: int = 0


@dataclass
class ComplexityScore:
    level: ComplexityLevel
    score: int
    breakdown: Dict[str, int]
    document_structure: DocumentStructure
    recommended_documents: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "level": self.level.value,
            "score": self.score,
            "breakdown": dict(self.breakdown),
            "document_structure": self.document_structure.value,
            "recommended_documents": list(self.recommended_documents),
        }


def _fact_points(fact_count: int) -> int:
    if fact_count >= 10:
        return 30
    if fact_count >= 5:
        return 20
    return 10


def _evidence_points(evidence_count: int) -> int:
    if evidence_count >= 5:
        return 25
    if evidence_count >= 2:
        return 15
    if evidence_count >= 1:
        return 5
    return 0


def _outcome_points(outcome: Optional[str]) -> int:
    length = len(outcome or "")
    if length > 200:
        return 20
    if length > 100:
        return 15
    if length > 50:
        return 10
    return 5


def _tier(score: int):
    if score >= HIGH_THRESHOLD:
        return ComplexityLevel.HIGH, DocumentStructure.COMPREHENSIVE
    if score >= MEDIUM_THRESHOLD:
        return ComplexityLevel.MEDIUM, DocumentStructure.INTERMEDIATE
    return ComplexityLevel.LOW, DocumentStructure.BASIC


def recommended_documents(dispute_type: str, level: ComplexityLevel) -> List[str]:
    """Recommended document tags for a dispute type at a given tier"""
    specific = TYPE_SPECIFIC_DOCUMENTS.get(dispute_type, DEFAULT_TYPE_SPECIFIC_DOCUMENTS)

    if level == ComplexityLevel.HIGH:
        docs = BASE_DOCUMENTS + specific + COMPREHENSIVE_EXTRAS
    elif level == ComplexityLevel.MEDIUM:
        docs = BASE_DOCUMENTS + specific[:2]
    else:
        docs = BASE_DOCUMENTS + specific[:1]

    return list(dict.fromkeys(docs))


def score_complexity(
    strategy: Any,
    evidence_count: int,
    config: Optional[ScoringConfig] = None,
) -> ComplexityScore:
    """
    Score a strategy's complexity.

    Args:
        strategy: CaseStrategy row, mapping or None
        evidence_count: Number of uploaded evidence items
        config: Scoring config (defaults to ScoringConfig())

    Returns:
        ComplexityScore with tier, capped score and per-bucket breakdown
    """
    config = config or ScoringConfig()
    snapshot = StrategySnapshot.from_any(strategy) or StrategySnapshot()
    dispute_type = snapshot.dispute_type_key

    breakdown = {
        "fact_count": _fact_points(len(snapshot.key_facts)),
        "evidence_count": _evidence_points(max(evidence_count, 0)),
        "dispute_type": DISPUTE_TYPE_POINTS.get(dispute_type, DEFAULT_DISPUTE_TYPE_POINTS),
        "outcome_complexity": _outcome_points(snapshot.desired_outcome),
    }
    if config.dev_boost:
        breakdown["dev_boost"] = config.dev_boost

    score = max(0, min(sum(breakdown.values()), MAX_SCORE))
    level, structure = _tier(score)

    return ComplexityScore(
        level=level,
        score=score,
        breakdown=breakdown,
        document_structure=structure,
        recommended_documents=recommended_documents(dispute_type, level),
    )
