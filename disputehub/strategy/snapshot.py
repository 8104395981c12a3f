"""
Strategy Snapshot
=================

Read-only view of a strategy record. Evaluators accept ORM rows, request
dicts (snake_case or the chat agent's camelCase) or None, and all go through
`StrategySnapshot.from_any` so they see the same normalised data.
"""

from dataclasses import dataclass, field
from typing import Any, List, Optional


def _read(source: Any, *names: str) -> Any:
    for name in names:
        if isinstance(source, dict):
            if name in source:
                return source[name]
        elif hasattr(source, name):
            return getattr(source, name)
    return None


def _as_text_list(value: Any) -> List[str]:
    if not isinstance(value, (list, tuple)):
        return []
    return [str(item) for item in value if item is not None]


@dataclass(frozen=True)
class StrategySnapshot:
    dispute_type: Optional[str] = None
    key_facts: List[str] = field(default_factory=list)
    evidence_mentioned: List[str] = field(default_factory=list)
    desired_outcome: Optional[str] = None

    @classmethod
    def from_any(cls, strategy: Any) -> Optional["StrategySnapshot"]:
        if strategy is None:
            return None
        if isinstance(strategy, cls):
            return strategy
        return cls(
            dispute_type=_read(strategy, "dispute_type", "disputeType"),
            key_facts=_as_text_list(_read(strategy, "key_facts", "keyFacts")),
            evidence_mentioned=_as_text_list(_read(strategy, "evidence_mentioned", "evidenceMentioned")),
            desired_outcome=_read(strategy, "desired_outcome", "desiredOutcome"),
        )

    @property
    def dispute_type_key(self) -> str:
        return (self.dispute_type or "").strip().lower()

    def to_dict(self) -> dict:
        return {
            "dispute_type": self.dispute_type,
            "key_facts": list(self.key_facts),
            "evidence_mentioned": list(self.evidence_mentioned),
            "desired_outcome": self.desired_outcome,
        }
