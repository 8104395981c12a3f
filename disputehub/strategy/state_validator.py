"""
Conversation State Validator
============================

Classifies a conversation each turn from the core facts the agent has
extracted so far:

    GATHERING             core facts still missing
    WAITING_FOR_EVIDENCE  core facts complete, nothing uploaded yet
    READY                 core facts complete and evidence uploaded
    BLOCKED               restricted case, never proceeds

Core facts: dispute type, relationship, other party, what went wrong,
an amount or remedy, and a minimum number of key facts.
"""

from dataclasses import dataclass
from typing import Any, Optional

from ..config import ConversationStatePolicy
from ..db.models import ChatState
from .rules import RELATIONSHIP_TERMS, OTHER_PARTY_MARKERS, BREACH_TERMS, AMOUNT_TERMS
from .snapshot import StrategySnapshot


@dataclass
class CoreFacts:
    has_dispute_type: bool = False
    relationship: Optional[str] = None
    other_party: Optional[str] = None
    breach: Optional[str] = None
    amount: Optional[str] = None
    fact_count: int = 0

    def is_complete(self, policy: ConversationStatePolicy) -> bool:
        return (
            self.has_dispute_type
            and self.relationship is not None
            and self.other_party is not None
            and self.breach is not None
            and self.amount is not None
            and self.fact_count >= policy.min_key_facts
        )


@dataclass
class StateValidationResult:
    can_proceed: bool
    state: ChatState
    reason: Optional[str] = None
    policy_version: str = ""

    def to_dict(self) -> dict:
        return {
            "can_proceed": self.can_proceed,
            "state": self.state.value,
            "reason": self.reason,
            "policy_version": self.policy_version,
        }


def extract_relationship(snapshot: StrategySnapshot) -> Optional[str]:
    for fact in snapshot.key_facts:
        term = RELATIONSHIP_TERMS.first_match(fact)
        if term:
            return term
    return None


def extract_other_party(snapshot: StrategySnapshot, policy: ConversationStatePolicy) -> Optional[str]:
    for fact in snapshot.key_facts:
        if OTHER_PARTY_MARKERS.matches(fact) or len(fact) > policy.min_party_fact_chars:
            return fact
    return None


def extract_breach(snapshot: StrategySnapshot) -> Optional[str]:
    for fact in snapshot.key_facts:
        if BREACH_TERMS.matches(fact):
            return fact
    return None


def extract_amount(snapshot: StrategySnapshot) -> Optional[str]:
    if snapshot.desired_outcome and AMOUNT_TERMS.matches(snapshot.desired_outcome):
        return snapshot.desired_outcome
    return None


def extract_core_facts(strategy: Any, policy: Optional[ConversationStatePolicy] = None) -> CoreFacts:
    policy = policy or ConversationStatePolicy()
    snapshot = StrategySnapshot.from_any(strategy)
    if snapshot is None:
        return CoreFacts()

    return CoreFacts(
        has_dispute_type=bool(snapshot.dispute_type),
        relationship=extract_relationship(snapshot),
        other_party=extract_other_party(snapshot, policy),
        breach=extract_breach(snapshot),
        amount=extract_amount(snapshot),
        fact_count=len(snapshot.key_facts),
    )


def validate_conversation_state(
    strategy: Any,
    evidence_count: int,
    policy: Optional[ConversationStatePolicy] = None,
    restricted: bool = False,
) -> StateValidationResult:
    """
    Classify the conversation state for a strategy.

    Args:
        strategy: CaseStrategy row, mapping or None
        evidence_count: Number of evidence items actually uploaded
        policy: Thresholds (defaults to ConversationStatePolicy())
        restricted: Case is flagged as restricted (always BLOCKED)
    """
    policy = policy or ConversationStatePolicy()

    if restricted:
        return StateValidationResult(
            can_proceed=False,
            state=ChatState.BLOCKED,
            reason="Case is restricted",
            policy_version=policy.policy_version,
        )

    core = extract_core_facts(strategy, policy)

    if core.is_complete(policy):
        if evidence_count == 0:
            return StateValidationResult(
                can_proceed=False,
                state=ChatState.WAITING_FOR_EVIDENCE,
                reason="Evidence required but not uploaded",
                policy_version=policy.policy_version,
            )
        return StateValidationResult(
            can_proceed=True,
            state=ChatState.READY,
            policy_version=policy.policy_version,
        )

    return StateValidationResult(
        can_proceed=False,
        state=ChatState.GATHERING,
        reason="Core facts incomplete",
        policy_version=policy.policy_version,
    )
