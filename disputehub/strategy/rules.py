"""
Conversation Rule Tables
========================

Keyword and pattern tables used by the per-turn validation layer.

Each rule is data: a name, the terms or patterns it matches, and the verdict
it contributes. The evaluators in `sufficiency.py` and `state_validator.py`
only walk these tables, so phrase lists can be changed without touching the
evaluation code.
"""

import re
from dataclasses import dataclass
from typing import Iterable, Optional, Pattern, Tuple


@dataclass(frozen=True)
class KeywordRule:
    """Case-insensitive substring rule"""
    name: str
    terms: Tuple[str, ...]
    verdict: str

    def first_match(self, text: str) -> Optional[str]:
        lower = (text or "").lower()
        for term in self.terms:
            if term.lower() in lower:
                return term
        return None

    def matches(self, text: str) -> bool:
        return self.first_match(text) is not None

    def all_matches(self, text: str) -> list:
        lower = (text or "").lower()
        return [term for term in self.terms if term.lower() in lower]


@dataclass(frozen=True)
class PatternRule:
    """Regex rule (patterns compiled case-insensitive)"""
    name: str
    patterns: Tuple[Pattern, ...]
    verdict: str

    def matches(self, text: str) -> bool:
        return any(p.search(text or "") for p in self.patterns)


def _compile(patterns: Iterable[str]) -> Tuple[Pattern, ...]:
    return tuple(re.compile(p, re.IGNORECASE) for p in patterns)


# =============================================================================
# Sufficiency
# =============================================================================

# Dispute types for which an uploaded evidence item is mandatory
EVIDENCE_REQUIRED_DISPUTE_TYPES = KeywordRule(
    name="evidence_required_dispute_type",
    terms=(
        "employment",
        "landlord",
        "consumer",
        "parking",
        "debt",
        "contract",
        "unpaid",
        "payment",
        "breach",
    ),
    verdict="evidence_mandatory",
)

UNKNOWN_DISPUTE_TYPES = ("", "unknown")

FINAL_CONFIRMATION_MESSAGE = (
    "Thanks, I have everything I need.\n\n"
    "I'm now preparing your documents.\n\n"
    "You don't need to do anything further."
)

FINAL_CONFIRMATION_MARKERS = KeywordRule(
    name="final_confirmation",
    terms=("I have everything I need", "preparing your documents"),
    verdict="final_confirmation",
)


# =============================================================================
# Response guards
# =============================================================================

# Claims the agent may only make once evidence actually exists
EVIDENCE_HALLUCINATION_PHRASES = KeywordRule(
    name="evidence_hallucination",
    terms=(
        "I've reviewed the evidence",
        "I've reviewed the",
        "based on the uploaded",
        "based on the files",
        "the documents show",
        "the photos show",
        "the email confirms",
        "that's enough information to proceed",
        "I have everything needed",
        "your documents will be prepared",
    ),
    verdict="block_and_regenerate",
)

# Questions that re-interrogate facts the user already gave in plain English
LAWYER_QUESTIONS = PatternRule(
    name="lawyer_question",
    patterns=_compile((
        r"what (specific )?breach",
        r"how do you justify",
        r"specify the legal basis",
        r"what legal grounds",
        r"what is the breach",
        r"justify your claim",
        r"what breach are you claiming",
    )),
    verdict="block_and_regenerate",
)


# =============================================================================
# Core fact extraction
# =============================================================================

RELATIONSHIP_TERMS = KeywordRule(
    name="relationship",
    terms=(
        "employee", "worker", "self-employed", "contractor",
        "tenant", "lodger", "buyer", "customer", "patient",
    ),
    verdict="has_relationship",
)

OTHER_PARTY_MARKERS = KeywordRule(
    name="other_party",
    terms=("Ltd", "Limited", "Corp", "Council"),
    verdict="has_other_party",
)

BREACH_TERMS = KeywordRule(
    name="breach",
    terms=(
        "not paid", "didn't pay", "refused to pay", "unpaid",
        "breach", "damage", "broken", "failed", "unfair",
    ),
    verdict="has_breach",
)

AMOUNT_TERMS = KeywordRule(
    name="amount",
    terms=("£", "$", "compensation", "refund"),
    verdict="has_amount",
)
