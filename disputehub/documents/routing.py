"""
Document Routing
================

Chooses the ordered list of documents to generate for a case from its
complexity tier and dispute type.

- LOW: a single formal letter covering the whole dispute
- MEDIUM / HIGH: a multi-document docket (cover letter, main letter,
  evidence schedule, timeline, then dispute-specific documents)
"""

from dataclasses import dataclass
from typing import Any, List, Optional

from ..db.models import ComplexityLevel
from ..strategy.rules import KeywordRule
from ..strategy.snapshot import StrategySnapshot


COVER_LETTER = "COVER_LETTER"
FORMAL_LETTER = "FORMAL_LETTER"
EVIDENCE_SCHEDULE = "EVIDENCE_SCHEDULE"
TIMELINE = "TIMELINE"
WITNESS_STATEMENT = "WITNESS_STATEMENT"
STATUTORY_DECLARATION = "STATUTORY_DECLARATION"
APPEAL_FORM = "APPEAL_FORM"

DOCUMENT_DEFINITIONS = {
    COVER_LETTER: ("Cover Letter", "Summary and submission guidance for your document package"),
    FORMAL_LETTER: ("Formal Dispute Letter", "Detailed letter addressing your dispute"),
    EVIDENCE_SCHEDULE: ("Evidence List", "Organised schedule of supporting evidence"),
    TIMELINE: ("Event Timeline", "Chronological breakdown of key events"),
    WITNESS_STATEMENT: ("Witness Statement Template", "Template for witness accounts and statements"),
    STATUTORY_DECLARATION: ("Statutory Declaration", "Formal legal declaration under oath"),
    APPEAL_FORM: ("Appeal Form", "Structured appeal or complaint form"),
}

TIMELINE_MIN_FACTS = 5

WITNESS_TERMS = KeywordRule(
    name="witness",
    terms=("witness", "colleague", "friend", "family", "testimony"),
    verdict="has_witness",
)

MEDICAL_TERMS = KeywordRule(
    name="medical",
    terms=("medical", "doctor", "hospital", "diagnosis", "prescription", "health"),
    verdict="has_medical",
)

APPEAL_TERMS = KeywordRule(
    name="appeal",
    terms=("tribunal", "appeal", "hearing", "adjudication"),
    verdict="requires_appeal",
)

NOT_THE_DRIVER_TERMS = KeywordRule(
    name="not_the_driver",
    terms=("not the driver", "wasn't driving", "someone else"),
    verdict="requires_declaration",
)


@dataclass
class PlannedDocument:
    type: str
    title: str
    description: str
    order: int
    required: bool = True

    def to_dict(self) -> dict:
        return {
            "type": self.type,
            "title": self.title,
            "description": self.description,
            "order": self.order,
            "required": self.required,
        }


def _dispute_label(snapshot: StrategySnapshot) -> str:
    label = (snapshot.dispute_type or "dispute").replace("_", " ")
    return label[:1].upper() + label[1:]


def _facts_and_evidence(snapshot: StrategySnapshot) -> str:
    return " ".join(snapshot.evidence_mentioned + snapshot.key_facts)


class _Docket:
    """Accumulates planned documents with sequential order numbers"""

    def __init__(self):
        self.documents: List[PlannedDocument] = []

    def add(self, doc_type: str, required: bool = True, title: Optional[str] = None,
            description: Optional[str] = None):
        default_title, default_description = DOCUMENT_DEFINITIONS[doc_type]
        self.documents.append(PlannedDocument(
            type=doc_type,
            title=title or default_title,
            description=description or default_description,
            order=len(self.documents) + 1,
            required=required,
        ))

    def has(self, doc_type: str) -> bool:
        return any(d.type == doc_type for d in self.documents)


def _simple_documents(snapshot: StrategySnapshot) -> List[PlannedDocument]:
    docket = _Docket()
    docket.add(FORMAL_LETTER, title=f"{_dispute_label(snapshot)} Dispute Letter")
    return docket.documents


def _docket_documents(snapshot: StrategySnapshot) -> List[PlannedDocument]:
    docket = _Docket()
    docket.add(COVER_LETTER)
    docket.add(FORMAL_LETTER, title=f"Main {_dispute_label(snapshot)} Letter")

    if snapshot.evidence_mentioned:
        docket.add(EVIDENCE_SCHEDULE)
    if len(snapshot.key_facts) >= TIMELINE_MIN_FACTS:
        docket.add(TIMELINE)

    combined = _facts_and_evidence(snapshot)
    outcome = snapshot.desired_outcome or ""
    dispute_type = snapshot.dispute_type_key

    if dispute_type == "employment":
        if WITNESS_TERMS.matches(combined):
            docket.add(WITNESS_STATEMENT, required=False)
        if APPEAL_TERMS.matches(outcome):
            docket.add(
                APPEAL_FORM,
                title="Employment Tribunal Form",
                description="Structured form for employment tribunal submission",
            )

    elif dispute_type == "benefits":
        docket.add(APPEAL_FORM, title="Benefits Appeal Form", description="Structured form for benefits appeal")
        if MEDICAL_TERMS.matches(combined):
            docket.add(
                STATUTORY_DECLARATION,
                required=False,
                title="Medical Evidence Declaration",
                description="Declaration for medical evidence submission",
            )

    elif dispute_type == "immigration":
        if not docket.has(EVIDENCE_SCHEDULE):
            docket.add(EVIDENCE_SCHEDULE)
        if WITNESS_TERMS.matches(combined):
            docket.add(
                WITNESS_STATEMENT,
                required=False,
                title="Supporting Statement",
                description="Supporting statements from family, employer, or references",
            )

    elif dispute_type == "landlord":
        if not docket.has(TIMELINE):
            docket.add(TIMELINE)

    elif dispute_type == "speeding_ticket":
        if NOT_THE_DRIVER_TERMS.matches(" ".join(snapshot.key_facts)) or "statutory declaration" in outcome.lower():
            docket.add(
                STATUTORY_DECLARATION,
                required=False,
                description="Legal declaration that you were not the driver",
            )

    return docket.documents


def route_documents(strategy: Any, level: ComplexityLevel) -> List[PlannedDocument]:
    """
    Build the ordered document list for a strategy at a complexity tier.

    Always returns at least one document.
    """
    snapshot = StrategySnapshot.from_any(strategy) or StrategySnapshot()
    if level == ComplexityLevel.LOW:
        return _simple_documents(snapshot)
    return _docket_documents(snapshot)
