"""
Jurisdiction & Forum Routing
============================

Rule-based classification of a case into jurisdiction, legal relationship,
counterparty and domain, followed by forum selection with hard rules and
an official-form allowlist/blocklist.

The result is stored on the document plan as routing metadata. A BLOCKED
forum status records an unmet prerequisite (e.g. ACAS early conciliation)
for the user; it does not stop document generation.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from ..strategy.snapshot import StrategySnapshot

logger = logging.getLogger(__name__)


# =============================================================================
# Official form identifiers
# =============================================================================

EMPLOYMENT_TRIBUNAL_CLAIM = "UK-ET1-EMPLOYMENT-TRIBUNAL-2024"
ACAS_EARLY_CONCILIATION_CERT = "UK-ACAS-EC-CERTIFICATE"
SCHEDULE_OF_LOSS = "UK-ET-SCHEDULE-OF-LOSS"
COUNTY_COURT_CLAIM_FORM = "UK-N1-COUNTY-COURT-CLAIM"
PARTICULARS_OF_CLAIM = "UK-N1-PARTICULARS-OF-CLAIM"
BENEFITS_APPEAL_FORM = "UK-SSCS1-SOCIAL-SECURITY-APPEAL"
MANDATORY_RECONSIDERATION_REQUEST = "UK-SSCS5-MANDATORY-RECONSIDERATION"
ADMIN_REVIEW_REQUEST = "UK-HO-ADMIN-REVIEW-REQUEST"
GUILTY_PLEA_LETTER = "UK-MAG-GUILTY-PLEA-LETTER"
MITIGATION_STATEMENT = "UK-MAG-MITIGATION-STATEMENT"
MEANS_FORM = "UK-MAG-MC100-MEANS-FORM"
POPLA_APPEAL = "UK-POPLA-PARKING-APPEAL"
WITNESS_STATEMENT_FORM = "UK-CPR32-WITNESS-STATEMENT"
EVIDENCE_BUNDLE_INDEX = "UK-EVIDENCE-BUNDLE-INDEX"
SCHEDULE_OF_DAMAGES = "UK-SCHEDULE-OF-DAMAGES"
LETTER_BEFORE_ACTION = "UK-LBA-GENERAL"
DEMAND_LETTER = "UK-DEMAND-LETTER-GENERAL"
FORMAL_COMPLAINT_LETTER = "UK-COMPLAINT-LETTER-GENERAL"

ALLOWED_FORMS_BY_FORUM = {
    "employment_tribunal": [
        EMPLOYMENT_TRIBUNAL_CLAIM, ACAS_EARLY_CONCILIATION_CERT, SCHEDULE_OF_LOSS, WITNESS_STATEMENT_FORM,
    ],
    "county_court_small_claims": [
        COUNTY_COURT_CLAIM_FORM, PARTICULARS_OF_CLAIM, LETTER_BEFORE_ACTION, WITNESS_STATEMENT_FORM,
    ],
    "first_tier_tribunal_sscs": [BENEFITS_APPEAL_FORM, MANDATORY_RECONSIDERATION_REQUEST],
    "magistrates_court": [GUILTY_PLEA_LETTER, MITIGATION_STATEMENT, MEANS_FORM],
    "popla_parking_appeal": [POPLA_APPEAL],
    "home_office_admin_review": [ADMIN_REVIEW_REQUEST],
}
DEFAULT_ALLOWED_FORMS = [LETTER_BEFORE_ACTION, FORMAL_COMPLAINT_LETTER]
SUPPORTING_FORMS = [EVIDENCE_BUNDLE_INDEX, SCHEDULE_OF_DAMAGES]


@dataclass
class Prerequisite:
    id: str
    name: str
    met: bool = False
    instruction: Optional[str] = None

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "met": self.met, "instruction": self.instruction}


@dataclass
class RoutingDecision:
    """Where a case should be brought and which forms apply"""
    jurisdiction: str
    relationship: str
    counterparty: str
    domain: str
    forum: str
    status: str  # APPROVED | BLOCKED
    reason: str
    confidence: float
    allowed_documents: List[str] = field(default_factory=list)
    blocked_documents: List[str] = field(default_factory=list)
    prerequisites: List[Prerequisite] = field(default_factory=list)
    time_limit_days: Optional[int] = None
    time_limit_deadline: Optional[datetime] = None
    time_limit_description: Optional[str] = None

    @property
    def prerequisites_met(self) -> bool:
        return all(p.met for p in self.prerequisites)

    @property
    def user_message(self) -> str:
        if self.status == "BLOCKED":
            names = ", ".join(p.name for p in self.prerequisites)
            return f"Before you submit, you need to: {names}"
        return f"Your case will be handled through {self.forum.replace('_', ' ')}. {self.reason}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "jurisdiction": self.jurisdiction,
            "relationship": self.relationship,
            "counterparty": self.counterparty,
            "domain": self.domain,
            "forum": self.forum,
            "status": self.status,
            "reason": self.reason,
            "confidence": self.confidence,
            "prerequisites": [p.to_dict() for p in self.prerequisites],
            "prerequisites_met": self.prerequisites_met,
            "time_limit": {
                "days": self.time_limit_days,
                "deadline": self.time_limit_deadline.isoformat() if self.time_limit_deadline else None,
                "description": self.time_limit_description,
            } if self.time_limit_days else None,
            "user_message": self.user_message,
        }


# =============================================================================
# Classification
# =============================================================================

def _has_any(text: str, *terms: str) -> bool:
    return any(re.search(rf"\b{re.escape(term)}\b", text) for term in terms)


def determine_jurisdiction(text: str) -> str:
    if _has_any(text, "scotland", "scottish"):
        return "scotland"
    if _has_any(text, "northern ireland", "belfast"):
        return "northern_ireland"
    return "england_wales"


def determine_relationship(text: str) -> str:
    if _has_any(text, "employee", "employed", "employer", "employment"):
        if _has_any(text, "self-employed", "contractor", "invoice", "ltd", "business"):
            return "self_employed"
        if _has_any(text, "casual", "zero hours", "agency"):
            return "worker"
        return "employee"

    if _has_any(text, "tenant", "landlord", "rent"):
        if _has_any(text, "council", "housing association"):
            return "secure_tenant"
        if _has_any(text, "lodger", "live with landlord"):
            return "lodger"
        return "assured_shorthold_tenant"

    if _has_any(text, "benefit", "universal credit", "pip", "esa", "dwp"):
        return "benefit_claimant"
    if _has_any(text, "visa", "immigration", "home office"):
        return "visa_applicant"
    if _has_any(text, "tax", "hmrc", "vat"):
        return "taxpayer"
    if _has_any(text, "driving", "speeding", "traffic", "parking"):
        return "driver"
    if _has_any(text, "bought", "purchased", "faulty goods"):
        return "consumer"
    if "unpaid" in text and "work" in text:
        return "self_employed"
    return "complainant"


def determine_counterparty(text: str) -> str:
    if _has_any(text, "dwp", "hmrc", "home office", "council"):
        return "government_body"
    if _has_any(text, "ltd", "limited", "plc", "company"):
        return "private_company"
    if _has_any(text, "nhs", "police", "school"):
        return "public_body"
    return "unknown"


def determine_domain(text: str, relationship: str) -> str:
    if relationship in ("employee", "worker"):
        return "employment"
    if "tenant" in relationship or relationship == "lodger":
        return "housing"
    if relationship == "benefit_claimant":
        return "social_security"
    if relationship == "visa_applicant":
        return "immigration"
    if relationship == "taxpayer":
        return "tax"
    if relationship == "driver":
        return "parking" if "parking" in text else "traffic_offence"
    if relationship == "consumer":
        return "consumer"
    if relationship == "self_employed" and "unpaid" in text:
        return "debt"
    return "other"


def classification_confidence(relationship: str, domain: str, fact_count: int) -> float:
    confidence = 0.5
    if relationship not in ("complainant", "unknown"):
        confidence += 0.2
    if domain != "other":
        confidence += 0.2
    if fact_count >= 5:
        confidence += 0.1
    return round(min(confidence, 0.99), 2)


# =============================================================================
# Forum selection
# =============================================================================

def _select_forum(relationship: str, domain: str) -> dict:
    if domain == "employment":
        return {
            "forum": "employment_tribunal",
            "status": "BLOCKED",
            "reason": "Employment Tribunal jurisdiction applies for employees and workers",
            "prerequisites": [Prerequisite(
                id="acas_ec",
                name="ACAS Early Conciliation Certificate",
                instruction="Complete ACAS Early Conciliation before filing an ET1 claim: www.acas.org.uk/early-conciliation",
            )],
        }

    if relationship == "self_employed":
        return {
            "forum": "county_court_small_claims",
            "status": "APPROVED",
            "reason": "Self-employed workers cannot use the Employment Tribunal; the County Court applies",
        }

    if domain == "social_security":
        return {
            "forum": "first_tier_tribunal_sscs",
            "status": "BLOCKED",
            "reason": "Benefits appeals go through DWP Mandatory Reconsideration first, then the First-tier Tribunal",
            "prerequisites": [Prerequisite(
                id="mandatory_reconsideration",
                name="Mandatory Reconsideration",
                instruction="Request Mandatory Reconsideration from DWP before appealing to the tribunal",
            )],
        }

    if domain == "immigration":
        return {
            "forum": "home_office_admin_review",
            "status": "APPROVED",
            "reason": "Immigration decisions go through Home Office Administrative Review first",
            "time_limit_days": 14,
            "time_limit_description": "Admin review must be requested within 14 days of the decision",
        }

    if domain == "traffic_offence":
        return {
            "forum": "magistrates_court",
            "status": "APPROVED",
            "reason": "Traffic offences are handled by the Magistrates' Court",
        }

    if domain == "parking":
        return {
            "forum": "popla_parking_appeal",
            "status": "APPROVED",
            "reason": "Private parking tickets are appealed to POPLA",
            "time_limit_days": 28,
            "time_limit_description": "Appeal within 28 days of the notice",
        }

    return {
        "forum": "county_court_small_claims",
        "status": "APPROVED",
        "reason": "General civil dispute; the County Court small claims track applies",
    }


def _blocked_forms(forum: str, relationship: str) -> List[str]:
    blocked = []
    if relationship == "self_employed":
        blocked += [EMPLOYMENT_TRIBUNAL_CLAIM, ACAS_EARLY_CONCILIATION_CERT, SCHEDULE_OF_LOSS]
    if "tribunal" in forum:
        blocked += [COUNTY_COURT_CLAIM_FORM, PARTICULARS_OF_CLAIM]
    if "court" in forum and "magistrates" not in forum:
        blocked += [EMPLOYMENT_TRIBUNAL_CLAIM, BENEFITS_APPEAL_FORM]
    if forum == "magistrates_court":
        blocked += [COUNTY_COURT_CLAIM_FORM, LETTER_BEFORE_ACTION, DEMAND_LETTER]
    return list(dict.fromkeys(blocked))


def route_case(strategy: Any, case_title: str = "", now: Optional[datetime] = None) -> RoutingDecision:
    """
    Classify a case and select its forum.

    Args:
        strategy: CaseStrategy row, mapping or None
        case_title: Dispute title (included in keyword matching)
        now: Reference time for time-limit deadlines (defaults to utcnow)
    """
    now = now or datetime.utcnow()
    snapshot = StrategySnapshot.from_any(strategy) or StrategySnapshot()

    text = " ".join([
        case_title or "",
        snapshot.dispute_type or "",
        " ".join(snapshot.key_facts),
        snapshot.desired_outcome or "",
    ]).lower()

    jurisdiction = determine_jurisdiction(text)
    relationship = determine_relationship(text)
    counterparty = determine_counterparty(text)
    domain = determine_domain(text, relationship)
    forum = _select_forum(relationship, domain)

    days = forum.get("time_limit_days")
    decision = RoutingDecision(
        jurisdiction=jurisdiction,
        relationship=relationship,
        counterparty=counterparty,
        domain=domain,
        forum=forum["forum"],
        status=forum["status"],
        reason=forum["reason"],
        confidence=classification_confidence(relationship, domain, len(snapshot.key_facts)),
        allowed_documents=SUPPORTING_FORMS + ALLOWED_FORMS_BY_FORUM.get(forum["forum"], DEFAULT_ALLOWED_FORMS),
        blocked_documents=_blocked_forms(forum["forum"], relationship),
        prerequisites=forum.get("prerequisites", []),
        time_limit_days=days,
        time_limit_deadline=now + timedelta(days=days) if days else None,
        time_limit_description=forum.get("time_limit_description"),
    )

    logger.info(
        f"[Routing] {decision.jurisdiction}/{decision.domain} -> {decision.forum} ({decision.status})"
    )
    return decision
