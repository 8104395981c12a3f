"""
Document Generation
===================

Drafts the documents of a plan and tracks their status.

Status flow per document:
    PENDING -> GENERATING -> COMPLETED (file_url set)
                          -> FAILED (retry_count + 1, last_error set)

A FAILED document is regenerated by the next batch run or by an explicit
retry, as long as its retry_count is below `max_document_retries`. A
document stuck in GENERATING for longer than `generation_stale_minutes`
is treated like a FAILED one. One document failing never stops the others.

The drafting itself is a collaborator (`DocumentGenerator`). The default
`LLMDocumentGenerator` drafts letters through OpenRouter, fills template
documents locally and stores each result as a DOCX file under
`storage_path`.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ..config import Settings, get_settings
from ..db.models import (
    CaseStrategy, Dispute, DocumentPlan, DocumentStatus, EvidenceItem,
    GeneratedDocument, LifecycleStatus,
)
from ..errors import (
    DocumentGenerationError, DocumentNotFoundError, DocumentNotRetryableError, DocumentStateError,
)
from ..llm.openrouter_base import OpenRouterBaseClient
from ..strategy.snapshot import StrategySnapshot
from ..timeline import create_document_generated_event
from .exporter import build_document_docx
from .routing import (
    APPEAL_FORM, COVER_LETTER, DOCUMENT_DEFINITIONS, EVIDENCE_SCHEDULE, FORMAL_LETTER,
    STATUTORY_DECLARATION, TIMELINE, WITNESS_STATEMENT,
)

logger = logging.getLogger(__name__)


FOLLOW_UP_LETTER = "FOLLOW_UP_LETTER"

# Filled locally, no LLM call
TEMPLATE_DOCUMENTS = {COVER_LETTER, WITNESS_STATEMENT, APPEAL_FORM, STATUTORY_DECLARATION, EVIDENCE_SCHEDULE}

MIN_DRAFT_CHARS = 50

SYSTEM_PROMPT = (
    "You are a UK legal document writer. Write clear, formal, professional content "
    "suitable for legal proceedings. Follow UK legal conventions and use formal British English."
)


@dataclass
class EvidenceRef:
    """Evidence item as referenced inside a document"""
    index: int
    title: str
    file_type: str = "OTHER"
    description: Optional[str] = None
    evidence_date: Optional[datetime] = None

    def label(self) -> str:
        text = f"Evidence Item #{self.index} ({self.title})"
        if self.evidence_date:
            text += f" dated {self.evidence_date.strftime('%d/%m/%Y')}"
        return text


@dataclass
class BatchResult:
    completed: int = 0
    failed: int = 0
    pending: int = 0
    documents: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "completed": self.completed,
            "failed": self.failed,
            "pending": self.pending,
            "documents": list(self.documents),
        }


# =============================================================================
# Collaborators
# =============================================================================

class DocumentGenerator:
    """
    Produces the file for one planned document and returns its URL.

    Subclasses that set `uses_evidence = True` also receive the case's
    evidence as the `evidence` keyword argument.
    """

    uses_evidence = False

    def generate(
        self,
        document_id: str,
        document_type: str,
        case_id: str,
        strategy: Any,
        total_documents: int,
    ) -> str:
        raise NotImplementedError

    def document_text(self, document_id: str) -> Optional[str]:
        """Plain text of the last draft for a document, when the generator keeps it"""
        return None

    def close(self):
        pass


def _evidence_lines(evidence: List[EvidenceRef]) -> str:
    return "\n".join(f"- {ref.label()}" for ref in evidence)


def _letter_prompt(snapshot: StrategySnapshot, evidence: List[EvidenceRef]) -> str:
    evidence_block = ""
    evidence_rule = "States the facts clearly"
    if evidence:
        evidence_block = f"\nAvailable Evidence Items (reference by index only):\n{_evidence_lines(evidence)}\n"
        evidence_rule = 'References evidence using ONLY the format "Evidence Item #X"'

    return f"""Generate a formal dispute letter.

Case Information:
- Dispute Type: {snapshot.dispute_type or "Not specified"}
- Key Facts: {"; ".join(snapshot.key_facts)}
- Desired Outcome: {snapshot.desired_outcome or "Not specified"}
{evidence_block}
Write a professional formal letter with 3-5 paragraphs that:
1. Clearly states the nature of the dispute
2. Presents the key facts in a logical order
3. {evidence_rule}
4. States the desired resolution

Requirements:
- Write in complete paragraphs only (no bullet points)
- Do not use phrases like "see attached" or "available on request"

Return ONLY the body paragraphs (no addresses, dates, salutations).
Separate paragraphs with double line breaks."""


def _timeline_prompt(snapshot: StrategySnapshot) -> str:
    facts = "\n".join(f"- {fact}" for fact in snapshot.key_facts)
    return f"""Create a chronological timeline of events.

Key Facts:
{facts}

Order these events chronologically. Each event should be a single clear statement.
Return one event per line, with no formatting and no numbering."""


def _follow_up_prompt(snapshot: StrategySnapshot, evidence: List[EvidenceRef]) -> str:
    evidence_block = f"\nAvailable Evidence Items:\n{_evidence_lines(evidence)}\n" if evidence else ""
    return f"""Generate a follow-up letter for a case where the initial letter received no response.

Case Information:
- Dispute Type: {snapshot.dispute_type or "Not specified"}
- Key Facts: {"; ".join(snapshot.key_facts)}
- Desired Outcome: {snapshot.desired_outcome or "Not specified"}
{evidence_block}
Write a professional follow-up letter with 2-4 paragraphs that:
1. Reinforces the key points from the original letter
2. References the missed deadline
3. Uses a firmer (but still professional) tone
4. Requests a response within 14 days

Do not mention lawyers or court proceedings.
Return ONLY the body paragraphs, separated by double line breaks."""


def _template_paragraphs(
    document_type: str,
    snapshot: StrategySnapshot,
    evidence: List[EvidenceRef],
    total_documents: int,
) -> List[str]:
    dispute = (snapshot.dispute_type or "dispute").replace("_", " ")

    if document_type == COVER_LETTER:
        return [
            f"This package contains {total_documents} documents prepared for your {dispute} dispute.",
            "Read each document carefully and check every fact before sending.",
            "Send the main letter first and keep a copy of everything you send, together with proof of postage or delivery.",
            "Allow 14 days for a response before taking further steps.",
        ]

    if document_type == EVIDENCE_SCHEDULE:
        if not evidence:
            return ["No evidence items have been uploaded for this case yet."]
        rows = []
        for ref in evidence:
            row = f"{ref.label()} [{ref.file_type}]"
            if ref.description:
                row += f": {ref.description}"
            rows.append(row)
        return rows

    if document_type == WITNESS_STATEMENT:
        return [
            "Full name of witness:",
            "Address:",
            "Relationship to the claimant:",
            "I, the above named witness, state as follows:",
            "1. Describe what you saw or heard, in date order.",
            "2. Give dates, times and places wherever possible.",
            "I believe that the facts stated in this witness statement are true.",
            "Signed:                              Date:",
        ]

    if document_type == APPEAL_FORM:
        return [
            f"Appeal regarding: {dispute}",
            "Decision being appealed:",
            "Date of decision:",
            "Grounds for appeal:",
        ] + [f"- {fact}" for fact in snapshot.key_facts] + [
            f"Outcome sought: {snapshot.desired_outcome or ''}",
        ]

    if document_type == STATUTORY_DECLARATION:
        return [
            "I, [full name], of [address], do solemnly and sincerely declare that:",
        ] + [f"- {fact}" for fact in snapshot.key_facts] + [
            "and I make this solemn declaration conscientiously believing the same to be true "
            "and by virtue of the provisions of the Statutory Declarations Act 1835.",
            "Declared at:                         Date:",
            "Before me (solicitor / commissioner for oaths):",
        ]

    raise DocumentGenerationError(f"Unknown template document type: {document_type}")


class LLMDocumentGenerator(DocumentGenerator):
    """
    Default generator: OpenRouter drafts letters and timelines, templates
    cover the rest, and each document is saved as DOCX on local storage.
    """

    uses_evidence = True

    def __init__(
        self,
        client: Optional[OpenRouterBaseClient] = None,
        storage_path: Optional[str] = None,
        settings: Optional[Settings] = None,
    ):
        settings = settings or get_settings()
        self.client = client or OpenRouterBaseClient(
            api_key=settings.openrouter_api_key,
            model=settings.openrouter_model,
            base_url=settings.openrouter_base_url,
            timeout=settings.llm_timeout,
        )
        self.storage_path = Path(storage_path or settings.storage_path)
        self._drafts: Dict[str, str] = {}

    def _draft(self, prompt: str) -> str:
        result = self.client.call(
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            temperature=0.3,
            max_tokens=1500,
        )
        if not result.success:
            raise DocumentGenerationError(f"LLM call failed: {result.error}")

        content = (result.content or "").strip()
        if len(content) < MIN_DRAFT_CHARS:
            raise DocumentGenerationError(f"LLM returned too little content ({len(content)} chars)")
        return content

    def draft_paragraphs(
        self,
        document_type: str,
        snapshot: StrategySnapshot,
        evidence: List[EvidenceRef],
        total_documents: int,
    ) -> List[str]:
        if document_type in TEMPLATE_DOCUMENTS:
            return _template_paragraphs(document_type, snapshot, evidence, total_documents)

        if document_type == FORMAL_LETTER:
            text = self._draft(_letter_prompt(snapshot, evidence))
            return [p.strip() for p in text.split("\n\n") if p.strip()]
        if document_type == TIMELINE:
            text = self._draft(_timeline_prompt(snapshot))
            return [line.strip() for line in text.splitlines() if line.strip()]
        if document_type == FOLLOW_UP_LETTER:
            text = self._draft(_follow_up_prompt(snapshot, evidence))
            return [p.strip() for p in text.split("\n\n") if p.strip()]

        raise DocumentGenerationError(f"Unknown document type: {document_type}")

    def generate(
        self,
        document_id: str,
        document_type: str,
        case_id: str,
        strategy: Any,
        total_documents: int,
        *,
        evidence: Optional[List[EvidenceRef]] = None,
    ) -> str:
        snapshot = StrategySnapshot.from_any(strategy) or StrategySnapshot()
        evidence = evidence or []

        paragraphs = self.draft_paragraphs(document_type, snapshot, evidence, total_documents)
        title = DOCUMENT_DEFINITIONS.get(document_type, ("Follow-up Letter", ""))[0]
        content = build_document_docx(
            title=title,
            paragraphs=paragraphs,
            subtitle=f"Prepared {datetime.utcnow().strftime('%d %B %Y')}",
            numbered=document_type == TIMELINE,
        )

        case_dir = self.storage_path / case_id
        case_dir.mkdir(parents=True, exist_ok=True)
        path = case_dir / f"{document_type.lower()}-{document_id}.docx"
        path.write_bytes(content)
        self._drafts[document_id] = "\n\n".join(paragraphs)

        logger.info(f"[Document Gen] Stored {document_type} for case {case_id} at {path}")
        return str(path)

    def document_text(self, document_id: str) -> Optional[str]:
        return self._drafts.pop(document_id, None)

    def close(self):
        self.client.close()


_generator: Optional[DocumentGenerator] = None


def get_document_generator() -> DocumentGenerator:
    """Get singleton generator instance"""
    global _generator
    if _generator is None:
        _generator = LLMDocumentGenerator()
    return _generator


def close_document_generator():
    """Release the shared generator's HTTP client (app shutdown)"""
    global _generator
    if _generator is not None:
        _generator.close()
        _generator = None


# =============================================================================
# Status tracking
# =============================================================================

def case_evidence_refs(db: Session, case_id: str) -> List[EvidenceRef]:
    items = db.query(EvidenceItem).filter(
        EvidenceItem.case_id == case_id,
    ).order_by(EvidenceItem.evidence_index.asc()).all()
    return [
        EvidenceRef(
            index=item.evidence_index,
            title=item.title,
            file_type=item.file_type.value,
            description=item.description,
            evidence_date=item.evidence_date,
        )
        for item in items
    ]


def is_stale_generating(
    document: GeneratedDocument,
    settings: Optional[Settings] = None,
    now: Optional[datetime] = None,
) -> bool:
    """True for a GENERATING document nobody has touched within the stale window"""
    if document.status != DocumentStatus.GENERATING:
        return False
    settings = settings or get_settings()
    now = now or datetime.utcnow()
    started = document.updated_at or document.created_at
    return started is None or started < now - timedelta(minutes=settings.generation_stale_minutes)


def generate_document(
    db: Session,
    document: GeneratedDocument,
    strategy: Any,
    total_documents: int,
    generator: DocumentGenerator,
    evidence: Optional[List[EvidenceRef]] = None,
    settings: Optional[Settings] = None,
) -> str:
    """
    Generate one document and record the outcome (flush only).

    Returns:
        The file URL on success

    Raises:
        DocumentStateError: document is not PENDING, FAILED or stale GENERATING
        DocumentGenerationError: the generator failed (document is now FAILED)
    """
    if document.status not in (DocumentStatus.PENDING, DocumentStatus.FAILED) and not is_stale_generating(
        document, settings,
    ):
        raise DocumentStateError(f"Document {document.id} is {document.status.value}")

    case_id = document.plan.case_id
    document.status = DocumentStatus.GENERATING
    document.updated_at = datetime.utcnow()
    db.flush()

    extra = {"evidence": evidence or []} if getattr(generator, "uses_evidence", False) else {}
    try:
        file_url = generator.generate(
            document.id,
            document.type,
            case_id,
            strategy,
            total_documents,
            **extra,
        )
    except Exception as e:
        document.status = DocumentStatus.FAILED
        document.retry_count = (document.retry_count or 0) + 1
        document.last_error = str(e)[:2000] or e.__class__.__name__
        db.flush()
        create_document_generated_event(db, case_id, document.id, document.type, success=False)
        logger.error(f"[Document Gen] {document.type} ({document.id}) failed: {e}")
        raise DocumentGenerationError(f"Document generation failed: {e}") from e

    document.status = DocumentStatus.COMPLETED
    document.file_url = file_url
    document.content = generator.document_text(document.id) if hasattr(generator, "document_text") else None
    document.last_error = None
    db.flush()
    create_document_generated_event(db, case_id, document.id, document.type, success=True)
    return file_url


def _refresh_case_lifecycle(db: Session, case_id: str, plan: DocumentPlan):
    case = db.query(Dispute).filter(Dispute.id == case_id).first()
    if case is None:
        return
    if any(d.status == DocumentStatus.COMPLETED for d in plan.documents) and case.lifecycle_status in (
        LifecycleStatus.DRAFT, LifecycleStatus.DOCUMENTS_GENERATING,
    ):
        case.lifecycle_status = LifecycleStatus.DOCUMENTS_READY
        db.flush()


def _load_plan_and_strategy(db: Session, case_id: str):
    plan = db.query(DocumentPlan).filter(DocumentPlan.case_id == case_id).first()
    if not plan:
        raise DocumentStateError(f"No document plan found for case {case_id}")
    strategy = db.query(CaseStrategy).filter(CaseStrategy.case_id == case_id).first()
    if not strategy:
        raise DocumentStateError(f"No strategy found for case {case_id}")
    return plan, strategy


def batch_generate_documents(
    db: Session,
    case_id: str,
    generator: Optional[DocumentGenerator] = None,
    settings: Optional[Settings] = None,
) -> BatchResult:
    """
    Generate every eligible document of a case's plan, in order.

    Eligible: PENDING, or FAILED / stale GENERATING with retry_count below
    the retry ceiling.
    Commits after each document so finished work survives later failures.
    """
    settings = settings or get_settings()
    generator = generator or get_document_generator()
    plan, strategy = _load_plan_and_strategy(db, case_id)

    eligible = [
        d for d in plan.documents
        if d.status == DocumentStatus.PENDING
        or (
            (d.status == DocumentStatus.FAILED or is_stale_generating(d, settings))
            and d.retry_count < settings.max_document_retries
        )
    ]
    logger.info(f"[Document Gen] Case {case_id}: {len(eligible)} of {len(plan.documents)} documents eligible")

    evidence = case_evidence_refs(db, case_id)
    result = BatchResult()

    for doc in eligible:
        try:
            file_url = generate_document(db, doc, strategy, len(plan.documents), generator, evidence, settings)
            result.completed += 1
            result.documents.append({"id": doc.id, "type": doc.type, "status": "COMPLETED", "file_url": file_url})
        except DocumentGenerationError as e:
            result.failed += 1
            result.documents.append({"id": doc.id, "type": doc.type, "status": "FAILED", "error": str(e)})
        db.commit()

    _refresh_case_lifecycle(db, case_id, plan)
    db.commit()

    result.pending = sum(1 for d in plan.documents if d.status == DocumentStatus.PENDING)
    logger.info(f"[Document Gen] Case {case_id}: {result.completed} completed, {result.failed} failed")
    return result


def retry_document(
    db: Session,
    document_id: str,
    generator: Optional[DocumentGenerator] = None,
    settings: Optional[Settings] = None,
) -> GeneratedDocument:
    """
    Regenerate a single FAILED (or stale GENERATING) document (flush only).

    Raises:
        DocumentNotFoundError: no such document
        DocumentNotRetryableError: not FAILED, or retry ceiling reached
    """
    settings = settings or get_settings()
    generator = generator or get_document_generator()

    document = db.query(GeneratedDocument).filter(GeneratedDocument.id == document_id).first()
    if not document:
        raise DocumentNotFoundError(document_id)

    if document.status != DocumentStatus.FAILED and not is_stale_generating(document, settings):
        raise DocumentNotRetryableError(f"Only FAILED documents can be retried (status: {document.status.value})")
    if document.retry_count >= settings.max_document_retries:
        raise DocumentNotRetryableError(
            f"Retry limit reached ({document.retry_count}/{settings.max_document_retries})"
        )

    plan = document.plan
    _, strategy = _load_plan_and_strategy(db, plan.case_id)
    evidence = case_evidence_refs(db, plan.case_id)

    try:
        generate_document(db, document, strategy, len(plan.documents), generator, evidence, settings)
    except DocumentGenerationError:
        logger.warning(f"[Document Gen] Retry of {document_id} failed ({document.retry_count} attempts)")
        return document

    _refresh_case_lifecycle(db, plan.case_id, plan)
    return document
