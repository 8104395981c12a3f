"""
Conversation Turn Tests
=======================

Tests for:
- Strategy delta merging and the locked-strategy guard
- Turn actions (surface, replace, regenerate)
- Decision gate firing from a turn
- Case reset
"""

import os
from pathlib import Path

import pytest

# Add parent to path for imports
import sys
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from disputehub.conversation import StrategyDelta, TurnAction
from disputehub.documents.generator import DocumentGenerator
from disputehub.strategy.sufficiency import get_final_confirmation_message


EIGHT_FACTS = [
    "I worked at the warehouse for two years",
    "My contract said I would be paid monthly",
    "I worked every shift in March",
    "My March wages were never paid",
    "I asked my manager about the missing pay",
    "The manager said payroll had made an error",
    "I emailed HR twice with no reply",
    "I left the job at the end of March",
]

FULL_DELTA = StrategyDelta(
    key_facts=EIGHT_FACTS,
    evidence_mentioned=["photo of timesheet"],
    desired_outcome="I want full repayment of £133 in unpaid wages owed to me",
    dispute_type="employment",
)


class FakeGenerator(DocumentGenerator):
    def generate(self, document_id, document_type, case_id, strategy, total_documents):
        return f"/files/{case_id}/{document_id}.docx"


@pytest.fixture
def sqlalchemy_db(tmp_path):
    """Configure a fresh SQLAlchemy SQLite DB for tests."""
    from disputehub.db.session import reset_engine, init_db

    old_db_url = os.environ.get("DATABASE_URL")
    db_path = tmp_path / "conversation.db"
    os.environ["DATABASE_URL"] = f"sqlite:///{db_path}"
    reset_engine()
    init_db()

    yield

    if old_db_url is not None:
        os.environ["DATABASE_URL"] = old_db_url
    else:
        os.environ.pop("DATABASE_URL", None)
    reset_engine()


def _seed_case():
    from disputehub.db.session import get_db_session
    from disputehub.db.models import Dispute, User

    with get_db_session() as db:
        user = User(email="chat@example.com")
        db.add(user)
        db.flush()
        case = Dispute(user_id=user.id, title="Unpaid wages")
        db.add(case)
        db.flush()
        return user.id, case.id


class TestStrategyDelta:
    """Tests for StrategyDelta parsing"""

    def test_from_dict_accepts_both_key_styles(self):
        """Should read snake_case and camelCase keys"""
        snake = StrategyDelta.from_dict({"key_facts": ["a"], "desired_outcome": "b"})
        camel = StrategyDelta.from_dict({"keyFacts": ["a"], "desiredOutcome": "b"})
        assert snake == camel
        assert StrategyDelta.from_dict(None).is_empty()

    def test_single_string_becomes_one_item(self):
        """Should treat a lone string as one fact, not a list of characters"""
        delta = StrategyDelta.from_dict({"key_facts": "My March wages were never paid", "evidenceMentioned": "payslip"})
        assert delta.key_facts == ["My March wages were never paid"]
        assert delta.evidence_mentioned == ["payslip"]

    def test_non_list_rejected(self):
        """Should reject list fields holding anything but strings"""
        with pytest.raises(ValueError):
            StrategyDelta.from_dict({"key_facts": 42})
        with pytest.raises(ValueError):
            StrategyDelta.from_dict({"key_facts": ["fine", {"nested": "fact"}]})



class TestProcessAgentTurn:
    """Tests for process_agent_turn"""

    def test_partial_delta_surfaces_candidate(self, sqlalchemy_db):
        """Should merge facts and let a normal question through"""
        from disputehub.db.session import get_db_session
        from disputehub.db.models import CaseStrategy, ChatState, Dispute
        from disputehub.conversation import process_agent_turn

        _, case_id = _seed_case()
        with get_db_session() as db:
            result = process_agent_turn(
                db, case_id,
                StrategyDelta(key_facts=EIGHT_FACTS[:3], dispute_type="employment"),
                "When did your employer last pay you?",
                generator=FakeGenerator(),
            )
            assert result.action == TurnAction.SURFACE
            assert result.response == "When did your employer last pay you?"
            assert result.gate_triggered is False

        with get_db_session() as db:
            strategy = db.query(CaseStrategy).filter(CaseStrategy.case_id == case_id).first()
            assert strategy.key_facts == EIGHT_FACTS[:3]
            case = db.query(Dispute).filter(Dispute.id == case_id).first()
            assert case.chat_state == ChatState.GATHERING
            assert case.strategy_locked is False

    def test_duplicate_facts_merged(self, sqlalchemy_db):
        """Should ignore facts already recorded, case-insensitively"""
        from disputehub.db.session import get_db_session
        from disputehub.db.models import CaseStrategy
        from disputehub.conversation import process_agent_turn

        _, case_id = _seed_case()
        with get_db_session() as db:
            process_agent_turn(db, case_id, StrategyDelta(key_facts=["My March wages were never paid"]), "Thanks.")
            process_agent_turn(
                db, case_id,
                StrategyDelta(key_facts=["  my march wages were NEVER paid ", "I worked every shift in March"]),
                "Thanks.",
            )

        with get_db_session() as db:
            strategy = db.query(CaseStrategy).filter(CaseStrategy.case_id == case_id).first()
            assert strategy.key_facts == ["My March wages were never paid", "I worked every shift in March"]

    def test_complete_delta_fires_gate(self, sqlalchemy_db):
        """Should lock the case and replace a blocked reply with the final confirmation"""
        from disputehub.db.session import get_db_session
        from disputehub.db.models import Dispute, DocumentPlan
        from disputehub.conversation import process_agent_turn

        _, case_id = _seed_case()
        with get_db_session() as db:
            result = process_agent_turn(
                db, case_id, FULL_DELTA, "How do you justify this claim?", generator=FakeGenerator(),
            )
            assert result.gate_triggered is True
            assert result.action == TurnAction.REPLACE
            assert result.response == get_final_confirmation_message()
            assert result.to_dict()["validation"]["should_block"] is True

        with get_db_session() as db:
            assert db.query(Dispute).filter(Dispute.id == case_id).first().strategy_locked is True
            assert db.query(DocumentPlan).filter(DocumentPlan.case_id == case_id).count() == 1

    def test_locked_strategy_rejects_delta(self, sqlalchemy_db):
        """Should refuse changes once the gate has locked the strategy"""
        from disputehub.db.session import get_db_session
        from disputehub.db.models import CaseStrategy
        from disputehub.conversation import process_agent_turn
        from disputehub.errors import StrategyLockedError

        _, case_id = _seed_case()
        with get_db_session() as db:
            process_agent_turn(db, case_id, FULL_DELTA, "Thanks.", generator=FakeGenerator())

        with get_db_session() as db:
            with pytest.raises(StrategyLockedError):
                process_agent_turn(db, case_id, StrategyDelta(key_facts=["A new fact"]), "Thanks.")

        with get_db_session() as db:
            strategy = db.query(CaseStrategy).filter(CaseStrategy.case_id == case_id).first()
            assert "A new fact" not in strategy.key_facts

            # An empty delta is still a valid turn
            result = process_agent_turn(db, case_id, None, "Thanks.", generator=FakeGenerator())
            assert result.gate_triggered is False

    def test_blocked_reply_regenerates(self, sqlalchemy_db):
        """Should ask for a new candidate when the case is not yet sufficient"""
        from disputehub.db.session import get_db_session
        from disputehub.conversation import process_agent_turn

        _, case_id = _seed_case()
        with get_db_session() as db:
            result = process_agent_turn(
                db, case_id,
                StrategyDelta(key_facts=["My March wages were never paid"], dispute_type="employment"),
                "What specific breach are you alleging?",
            )
            assert result.action == TurnAction.REGENERATE
            assert result.response is None
            assert result.sufficiency.is_sufficient is False

    def test_sufficient_case_replaces_followups(self, sqlalchemy_db):
        """Should replace further questions once the case is sufficient"""
        from disputehub.db.session import get_db_session
        from disputehub.conversation import process_agent_turn
        from disputehub.evidence import create_evidence

        user_id, case_id = _seed_case()
        with get_db_session() as db:
            create_evidence(db, case_id, user_id, "https://files/payslip.pdf", "payslip.pdf", "Payslip")

        with get_db_session() as db:
            result = process_agent_turn(
                db, case_id,
                StrategyDelta(
                    key_facts=["My March wages were never paid"],
                    dispute_type="employment",
                    desired_outcome="Repayment of £133",
                ),
                "Can you tell me more about your manager?",
            )
            assert result.sufficiency.is_sufficient is True
            assert result.gate_triggered is False
            assert result.action == TurnAction.REPLACE

    def test_unknown_case(self, sqlalchemy_db):
        """Should raise CaseNotFoundError"""
        from disputehub.db.session import get_db_session
        from disputehub.conversation import process_agent_turn
        from disputehub.errors import CaseNotFoundError

        with get_db_session() as db:
            with pytest.raises(CaseNotFoundError):
                process_agent_turn(db, "missing", FULL_DELTA, "Thanks.")


class TestResetCase:
    """Tests for reset_case"""

    def test_reset_unlocks_and_clears(self, sqlalchemy_db):
        """Should unlock, drop strategy and plan, keep evidence and timeline"""
        from disputehub.db.session import get_db_session
        from disputehub.db.models import (
            CasePhase, CaseStrategy, Dispute, DocumentPlan, GeneratedDocument, LifecycleStatus,
        )
        from disputehub.conversation import process_agent_turn, reset_case
        from disputehub.evidence import count_case_evidence, create_evidence
        from disputehub.timeline import get_case_timeline

        user_id, case_id = _seed_case()
        with get_db_session() as db:
            create_evidence(db, case_id, user_id, "https://files/timesheet.jpg", "timesheet.jpg", "Timesheet")
        with get_db_session() as db:
            process_agent_turn(db, case_id, FULL_DELTA, "Thanks.", generator=FakeGenerator())

        with get_db_session() as db:
            reset_case(db, case_id)

        with get_db_session() as db:
            case = db.query(Dispute).filter(Dispute.id == case_id).first()
            assert case.strategy_locked is False
            assert case.phase == CasePhase.GATHERING
            assert case.lifecycle_status == LifecycleStatus.DRAFT
            assert db.query(CaseStrategy).filter(CaseStrategy.case_id == case_id).count() == 0
            assert db.query(DocumentPlan).filter(DocumentPlan.case_id == case_id).count() == 0
            assert db.query(GeneratedDocument).count() == 0
            assert count_case_evidence(db, case_id) == 1

            events = [e.type.value for e in get_case_timeline(db, case_id)]
            assert "STRATEGY_FINALISED" in events
            assert "CASE_RESET" in events

    def test_reset_keeps_document_references_on_events(self, sqlalchemy_db):
        """Should leave timeline events pointing at the deleted documents unchanged"""
        from disputehub.db.session import get_db_session
        from disputehub.db.models import CaseEvent, CaseEventType
        from disputehub.conversation import process_agent_turn, reset_case

        assert not CaseEvent.__table__.c.related_document_id.foreign_keys

        _, case_id = _seed_case()
        with get_db_session() as db:
            process_agent_turn(db, case_id, FULL_DELTA, "Thanks.", generator=FakeGenerator())

        def generated_refs(db):
            return sorted(
                e.related_document_id for e in db.query(CaseEvent).filter(
                    CaseEvent.case_id == case_id,
                    CaseEvent.type == CaseEventType.DOCUMENT_GENERATED,
                )
            )

        with get_db_session() as db:
            before = generated_refs(db)
        assert before and all(before)

        with get_db_session() as db:
            reset_case(db, case_id)

        with get_db_session() as db:
            assert generated_refs(db) == before
