"""
Deadline Engine Tests
=====================

Tests for:
- Marking documents as sent and starting the response deadline
- Missed and approaching deadline checks
- Closing cases
"""

import os
from datetime import datetime, timedelta
from pathlib import Path

import pytest

# Add parent to path for imports
import sys
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from disputehub.documents.generator import DocumentGenerator


NOW = datetime(2025, 5, 1, 10, 0, 0)

STRATEGY = {
    "dispute_type": "property",
    "key_facts": [
        "I rented the flat for two years",
        "My tenancy ended in March",
        "I left the flat clean and undamaged",
        "The landlord kept my £900 deposit",
        "The deposit was never protected in a scheme",
    ],
    "desired_outcome": "Return of my £900 deposit in full",
    "evidence_mentioned": ["tenancy agreement"],
}


class FakeGenerator(DocumentGenerator):
    def __init__(self, fail_types=()):
        self.fail_types = set(fail_types)
        self.calls = []

    def generate(self, document_id, document_type, case_id, strategy, total_documents):
        self.calls.append(document_type)
        if document_type in self.fail_types:
            raise RuntimeError("generator unavailable")
        return f"/files/{case_id}/{document_id}.docx"


@pytest.fixture
def sqlalchemy_db(tmp_path):
    """Configure a fresh SQLAlchemy SQLite DB for tests."""
    from disputehub.db.session import reset_engine, init_db

    old_db_url = os.environ.get("DATABASE_URL")
    db_path = tmp_path / "deadlines.db"
    os.environ["DATABASE_URL"] = f"sqlite:///{db_path}"
    reset_engine()
    init_db()

    yield

    if old_db_url is not None:
        os.environ["DATABASE_URL"] = old_db_url
    else:
        os.environ.pop("DATABASE_URL", None)
    reset_engine()


def _seed_case_with_documents(email="tenant@example.com"):
    """Case with a plan whose first document is COMPLETED; returns (case_id, [document ids])"""
    from disputehub.db.session import get_db_session
    from disputehub.db.models import CaseStrategy, Dispute, DocumentStatus, LifecycleStatus, User
    from disputehub.documents.plan import compute_document_plan, persist_document_plan

    with get_db_session() as db:
        user = User(email=email)
        db.add(user)
        db.flush()
        case = Dispute(
            user_id=user.id,
            title="Deposit dispute",
            strategy_locked=True,
            lifecycle_status=LifecycleStatus.DOCUMENTS_READY,
        )
        db.add(case)
        db.flush()
        db.add(CaseStrategy(case_id=case.id, **STRATEGY))
        plan = persist_document_plan(db, case.id, compute_document_plan(STRATEGY, 0))

        plan.documents[0].status = DocumentStatus.COMPLETED
        plan.documents[0].file_url = "/files/letter.docx"
        db.flush()
        return case.id, [d.id for d in plan.documents]


def _awaiting_case(db, email, waiting_until):
    from disputehub.db.models import Dispute, LifecycleStatus, User

    user = User(email=email)
    db.add(user)
    db.flush()
    case = Dispute(
        user_id=user.id,
        title=f"Case for {email}",
        lifecycle_status=LifecycleStatus.AWAITING_RESPONSE,
        waiting_until=waiting_until,
    )
    db.add(case)
    db.flush()
    return case.id


class TestMarkDocumentAsSent:
    """Tests for mark_document_as_sent"""

    def test_starts_fourteen_day_deadline(self, sqlalchemy_db):
        """Should mark the document SENT and wait 14 days for a response"""
        from disputehub.db.session import get_db_session
        from disputehub.db.models import Dispute, DocumentStatus, LifecycleStatus, NotificationType, Notification
        from disputehub.deadlines import mark_document_as_sent
        from disputehub.timeline import get_case_timeline

        case_id, doc_ids = _seed_case_with_documents()
        with get_db_session() as db:
            document = mark_document_as_sent(db, doc_ids[0], now=NOW)
            assert document.status == DocumentStatus.SENT

        with get_db_session() as db:
            case = db.query(Dispute).filter(Dispute.id == case_id).first()
            assert case.lifecycle_status == LifecycleStatus.AWAITING_RESPONSE
            assert case.waiting_until == NOW + timedelta(days=14)

            events = get_case_timeline(db, case_id)
            by_type = {e.type.value: e for e in events}
            assert sorted(by_type) == ["DEADLINE_SET", "DOCUMENT_SENT"]
            assert by_type["DEADLINE_SET"].description == "Response due by 15 May 2025"

            notification = db.query(Notification).one()
            assert notification.type == NotificationType.DOCUMENT_SENT

    def test_only_completed_documents(self, sqlalchemy_db):
        """Should refuse PENDING documents and unknown IDs"""
        from disputehub.db.session import get_db_session
        from disputehub.deadlines import mark_document_as_sent
        from disputehub.errors import DocumentNotFoundError, DocumentStateError

        _, doc_ids = _seed_case_with_documents()
        with get_db_session() as db:
            with pytest.raises(DocumentStateError):
                mark_document_as_sent(db, doc_ids[-1], now=NOW)
            with pytest.raises(DocumentNotFoundError):
                mark_document_as_sent(db, "missing", now=NOW)

    def test_cannot_send_twice(self, sqlalchemy_db):
        """Should refuse a document that is already SENT"""
        from disputehub.db.session import get_db_session
        from disputehub.deadlines import mark_document_as_sent
        from disputehub.errors import DocumentStateError

        _, doc_ids = _seed_case_with_documents()
        with get_db_session() as db:
            mark_document_as_sent(db, doc_ids[0], now=NOW)

        with get_db_session() as db:
            with pytest.raises(DocumentStateError):
                mark_document_as_sent(db, doc_ids[0], now=NOW)


class TestDeadlineChecks:
    """Tests for the cron checks"""

    def test_missed_deadlines(self, sqlalchemy_db):
        """Should move only overdue waiting cases to DEADLINE_MISSED"""
        from disputehub.db.session import get_db_session
        from disputehub.db.models import Dispute, LifecycleStatus
        from disputehub.deadlines import check_missed_deadlines
        from disputehub.timeline import get_case_timeline

        with get_db_session() as db:
            overdue = _awaiting_case(db, "overdue@example.com", NOW - timedelta(hours=1))
            waiting = _awaiting_case(db, "waiting@example.com", NOW + timedelta(days=5))

        with get_db_session() as db:
            assert check_missed_deadlines(db, now=NOW) == [overdue]

        with get_db_session() as db:
            assert db.query(Dispute).filter(Dispute.id == overdue).first().lifecycle_status == LifecycleStatus.DEADLINE_MISSED
            assert db.query(Dispute).filter(Dispute.id == waiting).first().lifecycle_status == LifecycleStatus.AWAITING_RESPONSE
            assert [e.description for e in get_case_timeline(db, overdue)] == ["Response deadline missed"]

            # Second run finds nothing new
            assert check_missed_deadlines(db, now=NOW) == []

    def test_approaching_deadlines(self, sqlalchemy_db):
        """Should warn owners whose deadline is within three days"""
        from disputehub.db.session import get_db_session
        from disputehub.db.models import Notification, NotificationType
        from disputehub.deadlines import check_approaching_deadlines

        with get_db_session() as db:
            soon = _awaiting_case(db, "soon@example.com", NOW + timedelta(days=2, hours=1))
            _awaiting_case(db, "later@example.com", NOW + timedelta(days=6))
            _awaiting_case(db, "past@example.com", NOW - timedelta(days=1))

        with get_db_session() as db:
            assert check_approaching_deadlines(db, now=NOW) == 1

        with get_db_session() as db:
            notification = db.query(Notification).one()
            assert notification.case_id == soon
            assert notification.type == NotificationType.DEADLINE_APPROACHING
            assert notification.message == "You have 3 days left to receive a response."

    def test_approaching_is_deduplicated(self, sqlalchemy_db):
        """Should not stack warnings from repeated cron runs"""
        from disputehub.db.session import get_db_session
        from disputehub.db.models import Notification
        from disputehub.deadlines import check_approaching_deadlines

        with get_db_session() as db:
            _awaiting_case(db, "soon@example.com", datetime.utcnow() + timedelta(days=1))

        with get_db_session() as db:
            check_approaching_deadlines(db)
        with get_db_session() as db:
            check_approaching_deadlines(db)

        with get_db_session() as db:
            assert db.query(Notification).count() == 1


class TestFollowUpLetter:
    """Tests for generate_follow_up_letter"""

    def _missed_case(self):
        from disputehub.db.session import get_db_session
        from disputehub.deadlines import check_missed_deadlines, mark_document_as_sent

        case_id, doc_ids = _seed_case_with_documents()
        with get_db_session() as db:
            mark_document_as_sent(db, doc_ids[0], now=NOW)
        with get_db_session() as db:
            assert check_missed_deadlines(db, now=NOW + timedelta(days=15)) == [case_id]
        return case_id, doc_ids

    def test_follow_up_added_to_plan(self, sqlalchemy_db):
        """Should append one drafted follow-up letter after a missed deadline"""
        from disputehub.db.session import get_db_session
        from disputehub.db.models import DocumentStatus, Notification, NotificationType
        from disputehub.deadlines import generate_follow_up_letter
        from disputehub.documents.generator import FOLLOW_UP_LETTER
        from disputehub.timeline import get_case_timeline

        case_id, doc_ids = self._missed_case()
        generator = FakeGenerator()
        with get_db_session() as db:
            document = generate_follow_up_letter(db, case_id, generator)
            assert document.type == FOLLOW_UP_LETTER
            assert document.status == DocumentStatus.COMPLETED
            assert document.order == len(doc_ids) + 1
            follow_up_id = document.id

        with get_db_session() as db:
            assert generate_follow_up_letter(db, case_id, generator).id == follow_up_id
            assert generator.calls == [FOLLOW_UP_LETTER]

            events = [e.type.value for e in get_case_timeline(db, case_id)]
            assert events.count("FOLLOW_UP_GENERATED") == 1
            types = {n.type for n in db.query(Notification).all()}
            assert NotificationType.FOLLOW_UP_GENERATED in types

    def test_failed_follow_up_is_retryable(self, sqlalchemy_db):
        """Should leave a failed follow-up FAILED without a timeline event"""
        from disputehub.db.session import get_db_session
        from disputehub.db.models import DocumentStatus
        from disputehub.deadlines import generate_follow_up_letter
        from disputehub.documents.generator import FOLLOW_UP_LETTER
        from disputehub.timeline import get_case_timeline

        case_id, _ = self._missed_case()
        with get_db_session() as db:
            document = generate_follow_up_letter(db, case_id, FakeGenerator(fail_types={FOLLOW_UP_LETTER}))
            assert document.status == DocumentStatus.FAILED
            assert document.retry_count == 1

        with get_db_session() as db:
            assert "FOLLOW_UP_GENERATED" not in [e.type.value for e in get_case_timeline(db, case_id)]

    def test_requires_missed_deadline(self, sqlalchemy_db):
        """Should refuse cases that have not missed a deadline"""
        from disputehub.db.session import get_db_session
        from disputehub.deadlines import generate_follow_up_letter
        from disputehub.errors import CaseNotFoundError, DocumentStateError

        case_id, _ = _seed_case_with_documents()
        with get_db_session() as db:
            with pytest.raises(DocumentStateError):
                generate_follow_up_letter(db, case_id, FakeGenerator())
            with pytest.raises(CaseNotFoundError):
                generate_follow_up_letter(db, "missing", FakeGenerator())


class TestCloseCase:
    """Tests for close_case"""

    def test_close(self, sqlalchemy_db):
        """Should close the case, clear the deadline and record one event"""
        from disputehub.db.session import get_db_session
        from disputehub.db.models import Dispute, LifecycleStatus
        from disputehub.deadlines import close_case
        from disputehub.timeline import get_case_timeline

        with get_db_session() as db:
            case_id = _awaiting_case(db, "closer@example.com", NOW + timedelta(days=4))

        with get_db_session() as db:
            close_case(db, case_id)
        with get_db_session() as db:
            close_case(db, case_id)

        with get_db_session() as db:
            case = db.query(Dispute).filter(Dispute.id == case_id).first()
            assert case.lifecycle_status == LifecycleStatus.CLOSED
            assert case.waiting_until is None
            assert [e.type.value for e in get_case_timeline(db, case_id)] == ["CASE_CLOSED"]

    def test_unknown_case(self, sqlalchemy_db):
        """Should raise CaseNotFoundError"""
        from disputehub.db.session import get_db_session
        from disputehub.deadlines import close_case
        from disputehub.errors import CaseNotFoundError

        with pytest.raises(CaseNotFoundError):
            with get_db_session() as db:
                close_case(db, "missing")
