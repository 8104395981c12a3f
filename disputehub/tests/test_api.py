"""
API Tests
=========

End-to-end tests through the FastAPI app:
- Auth and ownership checks
- Chat turns firing the decision gate
- Evidence, documents, deadlines and notifications endpoints
- Admin and cron endpoints
"""

import os
from datetime import datetime, timedelta
from pathlib import Path

import pytest

# Add parent to path for imports
import sys
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from disputehub.documents.generator import DocumentGenerator
from disputehub.documents.routing import TIMELINE


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

FULL_DELTA = {
    "key_facts": EIGHT_FACTS,
    "evidence_mentioned": ["photo of timesheet"],
    "desired_outcome": "I want full repayment of £133 in unpaid wages owed to me",
    "dispute_type": "employment",
}


class FakeGenerator(DocumentGenerator):
    def __init__(self, fail_types=()):
        self.fail_types = set(fail_types)

    def generate(self, document_id, document_type, case_id, strategy, total_documents):
        if document_type in self.fail_types:
            raise RuntimeError("generator unavailable")
        return f"/files/{case_id}/{document_id}.docx"


@pytest.fixture
def sqlalchemy_db(tmp_path):
    """Configure a fresh SQLAlchemy SQLite DB for tests."""
    from disputehub.db.session import reset_engine, init_db

    old_db_url = os.environ.get("DATABASE_URL")
    db_path = tmp_path / "api.db"
    os.environ["DATABASE_URL"] = f"sqlite:///{db_path}"
    reset_engine()
    init_db()

    yield

    if old_db_url is not None:
        os.environ["DATABASE_URL"] = old_db_url
    else:
        os.environ.pop("DATABASE_URL", None)
    reset_engine()


def _seed_user(email="api@example.com"):
    from disputehub.db.session import get_db_session
    from disputehub.db.models import User

    with get_db_session() as db:
        user = User(email=email, name="API User")
        db.add(user)
        db.flush()
        return user.id


@pytest.fixture
def client(sqlalchemy_db):
    from fastapi.testclient import TestClient
    from disputehub.api import app, get_generator

    user_id = _seed_user()
    app.dependency_overrides[get_generator] = lambda: FakeGenerator()
    c = TestClient(app)
    c.headers.update({"X-User-Id": user_id})
    c.user_id = user_id
    yield c
    app.dependency_overrides.clear()


def _use_generator(generator):
    from disputehub.api import app, get_generator
    app.dependency_overrides[get_generator] = lambda: generator


def _open_dispute(client, title="Unpaid wages"):
    resp = client.post("/disputes", json={"title": title, "description": "Final month never paid"})
    assert resp.status_code == 201
    return resp.json()["id"]


class TestAuth:
    """Tests for authentication and ownership"""

    def test_health_is_open(self, client):
        """Should answer health checks without a user and set security headers"""
        resp = client.get("/health", headers={"X-User-Id": ""})
        assert resp.status_code == 200
        assert resp.json()["status"] == "healthy"
        assert resp.headers["X-Content-Type-Options"] == "nosniff"
        assert resp.headers["X-Frame-Options"] == "DENY"

    def test_missing_or_unknown_user(self, client):
        """Should return 401 without a known X-User-Id"""
        assert client.post("/disputes", json={"title": "x"}, headers={"X-User-Id": ""}).status_code == 401
        assert client.post("/disputes", json={"title": "x"}, headers={"X-User-Id": "nobody"}).status_code == 401

    def test_other_users_case_is_hidden(self, client):
        """Should return 404 for a case owned by someone else"""
        case_id = _open_dispute(client)
        stranger = _seed_user("stranger@example.com")
        resp = client.get(f"/disputes/{case_id}", headers={"X-User-Id": stranger})
        assert resp.status_code == 404


class TestDisputeFlow:
    """Tests for the main case progression through the API"""

    def test_create_dispute(self, client):
        """Should open a dispute in the OPEN gate state"""
        case_id = _open_dispute(client)
        body = client.get(f"/disputes/{case_id}").json()
        assert body["gate_state"] == "OPEN"
        assert body["lifecycle_status"] == "DRAFT"
        assert body["strategy_locked"] is False

    def test_partial_turn(self, client):
        """Should store facts without locking"""
        case_id = _open_dispute(client)
        resp = client.post(f"/disputes/{case_id}/turns", json={
            "delta": {"key_facts": EIGHT_FACTS[:3], "dispute_type": "employment"},
            "candidate_response": "When did you last get paid?",
        })
        assert resp.status_code == 200
        assert resp.json()["action"] == "SURFACE"
        assert resp.json()["gate_triggered"] is False

        strategy = client.get(f"/disputes/{case_id}/strategy").json()
        assert strategy["locked"] is False
        assert strategy["strategy"]["key_facts"] == EIGHT_FACTS[:3]

        readiness = client.get(f"/disputes/{case_id}/strategy/completeness").json()
        assert readiness["completeness"]["is_complete"] is False
        assert "key_facts (3/8)" in readiness["completeness"]["missing_fields"]

        assert client.get(f"/disputes/{case_id}/documents/plan").status_code == 404

    def test_complete_turn_locks_and_generates(self, client):
        """Should lock, plan and generate documents when the strategy completes"""
        case_id = _open_dispute(client)
        resp = client.post(f"/disputes/{case_id}/turns", json={
            "delta": FULL_DELTA,
            "candidate_response": "Thanks, that is everything I need.",
        })
        assert resp.status_code == 200
        assert resp.json()["gate_triggered"] is True

        case = client.get(f"/disputes/{case_id}").json()
        assert case["strategy_locked"] is True
        assert case["gate_state"] == "COMPLETE"
        assert case["lifecycle_status"] == "DOCUMENTS_READY"

        plan = client.get(f"/disputes/{case_id}/documents/plan").json()
        assert plan["complexity"] == "MEDIUM"
        assert all(d["status"] == "COMPLETED" for d in plan["documents"])

        events = [e["type"] for e in client.get(f"/disputes/{case_id}/timeline").json()]
        assert "STRATEGY_FINALISED" in events
        assert "DOCUMENT_PLAN_CREATED" in events

        locked = client.post(f"/disputes/{case_id}/turns", json={
            "delta": {"key_facts": ["One more fact"]},
            "candidate_response": "Thanks.",
        })
        assert locked.status_code == 409

    def test_retry_failed_document(self, client):
        """Should retry a FAILED document and refuse COMPLETED ones"""
        _use_generator(FakeGenerator(fail_types={TIMELINE}))
        case_id = _open_dispute(client)
        client.post(f"/disputes/{case_id}/turns", json={"delta": FULL_DELTA, "candidate_response": "Thanks."})

        plan = client.get(f"/disputes/{case_id}/documents/plan").json()
        failed = [d for d in plan["documents"] if d["status"] == "FAILED"]
        assert [d["type"] for d in failed] == [TIMELINE]
        assert failed[0]["retry_count"] == 1

        _use_generator(FakeGenerator())
        resp = client.post(f"/documents/{failed[0]['id']}/retry")
        assert resp.status_code == 200
        assert resp.json()["status"] == "COMPLETED"

        again = client.post(f"/documents/{failed[0]['id']}/retry")
        assert again.status_code == 409

    def test_send_document_and_notifications(self, client):
        """Should start the response deadline and notify the owner"""
        case_id = _open_dispute(client)
        client.post(f"/disputes/{case_id}/turns", json={"delta": FULL_DELTA, "candidate_response": "Thanks."})
        plan = client.get(f"/disputes/{case_id}/documents/plan").json()

        resp = client.post(f"/documents/{plan['documents'][0]['id']}/sent")
        assert resp.status_code == 200
        assert resp.json()["status"] == "SENT"

        case = client.get(f"/disputes/{case_id}").json()
        assert case["lifecycle_status"] == "AWAITING_RESPONSE"
        assert case["waiting_until"] is not None

        notifications = client.get("/notifications").json()
        types = {n["type"] for n in notifications["notifications"]}
        assert types == {"DOCUMENT_READY", "DOCUMENT_SENT"}
        assert notifications["unread_count"] == 2

        first_id = notifications["notifications"][0]["id"]
        assert client.post(f"/notifications/{first_id}/read").json() == {"read": True}
        assert client.post("/notifications/missing/read").status_code == 404
        assert client.post("/notifications/mark-all-read").json() == {"updated": 1}
        assert client.get("/notifications").json()["unread_count"] == 0

    def test_pending_document_cannot_be_sent(self, client):
        """Should return 409 when sending a document that is not COMPLETED"""
        _use_generator(FakeGenerator(fail_types={TIMELINE}))
        case_id = _open_dispute(client)
        client.post(f"/disputes/{case_id}/turns", json={"delta": FULL_DELTA, "candidate_response": "Thanks."})
        plan = client.get(f"/disputes/{case_id}/documents/plan").json()
        failed = [d for d in plan["documents"] if d["status"] == "FAILED"][0]

        assert client.post(f"/documents/{failed['id']}/sent").status_code == 409
        assert client.post("/documents/missing/sent").status_code == 404

    def test_reset_and_close(self, client):
        """Should unlock on reset and close idempotently"""
        case_id = _open_dispute(client)
        client.post(f"/disputes/{case_id}/turns", json={"delta": FULL_DELTA, "candidate_response": "Thanks."})

        reset = client.post(f"/disputes/{case_id}/reset").json()
        assert reset["strategy_locked"] is False
        assert reset["gate_state"] == "OPEN"
        assert client.get(f"/disputes/{case_id}/documents/plan").status_code == 404

        assert client.post(f"/disputes/{case_id}/close").json()["lifecycle_status"] == "CLOSED"
        assert client.post(f"/disputes/{case_id}/close").status_code == 200
        events = [e["type"] for e in client.get(f"/disputes/{case_id}/timeline").json()]
        assert events.count("CASE_CLOSED") == 1


class TestEvidenceEndpoints:
    """Tests for evidence endpoints"""

    def _upload(self, client, case_id, name):
        resp = client.post(f"/disputes/{case_id}/evidence", json={
            "file_url": f"https://files.example.com/{name}",
            "file_name": name,
            "title": name.split(".")[0].title(),
            "content_type": "image/jpeg" if name.endswith(".jpg") else None,
        })
        assert resp.status_code == 201
        return resp.json()

    def test_upload_delete_and_reindex(self, client):
        """Should never reuse an index after deletion"""
        case_id = _open_dispute(client)
        first = self._upload(client, case_id, "receipt.jpg")
        self._upload(client, case_id, "contract.pdf")
        assert first["evidence_index"] == 1
        assert first["file_type"] == "IMAGE"

        deleted = client.delete(f"/evidence/{first['id']}")
        assert deleted.status_code == 200
        assert deleted.json()["deleted"] is True

        third = self._upload(client, case_id, "email.eml")
        assert third["evidence_index"] == 3
        assert third["file_type"] == "DOCUMENT"

        listed = client.get(f"/disputes/{case_id}/evidence").json()
        assert [e["evidence_index"] for e in listed] == [2, 3]

    def test_update_metadata(self, client):
        """Should change title only for the owner"""
        case_id = _open_dispute(client)
        item = self._upload(client, case_id, "receipt.jpg")

        resp = client.patch(f"/evidence/{item['id']}", json={"title": "Till receipt"})
        assert resp.status_code == 200
        assert resp.json()["title"] == "Till receipt"
        assert resp.json()["evidence_index"] == 1

        stranger = _seed_user("stranger@example.com")
        hidden = client.patch(f"/evidence/{item['id']}", json={"title": "x"}, headers={"X-User-Id": stranger})
        assert hidden.status_code == 404

    def test_complexity_counts_uploads(self, client):
        """Should score uploaded evidence, not mentions"""
        case_id = _open_dispute(client)
        client.post(f"/disputes/{case_id}/turns", json={
            "delta": {"key_facts": EIGHT_FACTS[:5], "dispute_type": "employment"},
            "candidate_response": "Thanks.",
        })
        before = client.get(f"/disputes/{case_id}/complexity").json()
        self._upload(client, case_id, "receipt.jpg")
        after = client.get(f"/disputes/{case_id}/complexity").json()
        assert before["breakdown"]["evidence_count"] == 0
        assert after["breakdown"]["evidence_count"] == 5


class TestAdminEndpoints:
    """Tests for admin and cron endpoints"""

    def _seed_complete_case(self, user_id):
        from disputehub.db.session import get_db_session
        from disputehub.db.models import CaseStrategy, Dispute

        with get_db_session() as db:
            case = Dispute(user_id=user_id, title="Unpaid wages")
            db.add(case)
            db.flush()
            db.add(CaseStrategy(case_id=case.id, **FULL_DELTA))
            return case.id

    def test_trigger_gate(self, client):
        """Should run the gate, then report no second execution"""
        case_id = self._seed_complete_case(client.user_id)

        resp = client.post("/admin/trigger-gate", json={"case_id": case_id})
        assert resp.status_code == 200
        body = resp.json()
        assert body["executed"] is True
        assert body["state"] == "COMPLETE"
        assert body["batch"]["completed"] == 4

        again = client.post("/admin/trigger-gate", json={"case_id": case_id}).json()
        assert again["executed"] is False
        assert again["batch"]["completed"] == 0

        assert client.post("/admin/trigger-gate", json={"case_id": "missing"}).status_code == 404

    def test_admin_token_enforced(self, client, monkeypatch):
        """Should require X-Admin-Token when one is configured"""
        from disputehub.config import Settings

        monkeypatch.setattr("disputehub.api.get_settings", lambda: Settings(admin_token="s3cret"))
        assert client.post("/cron/check-deadlines").status_code == 403
        assert client.post("/cron/check-deadlines", headers={"X-Admin-Token": "wrong"}).status_code == 403
        assert client.post("/cron/check-deadlines", headers={"X-Admin-Token": "s3cret"}).status_code == 200

    def test_cron_marks_missed_deadlines(self, client):
        """Should move overdue cases to DEADLINE_MISSED"""
        from disputehub.db.session import get_db_session
        from disputehub.db.models import Dispute, LifecycleStatus

        with get_db_session() as db:
            case = Dispute(
                user_id=client.user_id,
                title="Overdue",
                lifecycle_status=LifecycleStatus.AWAITING_RESPONSE,
                waiting_until=datetime.utcnow() - timedelta(days=1),
            )
            db.add(case)
            db.flush()
            case_id = case.id

        resp = client.post("/cron/check-deadlines")
        assert resp.status_code == 200
        assert resp.json()["missed"] == [case_id]
        assert client.get(f"/disputes/{case_id}").json()["lifecycle_status"] == "DEADLINE_MISSED"
