"""
Signing transaction tests.

Covers step completion and document advancement, signature upsert,
final approval, fund-request date stamping and ledger deduction, calendar
event handoff, terminal-state guards and the contention retry loop.
"""

from decimal import Decimal

import pytest

from signum.core.exceptions import ContentionError, InvalidStateError, NotAuthorizedError
from signum.core.identity import EmployeeRef
from signum.models import db
from signum.models.audit import AuditLog
from signum.models.document import (
    STATUS_APPROVED,
    STATUS_IN_REVIEW,
    STEP_COMPLETED,
    STEP_PENDING,
    Document,
    DocumentSignature,
    DocumentStep,
)
from signum.models.event import CalendarEvent
from signum.models.fund import FundBalance, FundTransaction
from signum.models.notification import Notification
from signum.services import signing_service
from signum.services.signing_service import sign_document


def _reload(document_id):
    return db.session.get(Document, document_id, populate_existing=True)


def _sign_all(document, directory):
    outcome = None
    for step in list(document.steps):
        outcome = sign_document(document.id, directory[step.role])
    return outcome


# ═════════════════════════════════════════════════════════════════════════
# SINGLE SIGNATURE
# ═════════════════════════════════════════════════════════════════════════

class TestSign:
    def test_sign_completes_step_and_advances(self, directory, make_document):
        doc = make_document("proposal")
        outcome = sign_document(doc.id, directory["CSC Adviser"], note="Looks good")

        doc = _reload(doc.id)
        step = db.session.get(DocumentStep, outcome.step_id)
        assert step.status == STEP_COMPLETED
        assert step.note == "Looks good"
        assert step.acted_at is not None
        assert doc.current_step == 1
        assert doc.status == STATUS_IN_REVIEW
        assert outcome.fully_approved is False

    def test_signature_row_recorded(self, directory, make_document):
        doc = make_document("proposal")
        outcome = sign_document(doc.id, directory["Dean"], signature_map={"page": 1, "x": 10, "y": 20})

        sig = DocumentSignature.query.filter_by(document_id=doc.id).one()
        assert sig.step_id == outcome.step_id
        assert sig.status == "signed"
        assert sig.assignee == directory["Dean"]
        assert db.session.get(DocumentStep, outcome.step_id).signature_map == {"page": 1, "x": 10, "y": 20}

    def test_steps_may_be_signed_out_of_order(self, directory, make_document):
        doc = make_document("proposal")
        outcome = sign_document(doc.id, directory["EVP"])
        assert db.session.get(DocumentStep, outcome.step_id).step_order == 7
        assert _reload(doc.id).current_step == 1

    def test_unassigned_actor_refused(self, directory, make_document):
        doc = make_document("fund_request")
        with pytest.raises(NotAuthorizedError):
            sign_document(doc.id, directory["CSC Adviser"])
        assert _reload(doc.id).current_step == 0

    def test_repeat_signature_keeps_one_row(self, directory, make_document):
        doc = make_document("proposal")
        first = sign_document(doc.id, directory["Dean"])
        second = sign_document(doc.id, directory["Dean"], step_id=first.step_id)

        assert second.step_id == first.step_id
        assert DocumentSignature.query.filter_by(document_id=doc.id, step_id=first.step_id).count() == 1
        assert _reload(doc.id).current_step == 1

    def test_completed_step_never_returns_to_pending(self, directory, make_document):
        doc = make_document("proposal")
        first = sign_document(doc.id, directory["Dean"])
        sign_document(doc.id, directory["Dean"], step_id=first.step_id)
        assert db.session.get(DocumentStep, first.step_id).status == STEP_COMPLETED

    def test_sign_writes_audit(self, directory, make_document):
        doc = make_document("proposal")
        sign_document(doc.id, directory["Dean"])
        entry = AuditLog.query.filter_by(action="document.sign").one()
        assert entry.entity_id == str(doc.id)
        assert entry.actor == directory["Dean"].key


# ═════════════════════════════════════════════════════════════════════════
# FINAL APPROVAL
# ═════════════════════════════════════════════════════════════════════════

class TestFinalApproval:
    def test_last_signature_approves(self, directory, make_document):
        doc = make_document("facility_request")
        outcome = _sign_all(doc, directory)

        doc = _reload(doc.id)
        assert outcome.fully_approved is True
        assert doc.status == STATUS_APPROVED
        assert doc.current_step == 4
        assert all(s.status == STEP_COMPLETED for s in doc.steps)

    def test_approved_document_is_terminal(self, directory, make_document):
        doc = make_document("facility_request")
        _sign_all(doc, directory)
        first_step = _reload(doc.id).steps[0]
        with pytest.raises(InvalidStateError):
            sign_document(doc.id, directory["Dean"], step_id=first_step.id)

    def test_submitter_notified_on_approval(self, directory, make_document):
        doc = make_document("facility_request")
        _sign_all(doc, directory)
        notes = Notification.query.filter_by(recipient=directory["submitter"].key).all()
        assert any(n.category == "approval" for n in notes)

    def test_proposal_creates_calendar_event(self, directory, make_document):
        doc = make_document("proposal", date="2026-11-20", venue="Gym", earliestStartTime="08:00")
        _sign_all(doc, directory)

        event = CalendarEvent.query.one()
        assert event.title == "Engineering Week"
        assert event.event_date.isoformat() == "2026-11-20"
        assert event.venue == "Gym"
        assert event.document_id == doc.id

    def test_calendar_event_deduplicated_by_title_and_date(self, directory, make_document):
        first = make_document("proposal", date="2026-11-20")
        second = make_document("proposal", date="2026-11-20")
        _sign_all(first, directory)
        _sign_all(second, directory)
        assert CalendarEvent.query.count() == 1

    def test_proposal_without_date_has_no_event(self, directory, make_document):
        doc = make_document("proposal")
        _sign_all(doc, directory)
        assert _reload(doc.id).status == STATUS_APPROVED
        assert CalendarEvent.query.count() == 0

    def test_event_sink_failure_does_not_fail_signing(self, app, directory, make_document, monkeypatch):
        sink = app.extensions["signum.event_sink"]

        def _boom(*args, **kwargs):
            raise RuntimeError("calendar down")

        monkeypatch.setattr(sink, "create_event_if_absent", _boom)
        doc = make_document("proposal", date="2026-11-20")
        outcome = _sign_all(doc, directory)
        assert outcome.fully_approved is True
        assert _reload(doc.id).status == STATUS_APPROVED


# ═════════════════════════════════════════════════════════════════════════
# FUND REQUESTS
# ═════════════════════════════════════════════════════════════════════════

class TestFundRequest:
    def test_role_dates_stamped(self, directory, make_document):
        doc = make_document("fund_request", reqSSC=100, reqCSC=0)
        sign_document(doc.id, directory["Dean"])
        assert "notedDate" not in _reload(doc.id).data

        sign_document(doc.id, directory["OIC OSA"])
        sign_document(doc.id, directory["VPAA"])
        data = _reload(doc.id).data
        assert data["notedDate"]
        assert data["recDate"]
        assert "appDate" not in data

    def test_final_approval_deducts_both_funds(self, directory, balances, make_document):
        doc = make_document("fund_request", title="Robotics Meet", reqSSC="1500", reqCSC="2000")
        _sign_all(doc, directory)

        doc = _reload(doc.id)
        assert doc.status == STATUS_APPROVED
        assert doc.data["appDate"]
        assert doc.data["releaseDate"]

        ssc = FundBalance.query.filter_by(department_id="ssc").one()
        coe = FundBalance.query.filter_by(department_id="coe").one()
        assert ssc.used_amount == Decimal("1500.00")
        assert coe.used_amount == Decimal("2000.00")
        assert ssc.available_amount == Decimal("48500.00")

        txns = FundTransaction.query.filter_by(document_id=doc.id).order_by(FundTransaction.department_id).all()
        assert [(t.department_id, t.amount) for t in txns] == [
            ("coe", Decimal("2000.00")),
            ("ssc", Decimal("1500.00")),
        ]
        assert all(f"Document ID: {doc.id}" in t.description for t in txns)
        assert all(t.transaction_type == "deduct" for t in txns)

    def test_zero_amount_creates_no_transaction(self, directory, balances, make_document):
        doc = make_document("fund_request", reqSSC="500", reqCSC="0")
        _sign_all(doc, directory)
        txns = FundTransaction.query.filter_by(document_id=doc.id).all()
        assert [t.department_id for t in txns] == ["ssc"]

    def test_intermediate_signatures_do_not_deduct(self, directory, balances, make_document):
        doc = make_document("fund_request", reqSSC="500", reqCSC="200")
        sign_document(doc.id, directory["Dean"])
        sign_document(doc.id, directory["OIC OSA"])
        assert FundTransaction.query.count() == 0

    def test_render_failure_does_not_abort(self, app, directory, make_document, monkeypatch):
        doc = make_document("fund_request", reqSSC="10")
        renderer = app.extensions["signum.renderer"]

        def _broken(*args, **kwargs):
            raise OSError("disk full")

        monkeypatch.setattr(renderer, "render", _broken)
        outcome = sign_document(doc.id, directory["OIC OSA"])
        assert db.session.get(DocumentStep, outcome.step_id).status == STEP_COMPLETED
        assert _reload(doc.id).data["notedDate"]


# ═════════════════════════════════════════════════════════════════════════
# CONTENTION RETRY
# ═════════════════════════════════════════════════════════════════════════

class TestContentionRetry:
    def _flaky_lock(self, monkeypatch, failures):
        """Make the document lock raise ContentionError ``failures`` times."""
        real = signing_service._lock_document
        calls = {"n": 0}

        def _lock(document_id):
            calls["n"] += 1
            if calls["n"] <= failures:
                raise ContentionError("Lock wait timeout exceeded", reason="1205")
            return real(document_id)

        monkeypatch.setattr(signing_service, "_lock_document", _lock)
        return calls

    def test_contended_sign_succeeds_after_retry(self, directory, make_document, monkeypatch):
        doc = make_document("fund_request")
        sign_document(doc.id, directory["Dean"])

        calls = self._flaky_lock(monkeypatch, failures=1)
        outcome = sign_document(doc.id, directory["OIC OSA"])

        assert calls["n"] == 2
        doc = _reload(doc.id)
        assert doc.current_step == 2
        assert db.session.get(DocumentStep, outcome.step_id).status == STEP_COMPLETED
        assert DocumentSignature.query.filter_by(document_id=doc.id).count() == 2

    def test_retry_budget_exhausted(self, directory, make_document, monkeypatch):
        doc = make_document("fund_request")
        calls = self._flaky_lock(monkeypatch, failures=10)

        with pytest.raises(ContentionError):
            sign_document(doc.id, directory["Dean"])

        assert calls["n"] == 3
        doc = _reload(doc.id)
        assert doc.current_step == 0
        assert all(s.status == STEP_PENDING for s in doc.steps)
        assert DocumentSignature.query.count() == 0

    def test_contention_during_finalization_deducts_once(self, directory, balances, make_document, monkeypatch):
        doc = make_document("fund_request", reqSSC="300", reqCSC="100")
        for role in ("Dean", "OIC OSA", "VPAA"):
            sign_document(doc.id, directory[role])

        real_deduct = signing_service.fund_ledger.deduct_for_document
        calls = {"n": 0}

        def _deduct_then_contend(document, actor_key="system"):
            calls["n"] += 1
            result = real_deduct(document, actor_key=actor_key)
            if calls["n"] == 1:
                raise ContentionError("deadlock", reason="40P01")
            return result

        monkeypatch.setattr(signing_service.fund_ledger, "deduct_for_document", _deduct_then_contend)
        outcome = sign_document(doc.id, directory["EVP"])

        assert outcome.fully_approved is True
        assert calls["n"] == 2
        assert FundTransaction.query.filter_by(document_id=doc.id).count() == 2
        assert FundBalance.query.filter_by(department_id="ssc").one().used_amount == Decimal("300.00")

    def test_other_errors_are_not_retried(self, directory, make_document, monkeypatch):
        doc = make_document("fund_request")
        calls = {"n": 0}

        def _explode(document_id):
            calls["n"] += 1
            raise RuntimeError("boom")

        monkeypatch.setattr(signing_service, "_lock_document", _explode)
        with pytest.raises(RuntimeError):
            sign_document(doc.id, EmployeeRef(directory["Dean"].id))
        assert calls["n"] == 1
