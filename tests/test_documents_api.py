"""
HTTP API tests: documents, workflow actions, notes, funds, notifications
and health endpoints.
"""

from decimal import Decimal

from signum.core.exceptions import ContentionError
from signum.models.audit import AuditLog
from signum.models.document import STATUS_APPROVED, STATUS_REJECTED, STATUS_SUBMITTED
from signum.models.fund import FundBalance
from signum.services import signing_service

ENG = "College of Engineering"


def _create(client, headers, doc_type="proposal", **data):
    data.setdefault("title", "Engineering Week")
    data.setdefault("department", ENG)
    return client.post("/api/v1/documents", json={"doc_type": doc_type, "data": data}, headers=headers)


# ═════════════════════════════════════════════════════════════════════════
# DOCUMENT CREATION & READS
# ═════════════════════════════════════════════════════════════════════════

class TestDocumentEndpoints:
    def test_missing_actor_headers(self, client):
        res = client.get("/api/v1/documents/mine")
        assert res.status_code == 401
        assert res.get_json()["code"] == "ERR_UNAUTHENTICATED"

    def test_malformed_actor_headers(self, client):
        res = client.get("/api/v1/documents/mine", headers={"X-Actor-Type": "robot", "X-Actor-Id": "1"})
        assert res.status_code == 401

    def test_create_document(self, client, directory, as_actor):
        res = _create(client, as_actor(directory["submitter"]))
        assert res.status_code == 201
        body = res.get_json()
        assert body["success"] is True
        assert body["warnings"] == []

        detail = client.get(f"/api/v1/documents/{body['document_id']}", headers=as_actor(directory["submitter"]))
        assert detail.status_code == 200
        doc = detail.get_json()
        assert doc["status"] == STATUS_SUBMITTED
        assert len(doc["steps"]) == 7
        assert doc["steps"][0]["assignee_name"] == "Adviser Staff"
        assert doc["notes"] == []

    def test_create_requires_doc_type(self, client, directory, as_actor):
        res = client.post("/api/v1/documents", json={"data": {"title": "X"}}, headers=as_actor(directory["submitter"]))
        assert res.status_code == 400

    def test_create_unknown_type(self, client, directory, as_actor):
        res = _create(client, as_actor(directory["submitter"]), doc_type="memo")
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_VALIDATION_REQUIRED"

    def test_create_with_non_string_fields(self, client, directory, as_actor):
        headers = as_actor(directory["submitter"])
        for field, value in (("title", 123), ("department", ["coe"]), ("departmentFull", {"x": 1})):
            res = _create(client, headers, **{field: value})
            assert res.status_code == 400, field
            assert res.get_json()["details"] == {field: "must be a string"}

        res = client.post("/api/v1/documents", json={"doc_type": 7, "data": {"title": "X"}}, headers=headers)
        assert res.status_code == 400
        assert client.get("/api/v1/documents/mine", headers=headers).get_json()["total"] == 0

    def test_create_with_non_object_body(self, client, directory, as_actor):
        res = client.post("/api/v1/documents", json=["proposal"], headers=as_actor(directory["submitter"]))
        assert res.status_code == 400

    def test_create_invalid_amount(self, client, directory, as_actor):
        res = _create(client, as_actor(directory["submitter"]), doc_type="fund_request", reqSSC="-10")
        assert res.status_code == 400
        assert "reqSSC" in res.get_json()["details"]

    def test_employee_cannot_submit(self, client, directory, as_actor):
        res = _create(client, as_actor(directory["Dean"]))
        assert res.status_code == 403

    def test_department_code_expanded(self, client, directory, as_actor):
        res = _create(client, as_actor(directory["submitter"]), department="coe")
        doc_id = res.get_json()["document_id"]
        doc = client.get(f"/api/v1/documents/{doc_id}", headers=as_actor(directory["submitter"])).get_json()
        assert doc["department"] == ENG
        assert doc["data"]["departmentFull"] == ENG

    def test_detail_hidden_from_outsiders(self, client, directory, make_document, as_actor):
        doc = make_document("fund_request")
        res = client.get(f"/api/v1/documents/{doc.id}", headers=as_actor(directory["CPAO"]))
        assert res.status_code == 403

    def test_detail_not_found(self, client, directory, as_actor):
        res = client.get("/api/v1/documents/999", headers=as_actor(directory["submitter"]))
        assert res.status_code == 404

    def test_assigned_queue(self, client, directory, make_document, as_actor):
        make_document("fund_request")
        make_document("proposal")
        res = client.get("/api/v1/documents/assigned", headers=as_actor(directory["OIC OSA"]))
        assert res.get_json()["total"] == 2

        res = client.get("/api/v1/documents/assigned", headers=as_actor(directory["CSC Adviser"]))
        assert res.get_json()["total"] == 1

    def test_mine_requires_student(self, client, directory, make_document, as_actor):
        make_document("proposal")
        res = client.get("/api/v1/documents/mine", headers=as_actor(directory["submitter"]))
        assert res.get_json()["total"] == 1

        res = client.get("/api/v1/documents/mine", headers=as_actor(directory["Dean"]))
        assert res.status_code == 403

    def test_mine_pagination(self, client, directory, make_document, as_actor):
        for i in range(3):
            make_document("proposal", title=f"Event {i}")
        res = client.get("/api/v1/documents/mine?limit=2", headers=as_actor(directory["submitter"]))
        body = res.get_json()
        assert body["total"] == 3
        assert len(body["items"]) == 2


# ═════════════════════════════════════════════════════════════════════════
# WORKFLOW ACTIONS
# ═════════════════════════════════════════════════════════════════════════

class TestWorkflowEndpoints:
    def test_sign(self, client, directory, make_document, as_actor):
        doc = make_document("fund_request")
        res = client.post(f"/api/v1/documents/{doc.id}/sign", json={"note": "ok"},
                          headers=as_actor(directory["Dean"]))
        assert res.status_code == 200
        body = res.get_json()
        assert body["success"] is True
        assert body["document_status"] == "in_review"
        assert body["fully_approved"] is False

    def test_sign_not_assigned(self, client, directory, make_document, as_actor):
        doc = make_document("fund_request")
        res = client.post(f"/api/v1/documents/{doc.id}/sign", json={}, headers=as_actor(directory["CPAO"]))
        assert res.status_code == 403
        assert res.get_json()["code"] == "ERR_FORBIDDEN"

    def test_sign_bad_step_id(self, client, directory, make_document, as_actor):
        doc = make_document("fund_request")
        res = client.post(f"/api/v1/documents/{doc.id}/sign", json={"step_id": "abc"},
                          headers=as_actor(directory["Dean"]))
        assert res.status_code == 400

    def test_sign_foreign_step_id(self, client, directory, make_document, as_actor):
        doc = make_document("fund_request")
        other = make_document("fund_request", title="Other")
        res = client.post(f"/api/v1/documents/{doc.id}/sign", json={"step_id": other.steps[0].id},
                          headers=as_actor(directory["Dean"]))
        assert res.status_code == 404

    def test_full_approval_over_http(self, client, directory, make_document, as_actor, balances):
        doc = make_document("fund_request", reqSSC="100", reqCSC="50")
        body = None
        for role in ("Dean", "OIC OSA", "VPAA", "EVP"):
            body = client.post(f"/api/v1/documents/{doc.id}/sign", json={},
                               headers=as_actor(directory[role])).get_json()
        assert body["fully_approved"] is True
        assert body["document_status"] == STATUS_APPROVED

        funds = client.get("/api/v1/funds", headers=as_actor(directory["EVP"])).get_json()["items"]
        used = {f["department_id"]: f["used_amount"] for f in funds}
        assert used == {"coe": 50.0, "ssc": 100.0}

        res = client.post(f"/api/v1/documents/{doc.id}/sign", json={},
                          headers=as_actor(directory["Dean"]))
        assert res.status_code == 409

    def test_sign_terminal_with_step_id_conflicts(self, client, directory, make_document, as_actor):
        doc = make_document("fund_request")
        step_id = doc.steps[0].id
        client.post(f"/api/v1/documents/{doc.id}/reject", json={"reason": "No"}, headers=as_actor(directory["Dean"]))
        res = client.post(f"/api/v1/documents/{doc.id}/sign", json={"step_id": step_id},
                          headers=as_actor(directory["Dean"]))
        assert res.status_code == 409
        assert res.get_json()["details"]["status"] == STATUS_REJECTED

    def test_contention_exhausted_returns_503(self, client, directory, make_document, as_actor, monkeypatch):
        doc = make_document("fund_request")

        def _busy(document_id):
            raise ContentionError("Lock wait timeout exceeded", reason="1205")

        monkeypatch.setattr(signing_service, "_lock_document", _busy)
        res = client.post(f"/api/v1/documents/{doc.id}/sign", json={}, headers=as_actor(directory["Dean"]))
        assert res.status_code == 503
        assert res.get_json()["code"] == "ERR_CONTENTION"

    def test_reject(self, client, directory, make_document, as_actor):
        doc = make_document("fund_request")
        res = client.post(f"/api/v1/documents/{doc.id}/reject", json={"reason": "Over budget"},
                          headers=as_actor(directory["OIC OSA"]))
        assert res.status_code == 200
        body = res.get_json()
        assert body["document_status"] == STATUS_REJECTED
        assert "fully_approved" not in body

    def test_reject_without_reason(self, client, directory, make_document, as_actor):
        doc = make_document("fund_request")
        res = client.post(f"/api/v1/documents/{doc.id}/reject", json={"reason": "  "},
                          headers=as_actor(directory["Dean"]))
        assert res.status_code == 400

        detail = client.get(f"/api/v1/documents/{doc.id}", headers=as_actor(directory["Dean"])).get_json()
        assert detail["status"] == STATUS_SUBMITTED
        assert {s["status"] for s in detail["steps"]} == {"pending"}

    def test_reject_with_non_string_reason(self, client, directory, make_document, as_actor):
        doc = make_document("fund_request")
        res = client.post(f"/api/v1/documents/{doc.id}/reject", json={"reason": 5},
                          headers=as_actor(directory["Dean"]))
        assert res.status_code == 400
        assert res.get_json()["details"] == {"reason": "must be a string"}

        detail = client.get(f"/api/v1/documents/{doc.id}", headers=as_actor(directory["Dean"])).get_json()
        assert detail["status"] == STATUS_SUBMITTED

    def test_sign_with_non_string_note(self, client, directory, make_document, as_actor):
        doc = make_document("fund_request")
        res = client.post(f"/api/v1/documents/{doc.id}/sign", json={"note": {"text": "ok"}},
                          headers=as_actor(directory["Dean"]))
        assert res.status_code == 400
        detail = client.get(f"/api/v1/documents/{doc.id}", headers=as_actor(directory["Dean"])).get_json()
        assert {s["status"] for s in detail["steps"]} == {"pending"}

    def test_approved_events(self, client, directory, make_document, as_actor):
        doc = make_document("proposal", date="2026-11-20", venue="Gym")
        make_document("proposal", title="Pending Event", date="2026-11-21")
        for step in list(doc.steps):
            client.post(f"/api/v1/documents/{doc.id}/sign", json={}, headers=as_actor(directory[step.role]))

        items = client.get("/api/v1/events/approved", headers=as_actor(directory["Dean"])).get_json()["items"]
        assert [(e["title"], e["date"], e["venue"]) for e in items] == [("Engineering Week", "2026-11-20", "Gym")]


# ═════════════════════════════════════════════════════════════════════════
# NOTES
# ═════════════════════════════════════════════════════════════════════════

class TestNoteEndpoints:
    def test_add_note(self, client, directory, make_document, as_actor):
        doc = make_document("fund_request")
        res = client.post(f"/api/v1/documents/{doc.id}/notes", json={"note": "Attached quote"},
                          headers=as_actor(directory["submitter"]))
        assert res.status_code == 201

        detail = client.get(f"/api/v1/documents/{doc.id}", headers=as_actor(directory["Dean"])).get_json()
        assert [n["note"] for n in detail["notes"]] == ["Attached quote"]
        assert detail["notes"][0]["author_name"] == "Submitter Student"

    def test_outsider_cannot_add_note(self, client, directory, make_document, as_actor):
        doc = make_document("fund_request")
        res = client.post(f"/api/v1/documents/{doc.id}/notes", json={"note": "hi"},
                          headers=as_actor(directory["CPAO"]))
        assert res.status_code == 403

    def test_empty_note(self, client, directory, make_document, as_actor):
        doc = make_document("fund_request")
        res = client.post(f"/api/v1/documents/{doc.id}/notes", json={"note": ""},
                          headers=as_actor(directory["submitter"]))
        assert res.status_code == 400

    def test_step_note_by_assignee(self, client, directory, make_document, as_actor):
        doc = make_document("fund_request")
        step_id = doc.steps[0].id
        res = client.put(f"/api/v1/documents/{doc.id}/steps/{step_id}/note", json={"note": "Reviewing"},
                         headers=as_actor(directory["Dean"]))
        assert res.status_code == 200
        assert res.get_json()["step"]["note"] == "Reviewing"

        res = client.put(f"/api/v1/documents/{doc.id}/steps/{step_id}/note", json={"note": "Mine now"},
                         headers=as_actor(directory["VPAA"]))
        assert res.status_code == 403

    def test_rejection_reason_listed_as_note(self, client, directory, make_document, as_actor):
        doc = make_document("fund_request")
        client.post(f"/api/v1/documents/{doc.id}/reject", json={"reason": "Over budget"},
                    headers=as_actor(directory["Dean"]))
        detail = client.get(f"/api/v1/documents/{doc.id}", headers=as_actor(directory["submitter"])).get_json()
        rejection = [n for n in detail["notes"] if n["is_rejection"]]
        assert [n["note"] for n in rejection] == ["Over budget"]


# ═════════════════════════════════════════════════════════════════════════
# FUNDS, NOTIFICATIONS, HEALTH
# ═════════════════════════════════════════════════════════════════════════

class TestFundEndpoints:
    def test_set_allocation(self, client, directory, as_actor):
        res = client.put("/api/v1/funds/coe", json={"initial_amount": 12500},
                         headers=as_actor(directory["EVP"]))
        assert res.status_code == 200
        assert res.get_json()["balance"]["initial_amount"] == 12500.0
        assert FundBalance.query.filter_by(department_id="coe").one().initial_amount == Decimal("12500.00")

    def test_set_allocation_invalid(self, client, directory, as_actor):
        res = client.put("/api/v1/funds/coe", json={"initial_amount": "free"},
                         headers=as_actor(directory["EVP"]))
        assert res.status_code == 400

    def test_set_allocation_requires_actor(self, client, balances):
        res = client.put("/api/v1/funds/coe", json={"initial_amount": 1})
        assert res.status_code == 401
        assert res.get_json()["code"] == "ERR_UNAUTHENTICATED"
        assert FundBalance.query.filter_by(department_id="coe").one().initial_amount == Decimal("20000.00")

    def test_set_allocation_records_actor(self, client, directory, as_actor):
        client.put("/api/v1/funds/coe", json={"initial_amount": 300}, headers=as_actor(directory["EVP"]))
        log = AuditLog.query.filter_by(action="fund.allocate").one()
        assert log.actor == directory["EVP"].key

    def test_list_funds_requires_actor(self, client):
        assert client.get("/api/v1/funds").status_code == 401

    def test_transactions_listing(self, client, directory, make_document, as_actor, balances):
        doc = make_document("fund_request", reqSSC="10", reqCSC="20")
        for role in ("Dean", "OIC OSA", "VPAA", "EVP"):
            client.post(f"/api/v1/documents/{doc.id}/sign", json={}, headers=as_actor(directory[role]))

        body = client.get("/api/v1/funds/transactions?department_id=ssc",
                          headers=as_actor(directory["EVP"])).get_json()
        assert body["total"] == 1
        assert body["items"][0]["amount"] == 10.0
        assert body["items"][0]["document_id"] == doc.id


class TestNotificationEndpoints:
    def test_assignees_notified_on_create(self, client, directory, make_document, as_actor):
        make_document("fund_request")
        res = client.get("/api/v1/notifications", headers=as_actor(directory["Dean"]))
        items = res.get_json()["items"]
        assert len(items) == 1
        assert items[0]["title"] == "Document awaiting your signature: Engineering Week"

    def test_mark_all_read(self, client, directory, make_document, as_actor):
        make_document("fund_request")
        make_document("proposal")
        headers = as_actor(directory["Dean"])
        res = client.post("/api/v1/notifications/read-all", headers=headers)
        assert res.get_json()["updated"] == 2
        assert client.get("/api/v1/notifications?unread=1", headers=headers).get_json()["items"] == []

    def test_requires_actor(self, client):
        assert client.get("/api/v1/notifications").status_code == 401


class TestHealthEndpoints:
    def test_ready(self, client):
        assert client.get("/api/v1/health/ready").get_json() == {"status": "ok"}

    def test_live(self, client):
        body = client.get("/api/v1/health/live").get_json()
        assert body["status"] == "ok"
        assert body["checks"]["database"]["status"] == "ok"
        assert body["checks"]["timeout_sweep"]["days"] == 5

    def test_unknown_route_is_json(self, client):
        res = client.get("/api/v1/nope")
        assert res.status_code == 404
        assert res.get_json()["success"] is False

    def test_request_id_header(self, client):
        res = client.get("/api/v1/health/ready", headers={"X-Request-ID": "abc-123"})
        assert res.headers["X-Request-ID"] == "abc-123"
