"""
Signing and rejection transactions.

sign_document():
    One atomic unit: upsert signature → complete step → advance document →
    (fund request) stamp role date → if every step is completed, finalize:
    approve, charge the fund ledger, stamp the release date.
    Restarted as a whole on ContentionError, SIGN_MAX_ATTEMPTS in total.
    After commit, a fund request is re-rendered, an approved proposal is
    handed to the calendar event sink and the submitter is notified.

reject_document():
    One atomic unit, no retry: upsert rejected signature → reject step →
    reject document. The current artifact is archived after commit.

The acting identity is always an explicit EmployeeRef / StudentRef
argument. Terminal documents (approved, rejected, deleted) are never
mutated here.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone

from flask import current_app

from signum.core.exceptions import InvalidStateError, NotAuthorizedError, ValidationError
from signum.models import db
from signum.models.audit import SEVERITY_WARNING, write_audit
from signum.models.document import (
    DOC_TYPE_FUND_REQUEST,
    DOC_TYPE_PROPOSAL,
    SIGNATURE_REJECTED,
    SIGNATURE_SIGNED,
    STATUS_APPROVED,
    STATUS_IN_REVIEW,
    STATUS_REJECTED,
    STEP_COMPLETED,
    STEP_PENDING,
    STEP_REJECTED,
    Document,
    DocumentNote,
    DocumentSignature,
)
from signum.services import fund_ledger
from signum.services.artifacts import archive_document_artifact, refresh_artifact
from signum.services.event_sink import create_event_for_document
from signum.services.notification import notify_submitter
from signum.services.side_effects import dispatch
from signum.services.storage import atomic, run_with_contention_retry
from signum.services.workflow_service import (
    is_fully_approved,
    resolve_actor_step,
    resolve_actor_step_for_rejection,
)
from signum.utils.helpers import clean_text, get_or_raise

logger = logging.getLogger(__name__)

# Fund-request form field stamped when each role signs
FUND_REQUEST_DATE_FIELDS = {
    "OIC OSA": "notedDate",
    "VPAA": "recDate",
    "EVP": "appDate",
}
RELEASE_DATE_FIELD = "releaseDate"


@dataclass
class SignOutcome:
    document_id: int
    step_id: int
    document_status: str
    fully_approved: bool = False
    rerender: bool = False

    def to_dict(self):
        return {
            "success": True,
            "document_id": self.document_id,
            "step_id": self.step_id,
            "document_status": self.document_status,
            "fully_approved": self.fully_approved,
        }


def _now():
    return datetime.now(timezone.utc)


def _lock_document(document_id: int) -> Document:
    """Load the document under a row lock; serializes actors on one document."""
    return get_or_raise(Document, document_id, for_update=True)


def _ensure_active(document: Document) -> None:
    if document.is_terminal:
        raise InvalidStateError("Document", document.id, document.status)


def upsert_signature(document_id: int, step_id: int, actor, status: str) -> DocumentSignature:
    """Insert or replace the signature row for (document, step, actor)."""
    signature = db.session.execute(
        db.select(DocumentSignature).where(
            DocumentSignature.document_id == document_id,
            DocumentSignature.step_id == step_id,
            DocumentSignature.actor_key == actor.key,
        )
    ).scalar()
    if signature is None:
        signature = DocumentSignature(document_id=document_id, step_id=step_id, actor_key=actor.key)
        signature.assignee = actor
        db.session.add(signature)
    signature.status = status
    signature.signed_at = _now()
    db.session.flush()
    return signature


def _set_data_field(document: Document, field: str, value) -> None:
    # JSON columns only detect reassignment
    document.data = {**(document.data or {}), field: value}


def _finalize(document: Document, actor) -> None:
    document.status = STATUS_APPROVED
    if document.doc_type == DOC_TYPE_FUND_REQUEST:
        fund_ledger.deduct_for_document(document, actor_key=actor.key)
        _set_data_field(document, RELEASE_DATE_FIELD, date.today().isoformat())
    write_audit(
        entity_type="document",
        entity_id=document.id,
        action="document.approve",
        actor=actor.key,
        detail={"doc_type": document.doc_type},
    )
    logger.info("Document %s fully approved", document.id, extra={"document_id": document.id})


def _sign_once(document_id, actor, step_id, note, signature_map) -> SignOutcome:
    document = _lock_document(document_id)
    _ensure_active(document)

    step = resolve_actor_step(document_id, actor, step_id)
    if step is None:
        raise NotAuthorizedError("No pending step assigned to you on this document", document_id)
    if step.status == STEP_REJECTED:
        raise InvalidStateError("DocumentStep", step.id, step.status)

    upsert_signature(document_id, step.id, actor, SIGNATURE_SIGNED)

    if step.status != STEP_PENDING:
        # Repeat signature on a completed step refreshes the signature row only
        logger.info("Step %s already completed, signature refreshed", step.id,
                    extra={"document_id": document_id, "step_id": step.id})
        return SignOutcome(document_id, step.id, document.status)

    step.status = STEP_COMPLETED
    step.acted_at = _now()
    step.note = note
    if signature_map is not None:
        step.signature_map = signature_map

    document.current_step = (document.current_step or 0) + 1
    document.status = STATUS_IN_REVIEW

    if document.doc_type == DOC_TYPE_FUND_REQUEST:
        field = FUND_REQUEST_DATE_FIELDS.get(step.role)
        if field:
            _set_data_field(document, field, date.today().isoformat())

    db.session.flush()
    write_audit(
        entity_type="document",
        entity_id=document_id,
        action="document.sign",
        actor=actor.key,
        detail={"step_id": step.id, "step": step.name},
    )

    fully_approved = is_fully_approved(document_id)
    if fully_approved:
        _finalize(document, actor)

    return SignOutcome(
        document_id, step.id, document.status, fully_approved=fully_approved,
        rerender=document.doc_type == DOC_TYPE_FUND_REQUEST,
    )


def sign_document(document_id: int, actor, *, step_id: int | None = None,
                  note: str | None = None, signature_map: dict | None = None) -> SignOutcome:
    """Record ``actor``'s signature and advance the document.

    Raises:
        NotFoundError: unknown document, or step_id not on this document.
        NotAuthorizedError: the actor has no step to sign.
        InvalidStateError: document is terminal, or the step was rejected.
        ContentionError: still contended after SIGN_MAX_ATTEMPTS.
    """
    note = clean_text(note, "note") or None
    outcome = run_with_contention_retry(
        lambda: _sign_once(document_id, actor, step_id, note, signature_map),
        max_attempts=current_app.config.get("SIGN_MAX_ATTEMPTS", 3),
        delay=current_app.config.get("SIGN_RETRY_DELAY_SECONDS", 1),
        label=f"sign document {document_id}",
    )
    logger.info(
        "Document %s signed by %s (status=%s)", document_id, actor.key, outcome.document_status,
        extra={"document_id": document_id, "step_id": outcome.step_id},
    )

    if outcome.rerender:
        refresh_artifact(db.session.get(Document, document_id))
    if outcome.fully_approved:
        document = db.session.get(Document, document_id)
        if document.doc_type == DOC_TYPE_PROPOSAL:
            data = document.data or {}
            if (data.get("title") or document.title) and data.get("date"):
                dispatch("calendar_event", create_event_for_document, document_id)
        dispatch("notify_submitter", notify_submitter, document_id, "approval")
    return outcome


def reject_document(document_id: int, actor, reason: str, *, step_id: int | None = None) -> SignOutcome:
    """Reject a document on behalf of ``actor``.

    Raises:
        ValidationError: empty reason.
        NotFoundError / NotAuthorizedError / InvalidStateError: as for signing.
    """
    reason = clean_text(reason, "reason")
    if not reason:
        raise ValidationError("A rejection reason is required", details={"reason": "required"})

    with atomic():
        document = _lock_document(document_id)
        _ensure_active(document)

        step = resolve_actor_step_for_rejection(document_id, actor, step_id)
        if step is None:
            raise NotAuthorizedError("No step assigned to you on this document", document_id)

        upsert_signature(document_id, step.id, actor, SIGNATURE_REJECTED)

        if step.status == STEP_PENDING:
            step.status = STEP_REJECTED
            step.note = reason
            step.acted_at = _now()
        else:
            # A completed step keeps its state; the reason lives on as a document note
            db.session.add(DocumentNote(
                document_id=document_id, author_kind=actor.kind, author_id=actor.id, note=reason,
            ))

        document.status = STATUS_REJECTED
        db.session.flush()

        write_audit(
            entity_type="document",
            entity_id=document_id,
            action="document.reject",
            actor=actor.key,
            severity=SEVERITY_WARNING,
            detail={"step_id": step.id, "reason": reason},
        )
        outcome = SignOutcome(document_id, step.id, STATUS_REJECTED)

    archive_document_artifact(document)
    logger.info("Document %s rejected by %s", document_id, actor.key,
                extra={"document_id": document_id, "step_id": outcome.step_id})
    dispatch("notify_submitter", notify_submitter, document_id, "rejection", reason)
    return outcome
