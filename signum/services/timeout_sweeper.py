"""
Stale document timeout sweeper.

Documents still submitted / in_review DOC_TIMEOUT_DAYS after creation are
force-resolved, each in its own transaction:

    reject_pending  every pending step → rejected with an auto-timeout note,
                    document → rejected (default)
    delete          document → deleted (soft; rows are kept)

A failure on one document is logged and the sweep moves on. Invoked before
every API request (signum.middleware.timeout_sweep) and by
``flask sweep-timeouts``.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from flask import current_app

from signum.models import db
from signum.models.audit import SEVERITY_WARNING, write_audit
from signum.models.document import (
    ACTIVE_STATUSES,
    STATUS_DELETED,
    STATUS_REJECTED,
    STEP_PENDING,
    STEP_REJECTED,
    Document,
    DocumentStep,
)
from signum.services.notification import notify_submitter
from signum.services.side_effects import dispatch
from signum.services.storage import atomic

logger = logging.getLogger(__name__)

MODE_REJECT_PENDING = "reject_pending"
MODE_DELETE = "delete"
TIMEOUT_MODES = frozenset({MODE_REJECT_PENDING, MODE_DELETE})


@dataclass
class SweepReport:
    processed: list[int] = field(default_factory=list)
    failed: list[int] = field(default_factory=list)

    def to_dict(self):
        return {"processed": self.processed, "failed": self.failed}


def timeout_note(days: int, existing: str | None) -> str:
    marker = f"[Auto-timeout after {days} days]"
    return f"{existing} {marker}" if existing else marker


def find_stale_document_ids(days: int, now: datetime | None = None) -> list[int]:
    cutoff = (now or datetime.now(timezone.utc)) - timedelta(days=days)
    return list(db.session.execute(
        db.select(Document.id)
        .where(Document.status.in_(ACTIVE_STATUSES), Document.created_at <= cutoff)
        .order_by(Document.id)
    ).scalars())


def _expire_document(document_id: int, days: int, mode: str) -> bool:
    document = db.session.get(Document, document_id, with_for_update=True, populate_existing=True)
    if document is None or document.status not in ACTIVE_STATUSES:
        return False

    if mode == MODE_DELETE:
        document.status = STATUS_DELETED
    else:
        now = datetime.now(timezone.utc)
        pending = db.session.execute(
            db.select(DocumentStep).where(
                DocumentStep.document_id == document_id,
                DocumentStep.status == STEP_PENDING,
            )
        ).scalars().all()
        for step in pending:
            step.status = STEP_REJECTED
            step.note = timeout_note(days, step.note)
            step.acted_at = now
        document.status = STATUS_REJECTED
    db.session.flush()

    write_audit(
        entity_type="document",
        entity_id=document_id,
        action="document.timeout",
        severity=SEVERITY_WARNING,
        detail={"mode": mode, "days": days},
    )
    return True


def sweep_stale_documents(now: datetime | None = None) -> SweepReport:
    """Force-resolve every stale document. Never raises for a single failure."""
    days = int(current_app.config.get("DOC_TIMEOUT_DAYS", 5))
    mode = current_app.config.get("DOC_TIMEOUT_MODE", MODE_REJECT_PENDING)
    if mode not in TIMEOUT_MODES:
        logger.warning("Unknown DOC_TIMEOUT_MODE %r, using %s", mode, MODE_REJECT_PENDING)
        mode = MODE_REJECT_PENDING

    report = SweepReport()
    for document_id in find_stale_document_ids(days, now):
        try:
            with atomic():
                changed = _expire_document(document_id, days, mode)
        except Exception:
            logger.exception("Timeout sweep failed for document %s", document_id,
                             extra={"document_id": document_id})
            report.failed.append(document_id)
            continue
        if changed:
            report.processed.append(document_id)
            logger.info("Document %s timed out (%s after %d days)", document_id, mode, days,
                        extra={"document_id": document_id})
            dispatch("notify_submitter", notify_submitter, document_id, "timeout",
                     timeout_note(days, None))
    return report
