"""
Document creation, notes and read models.

create_document() persists a document and its resolved approval chain in
one transaction. After commit it renders the initial artifact (best-effort)
and notifies the assignees. A chain that resolves to zero steps is not
an error: the document is created and a warning is returned.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from signum.core.exceptions import NotAuthorizedError, NotFoundError, ValidationError
from signum.core.identity import KIND_EMPLOYEE, KIND_STUDENT
from signum.models import db
from signum.models.audit import write_audit
from signum.models.document import (
    DOC_TYPE_COMMUNICATION,
    DOC_TYPE_FACILITY_REQUEST,
    DOC_TYPE_FUND_REQUEST,
    DOC_TYPE_PROPOSAL,
    DOC_TYPES,
    STATUS_APPROVED,
    STATUS_SUBMITTED,
    STEP_PENDING,
    STEP_REJECTED,
    Document,
    DocumentNote,
    DocumentStep,
)
from signum.models.fund import DEPARTMENT_FULL_NAMES
from signum.models.people import Employee, Student
from signum.services.artifacts import refresh_artifact
from signum.services.notification import notify_assignees
from signum.services.side_effects import dispatch
from signum.services.storage import atomic
from signum.services.workflow_templates import resolve_workflow_template
from signum.services.workflow_service import instantiate_steps
from signum.utils.helpers import clean_text, get_or_raise, parse_amount

logger = logging.getLogger(__name__)

RECENT_ACTIVITY_DAYS = 30

# Per-type payload fields guaranteed to exist on a stored document
_DEFAULT_FIELDS = {
    DOC_TYPE_PROPOSAL: {"date": "", "venue": "", "scheduleSummary": "", "earliestStartTime": ""},
    DOC_TYPE_FUND_REQUEST: {"implDate": "", "reqSSC": 0, "reqCSC": 0},
    DOC_TYPE_FACILITY_REQUEST: {"eventName": "", "eventDate": ""},
    DOC_TYPE_COMMUNICATION: {"date": ""},
}
_FUND_AMOUNT_FIELDS = ("reqSSC", "reqCSC")


@dataclass
class CreateOutcome:
    document: Document
    warnings: list[str] = field(default_factory=list)

    def to_dict(self):
        return {"success": True, "document_id": self.document.id, "warnings": self.warnings}


def prepare_document_data(doc_type: str, payload: dict) -> dict:
    """Normalise a form payload: defaults, full department name, amount checks."""
    data = {**_DEFAULT_FIELDS.get(doc_type, {}), **payload}
    department = clean_text(data.get("department"), "department")
    if not department:
        raise ValidationError("department is required", details={"department": "required"})
    data["department"] = department
    data["departmentFull"] = (
        clean_text(data.get("departmentFull"), "departmentFull")
        or DEPARTMENT_FULL_NAMES.get(department.lower(), department)
    )

    if doc_type == DOC_TYPE_FUND_REQUEST:
        errors = {}
        for key in _FUND_AMOUNT_FIELDS:
            try:
                data[key] = str(parse_amount(data.get(key)))
            except ValueError:
                errors[key] = "must be a non-negative number"
        if errors:
            raise ValidationError("Invalid requested amount", details=errors)
    if doc_type == DOC_TYPE_FACILITY_REQUEST and not data.get("eventName"):
        data["eventName"] = data.get("title", "")
    return data


def _signatory_names(steps) -> dict:
    return {step.role: step.assignee_name for step in steps}


def create_document(doc_type: str, submitter, payload: dict) -> CreateOutcome:
    """Create a document and its approval chain on behalf of a student."""
    if submitter.kind != KIND_STUDENT:
        raise NotAuthorizedError("Only students can submit documents")
    if doc_type not in DOC_TYPES:
        raise ValidationError(f"Unknown document type '{doc_type}'", details={"doc_type": sorted(DOC_TYPES)})
    if not isinstance(payload, dict):
        raise ValidationError("data must be an object")
    title = clean_text(payload.get("title"), "title")
    if not title:
        raise ValidationError("title is required", details={"title": "required"})

    data = prepare_document_data(doc_type, payload)
    warnings = []

    with atomic():
        get_or_raise(Student, submitter.id)
        document = Document(
            doc_type=doc_type,
            student_id=submitter.id,
            title=title,
            department=data["departmentFull"],
            data=data,
            status=STATUS_SUBMITTED,
            current_step=0,
        )
        db.session.add(document)
        db.session.flush()

        definitions = resolve_workflow_template(doc_type, document.department)
        steps = instantiate_steps(document, definitions)
        if not steps:
            warnings.append("No approvers could be resolved for this document")

        signatories = _signatory_names(steps)
        document.file_path = f"pending-render/{doc_type}_{document.id}"

        write_audit(
            entity_type="document",
            entity_id=document.id,
            action="document.create",
            actor=submitter.key,
            detail={"doc_type": doc_type, "steps": len(steps)},
        )

    refresh_artifact(document, {"signatories": signatories})
    logger.info("Document %s created (%s, %d steps)", document.id, doc_type, len(steps),
                extra={"document_id": document.id})
    if steps:
        dispatch("notify_assignees", notify_assignees, document.id)
    return CreateOutcome(document=document, warnings=warnings)


# ── Notes ────────────────────────────────────────────────────────────────────

def _can_view(document: Document, actor) -> bool:
    if actor.kind == KIND_STUDENT and document.student_id == actor.id:
        return True
    return any(step.assignee == actor for step in document.steps)


def add_note(document_id: int, actor, note: str) -> DocumentNote:
    note = clean_text(note, "note")
    if not note:
        raise ValidationError("note is required", details={"note": "required"})
    with atomic():
        document = get_or_raise(Document, document_id)
        if not _can_view(document, actor):
            raise NotAuthorizedError("You are not a participant on this document", document_id)
        entry = DocumentNote(document_id=document_id, author_kind=actor.kind, author_id=actor.id, note=note)
        db.session.add(entry)
        db.session.flush()
        write_audit(entity_type="document", entity_id=document_id, action="document.note", actor=actor.key)
    return entry


def update_step_note(document_id: int, step_id: int, actor, note: str | None) -> DocumentStep:
    """Let the step's assignee edit the note attached to their step."""
    with atomic():
        step = db.session.get(DocumentStep, step_id)
        if step is None or step.document_id != document_id:
            raise NotFoundError(resource="DocumentStep", resource_id=step_id)
        if step.assignee != actor:
            raise NotAuthorizedError("Only the assignee can edit this step note", document_id)
        step.note = clean_text(note, "note") or None
    return step


def _author_name(kind: str, author_id: int) -> str | None:
    model = Employee if kind == KIND_EMPLOYEE else Student
    person = db.session.get(model, author_id)
    return person.full_name if person else None


def list_notes(document: Document) -> list[dict]:
    """Document notes merged with step notes, oldest first."""
    notes = []
    for entry in DocumentNote.query.filter_by(document_id=document.id).all():
        item = entry.to_dict()
        item.update(author_name=_author_name(entry.author_kind, entry.author_id),
                    step_id=None, is_rejection=False)
        notes.append(item)
    for step in document.steps:
        if not step.note:
            continue
        notes.append({
            "id": f"step-{step.id}",
            "document_id": document.id,
            "author_kind": step.assignee.kind,
            "author_id": step.assignee.id,
            "author_name": step.assignee_name,
            "note": step.note,
            "created_at": step.acted_at.isoformat() if step.acted_at else None,
            "step_id": step.id,
            "is_rejection": step.status == STEP_REJECTED,
        })
    notes.sort(key=lambda n: n["created_at"] or "")
    return notes


# ── Read models ──────────────────────────────────────────────────────────────

def get_document_detail(document_id: int, actor) -> dict:
    document = get_or_raise(Document, document_id)
    if not _can_view(document, actor):
        raise NotAuthorizedError("You are not a participant on this document", document_id)
    result = document.to_dict(include_steps=True)
    result["notes"] = list_notes(document)
    return result


def assigned_documents_query(actor):
    """Documents with a step for ``actor``: pending now, or acted on recently."""
    cutoff = datetime.now(timezone.utc) - timedelta(days=RECENT_ACTIVITY_DAYS)
    if actor.kind == KIND_EMPLOYEE:
        mine = DocumentStep.employee_id == actor.id
    else:
        mine = DocumentStep.student_id == actor.id
    step_ids = db.select(DocumentStep.document_id).where(
        mine,
        db.or_(DocumentStep.status == STEP_PENDING, DocumentStep.acted_at >= cutoff),
    )
    return Document.query.filter(Document.id.in_(step_ids)).order_by(Document.created_at.desc(), Document.id.desc())


def submitted_documents_query(actor):
    if actor.kind != KIND_STUDENT:
        raise NotAuthorizedError("Only students submit documents")
    return Document.query.filter_by(student_id=actor.id).order_by(Document.created_at.desc(), Document.id.desc())


def approved_events() -> list[dict]:
    """Approved proposals rendered as calendar entries."""
    documents = (
        Document.query
        .filter_by(doc_type=DOC_TYPE_PROPOSAL, status=STATUS_APPROVED)
        .order_by(Document.id)
        .all()
    )
    events = []
    for doc in documents:
        data = doc.data or {}
        if not data.get("date"):
            continue
        events.append({
            "document_id": doc.id,
            "title": data.get("title") or doc.title,
            "date": data.get("date"),
            "time": data.get("earliestStartTime") or None,
            "venue": data.get("venue") or None,
            "department": doc.department,
        })
    return events
