"""
Sign-um Document Approval Engine
Document workflow domain model.

Models:
    - Document: a submitted document routed through an approval chain
    - DocumentStep: one approver slot in the chain
    - DocumentSignature: the latest sign/reject action per (document, step, actor)
    - DocumentNote: free-text notes attached to a document

Status lifecycle:
    Document:  submitted → in_review → approved
               submitted | in_review → rejected
               submitted | in_review → deleted     (timeout sweeper, delete mode)
               approved, rejected and deleted are terminal.
    Step:      pending → completed | rejected       (never back to pending)
"""

from datetime import datetime, timezone

from signum.core.identity import KIND_EMPLOYEE, Assignee, EmployeeRef, StudentRef
from signum.models import db

# ── Constants ────────────────────────────────────────────────────────────────

DOC_TYPE_PROPOSAL = "proposal"
DOC_TYPE_FUND_REQUEST = "fund_request"
DOC_TYPE_FACILITY_REQUEST = "facility_request"
DOC_TYPE_COMMUNICATION = "communication"
DOC_TYPES = frozenset({
    DOC_TYPE_PROPOSAL,
    DOC_TYPE_FUND_REQUEST,
    DOC_TYPE_FACILITY_REQUEST,
    DOC_TYPE_COMMUNICATION,
})

STATUS_SUBMITTED = "submitted"
STATUS_IN_REVIEW = "in_review"
STATUS_APPROVED = "approved"
STATUS_REJECTED = "rejected"
STATUS_DELETED = "deleted"
ACTIVE_STATUSES = frozenset({STATUS_SUBMITTED, STATUS_IN_REVIEW})
TERMINAL_STATUSES = frozenset({STATUS_APPROVED, STATUS_REJECTED, STATUS_DELETED})

STEP_PENDING = "pending"
STEP_COMPLETED = "completed"
STEP_REJECTED = "rejected"

SIGNATURE_SIGNED = "signed"
SIGNATURE_REJECTED = "rejected"


def _now():
    return datetime.now(timezone.utc)


def _iso(value):
    return value.isoformat() if value else None


class _AssigneeColumnsMixin:
    """Exactly-one-of employee/student FK pair, exposed as an Assignee union."""

    @property
    def assignee(self) -> Assignee:
        if self.employee_id is not None:
            return EmployeeRef(self.employee_id)
        return StudentRef(self.student_id)

    @assignee.setter
    def assignee(self, value: Assignee) -> None:
        if value.kind == KIND_EMPLOYEE:
            self.employee_id, self.student_id = value.id, None
        else:
            self.employee_id, self.student_id = None, value.id


class Document(db.Model):
    """
    A submitted document and its routing state.

    ``data`` is the free-form form payload (title, amounts, dates, venue...).
    ``current_step`` counts completed signatures; it only ever increases.
    """

    __tablename__ = "documents"
    __table_args__ = (
        db.Index("idx_documents_status_created", "status", "created_at"),
    )

    id = db.Column(db.Integer, primary_key=True)
    doc_type = db.Column(
        db.String(30), nullable=False, index=True,
        comment="proposal | fund_request | facility_request | communication",
    )
    student_id = db.Column(
        db.Integer, db.ForeignKey("students.id", ondelete="RESTRICT"), nullable=False, index=True,
        comment="Submitting student",
    )
    title = db.Column(db.String(255), nullable=False)
    department = db.Column(db.String(150), nullable=True, index=True)
    data = db.Column(db.JSON, nullable=False, default=dict, comment="Form payload")
    status = db.Column(
        db.String(20), nullable=False, default=STATUS_SUBMITTED, index=True,
        comment="submitted | in_review | approved | rejected | deleted",
    )
    current_step = db.Column(db.Integer, nullable=False, default=0)
    file_path = db.Column(db.String(500), nullable=True, comment="Current rendered artifact")
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_now)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_now, onupdate=_now)

    submitter = db.relationship("Student")
    steps = db.relationship(
        "DocumentStep", back_populates="document", order_by="DocumentStep.step_order",
        cascade="all, delete-orphan",
    )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_dict(self, include_steps=False):
        result = {
            "id": self.id,
            "doc_type": self.doc_type,
            "student_id": self.student_id,
            "submitter": self.submitter.full_name if self.submitter else None,
            "title": self.title,
            "department": self.department,
            "data": self.data or {},
            "status": self.status,
            "current_step": self.current_step,
            "file_path": self.file_path,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }
        if include_steps:
            result["steps"] = [s.to_dict() for s in self.steps]
        return result

    def __repr__(self):
        return f"<Document {self.id}: {self.doc_type} [{self.status}]>"


class DocumentStep(_AssigneeColumnsMixin, db.Model):
    """
    One approver slot. Created ``pending`` in bulk with the document.

    ``step_order`` is the 1-based position in the resolved chain; the engine
    does not force approvers to act in that order.
    """

    __tablename__ = "document_steps"
    __table_args__ = (
        db.UniqueConstraint("document_id", "step_order", name="uq_document_step_order"),
        db.CheckConstraint(
            "(employee_id IS NOT NULL AND student_id IS NULL) OR "
            "(employee_id IS NULL AND student_id IS NOT NULL)",
            name="ck_document_step_one_assignee",
        ),
        db.Index("idx_document_steps_employee_status", "employee_id", "status"),
        db.Index("idx_document_steps_student_status", "student_id", "status"),
    )

    id = db.Column(db.Integer, primary_key=True)
    document_id = db.Column(
        db.Integer, db.ForeignKey("documents.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    step_order = db.Column(db.Integer, nullable=False)
    name = db.Column(db.String(150), nullable=False, comment="Display name, e.g. 'Dean Approval'")
    role = db.Column(db.String(100), nullable=False, comment="Resolved position, e.g. Dean")
    employee_id = db.Column(db.Integer, db.ForeignKey("employees.id", ondelete="RESTRICT"), nullable=True)
    student_id = db.Column(db.Integer, db.ForeignKey("students.id", ondelete="RESTRICT"), nullable=True)
    status = db.Column(
        db.String(20), nullable=False, default=STEP_PENDING,
        comment="pending | completed | rejected",
    )
    note = db.Column(db.Text, nullable=True)
    acted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    signature_map = db.Column(db.JSON, nullable=True, comment="Opaque signature placement data")

    document = db.relationship("Document", back_populates="steps")
    employee = db.relationship("Employee")
    student = db.relationship("Student")

    @property
    def assignee_name(self) -> str | None:
        person = self.employee or self.student
        return person.full_name if person else None

    def to_dict(self):
        assignee = self.assignee
        return {
            "id": self.id,
            "document_id": self.document_id,
            "step_order": self.step_order,
            "name": self.name,
            "role": self.role,
            "assignee_kind": assignee.kind,
            "assignee_id": assignee.id,
            "assignee_name": self.assignee_name,
            "status": self.status,
            "note": self.note,
            "acted_at": _iso(self.acted_at),
            "signature_map": self.signature_map,
        }

    def __repr__(self):
        return f"<DocumentStep {self.id}: doc={self.document_id} #{self.step_order} {self.status}>"


class DocumentSignature(_AssigneeColumnsMixin, db.Model):
    """
    Latest signature action for (document, step, actor).

    Upserted: a repeated action on the same step replaces the previous row.
    ``actor_key`` ("employee:5") carries the uniqueness so NULL FK columns
    never defeat the constraint.
    """

    __tablename__ = "document_signatures"
    __table_args__ = (
        db.UniqueConstraint("document_id", "step_id", "actor_key", name="uq_document_signature_actor"),
        db.CheckConstraint(
            "(employee_id IS NOT NULL AND student_id IS NULL) OR "
            "(employee_id IS NULL AND student_id IS NOT NULL)",
            name="ck_document_signature_one_actor",
        ),
    )

    id = db.Column(db.Integer, primary_key=True)
    document_id = db.Column(
        db.Integer, db.ForeignKey("documents.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    step_id = db.Column(
        db.Integer, db.ForeignKey("document_steps.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    actor_key = db.Column(db.String(40), nullable=False)
    employee_id = db.Column(db.Integer, db.ForeignKey("employees.id", ondelete="RESTRICT"), nullable=True)
    student_id = db.Column(db.Integer, db.ForeignKey("students.id", ondelete="RESTRICT"), nullable=True)
    status = db.Column(db.String(20), nullable=False, comment="signed | rejected")
    signed_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_now)

    def to_dict(self):
        return {
            "id": self.id,
            "document_id": self.document_id,
            "step_id": self.step_id,
            "actor": self.actor_key,
            "status": self.status,
            "signed_at": _iso(self.signed_at),
        }


class DocumentNote(db.Model):
    """Free-text note on a document, authored by an employee or student."""

    __tablename__ = "document_notes"

    id = db.Column(db.Integer, primary_key=True)
    document_id = db.Column(
        db.Integer, db.ForeignKey("documents.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    author_kind = db.Column(db.String(20), nullable=False, comment="employee | student")
    author_id = db.Column(db.Integer, nullable=False)
    note = db.Column(db.Text, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_now)

    def to_dict(self):
        return {
            "id": self.id,
            "document_id": self.document_id,
            "author_kind": self.author_kind,
            "author_id": self.author_id,
            "note": self.note,
            "created_at": _iso(self.created_at),
        }
