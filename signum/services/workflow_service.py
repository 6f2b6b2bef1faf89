"""
Step instantiation and actor-to-step resolution.

Layer contract:
    - instantiate_steps() adds rows to the session and flushes; the caller
      (document creation) owns the commit.
    - resolve_* functions are read-only.
"""

import logging

from signum.core.exceptions import NotFoundError
from signum.core.identity import KIND_EMPLOYEE
from signum.models import db
from signum.models.document import STEP_COMPLETED, STEP_PENDING, DocumentStep
from signum.services.workflow_templates import StepDefinition, find_assignee

logger = logging.getLogger(__name__)


def _assigned_to(actor):
    if actor.kind == KIND_EMPLOYEE:
        return DocumentStep.employee_id == actor.id
    return DocumentStep.student_id == actor.id


def instantiate_steps(document, definitions: list[StepDefinition]) -> list[DocumentStep]:
    """Persist the resolved approval chain for a freshly created document.

    Definitions whose position is vacant are skipped. ``step_order`` is the
    1-based position among the resolved steps. Every step starts pending.
    """
    steps = []
    for definition in definitions:
        assignee = find_assignee(definition, document.department)
        if assignee is None:
            logger.info(
                "No holder for position %s (department=%s), step skipped",
                definition.position, document.department,
                extra={"document_id": document.id},
            )
            continue
        step = DocumentStep(
            document_id=document.id,
            step_order=len(steps) + 1,
            name=definition.step_name,
            role=definition.position,
            status=STEP_PENDING,
        )
        step.assignee = assignee
        steps.append(step)

    db.session.add_all(steps)
    db.session.flush()

    if not steps:
        logger.warning(
            "No workflow steps resolved for document %s (%s, department=%s)",
            document.id, document.doc_type, document.department,
            extra={"document_id": document.id},
        )
    return steps


def _explicit_step(document_id: int, step_id: int) -> DocumentStep:
    step = db.session.get(DocumentStep, step_id, populate_existing=True)
    if step is None or step.document_id != document_id:
        raise NotFoundError(resource="DocumentStep", resource_id=step_id)
    return step


def resolve_actor_step(document_id: int, actor, step_id: int | None = None) -> DocumentStep | None:
    """Find the step ``actor`` may sign on a document.

    An explicit ``step_id`` is trusted as given (it must belong to the
    document). Otherwise the actor's pending step with the lowest order.
    """
    if step_id is not None:
        return _explicit_step(document_id, step_id)
    stmt = (
        db.select(DocumentStep)
        .where(
            DocumentStep.document_id == document_id,
            DocumentStep.status == STEP_PENDING,
            _assigned_to(actor),
        )
        .order_by(DocumentStep.step_order)
        .limit(1)
        .execution_options(populate_existing=True)
    )
    return db.session.execute(stmt).scalar()


def resolve_actor_step_for_rejection(document_id: int, actor, step_id: int | None = None) -> DocumentStep | None:
    """Like resolve_actor_step, falling back to any step assigned to the actor."""
    step = resolve_actor_step(document_id, actor, step_id)
    if step is not None:
        return step
    stmt = (
        db.select(DocumentStep)
        .where(DocumentStep.document_id == document_id, _assigned_to(actor))
        .order_by(DocumentStep.step_order)
        .limit(1)
        .execution_options(populate_existing=True)
    )
    return db.session.execute(stmt).scalar()


def is_fully_approved(document_id: int) -> bool:
    """True when the document has steps and every one of them is completed."""
    total, completed = db.session.execute(
        db.select(
            db.func.count(DocumentStep.id),
            db.func.coalesce(
                db.func.sum(db.case((DocumentStep.status == STEP_COMPLETED, 1), else_=0)), 0,
            ),
        ).where(DocumentStep.document_id == document_id)
    ).one()
    return total > 0 and total == completed
