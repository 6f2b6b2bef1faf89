"""
Workflow template resolver and assignee lookup.

Each document type has a fixed, ordered approval chain. A chain entry names
the position that must approve, whether that position is held by an employee
or a student, and whether the holder must belong to the document's
department.

Chains:
    proposal / communication:
        CSC Adviser (dept) → SSC President (student) → Dean (dept)
        → OIC OSA → CPAO → VPAA → EVP
    fund_request:
        Dean (dept) → OIC OSA → VPAA → EVP
    facility_request:
        Dean (dept) → OIC OSA → EVP O → EVP
"""

import logging
from dataclasses import dataclass

from signum.core.exceptions import ValidationError
from signum.core.identity import KIND_EMPLOYEE, KIND_STUDENT, EmployeeRef, StudentRef
from signum.models import db
from signum.models.document import (
    DOC_TYPE_COMMUNICATION,
    DOC_TYPE_FACILITY_REQUEST,
    DOC_TYPE_FUND_REQUEST,
    DOC_TYPE_PROPOSAL,
)
from signum.models.people import Employee, Student

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StepDefinition:
    position: str
    assignee_kind: str = KIND_EMPLOYEE
    department_scoped: bool = False

    @property
    def step_name(self) -> str:
        return f"{self.position} Approval"


_PROPOSAL_CHAIN = (
    StepDefinition("CSC Adviser", KIND_EMPLOYEE, department_scoped=True),
    StepDefinition("SSC President", KIND_STUDENT),
    StepDefinition("Dean", KIND_EMPLOYEE, department_scoped=True),
    StepDefinition("OIC OSA"),
    StepDefinition("CPAO"),
    StepDefinition("VPAA"),
    StepDefinition("EVP"),
)

WORKFLOW_TEMPLATES: dict[str, tuple[StepDefinition, ...]] = {
    DOC_TYPE_PROPOSAL: _PROPOSAL_CHAIN,
    DOC_TYPE_COMMUNICATION: _PROPOSAL_CHAIN,
    DOC_TYPE_FUND_REQUEST: (
        StepDefinition("Dean", KIND_EMPLOYEE, department_scoped=True),
        StepDefinition("OIC OSA"),
        StepDefinition("VPAA"),
        StepDefinition("EVP"),
    ),
    DOC_TYPE_FACILITY_REQUEST: (
        StepDefinition("Dean", KIND_EMPLOYEE, department_scoped=True),
        StepDefinition("OIC OSA"),
        StepDefinition("EVP O"),
        StepDefinition("EVP"),
    ),
}


def resolve_workflow_template(doc_type: str, department: str | None) -> list[StepDefinition]:
    """Return the ordered step definitions for a document type.

    ``department`` is accepted so department-specific chains can be added
    without changing callers; current chains only differ by document type.

    Raises:
        ValidationError: unknown document type.
    """
    try:
        chain = WORKFLOW_TEMPLATES[doc_type]
    except KeyError:
        raise ValidationError(
            f"Unknown document type '{doc_type}'",
            details={"doc_type": sorted(WORKFLOW_TEMPLATES)},
        ) from None
    return list(chain)


def find_assignee(definition: StepDefinition, department: str | None) -> EmployeeRef | StudentRef | None:
    """Resolve a step definition to the person who holds the position.

    Exact position match; department filter only for department-scoped
    steps. Several matches resolve to the lowest id. Returns None when the
    position is vacant.
    """
    model = Student if definition.assignee_kind == KIND_STUDENT else Employee
    stmt = db.select(model.id).where(model.position == definition.position)
    if definition.department_scoped:
        stmt = stmt.where(model.department == department)
    person_id = db.session.execute(stmt.order_by(model.id).limit(1)).scalar()
    if person_id is None:
        return None
    if model is Student:
        return StudentRef(person_id)
    return EmployeeRef(person_id)
