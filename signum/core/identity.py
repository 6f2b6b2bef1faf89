"""
Actor and assignee identities.

Every workflow operation receives the acting identity as an explicit
argument. A step assignee and an actor are the same tagged union:
exactly one of an employee or a student.

    actor = EmployeeRef(7)
    actor.kind  -> "employee"
    actor.key   -> "employee:7"
"""

from dataclasses import dataclass

KIND_EMPLOYEE = "employee"
KIND_STUDENT = "student"
ACTOR_KINDS = frozenset({KIND_EMPLOYEE, KIND_STUDENT})


@dataclass(frozen=True)
class EmployeeRef:
    id: int
    kind = KIND_EMPLOYEE

    @property
    def key(self) -> str:
        return f"{self.kind}:{self.id}"


@dataclass(frozen=True)
class StudentRef:
    id: int
    kind = KIND_STUDENT

    @property
    def key(self) -> str:
        return f"{self.kind}:{self.id}"


Assignee = EmployeeRef | StudentRef
Actor = EmployeeRef | StudentRef


def make_ref(kind: str, identity_id) -> Actor:
    """Build an identity from a (kind, id) pair, e.g. parsed request headers.

    Raises:
        ValueError: unknown kind or non-integer id.
    """
    kind = (kind or "").strip().lower()
    if kind not in ACTOR_KINDS:
        raise ValueError(f"Unknown identity kind: {kind!r}")
    try:
        identity_id = int(identity_id)
    except (TypeError, ValueError):
        raise ValueError(f"Invalid identity id: {identity_id!r}") from None
    return EmployeeRef(identity_id) if kind == KIND_EMPLOYEE else StudentRef(identity_id)
