"""
Shared pytest fixtures for the Sign-um test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate, per-test ARTIFACT_DIR (autouse)
    - client: Flask test client (function-scoped)
    - directory: employees/students holding every workflow position
    - make_document: create a document through the service layer
    - as_actor: X-Actor-* request headers for an identity
    - fail_statement: make the driver raise on matching SQL statements
"""

import pytest
from sqlalchemy import event

from signum import create_app
from signum.core.identity import EmployeeRef, StudentRef
from signum.models import db as _db
from signum.models.fund import FundBalance
from signum.models.people import Employee, Student

DEPARTMENT = "College of Engineering"
OTHER_DEPARTMENT = "College of Nursing"


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    return create_app("testing")


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db, tmp_path):
    """Per-test: open app context, rollback after test, recreate tables."""
    app.config["ARTIFACT_DIR"] = str(tmp_path / "artifacts")
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Directory & document helpers ─────────────────────────────────────────


def _employee(first, position, department=DEPARTMENT):
    e = Employee(first_name=first, last_name="Staff", email=f"{first.lower()}@spcf.test",
                 position=position, department=department)
    _db.session.add(e)
    return e


def _student(first, position=None, department=DEPARTMENT):
    s = Student(first_name=first, last_name="Student", email=f"{first.lower()}@students.spcf.test",
                position=position, department=department)
    _db.session.add(s)
    return s


@pytest.fixture()
def directory():
    """Every position in every chain, filled for DEPARTMENT.

    Returns a dict of EmployeeRef / StudentRef keyed by role, plus
    "submitter" (a plain student).
    """
    people = {
        "CSC Adviser": _employee("Adviser", "CSC Adviser"),
        "SSC President": _student("President", "SSC President", department="Supreme Student Council"),
        "Dean": _employee("Dean", "Dean"),
        "OIC OSA": _employee("Osa", "OIC OSA", department="Office of Student Affairs"),
        "CPAO": _employee("Cpao", "CPAO", department="CPAO"),
        "VPAA": _employee("Vpaa", "VPAA", department="Academic Affairs"),
        "EVP O": _employee("Evpo", "EVP O", department="Executive Office"),
        "EVP": _employee("Evp", "EVP", department="Executive Office"),
        "submitter": _student("Submitter"),
    }
    _db.session.commit()
    refs = {}
    for role, person in people.items():
        refs[role] = StudentRef(person.id) if isinstance(person, Student) else EmployeeRef(person.id)
    return refs


@pytest.fixture()
def balances():
    """Council and department fund balances."""
    ssc = FundBalance(department_id="ssc", initial_amount=50000, used_amount=0)
    coe = FundBalance(department_id="coe", initial_amount=20000, used_amount=0)
    _db.session.add_all([ssc, coe])
    _db.session.commit()
    return {"ssc": ssc, "coe": coe}


@pytest.fixture()
def make_document(directory):
    """Factory: make_document(doc_type, **payload) → Document (via the service layer)."""
    from signum.services.document_service import create_document

    def _make(doc_type="proposal", **payload):
        payload.setdefault("title", "Engineering Week")
        payload.setdefault("department", DEPARTMENT)
        return create_document(doc_type, directory["submitter"], payload).document

    return _make


@pytest.fixture()
def as_actor():
    """Factory: as_actor(ref) → HTTP headers identifying ``ref`` as the acting identity."""

    def _headers(ref):
        return {"X-Actor-Type": ref.kind, "X-Actor-Id": str(ref.id)}

    return _headers


@pytest.fixture()
def fail_statement():
    """Factory: fail_statement(prefix, exc, times=1, contains=None) → state dict.

    Raises ``exc`` from the driver for the next ``times`` statements starting
    with ``prefix`` (every one when ``times`` is None) whose parameters
    contain ``contains``. ``state["raised"]`` counts the failures injected.
    """
    hooks = []

    def _install(prefix, exc, times=1, contains=None):
        state = {"remaining": times, "raised": 0}

        def _hook(conn, cursor, statement, parameters, context, executemany):
            if not statement.lstrip().upper().startswith(prefix.upper()):
                return
            if contains is not None and contains not in str(parameters):
                return
            if state["remaining"] is not None:
                if state["remaining"] <= 0:
                    return
                state["remaining"] -= 1
            state["raised"] += 1
            raise exc

        event.listen(_db.engine, "before_cursor_execute", _hook)
        hooks.append(_hook)
        return state

    yield _install
    for hook in hooks:
        event.remove(_db.engine, "before_cursor_execute", hook)
