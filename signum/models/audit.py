"""
Sign-um Document Approval Engine
Audit domain model.

Models:
    - AuditLog: immutable, append-only audit trail for workflow events.
"""

import json
import logging
from datetime import UTC, datetime

from sqlalchemy.exc import SQLAlchemyError

from signum.models import db

logger = logging.getLogger(__name__)

# ── Constants ────────────────────────────────────────────────────────────────

CATEGORY_DOCUMENTS = "document_management"
CATEGORY_FUNDS = "fund_management"

SEVERITY_INFO = "INFO"
SEVERITY_WARNING = "WARNING"

AUDIT_ACTIONS = {
    "document.create",
    "document.sign",
    "document.approve",
    "document.reject",
    "document.timeout",
    "document.note",
    "fund.deduct",
    "fund.allocate",
}


class AuditLog(db.Model):
    """
    Immutable audit trail for every workflow event.

    One row per action. ``detail_json`` carries the action payload
    (step, reason, amounts...).
    """

    __tablename__ = "audit_logs"
    __table_args__ = (
        db.Index("idx_audit_entity", "entity_type", "entity_id"),
        db.Index("idx_audit_actor", "actor"),
        db.Index("idx_audit_action", "action"),
        db.Index("idx_audit_ts", "timestamp"),
    )

    id = db.Column(db.Integer, primary_key=True)

    # Polymorphic entity reference
    entity_type = db.Column(db.String(30), nullable=False, comment="document | fund_balance")
    entity_id = db.Column(db.String(36), nullable=False)

    # What happened
    action = db.Column(db.String(60), nullable=False, comment="document.sign | fund.deduct | ...")
    category = db.Column(db.String(40), nullable=False, default=CATEGORY_DOCUMENTS)
    severity = db.Column(db.String(10), nullable=False, default=SEVERITY_INFO)
    actor = db.Column(
        db.String(60), nullable=False, default="system",
        comment="Actor key (employee:5 | student:3) or 'system'",
    )

    detail_json = db.Column(db.Text, default="{}")

    # Timestamp (immutable)
    timestamp = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(UTC),
    )

    @property
    def detail(self) -> dict:
        """Deserialise *detail_json* to a Python dict."""
        try:
            return json.loads(self.detail_json or "{}")
        except (json.JSONDecodeError, TypeError):
            return {}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "action": self.action,
            "category": self.category,
            "severity": self.severity,
            "actor": self.actor,
            "detail": self.detail,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
        }

    def __repr__(self):
        return f"<AuditLog {self.id}: {self.action} on {self.entity_type}/{self.entity_id}>"


# ── Convenience writer ───────────────────────────────────────────────────────

def write_audit(
    *,
    entity_type: str,
    entity_id,
    action: str,
    actor: str = "system",
    category: str = CATEGORY_DOCUMENTS,
    severity: str = SEVERITY_INFO,
    detail: dict | None = None,
) -> AuditLog | None:
    """
    Append a single audit row inside a SAVEPOINT.

    The caller keeps transaction control: the row commits or rolls back
    with the surrounding business transaction. A failure to write the audit
    row is logged and swallowed; it never aborts the caller.

    Pending business changes are flushed before the SAVEPOINT opens, so
    their errors (contention included) reach the caller untouched; only the
    AuditLog INSERT itself is guarded.

    Returns the flushed AuditLog, or None if the write failed.
    """
    db.session.flush()
    if action not in AUDIT_ACTIONS:
        logger.warning("Unregistered audit action %r on %s/%s", action, entity_type, entity_id)
    log = AuditLog(
        entity_type=entity_type,
        entity_id=str(entity_id),
        action=action,
        category=category,
        severity=severity,
        actor=actor,
        detail_json=json.dumps(detail or {}, default=str),
    )
    try:
        with db.session.begin_nested():
            db.session.add(log)
    except SQLAlchemyError:
        logger.warning(
            "Audit write failed: %s on %s/%s", action, entity_type, entity_id, exc_info=True,
        )
        return None
    return log
