"""
Sign-um Document Approval Engine
Notification Service.

Creates and queries in-app notifications. Workflow code never calls this
inline: the notify_* jobs below are handed to the side-effect dispatcher
after the workflow transaction commits.
"""

from datetime import datetime, timezone

from signum.models import db
from signum.models.document import STEP_PENDING, Document
from signum.models.notification import Notification


class NotificationService:
    """Stateless service class for notification operations."""

    # ── Create ────────────────────────────────────────────────────────────

    @staticmethod
    def broadcast(*, title, message="", category="document", severity="info",
                  document_id=None, recipients=None):
        """
        Send a notification to each recipient actor key.

        Returns:
            List of created Notification instances (committed).
        """
        notifications = []
        for r in recipients or []:
            notif = Notification(
                recipient=r,
                title=title,
                message=message,
                category=category,
                severity=severity,
                document_id=document_id,
            )
            db.session.add(notif)
            notifications.append(notif)
        db.session.commit()
        return notifications

    # ── Query ─────────────────────────────────────────────────────────────

    @staticmethod
    def list_for_recipient(recipient, unread_only=False, limit=50):
        """Notifications for an actor key, newest first."""
        q = Notification.query.filter_by(recipient=recipient)
        if unread_only:
            q = q.filter_by(is_read=False)
        return q.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit).all()

    @staticmethod
    def mark_all_read(recipient):
        now = datetime.now(timezone.utc)
        count = (
            Notification.query
            .filter_by(recipient=recipient, is_read=False)
            .update({"is_read": True, "read_at": now})
        )
        db.session.commit()
        return count


# ── Dispatcher jobs ──────────────────────────────────────────────────────────

def _submitter_key(document):
    return f"student:{document.student_id}"


def notify_assignees(document_id: int):
    """Tell every pending assignee that a document awaits their signature."""
    document = db.session.get(Document, document_id)
    if document is None:
        return []
    recipients = sorted({s.assignee.key for s in document.steps if s.status == STEP_PENDING})
    return NotificationService.broadcast(
        title=f"Document awaiting your signature: {document.title}",
        message=f"{document.doc_type.replace('_', ' ').title()} submitted for approval.",
        category="document",
        document_id=document.id,
        recipients=recipients,
    )


def notify_submitter(document_id: int, outcome: str, detail: str = ""):
    """Tell the submitting student a document was approved, rejected or timed out."""
    document = db.session.get(Document, document_id)
    if document is None:
        return []
    severity = {"approval": "success", "rejection": "error", "timeout": "warning"}.get(outcome, "info")
    titles = {
        "approval": f"Document approved: {document.title}",
        "rejection": f"Document rejected: {document.title}",
        "timeout": f"Document timed out: {document.title}",
    }
    return NotificationService.broadcast(
        title=titles.get(outcome, f"Document update: {document.title}"),
        message=detail,
        category=outcome,
        severity=severity,
        document_id=document.id,
        recipients=[_submitter_key(document)],
    )
