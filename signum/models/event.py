"""
Sign-um Document Approval Engine
Calendar event model.

Models:
    - CalendarEvent: institutional calendar entry, unique per (title, event_date)
"""

from datetime import datetime, timezone

from signum.models import db


class CalendarEvent(db.Model):
    __tablename__ = "calendar_events"
    __table_args__ = (
        db.UniqueConstraint("title", "event_date", name="uq_calendar_event_title_date"),
    )

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(255), nullable=False)
    event_date = db.Column(db.Date, nullable=False, index=True)
    event_time = db.Column(db.String(20), nullable=True)
    venue = db.Column(db.String(255), nullable=True)
    department = db.Column(db.String(150), nullable=True)
    document_id = db.Column(
        db.Integer, db.ForeignKey("documents.id", ondelete="SET NULL"), nullable=True, index=True,
    )
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        return {
            "id": self.id,
            "title": self.title,
            "event_date": self.event_date.isoformat() if self.event_date else None,
            "event_time": self.event_time,
            "venue": self.venue,
            "department": self.department,
            "document_id": self.document_id,
        }

    def __repr__(self):
        return f"<CalendarEvent {self.id}: {self.title} @ {self.event_date}>"
