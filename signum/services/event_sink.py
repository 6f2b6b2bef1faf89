"""
Calendar event sink.

``create_event_if_absent(title, event_date, metadata) -> bool`` is
idempotent by (title, date): a second call for the same pair is a no-op
and returns False.

Two implementations:
    DatabaseEventSink  local calendar_events table (default)
    HttpEventSink      POST to EVENTS_API_URL with httpx
                       (connect timeout 5 s, total 10 s by default)

The sink is always invoked through the side-effect dispatcher, after the
approving transaction has committed.
"""

import logging

import httpx
from flask import current_app
from sqlalchemy.exc import IntegrityError

from signum.models import db
from signum.models.document import STATUS_APPROVED, Document
from signum.models.event import CalendarEvent
from signum.utils.helpers import parse_date

logger = logging.getLogger(__name__)


class DatabaseEventSink:
    """Writes CalendarEvent rows; the (title, event_date) unique key deduplicates."""

    def create_event_if_absent(self, title: str, event_date, metadata: dict | None = None) -> bool:
        metadata = metadata or {}
        event_date = parse_date(event_date)
        if not title or event_date is None:
            return False

        existing = CalendarEvent.query.filter_by(title=title, event_date=event_date).first()
        if existing:
            logger.info("Calendar event already exists: %s on %s", title, event_date)
            return False

        event = CalendarEvent(
            title=title,
            event_date=event_date,
            event_time=metadata.get("event_time"),
            venue=metadata.get("venue"),
            department=metadata.get("department"),
            document_id=metadata.get("document_id"),
        )
        db.session.add(event)
        try:
            db.session.commit()
        except IntegrityError:
            # Lost a race with a concurrent creator for the same (title, date)
            db.session.rollback()
            return False
        logger.info("Calendar event created: %s on %s", title, event_date,
                    extra={"document_id": event.document_id})
        return True


class HttpEventSink:
    """Posts events to an external calendar API.

    The remote end owns deduplication: 201 means created, 200 or 409 means
    it already existed. Any other status raises, which lets the dispatcher
    retry.
    """

    def __init__(self, url: str, *, connect_timeout: float = 5.0, timeout: float = 10.0,
                 transport: httpx.BaseTransport | None = None):
        self.url = url
        self.timeout = httpx.Timeout(timeout, connect=connect_timeout)
        self._transport = transport

    def create_event_if_absent(self, title: str, event_date, metadata: dict | None = None) -> bool:
        event_date = parse_date(event_date)
        if not title or event_date is None:
            return False
        payload = {"title": title, "event_date": event_date.isoformat(), **(metadata or {})}
        with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
            resp = client.post(self.url, json=payload)
        if resp.status_code in (200, 409):
            return False
        resp.raise_for_status()
        return True


def build_event_sink(app):
    url = app.config.get("EVENTS_API_URL")
    if url:
        return HttpEventSink(
            url,
            connect_timeout=app.config.get("EVENT_SINK_CONNECT_TIMEOUT", 5.0),
            timeout=app.config.get("EVENT_SINK_TIMEOUT", 10.0),
        )
    return DatabaseEventSink()


def create_event_for_document(document_id: int) -> bool:
    """Dispatcher job: create the calendar entry for an approved proposal."""
    document = db.session.get(Document, document_id)
    if document is None or document.status != STATUS_APPROVED:
        return False
    data = document.data or {}
    title = data.get("title") or document.title
    event_date = data.get("date")
    if not title or not event_date:
        return False
    sink = current_app.extensions["signum.event_sink"]
    return sink.create_event_if_absent(
        title,
        event_date,
        {
            "event_time": data.get("earliestStartTime"),
            "venue": data.get("venue"),
            "department": document.department,
            "document_id": document.id,
        },
    )
