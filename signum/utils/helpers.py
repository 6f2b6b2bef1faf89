"""Shared parsing and lookup helpers.

get_or_raise:  primary-key lookup that raises NotFoundError
parse_date:    returns None on bad input
parse_amount:  Decimal money parsing, raises ValueError on bad input
clean_text:    strips free-text fields, raises ValidationError on non-strings
"""
import logging
from datetime import date, datetime
from decimal import Decimal, InvalidOperation

from signum.core.exceptions import NotFoundError, ValidationError
from signum.models import db

logger = logging.getLogger(__name__)


def get_or_raise(model, pk, label=None, *, for_update=False):
    """Fetch a model instance by primary key or raise NotFoundError.

    ``for_update=True`` takes a row lock (SELECT ... FOR UPDATE) and
    refreshes the identity-map copy.
    """
    label = label or model.__name__
    if for_update:
        obj = db.session.get(model, pk, with_for_update=True, populate_existing=True)
    else:
        obj = db.session.get(model, pk)
    if obj is None:
        raise NotFoundError(resource=label, resource_id=pk)
    return obj


def parse_date(value):
    """Parse a date string (ISO or DD.MM.YYYY) to a date object.

    Returns None for empty/invalid input. Supports:
    - YYYY-MM-DD (ISO format)
    - YYYY-MM-DDTHH:MM:SS (datetime ISO → .date())
    - DD.MM.YYYY
    """
    if not value:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except (ValueError, TypeError):
        pass
    try:
        return datetime.fromisoformat(str(value)).date()
    except (ValueError, TypeError):
        pass
    try:
        return datetime.strptime(str(value), "%d.%m.%Y").date()
    except (ValueError, TypeError):
        return None


def parse_amount(value) -> Decimal:
    """Parse a money amount. Empty → 0. Raises ValueError on junk or negatives."""
    if value is None or value == "":
        return Decimal("0")
    try:
        amount = Decimal(str(value).replace(",", "").strip())
    except InvalidOperation as exc:
        raise ValueError(f"Invalid amount: {value!r}") from exc
    if not amount.is_finite() or amount < 0:
        raise ValueError(f"Invalid amount: {value!r}")
    return amount.quantize(Decimal("0.01"))


def clean_text(value, field: str) -> str:
    """Strip a free-text request field. None → "". Non-strings raise ValidationError."""
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string", details={field: "must be a string"})
    return value.strip()
