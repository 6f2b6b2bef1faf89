"""
Storage boundary: transaction scope, contention classification, retry.

Every mutating service runs its body inside ``atomic()``. Driver errors that
signal transient contention are converted to ``ContentionError`` here, by
error code, so retry loops never inspect message text.

    with atomic():
        ...                          # commit on exit, rollback on error

    run_with_contention_retry(fn, max_attempts=3, delay=1.0, label="sign")

Contention codes:
    MySQL       1205 lock wait timeout, 1213 deadlock
    PostgreSQL  40P01 deadlock, 55P03 lock not available, 40001 serialization failure
    SQLite      5 SQLITE_BUSY, 6 SQLITE_LOCKED (primary result code)
    SQLAlchemy  pool TimeoutError (no connection available in time)
"""

import logging
import time
from contextlib import contextmanager

from sqlalchemy import exc as sa_exc

from signum.core.exceptions import ContentionError
from signum.models import db

logger = logging.getLogger(__name__)

MYSQL_CONTENTION_CODES = frozenset({1205, 1213})
POSTGRES_CONTENTION_SQLSTATES = frozenset({"40P01", "55P03", "40001"})
SQLITE_CONTENTION_CODES = frozenset({5, 6})


def classify_storage_error(exc: BaseException) -> ContentionError | None:
    """Return a ContentionError when *exc* is transient lock contention, else None."""
    if isinstance(exc, sa_exc.TimeoutError):
        return ContentionError("Connection pool exhausted", reason="pool_timeout")
    if not isinstance(exc, sa_exc.DBAPIError):
        return None

    orig = exc.orig
    if orig is None:
        return None

    sqlstate = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if sqlstate in POSTGRES_CONTENTION_SQLSTATES:
        return ContentionError(f"PostgreSQL contention (SQLSTATE {sqlstate})", reason=sqlstate)

    sqlite_code = getattr(orig, "sqlite_errorcode", None)
    if isinstance(sqlite_code, int) and (sqlite_code & 0xFF) in SQLITE_CONTENTION_CODES:
        return ContentionError(f"SQLite database busy (code {sqlite_code})", reason="busy")

    args = getattr(orig, "args", ())
    if args and isinstance(args[0], int) and args[0] in MYSQL_CONTENTION_CODES:
        return ContentionError(f"MySQL contention (error {args[0]})", reason=str(args[0]))

    return None


@contextmanager
def atomic():
    """Run the enclosed block as one transaction on the scoped session.

    Commits on normal exit. On any error the session is rolled back; driver
    errors classified as contention are re-raised as ContentionError.
    """
    try:
        yield db.session
        db.session.commit()
    except (sa_exc.DBAPIError, sa_exc.TimeoutError) as exc:
        db.session.rollback()
        contention = classify_storage_error(exc)
        if contention is not None:
            raise contention from exc
        raise
    except BaseException:
        db.session.rollback()
        raise


def run_with_contention_retry(fn, *, max_attempts: int, delay: float, label: str = "transaction"):
    """Run ``fn`` inside ``atomic()``, restarting the whole body on contention.

    Only ContentionError triggers a retry; every other error propagates on the
    first occurrence. After ``max_attempts`` the last ContentionError is raised.
    """
    attempts = max(1, int(max_attempts))
    for attempt in range(1, attempts + 1):
        try:
            with atomic():
                return fn()
        except ContentionError as exc:
            if attempt >= attempts:
                logger.error(
                    "%s failed after %d attempts: %s", label, attempt, exc,
                    extra={"event_type": "contention_exhausted"},
                )
                raise
            logger.warning(
                "%s hit contention (%s), retrying %d/%d",
                label, exc.reason, attempt + 1, attempts,
                extra={"event_type": "contention_retry"},
            )
            time.sleep(delay)
