"""
Post-commit side-effect dispatcher.

Work that must not delay or fail a committed workflow transition (calendar
events, notifications) is handed off here after commit. Each job runs in a
daemon thread inside an application context with its own bounded retry;
the final failure is logged and dropped.

SIDE_EFFECTS_SYNC=True runs jobs inline (tests, CLI).

Usage:
    from signum.services.side_effects import dispatch
    dispatch("calendar_event", create_event_for_document, document_id)
"""

import logging
import threading
import time

from flask import current_app

from signum.core.exceptions import SideEffectError
from signum.models import db

logger = logging.getLogger(__name__)

# In-memory registry of running jobs (name → Thread), for diagnostics
_running: dict[str, threading.Thread] = {}
_lock = threading.Lock()


class SideEffectDispatcher:
    """Runs post-commit jobs with bounded retry, never raising to the caller."""

    def __init__(self, app):
        self.app = app

    @property
    def max_attempts(self) -> int:
        return max(1, int(self.app.config.get("SIDE_EFFECT_MAX_ATTEMPTS", 3)))

    @property
    def retry_delay(self) -> float:
        return float(self.app.config.get("SIDE_EFFECT_RETRY_DELAY_SECONDS", 1))

    def submit(self, name: str, fn, *args, **kwargs) -> bool:
        """Schedule ``fn(*args, **kwargs)``. In sync mode returns whether it succeeded."""
        if self.app.config.get("SIDE_EFFECTS_SYNC"):
            return self._run(name, fn, args, kwargs)

        t = threading.Thread(
            target=self._run_in_background,
            args=(name, fn, args, kwargs),
            name=f"side-effect-{name}",
            daemon=True,
        )
        with _lock:
            _running[f"{name}:{id(t)}"] = t
        t.start()
        return True

    def _run_in_background(self, name, fn, args, kwargs):
        with self.app.app_context():
            try:
                self._run(name, fn, args, kwargs)
            finally:
                db.session.remove()
                with _lock:
                    _running.pop(f"{name}:{id(threading.current_thread())}", None)

    def _run(self, name, fn, args, kwargs) -> bool:
        for attempt in range(1, self.max_attempts + 1):
            try:
                fn(*args, **kwargs)
                return True
            except Exception as exc:
                db.session.rollback()
                if attempt >= self.max_attempts:
                    err = SideEffectError(f"{name} failed after {attempt} attempts: {exc}")
                    logger.error("%s", err, exc_info=True, extra={"event_type": "side_effect_failed"})
                    return False
                logger.warning(
                    "Side effect %s failed (attempt %d/%d): %s",
                    name, attempt, self.max_attempts, exc,
                )
                time.sleep(self.retry_delay)
        return False


def running_jobs() -> int:
    with _lock:
        return sum(1 for t in _running.values() if t.is_alive())


def dispatch(name: str, fn, *args, **kwargs) -> bool:
    """Hand a job to the dispatcher registered on the current app."""
    dispatcher = current_app.extensions["signum.side_effects"]
    return dispatcher.submit(name, fn, *args, **kwargs)
