"""
Per-request stale document sweep.

Runs the timeout sweeper at the start of every /api/ request, so stale
documents are resolved before any handler reads or mutates them. Health
probes are skipped. A sweep failure is logged and never fails the request.
"""

import logging

from flask import Flask, request

from signum.services.timeout_sweeper import sweep_stale_documents

logger = logging.getLogger(__name__)

_SKIP_PREFIXES = ("/api/v1/health",)


def init_timeout_sweep(app: Flask):
    """Register the before_request sweep hook."""

    @app.before_request
    def _sweep_stale_documents():
        if not app.config.get("TIMEOUT_SWEEP_ENABLED", True):
            return None
        if not request.path.startswith("/api/") or request.path.startswith(_SKIP_PREFIXES):
            return None
        try:
            report = sweep_stale_documents()
        except Exception:
            logger.exception("Timeout sweep aborted")
            return None
        if report.processed or report.failed:
            logger.info("Timeout sweep: %d resolved, %d failed",
                        len(report.processed), len(report.failed))
        return None
