"""
Document artifact rendering and archiving.

Template filling and PDF conversion live outside the engine. The engine
only needs ``render(template_ref, data_bag) -> path``; the default
SnapshotRenderer writes the data bag as JSON under ARTIFACT_DIR so every
regeneration leaves an inspectable artifact.

Rendering is best-effort everywhere it is called: failures are logged as
SideEffectError and never abort a workflow transaction.

Files are only written or moved after the workflow transaction has
committed (refresh_artifact, archive_document_artifact), so a rolled-back
or retried transaction leaves nothing behind on disk.
"""

import json
import logging
import os
import shutil
import uuid
from datetime import datetime, timezone

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from signum.core.exceptions import ContentionError, SideEffectError
from signum.services.storage import atomic

logger = logging.getLogger(__name__)

ARCHIVE_SUBDIR = "archive"
REJECTED_SUFFIX = ".rejected"


def template_ref_for(doc_type: str, department: str | None) -> str:
    """Template identifier for a document type, department-specific where available."""
    slug = (department or "general").strip().lower().replace(" ", "_").replace(",", "")
    return f"{doc_type}/{slug}"


class SnapshotRenderer:
    """Writes ``{template_ref, rendered_at, data}`` JSON snapshots."""

    def __init__(self, output_dir: str | None = None):
        self._output_dir = output_dir

    @property
    def output_dir(self) -> str:
        return self._output_dir or current_app.config["ARTIFACT_DIR"]

    def render(self, template_ref: str, data_bag: dict) -> str:
        os.makedirs(self.output_dir, exist_ok=True)
        stem = template_ref.replace("/", "_")
        path = os.path.join(self.output_dir, f"{stem}_{uuid.uuid4().hex[:12]}.json")
        payload = {
            "template_ref": template_ref,
            "rendered_at": datetime.now(timezone.utc).isoformat(),
            "data": data_bag,
        }
        with open(path, "w", encoding="utf-8") as fh:
            json.dump(payload, fh, ensure_ascii=False, indent=2, default=str)
        return path


def get_renderer():
    """Renderer registered on the app (``app.extensions['signum.renderer']``)."""
    return current_app.extensions["signum.renderer"]


def render_document(document, extra: dict | None = None) -> str | None:
    """Render the document's current data. Returns the new path or None on failure."""
    data_bag = dict(document.data or {})
    if extra:
        data_bag.update(extra)
    template_ref = template_ref_for(document.doc_type, document.department)
    try:
        return get_renderer().render(template_ref, data_bag)
    except Exception as exc:
        err = SideEffectError(f"Artifact render failed for document {document.id}: {exc}")
        logger.warning("%s", err, exc_info=True, extra={"document_id": document.id})
        return None


def archive_artifact(path: str | None, base_dir: str | None = None) -> str | None:
    """Move an artifact into ``<ARTIFACT_DIR>/archive/<name>.rejected``.

    Returns the archived path, or None when there was nothing to move or the
    move failed.
    """
    if not path or not os.path.exists(path):
        return None
    archive_dir = os.path.join(base_dir or current_app.config["ARTIFACT_DIR"], ARCHIVE_SUBDIR)
    target = os.path.join(archive_dir, os.path.basename(path) + REJECTED_SUFFIX)
    try:
        os.makedirs(archive_dir, exist_ok=True)
        shutil.move(path, target)
    except OSError as exc:
        logger.warning("Artifact archive failed for %s: %s", path, exc)
        return None
    return target


def discard_artifact(path: str | None) -> None:
    if not path:
        return
    try:
        os.remove(path)
    except OSError as exc:
        logger.warning("Could not remove artifact %s: %s", path, exc)


def _record_path(document, path: str) -> bool:
    try:
        with atomic():
            document.file_path = path
    except (ContentionError, SQLAlchemyError):
        logger.warning("Could not record artifact %s for document %s", path, document.id,
                       exc_info=True, extra={"document_id": document.id})
        return False
    return True


def refresh_artifact(document, extra: dict | None = None) -> str | None:
    """Render a committed document and point ``file_path`` at the result.

    The new file is removed again if its path cannot be saved.
    """
    path = render_document(document, extra)
    if path and not _record_path(document, path):
        discard_artifact(path)
        return None
    return path


def archive_document_artifact(document) -> str | None:
    """Archive a committed document's artifact and save the archived path."""
    original = document.file_path
    archived = archive_artifact(original)
    if archived and not _record_path(document, archived):
        try:
            shutil.move(archived, original)
        except OSError as exc:
            logger.warning("Could not restore artifact %s: %s", original, exc)
        return None
    return archived
