"""
Document workflow Blueprint.

Endpoints (all under /api/v1, acting identity from X-Actor-Type / X-Actor-Id):
    POST   /documents                                  create + route a document
    GET    /documents/<id>                             detail with steps and notes
    POST   /documents/<id>/sign                        sign the actor's step
    POST   /documents/<id>/reject                      reject with a reason
    POST   /documents/<id>/notes                       add a document note
    PUT    /documents/<id>/steps/<step_id>/note        assignee edits a step note
    GET    /documents/assigned                         actor's work queue
    GET    /documents/mine                             submitting student's documents
    GET    /events/approved                            approved proposals as events

Layer contract:
    - Blueprint: parse input, resolve the actor, call the service, return JSON.
    - NO db.session calls here; services own transactions.
"""

import logging

from flask import Blueprint, g, jsonify

from signum.blueprints import json_body, paginate_query, register_service_errors, require_actor
from signum.services import document_service, signing_service
from signum.utils.errors import E, api_error
from signum.utils.helpers import clean_text

logger = logging.getLogger(__name__)

document_bp = Blueprint("documents", __name__, url_prefix="/api/v1")
register_service_errors(document_bp)
document_bp.before_request(require_actor)


def _optional_int(data: dict, key: str):
    value = data.get(key)
    if value in (None, ""):
        return None, None
    try:
        return int(value), None
    except (TypeError, ValueError):
        return None, api_error(E.VALIDATION_INVALID, f"{key} must be an integer")


# ── Create / read ────────────────────────────────────────────────────────────


@document_bp.route("/documents", methods=["POST"])
def create_document():
    data = json_body()
    doc_type = clean_text(data.get("doc_type"), "doc_type")
    if not doc_type:
        return api_error(E.VALIDATION_REQUIRED, "doc_type is required")
    outcome = document_service.create_document(doc_type, g.actor, data.get("data") or {})
    return jsonify(outcome.to_dict()), 201


@document_bp.route("/documents/<int:document_id>", methods=["GET"])
def get_document(document_id):
    return jsonify(document_service.get_document_detail(document_id, g.actor))


@document_bp.route("/documents/assigned", methods=["GET"])
def assigned_documents():
    items, total = paginate_query(document_service.assigned_documents_query(g.actor))
    return jsonify({"items": [d.to_dict(include_steps=True) for d in items], "total": total})


@document_bp.route("/documents/mine", methods=["GET"])
def my_documents():
    items, total = paginate_query(document_service.submitted_documents_query(g.actor))
    return jsonify({"items": [d.to_dict(include_steps=True) for d in items], "total": total})


@document_bp.route("/events/approved", methods=["GET"])
def approved_events():
    return jsonify({"items": document_service.approved_events()})


# ── Workflow actions ─────────────────────────────────────────────────────────


@document_bp.route("/documents/<int:document_id>/sign", methods=["POST"])
def sign_document(document_id):
    data = json_body()
    step_id, err = _optional_int(data, "step_id")
    if err:
        return err
    signature_map = data.get("signature_map")
    if signature_map is not None and not isinstance(signature_map, (dict, list)):
        return api_error(E.VALIDATION_INVALID, "signature_map must be an object or list")

    outcome = signing_service.sign_document(
        document_id, g.actor, step_id=step_id, note=data.get("note"), signature_map=signature_map,
    )
    return jsonify(outcome.to_dict())


@document_bp.route("/documents/<int:document_id>/reject", methods=["POST"])
def reject_document(document_id):
    data = json_body()
    step_id, err = _optional_int(data, "step_id")
    if err:
        return err
    outcome = signing_service.reject_document(document_id, g.actor, data.get("reason"), step_id=step_id)
    body = outcome.to_dict()
    body.pop("fully_approved", None)
    return jsonify(body)


# ── Notes ────────────────────────────────────────────────────────────────────


@document_bp.route("/documents/<int:document_id>/notes", methods=["POST"])
def add_note(document_id):
    data = json_body()
    note = document_service.add_note(document_id, g.actor, data.get("note"))
    return jsonify({"success": True, "note": note.to_dict()}), 201


@document_bp.route("/documents/<int:document_id>/steps/<int:step_id>/note", methods=["PUT"])
def update_step_note(document_id, step_id):
    data = json_body()
    step = document_service.update_step_note(document_id, step_id, g.actor, data.get("note"))
    return jsonify({"success": True, "step": step.to_dict()})
