"""
Notification Blueprint.

Endpoints (acting identity from X-Actor-Type / X-Actor-Id):
    GET   /api/v1/notifications            actor's notifications (?unread=1)
    POST  /api/v1/notifications/read-all   mark all as read
"""

from flask import Blueprint, g, jsonify, request

from signum.blueprints import require_actor
from signum.services.notification import NotificationService

notification_bp = Blueprint("notifications", __name__, url_prefix="/api/v1/notifications")
notification_bp.before_request(require_actor)


@notification_bp.route("", methods=["GET"])
def list_notifications():
    unread_only = request.args.get("unread", "").lower() in ("1", "true", "yes")
    items = NotificationService.list_for_recipient(g.actor.key, unread_only=unread_only)
    return jsonify({"items": [n.to_dict() for n in items]})


@notification_bp.route("/read-all", methods=["POST"])
def mark_all_read():
    count = NotificationService.mark_all_read(g.actor.key)
    return jsonify({"success": True, "updated": count})
