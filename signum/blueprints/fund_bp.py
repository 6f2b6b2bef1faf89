"""
Fund balances Blueprint.

Endpoints (acting identity from X-Actor-Type / X-Actor-Id):
    GET  /api/v1/funds                          balances (+ recent transactions)
    GET  /api/v1/funds/transactions             ledger, ?department_id= filter
    PUT  /api/v1/funds/<department_id>          set initial allocation
         Body: { "initial_amount": 50000 }
"""

import logging

from flask import Blueprint, g, jsonify, request

from signum.blueprints import json_body, paginate_query, register_service_errors, require_actor
from signum.services import fund_ledger

logger = logging.getLogger(__name__)

fund_bp = Blueprint("funds", __name__, url_prefix="/api/v1/funds")
register_service_errors(fund_bp)
fund_bp.before_request(require_actor)


@fund_bp.route("", methods=["GET"])
def list_funds():
    balances = fund_ledger.list_balances()
    return jsonify({"items": [b.to_dict() for b in balances]})


@fund_bp.route("/transactions", methods=["GET"])
def list_transactions():
    query = fund_ledger.transactions_query(request.args.get("department_id"))
    items, total = paginate_query(query)
    return jsonify({"items": [t.to_dict() for t in items], "total": total})


@fund_bp.route("/<department_id>", methods=["PUT"])
def set_allocation(department_id):
    data = json_body()
    balance = fund_ledger.set_allocation(
        department_id, data.get("initial_amount"), actor_key=g.actor.key,
    )
    return jsonify({"success": True, "balance": balance.to_dict()})
