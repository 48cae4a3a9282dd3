"""
Consultation Marketplace Platform
Token Balance Blueprint.

Endpoints:
    GET  /api/v1/users/<id>/tokens            - balance + recent ledger entries (?limit=)
    POST /api/v1/users/<id>/tokens/purchase   - credit purchased tokens
"""

import logging

from flask import Blueprint, jsonify, request

from app.models.token import TXN_PURCHASE
from app.services import token_service
from app.utils.errors import E, api_error, register_service_error_handlers

logger = logging.getLogger(__name__)

token_bp = Blueprint("token_bp", __name__, url_prefix="/api/v1")

register_service_error_handlers(token_bp)


@token_bp.route("/users/<int:user_id>/tokens", methods=["GET"])
def get_tokens(user_id):
    limit = min(100, max(1, request.args.get("limit", 20, type=int)))
    balance = token_service.get_balance(user_id)
    history = token_service.get_transaction_history(user_id, limit=limit)
    return jsonify({
        "user_id": user_id,
        "tokens_balance": balance,
        "transactions": [t.to_dict() for t in history],
    })


@token_bp.route("/users/<int:user_id>/tokens/purchase", methods=["POST"])
def purchase_tokens(user_id):
    data = request.get_json(silent=True) or {}
    amount = data.get("amount")
    if not isinstance(amount, int) or isinstance(amount, bool) or amount <= 0:
        return api_error(E.VALIDATION_INVALID, "amount must be a positive integer")

    txn = token_service.add_tokens(
        user_id,
        amount,
        TXN_PURCHASE,
        data.get("description") or f"Purchased {amount} tokens",
        metadata={"payment_reference": data.get("payment_reference")},
    )
    return jsonify(txn.to_dict()), 201
