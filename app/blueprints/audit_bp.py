"""
Audit trail read API.

    GET /api/v1/audit            - filtered, paginated, newest first
    GET /api/v1/audit/<log_id>   - one entry
"""

from flask import Blueprint, jsonify, request

from app.models.audit import AuditLog
from app.utils.helpers import get_or_404

audit_bp = Blueprint("audit", __name__, url_prefix="/api/v1")

# query param -> column compared for equality
_EXACT_FILTERS = {
    "entity_type": AuditLog.entity_type,
    "entity_id": AuditLog.entity_id,
    "actor": AuditLog.actor,
}


@audit_bp.route("/audit", methods=["GET"])
def list_audit_logs():
    """
    Query params: entity_type, entity_id, actor, actor_user_id,
    action (prefix, so ``action=invitation`` matches every invitation event),
    page, per_page (max 200).
    """
    q = AuditLog.query
    for param, column in _EXACT_FILTERS.items():
        value = request.args.get(param)
        if value:
            q = q.filter(column == value)

    if request.args.get("action"):
        q = q.filter(AuditLog.action.startswith(request.args["action"]))

    actor_user_id = request.args.get("actor_user_id", type=int)
    if actor_user_id is not None:
        q = q.filter(AuditLog.actor_user_id == actor_user_id)

    page = max(1, request.args.get("page", 1, type=int))
    per_page = min(200, max(1, request.args.get("per_page", 50, type=int)))
    result = q.order_by(AuditLog.timestamp.desc(), AuditLog.id.desc()).paginate(
        page=page, per_page=per_page, error_out=False,
    )

    return jsonify({
        "audit_logs": [log.to_dict() for log in result.items],
        "total": result.total,
        "page": result.page,
        "per_page": result.per_page,
        "pages": result.pages,
    })


@audit_bp.route("/audit/<int:log_id>", methods=["GET"])
def get_audit_log(log_id):
    log, err = get_or_404(AuditLog, log_id, "Audit log")
    if err:
        return err
    return jsonify(log.to_dict())
