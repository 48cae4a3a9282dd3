"""
Consultation Marketplace Platform
Consultant Invitation Blueprint.

Endpoints:
    GET  /api/v1/consultants/<id>/invitations     - a consultant's invitations (?status=)
    POST /api/v1/invitations/<id>/accept          - accept (body: consultant_id)
    POST /api/v1/invitations/<id>/decline         - decline (body: consultant_id, reason)
"""

import logging

from flask import Blueprint, jsonify, request

from app.models.invitation import INVITATION_STATUSES
from app.services import invitation_service
from app.utils.errors import E, api_error, register_service_error_handlers
from app.utils.helpers import utcnow

logger = logging.getLogger(__name__)

invitation_bp = Blueprint("invitation_bp", __name__, url_prefix="/api/v1")

register_service_error_handlers(invitation_bp)


def _consultant_id_from_body(data):
    consultant_id = data.get("consultant_id")
    return consultant_id if isinstance(consultant_id, int) else None


@invitation_bp.route("/consultants/<int:consultant_id>/invitations", methods=["GET"])
def list_consultant_invitations(consultant_id):
    status = request.args.get("status")
    if status and status not in INVITATION_STATUSES:
        return api_error(
            E.VALIDATION_INVALID,
            f"Invalid status. Must be one of: {sorted(INVITATION_STATUSES)}",
        )
    now = utcnow()
    items = invitation_service.list_for_consultant(consultant_id, status=status)
    return jsonify({
        "items": [i.to_dict(now=now) for i in items],
        "total": len(items),
    })


@invitation_bp.route("/invitations/<int:invitation_id>/accept", methods=["POST"])
def accept_invitation(invitation_id):
    data = request.get_json(silent=True) or {}
    consultant_id = _consultant_id_from_body(data)
    if consultant_id is None:
        return api_error(E.VALIDATION_REQUIRED, "consultant_id is required")

    invitation = invitation_service.accept_invitation(invitation_id, consultant_id)
    return jsonify(invitation.to_dict())


@invitation_bp.route("/invitations/<int:invitation_id>/decline", methods=["POST"])
def decline_invitation(invitation_id):
    data = request.get_json(silent=True) or {}
    consultant_id = _consultant_id_from_body(data)
    if consultant_id is None:
        return api_error(E.VALIDATION_REQUIRED, "consultant_id is required")

    reason = (data.get("reason") or "").strip() or None
    invitation = invitation_service.decline_invitation(invitation_id, consultant_id, reason=reason)
    return jsonify(invitation.to_dict())
