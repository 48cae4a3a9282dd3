"""
Consultation Marketplace Platform
Problem Submission Blueprint.

Endpoints:
    POST /api/v1/problems                         - create a draft
    GET  /api/v1/problems/<id>                    - problem detail (+ invitations)
    POST /api/v1/problems/<id>/submit             - charge the fee, mark submitted
    POST /api/v1/problems/<id>/invitations        - invite consultants, open matching
    GET  /api/v1/problems/<id>/matches            - ranked consultant matches
    POST /api/v1/problems/<id>/invitations/matches - invite every match
"""

import logging

from flask import Blueprint, jsonify, request

from app.services import invitation_service, matching_service, problem_service
from app.utils.errors import E, api_error, register_service_error_handlers
from app.utils.helpers import parse_int_list

logger = logging.getLogger(__name__)

problem_bp = Blueprint("problem_bp", __name__, url_prefix="/api/v1")

register_service_error_handlers(problem_bp)


@problem_bp.route("/problems", methods=["POST"])
def create_problem():
    data = request.get_json(silent=True) or {}

    user_id = data.get("user_id")
    if not isinstance(user_id, int):
        return api_error(E.VALIDATION_REQUIRED, "user_id is required")

    statement = (data.get("problem_statement") or "").strip()
    if not statement:
        return api_error(E.VALIDATION_REQUIRED, "problem_statement is required")

    technologies = data.get("technologies") or []
    if not isinstance(technologies, list) or not all(isinstance(t, str) for t in technologies):
        return api_error(E.VALIDATION_INVALID, "technologies must be a list of strings")

    problem = problem_service.create_draft(
        user_id,
        statement,
        error_description=(data.get("error_description") or "").strip(),
        technologies=technologies,
    )
    return jsonify(problem.to_dict()), 201


@problem_bp.route("/problems/<int:problem_id>", methods=["GET"])
def get_problem(problem_id):
    problem = problem_service.get_problem(problem_id)
    return jsonify(problem.to_dict(include_invitations=True))


@problem_bp.route("/problems/<int:problem_id>/submit", methods=["POST"])
def submit_problem(problem_id):
    problem = problem_service.submit_problem(problem_id)
    return jsonify(problem.to_dict())


@problem_bp.route("/problems/<int:problem_id>/invitations", methods=["POST"])
def invite_consultants(problem_id):
    """
    Invite consultants to a submitted problem.

    Body:
        consultant_ids  list[int]   required
        invited_by      int         optional user id
        surge           bool        optional, default false
    """
    data = request.get_json(silent=True) or {}
    try:
        consultant_ids = parse_int_list(data.get("consultant_ids"))
    except (TypeError, ValueError):
        return api_error(E.VALIDATION_INVALID, "consultant_ids must be a list of integers")

    invited_by = data.get("invited_by")
    if invited_by is not None and not isinstance(invited_by, int):
        return api_error(E.VALIDATION_INVALID, "invited_by must be an integer")

    created = invitation_service.invite_consultants(
        problem_id,
        consultant_ids,
        invited_by=invited_by,
        surge=bool(data.get("surge", False)),
    )
    return jsonify({
        "items": [i.to_dict() for i in created],
        "total": len(created),
    }), 201


@problem_bp.route("/problems/<int:problem_id>/matches", methods=["GET"])
def list_matches(problem_id):
    matches = matching_service.find_matching_consultants(problem_id)
    return jsonify({
        "items": [{**c.to_dict(), "match_score": score} for c, score in matches],
        "total": len(matches),
    })


@problem_bp.route("/problems/<int:problem_id>/invitations/matches", methods=["POST"])
def invite_matches(problem_id):
    """
    Invite every matching consultant, best first.

    Body:
        limit       int     optional, invite only the best N
        invited_by  int     optional user id
    """
    data = request.get_json(silent=True) or {}
    limit = data.get("limit")
    if limit is not None and (not isinstance(limit, int) or isinstance(limit, bool) or limit < 1):
        return api_error(E.VALIDATION_INVALID, "limit must be a positive integer")

    invited_by = data.get("invited_by")
    if invited_by is not None and not isinstance(invited_by, int):
        return api_error(E.VALIDATION_INVALID, "invited_by must be an integer")

    created = matching_service.invite_matching_consultants(
        problem_id, invited_by=invited_by, limit=limit,
    )
    return jsonify({
        "items": [i.to_dict() for i in created],
        "total": len(created),
    }), 201
