"""
Consultation Marketplace Platform
Notification & Scheduling Blueprint.

Provides:
    - A user's notifications (list, unread count, mark read)
    - Notification preferences per notification type
    - Scheduled job management (list, status, trigger, toggle)
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request

from app.models import db
from app.models.notification import NOTIFICATION_TYPES
from app.models.scheduling import NotificationPreference
from app.models.user import User
from app.services.notification import NotificationService
from app.services.scheduler_service import SchedulerService, get_registered_jobs
from app.utils.errors import E, api_error
from app.utils.helpers import db_commit_or_error, get_or_404

logger = logging.getLogger(__name__)

notification_bp = Blueprint("notification_bp", __name__, url_prefix="/api/v1")


# ═══════════════════════════════════════════════════════════════════════════
#  USER NOTIFICATIONS
# ═══════════════════════════════════════════════════════════════════════════

@notification_bp.route("/users/<int:user_id>/notifications", methods=["GET"])
def list_user_notifications(user_id):
    """
    Query params:
        unread_only  - "true" to return unread only
        limit        - default 50, max 200
        offset       - default 0
    """
    _, err = get_or_404(User, user_id)
    if err:
        return err

    unread_only = request.args.get("unread_only", "").lower() in ("1", "true", "yes")
    limit = min(200, max(1, request.args.get("limit", 50, type=int)))
    offset = max(0, request.args.get("offset", 0, type=int))

    items, total = NotificationService.list_for_user(
        user_id, unread_only=unread_only, limit=limit, offset=offset,
    )
    return jsonify({
        "items": [n.to_dict() for n in items],
        "total": total,
        "unread_count": NotificationService.unread_count(user_id),
    })


@notification_bp.route("/notifications/<int:nid>/read", methods=["PATCH"])
def mark_notification_read(nid):
    notif = NotificationService.mark_read(nid)
    if not notif:
        return api_error(E.NOT_FOUND, "Notification not found")
    return jsonify(notif.to_dict())


@notification_bp.route("/users/<int:user_id>/notifications/read-all", methods=["POST"])
def mark_all_notifications_read(user_id):
    _, err = get_or_404(User, user_id)
    if err:
        return err
    count = NotificationService.mark_all_read(user_id)
    return jsonify({"marked_read": count})


# ═══════════════════════════════════════════════════════════════════════════
#  NOTIFICATION PREFERENCES
# ═══════════════════════════════════════════════════════════════════════════

@notification_bp.route("/users/<int:user_id>/notification-preferences", methods=["GET"])
def list_preferences(user_id):
    prefs = NotificationPreference.query.filter_by(user_id=user_id).all()
    return jsonify({"items": [p.to_dict() for p in prefs], "total": len(prefs)})


@notification_bp.route("/users/<int:user_id>/notification-preferences", methods=["PUT"])
def upsert_preference(user_id):
    """Create or update the preference for one notification type."""
    _, err = get_or_404(User, user_id)
    if err:
        return err

    data = request.get_json(silent=True) or {}
    notification_type = data.get("notification_type")
    if notification_type not in NOTIFICATION_TYPES:
        return api_error(
            E.VALIDATION_INVALID,
            f"Invalid notification_type. Must be one of: {sorted(NOTIFICATION_TYPES)}",
        )

    pref = NotificationPreference.query.filter_by(
        user_id=user_id, notification_type=notification_type,
    ).first()
    if not pref:
        pref = NotificationPreference(user_id=user_id, notification_type=notification_type)
        db.session.add(pref)

    for field in ("in_app_enabled", "email_enabled", "push_enabled"):
        if field in data:
            setattr(pref, field, bool(data[field]))

    err = db_commit_or_error()
    if err:
        return err
    return jsonify(pref.to_dict())


# ═══════════════════════════════════════════════════════════════════════════
#  SCHEDULED JOBS MANAGEMENT
# ═══════════════════════════════════════════════════════════════════════════

@notification_bp.route("/scheduler/jobs", methods=["GET"])
def list_scheduled_jobs():
    jobs = SchedulerService.list_jobs()
    return jsonify({"jobs": jobs, "total": len(jobs)})


@notification_bp.route("/scheduler/jobs/<job_name>", methods=["GET"])
def get_job_status(job_name):
    status = SchedulerService.get_job_status(job_name)
    if not status:
        return api_error(E.NOT_FOUND, f"Job '{job_name}' not found")
    return jsonify(status)


@notification_bp.route("/scheduler/jobs/<job_name>/trigger", methods=["POST"])
def trigger_job(job_name):
    """Run a job now, outside its schedule."""
    if job_name not in get_registered_jobs():
        return api_error(E.NOT_FOUND, f"Job '{job_name}' not found")
    return jsonify(SchedulerService.run_job(job_name))


@notification_bp.route("/scheduler/jobs/<job_name>/toggle", methods=["PATCH"])
def toggle_job_status(job_name):
    """Enable or disable a scheduled job."""
    data = request.get_json(silent=True) or {}
    enabled = data.get("enabled")
    if enabled is None:
        return api_error(E.VALIDATION_REQUIRED, "'enabled' field is required (true/false)")

    result = SchedulerService.toggle_job(job_name, bool(enabled))
    if not result:
        return api_error(E.NOT_FOUND, f"Job '{job_name}' not found")

    return jsonify(result)
