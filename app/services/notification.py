"""
Consultation Marketplace Platform
Notification Service.

Central service for delivering and querying user notifications.  Delivery
honours the user's NotificationPreference for the notification type:
in-app rows, email (via EmailService) and push (logged only; no push
provider is wired up).
"""

import logging

from app.models import db
from app.models.notification import Notification
from app.models.scheduling import NotificationPreference
from app.services.email_service import EmailService
from app.utils.helpers import utcnow

logger = logging.getLogger(__name__)

_DEFAULT_CHANNELS = {"in_app": True, "email": True, "push": True}

NOTIFICATION_TITLES = {
    "problem_refunded": "Your problem submission was refunded",
    "invitation_received": "New consultation invitation",
    "invitation_accepted": "A consultant accepted your problem",
}

# Types with a dedicated email template; everything else uses "notification"
_EMAIL_TEMPLATES = {"problem_refunded"}


class NotificationService:
    """Stateless service class for notification operations."""

    # ── Delivery ──────────────────────────────────────────────────────────

    @staticmethod
    def get_channels(user_id, notification_type):
        pref = NotificationPreference.query.filter_by(
            user_id=user_id, notification_type=notification_type,
        ).first()
        return pref.channels() if pref else dict(_DEFAULT_CHANNELS)

    @staticmethod
    def send_notification(user, notification_type, payload):
        """
        Deliver one notification to ``user`` on every enabled channel.

        ``payload`` must carry a ``message``; the rest is stored verbatim as
        the notification's data.  Commits its own writes and lets errors
        propagate; callers decide whether delivery failure matters.

        Returns:
            The in-app Notification, or None when in-app delivery is disabled.
        """
        channels = NotificationService.get_channels(user.id, notification_type)
        title = NOTIFICATION_TITLES.get(notification_type, "Notification")
        message = payload.get("message", "")

        notif = None
        if channels["in_app"]:
            notif = Notification(
                user_id=user.id,
                type=notification_type,
                title=title,
                message=message,
                data=dict(payload),
            )
            db.session.add(notif)
            db.session.flush()

        if channels["email"] and user.email:
            template = notification_type if notification_type in _EMAIL_TEMPLATES else "notification"
            EmailService.send_from_template(
                to_email=user.email,
                to_name=user.full_name,
                template_name=template,
                context={"title": title, **payload},
                notification_type=notification_type,
                notification_id=notif.id if notif else None,
                user_id=user.id,
            )

        if channels["push"]:
            logger.info("Push notification (log only): user=%s type=%s title='%s'",
                        user.id, notification_type, title, extra={"user_id": user.id})

        db.session.commit()
        return notif

    # ── Query ─────────────────────────────────────────────────────────────

    @staticmethod
    def list_for_user(user_id, unread_only=False, limit=50, offset=0):
        """Notifications for a user, newest first. Returns (items, total)."""
        q = Notification.query.filter_by(user_id=user_id)
        if unread_only:
            q = q.filter_by(is_read=False)
        total = q.count()
        items = (
            q.order_by(Notification.created_at.desc(), Notification.id.desc())
            .offset(offset).limit(limit).all()
        )
        return items, total

    @staticmethod
    def unread_count(user_id):
        return Notification.query.filter_by(user_id=user_id, is_read=False).count()

    # ── Actions ───────────────────────────────────────────────────────────

    @staticmethod
    def mark_read(notification_id):
        """Mark a single notification as read."""
        notif = db.session.get(Notification, notification_id)
        if notif:
            notif.mark_read()
            db.session.commit()
        return notif

    @staticmethod
    def mark_all_read(user_id):
        """Mark all of a user's notifications as read. Returns the count."""
        now = utcnow()
        count = Notification.query.filter_by(user_id=user_id, is_read=False).update(
            {"is_read": True, "read_at": now}, synchronize_session="fetch",
        )
        db.session.commit()
        return count
