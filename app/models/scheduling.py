"""
Delivery preferences, background job registry and outbound email log.
"""

from app.models import db
from app.utils.helpers import isoformat, utcnow

JOB_STATUSES = {"active", "paused", "completed", "failed"}
JOB_RUN_STATUSES = {"success", "failed", "skipped"}
EMAIL_STATUSES = {"queued", "sent", "failed", "bounced"}

CHANNELS = ("in_app", "email", "push")


def _timestamps():
    return (
        db.Column(db.DateTime(timezone=True), default=utcnow),
        db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow),
    )


class NotificationPreference(db.Model):
    """Channel switches for one (user, notification type). No row: all channels on."""

    __tablename__ = "notification_preferences"
    __table_args__ = (
        db.UniqueConstraint("user_id", "notification_type", name="uq_notifpref_user_type"),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"),
                        nullable=False, index=True)
    notification_type = db.Column(db.String(40), nullable=False)
    in_app_enabled = db.Column(db.Boolean, default=True)
    email_enabled = db.Column(db.Boolean, default=True)
    push_enabled = db.Column(db.Boolean, default=True)
    created_at, updated_at = _timestamps()

    def channels(self) -> dict:
        # Unflushed rows still carry None for defaulted columns
        return {
            channel: getattr(self, f"{channel}_enabled") is not False
            for channel in CHANNELS
        }

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "notification_type": self.notification_type,
            **self.channels(),
            "updated_at": isoformat(self.updated_at),
        }

    def __repr__(self):
        return f"<NotificationPreference user={self.user_id} {self.notification_type}>"


class ScheduledJob(db.Model):
    """
    One row per registered background job.

    ``schedule_config`` is advisory, for whoever drives cron. The run columns
    describe the most recent execution; ``run_count`` and ``error_count``
    accumulate. Skipped runs (job disabled) are not recorded.
    """

    __tablename__ = "scheduled_jobs"

    id = db.Column(db.Integer, primary_key=True)
    job_name = db.Column(db.String(100), unique=True, nullable=False)
    description = db.Column(db.String(500), default="")
    schedule_type = db.Column(db.String(30), default="cron")
    schedule_config = db.Column(db.JSON, default=dict)
    status = db.Column(db.String(20), default="active")
    is_enabled = db.Column(db.Boolean, default=True)

    last_run_at = db.Column(db.DateTime(timezone=True), nullable=True)
    last_run_status = db.Column(db.String(20), nullable=True)
    last_run_duration_ms = db.Column(db.Integer, nullable=True)
    last_run_result = db.Column(db.JSON, nullable=True)
    run_count = db.Column(db.Integer, default=0)
    error_count = db.Column(db.Integer, default=0)
    last_error = db.Column(db.Text, nullable=True)
    created_at, updated_at = _timestamps()

    def record_run(self, *, status, duration_ms=0, result=None, error=None):
        self.last_run_at = utcnow()
        self.last_run_status = status
        self.last_run_duration_ms = duration_ms
        self.last_run_result = result
        self.run_count = (self.run_count or 0) + 1
        if status == "failed":
            self.error_count = (self.error_count or 0) + 1
            self.last_error = error

    def to_dict(self):
        return {
            "id": self.id,
            "job_name": self.job_name,
            "description": self.description,
            "schedule_type": self.schedule_type,
            "schedule_config": self.schedule_config,
            "status": self.status,
            "is_enabled": self.is_enabled,
            "last_run_at": isoformat(self.last_run_at),
            "last_run_status": self.last_run_status,
            "last_run_duration_ms": self.last_run_duration_ms,
            "last_run_result": self.last_run_result,
            "run_count": self.run_count,
            "error_count": self.error_count,
            "last_error": self.last_error,
        }

    def __repr__(self):
        return f"<ScheduledJob {self.job_name} enabled={self.is_enabled}>"


class EmailLog(db.Model):
    """Every outbound email, sent or not. ``notification_id`` links the in-app twin."""

    __tablename__ = "email_logs"

    id = db.Column(db.Integer, primary_key=True)
    recipient_email = db.Column(db.String(255), nullable=False, index=True)
    recipient_name = db.Column(db.String(150), nullable=True)
    subject = db.Column(db.String(500), nullable=False)
    template_name = db.Column(db.String(100), nullable=True)
    notification_type = db.Column(db.String(40), default="system")
    status = db.Column(db.String(20), default="queued")
    error_message = db.Column(db.Text, nullable=True)
    notification_id = db.Column(db.Integer, nullable=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"),
                        nullable=True, index=True)
    sent_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)

    def to_dict(self):
        data = {
            c: getattr(self, c) for c in (
                "id", "recipient_email", "recipient_name", "subject", "template_name",
                "notification_type", "status", "error_message", "notification_id", "user_id",
            )
        }
        data["sent_at"] = isoformat(self.sent_at)
        data["created_at"] = isoformat(self.created_at)
        return data

    def __repr__(self):
        return f"<EmailLog {self.id} {self.status} to={self.recipient_email}>"
