"""
Consultation Marketplace Platform
Notification domain model.

Models:
    - Notification: in-app notification record with read tracking
"""


from app.models import db
from app.utils.helpers import isoformat, utcnow


# ── Constants ────────────────────────────────────────────────────────────────

NOTIFICATION_TYPES = {
    "problem_refunded",
    "invitation_received",
    "invitation_accepted",
    "system",
}


class Notification(db.Model):
    """
    In-app notification entity.

    One record per recipient user per event.
    """

    __tablename__ = "notifications"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    type = db.Column(db.String(40), nullable=False, default="system")
    title = db.Column(db.String(300), nullable=False)
    message = db.Column(db.Text, default="")
    data = db.Column(db.JSON, nullable=True, comment="Structured payload for the client")

    # Read tracking
    is_read = db.Column(db.Boolean, default=False)
    read_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)

    def mark_read(self):
        self.is_read = True
        self.read_at = utcnow()

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "type": self.type,
            "title": self.title,
            "message": self.message,
            "data": self.data or {},
            "is_read": self.is_read,
            "read_at": isoformat(self.read_at),
            "created_at": isoformat(self.created_at),
        }

    def __repr__(self):
        return f"<Notification {self.id}: {self.title[:40]}>"
