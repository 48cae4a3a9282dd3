"""
Consultation Marketplace Platform
Consultant invitation domain model.

Models:
    - ConsultantInvitation: an offer to one consultant for one problem submission.

Status transitions:
    pending → accepted | declined | expired   (all three are terminal)
"""

from datetime import datetime, timedelta, timezone

from app.models import db
from app.utils.helpers import as_utc, isoformat


# ── Constants ────────────────────────────────────────────────────────────────

INVITATION_STATUSES = {"pending", "accepted", "declined", "expired"}
TERMINAL_INVITATION_STATUSES = {"accepted", "declined", "expired"}

# An invitation in one of these states keeps its submission out of refund.
BLOCKING_INVITATION_STATUSES = ("pending", "accepted")

DEFAULT_EXPIRY_HOURS = 24
DEFAULT_SURGE_MULTIPLIER = 1.2


class ConsultantInvitation(db.Model):
    """Offer extended to a consultant, with its own acceptance deadline."""

    __tablename__ = "consultant_invitations"
    __table_args__ = (
        db.UniqueConstraint("problem_submission_id", "consultant_id",
                            name="uq_invitation_problem_consultant"),
        db.Index("ix_invitation_status_expires", "status", "expires_at"),
    )

    id = db.Column(db.Integer, primary_key=True)
    problem_submission_id = db.Column(
        db.Integer, db.ForeignKey("problem_submissions.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    consultant_id = db.Column(
        db.Integer, db.ForeignKey("consultants.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    invited_by = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
        comment="Admin who sent the invitation",
    )
    status = db.Column(db.String(20), nullable=False, default="pending",
                       comment="pending, accepted, declined, expired")

    is_surge = db.Column(db.Boolean, default=False)
    surge_multiplier = db.Column(db.Numeric(4, 2), default=1.0)

    invited_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    responded_at = db.Column(db.DateTime(timezone=True), nullable=True)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False)
    decline_reason = db.Column(db.Text, nullable=True)

    problem_submission = db.relationship("ProblemSubmission", back_populates="invitations")
    consultant = db.relationship("Consultant", back_populates="invitations")

    @staticmethod
    def expiry_for(invited_at: datetime, hours: int = DEFAULT_EXPIRY_HOURS) -> datetime:
        return invited_at + timedelta(hours=hours)

    @property
    def is_pending(self) -> bool:
        return self.status == "pending"

    def is_expired(self, now: datetime) -> bool:
        """True strictly after the deadline, whatever the stored status says."""
        expires = as_utc(self.expires_at)
        return expires is not None and expires < as_utc(now)

    def can_respond(self, now: datetime) -> bool:
        return self.is_pending and not self.is_expired(now)

    def to_dict(self, now: datetime | None = None):
        d = {
            "id": self.id,
            "problem_submission_id": self.problem_submission_id,
            "consultant_id": self.consultant_id,
            "invited_by": self.invited_by,
            "status": self.status,
            "is_surge": bool(self.is_surge),
            "surge_multiplier": float(self.surge_multiplier) if self.surge_multiplier is not None else None,
            "invited_at": isoformat(self.invited_at),
            "responded_at": isoformat(self.responded_at),
            "expires_at": isoformat(self.expires_at),
            "decline_reason": self.decline_reason,
        }
        if now is not None:
            d["is_expired"] = self.is_expired(now)
        return d

    def __repr__(self):
        return (f"<ConsultantInvitation {self.id} problem={self.problem_submission_id} "
                f"consultant={self.consultant_id} [{self.status}]>")
