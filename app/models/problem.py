"""
Consultation Marketplace Platform
Problem submission domain model.

Models:
    - ProblemSubmission: a user's paid request for consultation help.

Lifecycle:
    draft → submitted → matching → matched → in_progress → completed
                          └──────→ refunded   (no consultant accepted)
    draft/submitted → cancelled
"""

from datetime import datetime, timedelta, timezone

from app.models import db
from app.utils.helpers import as_utc, isoformat


# ── Constants ────────────────────────────────────────────────────────────────

PROBLEM_STATUSES = {
    "draft", "submitted", "matching", "matched",
    "in_progress", "completed", "refunded", "cancelled",
}

MIN_SUBMISSION_FEE = 5
MAX_SUBMISSION_FEE = 10
DRAFT_EXPIRY_DAYS = 14

# Text length thresholds that each add one token to the fee
_FEE_LENGTH_STEPS = (500, 1000)


class ProblemSubmission(db.Model):
    """
    A user's request for help, matched to consultants through invitations.

    ``submission_fee`` is fixed at submit time and is the exact amount a
    refund gives back.  ``refunded_at`` goes from NULL to a timestamp at most
    once.
    """

    __tablename__ = "problem_submissions"
    __table_args__ = (
        db.Index("ix_problem_status_refunded", "status", "refunded_at"),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    problem_statement = db.Column(db.Text, default="")
    error_description = db.Column(db.Text, default="")
    status = db.Column(db.String(20), nullable=False, default="draft",
                       comment="draft, submitted, matching, matched, in_progress, completed, refunded, cancelled")
    technologies = db.Column(db.JSON, default=list, comment="Technology names used for matching")
    submission_fee = db.Column(db.Integer, nullable=False, default=0,
                               comment="Token cost charged at submit time")

    draft_expires_at = db.Column(db.DateTime(timezone=True), nullable=True)
    submitted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    refunded_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))

    user = db.relationship("User")
    invitations = db.relationship(
        "ConsultantInvitation", back_populates="problem_submission",
        cascade="all, delete-orphan", lazy="select",
    )

    # ── State helpers ────────────────────────────────────────────────────

    @property
    def is_draft(self) -> bool:
        return self.status == "draft"

    @property
    def is_refunded(self) -> bool:
        return self.status == "refunded" and self.refunded_at is not None

    def is_draft_expired(self, now: datetime) -> bool:
        expires = as_utc(self.draft_expires_at)
        return self.is_draft and expires is not None and expires < now

    def can_submit(self, now: datetime) -> bool:
        return (
            self.is_draft
            and not self.is_draft_expired(now)
            and bool((self.problem_statement or "").strip())
        )

    def calculate_submission_fee(self) -> int:
        """Base fee plus one token per length step of each text field, capped."""
        extra = 0
        for text in (self.problem_statement or "", self.error_description or ""):
            extra += sum(1 for step in _FEE_LENGTH_STEPS if len(text) > step)
        return min(MIN_SUBMISSION_FEE + extra, MAX_SUBMISSION_FEE)

    @staticmethod
    def default_draft_expiry(now: datetime) -> datetime:
        return now + timedelta(days=DRAFT_EXPIRY_DAYS)

    def to_dict(self, include_invitations=False):
        d = {
            "id": self.id,
            "user_id": self.user_id,
            "problem_statement": self.problem_statement,
            "error_description": self.error_description,
            "status": self.status,
            "submission_fee": self.submission_fee,
            "technologies": self.technologies or [],
            "draft_expires_at": isoformat(self.draft_expires_at),
            "submitted_at": isoformat(self.submitted_at),
            "refunded_at": isoformat(self.refunded_at),
            "created_at": isoformat(self.created_at),
        }
        if include_invitations:
            d["invitations"] = [i.to_dict() for i in self.invitations]
        return d

    def __repr__(self):
        return f"<ProblemSubmission {self.id} [{self.status}] fee={self.submission_fee}>"
