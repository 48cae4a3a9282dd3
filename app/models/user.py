"""
Consultation Marketplace Platform
Account models - users and consultant profiles.

Models:
    - User: platform account holding the token balance
    - Consultant: consultant profile attached to a user account
"""

from datetime import datetime, timezone

from app.models import db
from app.utils.helpers import isoformat


# ── Constants ────────────────────────────────────────────────────────────────

USER_ROLES = {"user", "consultant", "admin"}
CONSULTANT_STATUSES = {"pending", "approved", "rejected"}


class User(db.Model):
    """
    Marketplace account.

    ``tokens_balance`` is the unit of payment.  It is only ever changed by
    SQL-level increments/decrements in ``token_service`` so that concurrent
    credits and debits cannot lose updates.
    """

    __tablename__ = "users"
    __table_args__ = (
        db.CheckConstraint("tokens_balance >= 0", name="ck_users_tokens_balance_non_negative"),
    )

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(200), unique=True, nullable=False, index=True)
    first_name = db.Column(db.String(100), default="")
    last_name = db.Column(db.String(100), default="")
    role = db.Column(db.String(20), default="user", comment="user, consultant, admin")
    tokens_balance = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))

    consultant_profile = db.relationship("Consultant", back_populates="user", uselist=False)

    @property
    def full_name(self):
        return f"{self.first_name or ''} {self.last_name or ''}".strip() or self.email

    def to_dict(self):
        return {
            "id": self.id,
            "email": self.email,
            "full_name": self.full_name,
            "role": self.role,
            "tokens_balance": self.tokens_balance,
            "created_at": isoformat(self.created_at),
        }

    def __repr__(self):
        return f"<User {self.id}: {self.email}>"


class Consultant(db.Model):
    """Consultant profile; invitations are addressed to this row, not the user."""

    __tablename__ = "consultants"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True,
    )
    status = db.Column(db.String(20), default="approved", comment="pending, approved, rejected")
    is_available = db.Column(db.Boolean, default=True)
    can_receive_surge_pricing = db.Column(db.Boolean, default=False)
    specializations = db.Column(db.JSON, default=list, comment="Technology names the consultant covers")

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    user = db.relationship("User", back_populates="consultant_profile")
    invitations = db.relationship("ConsultantInvitation", back_populates="consultant", lazy="dynamic")

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "name": self.user.full_name if self.user else None,
            "status": self.status,
            "is_available": self.is_available,
            "can_receive_surge_pricing": self.can_receive_surge_pricing,
            "specializations": self.specializations or [],
        }

    def __repr__(self):
        return f"<Consultant {self.id} user={self.user_id} [{self.status}]>"
