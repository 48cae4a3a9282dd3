"""
Consultation Marketplace Platform
Audit domain model.

Models:
    - AuditLog: immutable, append-only audit trail for state-changing actions.
"""

from datetime import datetime

from app.models import db
from app.utils.helpers import isoformat, utcnow


# ── Well-known entity types ──────────────────────────────────────────────────

ENTITY_INVITATION = "consultant_invitation"
ENTITY_PROBLEM = "problem_submission"


class AuditLog(db.Model):
    """
    One row per state-changing action.

    ``entity_type`` + ``entity_id`` form a polymorphic reference to the
    subject row.  ``old_values`` / ``new_values`` are snapshots of the fields
    that changed.  Never updated, never deleted.
    """

    __tablename__ = "audit_logs"
    __table_args__ = (
        db.Index("idx_audit_entity", "entity_type", "entity_id"),
        db.Index("idx_audit_actor", "actor"),
        db.Index("idx_audit_action", "action"),
        db.Index("idx_audit_ts", "timestamp"),
    )

    id = db.Column(db.Integer, primary_key=True)

    # Polymorphic entity reference
    entity_type = db.Column(
        db.String(40), nullable=False,
        comment="consultant_invitation | problem_submission | …",
    )
    entity_id = db.Column(
        db.String(36), nullable=False,
        comment="PK of the referenced entity as string",
    )

    # What happened
    action = db.Column(
        db.String(60), nullable=False,
        comment="invitation_expired | problem_refunded | …",
    )
    actor = db.Column(
        db.String(150), nullable=False, default="system",
        comment="'system' for scheduled jobs, otherwise a user label",
    )
    actor_user_id = db.Column(
        db.Integer,
        db.ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    # Change payload
    old_values = db.Column(db.JSON, nullable=True)
    new_values = db.Column(db.JSON, nullable=True)

    # Timestamp (immutable)
    timestamp = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=utcnow,
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "action": self.action,
            "actor": self.actor,
            "actor_user_id": self.actor_user_id,
            "old_values": self.old_values,
            "new_values": self.new_values,
            "timestamp": isoformat(self.timestamp),
        }

    def __repr__(self):
        return f"<AuditLog {self.id}: {self.action} on {self.entity_type}/{self.entity_id}>"


# ── Convenience writer ───────────────────────────────────────────────────────

def write_audit(
    *,
    entity_type: str,
    entity_id,
    action: str,
    actor: str = "system",
    actor_user_id: int | None = None,
    old_values: dict | None = None,
    new_values: dict | None = None,
    timestamp: datetime | None = None,
) -> AuditLog:
    """
    Append a single audit row.  Uses ``flush`` so callers keep
    transaction control: the row commits or rolls back with the change it
    describes.

    Returns the (flushed) AuditLog instance.
    """
    log = AuditLog(
        entity_type=entity_type,
        entity_id=str(entity_id),
        action=action,
        actor=actor,
        actor_user_id=actor_user_id,
        old_values=old_values,
        new_values=new_values,
    )
    if timestamp is not None:
        log.timestamp = timestamp
    db.session.add(log)
    db.session.flush()
    return log
