"""
Consultation Marketplace Platform
Token ledger domain model.

Models:
    - TokenTransaction: immutable, append-only record of a balance change.
"""

from datetime import datetime, timezone

from app.models import db
from app.utils.helpers import isoformat


# ── Constants ────────────────────────────────────────────────────────────────

TXN_PURCHASE = "purchase"
TXN_DEDUCTION = "deduction"
TXN_REFUND = "refund"
TXN_BONUS = "bonus"
TXN_ADJUSTMENT = "adjustment"

TRANSACTION_TYPES = {TXN_PURCHASE, TXN_DEDUCTION, TXN_REFUND, TXN_BONUS, TXN_ADJUSTMENT}
CREDIT_TYPES = {TXN_PURCHASE, TXN_REFUND, TXN_BONUS, TXN_ADJUSTMENT}


class TokenTransaction(db.Model):
    """
    Ledger entry.  ``amount`` is signed (negative for deductions) and
    ``balance_after`` is the user's balance right after this entry was applied.

    Rows are created, never updated or deleted.
    """

    __tablename__ = "token_transactions"
    __table_args__ = (
        db.Index("ix_token_txn_user_created", "user_id", "created_at"),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    type = db.Column(db.String(20), nullable=False,
                     comment="purchase, deduction, refund, bonus, adjustment")
    amount = db.Column(db.Integer, nullable=False)
    balance_after = db.Column(db.Integer, nullable=False)
    description = db.Column(db.String(500), default="")
    metadata_json = db.Column("metadata", db.JSON, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False,
                           default=lambda: datetime.now(timezone.utc))

    user = db.relationship("User")

    @property
    def is_credit(self) -> bool:
        return self.amount > 0

    @property
    def is_debit(self) -> bool:
        return self.amount < 0

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "type": self.type,
            "amount": self.amount,
            "balance_after": self.balance_after,
            "description": self.description,
            "metadata": self.metadata_json or {},
            "created_at": isoformat(self.created_at),
        }

    def __repr__(self):
        return f"<TokenTransaction {self.id}: {self.type} {self.amount:+d} → {self.balance_after}>"
