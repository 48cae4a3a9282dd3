"""
Consultation Marketplace Platform
Token Service - balance changes and the token ledger.

Every balance change is one SQL statement (``tokens_balance = tokens_balance
± n``) followed by a ledger row carrying the post-change balance.  Nothing
here reads a balance into Python, adds to it and writes it back, so
concurrent purchases, charges and refunds cannot lose updates.

``credit_tokens`` / ``debit_tokens`` only flush: the caller owns the
transaction and commits the balance change together with whatever caused it.
``add_tokens`` / ``add_bonus`` are committing wrappers for standalone use.
"""

from __future__ import annotations

import logging

from sqlalchemy import select, update

from app.core.exceptions import InsufficientBalanceError, NotFoundError, ValidationError
from app.models import db
from app.models.token import (
    CREDIT_TYPES,
    TXN_BONUS,
    TXN_DEDUCTION,
    TokenTransaction,
)
from app.models.user import User

logger = logging.getLogger(__name__)


# ── Private helpers ────────────────────────────────────────────────────────────


def _current_balance(user_id: int) -> int:
    """Read the balance straight from the DB, bypassing the identity map."""
    return db.session.execute(
        select(User.tokens_balance).where(User.id == user_id)
    ).scalar_one()


def _append_ledger_entry(
    *,
    user_id: int,
    txn_type: str,
    amount: int,
    balance_after: int,
    description: str,
    metadata: dict | None,
) -> TokenTransaction:
    txn = TokenTransaction(
        user_id=user_id,
        type=txn_type,
        amount=amount,
        balance_after=balance_after,
        description=description[:500],
        metadata_json=metadata or {},
    )
    db.session.add(txn)
    db.session.flush()
    return txn


# ── Public API ─────────────────────────────────────────────────────────────────


def credit_tokens(
    user_id: int,
    amount: int,
    txn_type: str,
    description: str,
    metadata: dict | None = None,
) -> TokenTransaction:
    """Increment a user's balance and append the matching ledger entry.

    Flushes only.  Raises ValidationError for a non-positive amount or a
    non-credit type, NotFoundError when the user row does not exist.
    """
    if amount <= 0:
        raise ValidationError("Credit amount must be positive", details={"amount": amount})
    if txn_type not in CREDIT_TYPES:
        raise ValidationError(f"'{txn_type}' is not a credit transaction type")

    result = db.session.execute(
        update(User)
        .where(User.id == user_id)
        .values(tokens_balance=User.tokens_balance + amount)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise NotFoundError(resource="User", resource_id=user_id)

    balance_after = _current_balance(user_id)
    txn = _append_ledger_entry(
        user_id=user_id,
        txn_type=txn_type,
        amount=amount,
        balance_after=balance_after,
        description=description,
        metadata=metadata,
    )
    logger.info(
        "Tokens credited: user=%s amount=%s type=%s balance=%s",
        user_id, amount, txn_type, balance_after,
        extra={"user_id": user_id},
    )
    return txn


def debit_tokens(
    user_id: int,
    amount: int,
    description: str,
    metadata: dict | None = None,
) -> TokenTransaction:
    """Decrement a user's balance, refusing to go below zero.

    The balance check is part of the UPDATE's WHERE clause, so two concurrent
    debits can never both pass it.  Flushes only.
    """
    if amount <= 0:
        raise ValidationError("Deduction amount must be positive", details={"amount": amount})

    result = db.session.execute(
        update(User)
        .where(User.id == user_id, User.tokens_balance >= amount)
        .values(tokens_balance=User.tokens_balance - amount)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        available = db.session.execute(
            select(User.tokens_balance).where(User.id == user_id)
        ).scalar_one_or_none()
        if available is None:
            raise NotFoundError(resource="User", resource_id=user_id)
        raise InsufficientBalanceError(user_id, required=amount, available=available)

    balance_after = _current_balance(user_id)
    txn = _append_ledger_entry(
        user_id=user_id,
        txn_type=TXN_DEDUCTION,
        amount=-amount,
        balance_after=balance_after,
        description=description,
        metadata=metadata,
    )
    logger.info(
        "Tokens deducted: user=%s amount=%s balance=%s",
        user_id, amount, balance_after,
        extra={"user_id": user_id},
    )
    return txn


def add_tokens(
    user_id: int,
    amount: int,
    txn_type: str,
    description: str,
    metadata: dict | None = None,
) -> TokenTransaction:
    """Credit and commit in one call; rolls back and re-raises on failure."""
    try:
        txn = credit_tokens(user_id, amount, txn_type, description, metadata)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return txn


def add_bonus(user_id: int, amount: int, reason: str) -> TokenTransaction:
    return add_tokens(user_id, amount, TXN_BONUS, reason)


def get_balance(user_id: int) -> int:
    balance = db.session.execute(
        select(User.tokens_balance).where(User.id == user_id)
    ).scalar_one_or_none()
    if balance is None:
        raise NotFoundError(resource="User", resource_id=user_id)
    return balance


def has_sufficient_tokens(user_id: int, amount: int) -> bool:
    return get_balance(user_id) >= amount


def get_transaction_history(user_id: int, limit: int = 20) -> list[TokenTransaction]:
    """Newest first."""
    return (
        TokenTransaction.query
        .filter_by(user_id=user_id)
        .order_by(TokenTransaction.created_at.desc(), TokenTransaction.id.desc())
        .limit(limit)
        .all()
    )
