"""
Consultation Marketplace Platform
Refund Settlement Service.

A problem submission is refunded when matching has failed: it is still in
``matching``, has never been refunded, had at least one invitation, and none
of its invitations is ``pending`` or ``accepted`` any more.

Per submission, one transaction:

    1. claim      UPDATE problem_submissions SET status='refunded', refunded_at=:now
                  WHERE id=:id AND status='matching' AND refunded_at IS NULL
                    AND NOT EXISTS (pending/accepted invitation)
    2. credit     tokens_balance = tokens_balance + submission_fee
    3. ledger     TokenTransaction(type='refund', balance_after=<post-credit>)
    4. audit      AuditLog('problem_refunded')
    5. commit     - any failure in 1-4 rolls back all of them

The claim is the at-most-once guard.  Two overlapping sweeps may both select
the same submission, but only one UPDATE can match ``refunded_at IS NULL``;
the other sees zero rows and backs off.  A consultant accepting between
selection and claim is caught by the same statement.

The owner is notified only after commit.  Notification errors are logged and
never touch the refund.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable

from sqlalchemy import select, update

from app.models import db
from app.models.audit import ENTITY_PROBLEM, write_audit
from app.models.invitation import BLOCKING_INVITATION_STATUSES, ConsultantInvitation
from app.models.problem import ProblemSubmission
from app.models.token import TXN_REFUND, TokenTransaction
from app.services import token_service
from app.utils.helpers import resolve_now

logger = logging.getLogger(__name__)

REFUND_NOTIFICATION_TYPE = "problem_refunded"
REFUND_REASON = "no_consultants_accepted"

# (user, notification_type, payload) -> anything
Notifier = Callable[[object, str, dict], object]


# ── Selection ──────────────────────────────────────────────────────────────────


def _has_blocking_invitation():
    return (
        select(ConsultantInvitation.id)
        .where(
            ConsultantInvitation.problem_submission_id == ProblemSubmission.id,
            ConsultantInvitation.status.in_(BLOCKING_INVITATION_STATUSES),
        )
        .correlate(ProblemSubmission)
        .exists()
    )


def _has_any_invitation():
    return (
        select(ConsultantInvitation.id)
        .where(ConsultantInvitation.problem_submission_id == ProblemSubmission.id)
        .correlate(ProblemSubmission)
        .exists()
    )


def _eligibility_criteria():
    return (
        ProblemSubmission.status == "matching",
        ProblemSubmission.refunded_at.is_(None),
        _has_any_invitation(),
        ~_has_blocking_invitation(),
    )


def find_refund_candidates() -> list[ProblemSubmission]:
    """Submissions whose matching has run out of invitations, oldest first."""
    return (
        ProblemSubmission.query
        .filter(*_eligibility_criteria())
        .order_by(ProblemSubmission.id)
        .all()
    )


# ── Settlement ─────────────────────────────────────────────────────────────────


def _claim(problem_id: int, now: datetime) -> bool:
    result = db.session.execute(
        update(ProblemSubmission)
        .where(ProblemSubmission.id == problem_id, *_eligibility_criteria())
        .values(status="refunded", refunded_at=now)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def refund_submission(problem_id: int, *, now: datetime | None = None) -> TokenTransaction | None:
    """Refund one submission's fee to its owner in a single transaction.

    Returns the refund ledger entry, or None when the submission was no longer
    eligible at claim time (already refunded, accepted, or gone).  Any other
    failure rolls back the claim, the credit, the ledger entry and the audit
    row together, then re-raises.
    """
    now = resolve_now(now)
    row = db.session.execute(
        select(ProblemSubmission.user_id, ProblemSubmission.submission_fee)
        .where(ProblemSubmission.id == problem_id)
    ).one_or_none()
    if row is None:
        return None
    user_id, refund_amount = row

    try:
        if not _claim(problem_id, now):
            db.session.rollback()
            logger.info("Problem %s no longer eligible for refund, skipping", problem_id,
                        extra={"problem_id": problem_id})
            return None

        txn = token_service.credit_tokens(
            user_id,
            refund_amount,
            TXN_REFUND,
            f"Refund for problem submission #{problem_id} - no consultants available",
            metadata={
                "problem_submission_id": problem_id,
                "reason": REFUND_REASON,
            },
        )
        write_audit(
            entity_type=ENTITY_PROBLEM,
            entity_id=problem_id,
            action="problem_refunded",
            old_values={"status": "matching"},
            new_values={
                "status": "refunded",
                "refund_amount": refund_amount,
                "user_id": user_id,
            },
            timestamp=now,
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info("Refunded %s tokens for problem %s", refund_amount, problem_id,
                extra={"problem_id": problem_id, "user_id": user_id})
    return txn


def notify_refund(problem: ProblemSubmission, refund_amount: int, notifier: Notifier) -> bool:
    """Tell the owner about a committed refund. Never raises."""
    payload = {
        "problem_id": problem.id,
        "refund_amount": refund_amount,
        "message": (
            "We're sorry, but no consultants were available to help with your problem. "
            f"Your {refund_amount} tokens have been refunded to your account."
        ),
    }
    try:
        notifier(problem.user, REFUND_NOTIFICATION_TYPE, payload)
        return True
    except Exception as exc:
        db.session.rollback()
        logger.warning("Failed to send refund notification for problem %s: %s", problem.id, exc,
                       extra={"problem_id": problem.id, "user_id": problem.user_id})
        return False


def _default_notifier() -> Notifier:
    from app.services.notification import NotificationService
    return NotificationService.send_notification


def settle_refunds(now: datetime | None = None, notifier: Notifier | None = None) -> dict:
    """Refund every eligible submission; one failure never stops the batch.

    Returns:
        {"found", "refunded", "skipped", "errors", "refunded_tokens", "notify_failures"}
    """
    now = resolve_now(now)
    notifier = notifier or _default_notifier()

    candidate_ids = [p.id for p in find_refund_candidates()]
    results = {
        "found": len(candidate_ids),
        "refunded": 0,
        "skipped": 0,
        "errors": 0,
        "refunded_tokens": 0,
        "notify_failures": 0,
    }
    logger.info("Refund settlement: found %d problem(s) needing refund", len(candidate_ids))

    for problem_id in candidate_ids:
        try:
            txn = refund_submission(problem_id, now=now)
        except Exception as exc:
            results["errors"] += 1
            logger.error("Failed to process refund for problem %s: %s", problem_id, exc,
                         extra={"problem_id": problem_id})
            continue

        if txn is None:
            results["skipped"] += 1
            continue

        results["refunded"] += 1
        results["refunded_tokens"] += txn.amount
        problem = db.session.get(ProblemSubmission, problem_id)
        if not notify_refund(problem, txn.amount, notifier):
            results["notify_failures"] += 1

    return results
