"""
Consultation Marketplace Platform
Invitation Service - sending, answering and expiring consultant invitations.

Design decisions:
    - Every status transition is a conditional UPDATE (``... WHERE status =
      'pending'``) and checks the affected row count.  An invitation that was
      answered, expired or refunded in between is never overwritten.
    - The expiry sweep commits per invitation.  One failing row is rolled
      back, logged and skipped; it is picked up again on the next sweep.
    - "now" is always a parameter so the sweep is deterministic under test.
"""

from __future__ import annotations

import logging
from datetime import datetime

from flask import current_app
from sqlalchemy import update

from app.core.exceptions import NotFoundError, ValidationError
from app.models import db
from app.models.audit import ENTITY_INVITATION, ENTITY_PROBLEM, write_audit
from app.models.invitation import (
    DEFAULT_EXPIRY_HOURS,
    DEFAULT_SURGE_MULTIPLIER,
    ConsultantInvitation,
)
from app.models.problem import ProblemSubmission
from app.models.user import Consultant
from app.services.notification import NotificationService
from app.utils.helpers import isoformat, resolve_now

logger = logging.getLogger(__name__)

INVITABLE_PROBLEM_STATUSES = ("submitted", "matching")


# ── Private helpers ────────────────────────────────────────────────────────────


def _expiry_hours() -> int:
    return int(current_app.config.get("INVITATION_EXPIRY_HOURS", DEFAULT_EXPIRY_HOURS))


def _surge_multiplier() -> float:
    return float(current_app.config.get("SURGE_MULTIPLIER", DEFAULT_SURGE_MULTIPLIER))


def _get_owned_invitation(invitation_id: int, consultant_id: int) -> ConsultantInvitation:
    invitation = db.session.get(ConsultantInvitation, invitation_id)
    if not invitation or invitation.consultant_id != consultant_id:
        raise NotFoundError(resource="ConsultantInvitation", resource_id=invitation_id)
    return invitation


def _notify(user, notification_type: str, payload: dict) -> bool:
    """Deliver a notification after the state change committed. Never raises."""
    try:
        NotificationService.send_notification(user, notification_type, payload)
        return True
    except Exception as exc:
        db.session.rollback()
        logger.warning("Failed to send %s notification to user %s: %s",
                       notification_type, getattr(user, "id", None), exc)
        return False


def _transition_pending(invitation_id: int, values: dict) -> bool:
    """UPDATE the invitation only if it is still pending. True when it was."""
    result = db.session.execute(
        update(ConsultantInvitation)
        .where(
            ConsultantInvitation.id == invitation_id,
            ConsultantInvitation.status == "pending",
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


# ── Sending ────────────────────────────────────────────────────────────────────


def invite_consultants(
    problem_id: int,
    consultant_ids: list[int],
    *,
    invited_by: int | None = None,
    surge: bool = False,
    now: datetime | None = None,
) -> list[ConsultantInvitation]:
    """Create pending invitations for a submitted problem and open it for matching.

    Consultants that already hold an invitation for this problem are skipped.
    Surge invitations are only allowed for consultants who opted into surge
    pricing.

    Returns the newly created invitations (already committed).
    """
    now = resolve_now(now)
    problem = db.session.get(ProblemSubmission, problem_id)
    if not problem:
        raise NotFoundError(resource="ProblemSubmission", resource_id=problem_id)
    if problem.status not in INVITABLE_PROBLEM_STATUSES:
        raise ValidationError(
            f"Cannot invite consultants to a problem in status '{problem.status}'",
            details={"status": problem.status},
        )
    if not consultant_ids:
        raise ValidationError("At least one consultant_id is required")

    wanted = list(dict.fromkeys(consultant_ids))
    consultants = {c.id: c for c in Consultant.query.filter(Consultant.id.in_(wanted)).all()}
    for cid in wanted:
        if cid not in consultants:
            raise NotFoundError(resource="Consultant", resource_id=cid)

    if surge:
        not_opted = [cid for cid in wanted if not consultants[cid].can_receive_surge_pricing]
        if not_opted:
            raise ValidationError(
                "Consultant has not opted into surge pricing",
                details={"consultant_ids": not_opted},
            )

    already_invited = {
        row.consultant_id
        for row in ConsultantInvitation.query.filter_by(problem_submission_id=problem.id).all()
    }

    expires_at = ConsultantInvitation.expiry_for(now, _expiry_hours())
    created = []
    for cid in wanted:
        if cid in already_invited:
            logger.debug("Consultant %s already invited to problem %s", cid, problem.id)
            continue
        invitation = ConsultantInvitation(
            problem_submission_id=problem.id,
            consultant_id=cid,
            invited_by=invited_by,
            status="pending",
            invited_at=now,
            expires_at=expires_at,
            is_surge=surge,
            surge_multiplier=_surge_multiplier() if surge else 1.0,
        )
        db.session.add(invitation)
        created.append(invitation)

    old_status = problem.status
    problem.status = "matching"
    try:
        db.session.flush()
        write_audit(
            entity_type=ENTITY_PROBLEM,
            entity_id=problem.id,
            action="consultants_invited",
            actor_user_id=invited_by,
            actor=f"user:{invited_by}" if invited_by else "system",
            old_values={"status": old_status},
            new_values={
                "status": "matching",
                "invitation_ids": [i.id for i in created],
                "surge": surge,
            },
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info("Problem %s: %d invitation(s) sent (surge=%s)", problem.id, len(created), surge,
                extra={"problem_id": problem.id})
    for invitation in created:
        _notify(consultants[invitation.consultant_id].user, "invitation_received", {
            "problem_id": problem.id,
            "invitation_id": invitation.id,
            "expires_at": isoformat(expires_at),
            "message": f"You have been invited to help with problem #{problem.id}.",
        })
    return created


# ── Answering ──────────────────────────────────────────────────────────────────


def accept_invitation(
    invitation_id: int,
    consultant_id: int,
    now: datetime | None = None,
) -> ConsultantInvitation:
    """Accept an invitation, match the problem and expire competing invitations."""
    now = resolve_now(now)
    invitation = _get_owned_invitation(invitation_id, consultant_id)
    if not invitation.can_respond(now):
        raise ValidationError(
            "Invitation can no longer be answered",
            details={"status": invitation.status, "expired": invitation.is_expired(now)},
        )
    problem_id = invitation.problem_submission_id

    try:
        if not _transition_pending(invitation_id, {"status": "accepted", "responded_at": now}):
            raise ValidationError("Invitation was answered concurrently")

        matched = db.session.execute(
            update(ProblemSubmission)
            .where(ProblemSubmission.id == problem_id, ProblemSubmission.status == "matching")
            .values(status="matched")
            .execution_options(synchronize_session=False)
        )
        if matched.rowcount != 1:
            raise ValidationError("Problem is no longer open for matching")

        competing = db.session.execute(
            update(ConsultantInvitation)
            .where(
                ConsultantInvitation.problem_submission_id == problem_id,
                ConsultantInvitation.id != invitation_id,
                ConsultantInvitation.status == "pending",
            )
            .values(status="expired")
            .execution_options(synchronize_session=False)
        )
        write_audit(
            entity_type=ENTITY_INVITATION,
            entity_id=invitation_id,
            action="invitation_accepted",
            actor=f"consultant:{consultant_id}",
            old_values={"status": "pending"},
            new_values={
                "status": "accepted",
                "problem_status": "matched",
                "competing_expired": competing.rowcount,
            },
            timestamp=now,
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    db.session.refresh(invitation)
    logger.info("Invitation %s accepted by consultant %s", invitation_id, consultant_id,
                extra={"invitation_id": invitation_id, "problem_id": problem_id})
    problem = db.session.get(ProblemSubmission, problem_id)
    _notify(problem.user, "invitation_accepted", {
        "problem_id": problem_id,
        "invitation_id": invitation_id,
        "message": f"A consultant accepted your problem #{problem_id}.",
    })
    return invitation


def decline_invitation(
    invitation_id: int,
    consultant_id: int,
    reason: str | None = None,
    now: datetime | None = None,
) -> ConsultantInvitation:
    now = resolve_now(now)
    invitation = _get_owned_invitation(invitation_id, consultant_id)
    if not invitation.can_respond(now):
        raise ValidationError(
            "Invitation can no longer be answered",
            details={"status": invitation.status, "expired": invitation.is_expired(now)},
        )

    try:
        declined = _transition_pending(
            invitation_id,
            {"status": "declined", "responded_at": now, "decline_reason": reason},
        )
        if not declined:
            raise ValidationError("Invitation was answered concurrently")
        write_audit(
            entity_type=ENTITY_INVITATION,
            entity_id=invitation_id,
            action="invitation_declined",
            actor=f"consultant:{consultant_id}",
            old_values={"status": "pending"},
            new_values={"status": "declined", "reason": reason},
            timestamp=now,
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    db.session.refresh(invitation)
    logger.info("Invitation %s declined by consultant %s", invitation_id, consultant_id,
                extra={"invitation_id": invitation_id})
    return invitation


def list_for_consultant(consultant_id: int, status: str | None = None) -> list[ConsultantInvitation]:
    q = ConsultantInvitation.query.filter_by(consultant_id=consultant_id)
    if status:
        q = q.filter_by(status=status)
    return q.order_by(ConsultantInvitation.invited_at.desc()).all()


# ── Expiry sweep ───────────────────────────────────────────────────────────────


def _expire_one(invitation_id: int, now: datetime) -> bool:
    """Expire a single invitation and audit it. Flushes; caller commits."""
    if not _transition_pending(invitation_id, {"status": "expired"}):
        return False
    write_audit(
        entity_type=ENTITY_INVITATION,
        entity_id=invitation_id,
        action="invitation_expired",
        old_values={"status": "pending"},
        new_values={"status": "expired"},
        timestamp=now,
    )
    return True


def expire_invitations(now: datetime | None = None) -> dict:
    """Mark every pending invitation past its deadline as expired.

    Selection is ``status = 'pending' AND expires_at < now``, so re-running
    the sweep never touches an invitation twice.  Each invitation commits on
    its own; a failure rolls back that one invitation only.

    Returns:
        {"found": int, "expired": int, "errors": int}
    """
    now = resolve_now(now)
    invitation_ids = [
        row.id
        for row in db.session.query(ConsultantInvitation.id)
        .filter(
            ConsultantInvitation.status == "pending",
            ConsultantInvitation.expires_at < now,
        )
        .order_by(ConsultantInvitation.id)
        .all()
    ]
    results = {"found": len(invitation_ids), "expired": 0, "errors": 0}
    logger.info("Invitation expiry: found %d expired invitation(s)", len(invitation_ids))

    for invitation_id in invitation_ids:
        try:
            changed = _expire_one(invitation_id, now)
            db.session.commit()
        except Exception as exc:
            db.session.rollback()
            results["errors"] += 1
            logger.error("Failed to expire invitation %s: %s", invitation_id, exc,
                         extra={"invitation_id": invitation_id})
            continue
        if changed:
            results["expired"] += 1
            logger.info("Invitation %s marked expired", invitation_id,
                        extra={"invitation_id": invitation_id})

    return results
