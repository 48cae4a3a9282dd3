"""
Consultation Marketplace Platform
Problem Submission Service.

Drafts are free; submitting fixes the fee, charges it to the owner and opens
the submission for matching.  The charge, the status change and the audit row
commit together.
"""

from __future__ import annotations

import logging
from datetime import datetime

from app.core.exceptions import NotFoundError, ValidationError
from app.models import db
from app.models.audit import ENTITY_PROBLEM, write_audit
from app.models.problem import ProblemSubmission
from app.models.user import User
from app.services import token_service
from app.utils.helpers import resolve_now

logger = logging.getLogger(__name__)


def get_problem(problem_id: int) -> ProblemSubmission:
    problem = db.session.get(ProblemSubmission, problem_id)
    if not problem:
        raise NotFoundError(resource="ProblemSubmission", resource_id=problem_id)
    return problem


def create_draft(
    user_id: int,
    problem_statement: str,
    error_description: str = "",
    technologies: list[str] | None = None,
    now: datetime | None = None,
) -> ProblemSubmission:
    """Create a draft submission that expires after DRAFT_EXPIRY_DAYS.

    ``technologies`` are free-text names matched against consultant
    specializations; blanks and duplicates are dropped.
    """
    now = resolve_now(now)
    if not db.session.get(User, user_id):
        raise NotFoundError(resource="User", resource_id=user_id)

    problem = ProblemSubmission(
        user_id=user_id,
        problem_statement=problem_statement,
        error_description=error_description,
        technologies=list(dict.fromkeys(t.strip() for t in technologies or [] if t.strip())),
        status="draft",
        draft_expires_at=ProblemSubmission.default_draft_expiry(now),
    )
    db.session.add(problem)
    db.session.commit()
    logger.info("Draft problem %s created for user %s", problem.id, user_id,
                extra={"problem_id": problem.id, "user_id": user_id})
    return problem


def submit_problem(problem_id: int, now: datetime | None = None) -> ProblemSubmission:
    """Fix the submission fee, charge it and mark the problem submitted.

    Raises:
        NotFoundError: unknown problem.
        ValidationError: not a submittable draft (expired, empty, or already submitted).
        InsufficientBalanceError: owner cannot cover the fee.
    """
    now = resolve_now(now)
    problem = get_problem(problem_id)

    if not problem.can_submit(now):
        raise ValidationError(
            "Problem cannot be submitted",
            details={
                "status": problem.status,
                "draft_expired": problem.is_draft_expired(now),
            },
        )

    fee = problem.calculate_submission_fee()
    try:
        token_service.debit_tokens(
            problem.user_id,
            fee,
            f"Submission fee for problem #{problem.id}",
            metadata={"problem_submission_id": problem.id},
        )
        problem.submission_fee = fee
        problem.status = "submitted"
        problem.submitted_at = now
        problem.draft_expires_at = None
        write_audit(
            entity_type=ENTITY_PROBLEM,
            entity_id=problem.id,
            action="problem_submitted",
            actor_user_id=problem.user_id,
            actor=f"user:{problem.user_id}",
            old_values={"status": "draft"},
            new_values={"status": "submitted", "submission_fee": fee},
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info("Problem %s submitted, fee=%s", problem.id, fee,
                extra={"problem_id": problem.id, "user_id": problem.user_id})
    return problem
