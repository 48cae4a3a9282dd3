"""
Consultation Marketplace Platform
Matching Service - ranks consultants for a problem and invites the matches.

Score per consultant (only scores above zero are returned):
    - technology overlap: share of the problem's technologies the consultant
      covers, worth up to 60 points; names compare case-insensitively
    - experience: one point per completed problem the consultant accepted,
      at most 5
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import func

from app.core.exceptions import NotFoundError, ValidationError
from app.models import db
from app.models.invitation import ConsultantInvitation
from app.models.problem import ProblemSubmission
from app.models.user import Consultant
from app.services.invitation_service import invite_consultants

logger = logging.getLogger(__name__)

TECHNOLOGY_WEIGHT = 0.6
MAX_EXPERIENCE_BONUS = 5


def _normalise(names) -> set[str]:
    return {str(n).strip().lower() for n in (names or []) if str(n).strip()}


def _completed_counts(consultant_ids: list[int]) -> dict[int, int]:
    rows = (
        db.session.query(ConsultantInvitation.consultant_id, func.count(ConsultantInvitation.id))
        .join(ProblemSubmission, ProblemSubmission.id == ConsultantInvitation.problem_submission_id)
        .filter(
            ConsultantInvitation.consultant_id.in_(consultant_ids),
            ConsultantInvitation.status == "accepted",
            ProblemSubmission.status == "completed",
        )
        .group_by(ConsultantInvitation.consultant_id)
        .all()
    )
    return dict(rows)


def score_consultant(required: set[str], consultant: Consultant, completed: int = 0) -> int:
    score = 0
    offered = _normalise(consultant.specializations)
    if required and offered:
        match_percentage = len(required & offered) / len(required) * 100
        score += int(match_percentage * TECHNOLOGY_WEIGHT)
    score += min(MAX_EXPERIENCE_BONUS, completed)
    return score


def find_matching_consultants(problem_id: int) -> list[tuple[Consultant, int]]:
    """Available, approved consultants with a positive score, best first.

    Returns:
        ``[(consultant, score), ...]``; ties keep the lower consultant id first.
    """
    problem = db.session.get(ProblemSubmission, problem_id)
    if not problem:
        raise NotFoundError(resource="ProblemSubmission", resource_id=problem_id)

    consultants = (
        Consultant.query
        .filter(Consultant.is_available.is_(True), Consultant.status == "approved")
        .order_by(Consultant.id)
        .all()
    )
    if not consultants:
        logger.info("No available consultants for problem %s", problem.id,
                    extra={"problem_id": problem.id})
        return []

    required = _normalise(problem.technologies)
    completed = _completed_counts([c.id for c in consultants])
    scored = [(c, score_consultant(required, c, completed.get(c.id, 0))) for c in consultants]
    matches = [(c, s) for c, s in scored if s > 0]
    matches.sort(key=lambda pair: (-pair[1], pair[0].id))

    logger.info("Problem %s: %d of %d available consultant(s) match",
                problem.id, len(matches), len(consultants), extra={"problem_id": problem.id})
    return matches


def invite_matching_consultants(
    problem_id: int,
    *,
    invited_by: int | None = None,
    limit: int | None = None,
    now: datetime | None = None,
) -> list[ConsultantInvitation]:
    """Invite every matching consultant (the best ``limit`` when given)."""
    matches = find_matching_consultants(problem_id)
    if limit is not None:
        matches = matches[:limit]
    if not matches:
        raise ValidationError("No matching consultants found", details={"problem_id": problem_id})

    return invite_consultants(
        problem_id,
        [consultant.id for consultant, _ in matches],
        invited_by=invited_by,
        now=now,
    )
