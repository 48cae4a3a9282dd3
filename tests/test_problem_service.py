"""
Tests: problem drafts and submission charging.
"""

from datetime import timedelta

import pytest

from app.core.exceptions import InsufficientBalanceError, NotFoundError, ValidationError
from app.models import db
from app.models.audit import AuditLog
from app.models.problem import ProblemSubmission
from app.models.token import TokenTransaction
from app.services import problem_service, token_service


def test_create_draft_sets_expiry(now, make_user):
    user = make_user()

    problem = problem_service.create_draft(user.id, "Payroll run hangs", now=now)

    assert problem.status == "draft"
    assert problem.submission_fee == 0
    assert problem.is_draft_expired(now + timedelta(days=13)) is False
    assert problem.is_draft_expired(now + timedelta(days=15)) is True


def test_create_draft_unknown_user(now):
    with pytest.raises(NotFoundError):
        problem_service.create_draft(424242, "x", now=now)


@pytest.mark.parametrize(
    "statement,description,fee",
    [
        ("short", "", 5),
        ("x" * 501, "", 6),
        ("x" * 1001, "", 7),
        ("x" * 1001, "y" * 1001, 9),
        ("x" * 5000, "y" * 5000 + "z", 9),
    ],
)
def test_submission_fee_bounds(statement, description, fee):
    problem = ProblemSubmission(problem_statement=statement, error_description=description)
    assert problem.calculate_submission_fee() == fee
    assert 5 <= problem.calculate_submission_fee() <= 10


def test_submit_charges_fee_and_audits(now, make_user):
    user = make_user(tokens_balance=20)
    draft = problem_service.create_draft(user.id, "Invoices duplicated", now=now)

    problem = problem_service.submit_problem(draft.id, now=now)

    assert problem.status == "submitted"
    assert problem.submission_fee == 5
    assert problem.draft_expires_at is None
    assert token_service.get_balance(user.id) == 15

    txn = TokenTransaction.query.one()
    assert txn.amount == -5
    assert txn.metadata_json == {"problem_submission_id": draft.id}

    audit = AuditLog.query.filter_by(action="problem_submitted").one()
    assert audit.actor_user_id == user.id
    assert audit.new_values == {"status": "submitted", "submission_fee": 5}


def test_submit_with_insufficient_balance_changes_nothing(now, make_user):
    user = make_user(tokens_balance=2)
    draft = problem_service.create_draft(user.id, "Invoices duplicated", now=now)

    with pytest.raises(InsufficientBalanceError):
        problem_service.submit_problem(draft.id, now=now)

    refreshed = db.session.get(ProblemSubmission, draft.id)
    assert refreshed.status == "draft"
    assert token_service.get_balance(user.id) == 2
    assert AuditLog.query.count() == 0


def test_expired_draft_cannot_be_submitted(now, make_user):
    user = make_user(tokens_balance=20)
    draft = problem_service.create_draft(user.id, "Old issue", now=now - timedelta(days=15))

    with pytest.raises(ValidationError) as exc:
        problem_service.submit_problem(draft.id, now=now)

    assert exc.value.details["draft_expired"] is True
    assert token_service.get_balance(user.id) == 20


def test_submit_twice_rejected(now, make_user):
    user = make_user(tokens_balance=20)
    draft = problem_service.create_draft(user.id, "Invoices duplicated", now=now)
    problem_service.submit_problem(draft.id, now=now)

    with pytest.raises(ValidationError):
        problem_service.submit_problem(draft.id, now=now)
    assert token_service.get_balance(user.id) == 15
