"""
Tests: refund settlement for problems whose matching failed.

Covers:
    1. Full sweep: expire last invitation, refund fee, ledger, audit, notify
    2. Eligibility: accepted / pending / no invitations / not matching
    3. At-most-once: re-running and racing claims never double-refund
    4. Atomicity: a ledger failure leaves balance and status untouched
    5. Notification failures never undo a committed refund
    6. Default notifier delivers in-app + email through NotificationService
"""

from datetime import timedelta, timezone
from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy.exc import SQLAlchemyError

from app.models import db
from app.models.audit import AuditLog
from app.models.notification import Notification
from app.models.problem import ProblemSubmission
from app.models.scheduling import EmailLog
from app.models.token import TokenTransaction
from app.services import token_service
from app.services.refund_service import find_refund_candidates, refund_submission, settle_refunds
from app.services.scheduled_jobs import run_invitation_sweep
from app.utils.helpers import as_utc


@pytest.fixture()
def failed_match(now, make_user, make_consultant, make_problem, make_invitation):
    """A matching problem whose only invitation is already expired."""
    owner = make_user(tokens_balance=0)
    problem = make_problem(owner, status="matching", submission_fee=7)
    make_invitation(problem, make_consultant(), status="expired", expires_at=now - timedelta(hours=2))
    return owner, problem


def _problem(problem_id):
    return db.session.get(ProblemSubmission, problem_id)


# ═══════════════════════════════════════════════════════════════════════════
#  1. FULL SWEEP
# ═══════════════════════════════════════════════════════════════════════════


def test_sweep_expires_and_refunds(now, make_user, make_consultant, make_problem, make_invitation):
    owner = make_user(tokens_balance=0)
    problem = make_problem(owner, status="matching", submission_fee=5)
    make_invitation(problem, make_consultant(), expires_at=now - timedelta(hours=1))
    notifier = MagicMock()

    summary = run_invitation_sweep(now=now, notifier=notifier)

    assert summary["invitations"]["expired"] == 1
    assert summary["refunds"]["refunded"] == 1
    assert summary["refunds"]["refunded_tokens"] == 5

    refreshed = _problem(problem.id)
    assert refreshed.status == "refunded"
    assert refreshed.refunded_at is not None
    assert token_service.get_balance(owner.id) == 5

    txn = TokenTransaction.query.filter_by(user_id=owner.id).one()
    assert txn.type == "refund"
    assert txn.amount == 5
    assert txn.balance_after == 5
    assert txn.description == (
        f"Refund for problem submission #{problem.id} - no consultants available"
    )
    assert txn.metadata_json == {
        "problem_submission_id": problem.id,
        "reason": "no_consultants_accepted",
    }

    actions = [a.action for a in AuditLog.query.order_by(AuditLog.id).all()]
    assert actions == ["invitation_expired", "problem_refunded"]
    refund_audit = AuditLog.query.filter_by(action="problem_refunded").one()
    assert refund_audit.entity_id == str(problem.id)
    assert refund_audit.new_values["refund_amount"] == 5
    assert refund_audit.new_values["user_id"] == owner.id

    notifier.assert_called_once()
    user_arg, type_arg, payload = notifier.call_args.args
    assert user_arg.id == owner.id
    assert type_arg == "problem_refunded"
    assert payload["problem_id"] == problem.id
    assert payload["refund_amount"] == 5
    assert "5 tokens have been refunded" in payload["message"]


def test_declined_and_expired_mix_is_refunded(now, make_user, make_consultant, make_problem, make_invitation):
    owner = make_user(tokens_balance=2)
    problem = make_problem(owner, submission_fee=6)
    make_invitation(problem, make_consultant(), status="declined")
    make_invitation(problem, make_consultant(), status="expired")

    result = settle_refunds(now=now, notifier=MagicMock())

    assert result["refunded"] == 1
    assert token_service.get_balance(owner.id) == 8
    assert TokenTransaction.query.filter_by(user_id=owner.id).one().balance_after == 8


# ═══════════════════════════════════════════════════════════════════════════
#  2. ELIGIBILITY
# ═══════════════════════════════════════════════════════════════════════════


def test_accepted_invitation_blocks_refund(now, make_user, make_consultant, make_problem, make_invitation):
    owner = make_user()
    problem = make_problem(owner)
    make_invitation(problem, make_consultant(), status="accepted")
    make_invitation(problem, make_consultant(), status="expired")

    result = settle_refunds(now=now, notifier=MagicMock())

    assert result["found"] == 0
    assert _problem(problem.id).status == "matching"
    assert token_service.get_balance(owner.id) == 0


def test_pending_invitation_blocks_refund(now, make_user, make_consultant, make_problem, make_invitation):
    problem = make_problem(make_user())
    make_invitation(problem, make_consultant(), status="expired")
    make_invitation(problem, make_consultant(), expires_at=now + timedelta(hours=3))

    assert find_refund_candidates() == []


def test_problem_without_invitations_is_never_refunded(now, make_user, make_problem):
    owner = make_user()
    problem = make_problem(owner, status="matching")

    result = run_invitation_sweep(now=now, notifier=MagicMock())

    assert result["refunds"]["found"] == 0
    assert _problem(problem.id).status == "matching"
    assert TokenTransaction.query.count() == 0


@pytest.mark.parametrize("status", ["submitted", "matched", "cancelled"])
def test_only_matching_problems_are_refunded(status, now, make_user, make_consultant, make_problem,
                                             make_invitation):
    problem = make_problem(make_user(), status=status)
    make_invitation(problem, make_consultant(), status="expired")

    assert settle_refunds(now=now, notifier=MagicMock())["found"] == 0
    assert _problem(problem.id).status == status


# ═══════════════════════════════════════════════════════════════════════════
#  3. AT-MOST-ONCE
# ═══════════════════════════════════════════════════════════════════════════


def test_second_sweep_is_noop(now, failed_match):
    owner, problem = failed_match
    notifier = MagicMock()

    first = run_invitation_sweep(now=now, notifier=notifier)
    second = run_invitation_sweep(now=now + timedelta(minutes=5), notifier=notifier)

    assert first["refunds"]["refunded"] == 1
    assert second["refunds"]["found"] == 0
    assert second["invitations"]["found"] == 0
    assert token_service.get_balance(owner.id) == 7
    assert TokenTransaction.query.filter_by(type="refund").count() == 1
    assert notifier.call_count == 1


def test_losing_claim_returns_none(now, failed_match):
    owner, problem = failed_match

    first = refund_submission(problem.id, now=now)
    second = refund_submission(problem.id, now=now)

    assert first is not None
    assert second is None
    assert token_service.get_balance(owner.id) == 7
    assert TokenTransaction.query.count() == 1


def test_acceptance_between_selection_and_claim_wins(now, failed_match, make_consultant, make_invitation):
    owner, problem = failed_match
    candidates = [p.id for p in find_refund_candidates()]
    assert candidates == [problem.id]

    # a consultant accepts after selection but before the claim
    make_invitation(problem, make_consultant(), status="accepted")

    assert refund_submission(problem.id, now=now) is None
    assert _problem(problem.id).status == "matching"
    assert token_service.get_balance(owner.id) == 0


def test_unknown_problem_returns_none(now):
    assert refund_submission(999_999, now=now) is None


# ═══════════════════════════════════════════════════════════════════════════
#  4. ATOMICITY
# ═══════════════════════════════════════════════════════════════════════════


def test_ledger_failure_rolls_back_whole_refund(now, failed_match):
    owner, problem = failed_match
    notifier = MagicMock()

    with patch("app.services.token_service._append_ledger_entry",
               side_effect=SQLAlchemyError("ledger unavailable")):
        result = settle_refunds(now=now, notifier=notifier)

    assert result["errors"] == 1
    assert result["refunded"] == 0
    refreshed = _problem(problem.id)
    assert refreshed.status == "matching"
    assert refreshed.refunded_at is None
    assert token_service.get_balance(owner.id) == 0
    assert TokenTransaction.query.count() == 0
    assert AuditLog.query.filter_by(action="problem_refunded").count() == 0
    notifier.assert_not_called()

    # retried successfully on the next run
    assert settle_refunds(now=now, notifier=notifier)["refunded"] == 1
    assert token_service.get_balance(owner.id) == 7


def test_one_failing_refund_does_not_stop_the_batch(now, make_user, make_consultant, make_problem,
                                                    make_invitation):
    owners = [make_user(), make_user()]
    problems = []
    for owner in owners:
        problem = make_problem(owner, submission_fee=5)
        make_invitation(problem, make_consultant(), status="expired")
        problems.append(problem)

    real_credit = token_service.credit_tokens

    def _credit(user_id, *args, **kwargs):
        if user_id == owners[0].id:
            raise SQLAlchemyError("deadlock detected")
        return real_credit(user_id, *args, **kwargs)

    with patch("app.services.token_service.credit_tokens", side_effect=_credit):
        result = settle_refunds(now=now, notifier=MagicMock())

    assert result["found"] == 2
    assert result["errors"] == 1
    assert result["refunded"] == 1
    assert _problem(problems[0].id).status == "matching"
    assert _problem(problems[1].id).status == "refunded"


# ═══════════════════════════════════════════════════════════════════════════
#  5/6. NOTIFICATION
# ═══════════════════════════════════════════════════════════════════════════


def test_notifier_failure_keeps_refund(now, failed_match):
    owner, problem = failed_match
    notifier = MagicMock(side_effect=RuntimeError("push gateway down"))

    result = settle_refunds(now=now, notifier=notifier)

    assert result["refunded"] == 1
    assert result["notify_failures"] == 1
    assert _problem(problem.id).status == "refunded"
    assert token_service.get_balance(owner.id) == 7


def test_default_notifier_creates_in_app_and_email(now, failed_match):
    owner, problem = failed_match

    result = settle_refunds(now=now)

    assert result["refunded"] == 1
    notif = Notification.query.filter_by(user_id=owner.id).one()
    assert notif.type == "problem_refunded"
    assert notif.data["problem_id"] == problem.id
    assert notif.data["refund_amount"] == 7

    email = EmailLog.query.filter_by(user_id=owner.id).one()
    assert email.template_name == "problem_refunded"
    assert email.status == "sent"
    assert f"#{problem.id}" in email.subject


def test_refund_timestamp_stored_in_utc(now, failed_match):
    _, problem = failed_match
    local_clock = now.astimezone(timezone(timedelta(hours=5)))

    refund_submission(problem.id, now=local_clock)

    refunded_at = _problem(problem.id).refunded_at
    assert as_utc(refunded_at) == now
