"""
Tests: scheduler registry, job execution records and the invitations-expire command.
"""

from datetime import timedelta
from unittest.mock import patch

from app.models import db
from app.models.invitation import ConsultantInvitation
from app.models.scheduling import ScheduledJob
from app.services.scheduler_service import SchedulerService, get_registered_jobs
from app.utils.helpers import utcnow


def _job():
    db.session.expire_all()
    return ScheduledJob.query.filter_by(job_name="expire_invitations").first()


def test_sweep_job_is_registered():
    assert "expire_invitations" in get_registered_jobs()


def test_ensure_jobs_registered_is_idempotent():
    created = SchedulerService.ensure_jobs_registered()
    again = SchedulerService.ensure_jobs_registered()

    assert len(created) == 1
    assert again == []
    job = _job()
    assert job.schedule_config == {"minute": "*/5", "description": "Every 5 minutes"}
    assert job.description == "Expire overdue consultant invitations and refund unmatched problems."


def test_run_job_records_result(make_user, make_consultant, make_problem, make_invitation):
    SchedulerService.ensure_jobs_registered()
    problem = make_problem(make_user(), submission_fee=5)
    inv = make_invitation(problem, make_consultant(), invited_at=utcnow() - timedelta(hours=30),
                          expires_at=utcnow() - timedelta(hours=6))

    outcome = SchedulerService.run_job("expire_invitations")

    assert outcome["status"] == "success"
    assert outcome["result"]["invitations"]["expired"] == 1
    assert outcome["result"]["refunds"]["refunded"] == 1

    job = _job()
    assert job.run_count == 1
    assert job.last_run_status == "success"
    assert job.last_run_result["refunds"]["refunded_tokens"] == 5
    assert db.session.get(ConsultantInvitation, inv.id).status == "expired"


def test_disabled_job_is_skipped(make_user, make_consultant, make_problem, make_invitation):
    SchedulerService.ensure_jobs_registered()
    SchedulerService.toggle_job("expire_invitations", False)
    problem = make_problem(make_user())
    inv = make_invitation(problem, make_consultant(), expires_at=utcnow() - timedelta(hours=1))

    outcome = SchedulerService.run_job("expire_invitations")

    assert outcome["status"] == "skipped"
    assert _job().run_count == 0
    assert db.session.get(ConsultantInvitation, inv.id).status == "pending"


def test_failing_job_is_recorded_not_raised():
    SchedulerService.ensure_jobs_registered()

    with patch("app.services.scheduled_jobs.run_invitation_sweep", side_effect=RuntimeError("db down")):
        outcome = SchedulerService.run_job("expire_invitations")

    assert outcome["status"] == "failed"
    assert outcome["error"] == "db down"
    job = _job()
    assert job.error_count == 1
    assert job.last_error == "db down"


def test_unknown_job():
    outcome = SchedulerService.run_job("no_such_job")
    assert outcome["status"] == "error"


def test_cli_command_runs_sweep(app, make_user, make_consultant, make_problem, make_invitation):
    problem = make_problem(make_user())
    inv = make_invitation(problem, make_consultant(), invited_at=utcnow() - timedelta(hours=30),
                          expires_at=utcnow() - timedelta(hours=6))

    result = app.test_cli_runner().invoke(args=["invitations-expire"])

    assert result.exit_code == 0
    db.session.expire_all()
    assert db.session.get(ConsultantInvitation, inv.id).status == "expired"
    assert _job().run_count == 1


def test_cli_exits_non_zero_when_sweep_fails(app):
    with patch("app.services.scheduled_jobs.run_invitation_sweep", side_effect=RuntimeError("db down")):
        result = app.test_cli_runner().invoke(args=["invitations-expire"])

    assert result.exit_code == 1
