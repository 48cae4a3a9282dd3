"""
Shared pytest fixtures for the Consultation Marketplace test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - now: a fixed aware UTC clock reading
    - make_user / make_consultant / make_problem / make_invitation: seeders

Seeders commit, not flush: services under test roll back on failure and must
not take the fixture rows with them.
"""

from datetime import datetime, timedelta, timezone

import pytest

from app import create_app
from app.models import db as _db
from app.models.invitation import ConsultantInvitation
from app.models.problem import ProblemSubmission
from app.models.user import Consultant, User

FIXED_NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture()
def now():
    return FIXED_NOW


# ── Seeders ──────────────────────────────────────────────────────────────


_seq = {"user": 0}


def _make_user(tokens_balance=0, email=None, **kw):
    _seq["user"] += 1
    user = User(
        email=email or f"user{_seq['user']}@example.com",
        first_name=kw.pop("first_name", "Test"),
        last_name=kw.pop("last_name", f"User{_seq['user']}"),
        tokens_balance=tokens_balance,
        **kw,
    )
    _db.session.add(user)
    _db.session.commit()
    return user


def _make_consultant(user=None, **kw):
    user = user or _make_user(role="consultant")
    consultant = Consultant(user_id=user.id, **kw)
    _db.session.add(consultant)
    _db.session.commit()
    return consultant


def _make_problem(user, status="matching", submission_fee=5, **kw):
    problem = ProblemSubmission(
        user_id=user.id,
        problem_statement=kw.pop("problem_statement", "Ledger export fails at month end"),
        error_description=kw.pop("error_description", ""),
        status=status,
        submission_fee=submission_fee,
        **kw,
    )
    _db.session.add(problem)
    _db.session.commit()
    return problem


def _make_invitation(problem, consultant, status="pending", expires_at=None, invited_at=None, **kw):
    invited_at = invited_at or FIXED_NOW - timedelta(hours=1)
    invitation = ConsultantInvitation(
        problem_submission_id=problem.id,
        consultant_id=consultant.id,
        status=status,
        invited_at=invited_at,
        expires_at=expires_at or invited_at + timedelta(hours=24),
        **kw,
    )
    _db.session.add(invitation)
    _db.session.commit()
    return invitation


@pytest.fixture()
def make_user():
    return _make_user


@pytest.fixture()
def make_consultant():
    return _make_consultant


@pytest.fixture()
def make_problem():
    return _make_problem


@pytest.fixture()
def make_invitation():
    return _make_invitation
