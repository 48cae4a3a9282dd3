"""Small helpers shared by blueprints, services and models."""
import logging
from datetime import datetime, timezone

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from app.models import db
from app.utils.errors import E, api_error

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    """Aware UTC now. Services accept ``now=`` and fall back to this."""
    return datetime.now(timezone.utc)


def as_utc(value):
    """Normalise a datetime to aware UTC. SQLite hands back naive values."""
    if not isinstance(value, datetime):
        return value
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def isoformat(value):
    value = as_utc(value)
    return value.isoformat() if value else None


def parse_int_list(values):
    """Coerce a JSON array of ids to ints; ValueError for anything else."""
    if not isinstance(values, list) or any(isinstance(v, bool) for v in values):
        raise ValueError("Expected a list of integer ids")
    return [int(v) for v in values]


def get_or_404(model, pk, label=None):
    """``(obj, None)`` when the row exists, else ``(None, error_response)``.

        user, err = get_or_404(User, user_id)
        if err:
            return err
    """
    obj = db.session.get(model, pk)
    if obj is None:
        return None, api_error(E.NOT_FOUND, f"{label or model.__name__} not found")
    return obj, None


def db_commit_or_error():
    """Commit for blueprint-owned writes. Returns None, or an error response after rollback."""
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        logger.warning("Commit rejected by constraint: %s", exc.orig)
        return api_error(E.CONFLICT_DUPLICATE, "Duplicate or constraint violation")
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Commit failed")
        return api_error(E.DATABASE, "Database error")
    return None


def resolve_now(now=None) -> datetime:
    """An injected clock as aware UTC, or the current time.

    SQLite stores datetimes without an offset, so every value bound into a
    query has to be UTC already.
    """
    return as_utc(now) if now is not None else utcnow()
