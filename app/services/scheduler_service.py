"""
Background job registry and runner.

Jobs are plain functions registered under a name with ``@register_job``.
Something external decides when they run: cron invoking
``flask invitations-expire``, or the manual trigger endpoint. Each run
happens in a fresh app context and its outcome is stored on the job's
ScheduledJob row (run_count, last status, duration, result or error).
A job whose row is disabled is skipped.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable

from flask import Flask
from sqlalchemy.exc import SQLAlchemyError

from app.models import db
from app.models.scheduling import ScheduledJob

logger = logging.getLogger(__name__)

_job_registry: dict[str, Callable[[Flask], Any]] = {}

# Suggested cron schedule stored on new ScheduledJob rows
DEFAULT_SCHEDULES: dict[str, dict] = {
    "expire_invitations": {"minute": "*/5", "description": "Every 5 minutes"},
}
_FALLBACK_SCHEDULE = {"hour": "0", "minute": "0", "description": "Daily at midnight"}


def register_job(name: str):
    """Register the decorated function as job ``name``. It receives the app."""
    def decorator(fn):
        _job_registry[name] = fn
        return fn
    return decorator


def get_registered_jobs() -> dict[str, Callable]:
    return dict(_job_registry)


def _job_record(job_name: str) -> ScheduledJob | None:
    return ScheduledJob.query.filter_by(job_name=job_name).first()


def _outcome(job_name, status, *, duration_ms=0, result=None, error=None) -> dict:
    return {
        "job_name": job_name,
        "status": status,
        "duration_ms": duration_ms,
        "result": result,
        "error": error,
    }


class SchedulerService:
    _app: Flask | None = None

    @classmethod
    def init_app(cls, app: Flask) -> None:
        cls._app = app
        app.extensions["scheduler"] = cls
        logger.debug("Scheduler bound to app with jobs: %s", ", ".join(sorted(_job_registry)))

    @classmethod
    def ensure_jobs_registered(cls) -> list[ScheduledJob]:
        """Insert a ScheduledJob row for every registered job that has none.

        Returns the rows created by this call; an empty list when all exist.
        """
        if cls._app is None:
            return []

        created = []
        with cls._app.app_context():
            for name, fn in _job_registry.items():
                if _job_record(name) is not None:
                    continue
                doc = (fn.__doc__ or "").strip()
                created.append(ScheduledJob(
                    job_name=name,
                    description=doc.splitlines()[0] if doc else name,
                    schedule_type="cron",
                    schedule_config=DEFAULT_SCHEDULES.get(name, _FALLBACK_SCHEDULE),
                    status="active",
                    is_enabled=True,
                ))
            if created:
                db.session.add_all(created)
                db.session.commit()
                logger.info("Registered %d scheduled job(s)", len(created))
        return created

    @classmethod
    def run_job(cls, job_name: str) -> dict:
        """Run one job now and record the outcome.

        ``status`` is one of success, failed (the job raised), skipped (the
        job is disabled) or error (unknown job, scheduler not initialised).
        Job exceptions are logged and reported, never re-raised.
        """
        fn = _job_registry.get(job_name)
        if fn is None:
            return _outcome(job_name, "error", error=f"Unknown job: {job_name}")
        if cls._app is None:
            return _outcome(job_name, "error", error="Scheduler not initialized")

        log_extra = {"job_name": job_name}
        with cls._app.app_context():
            record = _job_record(job_name)
            if record is not None and not record.is_enabled:
                logger.info("Job disabled, skipping", extra=log_extra)
                return _outcome(job_name, "skipped")

        started = time.monotonic()
        try:
            with cls._app.app_context():
                result, status, error = fn(cls._app), "success", None
        except Exception as exc:
            result, status, error = None, "failed", str(exc)
            logger.exception("Job failed: %s", exc, extra=log_extra)
        duration_ms = int((time.monotonic() - started) * 1000)

        cls._record_run(job_name, status, duration_ms, result, error)
        return _outcome(job_name, status, duration_ms=duration_ms, result=result, error=error)

    @classmethod
    def _record_run(cls, job_name, status, duration_ms, result, error) -> None:
        with cls._app.app_context():
            record = _job_record(job_name)
            if record is None:
                return
            record.record_run(
                status=status,
                duration_ms=duration_ms,
                result=result if isinstance(result, dict) else {"output": repr(result)},
                error=error,
            )
            try:
                db.session.commit()
            except SQLAlchemyError:
                db.session.rollback()
                logger.exception("Could not store run result", extra={"job_name": job_name})

    @staticmethod
    def list_jobs() -> list[dict]:
        """Stored job rows, each flagged with whether its handler is registered."""
        jobs = []
        for record in ScheduledJob.query.order_by(ScheduledJob.job_name).all():
            data = record.to_dict()
            data["registered"] = record.job_name in _job_registry
            jobs.append(data)
        return jobs

    @staticmethod
    def get_job_status(job_name: str) -> dict | None:
        record = _job_record(job_name)
        return record.to_dict() if record else None

    @staticmethod
    def toggle_job(job_name: str, enabled: bool) -> dict | None:
        record = _job_record(job_name)
        if record is None:
            return None
        record.is_enabled = enabled
        record.status = "active" if enabled else "paused"
        db.session.commit()
        return record.to_dict()
