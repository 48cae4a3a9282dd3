"""
Per-blueprint request limits (Flask-Limiter, keyed by remote address).

The ``Limiter`` lives in ``app/__init__.py`` with no default limit. Storage
comes from RATELIMIT_STORAGE_URI and limits are off when TESTING is set.
"""

import logging

logger = logging.getLogger(__name__)

WRITE_LIMIT = "60/minute"
READ_LIMIT = "200/minute"

# blueprint name -> limit string, or None for exempt
BLUEPRINT_LIMITS = {
    "problem_bp": WRITE_LIMIT,
    "invitation_bp": WRITE_LIMIT,
    "token_bp": WRITE_LIMIT,
    "notification_bp": READ_LIMIT,
    "audit": READ_LIMIT,
    "health_bp": None,
}


def init_rate_limits(app, limiter):
    """Attach limits to registered blueprints. Call after registration."""
    if app.config.get("TESTING"):
        return

    for name, limit in BLUEPRINT_LIMITS.items():
        bp = app.blueprints.get(name)
        if bp is None:
            logger.warning("Rate limit configured for unknown blueprint %s", name)
        elif limit is None:
            limiter.exempt(bp)
        else:
            limiter.limit(limit)(bp)

    logger.info("Rate limits applied: write=%s read=%s", WRITE_LIMIT, READ_LIMIT)
