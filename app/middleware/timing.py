"""
Request timing and correlation ids.

Every response carries X-Request-ID (echoed from the request when present)
and X-Request-Duration-Ms. Slow requests and 5xx responses are logged with
the marketplace ids found in the URL.
"""

import logging
import time
import uuid

from flask import Flask, g, request

logger = logging.getLogger(__name__)

SLOW_THRESHOLD_MS = 1000

# URL parameters copied into the log record
_ID_ARGS = ("user_id", "consultant_id", "problem_id", "invitation_id")


def init_request_timing(app: Flask):
    @app.before_request
    def _start_timer():
        g.request_start = time.perf_counter()
        g.request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:12]

    @app.after_request
    def _finish(response):
        if "request_start" not in g:
            return response

        duration_ms = (time.perf_counter() - g.request_start) * 1000
        response.headers["X-Request-ID"] = g.request_id
        response.headers["X-Request-Duration-Ms"] = f"{duration_ms:.1f}"

        if request.blueprint == "health_bp":
            return response

        view_args = request.view_args or {}
        extra = {
            "request_id": g.request_id,
            "method": request.method,
            "path": request.path,
            "status": response.status_code,
            "duration_ms": duration_ms,
            "remote_addr": request.remote_addr,
        }
        extra.update({k: view_args[k] for k in _ID_ARGS if k in view_args})

        if response.status_code >= 500:
            level = logging.ERROR
        elif duration_ms > SLOW_THRESHOLD_MS:
            level = logging.WARNING
        else:
            level = logging.DEBUG
        logger.log(level, "%s %s -> %d", request.method, request.path,
                   response.status_code, extra=extra)
        return response
