"""
Request timing and correlation ids.

Every response carries X-Request-ID (echoed from the request when the
client sent one) and X-Request-Duration-Ms. One log record per request,
at WARNING when slow, ERROR on 5xx and DEBUG otherwise.
"""

import logging
import time
import uuid

from flask import Flask, g, request

logger = logging.getLogger(__name__)

# polled by the UI; not worth a log line per hit
QUIET_PATHS = frozenset({
    "/api/v1/health/ready",
    "/api/v1/health/live",
    "/api/v1/workspaces/changes",
})

# analysis and enhancement calls the LLM and may legitimately approach this
SLOW_REQUEST_MS = 5000


def _level_for(status: int, duration_ms: float) -> int:
    if duration_ms > SLOW_REQUEST_MS:
        return logging.WARNING
    if status >= 500:
        return logging.ERROR
    return logging.DEBUG


def init_request_timing(app: Flask):
    @app.before_request
    def _start_clock():
        g.request_started = time.perf_counter()
        g.request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:12]

    @app.after_request
    def _stop_clock(response):
        started = g.get("request_started")
        if started is None:
            return response
        duration_ms = (time.perf_counter() - started) * 1000
        response.headers["X-Request-ID"] = g.request_id
        response.headers["X-Request-Duration-Ms"] = f"{duration_ms:.1f}"
        if request.path in QUIET_PATHS:
            return response

        user = g.get("current_user")
        args = request.view_args or {}
        logger.log(
            _level_for(response.status_code, duration_ms),
            "%s %s -> %d in %.0fms", request.method, request.path, response.status_code, duration_ms,
            extra={
                "request_id": g.request_id,
                "method": request.method,
                "path": request.path,
                "status": response.status_code,
                "duration_ms": duration_ms,
                "remote_addr": request.remote_addr,
                "user_email": user.email if user else None,
                "workspace_id": args.get("workspace_id"),
                "report_id": args.get("report_id"),
            },
        )
        return response
