"""
Health probes.

    GET /api/v1/health/ready   200 whenever the process serves requests
    GET /api/v1/health/live    database round-trip, store backend, AI provider;
                               503 when the database is unreachable
"""

import logging
import time

from flask import Blueprint, current_app, jsonify
from sqlalchemy.exc import SQLAlchemyError

from vesta.ai.gateway import get_gateway
from vesta.models import db
from vesta.services.store import get_store

logger = logging.getLogger(__name__)

health_bp = Blueprint("health_bp", __name__, url_prefix="/api/v1/health")


def _database_check() -> dict:
    started = time.perf_counter()
    try:
        db.session.execute(db.text("SELECT 1"))
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.error("Health check: database unreachable: %s", exc)
        return {"status": "error", "detail": str(exc)}
    return {"status": "ok", "latency_ms": round((time.perf_counter() - started) * 1000, 1)}


def _ai_check() -> dict:
    gateway = get_gateway()
    _, provider = gateway._get_provider(gateway.default_model)
    check = {"status": "ok", "model": gateway.default_model, "provider": provider}
    if provider == "local":
        check["detail"] = "no provider key configured; replies come from the local stub"
    return check


@health_bp.route("/ready", methods=["GET"])
def ready():
    return jsonify({"status": "ok"}), 200


@health_bp.route("/live", methods=["GET"])
def live():
    checks = {
        "database": _database_check(),
        "store": {"status": "ok", "backend": type(get_store()).__name__},
        "ai": _ai_check(),
        "app": {"name": "Vesta Plan Resilience Review", "debug": current_app.debug,
                "testing": current_app.testing},
    }
    healthy = checks["database"]["status"] == "ok"
    return jsonify({"status": "ok" if healthy else "degraded", "checks": checks}), 200 if healthy else 503
