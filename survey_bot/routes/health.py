# survey_bot/routes/health.py
"""
Readiness/liveness probe.

Returns HTTP 200 if:
• Flask is running
• Redis is reachable
• the response database answers a trivial query

Otherwise 500.
"""
from __future__ import annotations

import logging
from typing import Any, Dict

from flask import Blueprint, current_app, jsonify
from redis.exceptions import RedisError
from sqlalchemy.exc import SQLAlchemyError

from ..database import ping

log = logging.getLogger(__name__)
bp = Blueprint("health", __name__)


@bp.get("/health")
def health_check():
    status: Dict[str, Any] = {"service": "survey_bot"}
    healthy = True

    try:
        current_app.extensions["redis"].ping()
        status["redis"] = "connected"
    except RedisError as exc:
        log.warning("Redis ping failed: %s", exc)
        status["redis"] = "disconnected"
        healthy = False

    try:
        ping(current_app.extensions["db_session_factory"])
        status["database"] = "connected"
    except SQLAlchemyError as exc:
        log.warning("Database ping failed: %s", exc)
        status["database"] = "disconnected"
        healthy = False

    status["status"] = "healthy" if healthy else "unhealthy"
    return jsonify(status), 200 if healthy else 500
