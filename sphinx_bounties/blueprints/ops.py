"""
Operations Blueprint - Health Checks and Metrics

The route classifier treats both paths as static, so health checks and scrapers pass
the access gate without cookies.
"""

import logging
import time
from typing import Any, Dict

from flask import Blueprint, Response, current_app, jsonify

from sphinx_bounties.database import get_health_status
from sphinx_bounties.metrics import render_latest

logger = logging.getLogger(__name__)

ops_bp = Blueprint("ops", __name__)


@ops_bp.route("/health")
def health():
    """
    Health check endpoint.

    Returns:
        JSON health status; 503 when the database is unreachable
    """
    cfg = current_app.config["APP_CONFIG"]
    components = get_health_status()

    health_status: Dict[str, Any] = {
        "status": "healthy",
        "timestamp": time.time(),
        "service": cfg.get("APP_NAME", "Sphinx Bounties"),
        "version": cfg.get("APP_VERSION"),
        "components": components,
    }

    if components["database"]["status"] != "healthy":
        logger.warning("Health check: database not healthy")
        health_status["status"] = "unhealthy"
        return jsonify(health_status), 503

    # Redis is optional; an unreachable configured instance only degrades service.
    if cfg.get("REDIS_URL") and components["redis"]["status"] != "healthy":
        health_status["status"] = "degraded"

    return jsonify(health_status)


@ops_bp.route("/metrics")
def metrics():
    """Prometheus exposition of the auth counters."""
    return Response(render_latest(), mimetype="text/plain; version=0.0.4; charset=utf-8")
