"""
Application Factory for Sphinx Bounties

Implements the Flask application factory pattern with:
- Blueprint registration
- Security configuration (TLS, headers, rate limiting)
- Database initialization
- The per-request access gate
- Error handling that renders the AppError taxonomy as JSON
"""

import logging
from typing import Optional

import click
from flask import Flask, g, jsonify, redirect, request

from sphinx_bounties import db_storage, metrics
from sphinx_bounties.audit_logger import get_audit_logger, init_audit_logger
from sphinx_bounties.auth.gate import Outcome, RequestView
from sphinx_bounties.config import AppConfig, get_config, validate_config
from sphinx_bounties.database import init_all, remove_session
from sphinx_bounties.errors import AppError
from sphinx_bounties.extensions import EXTENSION_KEY, build_components, get_auth
from sphinx_bounties.security import init_security

logger = logging.getLogger(__name__)

_DENIED_OUTCOMES = frozenset({Outcome.ADMIN_DENIED, Outcome.WORKSPACE_DENIED, Outcome.ERROR})


def create_app(config_override: Optional[AppConfig] = None) -> Flask:
    """
    Create and configure the Flask application using the factory pattern.

    Args:
        config_override: Keys layered over the environment configuration (tests)

    Returns:
        Configured Flask application instance
    """
    app = Flask(__name__)

    cfg = get_config()
    if config_override:
        cfg.update(config_override)
    validate_config(cfg)
    app.config["APP_CONFIG"] = cfg

    app.secret_key = cfg.get("FLASK_SECRET_KEY") or cfg["JWT_SECRET"]

    init_security(app, cfg)

    try:
        init_all(cfg["DATABASE_URL"], redis_url=cfg.get("REDIS_URL"))
        init_audit_logger()
        logger.info("Database and audit logging initialized")
    except Exception as e:
        logger.error(f"Infrastructure initialization failed: {e}")
        raise

    app.extensions[EXTENSION_KEY] = build_components(cfg, role_lookup=db_storage.get_workspace_role)

    register_blueprints(app)
    register_error_handlers(app)
    register_request_handlers(app)
    register_commands(app)

    logger.info("Application factory completed")
    return app


def register_blueprints(app: Flask) -> None:
    """Register all application blueprints."""

    from sphinx_bounties.blueprints.auth import auth_bp
    app.register_blueprint(auth_bp)

    from sphinx_bounties.blueprints.ops import ops_bp
    app.register_blueprint(ops_bp)

    from sphinx_bounties.blueprints.pages import pages_bp
    app.register_blueprint(pages_bp)


def register_error_handlers(app: Flask) -> None:
    """Register global error handlers."""

    @app.errorhandler(AppError)
    def app_error(e: AppError):
        if e.status_code >= 500:
            logger.error(f"{e.code} on {request.method} {request.path}: {e.message}")
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(400)
    def bad_request(e):
        return jsonify({"error": "bad_request", "message": "Bad request"}), 400

    @app.errorhandler(404)
    def not_found(e):
        return jsonify({"error": "not_found", "message": "Resource not found"}), 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return jsonify({"error": "method_not_allowed", "message": "Method not allowed"}), 405

    @app.errorhandler(429)
    def rate_limit_exceeded(e):
        get_audit_logger().log_rate_limit_exceeded(request.remote_addr, request.path)
        return jsonify({"error": "rate_limit_exceeded", "message": str(e.description)}), 429

    @app.errorhandler(500)
    def internal_error(e):
        original = getattr(e, "original_exception", None) or e
        logger.error(
            f"Internal server error: {request.method} {request.path} "
            f"request_id={g.get('request_id', '-')}: {original!r}",
            exc_info=original,
        )
        return jsonify({"error": "internal_error", "message": "An unexpected error occurred"}), 500


def register_request_handlers(app: Flask) -> None:
    """Run the access gate before every request and expose its annotations."""

    @app.before_request
    def run_access_gate():
        view = RequestView(
            path=request.path,
            cookies=request.cookies,
            headers=request.headers,
            method=request.method,
        )
        decision = get_auth().gate.decide(view)

        g.decision = decision
        g.request_id = decision.request_id
        g.auth_pubkey = decision.session.pubkey if decision.session else None
        g.workspace_id = decision.headers.get("x-workspace-id")
        metrics.gate_decisions.labels(outcome=decision.outcome.value).inc()

        if decision.proceed:
            return None

        if decision.outcome in _DENIED_OUTCOMES:
            get_audit_logger().log_access_denied(
                request.path, decision.outcome.value, decision.request_id, g.auth_pubkey
            )
        return redirect(decision.redirect_target)

    @app.after_request
    def add_gate_headers(response):
        decision = g.get("decision")
        if decision is not None:
            for name, value in decision.headers.items():
                response.headers[name] = value
        return response

    @app.teardown_appcontext
    def cleanup(error=None):
        if error:
            logger.error(f"Request cleanup with error: {error}")
        remove_session()


def register_commands(app: Flask) -> None:
    @app.cli.command("purge-challenges")
    def purge_challenges():
        """Delete expired login challenges."""
        removed = db_storage.purge_expired_challenges()
        click.echo(f"Removed {removed} expired challenge(s)")

