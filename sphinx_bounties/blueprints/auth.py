"""
Authentication Blueprint - LNURL-auth login, sessions and the access gate.

Endpoints live under ``/api/auth``; every one of them is an auth route for
the access gate, so none of them require a session to be reached.
"""

import hmac
import logging
from typing import Any, Dict, Tuple
from urllib.parse import urlparse

from flask import Blueprint, Response, current_app, g, jsonify, request

from sphinx_bounties import db_storage, metrics
from sphinx_bounties.audit_logger import get_audit_logger
from sphinx_bounties.auth import challenges
from sphinx_bounties.auth.lnurl import build_callback_url, encode_lnurl, make_qr_png
from sphinx_bounties.errors import (
    AppError,
    ForbiddenError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from sphinx_bounties.extensions import get_auth
from sphinx_bounties.security import (
    CHALLENGE_RATE_LIMIT,
    SENSITIVE_RATE_LIMIT,
    STATUS_RATE_LIMIT,
    VERIFY_RATE_LIMIT,
    limiter,
)
from sphinx_bounties.utils import is_valid_pubkey, normalize_pubkey

logger = logging.getLogger(__name__)
audit_logger = get_audit_logger()

auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


def _json_body() -> Dict[str, Any]:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def _request_id() -> str:
    return getattr(g, "request_id", None) or ""


def _public_origin() -> Tuple[str, str]:
    """Base URL and host for wallet callbacks, pinned by APP_URL when configured."""
    app_url = current_app.config["APP_CONFIG"].get("APP_URL")
    if app_url:
        return app_url, urlparse(app_url).netloc
    return request.host_url, request.host


def _login_response(user: Dict[str, Any]) -> Response:
    """Mint a session token for the user and bind it to a JSON response."""
    auth = get_auth()
    token = auth.codec.mint(user["pubkey"])
    response = jsonify({"user": user, "token": token})
    auth.session_cookie.attach(response, token)
    audit_logger.log_session_created(user["pubkey"], expires_at=auth.codec.validate(token).exp)
    return response


def _complete(k1: Any, sig: Any, key: Any, method: str) -> Dict[str, Any]:
    try:
        user = challenges.complete_challenge(k1, sig, key)
    except AppError as e:
        metrics.login_attempts.labels(result=e.code).inc()
        audit_logger.log_event(
            "auth.verify_failed",
            pubkey=key if isinstance(key, str) else None,
            method=method,
            reason=e.code,
            ip=request.remote_addr,
        )
        raise
    metrics.login_attempts.labels(result="success").inc()
    audit_logger.log_event("auth.verify_success", pubkey=user["pubkey"], method=method, ip=request.remote_addr)
    return user


@auth_bp.route("/challenge", methods=["POST"])
@limiter.limit(CHALLENGE_RATE_LIMIT)
def create_challenge():
    """
    Issue a new LNURL-auth challenge.

    Returns:
        JSON with k1, lnurl, sphinxDeepLink, expiresAt and requestId
    """
    cfg = current_app.config["APP_CONFIG"]
    base_url, host = _public_origin()
    issued = challenges.create_challenge(
        base_url=base_url,
        host=host,
        ttl_seconds=cfg.get("CHALLENGE_TTL_SECONDS", challenges.DEFAULT_TTL_SECONDS),
    )
    metrics.challenges_created.inc()
    audit_logger.log_event("auth.challenge_created", k1=issued.k1[:8], ip=request.remote_addr)

    payload = issued.to_dict()
    payload["requestId"] = _request_id()
    response = jsonify(payload)
    get_auth().challenge_cookie.attach(response, issued.claim_token)
    return response, 201


@auth_bp.route("/challenge/<k1>/status", methods=["GET"])
@limiter.limit(STATUS_RATE_LIMIT)
def challenge_status(k1: str):
    """Browser poll: has a wallet completed this challenge yet?"""
    return jsonify(challenges.check_status(k1).to_dict())


@auth_bp.route("/challenge/<k1>/qr", methods=["GET"])
@limiter.limit(STATUS_RATE_LIMIT)
def challenge_qr(k1: str):
    """PNG QR code of the challenge's LNURL."""
    challenges.check_status(k1)
    callback_url = build_callback_url(_public_origin()[0], k1.lower())
    png = make_qr_png(encode_lnurl(callback_url))
    response = Response(png, mimetype="image/png")
    response.headers["Cache-Control"] = "no-store"
    return response


@auth_bp.route("/verify", methods=["GET"])
@limiter.limit(VERIFY_RATE_LIMIT)
def verify_callback():
    """
    LNURL-auth wallet callback.

    Query parameters:
        - k1: Challenge hex
        - sig: DER (or compact) signature over k1
        - key: Compressed public key hex

    Returns:
        LNURL status JSON: ``{"status": "OK"}`` or ``{"status": "ERROR", "reason": ...}``.
        No session is set here: the caller is the wallet, not the browser.
    """
    try:
        _complete(request.args.get("k1"), request.args.get("sig"), request.args.get("key"), "lnurl")
    except AppError as e:
        return jsonify({"status": "ERROR", "reason": e.message}), e.status_code

    return jsonify({"status": "OK"})


@auth_bp.route("/verify", methods=["POST"])
@limiter.limit(VERIFY_RATE_LIMIT)
def verify_login():
    """
    Complete a challenge with a JSON body and open a session.

    Expected JSON body:
        - k1, sig, key

    Returns:
        JSON with the user and the session token; the token is also set as a cookie
    """
    data = _json_body()
    user = _complete(data.get("k1"), data.get("sig"), data.get("key"), "lnurl")

    return _login_response(user)


@auth_bp.route("/session", methods=["GET"])
def current_session():
    """Return the user behind the session cookie."""
    auth = get_auth()
    claims = auth.codec.validate(auth.session_cookie.read(request.cookies))
    if claims is None:
        raise UnauthorizedError("Not authenticated")

    user = db_storage.get_user_by_pubkey(claims.pubkey)
    if user is None:
        raise NotFoundError("User not found")

    return jsonify({"authenticated": True, "user": user, "expiresAt": claims.exp})


@auth_bp.route("/session", methods=["POST"])
@limiter.limit(VERIFY_RATE_LIMIT)
def claim_session():
    """
    Exchange a wallet-completed challenge for a session in this browser.

    Expected JSON body:
        - k1: Challenge this browser created (its claim cookie must match)

    Returns:
        JSON with the user and the session token; the token is also set as a cookie
    """
    auth = get_auth()
    k1 = _json_body().get("k1")
    try:
        user = challenges.claim_session(k1, auth.challenge_cookie.read(request.cookies))
    except AppError as e:
        audit_logger.log_event("auth.claim_failed", reason=e.code, ip=request.remote_addr)
        raise

    audit_logger.log_event("auth.session_claimed", pubkey=user["pubkey"], ip=request.remote_addr)

    response = _login_response(user)
    auth.challenge_cookie.detach(response)
    return response


@auth_bp.route("/logout", methods=["POST"])
def logout():
    """Clear the session cookie. Tokens are stateless, so nothing else is revoked."""
    auth = get_auth()
    claims = auth.codec.validate(auth.session_cookie.read(request.cookies))
    audit_logger.log_event("auth.logout", pubkey=claims.pubkey if claims else None, ip=request.remote_addr)

    response = jsonify({"message": "Logged out successfully"})
    auth.session_cookie.detach(response)
    return response


@auth_bp.route("/dev-login", methods=["POST"])
@limiter.limit(SENSITIVE_RATE_LIMIT)
def dev_login():
    """
    Log in as an existing user without a wallet. Development only.

    Expected JSON body:
        - pubkey: Hex-encoded compressed public key of a seeded user
    """
    cfg = current_app.config["APP_CONFIG"]
    if cfg.get("FLASK_ENV") != "development":
        audit_logger.log_security_event(
            "dev_login_blocked", "medium", {"ip": request.remote_addr, "env": cfg.get("FLASK_ENV")}
        )
        raise ForbiddenError("Dev login only available in development mode")

    pubkey = _json_body().get("pubkey")
    if not is_valid_pubkey(pubkey):
        raise ValidationError("Invalid public key format")

    user = db_storage.record_login(normalize_pubkey(pubkey), create=False)
    if user is None:
        raise NotFoundError("User not found. Seed the user before using dev login.")

    logger.warning(f"Dev login used for {user['pubkey'][:16]}...")
    audit_logger.log_event("auth.dev_login", pubkey=user["pubkey"], ip=request.remote_addr)

    return _login_response(user)


@auth_bp.route("/verify-gate", methods=["POST"])
@limiter.limit(SENSITIVE_RATE_LIMIT)
def verify_gate():
    """
    Exchange the site-wide password for the gate marker cookie.

    Expected JSON body:
        - password: The configured GATE_PASSWORD
    """
    password = _json_body().get("password")
    if not isinstance(password, str) or not password:
        raise ValidationError("Password is required")

    expected = current_app.config["APP_CONFIG"].get("GATE_PASSWORD") or ""
    if not expected or not hmac.compare_digest(password.encode("utf-8"), expected.encode("utf-8")):
        audit_logger.log_security_event("gate_password_rejected", "low", {"ip": request.remote_addr})
        raise UnauthorizedError("Invalid password")

    audit_logger.log_event("gate.access_granted", ip=request.remote_addr)

    response = jsonify({"success": True})
    get_auth().gate_cookie.attach(response, "true")
    return response
