"""
Pages Blueprint - Entry points the access gate redirects to.

The bounty UI itself is served elsewhere; these endpoints report what the
gate decided so a front end (or a curl user) can render the right screen.
"""

from flask import Blueprint, g, jsonify, request

from sphinx_bounties.auth.gate import Outcome

pages_bp = Blueprint("pages", __name__)


@pages_bp.route("/")
def index():
    decision = g.get("decision")
    gate_required = decision is not None and decision.outcome is Outcome.GATE_PROMPT
    return jsonify({"gateRequired": gate_required, "pubkey": g.get("auth_pubkey")})


@pages_bp.route("/login")
def login():
    return jsonify({"redirect": request.args.get("redirect", "/"), "pubkey": g.get("auth_pubkey")})


@pages_bp.route("/unauthorized")
def unauthorized():
    return jsonify({"error": "unauthorized", "message": "You do not have access to this page"}), 403
