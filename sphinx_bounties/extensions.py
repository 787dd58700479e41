"""
Per-app authentication components.

Built once by the app factory from configuration and stored on
``app.extensions``; request handlers fetch them with ``get_auth()``.
"""

from dataclasses import dataclass
from typing import Any, Mapping

from flask import current_app

from sphinx_bounties.auth.classifier import RouteClassifier, RouteTables
from sphinx_bounties.auth.cookies import CookieBinding
from sphinx_bounties.auth.gate import AccessGate, RoleLookup
from sphinx_bounties.auth.tokens import SessionCodec
from sphinx_bounties.config import session_max_age

EXTENSION_KEY = "sphinx_auth"


@dataclass(frozen=True)
class AuthComponents:
    codec: SessionCodec
    session_cookie: CookieBinding
    gate_cookie: CookieBinding
    challenge_cookie: CookieBinding
    gate: AccessGate
    config: Mapping[str, Any]


def build_components(cfg: Mapping[str, Any], role_lookup: RoleLookup, tables: RouteTables = None) -> AuthComponents:
    validity = session_max_age(cfg)
    secure = bool(cfg.get("SECURE_COOKIES"))

    codec = SessionCodec(
        secret=cfg["JWT_SECRET"],
        validity_seconds=validity,
        algorithm=cfg.get("JWT_ALGORITHM", "HS256"),
    )
    session_cookie = CookieBinding(cfg.get("SESSION_COOKIE_NAME", "sphinx_session"), max_age=validity, secure=secure)
    gate_cookie = CookieBinding(
        cfg.get("GATE_COOKIE_NAME", "gate-access"),
        max_age=int(cfg.get("GATE_COOKIE_MAX_AGE", 7 * 24 * 60 * 60)),
        secure=secure,
    )
    # Ties a challenge to the browser that asked for it; lives as long as the challenge.
    challenge_cookie = CookieBinding(
        cfg.get("CHALLENGE_COOKIE_NAME", "sphinx_challenge"),
        max_age=int(cfg.get("CHALLENGE_TTL_SECONDS", 300)),
        secure=secure,
    )
    gate = AccessGate(
        classifier=RouteClassifier(tables),
        codec=codec,
        cookie=session_cookie,
        super_admins=cfg.get("SUPER_ADMINS") or (),
        role_lookup=role_lookup,
        gate_enabled=bool(cfg.get("GATE_ENABLED")),
        gate_cookie_name=gate_cookie.name,
    )
    return AuthComponents(
        codec=codec,
        session_cookie=session_cookie,
        gate_cookie=gate_cookie,
        challenge_cookie=challenge_cookie,
        gate=gate,
        config=cfg,
    )


def get_auth() -> AuthComponents:
    return current_app.extensions[EXTENSION_KEY]
