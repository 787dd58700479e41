"""
Per-request access gate.

``AccessGate.decide`` runs once per inbound request before any handler. It is
a pure function of the request view plus two read-only collaborators (the
session codec and the workspace role lookup), and it never raises: every
branch ends in a pass-through, an annotated pass-through or a redirect.
"""

from __future__ import annotations

import enum
import logging
import uuid
from dataclasses import dataclass, field
from typing import Callable, Dict, FrozenSet, Iterable, Mapping, Optional
from urllib.parse import urlencode

from sphinx_bounties.auth.classifier import RouteClassifier, RouteKind
from sphinx_bounties.auth.cookies import CookieBinding
from sphinx_bounties.auth.tokens import SessionClaims, SessionCodec
from sphinx_bounties.models import MANAGER_ROLES
from sphinx_bounties.utils import normalize_pubkey, short_pubkey

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "x-request-id"
AUTH_PUBKEY_HEADER = "x-auth-pubkey"
WORKSPACE_HEADER = "x-workspace-id"
GATE_REQUIRED_HEADER = "x-gate-required"

RoleLookup = Callable[[str, str], Optional[str]]


class Outcome(str, enum.Enum):
    STATIC = "static"
    AUTH = "auth"
    GATE_PROMPT = "gate_prompt"
    GATE_REDIRECT = "gate_redirect"
    PUBLIC = "public"
    PROTECTED_REDIRECT = "protected_redirect"
    PROTECTED_PASS = "protected_pass"
    ADMIN_ALLOWED = "admin_allowed"
    ADMIN_DENIED = "admin_denied"
    WORKSPACE_ALLOWED = "workspace_allowed"
    WORKSPACE_DENIED = "workspace_denied"
    PASS = "pass"
    ERROR = "error"


@dataclass(frozen=True)
class RequestView:
    """The parts of an inbound request the gate is allowed to see."""

    path: str
    cookies: Mapping[str, str] = field(default_factory=dict)
    headers: Mapping[str, str] = field(default_factory=dict)
    method: str = "GET"


@dataclass(frozen=True)
class Decision:
    proceed: bool
    outcome: Outcome
    headers: Dict[str, str]
    redirect_target: Optional[str] = None
    session: Optional[SessionClaims] = None

    @property
    def request_id(self) -> str:
        return self.headers[REQUEST_ID_HEADER]


class AccessGate:
    """
    Combine route classification, session state and authorization rules.

    Args:
        classifier: Route classifier with the site's tables
        codec: Session token codec
        cookie: Session cookie binding (only ``read`` is used here)
        super_admins: Pubkeys allowed on admin routes
        role_lookup: ``(pubkey, workspace_id) -> role | None``; read-only
        gate_enabled: Require the site-wide access marker cookie
    """

    def __init__(
        self,
        classifier: RouteClassifier,
        codec: SessionCodec,
        cookie: CookieBinding,
        super_admins: Iterable[str] = (),
        role_lookup: Optional[RoleLookup] = None,
        gate_enabled: bool = False,
        gate_cookie_name: str = "gate-access",
        login_path: str = "/login",
        unauthorized_path: str = "/unauthorized",
    ):
        self.classifier = classifier
        self.codec = codec
        self.cookie = cookie
        self.super_admins: FrozenSet[str] = frozenset(normalize_pubkey(p) for p in super_admins if p.strip())
        self.role_lookup = role_lookup
        self.gate_enabled = gate_enabled
        self.gate_cookie_name = gate_cookie_name
        self.login_path = login_path
        self.unauthorized_path = unauthorized_path

    def is_super_admin(self, pubkey: Optional[str]) -> bool:
        return bool(pubkey) and normalize_pubkey(pubkey) in self.super_admins

    def login_redirect(self, path: str) -> str:
        return f"{self.login_path}?{urlencode({'redirect': path})}"

    def decide(self, request: RequestView) -> Decision:
        headers = {REQUEST_ID_HEADER: str(uuid.uuid4())}
        try:
            return self._decide(request, headers)
        except Exception:
            logger.exception(
                f"Access gate failed closed: method={request.method} path={request.path} "
                f"request_id={headers[REQUEST_ID_HEADER]}"
            )
            return Decision(
                proceed=False,
                outcome=Outcome.ERROR,
                headers={REQUEST_ID_HEADER: headers[REQUEST_ID_HEADER]},
                redirect_target=self.unauthorized_path,
            )

    def _deny(self, outcome: Outcome, headers: Dict[str, str], target: str, session=None) -> Decision:
        return Decision(proceed=False, outcome=outcome, headers=headers, redirect_target=target, session=session)

    def _decide(self, request: RequestView, headers: Dict[str, str]) -> Decision:
        path = request.path or "/"
        match = self.classifier.classify(path)

        if match.kind is RouteKind.STATIC:
            return Decision(proceed=True, outcome=Outcome.STATIC, headers=headers)
        if match.kind is RouteKind.AUTH:
            return Decision(proceed=True, outcome=Outcome.AUTH, headers=headers)

        if self.gate_enabled and request.cookies.get(self.gate_cookie_name) != "true":
            if path == "/":
                headers[GATE_REQUIRED_HEADER] = "true"
                return Decision(proceed=True, outcome=Outcome.GATE_PROMPT, headers=headers)
            return self._deny(Outcome.GATE_REDIRECT, headers, "/")

        session = self.codec.validate(self.cookie.read(request.cookies))

        if match.kind is RouteKind.PUBLIC:
            if session:
                headers[AUTH_PUBKEY_HEADER] = session.pubkey
            return Decision(proceed=True, outcome=Outcome.PUBLIC, headers=headers, session=session)

        if match.requires_auth and session is None:
            return self._deny(Outcome.PROTECTED_REDIRECT, headers, self.login_redirect(path))

        if session:
            headers[AUTH_PUBKEY_HEADER] = session.pubkey

        if match.requires_super_admin:
            if session is None or not self.is_super_admin(session.pubkey):
                logger.info(f"Admin route denied: path={path} pubkey={short_pubkey(session.pubkey if session else None)}")
                return self._deny(Outcome.ADMIN_DENIED, headers, self.unauthorized_path, session)
            return Decision(proceed=True, outcome=Outcome.ADMIN_ALLOWED, headers=headers, session=session)

        if match.workspace_management:
            role = None
            if session is not None and self.role_lookup is not None:
                role = self.role_lookup(session.pubkey, match.workspace_id)
            if role not in MANAGER_ROLES:
                logger.info(
                    f"Workspace management denied: workspace={match.workspace_id} "
                    f"pubkey={short_pubkey(session.pubkey if session else None)}"
                )
                return self._deny(Outcome.WORKSPACE_DENIED, headers, self.unauthorized_path, session)
            headers[WORKSPACE_HEADER] = match.workspace_id
            return Decision(proceed=True, outcome=Outcome.WORKSPACE_ALLOWED, headers=headers, session=session)

        if match.workspace_id:
            headers[WORKSPACE_HEADER] = match.workspace_id
        outcome = Outcome.PROTECTED_PASS if match.kind is RouteKind.PROTECTED else Outcome.PASS
        return Decision(proceed=True, outcome=outcome, headers=headers, session=session)


__all__ = [
    "AUTH_PUBKEY_HEADER",
    "AccessGate",
    "Decision",
    "GATE_REQUIRED_HEADER",
    "Outcome",
    "REQUEST_ID_HEADER",
    "RequestView",
    "WORKSPACE_HEADER",
]
