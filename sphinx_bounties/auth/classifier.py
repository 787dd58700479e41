"""
Route classification for the request gate.

A pure function of the path against static tables. The tables are injected
so tests (and deployments) can swap them without touching module state.
"""

from __future__ import annotations

import enum
import re
from dataclasses import dataclass, field
from typing import Optional, Pattern, Tuple


class RouteKind(str, enum.Enum):
    STATIC = "static"
    AUTH = "auth"
    PUBLIC = "public"
    PROTECTED = "protected"
    ADMIN = "admin"
    WORKSPACE = "workspace"
    OTHER = "other"


def _compile(pattern: str) -> Pattern[str]:
    return re.compile(pattern)


def _matches_segment(path: str, route: str) -> bool:
    """Exact match, or ``route`` followed by a further path segment. ``/`` only matches itself."""
    if path == route:
        return True
    if route == "/":
        return False
    return path.startswith(route.rstrip("/") + "/")


@dataclass(frozen=True)
class RouteTables:
    """Declarative route tables. Defaults mirror the production site map."""

    auth_prefixes: Tuple[str, ...] = (
        "/api/auth/challenge",
        "/api/auth/verify",
        "/api/auth/session",
        "/api/auth/logout",
        "/api/auth/dev-login",
        "/api/auth/verify-gate",
    )
    public_routes: Tuple[str, ...] = (
        "/",
        "/login",
        "/unauthorized",
        "/bounties",
        "/workspaces",
        "/people",
        "/leaderboard",
    )
    protected_prefixes: Tuple[str, ...] = ("/bounties/new", "/settings", "/dashboard", "/admin")
    protected_patterns: Tuple[Pattern[str], ...] = (_compile(r"^/bounties/[^/]+/edit(?:/|$)"),)
    admin_pattern: Pattern[str] = field(default_factory=lambda: _compile(r"^/admin(?:/|$)"))
    workspace_pattern: Pattern[str] = field(default_factory=lambda: _compile(r"^/workspaces/([^/]+)"))
    workspace_management_pattern: Pattern[str] = field(
        default_factory=lambda: _compile(r"^/workspaces/[^/]+/(?:edit|settings|members|budget)(?:/|$)")
    )
    # Asset directories, matched on segment boundaries.
    static_prefixes: Tuple[str, ...] = ("/static", "/_next")
    static_files: Tuple[str, ...] = ("/favicon.ico", "/favicon.png", "/sphinx_icon.png")
    # Health checks and scrapers carry no cookies. Exact paths only.
    ops_routes: Tuple[str, ...] = ("/health", "/metrics")


@dataclass(frozen=True)
class RouteMatch:
    """
    Classification of one path.

    ``kind`` is the single bucket the path falls in; ``workspace_id`` is
    extracted independently, so a public or protected path can still carry one.
    """

    path: str
    kind: RouteKind
    workspace_id: Optional[str] = None
    workspace_management: bool = False

    @property
    def requires_auth(self) -> bool:
        # Workspace management denies anonymous callers outright instead of sending them to login.
        return self.kind in (RouteKind.PROTECTED, RouteKind.ADMIN)

    @property
    def requires_super_admin(self) -> bool:
        return self.kind is RouteKind.ADMIN


class RouteClassifier:
    """
    Classify paths in fixed precedence: auth, public, protected, admin, workspace.

    A public match yields to a stricter table that also matches the path
    (``/bounties/new`` is protected, ``/workspaces/<id>/settings`` is
    workspace management even though both sit under public prefixes).
    """

    def __init__(self, tables: Optional[RouteTables] = None):
        self.tables = tables or RouteTables()

    def is_static(self, path: str) -> bool:
        t = self.tables
        if path in t.static_files or path in t.ops_routes:
            return True
        return any(_matches_segment(path, prefix) for prefix in t.static_prefixes)

    def is_auth_route(self, path: str) -> bool:
        return any(_matches_segment(path, prefix) for prefix in self.tables.auth_prefixes)

    def is_public_route(self, path: str) -> bool:
        return any(_matches_segment(path, route) for route in self.tables.public_routes)

    def is_protected_route(self, path: str) -> bool:
        t = self.tables
        return any(path.startswith(prefix) for prefix in t.protected_prefixes) or any(
            pattern.search(path) for pattern in t.protected_patterns
        )

    def is_admin_route(self, path: str) -> bool:
        return bool(self.tables.admin_pattern.search(path))

    def extract_workspace_id(self, path: str) -> Optional[str]:
        match = self.tables.workspace_pattern.search(path)
        return match.group(1) if match else None

    def is_workspace_management_route(self, path: str) -> bool:
        return bool(self.tables.workspace_management_pattern.search(path))

    def classify(self, path: str) -> RouteMatch:
        path = path or "/"
        workspace_id = self.extract_workspace_id(path)
        management = workspace_id is not None and self.is_workspace_management_route(path)

        if self.is_static(path):
            return RouteMatch(path, RouteKind.STATIC)
        if self.is_auth_route(path):
            return RouteMatch(path, RouteKind.AUTH)

        admin = self.is_admin_route(path)
        protected = self.is_protected_route(path)

        if self.is_public_route(path) and not (admin or protected or management):
            return RouteMatch(path, RouteKind.PUBLIC, workspace_id=workspace_id)
        if admin:
            return RouteMatch(path, RouteKind.ADMIN, workspace_id=workspace_id)
        if protected:
            return RouteMatch(path, RouteKind.PROTECTED, workspace_id=workspace_id, workspace_management=management)
        if management:
            return RouteMatch(path, RouteKind.WORKSPACE, workspace_id=workspace_id, workspace_management=True)
        return RouteMatch(path, RouteKind.OTHER, workspace_id=workspace_id)


__all__ = ["RouteClassifier", "RouteKind", "RouteMatch", "RouteTables"]
