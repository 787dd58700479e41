"""
Pytest configuration and shared fixtures for Sphinx Bounties tests.
"""

import os
import uuid
from datetime import datetime, timedelta, timezone

import pytest
from coincurve import PrivateKey

# Set test environment before importing the app
os.environ["FLASK_ENV"] = "testing"
os.environ["FLASK_SECRET_KEY"] = "test-secret-key-for-testing-only"
os.environ["JWT_SECRET"] = "test-jwt-secret-with-at-least-32-characters"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["SECURE_COOKIES"] = "false"
os.environ["GATE_ENABLED"] = "false"
os.environ.pop("REDIS_URL", None)
os.environ.pop("SUPER_ADMINS", None)
os.environ.pop("APP_URL", None)

from sphinx_bounties.auth.classifier import RouteClassifier  # noqa: E402
from sphinx_bounties.auth.cookies import CookieBinding  # noqa: E402
from sphinx_bounties.auth.tokens import SessionCodec  # noqa: E402
from sphinx_bounties.database import close_all, init_all, session_scope  # noqa: E402
from sphinx_bounties.models import Workspace, WorkspaceMember  # noqa: E402

TEST_SECRET = "unit-test-session-secret-0123456789abcdef"


class FakeClock:
    """Settable stand-in for ``time.time``."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def sign_k1(priv: PrivateKey, k1: str) -> str:
    """DER signature of ``k1`` used directly as the digest, hex."""
    return priv.sign(bytes.fromhex(k1), hasher=None).hex()


def sign_k1_compact(priv: PrivateKey, k1: str) -> str:
    """64-byte compact ``r||s`` signature of ``k1``, hex."""
    return priv.sign_recoverable(bytes.fromhex(k1), hasher=None)[:64].hex()


def pubkey_hex(priv: PrivateKey) -> str:
    return priv.public_key.format(compressed=True).hex()


def add_workspace(owner_pubkey: str, name: str = None, deleted: bool = False) -> str:
    """Create a workspace row and return its id."""
    with session_scope() as session:
        workspace = Workspace(
            name=name or f"Workspace {uuid.uuid4().hex[:8]}",
            owner_pubkey=owner_pubkey,
            deleted_at=datetime.now(timezone.utc) if deleted else None,
        )
        session.add(workspace)
        session.flush()
        return workspace.id


def add_member(workspace_id: str, pubkey: str, role: str) -> None:
    with session_scope() as session:
        session.add(WorkspaceMember(workspace_id=workspace_id, user_pubkey=pubkey, role=role))


@pytest.fixture
def db(tmp_path):
    """File-backed SQLite database with all tables, torn down after the test."""
    init_all(f"sqlite:///{tmp_path / 'test.db'}")
    yield
    close_all()


@pytest.fixture
def app_config(tmp_path):
    """Overrides layered over the environment for each test app."""
    return {
        "DATABASE_URL": f"sqlite:///{tmp_path / 'app.db'}",
        "SUPER_ADMINS": [],
    }


@pytest.fixture
def app(app_config):
    """Create and configure a test Flask application instance."""
    from sphinx_bounties.factory import create_app

    flask_app = create_app(app_config)
    flask_app.config.update({"TESTING": True})

    yield flask_app

    close_all()


@pytest.fixture
def client(app):
    """Create a test client for the Flask application."""
    return app.test_client()


@pytest.fixture
def runner(app):
    """Create a test CLI runner for the Flask application."""
    return app.test_cli_runner()


@pytest.fixture
def wallet():
    """A fresh secp256k1 linking key."""
    return PrivateKey()


@pytest.fixture
def other_wallet():
    return PrivateKey()


@pytest.fixture
def sign():
    """``sign(priv, k1) -> DER hex``."""
    return sign_k1


@pytest.fixture
def sign_compact():
    """``sign_compact(priv, k1) -> compact hex``."""
    return sign_k1_compact


@pytest.fixture
def pubkey_of():
    return pubkey_hex


@pytest.fixture
def make_workspace():
    """``make_workspace(owner_pubkey, name=..., deleted=False) -> workspace id``."""
    return add_workspace


@pytest.fixture
def make_member():
    """``make_member(workspace_id, pubkey, role)``."""
    return add_member


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def codec(clock):
    return SessionCodec(TEST_SECRET, validity_seconds=3600, clock=clock)


@pytest.fixture
def session_cookie():
    return CookieBinding("sphinx_session", max_age=3600, secure=False)


@pytest.fixture
def classifier():
    return RouteClassifier()


@pytest.fixture
def expired_at():
    return datetime.now(timezone.utc) - timedelta(seconds=1)


# Pytest configuration hooks
def pytest_configure(config):
    """Configure pytest with custom settings."""
    config.addinivalue_line("markers", "unit: fast tests with no app instance")
    config.addinivalue_line("markers", "integration: tests that drive the Flask app")


def pytest_collection_modifyitems(config, items):
    """Modify test collection to add markers automatically."""
    for item in items:
        if "unit" in str(item.path):
            item.add_marker(pytest.mark.unit)

        if "integration" in str(item.path):
            item.add_marker(pytest.mark.integration)
