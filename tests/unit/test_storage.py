"""
Unit tests for the SQLAlchemy storage layer.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError

from sphinx_bounties import db_storage
from sphinx_bounties.errors import InternalError

K1 = "c3" * 32
PUBKEY = "02" + "44" * 32
OTHER = "03" + "55" * 32


def _in(seconds: int) -> datetime:
    return datetime.now(timezone.utc) + timedelta(seconds=seconds)


@pytest.mark.usefixtures("db")
class TestChallengeStorage:
    """Test challenge persistence and the completion compare-and-set."""

    def test_store_and_retrieve(self):
        expires = _in(300)
        db_storage.store_auth_challenge(K1, expires)

        challenge = db_storage.get_auth_challenge(K1)
        assert challenge["k1"] == K1
        assert challenge["used"] is False
        assert challenge["pubkey"] is None
        assert challenge["expires_at"].tzinfo is not None
        assert abs((challenge["expires_at"] - expires).total_seconds()) < 1

    def test_unknown_challenge(self):
        assert db_storage.get_auth_challenge("00" * 32) is None

    def test_complete_exactly_once(self):
        db_storage.store_auth_challenge(K1, _in(300))

        assert db_storage.complete_auth_challenge(K1, PUBKEY) is True
        assert db_storage.complete_auth_challenge(K1, OTHER) is False

        challenge = db_storage.get_auth_challenge(K1)
        assert challenge["used"] is True
        assert challenge["pubkey"] == PUBKEY

    def test_complete_rejects_expired(self):
        db_storage.store_auth_challenge(K1, _in(-1))

        assert db_storage.complete_auth_challenge(K1, PUBKEY) is False
        assert db_storage.get_auth_challenge(K1)["used"] is False

    def test_complete_unknown(self):
        assert db_storage.complete_auth_challenge("00" * 32, PUBKEY) is False

    def test_claim_requires_completion(self):
        db_storage.store_auth_challenge(K1, _in(300), claim_token_hash="ee" * 32)

        assert db_storage.claim_auth_challenge(K1) is False
        assert db_storage.get_auth_challenge(K1)["claim_token_hash"] == "ee" * 32

    def test_claim_exactly_once(self):
        db_storage.store_auth_challenge(K1, _in(300))
        db_storage.complete_auth_challenge(K1, PUBKEY)

        assert db_storage.claim_auth_challenge(K1) is True
        assert db_storage.claim_auth_challenge(K1) is False
        assert db_storage.get_auth_challenge(K1)["claimed"] is True

    def test_claim_rejects_expired(self):
        db_storage.store_auth_challenge(K1, _in(300))
        db_storage.complete_auth_challenge(K1, PUBKEY)

        assert db_storage.claim_auth_challenge(K1, now=_in(600)) is False

    def test_purge_expired(self):
        db_storage.store_auth_challenge(K1, _in(-60))
        db_storage.store_auth_challenge("d4" * 32, _in(300))

        assert db_storage.purge_expired_challenges() == 1
        assert db_storage.get_auth_challenge(K1) is None
        assert db_storage.get_auth_challenge("d4" * 32) is not None

    def test_storage_errors_become_internal_errors(self):
        with patch.object(db_storage, "session_scope", side_effect=OperationalError("SELECT", {}, Exception("gone"))):
            with pytest.raises(InternalError):
                db_storage.get_auth_challenge(K1)


@pytest.mark.usefixtures("db")
class TestUserStorage:
    """Test user creation on login."""

    def test_first_login_creates_user(self):
        user = db_storage.record_login(PUBKEY)

        assert user["pubkey"] == PUBKEY
        assert user["username"] == f"user_{PUBKEY[:8]}"
        assert user["last_login"] is not None
        assert db_storage.get_user_by_pubkey(PUBKEY)["id"] == user["id"]

    def test_repeat_login_keeps_user(self):
        first = db_storage.record_login(PUBKEY)
        second = db_storage.record_login(PUBKEY)

        assert second["id"] == first["id"]
        assert second["last_login"] >= first["last_login"]

    def test_username_collision_uses_longer_prefix(self):
        clash = PUBKEY[:8] + "66" * 29
        db_storage.record_login(PUBKEY)

        user = db_storage.record_login(clash)
        assert user["username"] == f"user_{clash[:16]}"

    def test_no_create_for_unknown(self):
        assert db_storage.record_login(OTHER, create=False) is None
        assert db_storage.get_user_by_pubkey(OTHER) is None


@pytest.mark.usefixtures("db")
class TestWorkspaceRoles:
    """Test the role lookup behind workspace management routes."""

    def test_member_role(self, make_workspace, make_member):
        db_storage.record_login(PUBKEY)
        workspace_id = make_workspace(PUBKEY)
        make_member(workspace_id, PUBKEY, "OWNER")

        assert db_storage.get_workspace_role(PUBKEY, workspace_id) == "OWNER"

    def test_non_member(self, make_workspace):
        workspace_id = make_workspace(PUBKEY)
        assert db_storage.get_workspace_role(OTHER, workspace_id) is None

    def test_deleted_workspace(self, make_workspace, make_member):
        db_storage.record_login(PUBKEY)
        workspace_id = make_workspace(PUBKEY, deleted=True)
        make_member(workspace_id, PUBKEY, "ADMIN")

        assert db_storage.get_workspace_role(PUBKEY, workspace_id) is None

    def test_unknown_workspace(self):
        assert db_storage.get_workspace_role(PUBKEY, "no-such-workspace") is None
