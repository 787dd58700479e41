"""
Database-backed storage for the authentication core.

Challenges, users and workspace roles. Every function opens its own
transactional scope; SQLAlchemy failures surface as ``InternalError``.
"""

import logging
from datetime import datetime, timezone
from functools import wraps
from typing import Any, Dict, Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from sphinx_bounties.database import session_scope
from sphinx_bounties.errors import InternalError
from sphinx_bounties.models import AuthChallenge, User, Workspace, WorkspaceMember, as_utc

logger = logging.getLogger(__name__)


def _storage_call(fn):
    """Convert driver/ORM failures into InternalError, logging the operation name."""

    @wraps(fn)
    def wrapper(*args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except SQLAlchemyError as e:
            logger.error(f"Storage operation {fn.__name__} failed: {e.__class__.__name__}")
            raise InternalError("Storage unavailable") from e

    return wrapper


def _challenge_to_dict(challenge: AuthChallenge) -> Dict[str, Any]:
    return {
        "k1": challenge.k1,
        "used": bool(challenge.used),
        "pubkey": challenge.pubkey,
        "claimed": bool(challenge.claimed),
        "claim_token_hash": challenge.claim_token_hash,
        "created_at": as_utc(challenge.created_at),
        "expires_at": as_utc(challenge.expires_at),
    }


def _user_to_dict(user: User) -> Dict[str, Any]:
    return {
        "id": user.id,
        "pubkey": user.pubkey,
        "username": user.username,
        "alias": user.alias,
        "avatar_url": user.avatar_url,
        "created_at": as_utc(user.created_at).isoformat() if user.created_at else None,
        "last_login": as_utc(user.last_login).isoformat() if user.last_login else None,
    }


# ============================================================================
# LNURL-auth Challenges
# ============================================================================


@_storage_call
def store_auth_challenge(k1: str, expires_at: datetime, claim_token_hash: Optional[str] = None) -> None:
    """
    Persist a fresh, unused challenge.

    Args:
        k1: Challenge hex (unique)
        expires_at: Absolute expiry (timezone-aware UTC)
        claim_token_hash: sha256 hex of the issuing browser's claim token
    """
    with session_scope() as session:
        session.add(AuthChallenge(k1=k1, expires_at=expires_at, used=False, claim_token_hash=claim_token_hash))


@_storage_call
def get_auth_challenge(k1: str) -> Optional[Dict[str, Any]]:
    """
    Retrieve a challenge by k1.

    Returns:
        Challenge data dictionary or None
    """
    with session_scope() as session:
        challenge = session.query(AuthChallenge).filter_by(k1=k1).first()
        if not challenge:
            return None
        return _challenge_to_dict(challenge)


@_storage_call
def complete_auth_challenge(k1: str, pubkey: str, now: Optional[datetime] = None) -> bool:
    """
    Flip a challenge from unused to used and bind the pubkey.

    A single conditional UPDATE; only one concurrent caller can match the
    ``used = false`` predicate, so at most one completion succeeds.

    Returns:
        True if this call completed the challenge, False otherwise
    """
    now = now or datetime.now(timezone.utc)
    with session_scope() as session:
        result = session.execute(
            update(AuthChallenge)
            .where(
                AuthChallenge.k1 == k1,
                AuthChallenge.used.is_(False),
                AuthChallenge.expires_at > now,
            )
            .values(used=True, pubkey=pubkey)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1


@_storage_call
def claim_auth_challenge(k1: str, now: Optional[datetime] = None) -> bool:
    """
    Flip a completed challenge from unclaimed to claimed.

    Same conditional UPDATE pattern as ``complete_auth_challenge``: only a
    used, unexpired, unclaimed row matches, so one session is handed out per
    completion.

    Returns:
        True if this call claimed the challenge, False otherwise
    """
    now = now or datetime.now(timezone.utc)
    with session_scope() as session:
        result = session.execute(
            update(AuthChallenge)
            .where(
                AuthChallenge.k1 == k1,
                AuthChallenge.used.is_(True),
                AuthChallenge.claimed.is_(False),
                AuthChallenge.expires_at > now,
            )
            .values(claimed=True)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1


@_storage_call
def purge_expired_challenges(before: Optional[datetime] = None) -> int:
    """Delete challenges that expired before ``before``. Returns the number removed."""
    before = before or datetime.now(timezone.utc)
    with session_scope() as session:
        removed = session.query(AuthChallenge).filter(AuthChallenge.expires_at < before).delete(
            synchronize_session=False
        )
    logger.info(f"Purged {removed} expired auth challenges")
    return removed


# ============================================================================
# User Management
# ============================================================================


@_storage_call
def get_user_by_pubkey(pubkey: str) -> Optional[Dict[str, Any]]:
    """
    Get user by Lightning pubkey.

    Returns:
        User data dictionary or None
    """
    with session_scope() as session:
        user = session.query(User).filter_by(pubkey=pubkey).first()
        if not user:
            return None
        return _user_to_dict(user)


@_storage_call
def record_login(pubkey: str, create: bool = True) -> Optional[Dict[str, Any]]:
    """
    Update ``last_login`` for a pubkey, creating the user on first login.

    Args:
        pubkey: Lowercase hex pubkey
        create: When False, unknown pubkeys return None instead of a new user

    Returns:
        User data dictionary, or None when the user is unknown and create is False
    """
    try:
        with session_scope() as session:
            user = session.query(User).filter_by(pubkey=pubkey).first()
            if user:
                user.last_login = datetime.now(timezone.utc)
                session.flush()
                return _user_to_dict(user)

            if not create:
                return None

            username = f"user_{pubkey[:8]}"
            if session.query(User.id).filter_by(username=username).first():
                username = f"user_{pubkey[:16]}"

            user = User(pubkey=pubkey, username=username, last_login=datetime.now(timezone.utc))
            session.add(user)
            session.flush()
            logger.info(f"Created user {username}")
            return _user_to_dict(user)
    except IntegrityError:
        # A concurrent first login for the same pubkey inserted the row.
        with session_scope() as session:
            user = session.query(User).filter_by(pubkey=pubkey).first()
            return _user_to_dict(user) if user else None


# ============================================================================
# Workspace Roles
# ============================================================================


@_storage_call
def get_workspace_role(pubkey: str, workspace_id: str) -> Optional[str]:
    """
    Look up a member's role in a workspace.

    Deleted or unknown workspaces and non-members all yield None.
    """
    with session_scope() as session:
        row = (
            session.query(WorkspaceMember.role)
            .join(Workspace, Workspace.id == WorkspaceMember.workspace_id)
            .filter(
                WorkspaceMember.workspace_id == workspace_id,
                WorkspaceMember.user_pubkey == pubkey,
                Workspace.deleted_at.is_(None),
            )
            .first()
        )
        if not row:
            return None
        role = row[0]
        return getattr(role, "value", role)
