"""
SQLAlchemy database models for Sphinx Bounties.

Only the tables the authentication flow touches are modelled here: users,
workspace membership (for role checks) and LNURL-auth challenges.
"""

import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


def generate_uuid():
    """Generate a UUID string for primary keys."""
    return str(uuid.uuid4())


def utc_now():
    """Generate timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def as_utc(value):
    """Attach UTC to naive datetimes read back from backends that drop the offset (SQLite)."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


class WorkspaceRole(str, enum.Enum):
    OWNER = "OWNER"
    ADMIN = "ADMIN"
    CONTRIBUTOR = "CONTRIBUTOR"
    VIEWER = "VIEWER"


# Roles allowed to manage a workspace (settings, members, budget).
MANAGER_ROLES = frozenset({WorkspaceRole.OWNER.value, WorkspaceRole.ADMIN.value})


class User(Base):
    """
    User model - Lightning pubkey-based identity.
    """

    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    pubkey = Column(String(66), unique=True, nullable=False)  # secp256k1 compressed key, lowercase hex
    username = Column(String(50), unique=True, nullable=False)
    alias = Column(String(50))
    avatar_url = Column(Text)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    last_login = Column(DateTime(timezone=True))

    memberships = relationship("WorkspaceMember", back_populates="user", cascade="all, delete-orphan")

    __table_args__ = (Index("idx_user_pubkey", "pubkey"),)

    def __repr__(self):
        return f"<User(id={self.id}, pubkey={self.pubkey[:16]}...)>"


class Workspace(Base):
    """
    Workspace - owns bounties and a member list.
    """

    __tablename__ = "workspaces"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    name = Column(String(255), unique=True, nullable=False)
    owner_pubkey = Column(String(66), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    deleted_at = Column(DateTime(timezone=True), index=True)

    members = relationship("WorkspaceMember", back_populates="workspace", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Workspace(id={self.id}, name={self.name})>"


class WorkspaceMember(Base):
    """
    Workspace membership with a role.
    """

    __tablename__ = "workspace_members"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    workspace_id = Column(String(36), ForeignKey("workspaces.id"), nullable=False)
    user_pubkey = Column(String(66), ForeignKey("users.pubkey"), nullable=False)
    role = Column(
        Enum(WorkspaceRole, name="workspace_role", native_enum=False),
        default=WorkspaceRole.CONTRIBUTOR,
        nullable=False,
    )
    joined_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)

    workspace = relationship("Workspace", back_populates="members")
    user = relationship("User", back_populates="memberships")

    __table_args__ = (
        UniqueConstraint("workspace_id", "user_pubkey", name="uq_workspace_member"),
        Index("idx_member_workspace", "workspace_id"),
        Index("idx_member_user", "user_pubkey"),
    )

    def __repr__(self):
        return f"<WorkspaceMember(workspace={self.workspace_id}, user={self.user_pubkey[:16]}..., role={self.role})>"


class AuthChallenge(Base):
    """
    LNURL-auth challenges (LUD-04). Single use, short lived.
    """

    __tablename__ = "auth_challenges"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    k1 = Column(String(64), unique=True, nullable=False)  # 32 random bytes, hex
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    used = Column(Boolean, default=False, nullable=False)
    pubkey = Column(String(66))  # Linking key, written once on completion
    claim_token_hash = Column(String(64))  # sha256 of the issuing browser's claim cookie
    claimed = Column(Boolean, default=False, nullable=False)  # Session handed to the browser

    __table_args__ = (
        Index("idx_challenge_k1", "k1"),
        Index("idx_challenge_expires", "expires_at"),
    )

    def __repr__(self):
        return f"<AuthChallenge(k1={self.k1[:16]}..., used={self.used})>"
