"""
Database connection and session management for Sphinx Bounties.

PostgreSQL (or SQLite for local work and tests) through SQLAlchemy with
pooling, plus an optional Redis client backing the rate limiter.
"""

import logging
from contextlib import contextmanager
from typing import Generator, Optional

import redis
from sqlalchemy import create_engine, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, scoped_session, sessionmaker

from sphinx_bounties.models import Base

logger = logging.getLogger(__name__)

# Global database engine and session factory
_engine = None
_SessionFactory = None
_redis_client: Optional[redis.Redis] = None


def _redact_url(db_url: str) -> str:
    return db_url.split("@")[1] if "@" in db_url else db_url


def init_database(db_url: str, echo: bool = False, create_tables: bool = False) -> None:
    """
    Initialize database engine and session factory.

    Args:
        db_url: SQLAlchemy database URL
        echo: If True, log all SQL statements
        create_tables: If True, create all tables (not recommended for production - use migrations)
    """
    global _engine, _SessionFactory

    if _engine is not None:
        logger.warning("Database already initialized")
        return

    engine_kwargs = {
        "echo": echo,
        "pool_pre_ping": True,
    }

    if db_url.startswith("sqlite"):
        # Threads share the file; writers wait on the busy timeout instead of failing.
        engine_kwargs["connect_args"] = {"check_same_thread": False, "timeout": 15}
    else:
        engine_kwargs.update(
            {
                "pool_size": 10,
                "max_overflow": 20,
                "pool_recycle": 3600,
                "connect_args": {"connect_timeout": 10, "options": "-c timezone=utc"},
            }
        )

    _engine = create_engine(db_url, **engine_kwargs)

    # Create session factory with scoped sessions (thread-safe)
    session_factory = sessionmaker(bind=_engine, expire_on_commit=False)
    _SessionFactory = scoped_session(session_factory)

    if create_tables:
        logger.warning("Creating database tables - use migrations in production!")
        Base.metadata.create_all(_engine)

    logger.info(f"Database initialized: {_redact_url(db_url)}")


def get_session() -> Session:
    """
    Get a database session.

    Returns:
        SQLAlchemy session instance

    Raises:
        RuntimeError: If database not initialized
    """
    if _SessionFactory is None:
        raise RuntimeError("Database not initialized. Call init_database() first.")

    return _SessionFactory()


def remove_session() -> None:
    """Discard the current thread's scoped session (end of request)."""
    if _SessionFactory is not None:
        _SessionFactory.remove()


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """
    Provide a transactional scope for database operations.

    Usage:
        with session_scope() as session:
            user = session.query(User).filter_by(pubkey=pubkey).first()
            session.add(new_object)
            # Automatically commits on success, rolls back on error

    Yields:
        Database session
    """
    session = get_session()
    try:
        yield session
        session.commit()
    except Exception as e:
        session.rollback()
        logger.error(f"Database transaction failed: {e}")
        raise
    finally:
        session.close()


def close_database() -> None:
    """
    Close database connections and clean up.
    """
    global _engine, _SessionFactory

    if _SessionFactory:
        _SessionFactory.remove()
        _SessionFactory = None

    if _engine:
        _engine.dispose()
        _engine = None

    logger.info("Database connections closed")


def check_database_health() -> dict:
    """
    Check database connection health.

    Returns:
        Dictionary with health status
    """
    if _engine is None:
        return {"status": "unavailable", "connected": False, "error": "Database not initialized"}

    try:
        with _engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return {"status": "healthy", "database": _engine.dialect.name, "connected": True}
    except SQLAlchemyError as e:
        logger.error(f"Database health check failed: {e}")
        return {"status": "unhealthy", "database": _engine.dialect.name, "connected": False}


# ============================================================================
# Redis Connection Management
# ============================================================================


def init_redis(redis_url: Optional[str]) -> None:
    """
    Initialize the Redis client used as rate-limit storage.

    A missing URL leaves Redis disabled; the limiter then keeps counters in memory.
    """
    global _redis_client

    if not redis_url:
        logger.debug("REDIS_URL not set; rate limiting uses in-memory storage")
        return

    if _redis_client is not None:
        logger.warning("Redis already initialized")
        return

    try:
        _redis_client = redis.Redis.from_url(
            redis_url,
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=5,
            health_check_interval=30,
        )
        _redis_client.ping()
        logger.info("Redis initialized")
    except redis.RedisError as e:
        logger.error(f"Failed to initialize Redis: {e}")
        _redis_client = None


def close_redis() -> None:
    global _redis_client

    if _redis_client:
        _redis_client.close()
        _redis_client = None
        logger.info("Redis connection closed")


def check_redis_health() -> dict:
    if _redis_client is None:
        return {"status": "unavailable", "connected": False}

    try:
        _redis_client.ping()
        return {"status": "healthy", "connected": True}
    except redis.RedisError as e:
        logger.error(f"Redis health check failed: {e}")
        return {"status": "unhealthy", "connected": False}


# ============================================================================
# Initialization Helper
# ============================================================================


def init_all(db_url: str, redis_url: Optional[str] = None, echo: bool = False, create_tables: bool = False) -> None:
    """
    Initialize database and (optionally) Redis.

    SQLite databases get their tables created on the spot.
    """
    if db_url.startswith("sqlite"):
        create_tables = True

    init_database(db_url, echo=echo, create_tables=create_tables)
    init_redis(redis_url)

    logger.info("All database connections initialized")


def close_all() -> None:
    close_database()
    close_redis()

    logger.info("All database connections closed")


def get_health_status() -> dict:
    return {"database": check_database_health(), "redis": check_redis_health()}
