#!/usr/bin/env python3
"""
Database initialization script for Sphinx Bounties.

Creates all tables and optionally seeds users so dev login has someone to
log in as:

    python scripts/db_init.py [PUBKEY ...]

For production, use migrations instead.
"""
import sys

from dotenv import load_dotenv

load_dotenv()

from sphinx_bounties.config import get_config
from sphinx_bounties.database import close_all, get_health_status, init_all
from sphinx_bounties.db_storage import record_login
from sphinx_bounties.utils import is_valid_pubkey, normalize_pubkey


def main(argv=None):
    """Initialize database, create all tables, seed the given pubkeys."""
    pubkeys = list(sys.argv[1:] if argv is None else argv)
    cfg = get_config()
    db_url = cfg["DATABASE_URL"]

    print("=" * 60)
    print("Sphinx Bounties Database Initialization")
    print("=" * 60)
    print(f"\nDatabase: {db_url.split('@')[1] if '@' in db_url else db_url}")

    bad = [p for p in pubkeys if not is_valid_pubkey(p)]
    if bad:
        print(f"\nInvalid pubkey(s): {', '.join(bad)}")
        return 2

    try:
        init_all(db_url, redis_url=cfg.get("REDIS_URL"), create_tables=True)
        print("All tables created")

        for pubkey in pubkeys:
            user = record_login(normalize_pubkey(pubkey))
            print(f"  seeded {user['username']} ({user['pubkey'][:16]}...)")

        health = get_health_status()
        print(f"\nDatabase: {health['database']['status']}")
        print(f"Redis: {health['redis']['status']}")
        return 0 if health["database"]["status"] == "healthy" else 1
    finally:
        close_all()


if __name__ == "__main__":
    sys.exit(main())
