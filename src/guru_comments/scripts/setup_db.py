"""Create the schema and seed the development user."""
from __future__ import annotations

import argparse
import sys

from guru_comments.core.settings import settings
from guru_comments.db.session import SessionLocal, create_tables, drop_tables
from guru_comments.services.identity import FixedIdentity, FixedIdentityResolver


def seed_dev_user() -> str:
    """Ensure the configured development user exists and return its id."""
    resolver = FixedIdentityResolver(
        FixedIdentity(
            user_id=settings.dev_user_id,
            username=settings.dev_username,
            email=settings.dev_user_email,
            is_admin=settings.dev_user_is_admin,
        )
    )
    db = SessionLocal()
    try:
        return resolver.ensure_user(db).id
    finally:
        db.close()


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Set up the Guru database")
    parser.add_argument("--reset", action="store_true", help="Drop all tables first")
    parser.add_argument("--no-seed", action="store_true", help="Skip creating the dev user")
    args = parser.parse_args(argv)

    if args.reset:
        drop_tables()
        print("Dropped all tables")
    create_tables()
    print(f"Schema ready at {settings.effective_database_url}")
    if not args.no_seed:
        print(f"Dev user ready: {seed_dev_user()}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
