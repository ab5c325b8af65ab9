"""Print users known to the comment service."""
from __future__ import annotations

import argparse
import sys

from guru_comments.db.session import SessionLocal
from guru_comments.repositories import user_repo


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="List Guru users")
    parser.add_argument("--limit", type=int, default=50)
    parser.add_argument("--offset", type=int, default=0)
    args = parser.parse_args(argv)

    db = SessionLocal()
    try:
        page = user_repo.list_users(db, limit=args.limit, offset=args.offset)
    finally:
        db.close()

    print(f"{'ID':<40} {'USERNAME':<24} {'KIND':<10} ADMIN")
    for user in page.items:
        print(f"{user.id:<40} {user.username:<24} {user.kind:<10} {'yes' if user.is_admin else 'no'}")
    print(f"\n{len(page.items)} of {page.total} user(s)")
    if page.has_more:
        print(f"More available: --offset {page.offset + page.limit}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
