"""Grant or revoke admin rights from the command line.

Usage:
    python -m guru_comments.scripts.toggle_admin --user-id mahesh-local-id --admin true
"""
from __future__ import annotations

import argparse
import sys

from guru_comments.core.errors import NotFound
from guru_comments.db.session import SessionLocal
from guru_comments.repositories import user_repo

_TRUTHY = {"true", "1", "yes"}
_FALSY = {"false", "0", "no"}


def parse_flag(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUTHY:
        return True
    if lowered in _FALSY:
        return False
    raise argparse.ArgumentTypeError(f"expected true/false, got {value!r}")


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Toggle a user's admin status")
    parser.add_argument("--user-id", required=True)
    parser.add_argument("--admin", required=True, type=parse_flag, help="true or false")
    args = parser.parse_args(argv)

    db = SessionLocal()
    try:
        user = user_repo.set_admin(db, args.user_id, args.admin)
    except NotFound as exc:
        print(f"Error: {exc.message}", file=sys.stderr)
        return 1
    finally:
        db.close()

    print(f"User admin status updated: {user.username} ({user.id}) -> {str(user.is_admin).lower()}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
