"""Delete one user account and its trend history.

This is the only supported way to remove an account; the API has no delete
endpoint.
"""

import argparse
import sys

from sqlalchemy import create_engine, delete, func, select
from sqlalchemy.engine.url import make_url

from trendbits.config import effective_database_uri, normalize_database_uri
from trendbits.models import TrendHistoryItem, User


def _parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="python -m trendbits.purge_user",
        description=(
            "Delete a user (and, by cascade, their trend history). "
            "Uses DATABASE_URL unless --uri is provided."
        ),
    )
    parser.add_argument("email", help="Email address of the account to delete.")
    parser.add_argument("--uri", help="Database connection URI (overrides env vars).")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Print what would be deleted, without executing.",
    )
    parser.add_argument(
        "--yes",
        action="store_true",
        help="Skip the safety check prompt.",
    )
    return parser.parse_args(argv)


def main(argv: list[str]) -> int:
    args = _parse_args(argv)
    uri = normalize_database_uri(args.uri) if args.uri else effective_database_uri()
    safe_url = make_url(uri).render_as_string(hide_password=True)
    email = args.email.strip().lower()
    users = User.__table__
    history = TrendHistoryItem.__table__

    engine = create_engine(uri)
    with engine.connect() as conn:
        user_id = conn.execute(select(users.c.id).where(users.c.email == email)).scalar_one_or_none()
        if user_id is None:
            print(f"No user with email {email!r} ({safe_url}).")
            return 1
        history_count = conn.execute(
            select(func.count()).select_from(history).where(history.c.user_id == user_id)
        ).scalar_one()

    if args.dry_run:
        print(f"Dry run: would delete user {email} (id={user_id}) and {history_count} history rows.")
        print(f"Target database: {safe_url}")
        return 0

    if not args.yes:
        print(f"About to DELETE user {email} (id={user_id}) and {history_count} history rows.")
        print(f"Target database: {safe_url}")
        print("Re-run with --yes to confirm.")
        return 2

    with engine.begin() as conn:
        # SQLite only cascades with the foreign_keys pragma on, so delete children explicitly.
        conn.execute(delete(history).where(history.c.user_id == user_id))
        conn.execute(delete(users).where(users.c.id == user_id))

    print(f"Deleted user {email} and {history_count} history rows ({safe_url}).")
    return 0


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
