#!/usr/bin/env python3
"""
Satsang admin CLI -- operator tasks that must work before anyone can log in.

Usage:
  python main.py create-admin --email admin@example.com --password Secret123
  python main.py approve seeker@example.com
  python main.py list-pending
  python main.py --db-url sqlite:///other.db list-pending

Environment variables:
  DATABASE_URL  Database to operate on (default: auth/satsang_auth.db).
  DEBUG=true    Lets the CLI run without JWT secrets configured.
"""

import argparse
import logging
from typing import Optional

from api.main import build_auth_service
from auth.errors import AuthError
from auth.store import UserStore
from core.config import get_settings

logger = logging.getLogger("satsang.cli")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="satsang-admin",
        description="Administer Gita Satsang identities.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py create-admin --email admin@example.com --password Secret123
  python main.py list-pending
  python main.py approve seeker@example.com
        """,
    )
    parser.add_argument(
        "--db-url",
        metavar="URL",
        default=None,
        help="SQLAlchemy database URL (default: DATABASE_URL from the environment)",
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    create = sub.add_parser("create-admin", help="Create an approved admin, or promote an existing user")
    create.add_argument("--email", required=True)
    create.add_argument("--password", required=True)
    create.add_argument("--full-name", default="Administrator")

    approve = sub.add_parser("approve", help="Approve a pending account by email")
    approve.add_argument("email")

    sub.add_parser("list-pending", help="List accounts awaiting approval")
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return 1

    settings = get_settings()
    store = UserStore(args.db_url or settings.database_url)
    service = build_auth_service(settings, store)
    try:
        if args.command == "create-admin":
            user = service.ensure_admin(args.email, args.password, args.full_name)
            print(f"  Admin ready: {user.email} (id={user.id})")

        elif args.command == "approve":
            user = store.find_by_email(args.email)
            if user is None:
                print(f"  [!] No user found with email '{args.email}'.")
                return 1
            service.approve_user(user.id)
            print(f"  Approved: {user.email} (id={user.id})")

        elif args.command == "list-pending":
            pending = service.list_users(approved=False)
            if not pending:
                print("  No accounts awaiting approval.")
            for user in pending:
                print(f"  {user.id:>5}  {user.email:<40} {user.display_name}  joined {user.created_at}")
    except AuthError as exc:
        logger.debug("CLI command failed", exc_info=True)
        print(f"  [!] {exc.message}")
        for field, msg in (exc.details or {}).items():
            print(f"      {field}: {msg}")
        return 1
    finally:
        store.close()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
