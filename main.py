#!/usr/bin/env python3
"""
Paylink -- authentication and user directory service for the Paylink ledger.

Usage:
  python main.py serve
  python main.py serve --host 0.0.0.0 --port 8080
  python main.py create-user --first-name Ann --last-name Lee --user-id ann1
  python main.py create-user ... --db-url sqlite:///./other.db

Environment variables:
  SECRET_KEY    Token signing key (>= 32 chars). Required unless DEBUG=true.
  DATABASE_URL  SQLAlchemy URL for the user store. Defaults to ./paylink.db.
  See core/config.py for the full list.
"""

import argparse
import getpass
import sys
from typing import Optional

from auth import service
from auth.errors import AuthError
from auth.store import UserStore


def _serve(args: argparse.Namespace) -> int:
    import uvicorn

    uvicorn.run("api.main:app", host=args.host, port=args.port, reload=args.reload)
    return 0


def _create_user(args: argparse.Namespace) -> int:
    """Run the signup flow from the command line (seeding, support tasks)."""
    password = getpass.getpass("Password: ")
    if password != getpass.getpass("Repeat password: "):
        print("  [!] Passwords do not match.")
        return 1

    store = UserStore(db_url=args.db_url)
    try:
        result = service.signup(store, args.first_name, args.last_name, args.user_id, password)
    except AuthError as exc:
        print(f"  [!] {exc.message}")
        if exc.detail:
            for item in exc.detail:
                print(f"      {item['field']}: {item['message']}")
        return 1
    finally:
        store.close()

    print(f"  Created {result.user.user_id} (id={result.user.id}, opening balance={result.account.balance})")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="paylink",
        description="Paylink authentication and user directory service.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the HTTP API with uvicorn.")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)
    serve.add_argument("--reload", action="store_true", help="Auto-reload on code changes (development).")
    serve.set_defaults(func=_serve)

    create = sub.add_parser("create-user", help="Create a user and account. Prompts for the password.")
    create.add_argument("--first-name", required=True)
    create.add_argument("--last-name", required=True)
    create.add_argument("--user-id", required=True)
    create.add_argument("--db-url", default=None, help="SQLAlchemy URL. Defaults to DATABASE_URL.")
    create.set_defaults(func=_create_user)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
