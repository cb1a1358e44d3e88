#!/usr/bin/env python3
"""
Neon admin CLI -- operator tasks against the auth database.

Usage:
  python main.py create-user alice --nickname Alice --email alice@example.com --role admin
  python main.py set-role alice moderator
  python main.py grant-circle alice 42
  python main.py revoke-circle alice 42
  python main.py revoke-sessions alice
  python main.py purge-sessions

Environment variables:
  DATABASE_URL   SQLAlchemy URL of the auth database (default: neon_auth.db beside the code).
                 All other settings are read the same way as the API (see core/config.py).

purge-sessions is meant for cron: expired sessions are otherwise only removed
when someone presents them.
"""

import argparse
import getpass
import sys
from typing import Optional

from sqlalchemy.exc import IntegrityError

from auth.credentials import hash_password, validate_password_policy
from auth.errors import AuthError
from auth.models import Role, User
from auth.sessions import SessionManager
from auth.store import UserStore
from core.config import get_settings


def _prompt_password(min_length: int) -> Optional[str]:
    password = getpass.getpass("Password: ")
    if getpass.getpass("Repeat password: ") != password:
        print("  [!] Passwords do not match.")
        return None
    try:
        validate_password_policy(password, min_length)
    except AuthError:
        print(f"  [!] Password must be at least {min_length} characters.")
        return None
    return password


def _require_user(store: UserStore, handle: str) -> Optional[User]:
    user = store.get_by_handle(handle)
    if user is None:
        print(f"  [!] No user with handle '{handle}'.")
    return user


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="neon-admin",
        description="Operator tasks for Neon accounts, roles, ownership and sessions.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--database-url", metavar="URL", help="Override DATABASE_URL")
    sub = parser.add_subparsers(dest="command", required=True)

    p_create = sub.add_parser("create-user", help="Create an account (prompts for the password)")
    p_create.add_argument("handle")
    p_create.add_argument("--nickname", required=True)
    p_create.add_argument("--email", required=True)
    p_create.add_argument("--role", choices=[r.value for r in Role], default=Role.user.value)

    p_role = sub.add_parser("set-role", help="Change a user's role")
    p_role.add_argument("handle")
    p_role.add_argument("role", choices=[r.value for r in Role])

    for name, help_text in (("grant-circle", "Add an ownership edge"), ("revoke-circle", "Remove an ownership edge")):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("handle")
        p.add_argument("circle_id", type=int)

    p_revoke = sub.add_parser("revoke-sessions", help="Log a user out everywhere")
    p_revoke.add_argument("handle")

    sub.add_parser("purge-sessions", help="Delete expired sessions")

    args = parser.parse_args(argv)
    settings = get_settings()
    store = UserStore(args.database_url or settings.database_url)
    try:
        return _run(args, store, SessionManager(store, settings), settings.password_min_length)
    finally:
        store.close()


def _run(args: argparse.Namespace, store: UserStore, sessions: SessionManager, min_length: int) -> int:
    if args.command == "create-user":
        password = _prompt_password(min_length)
        if password is None:
            return 1
        user = User(
            handle=args.handle,
            nickname=args.nickname,
            email=args.email,
            role=args.role,
            hashed_password=hash_password(password),
        )
        try:
            user_id = store.create_user(user)
        except IntegrityError:
            print(f"  [!] Handle '{args.handle}' already exists.")
            return 1
        print(f"  Created {args.handle} (id={user_id}, role={args.role}).")
        return 0

    if args.command == "purge-sessions":
        print(f"  Purged {sessions.purge_expired()} expired session(s).")
        return 0

    user = _require_user(store, args.handle)
    if user is None:
        return 1

    if args.command == "set-role":
        store.update_user(user.id, role=args.role)
        print(f"  {user.handle} is now {args.role}.")
    elif args.command == "grant-circle":
        added = store.grant_circle(user.id, args.circle_id)
        print(f"  {user.handle} owns circle {args.circle_id}{'' if added else ' (already)'}.")
    elif args.command == "revoke-circle":
        if not store.revoke_circle(user.id, args.circle_id):
            print(f"  [!] {user.handle} does not own circle {args.circle_id}.")
            return 1
        print(f"  {user.handle} no longer owns circle {args.circle_id}.")
    elif args.command == "revoke-sessions":
        print(f"  Revoked {sessions.revoke_all(user.id)} session(s) for {user.handle}.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
