#!/usr/bin/env python3
"""
AdminGate -- operator CLI for the administrator credential store.

Usage:
  python main.py create-admin admin@example.com
  python main.py create-admin admin@example.com --secret 'correct horse battery staple'
  python main.py status admin@example.com
  python main.py unlock admin@example.com

Environment variables:
  DATABASE_URL  SQLAlchemy URL of the credential store (default: SQLite file
                beside the auth package).

The ephemeral rate limiter lives inside each running API process, so this CLI
only sees and clears the durable lockout ledger. A running server's in-memory
counters expire on their own or can be cleared through
POST /api/v1/auth/lockouts/{identifier}/unlock.
"""

import argparse
import getpass
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth.identity import normalize_identifier
from auth.ledger import LockoutLedger, minutes_until
from auth.models import Principal
from auth.store import PrincipalStore
from auth.tokens import hash_secret
from core.clock import utcnow
from core.config import get_settings

_MIN_SECRET_LENGTH = 8


def _read_secret(given: Optional[str]) -> Optional[str]:
    """Return the secret from --secret or an interactive double prompt."""
    if given is not None:
        return given
    first = getpass.getpass("Secret: ")
    second = getpass.getpass("Confirm secret: ")
    if first != second:
        print("  [!] Secrets do not match.")
        return None
    return first


def _create_admin(store: PrincipalStore, identifier: str, secret: Optional[str]) -> int:
    secret = _read_secret(secret)
    if secret is None:
        return 1
    if len(secret) < _MIN_SECRET_LENGTH:
        print(f"  [!] Secret must be at least {_MIN_SECRET_LENGTH} characters.")
        return 1
    try:
        principal_id = store.create_principal(
            Principal(identifier=identifier, role="admin", hashed_secret=hash_secret(secret))
        )
    except IntegrityError:
        print(f"  [!] A principal named '{identifier}' already exists.")
        return 1
    print(f"  Created admin '{identifier}' (id={principal_id}).")
    return 0


def _status(store: PrincipalStore, identifier: str) -> int:
    principal = store.get_by_identifier(identifier)
    if principal is None:
        print(f"  [!] No principal named '{identifier}'.")
        return 1
    now = utcnow()
    print(f"  Identifier:      {principal.identifier}")
    print(f"  Role:            {principal.role}")
    print(f"  Failed attempts: {principal.failed_attempts}")
    if principal.locked_until is not None and principal.locked_until > now:
        print(f"  Locked until:    {principal.locked_until.isoformat()} ({minutes_until(principal.locked_until, now)} min)")
    else:
        print("  Locked until:    -")
    last_login = principal.last_login_at.isoformat() if principal.last_login_at else "never"
    print(f"  Last login:      {last_login} from {principal.last_login_origin or 'unknown'}")
    return 0


def _unlock(store: PrincipalStore, identifier: str) -> int:
    principal = store.get_by_identifier(identifier)
    if principal is None:
        print(f"  [!] No principal named '{identifier}'.")
        return 1
    LockoutLedger(store).unlock(principal)
    print(f"  Cleared durable lockout for '{principal.identifier}'.")
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="admingate",
        description="Manage administrator principals and their lockout state.",
    )
    parser.add_argument(
        "--database-url",
        metavar="URL",
        default=None,
        help="SQLAlchemy URL of the credential store (default: DATABASE_URL setting)",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    create = commands.add_parser("create-admin", help="Provision an administrator principal")
    create.add_argument("identifier")
    create.add_argument("--secret", default=None, help="Secret to set (prompted for when omitted)")

    status = commands.add_parser("status", help="Show durable lockout state for a principal")
    status.add_argument("identifier")

    unlock = commands.add_parser("unlock", help="Clear the durable lockout for a principal")
    unlock.add_argument("identifier")

    args = parser.parse_args(argv)
    settings = get_settings()
    identifier = normalize_identifier(args.identifier)
    if not identifier:
        print("  [!] Identifier must not be blank.")
        return 1

    try:
        store = PrincipalStore(args.database_url or settings.database_url, timeout=settings.store_timeout_seconds)
    except SQLAlchemyError as exc:
        print(f"  [!] Could not open credential store: {type(exc).__name__}")
        return 2

    try:
        if args.command == "create-admin":
            return _create_admin(store, identifier, args.secret)
        if args.command == "status":
            return _status(store, identifier)
        return _unlock(store, identifier)
    except SQLAlchemyError as exc:
        print(f"  [!] Credential store error: {type(exc).__name__}")
        return 2
    finally:
        store.close()


if __name__ == "__main__":
    raise SystemExit(main())
