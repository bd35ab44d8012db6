#!/usr/bin/env python3
"""
Express Connect -- account maintenance for the authentication store.

Accounts are never created by signing in; an operator (or the import jobs that
own host/attendee data) provisions them. This CLI covers the operator side.

Usage:
  python main.py create-account admin@example.com --role ADMIN --first-name Ada
  python main.py create-account host@example.com --role HOST_ADMIN --host-id H1
  python main.py create-account guest@example.com --role ATTENDEE --attendee-company-id A7
  python main.py status guest@example.com
  python main.py send-reset guest@example.com
  python main.py purge-codes

Environment variables:
  DATABASE_URL   Account store location (default: expressconnect.db).
  SECRET_KEY     Required unless DEBUG=true. See core/config.py for the rest.
"""

import argparse
import getpass
import sys

from sqlalchemy.exc import IntegrityError

from auth.credentials import CredentialService
from auth.errors import AuthError
from auth.models import Account, Role
from auth.orchestrator import AuthOrchestrator
from auth.store import AccountStore
from core.config import get_settings
from notify import build_notifier


def _create_account(args: argparse.Namespace, store: AccountStore, credentials: CredentialService) -> int:
    hashed = None
    if args.with_password:
        password = getpass.getpass("Password: ")
        if password != getpass.getpass("Confirm password: "):
            print("  [!] Passwords do not match.")
            return 1
        if len(password) < 8:
            print("  [!] Password must be at least 8 characters.")
            return 1
        hashed = credentials.hash_password(password)

    account = Account(
        email=args.email,
        role=args.role,
        first_name=args.first_name,
        last_name=args.last_name,
        hashed_password=hashed,
        password_set=hashed is not None,
        host_id=args.host_id,
        attendee_company_id=args.attendee_company_id,
    )
    try:
        account_id = store.create_account(account)
    except ValueError as e:
        print(f"  [!] {e}")
        return 1
    except IntegrityError:
        print(f"  [!] An account for {args.email.lower()} already exists.")
        return 1
    print(f"  Created {args.role} account {account_id} for {args.email.lower()}")
    return 0


def _status(args: argparse.Namespace, orchestrator: AuthOrchestrator) -> int:
    status = orchestrator.check_account_status(args.email)
    print(f"  exists={status.exists} has_password={status.has_password}")
    return 0 if status.exists else 1


def _send_reset(args: argparse.Namespace, credentials: CredentialService) -> int:
    try:
        credentials.initiate_password_reset(args.email)
    except AuthError as e:
        print(f"  [!] {e.message}")
        return 1
    print("  Reset link sent (if the account exists).")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="expressconnect",
        description="Account maintenance for the Express Connect authentication store.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    create = sub.add_parser("create-account", help="Provision a new account")
    create.add_argument("email")
    create.add_argument("--role", required=True, choices=[r.value for r in Role])
    create.add_argument("--first-name", default="")
    create.add_argument("--last-name", default="")
    create.add_argument("--host-id", default=None, help="Required for HOST_ADMIN / HOST_TEAM_MEMBER")
    create.add_argument(
        "--attendee-company-id", default=None, help="Required for ATTENDEE / ATTENDEE_ADMIN"
    )
    create.add_argument("--with-password", action="store_true", help="Prompt for an initial password")

    status = sub.add_parser("status", help="Show whether an account exists and has a password")
    status.add_argument("email")

    reset = sub.add_parser("send-reset", help="Email a password reset link")
    reset.add_argument("email")

    sub.add_parser("purge-codes", help="Delete expired sign-in codes")

    args = parser.parse_args(argv)

    settings = get_settings()
    store = AccountStore(settings.database_url, timeout=settings.store_timeout_seconds)
    notifier = build_notifier(settings)
    credentials = CredentialService(store, notifier, settings)
    orchestrator = AuthOrchestrator(store, credentials, notifier, settings)
    try:
        if args.command == "create-account":
            return _create_account(args, store, credentials)
        if args.command == "status":
            return _status(args, orchestrator)
        if args.command == "send-reset":
            return _send_reset(args, credentials)
        removed = store.purge_expired_codes()
        print(f"  Purged {removed} expired sign-in code(s).")
        return 0
    finally:
        store.close()


if __name__ == "__main__":
    sys.exit(main())
