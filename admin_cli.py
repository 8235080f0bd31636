"""Manage dashboard admin accounts stored in SQLite.

Usage:
    python admin_cli.py init [--roles roles.yaml]
    python admin_cli.py add alice --role operator [--display-name "Alice"]
    python admin_cli.py passwd alice
    python admin_cli.py disable alice      # or: suspend alice
    python admin_cli.py enable alice
    python admin_cli.py import bob --hash <64 hex chars> --role viewer [--scheme legacy]
    python admin_cli.py login alice [--page orders.view]
    python admin_cli.py list
    python admin_cli.py perms operator
    python admin_cli.py grant operator finance.view
    python admin_cli.py revoke operator finance.view
    python admin_cli.py audit [--limit 20]

The database defaults to ``admin.db`` or $ADMIN_DB; pass ``--db`` to
override. Passwords are prompted for unless given with ``--password``.
"""

from __future__ import annotations

import argparse
import getpass
import os
import sqlite3
import sys
from typing import List, Optional

import yaml

from admin_auth import HASH_SCHEMES, AdminAuthError, AdminStore


DEFAULT_ROLES = os.path.join(os.path.dirname(os.path.abspath(__file__)), "roles.yaml")


def _password(args) -> str:
    if args.password is not None:
        return args.password
    return getpass.getpass("Password: ")


def cmd_init(store: AdminStore, args) -> int:
    count = store.seed_roles(args.roles)
    print(f"Schema ready in {store.path}; {count} role permissions loaded from {args.roles}")
    return 0


def cmd_add(store: AdminStore, args) -> int:
    admin_id = store.create_admin(
        args.username, _password(args), args.role, display_name=args.display_name
    )
    print(f"Created {args.username} ({args.role}) id={admin_id}")
    return 0


def cmd_passwd(store: AdminStore, args) -> int:
    store.set_password(args.username, _password(args))
    print(f"Password updated for {args.username}")
    return 0


def cmd_status(store: AdminStore, args) -> int:
    store.set_status(args.username, args.status)
    print(f"{args.username} is now {args.status}")
    return 0


def cmd_import(store: AdminStore, args) -> int:
    admin_id = store.import_admin(
        args.username, args.hash, args.role, scheme=args.scheme, display_name=args.display_name
    )
    print(f"Imported {args.username} ({args.role}, {args.scheme} digest) id={admin_id}")
    return 0


def cmd_login(store: AdminStore, args) -> int:
    admin = store.login(args.username, _password(args))
    print(f"Logged in as {admin.username} ({admin.role})")
    if args.page is not None:
        allowed = admin.has_permission(args.page)
        print(f"  {args.page}: {'allowed' if allowed else 'denied'}")
        store.logout(admin)
        return 0 if allowed else 1
    store.logout(admin)
    return 0


def cmd_list(store: AdminStore, args) -> int:
    admins = store.list_admins()
    if not admins:
        print("No admins.")
        return 0
    for admin in admins:
        print(
            f"  {admin['username']:<16} {admin['role']:<12} {admin['status']:<10} "
            f"{admin['hash_scheme']:<7} last login: {admin['last_login_at'] or '-'}"
        )
    return 0


def cmd_perms(store: AdminStore, args) -> int:
    if args.role == store.super_role:
        print(f"{args.role}: all permissions")
        return 0
    for page_path in store.permissions_for(args.role):
        print(f"  {page_path}")
    return 0


def cmd_grant(store: AdminStore, args) -> int:
    store.grant(args.role, args.page_path)
    print(f"Granted {args.page_path} to {args.role}")
    return 0


def cmd_revoke(store: AdminStore, args) -> int:
    store.revoke(args.role, args.page_path)
    print(f"Revoked {args.page_path} from {args.role}")
    return 0


def cmd_audit(store: AdminStore, args) -> int:
    for entry in store.audit_log(args.limit):
        details = entry["details"] or ""
        print(f"  {entry['created_at']}  {entry['action']:<14} {entry['admin_id'] or '-':<36} {details}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Manage admin accounts and role permissions")
    parser.add_argument(
        "--db",
        default=os.environ.get("ADMIN_DB", "admin.db"),
        help="SQLite database path (default: $ADMIN_DB or admin.db)",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("init", help="Create the schema and load the role table")
    p.add_argument("--roles", default=DEFAULT_ROLES, help="Role table in YAML (default: roles.yaml)")
    p.set_defaults(func=cmd_init)

    p = sub.add_parser("add", help="Create an admin")
    p.add_argument("username")
    p.add_argument("--role", required=True)
    p.add_argument("--display-name")
    p.add_argument("--password")
    p.set_defaults(func=cmd_add)

    p = sub.add_parser("passwd", help="Set a new password")
    p.add_argument("username")
    p.add_argument("--password")
    p.set_defaults(func=cmd_passwd)

    for name, status in (("disable", "inactive"), ("suspend", "suspended"), ("enable", "active")):
        p = sub.add_parser(name, help=f"Mark an admin {status}")
        p.add_argument("username")
        p.set_defaults(func=cmd_status, status=status)

    p = sub.add_parser("import", help="Store an admin with an existing password digest")
    p.add_argument("username")
    p.add_argument("--hash", required=True)
    p.add_argument("--role", required=True)
    p.add_argument("--scheme", choices=sorted(HASH_SCHEMES), default="legacy")
    p.add_argument("--display-name")
    p.set_defaults(func=cmd_import)

    p = sub.add_parser("login", help="Check credentials (and optionally a page permission)")
    p.add_argument("username")
    p.add_argument("--password")
    p.add_argument("--page", help="Permission id to test after logging in")
    p.set_defaults(func=cmd_login)

    p = sub.add_parser("list", help="List admins")
    p.set_defaults(func=cmd_list)

    p = sub.add_parser("perms", help="Show the permissions of a role")
    p.add_argument("role")
    p.set_defaults(func=cmd_perms)

    p = sub.add_parser("grant", help="Allow a role to open a page")
    p.add_argument("role")
    p.add_argument("page_path")
    p.set_defaults(func=cmd_grant)

    p = sub.add_parser("revoke", help="Stop a role from opening a page")
    p.add_argument("role")
    p.add_argument("page_path")
    p.set_defaults(func=cmd_revoke)

    p = sub.add_parser("audit", help="Show recent audit entries")
    p.add_argument("--limit", type=int, default=20)
    p.set_defaults(func=cmd_audit)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        with AdminStore(args.db) as store:
            return args.func(store, args)
    except (AdminAuthError, ValueError, OSError, sqlite3.Error, yaml.YAMLError) as e:
        sys.stderr.write(f"ERROR: {e}\n")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
