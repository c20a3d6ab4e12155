"""
DataBank CLI — Bootstrap and management commands.

Commands:
- databank init         — Create tables, seed (or reset) the admin account
- databank create-user  — Add an account, optionally with folder grants
- databank logs         — Print the most recent audit entries
"""

from __future__ import annotations

import argparse
import getpass
import logging
import sys
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from databank.engine.errors import DataBankError

logger = logging.getLogger("databank.cli")

DEFAULT_ADMIN_EMAIL = "admin@localhost"
DEFAULT_ADMIN_NAME = "System Administrator"


def main(argv: Optional[list] = None) -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="databank",
        description="DataBank — Document repository management",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # databank init
    init_parser = subparsers.add_parser("init", help="Create tables and the admin account")
    init_parser.add_argument(
        "--config", default=None, help="Path to databank.yaml (default: search upwards from cwd)"
    )
    init_parser.add_argument("--admin-email", default=DEFAULT_ADMIN_EMAIL, help="Admin login email")
    init_parser.add_argument("--admin-name", default=DEFAULT_ADMIN_NAME, help="Admin display name")
    init_parser.add_argument(
        "--admin-password", help="Admin password (prompted if not provided)"
    )

    # databank create-user
    user_parser = subparsers.add_parser("create-user", help="Create a user account")
    user_parser.add_argument("email", help="Login email")
    user_parser.add_argument("fullname", help="Display name")
    user_parser.add_argument("--config", default=None, help="Path to databank.yaml")
    user_parser.add_argument("--password", help="Password (prompted if not provided)")
    user_parser.add_argument("--role", choices=["user", "admin"], default="user", help="Role (default: user)")
    user_parser.add_argument("--can-search", action="store_true", help="Allow keyword/date search")
    user_parser.add_argument("--can-preview", action="store_true", help="Allow file preview")
    user_parser.add_argument("--can-print", action="store_true", help="Allow printing")
    user_parser.add_argument(
        "--folders", default="", help="Comma-separated folder ids to grant (e.g. 1,4,7)"
    )

    # databank logs
    logs_parser = subparsers.add_parser("logs", help="Show recent activity")
    logs_parser.add_argument("--config", default=None, help="Path to databank.yaml")
    logs_parser.add_argument("--limit", type=int, default=20, help="Entries to show (default: 20)")

    args = parser.parse_args(argv)

    if args.command == "init":
        return cmd_init(args)
    elif args.command == "create-user":
        return cmd_create_user(args)
    elif args.command == "logs":
        return cmd_logs(args)
    else:
        parser.print_help()
        return 0


def _prompt_password(label: str) -> str:
    while True:
        password = getpass.getpass(f"  Enter {label} password: ")
        confirm = getpass.getpass("  Confirm password: ")
        if password == confirm:
            return password
        print("  Passwords do not match. Try again.")


def _open_bank(config_path: Optional[str], create_tables: bool = False):
    from databank.runtime import DataBank

    try:
        return DataBank.from_config(config_path, create_tables=create_tables)
    except DataBankError as e:
        print(f"[ERROR] {e.message}")
    except Exception as e:
        print(f"[ERROR] Database connection failed: {e}")
    return None


def _admin_actor(bank):
    """Identity of the oldest admin account, used as the actor for CLI changes."""
    from databank.db.models import User
    from databank.engine.context import ROLE_ADMIN, Identity

    session = bank.session_factory()
    try:
        admin = (
            session.query(User)
            .filter(User.role == ROLE_ADMIN)
            .order_by(User.id.asc())
            .first()
        )
        return Identity.from_user(admin) if admin else None
    except SQLAlchemyError as e:
        logger.error(f"Admin lookup failed: {e}")
        return None
    finally:
        session.close()


def cmd_init(args: argparse.Namespace) -> int:
    """
    Bootstrap the repository:
    1. Load config from databank.yaml
    2. Create all tables (SQLAlchemy metadata.create_all)
    3. Create the upload directory
    4. Create the admin account, or reset its password if it exists
    """
    print("=" * 60)
    print("  DataBank Initialization")
    print("=" * 60)

    bank = _open_bank(args.config, create_tables=True)
    if bank is None:
        return 1
    try:
        code = _seed(bank, args)
    finally:
        bank.shutdown()

    if code == 0:
        print()
        print("DataBank initialized.")
    return code


def _seed(bank, args: argparse.Namespace) -> int:
    from databank.db.models import User
    from databank.db.session import session_scope
    from databank.engine.context import ROLE_ADMIN
    from databank.engine.security import hash_password

    print("[OK] Database tables created")

    physical = bank.storage.ensure_root()
    print(f"[OK] Upload directory ready: {physical}")

    admin_password = args.admin_password or _prompt_password("admin")
    min_length = bank.config.security.password_min_length
    if len(admin_password) < min_length:
        print(f"[ERROR] Password must be at least {min_length} characters")
        return 1

    password_hash = hash_password(admin_password, rounds=bank.config.security.bcrypt_rounds)

    try:
        with session_scope(bank.session_factory) as session:
            existing = session.query(User).filter(User.email == args.admin_email).first()
            if existing:
                existing.password_hash = password_hash
                existing.role = ROLE_ADMIN
            else:
                session.add(
                    User(
                        fullname=args.admin_name,
                        email=args.admin_email,
                        password_hash=password_hash,
                        role=ROLE_ADMIN,
                        can_search=True,
                        can_preview=True,
                        can_print=True,
                    )
                )
    except SQLAlchemyError as e:
        print(f"[ERROR] Failed to seed admin account: {e}")
        return 1

    if existing:
        print(f"[INFO] Admin account already exists: '{args.admin_email}'")
        print("[OK] Admin password updated")
    else:
        print(f"[OK] Created admin account: '{args.admin_email}'")
    return 0


def cmd_create_user(args: argparse.Namespace) -> int:
    """Create an account as the first admin, then apply folder grants."""
    bank = _open_bank(args.config)
    if bank is None:
        return 1

    try:
        actor = _admin_actor(bank)
        if actor is None:
            print("[ERROR] No admin account found. Run 'databank init' first.")
            return 1

        password = args.password or _prompt_password(f"'{args.email}'")

        user = bank.create_user(
            actor,
            args.fullname,
            args.email,
            password,
            role=args.role,
            can_search=args.can_search,
            can_preview=args.can_preview,
            can_print=args.can_print,
        )
        print(f"[OK] Created {user['role']} account: '{user['email']}' (id {user['id']})")

        folder_ids = [part.strip() for part in args.folders.split(",") if part.strip()]
        if folder_ids:
            granted = bank.replace_grants(actor, user["id"], folder_ids)
            print(f"[OK] Granted folders: {', '.join(str(f) for f in granted) or 'none'}")
    except DataBankError as e:
        print(f"[ERROR] {e.message}")
        return 1
    finally:
        bank.shutdown()

    return 0


def cmd_logs(args: argparse.Namespace) -> int:
    """Print recent audit entries, newest first."""
    bank = _open_bank(args.config)
    if bank is None:
        return 1

    try:
        actor = _admin_actor(bank)
        if actor is None:
            print("[ERROR] No admin account found. Run 'databank init' first.")
            return 1
        entries = bank.audit.recent(actor, limit=args.limit)
    except DataBankError as e:
        print(f"[ERROR] {e.message}")
        return 1
    finally:
        bank.shutdown()

    if not entries:
        print("No activity recorded.")
        return 0

    for entry in entries:
        who = entry["email"] or "(deleted user)"
        when = entry["created_at"].strftime("%Y-%m-%d %H:%M:%S") if entry["created_at"] else "-"
        print(f"{when}  {who:<30}  {entry['action']}")
    return 0


if __name__ == "__main__":
    sys.exit(main())

