#!/usr/bin/env python3
"""CLI management tool for flat-file user accounts.

Provides commands to:
- Add users, optionally with a bcrypt-hashed password
- Set the password of an existing user
- List all users or show one of them
- Show the next free user ID
- Remove users by name
- Print the account name of the current process
"""

import argparse
import getpass
import logging
import sys
from dataclasses import replace
from pathlib import Path

# Ensure acctdb package is importable
sys.path.insert(0, str(Path(__file__).parent.parent))

from acctdb.accounts import AccountDB
from acctdb.config import AccountsConfig, load_config
from acctdb.errors import AccountDBError
from acctdb.record import Shadow, User


def _read_password(args, username: str) -> str:
    if args.password:
        return args.password
    return getpass.getpass(f"Password for {username}: ")


def add_user(args, db: AccountDB) -> int:
    """Add a new user and its credential entry."""
    username = args.username

    if args.system:
        user = User.new_system(username, args.home or "/nonexistent", args.gid if args.gid is not None else 0)
    else:
        user = User.new(username, db.config)

    overrides = {}
    if args.uid is not None:
        overrides["uid"] = args.uid
    if args.gid is not None:
        overrides["gid"] = args.gid
    if args.home:
        overrides["dir"] = args.home
    if args.shell:
        overrides["shell"] = args.shell
    if args.comment:
        overrides["gecos"] = args.comment
    user = replace(user, **overrides)

    # Prompt for password before anything is written
    password = None
    if args.password or args.prompt_password:
        password = _read_password(args, username)
        if not password:
            print("Error: Password cannot be empty", file=sys.stderr)
            return 1

    uid = db.add(user)
    db.add_shadow(Shadow.new(username, db.config))

    if password:
        db.set_password(username, password)

    print(f"✓ User created: {username} (uid {uid})")
    return 0


def set_password(args, db: AccountDB) -> int:
    """Set the password of an existing user."""
    password = _read_password(args, args.username)
    if not password:
        print("Error: Password cannot be empty", file=sys.stderr)
        return 1

    db.set_password(args.username, password)
    print(f"✓ Password changed for {args.username}")
    return 0


def list_users(args, db: AccountDB) -> int:
    """List all users."""
    users = db.list_users()

    if not users:
        print("No users found")
        return 0

    print(f"{'Username':<20} {'UID':>6} {'GID':>6} {'Home':<25} {'Shell':<15}")
    print("-" * 76)

    for user in users:
        print(f"{user.name:<20} {user.uid:>6} {user.gid:>6} {user.dir:<25} {user.shell:<15}")

    return 0


def show_user(args, db: AccountDB) -> int:
    """Print the account row of one user."""
    if args.uid is not None:
        user = db.lookup_uid(args.uid)
    else:
        user = db.lookup_user(args.username)

    kind = "system" if user.is_system else "normal"
    print(f"{user} ({kind})")
    return 0


def next_uid(args, db: AccountDB) -> int:
    """Print the identifier the next add-user would get."""
    print(db.next_uid(args.system))
    return 0


def remove_user(args, db: AccountDB) -> int:
    """Remove a user by name."""
    db.remove(args.username)
    print(f"✓ Removed user {args.username}")
    return 0


def whoami(args, db: AccountDB) -> int:
    print(db.current_username())
    return 0


COMMANDS = {
    "add-user": add_user,
    "set-password": set_password,
    "list-users": list_users,
    "show-user": show_user,
    "next-uid": next_uid,
    "remove-user": remove_user,
    "whoami": whoami,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="acctdb-manage",
        description="Manage user accounts in passwd/shadow style files",
    )
    parser.add_argument("--config", "-c", help="Path to config.json (default: built-in settings)")
    parser.add_argument("--passwd", help="Account file (overrides config)")
    parser.add_argument("--shadow", help="Credential file (overrides config)")
    parser.add_argument(
        "--log-level",
        "-l",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: WARNING)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # add-user command
    add_parser = subparsers.add_parser("add-user", help="Add a new user")
    add_parser.add_argument("--username", required=True, help="Username")
    add_parser.add_argument("--uid", type=int, help="User ID (allocated if omitted)")
    add_parser.add_argument("--gid", type=int, help="Primary group ID")
    add_parser.add_argument("--home", help="Home directory (default: <home>/<username>)")
    add_parser.add_argument("--shell", help="Login shell")
    add_parser.add_argument("--comment", help="Comment (GECOS) field")
    add_parser.add_argument("--system", action="store_true", help="Create a system account")
    add_parser.add_argument("--password", help="Password")
    add_parser.add_argument(
        "--prompt-password", action="store_true", help="Prompt for a password"
    )

    # set-password command
    passwd_parser = subparsers.add_parser("set-password", help="Set a user's password")
    passwd_parser.add_argument("--username", required=True, help="Username")
    passwd_parser.add_argument("--password", help="Password (prompted if omitted)")

    # list-users command
    subparsers.add_parser("list-users", help="List all users")

    # show-user command
    show_parser = subparsers.add_parser("show-user", help="Show one user")
    show_group = show_parser.add_mutually_exclusive_group(required=True)
    show_group.add_argument("--username", help="Username")
    show_group.add_argument("--uid", type=int, help="User ID")

    # next-uid command
    next_parser = subparsers.add_parser("next-uid", help="Show the next free user ID")
    next_parser.add_argument("--system", action="store_true", help="Use the system range")

    # remove-user command
    remove_parser = subparsers.add_parser("remove-user", help="Remove a user")
    remove_parser.add_argument("--username", required=True, help="Username")

    # whoami command
    subparsers.add_parser("whoami", help="Print the account name of this process")

    return parser


def main(argv=None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    try:
        config = load_config(args.config) if args.config else AccountsConfig()
    except AccountDBError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    db = AccountDB(config, passwd_path=args.passwd, shadow_path=args.shadow)

    try:
        return COMMANDS[args.command](args, db)
    except AccountDBError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except OSError as e:
        print(f"Error: {e.strerror or e}: {e.filename or ''}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
