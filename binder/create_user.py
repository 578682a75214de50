"""
binder/create_user.py
Admin account setup.

  python -m binder.create_user                 # prompts for everything
  python -m binder.create_user -u admin        # prompts for the password
"""

import argparse
import getpass
import sys

from binder.core.db import Database
from binder.core.security import hash_password
from binder.store import UserStore

MIN_PASSWORD_LEN = 6


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Create or overwrite a Binder login")
    parser.add_argument("-u", "--username", help="username (default: admin)")
    parser.add_argument("-y", "--yes", action="store_true", help="overwrite without asking")
    args = parser.parse_args(argv)

    username = args.username or input("Enter username (default: admin): ").strip() or "admin"
    password = getpass.getpass("Enter password: ").strip()
    if len(password) < MIN_PASSWORD_LEN:
        print(f"❌ Password must be at least {MIN_PASSWORD_LEN} characters long", file=sys.stderr)
        return 1

    db = Database()
    db.create_tables()
    users = UserStore(db)

    try:
        if users.exists_sync(username) and not args.yes:
            answer = input(f'⚠️  User "{username}" already exists. Overwrite? (y/n): ')
            if answer.strip().lower() != "y":
                print("❌ Operation cancelled")
                return 0

        users.upsert_sync(username, hash_password(password))
    finally:
        db.dispose()

    print(f"✅ User created successfully!\n   Username: {username}\n   Password: [hidden]")
    return 0


if __name__ == "__main__":
    sys.exit(main())
