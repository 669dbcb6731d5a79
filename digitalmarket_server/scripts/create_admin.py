#!/usr/bin/env python3
# Copyright (C) 2024 DigitalMarket Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Create an admin account, or promote an existing one.

Run: python -m digitalmarket_server.scripts.create_admin [--email E] [--username U]
     python -m digitalmarket_server.scripts.create_admin --promote E
"""

import argparse
import asyncio
import getpass
import sys

from digitalmarket_server.auth import normalize_email
from digitalmarket_server.config import settings
from digitalmarket_server.database import async_session_maker, init_db
from digitalmarket_server.errors import ConflictError, ValidationError
from digitalmarket_server.services.accounts import create_user, promote_to_admin
from digitalmarket_server.services.password_reset import validate_email_address


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create or promote a DigitalMarket admin account")
    parser.add_argument("--email", help="email of the new admin (prompted if omitted)")
    parser.add_argument("--username", help="username of the new admin (prompted if omitted)")
    parser.add_argument("--promote", metavar="EMAIL", help="grant admin rights to an existing account")
    return parser.parse_args(argv)


async def run(args: argparse.Namespace) -> int:
    await init_db()
    async with async_session_maker() as session:
        if args.promote:
            user = await promote_to_admin(session, normalize_email(args.promote))
            if user is None:
                print(f"No account for {args.promote}")
                return 1
            print(f"{user.email} is now an admin.")
            return 0

        username = (args.username or input("Admin username: ")).strip()
        try:
            email = validate_email_address(args.email or input("Admin email: "))
        except ValidationError as e:
            print(e.message("en"))
            return 1
        password = getpass.getpass("Password: ")
        if not username or len(password) < settings.password_min_length:
            print(f"Username and a password of at least {settings.password_min_length} characters are required")
            return 1
        try:
            user = await create_user(session, username, email, password, is_admin=True)
        except ConflictError as e:
            print(e.message("en"))
            return 1
        print(f"Admin user {user.username} created.")
        return 0


def main(argv=None) -> None:
    sys.exit(asyncio.run(run(parse_args(argv))))


if __name__ == "__main__":
    main()
