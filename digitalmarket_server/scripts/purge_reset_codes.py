#!/usr/bin/env python3
# Copyright (C) 2024 DigitalMarket Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Delete expired password reset codes. Run: python -m digitalmarket_server.scripts.purge_reset_codes"""

import asyncio

from digitalmarket_server.database import async_session_maker, init_db
from digitalmarket_server.services.code_store import CodeStore
from digitalmarket_server.services.password_reset import utcnow


async def main():
    await init_db()
    async with async_session_maker() as session:
        store = CodeStore(session)
        deleted = await store.purge_expired(utcnow())
        await store.commit()
    print(f"Deleted {deleted} expired reset code(s).")


if __name__ == "__main__":
    asyncio.run(main())
