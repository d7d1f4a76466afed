#!/usr/bin/env python3
# Copyright (C) 2024 PortLib Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Mint a single-use admin signup key. Run: python -m portlib_server.scripts.create_admin_key [KEY]"""

import asyncio
import secrets
import sys

from sqlalchemy import select

from portlib_server.database import async_session_maker, init_db
from portlib_server.models import AdminKey


async def main(argv: list[str]) -> int:
    await init_db()
    key_value = argv[0].strip() if argv else secrets.token_urlsafe(24)
    if not key_value:
        print("Key must not be empty")
        return 1

    async with async_session_maker() as session:
        result = await session.execute(select(AdminKey).where(AdminKey.key_value == key_value))
        if result.scalar_one_or_none():
            print("Key already exists")
            return 1
        session.add(AdminKey(key_value=key_value))
        await session.commit()
    print(f"Admin key created: {key_value}")
    print("Give it to the new admin; it works for one signup and then serves as their access key.")
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main(sys.argv[1:])))
