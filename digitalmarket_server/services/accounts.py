# Copyright (C) 2024 DigitalMarket Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Account creation and admin promotion."""

import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from digitalmarket_server.auth import hash_password
from digitalmarket_server.errors import ConflictError
from digitalmarket_server.models import User

logger = logging.getLogger(__name__)


async def get_user_by_email(db: AsyncSession, email: str) -> User | None:
    result = await db.execute(select(User).where(User.email == email))
    return result.scalar_one_or_none()


async def create_user(
    db: AsyncSession,
    username: str,
    email: str,
    password: str,
    *,
    is_admin: bool = False,
) -> User:
    """Insert and commit a new account.

    The unique constraints on email and username are the final word: a
    concurrent registration that slipped past earlier lookups fails here
    with ConflictError rather than a database error.
    """
    user = User(
        username=username,
        email=email,
        password_hash=hash_password(password),
        is_admin=is_admin,
        is_active=True,
    )
    db.add(user)
    try:
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        logger.info("Registration for %s lost a uniqueness race: %s", email, e.orig)
        if await get_user_by_email(db, email):
            raise ConflictError("email_taken") from e
        raise ConflictError("username_taken") from e
    await db.refresh(user)
    return user


async def promote_to_admin(db: AsyncSession, email: str) -> User | None:
    """Grant admin rights to an existing account. None if there is no such account."""
    user = await get_user_by_email(db, email)
    if user is None:
        return None
    if not user.is_admin:
        user.is_admin = True
        await db.commit()
        logger.info("Promoted %s to admin", email)
    return user
