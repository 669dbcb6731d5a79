# Copyright (C) 2024 DigitalMarket Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Password changes against the account store."""

import logging

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from digitalmarket_server.auth import hash_password
from digitalmarket_server.errors import CredentialUpdateError
from digitalmarket_server.models import User

logger = logging.getLogger(__name__)


class CredentialUpdater:
    """Sets the password of the account named by an explicit email."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def set_password(self, email: str, new_password: str) -> User:
        try:
            result = await self.db.execute(
                select(User).where(User.email == email, User.is_active == True)  # noqa: E712
            )
            user = result.scalar_one_or_none()
            if not user:
                logger.info("Password reset for unknown or inactive account %s", email)
                raise CredentialUpdateError()
            user.password_hash = hash_password(new_password)
            await self.db.flush()
        except SQLAlchemyError as e:
            logger.error("Password update failed for %s: %s", email, e)
            raise CredentialUpdateError() from e
        return user
