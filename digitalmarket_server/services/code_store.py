# Copyright (C) 2024 DigitalMarket Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Storage of outstanding password reset codes."""

import logging
from datetime import datetime

from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from digitalmarket_server.errors import PersistenceError
from digitalmarket_server.models import PasswordReset

logger = logging.getLogger(__name__)


class CodeStore:
    """Row-level access to ``password_resets`` within one session.

    Writes are flushed but not committed; the caller decides when the
    transaction ends with :meth:`commit` or :meth:`rollback`. Every database
    failure surfaces as :class:`PersistenceError`.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def insert(self, email: str, code: str, expires_at: datetime) -> PasswordReset:
        row = PasswordReset(email=email, code=code, expires_at=expires_at)
        try:
            self.db.add(row)
            await self.db.flush()
        except SQLAlchemyError as e:
            logger.error("Could not store reset code for %s: %s", email, e)
            raise PersistenceError() from e
        return row

    async def find_valid(self, email: str, code: str, now: datetime) -> PasswordReset | None:
        """Live row for (email, code), if any. Read only; does not consume."""
        try:
            result = await self.db.execute(
                select(PasswordReset)
                .where(
                    PasswordReset.email == email,
                    PasswordReset.code == code,
                    PasswordReset.expires_at > now,
                )
                .order_by(PasswordReset.id.desc())
                .limit(1)
            )
        except SQLAlchemyError as e:
            raise PersistenceError() from e
        return result.scalar_one_or_none()

    async def claim(self, email: str, code: str, now: datetime) -> PasswordReset | None:
        """Consume a live code in one statement.

        ``DELETE ... WHERE email, code, expires_at > now RETURNING`` either
        returns the row (this caller owns the claim) or nothing (wrong code,
        expired, or already claimed by a concurrent request).
        """
        stmt = (
            delete(PasswordReset)
            .where(
                PasswordReset.email == email,
                PasswordReset.code == code,
                PasswordReset.expires_at > now,
            )
            .returning(PasswordReset)
            .execution_options(synchronize_session=False)
        )
        try:
            result = await self.db.execute(stmt)
            rows = result.scalars().all()
        except SQLAlchemyError as e:
            raise PersistenceError() from e
        if len(rows) > 1:
            # Only possible with supersession disabled and a duplicate code
            logger.warning("Claimed %d duplicate reset codes for %s", len(rows), email)
        return rows[0] if rows else None

    async def delete(self, email: str, code: str) -> int:
        try:
            result = await self.db.execute(
                delete(PasswordReset).where(
                    PasswordReset.email == email,
                    PasswordReset.code == code,
                )
            )
        except SQLAlchemyError as e:
            raise PersistenceError() from e
        return result.rowcount or 0

    async def supersede(self, email: str) -> int:
        """Delete every outstanding code for ``email``."""
        try:
            result = await self.db.execute(
                delete(PasswordReset).where(PasswordReset.email == email)
            )
        except SQLAlchemyError as e:
            raise PersistenceError() from e
        return result.rowcount or 0

    async def purge_expired(self, now: datetime) -> int:
        try:
            result = await self.db.execute(
                delete(PasswordReset).where(PasswordReset.expires_at <= now)
            )
        except SQLAlchemyError as e:
            raise PersistenceError() from e
        return result.rowcount or 0

    async def count_for(self, email: str) -> int:
        try:
            count = await self.db.scalar(
                select(func.count()).select_from(PasswordReset).where(PasswordReset.email == email)
            )
        except SQLAlchemyError as e:
            raise PersistenceError() from e
        return count or 0

    async def commit(self) -> None:
        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise PersistenceError() from e

    async def rollback(self) -> None:
        await self.db.rollback()
