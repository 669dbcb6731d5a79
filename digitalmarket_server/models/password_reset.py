# Copyright (C) 2024 DigitalMarket Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Password reset code model."""

from datetime import datetime
from sqlalchemy import DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from digitalmarket_server.models.base import Base, TimestampMixin


class PasswordReset(Base, TimestampMixin):
    """Emailed one-time code for password reset.

    A row is live until it is deleted (consumed) or ``expires_at`` passes.
    Neither ``email`` nor ``code`` is unique on its own.
    """

    __tablename__ = "password_resets"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    code: Mapped[str] = mapped_column(String(6), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )
