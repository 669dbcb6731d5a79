# Copyright (C) 2024 DigitalMarket Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Database models."""

from digitalmarket_server.models.base import Base
from digitalmarket_server.models.user import User
from digitalmarket_server.models.password_reset import PasswordReset

__all__ = [
    "Base",
    "User",
    "PasswordReset",
]
