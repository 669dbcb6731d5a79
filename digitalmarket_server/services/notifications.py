# Copyright (C) 2024 DigitalMarket Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Account notification emails (welcome, admin alerts). Best-effort: failures are logged."""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from digitalmarket_server.errors import ConfigurationError, DeliveryError
from digitalmarket_server.models import User
from digitalmarket_server.services.email import (
    EmailSender,
    render_new_user_notification,
    render_welcome_email,
)

logger = logging.getLogger(__name__)


async def admin_emails(db: AsyncSession) -> list[str]:
    result = await db.execute(
        select(User.email).where(User.is_admin == True, User.is_active == True)  # noqa: E712
    )
    return list(result.scalars().all())


async def send_welcome(sender: EmailSender, user: User, lang: str) -> bool:
    """Send the welcome email. Returns False (and logs) if it could not be sent."""
    try:
        await sender.send(user.email, render_welcome_email(user.username, lang))
    except (ConfigurationError, DeliveryError) as e:
        logger.warning("Welcome email to %s not sent: %s", user.email, e.code)
        return False
    return True


async def notify_admins_new_user(db: AsyncSession, sender: EmailSender, user: User, lang: str) -> bool:
    """Tell every active admin about a new registration."""
    recipients = [e for e in await admin_emails(db) if e != user.email]
    if not recipients:
        logger.info("No admin users to notify about %s", user.email)
        return False
    try:
        await sender.send(recipients, render_new_user_notification(user.username, user.email, lang))
    except (ConfigurationError, DeliveryError) as e:
        logger.warning("Admin notification for %s not sent: %s", user.email, e.code)
        return False
    return True
