# Copyright (C) 2024 DigitalMarket Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Password reset by emailed one-time code.

``CodeIssuer`` creates a 6-digit code, stores it with an expiry and emails
it. ``CodeVerifier`` checks a submitted code and, if it is live, changes the
account password and consumes the code in the same transaction.

Verification claims the code with a single conditional delete, so a code can
authorize at most one password change even under concurrent submissions.
If the password change fails the transaction is rolled back and the code is
usable again until it expires.
"""

import logging
import secrets
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from fastapi import Depends
from pydantic import EmailStr, TypeAdapter
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from digitalmarket_server.auth import normalize_email
from digitalmarket_server.config import settings
from digitalmarket_server.database import get_db
from digitalmarket_server.errors import (
    CredentialUpdateError,
    InvalidOrExpiredCodeError,
    PersistenceError,
    ValidationError,
)
from digitalmarket_server.models import PasswordReset
from digitalmarket_server.services.code_store import CodeStore
from digitalmarket_server.services.credentials import CredentialUpdater
from digitalmarket_server.services.email import EmailSender, get_email_sender, render_reset_code_email

logger = logging.getLogger(__name__)

CODE_MIN = 100000
CODE_MAX = 999999

_email_adapter = TypeAdapter(EmailStr)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_code() -> str:
    """Uniform random code in [100000, 999999]; always 6 digits, never a leading zero."""
    return str(CODE_MIN + secrets.randbelow(CODE_MAX - CODE_MIN + 1))


def _as_utc(value: datetime) -> datetime:
    # Some stores (SQLite) hand back naive timestamps; they are written as UTC
    return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value


def is_valid(row: PasswordReset, now: datetime) -> bool:
    """A stored code is valid while ``now`` is strictly before its expiry."""
    return _as_utc(now) < _as_utc(row.expires_at)


def validate_email_address(email: str) -> str:
    """Normalized address, or ValidationError if empty or malformed."""
    address = normalize_email(email)
    if not address:
        raise ValidationError("email_required")
    try:
        _email_adapter.validate_python(address)
    except PydanticValidationError as e:
        raise ValidationError("invalid_email") from e
    return address


class CodeIssuer:
    """Issues reset codes: generate, store, email."""

    def __init__(
        self,
        store: CodeStore,
        sender: EmailSender,
        *,
        ttl_seconds: int | None = None,
        supersede: bool | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.sender = sender
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.reset_code_ttl_seconds
        self.supersede = supersede if supersede is not None else settings.reset_supersede_prior_codes
        self.clock = clock

    async def request_reset(self, email: str, lang: str | None = None) -> PasswordReset:
        """Issue a code for ``email`` and send it.

        Raises ValidationError, ConfigurationError (before anything is stored),
        PersistenceError, or DeliveryError. On DeliveryError the stored code is
        kept: the user never received it but may request another.
        """
        address = validate_email_address(email)
        self.sender.ensure_configured()

        now = self.clock()
        code = generate_code()
        expires_at = now + timedelta(seconds=self.ttl_seconds)
        try:
            if self.supersede:
                removed = await self.store.supersede(address)
                if removed:
                    logger.info("Superseded %d outstanding reset code(s) for %s", removed, address)
            row = await self.store.insert(address, code, expires_at)
            await self.store.commit()
        except PersistenceError:
            await self.store.rollback()
            raise
        logger.info("Issued reset code for %s (expires %s)", address, expires_at.isoformat())

        message = render_reset_code_email(code, lang or settings.default_language, self.ttl_seconds)
        await self.sender.send(address, message)
        return row


class CodeVerifier:
    """Verifies a submitted code and resets the password."""

    def __init__(
        self,
        store: CodeStore,
        updater: CredentialUpdater,
        *,
        min_password_length: int | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.updater = updater
        self.min_password_length = (
            min_password_length if min_password_length is not None else settings.password_min_length
        )
        self.clock = clock

    def validate(self, email: str, code: str, new_password: str, confirm_password: str) -> tuple[str, str]:
        """Input checks that run before any store access. Returns (email, code) normalized."""
        address = normalize_email(email)
        code = (code or "").strip()
        if not address or not code or not new_password or not confirm_password:
            raise ValidationError("missing_fields")
        if new_password != confirm_password:
            raise ValidationError("password_mismatch")
        if len(new_password) < self.min_password_length:
            raise ValidationError("password_too_short", min_length=self.min_password_length)
        return address, code

    async def verify_and_reset(
        self,
        email: str,
        code: str,
        new_password: str,
        confirm_password: str,
    ) -> None:
        """Consume a live code for ``email`` and set its account password.

        Raises ValidationError, InvalidOrExpiredCodeError (wrong and expired
        codes alike), CredentialUpdateError (code kept), or PersistenceError.
        """
        address, code = self.validate(email, code, new_password, confirm_password)
        now = self.clock()

        row = await self.store.claim(address, code, now)
        if row is not None and not is_valid(row, now):
            await self.store.rollback()
            row = None
        if row is None:
            logger.info("Rejected reset code for %s", address)
            raise InvalidOrExpiredCodeError()

        try:
            await self.updater.set_password(address, new_password)
        except CredentialUpdateError:
            await self.store.rollback()
            logger.warning("Password update failed for %s; reset code left live for retry", address)
            raise
        await self.store.commit()
        logger.info("Password reset completed for %s", address)


async def get_code_issuer(
    db: AsyncSession = Depends(get_db),
    sender: EmailSender = Depends(get_email_sender),
) -> CodeIssuer:
    """FastAPI dependency."""
    return CodeIssuer(CodeStore(db), sender)


async def get_code_verifier(db: AsyncSession = Depends(get_db)) -> CodeVerifier:
    """FastAPI dependency."""
    return CodeVerifier(CodeStore(db), CredentialUpdater(db))
