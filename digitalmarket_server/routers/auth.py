# Copyright (C) 2024 DigitalMarket Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Authentication API routes: accounts, login, password reset."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from digitalmarket_server.api.schemas import (
    ForgotPasswordRequest,
    MessageResponse,
    ResetPasswordRequest,
    Token,
    UserCreate,
    UserLogin,
    UserResponse,
)
from digitalmarket_server.auth import (
    create_access_token,
    get_current_user_id,
    normalize_email,
    verify_password,
)
from digitalmarket_server.config import settings
from digitalmarket_server.database import get_db
from digitalmarket_server.errors import AuthenticationError, ConflictError, ValidationError
from digitalmarket_server.i18n import get_language, translate
from digitalmarket_server.models import User
from digitalmarket_server.rate_limit import check_email_rate_limit, rate_limit_auth_dep
from digitalmarket_server.services.accounts import create_user
from digitalmarket_server.services.email import EmailSender, get_email_sender
from digitalmarket_server.services.notifications import notify_admins_new_user, send_welcome
from digitalmarket_server.services.password_reset import (
    CodeIssuer,
    CodeVerifier,
    get_code_issuer,
    get_code_verifier,
    validate_email_address,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"], dependencies=[Depends(rate_limit_auth_dep)])


@router.post("/login", response_model=Token)
async def login(
    data: UserLogin,
    db: AsyncSession = Depends(get_db),
) -> Token:
    """Authenticate by email and password and return a JWT."""
    result = await db.execute(
        select(User).where(User.email == normalize_email(data.email), User.is_active == True)  # noqa: E712
    )
    user = result.scalar_one_or_none()
    if not user or not verify_password(data.password, user.password_hash):
        raise AuthenticationError()
    token = create_access_token({"sub": str(user.id)})
    return Token(access_token=token)


@router.post("/register", response_model=UserResponse)
async def register(
    data: UserCreate,
    db: AsyncSession = Depends(get_db),
    sender: EmailSender = Depends(get_email_sender),
    lang: str = Depends(get_language),
) -> UserResponse:
    """Create an account. Sends a welcome email and notifies admins (best-effort)."""
    username = data.username.strip()
    if not username:
        raise ValidationError("username_required")
    if len(username) > 64:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Username too long")
    email = validate_email_address(data.email)
    if len(data.password) < settings.password_min_length:
        raise ValidationError("password_too_short", min_length=settings.password_min_length)

    result = await db.execute(select(User).where(User.email == email))
    if result.scalar_one_or_none():
        raise ConflictError("email_taken")
    result = await db.execute(select(User).where(User.username == username))
    if result.scalar_one_or_none():
        raise ConflictError("username_taken")

    user = await create_user(db, username, email, data.password)
    logger.info("Registered user %s", user.email)

    await send_welcome(sender, user, lang)
    await notify_admins_new_user(db, sender, user, lang)
    return UserResponse.model_validate(user)


@router.get("/me", response_model=UserResponse)
async def get_me(
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> UserResponse:
    """Get current user profile."""
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return UserResponse.model_validate(user)


@router.post("/forgot-password", response_model=MessageResponse)
async def forgot_password(
    data: ForgotPasswordRequest,
    issuer: CodeIssuer = Depends(get_code_issuer),
    lang: str = Depends(get_language),
) -> MessageResponse:
    """Email a 6-digit reset code. Issued whether or not the email has an account."""
    await issuer.request_reset(data.email, lang)
    return MessageResponse(message=translate("reset_code_sent", lang))


@router.post("/reset-password", response_model=MessageResponse)
async def reset_password(
    data: ResetPasswordRequest,
    request: Request,
    verifier: CodeVerifier = Depends(get_code_verifier),
    lang: str = Depends(get_language),
) -> MessageResponse:
    """Set a new password using the emailed code. The code is consumed on success."""
    check_email_rate_limit(request, request.url.path.rstrip("/"), normalize_email(data.email))
    await verifier.verify_and_reset(data.email, data.code, data.new_password, data.confirm_password)
    return MessageResponse(message=translate("password_reset_done", lang))
