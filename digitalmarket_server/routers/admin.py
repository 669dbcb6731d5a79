# Copyright (C) 2024 DigitalMarket Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Admin API - reset code housekeeping. Requires admin user."""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from digitalmarket_server.api.schemas import PurgeResponse
from digitalmarket_server.auth import require_admin
from digitalmarket_server.database import get_db
from digitalmarket_server.services.code_store import CodeStore
from digitalmarket_server.services.password_reset import utcnow

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


@router.post("/password-resets/purge", response_model=PurgeResponse)
async def purge_expired_reset_codes(
    _user_id: int = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> PurgeResponse:
    """Delete reset codes whose expiry has passed. Admin only."""
    store = CodeStore(db)
    deleted = await store.purge_expired(utcnow())
    await store.commit()
    logger.info("Purged %d expired reset code(s)", deleted)
    return PurgeResponse(deleted=deleted)
