# Copyright (C) 2024 DigitalMarket Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Pytest fixtures. Tests run against an in-memory SQLite database (aiosqlite)."""

import os
import re

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("EMAIL_BACKEND", "console")
os.environ.setdefault("JWT_SECRET", "test-secret")

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from digitalmarket_server.config import Settings
from digitalmarket_server.database import get_db
from digitalmarket_server.errors import ConfigurationError, DeliveryError
from digitalmarket_server.main import app
from digitalmarket_server.models import Base
from digitalmarket_server.rate_limit import reset_limits
from digitalmarket_server.services.email import EmailSender, get_email_sender

CODE_RE = re.compile(r"\b([1-9][0-9]{5})\b")


class RecordingSender(EmailSender):
    """Email sender that keeps messages in memory."""

    def __init__(self):
        super().__init__(Settings(email_backend="console"))
        self.sent = []
        self.configured = True
        self.fail = False

    def ensure_configured(self) -> None:
        if not self.configured:
            raise ConfigurationError()

    async def send(self, to, message) -> None:
        self.ensure_configured()
        if self.fail:
            raise DeliveryError()
        self.sent.append((to, message))

    def codes_sent_to(self, email: str) -> list[str]:
        found = [CODE_RE.search(m.text) for to, m in self.sent if to == email]
        return [match.group(1) for match in found if match]


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return async_sessionmaker(engine, expire_on_commit=False, autoflush=False)


@pytest.fixture
async def db(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture
def sender():
    return RecordingSender()


@pytest.fixture
async def client(session_maker, sender):
    async def override_get_db():
        async with session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_email_sender] = lambda: sender
    reset_limits()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
    reset_limits()
