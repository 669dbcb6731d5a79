# Copyright (C) 2024 DigitalMarket Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Reset code issuance and verification against the store."""

import asyncio
import re
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from digitalmarket_server.auth import hash_password, verify_password
from digitalmarket_server.errors import (
    ConfigurationError,
    CredentialUpdateError,
    DeliveryError,
    InvalidOrExpiredCodeError,
    ValidationError,
)
from digitalmarket_server.models import Base, PasswordReset, User
from digitalmarket_server.services.code_store import CodeStore
from digitalmarket_server.services.credentials import CredentialUpdater
from digitalmarket_server.services.password_reset import (
    CodeIssuer,
    CodeVerifier,
    generate_code,
    is_valid,
)

pytestmark = pytest.mark.anyio

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def clock():
    return NOW


async def add_user(db, email="a@example.com", password="oldpass1"):
    user = User(username=email.split("@")[0], email=email, password_hash=hash_password(password))
    db.add(user)
    await db.commit()
    return user


def make_issuer(db, sender, **kwargs):
    return CodeIssuer(CodeStore(db), sender, clock=clock, **kwargs)


def make_verifier(db, **kwargs):
    return CodeVerifier(CodeStore(db), CredentialUpdater(db), clock=clock, **kwargs)


def test_generate_code_is_six_digits_without_leading_zero():
    for _ in range(2000):
        assert re.fullmatch(r"[1-9][0-9]{5}", generate_code())


def test_is_valid_is_strict_and_accepts_naive_expiry():
    row = PasswordReset(email="a@example.com", code="123456", expires_at=NOW)
    assert not is_valid(row, NOW)
    assert is_valid(row, NOW - timedelta(seconds=1))
    row.expires_at = NOW.replace(tzinfo=None)
    assert is_valid(row, NOW - timedelta(microseconds=1))
    assert not is_valid(row, NOW + timedelta(seconds=1))


async def test_request_reset_stores_one_row_and_emails_code(db, sender):
    row = await make_issuer(db, sender).request_reset("A@Example.com ", "en")

    rows = (await db.execute(select(PasswordReset))).scalars().all()
    assert len(rows) == 1
    assert rows[0].email == "a@example.com"
    assert re.fullmatch(r"[1-9][0-9]{5}", rows[0].code)
    assert row.expires_at == NOW + timedelta(seconds=3600)
    assert sender.codes_sent_to("a@example.com") == [rows[0].code]
    assert "Reset your password" in sender.sent[0][1].subject


async def test_new_code_supersedes_outstanding_codes(db, sender):
    issuer = make_issuer(db, sender)
    first = (await issuer.request_reset("a@example.com")).code
    second = (await issuer.request_reset("a@example.com")).code

    store = CodeStore(db)
    assert await store.count_for("a@example.com") == 1
    assert await store.find_valid("a@example.com", second, NOW) is not None
    if first != second:
        assert await store.find_valid("a@example.com", first, NOW) is None


async def test_without_supersession_codes_coexist(db, sender):
    issuer = make_issuer(db, sender, supersede=False)
    first = (await issuer.request_reset("a@example.com")).code
    second = (await issuer.request_reset("a@example.com")).code

    store = CodeStore(db)
    assert await store.count_for("a@example.com") == 2
    assert await store.find_valid("a@example.com", first, NOW) is not None
    assert await store.find_valid("a@example.com", second, NOW) is not None


@pytest.mark.parametrize("email", ["", "   ", "not-an-email", "a@"])
async def test_request_reset_rejects_bad_email(db, sender, email):
    with pytest.raises(ValidationError):
        await make_issuer(db, sender).request_reset(email)
    assert (await db.execute(select(PasswordReset))).first() is None
    assert sender.sent == []


async def test_request_reset_without_email_credentials_stores_nothing(db, sender):
    sender.configured = False
    with pytest.raises(ConfigurationError):
        await make_issuer(db, sender).request_reset("a@example.com")
    assert await CodeStore(db).count_for("a@example.com") == 0


async def test_delivery_failure_leaves_stored_code(db, sender):
    sender.fail = True
    with pytest.raises(DeliveryError):
        await make_issuer(db, sender).request_reset("a@example.com")
    assert await CodeStore(db).count_for("a@example.com") == 1


async def test_unknown_code_is_rejected(db):
    await add_user(db)
    with pytest.raises(InvalidOrExpiredCodeError):
        await make_verifier(db).verify_and_reset("a@example.com", "123456", "newpass1", "newpass1")


async def test_expired_code_fails_like_unknown_code(db):
    await add_user(db)
    store = CodeStore(db)
    await store.insert("a@example.com", "654321", NOW - timedelta(seconds=1))
    await store.commit()

    with pytest.raises(InvalidOrExpiredCodeError) as expired:
        await make_verifier(db).verify_and_reset("a@example.com", "654321", "newpass1", "newpass1")
    with pytest.raises(InvalidOrExpiredCodeError) as unknown:
        await make_verifier(db).verify_and_reset("a@example.com", "111111", "newpass1", "newpass1")
    assert expired.value.code == unknown.value.code
    assert expired.value.message("en") == unknown.value.message("en")


async def test_code_resets_password_once(db, sender):
    await add_user(db)
    code = (await make_issuer(db, sender).request_reset("a@example.com")).code
    verifier = make_verifier(db)

    await verifier.verify_and_reset("a@example.com", code, "newpass1", "newpass1")

    user = (await db.execute(select(User).where(User.email == "a@example.com"))).scalar_one()
    await db.refresh(user)
    assert verify_password("newpass1", user.password_hash)
    assert await CodeStore(db).count_for("a@example.com") == 0

    with pytest.raises(InvalidOrExpiredCodeError):
        await verifier.verify_and_reset("a@example.com", code, "newpass2", "newpass2")


@pytest.mark.parametrize(
    "code, new_password, confirm, key",
    [
        ("123456", "newpass1", "newpass2", "password_mismatch"),
        ("123456", "abc", "abc", "password_too_short"),
        ("", "newpass1", "newpass1", "missing_fields"),
        ("123456", "", "", "missing_fields"),
        ("123456", "newpass1", "", "missing_fields"),
    ],
)
async def test_invalid_input_never_reaches_collaborators(code, new_password, confirm, key):
    store = AsyncMock(spec=CodeStore)
    updater = AsyncMock(spec=CredentialUpdater)
    verifier = CodeVerifier(store, updater, clock=clock)

    with pytest.raises(ValidationError) as exc:
        await verifier.verify_and_reset("a@example.com", code, new_password, confirm)

    assert exc.value.message_key == key
    assert store.mock_calls == []
    assert updater.mock_calls == []


async def test_too_short_message_names_minimum():
    verifier = CodeVerifier(AsyncMock(spec=CodeStore), AsyncMock(spec=CredentialUpdater), min_password_length=8)
    with pytest.raises(ValidationError) as exc:
        verifier.validate("a@example.com", "123456", "seven77", "seven77")
    assert "8" in exc.value.message("en")


async def test_credential_failure_keeps_code_for_retry(db, sender):
    # No account yet, so the identity update fails
    code = (await make_issuer(db, sender).request_reset("a@example.com")).code
    verifier = make_verifier(db)

    with pytest.raises(CredentialUpdateError):
        await verifier.verify_and_reset("a@example.com", code, "newpass1", "newpass1")
    assert await CodeStore(db).count_for("a@example.com") == 1

    await add_user(db)
    await verifier.verify_and_reset("a@example.com", code, "newpass1", "newpass1")
    assert await CodeStore(db).count_for("a@example.com") == 0


async def test_inactive_account_cannot_be_reset(db, sender):
    user = await add_user(db)
    user.is_active = False
    await db.commit()
    code = (await make_issuer(db, sender).request_reset("a@example.com")).code

    with pytest.raises(CredentialUpdateError):
        await make_verifier(db).verify_and_reset("a@example.com", code, "newpass1", "newpass1")


async def test_claim_succeeds_only_once(db):
    store = CodeStore(db)
    await store.insert("a@example.com", "246810", NOW + timedelta(minutes=5))
    await store.commit()

    claimed = await store.claim("a@example.com", "246810", NOW)
    assert claimed is not None and claimed.code == "246810"
    assert await store.claim("a@example.com", "246810", NOW) is None
    await store.commit()
    assert await store.count_for("a@example.com") == 0


@pytest.fixture
async def file_session_maker(tmp_path):
    """Sessions on separate connections to one database file, so transactions really interleave."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'resets.db'}", connect_args={"timeout": 30})
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, expire_on_commit=False, autoflush=False)
    await engine.dispose()


async def test_concurrent_verifications_yield_one_success(file_session_maker):
    async with file_session_maker() as db:
        await add_user(db)
        store = CodeStore(db)
        await store.insert("a@example.com", "246810", NOW + timedelta(minutes=5))
        await store.commit()

    async def attempt(password):
        async with file_session_maker() as session:
            await make_verifier(session).verify_and_reset("a@example.com", "246810", password, password)
        return password

    results = await asyncio.gather(attempt("firstpass1"), attempt("secondpass2"), return_exceptions=True)

    winners = [r for r in results if isinstance(r, str)]
    losers = [r for r in results if isinstance(r, InvalidOrExpiredCodeError)]
    assert len(winners) == 1, results
    assert len(losers) == 1, results
    async with file_session_maker() as db:
        assert await CodeStore(db).count_for("a@example.com") == 0
        user = (await db.execute(select(User).where(User.email == "a@example.com"))).scalar_one()
        assert verify_password(winners[0], user.password_hash)


async def test_claim_ignores_other_emails_and_expired_rows(db):
    store = CodeStore(db)
    await store.insert("a@example.com", "246810", NOW + timedelta(minutes=5))
    await store.insert("b@example.com", "135791", NOW - timedelta(minutes=5))
    await store.commit()

    assert await store.claim("b@example.com", "246810", NOW) is None
    assert await store.claim("b@example.com", "135791", NOW) is None
    assert await store.count_for("b@example.com") == 1


async def test_purge_expired_removes_only_expired_rows(db):
    store = CodeStore(db)
    await store.insert("a@example.com", "111111", NOW - timedelta(hours=2))
    await store.insert("b@example.com", "222222", NOW - timedelta(seconds=1))
    await store.insert("c@example.com", "333333", NOW + timedelta(hours=1))
    await store.commit()

    assert await store.purge_expired(NOW) == 2
    await store.commit()
    assert await store.count_for("c@example.com") == 1


async def test_end_to_end_reset_scenario(db, sender):
    await add_user(db, email="a@x.com")
    code = (await make_issuer(db, sender).request_reset("a@x.com")).code
    store = CodeStore(db)
    assert await store.count_for("a@x.com") == 1
    assert len(code) == 6

    verifier = make_verifier(db)
    wrong = "100000" if code != "100000" else "100001"
    with pytest.raises(InvalidOrExpiredCodeError):
        await verifier.verify_and_reset("a@x.com", wrong, "newpass1", "newpass1")
    assert await store.count_for("a@x.com") == 1

    await verifier.verify_and_reset("a@x.com", code, "newpass1", "newpass1")
    assert await store.count_for("a@x.com") == 0

    with pytest.raises(InvalidOrExpiredCodeError):
        await verifier.verify_and_reset("a@x.com", code, "newpass1", "newpass1")
