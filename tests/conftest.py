from __future__ import annotations

import os

# Settings are read at import time
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("JWT_SECRET", "test-secret-not-for-production")
os.environ["CRON_SECRET"] = "cron-test-secret"
os.environ["TWO_FACTOR_API_KEY"] = ""

import logging

import httpx
import pytest
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

import bottlescan.models  # noqa: F401
from bottlescan.core.db import Base, get_db
from bottlescan.core.security import create_access_token
from bottlescan.main import app
from bottlescan.models.account import Account, Client
from bottlescan.services.accounts import create_account, create_client_account
from bottlescan.services.otp import get_otp_service
from tests.factories import FakeOtp


@pytest.fixture
async def engine(tmp_path):
    eng = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        connect_args={"timeout": 30},
    )

    @event.listens_for(eng.sync_engine, "connect")
    def _enable_fk(dbapi_conn, _):
        cur = dbapi_conn.cursor()
        cur.execute("PRAGMA foreign_keys=ON")
        cur.close()

    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def fake_otp():
    return FakeOtp()


@pytest.fixture
async def client(session_factory, fake_otp):
    async def _get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_otp_service] = lambda: fake_otp

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def qr_export_dir(tmp_path, monkeypatch):
    from bottlescan.core.config import settings

    target = tmp_path / "qr_exports"
    monkeypatch.setattr(settings, "QR_EXPORT_DIR", str(target))
    return target


@pytest.fixture
def app_logs(caplog):
    # the bottlescan logger does not propagate to root
    logger = logging.getLogger("bottlescan")
    logger.addHandler(caplog.handler)
    yield caplog
    logger.removeHandler(caplog.handler)


# -------------------------
# data helpers
# -------------------------
@pytest.fixture
async def admin_account(db) -> Account:
    return await create_account(db, email="admin@example.com", password="admin-pass-123", role="admin")


@pytest.fixture
async def brand(db) -> Client:
    return await create_client_account(
        db, client_name="Akua Water", email="brand@example.com", password="brand-pass-123"
    )


@pytest.fixture
def admin_headers(admin_account) -> dict:
    token = create_access_token(account_id=admin_account.id, role="admin")
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def client_headers(brand) -> dict:
    token = create_access_token(account_id=brand.account_id, role="client")
    return {"Authorization": f"Bearer {token}"}


