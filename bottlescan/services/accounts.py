from __future__ import annotations

import logging

from fastapi import HTTPException
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from bottlescan.core.security import hash_password, verify_password
from bottlescan.models.account import Account, Client

logger = logging.getLogger(__name__)


def _norm_email(email: str) -> str:
    return (email or "").strip().lower()


async def authenticate(db: AsyncSession, *, email: str, password: str) -> Account:
    res = await db.execute(select(Account).where(Account.email == _norm_email(email)))
    account = res.scalar_one_or_none()

    if not account:
        raise HTTPException(status_code=401, detail="Invalid email or password")

    if not account.is_active:
        raise HTTPException(status_code=401, detail="Account is inactive")

    if not verify_password(password, account.password_hash):
        raise HTTPException(status_code=401, detail="Invalid email or password")

    return account


async def create_account(db: AsyncSession, *, email: str, password: str, role: str) -> Account:
    account = Account(
        email=_norm_email(email),
        password_hash=hash_password(password),
        role=role,
        is_active=True,
    )
    try:
        db.add(account)
        await db.commit()
        await db.refresh(account)
    except IntegrityError:
        await db.rollback()
        raise HTTPException(status_code=400, detail="Email already registered")
    return account


async def create_client_account(db: AsyncSession, *, client_name: str, email: str, password: str) -> Client:
    """Account (role=client) and its Client profile are created together or not at all."""
    email = _norm_email(email)

    res = await db.execute(select(Account.id).where(Account.email == email))
    if res.scalar_one_or_none() is not None:
        raise HTTPException(status_code=400, detail="Email already registered")

    account = Account(email=email, password_hash=hash_password(password), role="client", is_active=True)
    try:
        db.add(account)
        await db.flush()

        client = Client(client_name=client_name.strip(), account_id=account.id)
        db.add(client)
        await db.commit()
        await db.refresh(client)
    except IntegrityError:
        await db.rollback()
        raise HTTPException(status_code=400, detail="Email already registered")
    except Exception:
        await db.rollback()
        raise

    logger.info("client %s created (account %s)", client.id, client.account_id)
    return client


async def list_clients(db: AsyncSession) -> list[Client]:
    res = await db.execute(select(Client).order_by(Client.created_at.desc(), Client.id.desc()))
    return list(res.scalars().all())
