from __future__ import annotations

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from bottlescan.core.db import get_db
from bottlescan.core.security import TokenError, decode_token
from bottlescan.models.account import Account, Client

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")


async def get_current_account(
    token: str = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
) -> Account:
    try:
        payload = decode_token(token)
    except TokenError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )

    if payload.get("type") != "access":
        raise HTTPException(status_code=401, detail="Not an access token")

    try:
        account_id = int(payload.get("sub"))
    except (TypeError, ValueError):
        raise HTTPException(status_code=401, detail="Invalid account id in token")

    res = await db.execute(select(Account).where(Account.id == account_id))
    account = res.scalar_one_or_none()

    if not account:
        raise HTTPException(status_code=401, detail="Account not found")
    if not account.is_active:
        raise HTTPException(status_code=401, detail="Account inactive")

    return account


def get_role(account: Account | None) -> str | None:
    # Role always comes from the stored account, never from token claims
    if account is None or account.role not in ("admin", "client"):
        return None
    return account.role


def require_admin(current: Account = Depends(get_current_account)) -> Account:
    if get_role(current) != "admin":
        raise HTTPException(status_code=403, detail="Forbidden: Admin access required")
    return current


def require_staff(current: Account = Depends(get_current_account)) -> Account:
    if get_role(current) is None:
        raise HTTPException(status_code=403, detail="Forbidden")
    return current


async def require_client(
    current: Account = Depends(get_current_account),
    db: AsyncSession = Depends(get_db),
) -> Client:
    if get_role(current) != "client":
        raise HTTPException(status_code=403, detail="Forbidden: Client access required")

    res = await db.execute(select(Client).where(Client.account_id == current.id))
    client = res.scalar_one_or_none()
    if client is None:
        raise HTTPException(status_code=403, detail="No client profile for this account")
    return client
