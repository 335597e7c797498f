from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from bottlescan.core.db import get_db
from bottlescan.core.deps import require_admin
from bottlescan.models.account import Account
from bottlescan.schemas.auth import ClientCreate, ClientCreatedOut, ClientOut
from bottlescan.services.accounts import create_client_account, list_clients

router = APIRouter(prefix="/admin/clients", tags=["Admin Clients"])


@router.get("", response_model=list[ClientOut])
async def get_clients(
    db: AsyncSession = Depends(get_db),
    _: Account = Depends(require_admin),
):
    return await list_clients(db)


@router.post("", response_model=ClientCreatedOut)
async def create_client(
    payload: ClientCreate,
    db: AsyncSession = Depends(get_db),
    _: Account = Depends(require_admin),
):
    client = await create_client_account(
        db,
        client_name=payload.client_name,
        email=payload.email,
        password=payload.password,
    )
    return ClientCreatedOut(client_id=int(client.id))
