from __future__ import annotations

from fastapi import APIRouter, Depends

from bottlescan.core.deps import get_current_account
from bottlescan.models.account import Account
from bottlescan.schemas.auth import MeOut

router = APIRouter(tags=["Me"])


@router.get("/me", response_model=MeOut)
async def me(current: Account = Depends(get_current_account)) -> MeOut:
    client = current.client
    return MeOut(
        id=int(current.id),
        email=current.email,
        role=current.role,
        client_id=int(client.id) if client else None,
        client_name=client.client_name if client else None,
    )
