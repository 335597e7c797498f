from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from bottlescan.core.db import get_db
from bottlescan.core.deps import get_role, require_staff
from bottlescan.models.account import Account, Client
from bottlescan.schemas.redeem import CouponOut, MarkRedeemedOut, MarkRedeemedRequest
from bottlescan.services.redemption import mark_redeemed

router = APIRouter(prefix="/coupons", tags=["Coupons"])


@router.post("/mark-redeemed", response_model=MarkRedeemedOut)
async def coupons_mark_redeemed(
    payload: MarkRedeemedRequest,
    db: AsyncSession = Depends(get_db),
    current: Account = Depends(require_staff),
):
    client_id = None
    if get_role(current) == "client":
        # store terminals only see their own brand's coupons
        res = await db.execute(select(Client.id).where(Client.account_id == current.id))
        client_id = res.scalar_one_or_none() or -1

    coupon = await mark_redeemed(db, code=payload.code, client_id=client_id)
    return MarkRedeemedOut(coupon=CouponOut.model_validate(coupon))
