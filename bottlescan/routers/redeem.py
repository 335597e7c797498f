from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from bottlescan.core.db import get_db
from bottlescan.schemas.redeem import BottleCheckOut, BottleCheckRequest, RedeemOut, RedeemRequest
from bottlescan.services.bottle_check import check_bottle
from bottlescan.services.otp import OtpService, get_otp_service
from bottlescan.services.redemption import redeem

router = APIRouter(tags=["Redeem"])


@router.post("/redeem", response_model=RedeemOut)
async def redeem_bottle(
    payload: RedeemRequest,
    db: AsyncSession = Depends(get_db),
    otp: OtpService = Depends(get_otp_service),
):
    result = await redeem(
        db,
        otp,
        phone=payload.phone,
        otp_code=payload.otp,
        qr_token=payload.qr_token,
        display_name=payload.name,
    )
    return RedeemOut(coupon_code=result.coupon_code, value=result.value)


@router.post("/bottles/check", response_model=BottleCheckOut)
async def bottles_check(
    payload: BottleCheckRequest,
    db: AsyncSession = Depends(get_db),
):
    bottle = await check_bottle(db, qr_token=payload.qr_token)
    return BottleCheckOut(bottle=bottle)
