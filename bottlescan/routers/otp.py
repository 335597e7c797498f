from __future__ import annotations

from fastapi import APIRouter, Depends

from bottlescan.schemas.redeem import OtpSendOut, OtpSendRequest
from bottlescan.services.otp import OtpService, get_otp_service

router = APIRouter(prefix="/otp", tags=["OTP"])


@router.post("/send", response_model=OtpSendOut)
async def send_otp(
    payload: OtpSendRequest,
    otp: OtpService = Depends(get_otp_service),
):
    result = await otp.send_otp(payload.phone)
    return OtpSendOut(success=result.success, message=result.message)
