# bottlescan/schemas/redeem.py
from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class RedeemRequest(BaseModel):
    phone: str = Field(..., min_length=1)
    otp: str = Field(..., min_length=1)
    qr_token: str = Field(..., min_length=1)
    name: Optional[str] = Field(default=None, max_length=255)


class RedeemOut(BaseModel):
    success: bool = True
    coupon_code: str
    value: Optional[int] = None


class BottleCheckRequest(BaseModel):
    qr_token: str = Field(..., min_length=1)


class BottleOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    campaign_id: int
    qr_token: str
    status: str
    scanned_at: Optional[datetime] = None
    created_at: datetime


class BottleCheckOut(BaseModel):
    success: bool = True
    bottle: BottleOut


class MarkRedeemedRequest(BaseModel):
    # the checkout UI historically posted "coupon_code"
    code: str = Field(..., min_length=1, validation_alias=AliasChoices("code", "coupon_code"))


class CouponOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    code: str
    campaign_id: int
    bottle_id: int
    user_id: int
    status: str
    discount_value: Optional[int] = None
    generated_at: datetime
    redeemed_at: Optional[datetime] = None


class MarkRedeemedOut(BaseModel):
    success: bool = True
    message: str = "Coupon marked as redeemed"
    coupon: CouponOut


class OtpSendRequest(BaseModel):
    phone: str = Field(..., min_length=1)


class OtpSendOut(BaseModel):
    success: bool
    message: str
