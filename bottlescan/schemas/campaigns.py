# bottlescan/schemas/campaigns.py
from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class CampaignCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    location: str = Field(..., min_length=1, max_length=255)
    client_id: int
    start_date: datetime
    end_date: datetime

    coupon_prefix: Optional[str] = Field(default=None, pattern=r"^[A-Za-z0-9]{1,16}$")
    coupon_type: Optional[Literal["fixed", "random"]] = None
    coupon_min_value: Optional[int] = Field(default=None, ge=0)
    coupon_max_value: Optional[int] = Field(default=None, ge=0)


class CampaignUpdate(BaseModel):
    # status / is_active are owned by POST /admin/campaigns/status
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    location: Optional[str] = Field(default=None, min_length=1, max_length=255)
    client_id: Optional[int] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None

    coupon_prefix: Optional[str] = Field(default=None, pattern=r"^[A-Za-z0-9]{1,16}$")
    coupon_type: Optional[Literal["fixed", "random"]] = None
    coupon_min_value: Optional[int] = Field(default=None, ge=0)
    coupon_max_value: Optional[int] = Field(default=None, ge=0)


class CampaignOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    client_id: Optional[int]
    name: str
    description: Optional[str]
    location: Optional[str]
    status: str
    is_active: bool
    start_date: Optional[datetime]
    end_date: Optional[datetime]
    coupon_prefix: Optional[str]
    coupon_type: Optional[str]
    coupon_min_value: Optional[int]
    coupon_max_value: Optional[int]
    total_scans: int
    created_at: datetime
    updated_at: datetime


class CampaignListItemOut(BaseModel):
    id: int
    client_id: Optional[int] = None
    name: str
    location: Optional[str] = None
    status: str
    is_active: bool
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    total_scans: int = 0
    total_bottles: int = 0
    used_bottles: int = 0
    coupons_issued: int = 0
    coupons_redeemed: int = 0
    created_at: datetime


class CampaignStatusRequest(BaseModel):
    campaign_id: int
    status: str


class CampaignStatusOut(BaseModel):
    success: bool = True
    status: str
    message: Optional[str] = None


class CampaignStatsOut(BaseModel):
    total_bottles: int
    redeemed_bottles: int
    redemption_percentage: float
