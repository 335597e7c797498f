# bottlescan/schemas/dashboard.py
from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel


class RecentActivityOut(BaseModel):
    redeemed_at: Optional[datetime] = None
    code: str = ""
    discount_value: Optional[int] = None
    campaign_name: str = ""
    phone: str = ""


class AdminStatsOut(BaseModel):
    total_campaigns: int = 0
    active_campaigns: int = 0
    total_qr_generated: int = 0
    total_redeemed: int = 0
    recent_activity: List[RecentActivityOut] = []


class RedemptionRowOut(BaseModel):
    id: int
    qr_token: str = "N/A"
    campaign_name: str = "Unknown"
    phone: str = "Unknown"
    coupon_code: str = "-"
    coupon_status: str
    discount_value: Optional[int] = None
    redeemed_at: Optional[datetime] = None


class ClientStatsOut(BaseModel):
    total_campaigns: int = 0
    active_campaigns: int = 0
    total_scans: int = 0
    total_bottles: int = 0
    coupons_issued: int = 0
    coupons_redeemed: int = 0
    redemption_rate: float = 0.0


class ClientCouponOut(BaseModel):
    id: int
    code: str
    campaign_id: int
    campaign_name: str = ""
    status: str
    discount_value: Optional[int] = None
    generated_at: datetime
    redeemed_at: Optional[datetime] = None
