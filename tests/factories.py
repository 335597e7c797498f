from __future__ import annotations

import uuid
from datetime import timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from bottlescan.core.clock import utcnow
from bottlescan.models.bottle import Bottle
from bottlescan.models.campaign import Campaign
from bottlescan.models.coupon import Coupon
from bottlescan.models.user import User
from bottlescan.services.otp import OtpValidation

VALID_OTP = "123456"


class FakeOtp:
    """Accepts VALID_OTP for any phone."""

    def __init__(self):
        self.calls: list[tuple[str, str]] = []

    async def validate_otp(self, phone: str, code: str) -> OtpValidation:
        self.calls.append((phone, code))
        if code == VALID_OTP:
            return OtpValidation(True)
        return OtpValidation(False, "Invalid OTP")


async def make_campaign(
    db: AsyncSession,
    *,
    client_id: int | None = None,
    status: str = "active",
    starts_in: timedelta = timedelta(days=-1),
    ends_in: timedelta = timedelta(days=30),
    **fields,
) -> Campaign:
    now = utcnow()
    campaign = Campaign(
        name=fields.pop("name", "Summer Splash"),
        location=fields.pop("location", "Mumbai"),
        client_id=client_id,
        status=status,
        is_active=(status == "active"),
        start_date=now + starts_in,
        end_date=now + ends_in,
        **fields,
    )
    db.add(campaign)
    await db.commit()
    await db.refresh(campaign)
    return campaign


async def make_bottle(db: AsyncSession, campaign: Campaign, *, qr_token: str | None = None, status: str = "unused") -> Bottle:
    bottle = Bottle(campaign_id=campaign.id, qr_token=qr_token or str(uuid.uuid4()), status=status)
    db.add(bottle)
    await db.commit()
    await db.refresh(bottle)
    return bottle


async def make_coupon(
    db: AsyncSession,
    *,
    campaign: Campaign,
    phone: str,
    code: str,
    status: str = "active",
) -> Coupon:
    user = User(phone=phone, name="Seeded")
    db.add(user)
    await db.flush()

    bottle = Bottle(campaign_id=campaign.id, qr_token=str(uuid.uuid4()), status="used", scanned_at=utcnow())
    db.add(bottle)
    await db.flush()

    coupon = Coupon(code=code, bottle_id=bottle.id, campaign_id=campaign.id, user_id=user.id, status=status)
    db.add(coupon)
    await db.commit()
    await db.refresh(coupon)
    return coupon
