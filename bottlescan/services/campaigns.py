# bottlescan/services/campaigns.py
from __future__ import annotations

import logging

from fastapi import HTTPException
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from bottlescan.core.clock import as_utc, utcnow
from bottlescan.models.account import Client
from bottlescan.models.bottle import Bottle
from bottlescan.models.campaign import Campaign
from bottlescan.models.coupon import Coupon
from bottlescan.models.qr_job import QrJob
from bottlescan.models.redemption import Redemption
from bottlescan.schemas.campaigns import CampaignCreate, CampaignUpdate
from bottlescan.services.campaign_status import validate_activation

logger = logging.getLogger(__name__)

# required at creation, so PATCH may change them but never clear them
NOT_NULL_FIELDS = ("name", "location")


async def _ensure_client(db: AsyncSession, client_id: int) -> None:
    res = await db.execute(select(Client.id).where(Client.id == client_id))
    if res.scalar_one_or_none() is None:
        raise HTTPException(status_code=404, detail="Client not found")


def _check_coupon_values(min_value: int | None, max_value: int | None) -> None:
    if min_value is not None and max_value is not None and max_value < min_value:
        raise HTTPException(status_code=400, detail="coupon_max_value must be >= coupon_min_value")


async def admin_create_campaign(db: AsyncSession, *, data: CampaignCreate) -> Campaign:
    start = as_utc(data.start_date)
    end = as_utc(data.end_date)

    if start >= end:
        raise HTTPException(status_code=400, detail="Start date must be before end date")
    if end < utcnow():
        raise HTTPException(status_code=400, detail="Cannot create campaign entirely in the past")

    _check_coupon_values(data.coupon_min_value, data.coupon_max_value)
    await _ensure_client(db, data.client_id)

    campaign = Campaign(
        name=data.name.strip(),
        description=data.description,
        location=data.location.strip(),
        client_id=data.client_id,
        status="draft",
        is_active=False,
        start_date=start,
        end_date=end,
        coupon_prefix=data.coupon_prefix.upper() if data.coupon_prefix else None,
        coupon_type=data.coupon_type,
        coupon_min_value=data.coupon_min_value,
        coupon_max_value=data.coupon_max_value,
    )

    try:
        db.add(campaign)
        await db.commit()
        await db.refresh(campaign)
    except Exception:
        await db.rollback()
        raise

    logger.info("campaign %s created for client %s", campaign.id, campaign.client_id)
    return campaign


async def admin_get_campaign(db: AsyncSession, *, campaign_id: int, client_id: int | None = None) -> Campaign:
    stmt = select(Campaign).where(Campaign.id == campaign_id)
    if client_id is not None:
        stmt = stmt.where(Campaign.client_id == client_id)

    res = await db.execute(stmt)
    campaign = res.scalar_one_or_none()
    if not campaign:
        raise HTTPException(status_code=404, detail="Campaign not found")
    return campaign


async def admin_update_campaign(db: AsyncSession, *, campaign_id: int, data: CampaignUpdate) -> Campaign:
    campaign = await admin_get_campaign(db, campaign_id=campaign_id)
    fields = data.model_dump(exclude_unset=True)

    for key in NOT_NULL_FIELDS:
        if key in fields and fields[key] is None:
            raise HTTPException(status_code=400, detail=f"{key} cannot be null")

    if "client_id" in fields and fields["client_id"] is not None:
        await _ensure_client(db, fields["client_id"])

    start = as_utc(fields.get("start_date", campaign.start_date))
    end = as_utc(fields.get("end_date", campaign.end_date))

    if "start_date" in fields or "end_date" in fields:
        if campaign.status == "active":
            # a running campaign must keep a valid, unexpired window
            validate_activation(start, end)
        elif start is not None and end is not None and start >= end:
            raise HTTPException(status_code=400, detail="Start date must be before end date")

    _check_coupon_values(
        fields.get("coupon_min_value", campaign.coupon_min_value),
        fields.get("coupon_max_value", campaign.coupon_max_value),
    )

    for key, value in fields.items():
        if key in ("start_date", "end_date"):
            value = as_utc(value)
        elif key == "coupon_prefix" and value:
            value = value.upper()
        setattr(campaign, key, value)

    try:
        await db.commit()
        await db.refresh(campaign)
        return campaign
    except Exception:
        await db.rollback()
        raise


async def admin_delete_campaign(db: AsyncSession, *, campaign_id: int) -> None:
    """Campaign owns its bottles, coupons, audit rows and QR jobs."""
    await admin_get_campaign(db, campaign_id=campaign_id)

    coupon_ids = select(Coupon.id).where(Coupon.campaign_id == campaign_id)

    try:
        await db.execute(delete(Redemption).where(Redemption.coupon_id.in_(coupon_ids)))
        await db.execute(delete(Coupon).where(Coupon.campaign_id == campaign_id))
        await db.execute(delete(Bottle).where(Bottle.campaign_id == campaign_id))
        await db.execute(delete(QrJob).where(QrJob.campaign_id == campaign_id))
        await db.execute(delete(Campaign).where(Campaign.id == campaign_id))
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info("campaign %s deleted", campaign_id)
