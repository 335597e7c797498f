# bottlescan/services/bottle_check.py
from __future__ import annotations

import logging

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from bottlescan.models.bottle import Bottle
from bottlescan.models.campaign import Campaign
from bottlescan.models.coupon import Coupon
from bottlescan.models.redemption import Redemption
from bottlescan.services.errors import AlreadyUsed, BottleNotFound, InternalError, InvalidInput
from bottlescan.services.redemption import get_bottle_by_token

logger = logging.getLogger(__name__)

# The scanning UI matches on this exact string to show the "already used" view
USED_QR_MESSAGE = "Coupon redeemed from this QR"


def _bottle_dict(bottle: Bottle) -> dict:
    return {
        "id": bottle.id,
        "campaign_id": bottle.campaign_id,
        "qr_token": bottle.qr_token,
        "status": bottle.status,
        "scanned_at": bottle.scanned_at,
        "created_at": bottle.created_at,
    }


async def _has_redemption(db: AsyncSession, bottle_id: int) -> bool:
    res = await db.execute(
        select(Redemption.id)
        .join(Coupon, Coupon.id == Redemption.coupon_id)
        .where(Coupon.bottle_id == bottle_id)
        .limit(1)
    )
    return res.scalar_one_or_none() is not None


async def _bump_scan_counter(db: AsyncSession, campaign_id: int) -> None:
    # fire-and-forget: a failed increment never fails the check
    try:
        await db.execute(
            update(Campaign)
            .where(Campaign.id == campaign_id)
            .values(total_scans=Campaign.total_scans + 1)
            .execution_options(synchronize_session=False)
        )
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.warning("scan counter increment failed for campaign %s: %s", campaign_id, e)


async def check_bottle(db: AsyncSession, *, qr_token: str) -> dict:
    """
    Pre-flight before an OTP is sent. Read-only apart from the scan counter;
    the redemption engine's conditional update remains the real gate.
    """
    qr_token = (qr_token or "").strip()
    if not qr_token:
        raise InvalidInput("QR Token is required")

    try:
        bottle = await get_bottle_by_token(db, qr_token)
        if bottle is None:
            raise BottleNotFound()

        snapshot = _bottle_dict(bottle)
        used = bottle.status == "used" or await _has_redemption(db, bottle.id)
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error("bottle check failed for token %s: %s", qr_token, e)
        raise InternalError("System error") from e

    await _bump_scan_counter(db, snapshot["campaign_id"])

    if used:
        raise AlreadyUsed(USED_QR_MESSAGE, status_code=400)

    return snapshot
