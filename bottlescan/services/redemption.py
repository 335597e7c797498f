# bottlescan/services/redemption.py
"""
Redemption engine: scanned QR token + verified phone -> single-use coupon,
and the in-store step that spends the coupon.

Both claims (bottle unused -> used, coupon active -> redeemed) are single
conditional UPDATEs; a zero row count means another request won the race.
The bottle claim and the coupon insert share one transaction, so a failed
insert leaves the bottle unused.
"""
from __future__ import annotations

import logging
import secrets
import string
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from sqlalchemy import select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from bottlescan.core.clock import utcnow
from bottlescan.core.config import settings
from bottlescan.models.bottle import Bottle
from bottlescan.models.campaign import Campaign
from bottlescan.models.coupon import Coupon
from bottlescan.models.redemption import Redemption
from bottlescan.models.user import User
from bottlescan.services.campaign_status import assert_campaign_redeemable
from bottlescan.services.errors import (
    AlreadyRedeemed,
    AlreadyRedeemedForCampaign,
    AlreadyUsed,
    BottleNotFound,
    CampaignNotFound,
    InternalError,
    InvalidCode,
    InvalidInput,
    InvalidOTP,
)
from bottlescan.services.otp import OtpValidation
from bottlescan.services.phone import normalize_phone

logger = logging.getLogger(__name__)

CODE_ALPHABET = string.ascii_uppercase + string.digits
DEFAULT_DISPLAY_NAME = "Anonymous"


class OtpValidator(Protocol):
    async def validate_otp(self, phone: str, code: str) -> OtpValidation: ...


@dataclass
class RedeemResult:
    coupon_code: str
    value: int | None
    campaign_id: int
    bottle_id: int
    user_id: int


def generate_coupon_code(prefix: str | None = None, length: int | None = None) -> str:
    prefix = (prefix or settings.COUPON_CODE_PREFIX).upper()
    n = length or settings.COUPON_CODE_LENGTH
    return f"{prefix}-" + "".join(secrets.choice(CODE_ALPHABET) for _ in range(n))


def pick_discount_value(campaign: Campaign) -> int | None:
    lo = campaign.coupon_min_value
    hi = campaign.coupon_max_value

    if lo is None and hi is None:
        return None
    if campaign.coupon_type == "random" and lo is not None and hi is not None and hi > lo:
        return lo + secrets.randbelow(hi - lo + 1)
    return lo if lo is not None else hi


# -------------------------
# store helpers
# -------------------------
async def get_bottle_by_token(db: AsyncSession, qr_token: str) -> Bottle | None:
    res = await db.execute(
        select(Bottle).where(Bottle.qr_token == qr_token).execution_options(populate_existing=True)
    )
    return res.scalar_one_or_none()


def _insert_for(db: AsyncSession):
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert
    if dialect == "sqlite":
        return sqlite.insert
    raise InternalError(f"Unsupported database dialect: {dialect}")


async def upsert_user(db: AsyncSession, *, phone: str, name: str | None) -> User:
    """
    Find-or-create on the unique phone column in one statement, so two
    first-time scans from the same number cannot create two users.
    """
    insert = _insert_for(db)
    stmt = (
        insert(User)
        .values(phone=phone, name=(name or "").strip() or DEFAULT_DISPLAY_NAME, created_at=utcnow())
        .on_conflict_do_nothing(index_elements=["phone"])
    )
    await db.execute(stmt)
    await db.commit()

    res = await db.execute(select(User).where(User.phone == phone))
    return res.scalar_one()


async def has_campaign_coupon(db: AsyncSession, *, user_id: int, campaign_id: int) -> bool:
    res = await db.execute(
        select(Coupon.id).where(Coupon.user_id == user_id, Coupon.campaign_id == campaign_id).limit(1)
    )
    return res.scalar_one_or_none() is not None


async def _code_taken(db: AsyncSession, code: str) -> bool:
    res = await db.execute(select(Coupon.id).where(Coupon.code == code).limit(1))
    return res.scalar_one_or_none() is not None


async def _bottle_has_coupon(db: AsyncSession, bottle_id: int) -> bool:
    res = await db.execute(select(Coupon.id).where(Coupon.bottle_id == bottle_id).limit(1))
    return res.scalar_one_or_none() is not None


async def claim_bottle(db: AsyncSession, *, bottle_id: int, now: datetime) -> bool:
    """unused -> used compare-and-swap. Does not commit."""
    res = await db.execute(
        update(Bottle)
        .where(Bottle.id == bottle_id, Bottle.status == "unused")
        .values(status="used", scanned_at=now)
        .execution_options(synchronize_session=False)
    )
    return res.rowcount == 1


async def _rollback_claim(db: AsyncSession, bottle_id: int) -> None:
    try:
        await db.rollback()
    except SQLAlchemyError as e:
        logger.critical(
            "bottle %s may be marked used without a coupon (rollback failed): %s; manual reconciliation required",
            bottle_id,
            e,
        )
        raise InternalError() from e


async def _claim_and_issue(
    db: AsyncSession,
    *,
    bottle_id: int,
    campaign_id: int,
    user_id: int,
    prefix: str | None,
    value: int | None,
    now: datetime,
) -> str:
    max_attempts = max(1, settings.COUPON_CODE_MAX_ATTEMPTS)

    for attempt in range(1, max_attempts + 1):
        code = generate_coupon_code(prefix)
        try:
            if not await claim_bottle(db, bottle_id=bottle_id, now=now):
                await db.rollback()
                logger.warning("bottle %s claim lost to a concurrent request", bottle_id)
                raise AlreadyUsed()

            db.add(
                Coupon(
                    code=code,
                    bottle_id=bottle_id,
                    campaign_id=campaign_id,
                    user_id=user_id,
                    status="active",
                    discount_value=value,
                    generated_at=now,
                )
            )
            await db.flush()
            await db.commit()
            return code

        except IntegrityError as e:
            await _rollback_claim(db, bottle_id)

            if await has_campaign_coupon(db, user_id=user_id, campaign_id=campaign_id):
                raise AlreadyRedeemedForCampaign() from e
            if await _bottle_has_coupon(db, bottle_id):
                raise AlreadyUsed() from e
            if await _code_taken(db, code):
                logger.warning("coupon code collision on attempt %s/%s", attempt, max_attempts)
                continue

            logger.error("coupon insert for bottle %s rejected by store: %s", bottle_id, e)
            raise InternalError() from e

        except SQLAlchemyError as e:
            await _rollback_claim(db, bottle_id)
            logger.error("claim/issue for bottle %s failed and was rolled back: %s", bottle_id, e)
            raise InternalError() from e

    logger.error("no unique coupon code after %s attempts (bottle %s)", max_attempts, bottle_id)
    raise InternalError("Could not allocate a unique coupon code")


# -------------------------
# public operations
# -------------------------
async def redeem(
    db: AsyncSession,
    otp: OtpValidator,
    *,
    phone: str,
    otp_code: str,
    qr_token: str,
    display_name: str | None = None,
    now: datetime | None = None,
) -> RedeemResult:
    if not phone or not otp_code or not qr_token:
        raise InvalidInput()

    normalized = normalize_phone(phone)

    try:
        validation = await otp.validate_otp(normalized, otp_code)
        if not validation.valid:
            raise InvalidOTP(validation.message or None)

        bottle = await get_bottle_by_token(db, qr_token)
        if bottle is None:
            raise BottleNotFound()

        # advisory only; the conditional update below decides
        if bottle.status == "used":
            raise AlreadyUsed()

        res = await db.execute(select(Campaign).where(Campaign.id == bottle.campaign_id))
        campaign = res.scalar_one_or_none()
        if campaign is None:
            raise CampaignNotFound()

        now = now or utcnow()
        assert_campaign_redeemable(campaign, now=now)

        user = await upsert_user(db, phone=normalized, name=display_name)

        # early exit; uq_coupons_user_campaign is the real guard
        if await has_campaign_coupon(db, user_id=user.id, campaign_id=campaign.id):
            raise AlreadyRedeemedForCampaign()

        bottle_id, campaign_id, user_id = bottle.id, campaign.id, user.id
        value = pick_discount_value(campaign)
        prefix = campaign.coupon_prefix

    except SQLAlchemyError as e:
        await db.rollback()
        logger.error("redeem lookup failed for token %s: %s", qr_token, e)
        raise InternalError() from e

    code = await _claim_and_issue(
        db,
        bottle_id=bottle_id,
        campaign_id=campaign_id,
        user_id=user_id,
        prefix=prefix,
        value=value,
        now=now,
    )

    logger.info("coupon %s issued: bottle=%s campaign=%s user=%s", code, bottle_id, campaign_id, user_id)
    return RedeemResult(
        coupon_code=code,
        value=value,
        campaign_id=campaign_id,
        bottle_id=bottle_id,
        user_id=user_id,
    )


async def mark_redeemed(
    db: AsyncSession,
    *,
    code: str,
    client_id: int | None = None,
    now: datetime | None = None,
) -> Coupon:
    """
    In-store spend. ``client_id`` scopes the lookup to one brand's campaigns
    (a client terminal cannot redeem another brand's coupon).
    """
    code = (code or "").strip().upper()
    if not code:
        raise InvalidInput("Coupon code is required")

    now = now or utcnow()

    try:
        res = await db.execute(
            select(Coupon, Campaign)
            .join(Campaign, Campaign.id == Coupon.campaign_id)
            .where(Coupon.code == code)
            .execution_options(populate_existing=True)
        )
        row = res.first()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error("coupon lookup failed for %s: %s", code, e)
        raise InternalError("System error") from e

    if row is None:
        raise InvalidCode()

    coupon, campaign = row
    if client_id is not None and campaign.client_id != client_id:
        raise InvalidCode()

    if coupon.status != "active":
        raise AlreadyRedeemed()

    assert_campaign_redeemable(campaign, now=now, require_started=False)

    coupon_id = coupon.id
    try:
        res = await db.execute(
            update(Coupon)
            .where(Coupon.id == coupon_id, Coupon.status == "active")
            .values(status="redeemed", redeemed_at=now)
            .execution_options(synchronize_session=False)
        )
        if res.rowcount == 0:
            await db.rollback()
            logger.warning("coupon %s redeemed concurrently at another terminal", code)
            raise AlreadyRedeemed()
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error("coupon %s redeem update failed: %s", code, e)
        raise InternalError("System error") from e

    # The coupon status is authoritative; the audit row is best effort.
    try:
        db.add(Redemption(coupon_id=coupon_id, redeemed_at=now))
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.warning("coupon %s redeemed but audit row was not written: %s", code, e)

    await db.refresh(coupon)
    logger.info("coupon %s redeemed in store", code)
    return coupon
