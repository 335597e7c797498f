# bottlescan/services/dashboard.py
from __future__ import annotations

from datetime import datetime

from fastapi import HTTPException
from sqlalchemy import and_, case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from bottlescan.core.clock import utcnow
from bottlescan.models.bottle import Bottle
from bottlescan.models.campaign import Campaign
from bottlescan.models.coupon import Coupon
from bottlescan.models.redemption import Redemption
from bottlescan.models.user import User


def _count_if(cond):
    return func.coalesce(func.sum(case((cond, 1), else_=0)), 0)


def _running_filter(now: datetime):
    return and_(
        Campaign.status == "active",
        Campaign.start_date <= now,
        Campaign.end_date >= now,
    )


async def campaign_rows(db: AsyncSession, *, client_id: int | None = None) -> list[dict]:
    """Campaign list with bottle / coupon counters, newest first."""
    bottles_sq = (
        select(
            Bottle.campaign_id.label("campaign_id"),
            func.count(Bottle.id).label("total_bottles"),
            _count_if(Bottle.status == "used").label("used_bottles"),
        )
        .group_by(Bottle.campaign_id)
        .subquery()
    )
    coupons_sq = (
        select(
            Coupon.campaign_id.label("campaign_id"),
            func.count(Coupon.id).label("coupons_issued"),
            _count_if(Coupon.status == "redeemed").label("coupons_redeemed"),
        )
        .group_by(Coupon.campaign_id)
        .subquery()
    )

    stmt = (
        select(
            Campaign,
            func.coalesce(bottles_sq.c.total_bottles, 0),
            func.coalesce(bottles_sq.c.used_bottles, 0),
            func.coalesce(coupons_sq.c.coupons_issued, 0),
            func.coalesce(coupons_sq.c.coupons_redeemed, 0),
        )
        .outerjoin(bottles_sq, bottles_sq.c.campaign_id == Campaign.id)
        .outerjoin(coupons_sq, coupons_sq.c.campaign_id == Campaign.id)
        .order_by(Campaign.created_at.desc(), Campaign.id.desc())
    )
    if client_id is not None:
        stmt = stmt.where(Campaign.client_id == client_id)

    res = await db.execute(stmt)
    items: list[dict] = []
    for c, total_bottles, used_bottles, issued, redeemed in res.all():
        items.append(
            {
                "id": int(c.id),
                "client_id": c.client_id,
                "name": c.name,
                "location": c.location,
                "status": c.status,
                "is_active": bool(c.is_active),
                "start_date": c.start_date,
                "end_date": c.end_date,
                "total_scans": int(c.total_scans or 0),
                "total_bottles": int(total_bottles),
                "used_bottles": int(used_bottles),
                "coupons_issued": int(issued),
                "coupons_redeemed": int(redeemed),
                "created_at": c.created_at,
            }
        )
    return items


async def campaign_stats(db: AsyncSession, *, campaign_id: int, client_id: int | None = None) -> dict:
    stmt = select(Campaign.id).where(Campaign.id == campaign_id)
    if client_id is not None:
        stmt = stmt.where(Campaign.client_id == client_id)
    if (await db.execute(stmt)).scalar_one_or_none() is None:
        raise HTTPException(status_code=404, detail="Campaign not found")

    res = await db.execute(
        select(func.count(Bottle.id), _count_if(Bottle.status == "used")).where(Bottle.campaign_id == campaign_id)
    )
    total, redeemed = res.one()
    total = int(total or 0)
    redeemed = int(redeemed or 0)

    return {
        "total_bottles": total,
        "redeemed_bottles": redeemed,
        "redemption_percentage": round(redeemed / total * 100, 1) if total else 0.0,
    }


async def admin_stats(db: AsyncSession, *, now: datetime | None = None) -> dict:
    now = now or utcnow()

    total_campaigns = (await db.execute(select(func.count(Campaign.id)))).scalar_one()
    active_campaigns = (
        await db.execute(select(func.count(Campaign.id)).where(_running_filter(now)))
    ).scalar_one()
    total_bottles = (await db.execute(select(func.count(Bottle.id)))).scalar_one()
    total_redeemed = (
        await db.execute(select(func.count(Coupon.id)).where(Coupon.status == "redeemed"))
    ).scalar_one()

    recent = await db.execute(
        select(Redemption.redeemed_at, Coupon.code, Coupon.discount_value, Campaign.name, User.phone)
        .join(Coupon, Coupon.id == Redemption.coupon_id)
        .join(Campaign, Campaign.id == Coupon.campaign_id)
        .join(User, User.id == Coupon.user_id)
        .order_by(Redemption.redeemed_at.desc(), Redemption.id.desc())
        .limit(5)
    )

    return {
        "total_campaigns": int(total_campaigns or 0),
        "active_campaigns": int(active_campaigns or 0),
        "total_qr_generated": int(total_bottles or 0),
        "total_redeemed": int(total_redeemed or 0),
        "recent_activity": [
            {
                "redeemed_at": r[0],
                "code": r[1],
                "discount_value": r[2],
                "campaign_name": r[3] or "",
                "phone": r[4] or "",
            }
            for r in recent.all()
        ],
    }


async def list_redemptions(db: AsyncSession, *, client_id: int | None = None, limit: int = 100) -> list[dict]:
    """
    Redeemed coupons, newest first. redeemed_at is the in-store spend time,
    never the issue time.
    """
    stmt = (
        select(Coupon, Bottle.qr_token, Campaign.name, User.phone)
        .outerjoin(Bottle, Bottle.id == Coupon.bottle_id)
        .outerjoin(Campaign, Campaign.id == Coupon.campaign_id)
        .outerjoin(User, User.id == Coupon.user_id)
        .where(Coupon.status == "redeemed", Coupon.redeemed_at.is_not(None))
        .order_by(Coupon.redeemed_at.desc(), Coupon.id.desc())
        .limit(int(limit))
    )
    if client_id is not None:
        stmt = stmt.where(Campaign.client_id == client_id)

    res = await db.execute(stmt)
    return [
        {
            "id": int(c.id),
            "qr_token": qr_token or "N/A",
            "campaign_name": campaign_name or "Unknown",
            "phone": phone or "Unknown",
            "coupon_code": c.code or "-",
            "coupon_status": c.status,
            "discount_value": c.discount_value,
            "redeemed_at": c.redeemed_at,
        }
        for c, qr_token, campaign_name, phone in res.all()
    ]


async def client_stats(db: AsyncSession, *, client_id: int, now: datetime | None = None) -> dict:
    now = now or utcnow()
    campaign_ids = select(Campaign.id).where(Campaign.client_id == client_id)

    res = await db.execute(
        select(
            func.count(Campaign.id),
            _count_if(_running_filter(now)),
            func.coalesce(func.sum(Campaign.total_scans), 0),
        ).where(Campaign.client_id == client_id)
    )
    total_campaigns, active_campaigns, total_scans = res.one()

    total_bottles = (
        await db.execute(select(func.count(Bottle.id)).where(Bottle.campaign_id.in_(campaign_ids)))
    ).scalar_one()

    res = await db.execute(
        select(func.count(Coupon.id), _count_if(Coupon.status == "redeemed")).where(
            Coupon.campaign_id.in_(campaign_ids)
        )
    )
    issued, redeemed = res.one()
    issued = int(issued or 0)
    redeemed = int(redeemed or 0)

    return {
        "total_campaigns": int(total_campaigns or 0),
        "active_campaigns": int(active_campaigns or 0),
        "total_scans": int(total_scans or 0),
        "total_bottles": int(total_bottles or 0),
        "coupons_issued": issued,
        "coupons_redeemed": redeemed,
        "redemption_rate": round(redeemed / issued * 100, 1) if issued else 0.0,
    }


async def client_coupons(
    db: AsyncSession,
    *,
    client_id: int,
    status: str | None,
    limit: int,
    offset: int,
) -> list[dict]:
    stmt = (
        select(Coupon, Campaign.name)
        .join(Campaign, Campaign.id == Coupon.campaign_id)
        .where(Campaign.client_id == client_id)
        .order_by(Coupon.generated_at.desc(), Coupon.id.desc())
    )
    if status:
        stmt = stmt.where(Coupon.status == status)

    res = await db.execute(stmt.limit(int(limit)).offset(int(offset)))
    return [
        {
            "id": int(c.id),
            "code": c.code,
            "campaign_id": int(c.campaign_id),
            "campaign_name": name or "",
            "status": c.status,
            "discount_value": c.discount_value,
            "generated_at": c.generated_at,
            "redeemed_at": c.redeemed_at,
        }
        for c, name in res.all()
    ]
