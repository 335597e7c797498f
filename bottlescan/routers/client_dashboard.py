from __future__ import annotations

from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from bottlescan.core.db import get_db
from bottlescan.core.deps import require_client
from bottlescan.models.account import Client
from bottlescan.schemas.campaigns import CampaignListItemOut, CampaignStatsOut
from bottlescan.schemas.dashboard import ClientCouponOut, ClientStatsOut, RedemptionRowOut
from bottlescan.services.dashboard import (
    campaign_rows,
    campaign_stats,
    client_coupons,
    client_stats,
    list_redemptions,
)

router = APIRouter(prefix="/client", tags=["Client Dashboard"])


@router.get("/campaigns", response_model=list[CampaignListItemOut])
async def get_my_campaigns(
    db: AsyncSession = Depends(get_db),
    client: Client = Depends(require_client),
):
    return await campaign_rows(db, client_id=int(client.id))


@router.get("/campaigns/{campaign_id}/stats", response_model=CampaignStatsOut)
async def get_my_campaign_stats(
    campaign_id: int,
    db: AsyncSession = Depends(get_db),
    client: Client = Depends(require_client),
):
    return await campaign_stats(db, campaign_id=campaign_id, client_id=int(client.id))


@router.get("/stats", response_model=ClientStatsOut)
async def get_my_stats(
    db: AsyncSession = Depends(get_db),
    client: Client = Depends(require_client),
):
    return await client_stats(db, client_id=int(client.id))


@router.get("/coupons", response_model=list[ClientCouponOut])
async def get_my_coupons(
    status: Optional[Literal["active", "redeemed"]] = None,
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    db: AsyncSession = Depends(get_db),
    client: Client = Depends(require_client),
):
    return await client_coupons(db, client_id=int(client.id), status=status, limit=limit, offset=offset)


@router.get("/redemptions", response_model=list[RedemptionRowOut])
async def get_my_redemptions(
    limit: int = Query(default=100, ge=1, le=1000),
    db: AsyncSession = Depends(get_db),
    client: Client = Depends(require_client),
):
    return await list_redemptions(db, client_id=int(client.id), limit=limit)
