from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from bottlescan.core.db import get_db
from bottlescan.core.deps import require_admin
from bottlescan.models.account import Account
from bottlescan.schemas.campaigns import (
    CampaignCreate,
    CampaignListItemOut,
    CampaignOut,
    CampaignStatsOut,
    CampaignStatusOut,
    CampaignStatusRequest,
    CampaignUpdate,
)
from bottlescan.services.campaign_status import set_campaign_status
from bottlescan.services.campaigns import (
    admin_create_campaign,
    admin_delete_campaign,
    admin_get_campaign,
    admin_update_campaign,
)
from bottlescan.services.dashboard import campaign_rows, campaign_stats

router = APIRouter(prefix="/admin/campaigns", tags=["Admin Campaigns"])


@router.post("", response_model=CampaignOut)
async def create_campaign(
    payload: CampaignCreate,
    db: AsyncSession = Depends(get_db),
    _: Account = Depends(require_admin),
):
    return await admin_create_campaign(db, data=payload)


@router.get("", response_model=list[CampaignListItemOut])
async def list_campaigns(
    db: AsyncSession = Depends(get_db),
    _: Account = Depends(require_admin),
):
    return await campaign_rows(db)


# registered before /{campaign_id} so "status" is never parsed as an id
@router.post("/status", response_model=CampaignStatusOut, response_model_exclude_none=True)
async def update_campaign_status(
    payload: CampaignStatusRequest,
    db: AsyncSession = Depends(get_db),
    _: Account = Depends(require_admin),
):
    result = await set_campaign_status(db, campaign_id=payload.campaign_id, status=payload.status)
    if not result.changed:
        return CampaignStatusOut(status=result.previous, message="Status unchanged")
    return CampaignStatusOut(status=payload.status)


@router.get("/{campaign_id}", response_model=CampaignOut)
async def get_campaign(
    campaign_id: int,
    db: AsyncSession = Depends(get_db),
    _: Account = Depends(require_admin),
):
    return await admin_get_campaign(db, campaign_id=campaign_id)


@router.patch("/{campaign_id}", response_model=CampaignOut)
async def update_campaign(
    campaign_id: int,
    payload: CampaignUpdate,
    db: AsyncSession = Depends(get_db),
    _: Account = Depends(require_admin),
):
    return await admin_update_campaign(db, campaign_id=campaign_id, data=payload)


@router.delete("/{campaign_id}")
async def delete_campaign(
    campaign_id: int,
    db: AsyncSession = Depends(get_db),
    _: Account = Depends(require_admin),
):
    await admin_delete_campaign(db, campaign_id=campaign_id)
    return {"success": True}


@router.get("/{campaign_id}/stats", response_model=CampaignStatsOut)
async def get_campaign_stats(
    campaign_id: int,
    db: AsyncSession = Depends(get_db),
    _: Account = Depends(require_admin),
):
    return await campaign_stats(db, campaign_id=campaign_id)
