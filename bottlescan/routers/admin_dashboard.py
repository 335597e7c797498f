from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.responses import Response

from bottlescan.core.db import get_db
from bottlescan.core.deps import require_admin
from bottlescan.models.account import Account
from bottlescan.schemas.dashboard import AdminStatsOut, RedemptionRowOut
from bottlescan.services.dashboard import admin_stats, list_redemptions
from bottlescan.services.reports_pdf import generate_redemptions_pdf

router = APIRouter(prefix="/admin", tags=["Admin Dashboard"])


@router.get("/stats", response_model=AdminStatsOut)
async def get_admin_stats(
    db: AsyncSession = Depends(get_db),
    _: Account = Depends(require_admin),
):
    return await admin_stats(db)


@router.get("/redemptions", response_model=list[RedemptionRowOut])
async def get_redemptions(
    limit: int = Query(default=100, ge=1, le=1000),
    db: AsyncSession = Depends(get_db),
    _: Account = Depends(require_admin),
):
    return await list_redemptions(db, limit=limit)


@router.get("/redemptions.pdf")
async def get_redemptions_pdf(
    limit: int = Query(default=100, ge=1, le=1000),
    db: AsyncSession = Depends(get_db),
    _: Account = Depends(require_admin),
):
    pdf_bytes = await generate_redemptions_pdf(db, limit=limit)
    return Response(
        content=pdf_bytes,
        media_type="application/pdf",
        headers={"Content-Disposition": 'inline; filename="redemptions.pdf"'},
    )
