from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from fastapi.responses import FileResponse
from sqlalchemy.ext.asyncio import AsyncSession

from bottlescan.core.db import get_db
from bottlescan.core.deps import require_admin
from bottlescan.models.account import Account
from bottlescan.schemas.qr_jobs import QrGenerateOut, QrGenerateRequest, QrJobStatusOut
from bottlescan.services.qr_jobs import completed_zip, enqueue_generation, get_job_status

router = APIRouter(prefix="/admin/qr", tags=["Admin QR"])


@router.post("/generate", response_model=QrGenerateOut)
async def generate_qr(
    payload: QrGenerateRequest,
    db: AsyncSession = Depends(get_db),
    _: Account = Depends(require_admin),
):
    job = await enqueue_generation(db, campaign_id=payload.campaign_id, quantity=payload.quantity)
    return QrGenerateOut(job_id=job.id, total=job.total)


@router.get("/status", response_model=QrJobStatusOut)
async def qr_job_status(
    job_id: str = Query(..., min_length=1),
    db: AsyncSession = Depends(get_db),
    _: Account = Depends(require_admin),
):
    return await get_job_status(db, job_id=job_id)


@router.get("/jobs/{job_id}/download")
async def download_qr_zip(
    job_id: str,
    db: AsyncSession = Depends(get_db),
    _: Account = Depends(require_admin),
):
    path = await completed_zip(db, job_id=job_id)
    return FileResponse(path, media_type="application/zip", filename=f"qr_{job_id}.zip")
