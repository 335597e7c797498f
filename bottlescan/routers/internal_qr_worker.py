from __future__ import annotations

import hmac
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from bottlescan.core.config import settings
from bottlescan.core.db import get_db
from bottlescan.schemas.qr_jobs import QrWorkerOut
from bottlescan.services.qr_jobs import run_worker_tick

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/internal", tags=["Internal"])


def require_cron_secret(x_cron_secret: Optional[str] = Header(default=None)) -> None:
    expected = settings.CRON_SECRET
    if not expected or not x_cron_secret or not hmac.compare_digest(x_cron_secret, expected):
        logger.warning("QR worker: unauthorized access attempt")
        raise HTTPException(status_code=401, detail="Unauthorized")


@router.get("/qr-worker", response_model=QrWorkerOut, response_model_exclude_none=True)
async def qr_worker_tick(
    db: AsyncSession = Depends(get_db),
    _: None = Depends(require_cron_secret),
):
    return await run_worker_tick(db)
