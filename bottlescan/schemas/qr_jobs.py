# bottlescan/schemas/qr_jobs.py
from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class QrGenerateRequest(BaseModel):
    campaign_id: int
    quantity: int = Field(..., ge=1)


class QrGenerateOut(BaseModel):
    success: bool = True
    job_id: str
    total: int


class QrJobStatusOut(BaseModel):
    job_id: str
    campaign_id: int
    status: str
    processed: int
    total: int
    progress_percent: int
    download_url: Optional[str] = None
    error: Optional[str] = None


class QrWorkerOut(BaseModel):
    message: str
    job_id: Optional[str] = None
    status: Optional[str] = None
