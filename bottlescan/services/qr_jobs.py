# bottlescan/services/qr_jobs.py
"""
Batch QR generation.

``enqueue_generation`` inserts the bottles and a pending job in one
transaction. A cron-driven worker then advances one job per tick:
pending -> processing (PNG batches on disk) -> zipping -> completed.
"""
from __future__ import annotations

import csv
import io
import logging
import os
import uuid
import zipfile
from datetime import datetime, timedelta
from pathlib import Path

import qrcode
from qrcode.constants import ERROR_CORRECT_H
from sqlalchemy import and_, insert, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.concurrency import run_in_threadpool

from bottlescan.core.clock import as_utc, utcnow
from bottlescan.core.config import settings
from bottlescan.models.bottle import Bottle
from bottlescan.models.campaign import Campaign
from bottlescan.models.qr_job import QrJob
from bottlescan.services.errors import CampaignNotFound, InternalError, InvalidInput, JobNotFound

logger = logging.getLogger(__name__)

INSERT_CHUNK = 1000
ZIP_FETCH_CHUNK = 500
CSV_HEADER = ["qr_token", "url", "campaign_id", "created_at"]


def scan_url(qr_token: str) -> str:
    return f"{settings.PUBLIC_BASE_URL.rstrip('/')}/scan/{qr_token}"


def _export_root() -> Path:
    return Path(settings.QR_EXPORT_DIR)


def job_dir(campaign_id: int, job_id: str) -> Path:
    return _export_root() / str(campaign_id) / job_id


def zip_path_for(campaign_id: int, job_id: str) -> Path:
    return _export_root() / str(campaign_id) / f"{job_id}.zip"


def _png_name(qr_token: str) -> str:
    return f"QR_{qr_token[:8]}.png"


def _render_png(url: str, target: Path) -> None:
    qr = qrcode.QRCode(
        error_correction=ERROR_CORRECT_H,
        box_size=10,
        border=2,
    )
    qr.add_data(url)
    qr.make(fit=True)
    img = qr.make_image(fill_color="black", back_color="white")
    img.save(str(target))


def _render_batch(out_dir: Path, tokens: list[str]) -> None:
    out_dir.mkdir(parents=True, exist_ok=True)
    for token in tokens:
        _render_png(scan_url(token), out_dir / f"{token}.png")


def _write_zip(target: Path, src_dir: Path, rows: list[tuple[str, int, datetime]]) -> None:
    target.parent.mkdir(parents=True, exist_ok=True)
    src_dir.mkdir(parents=True, exist_ok=True)

    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(CSV_HEADER)

    tmp = target.with_suffix(".zip.tmp")
    with zipfile.ZipFile(tmp, "w", compression=zipfile.ZIP_DEFLATED, compresslevel=6) as zf:
        for token, campaign_id, created_at in rows:
            url = scan_url(token)
            created = as_utc(created_at)
            writer.writerow([token, url, campaign_id, created.isoformat() if created else ""])

            png = src_dir / f"{token}.png"
            if not png.exists():
                _render_png(url, png)
            zf.write(png, arcname=f"qr_codes/{_png_name(token)}")

        zf.writestr("campaign_codes.csv", buf.getvalue())

    os.replace(tmp, target)


# -------------------------
# admin side
# -------------------------
async def enqueue_generation(db: AsyncSession, *, campaign_id: int, quantity: int) -> QrJob:
    if quantity < 1 or quantity > settings.QR_MAX_PER_JOB:
        raise InvalidInput(
            f"Max quantity per request is {settings.QR_MAX_PER_JOB}. Please batch your requests."
            if quantity > settings.QR_MAX_PER_JOB
            else "Quantity must be at least 1"
        )

    res = await db.execute(select(Campaign.id).where(Campaign.id == campaign_id))
    if res.scalar_one_or_none() is None:
        raise CampaignNotFound()

    now = utcnow()
    job = QrJob(
        id=uuid.uuid4().hex,
        campaign_id=campaign_id,
        status="pending",
        total=quantity,
        processed=0,
        created_at=now,
        updated_at=now,
    )

    try:
        db.add(job)
        await db.flush()

        for start in range(0, quantity, INSERT_CHUNK):
            size = min(INSERT_CHUNK, quantity - start)
            await db.execute(
                insert(Bottle),
                [
                    {
                        "campaign_id": campaign_id,
                        "qr_job_id": job.id,
                        "qr_token": str(uuid.uuid4()),
                        "status": "unused",
                        "created_at": now,
                    }
                    for _ in range(size)
                ],
            )

        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error("QR job enqueue failed for campaign %s: %s", campaign_id, e)
        raise InternalError("Failed to create QR batch") from e

    logger.info("QR job %s queued: campaign=%s quantity=%s", job.id, campaign_id, quantity)
    return job


async def get_job(db: AsyncSession, job_id: str) -> QrJob:
    res = await db.execute(select(QrJob).where(QrJob.id == job_id).execution_options(populate_existing=True))
    job = res.scalar_one_or_none()
    if job is None:
        raise JobNotFound()
    return job


async def get_job_status(db: AsyncSession, *, job_id: str) -> dict:
    job = await get_job(db, job_id)

    progress = 0
    if job.total > 0:
        progress = round(min(job.processed, job.total) / job.total * 100)
    if job.status == "completed":
        progress = 100

    return {
        "job_id": job.id,
        "campaign_id": int(job.campaign_id),
        "status": job.status,
        "processed": int(job.processed),
        "total": int(job.total),
        "progress_percent": int(progress),
        "download_url": f"/admin/qr/jobs/{job.id}/download" if job.status == "completed" else None,
        "error": job.error,
    }


async def completed_zip(db: AsyncSession, *, job_id: str) -> Path:
    job = await get_job(db, job_id)
    if job.status != "completed" or not job.zip_path:
        raise InvalidInput(f"Job is {job.status}, archive not ready")

    path = Path(job.zip_path)
    if not path.exists():
        logger.error("QR job %s archive missing at %s", job_id, path)
        raise JobNotFound("Archive file not found")
    return path


# -------------------------
# worker side
# -------------------------
def _zip_unclaimed(stale_before: datetime):
    # zip_path is set when a tick claims the zipping phase
    return and_(
        QrJob.status == "zipping",
        or_(QrJob.zip_path.is_(None), QrJob.updated_at < stale_before),
    )


async def _pick_candidate(db: AsyncSession, stale_before: datetime) -> QrJob | None:
    for stmt in (
        select(QrJob).where(_zip_unclaimed(stale_before)).order_by(QrJob.updated_at.asc()),
        select(QrJob)
        .where(QrJob.status == "processing", QrJob.updated_at < stale_before)
        .order_by(QrJob.updated_at.asc()),
        select(QrJob).where(QrJob.status == "pending").order_by(QrJob.created_at.asc()),
    ):
        res = await db.execute(stmt.limit(1).execution_options(populate_existing=True))
        job = res.scalar_one_or_none()
        if job is not None:
            return job
    return None


async def _claim(db: AsyncSession, job: QrJob, *, stale_before: datetime, now: datetime) -> bool:
    values = {"updated_at": now}
    if job.status == "zipping":
        cond = _zip_unclaimed(stale_before)
        values["zip_path"] = str(zip_path_for(int(job.campaign_id), job.id))
    elif job.status == "processing":
        cond = and_(QrJob.status == "processing", QrJob.updated_at < stale_before)
        values["status"] = "processing"
    else:
        cond = QrJob.status == "pending"
        values["status"] = "processing"

    res = await db.execute(
        update(QrJob)
        .where(QrJob.id == job.id, cond)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    return res.rowcount == 1


async def _mark_failed(db: AsyncSession, job_id: str, message: str) -> None:
    try:
        await db.execute(
            update(QrJob)
            .where(QrJob.id == job_id)
            .values(status="failed", error=message[:500], updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error("QR job %s could not be marked failed: %s", job_id, e)


async def _processing_phase(db: AsyncSession, job: QrJob) -> dict:
    job_id, campaign_id = job.id, int(job.campaign_id)

    stmt = select(Bottle.id, Bottle.qr_token).where(Bottle.qr_job_id == job_id)
    if job.last_processed_id is not None:
        stmt = stmt.where(Bottle.id > job.last_processed_id)
    res = await db.execute(stmt.order_by(Bottle.id.asc()).limit(max(1, settings.QR_WORKER_BATCH_SIZE)))
    rows = res.all()

    processed = int(job.processed)
    last_id = job.last_processed_id

    if rows:
        await run_in_threadpool(_render_batch, job_dir(campaign_id, job_id), [r.qr_token for r in rows])
        processed += len(rows)
        last_id = rows[-1].id

    # an empty batch means nothing is left to render; a partial job is
    # released back to pending so the next tick resumes it
    done = processed >= job.total or not rows
    status = "zipping" if done else "pending"

    await db.execute(
        update(QrJob)
        .where(QrJob.id == job_id)
        .values(processed=processed, last_processed_id=last_id, status=status, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    await db.commit()

    if done:
        logger.info("QR job %s rendered %s/%s, switching to zipping", job_id, processed, job.total)
        return {"message": f"Job {job_id} batch done. Switched to ZIPPING.", "job_id": job_id, "status": status}

    return {
        "message": f"Processed {len(rows)}. Progress: {processed}/{job.total}",
        "job_id": job_id,
        "status": status,
    }


async def _zipping_phase(db: AsyncSession, job: QrJob) -> dict:
    job_id, campaign_id = job.id, int(job.campaign_id)

    rows: list[tuple[str, int, datetime]] = []
    last_id = None
    while True:
        stmt = select(Bottle.id, Bottle.qr_token, Bottle.campaign_id, Bottle.created_at).where(
            Bottle.qr_job_id == job_id
        )
        if last_id is not None:
            stmt = stmt.where(Bottle.id > last_id)
        res = await db.execute(stmt.order_by(Bottle.id.asc()).limit(ZIP_FETCH_CHUNK))
        chunk = res.all()
        if not chunk:
            break
        rows.extend((r.qr_token, int(r.campaign_id), r.created_at) for r in chunk)
        last_id = chunk[-1].id

    target = zip_path_for(campaign_id, job_id)
    await run_in_threadpool(_write_zip, target, job_dir(campaign_id, job_id), rows)

    await db.execute(
        update(QrJob)
        .where(QrJob.id == job_id)
        .values(status="completed", zip_path=str(target), error=None, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    await db.commit()

    logger.info("QR job %s completed: %s codes in %s", job_id, len(rows), target)
    return {"message": f"Job {job_id} Zipped & Completed.", "job_id": job_id, "status": "completed"}


async def run_worker_tick(db: AsyncSession, *, now: datetime | None = None) -> dict:
    now = now or utcnow()
    stale_before = now - timedelta(minutes=settings.QR_JOB_STALE_MINUTES)

    candidate = await _pick_candidate(db, stale_before)
    if candidate is None:
        return {"message": "No jobs pending."}

    job_id = candidate.id
    if not await _claim(db, candidate, stale_before=stale_before, now=now):
        return {"message": "Job picked by another worker."}

    job = await get_job(db, job_id)
    logger.info("QR job %s picked [%s] %s/%s", job_id, job.status, job.processed, job.total)

    try:
        if job.status == "zipping":
            return await _zipping_phase(db, job)
        return await _processing_phase(db, job)
    except (OSError, SQLAlchemyError) as e:
        await db.rollback()
        logger.exception("QR job %s failed", job_id)
        await _mark_failed(db, job_id, str(e))
        raise InternalError(f"QR job {job_id} failed") from e
