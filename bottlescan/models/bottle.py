# bottlescan/models/bottle.py
from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import BigInteger, CheckConstraint, DateTime, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from bottlescan.core.clock import utcnow
from bottlescan.core.db import Base, BigIntPK


class Bottle(Base):
    """One printed QR code. status moves unused -> used exactly once."""

    __tablename__ = "bottles"
    __table_args__ = (
        CheckConstraint("status IN ('unused','used')", name="bottles_status_check"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    campaign_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("campaigns.id", ondelete="CASCADE"), nullable=False
    )
    qr_job_id: Mapped[Optional[str]] = mapped_column(
        String(32), ForeignKey("qr_jobs.id", ondelete="SET NULL"), nullable=True
    )

    qr_token: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="unused")
    scanned_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)


Index("ix_bottles_campaign_status", Bottle.campaign_id, Bottle.status)
Index("ix_bottles_qr_job_id", Bottle.qr_job_id, Bottle.id)
