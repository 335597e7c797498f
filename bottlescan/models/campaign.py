# bottlescan/models/campaign.py
from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import BigInteger, Boolean, CheckConstraint, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from bottlescan.core.clock import utcnow
from bottlescan.core.db import Base, BigIntPK

CAMPAIGN_STATUSES = ("draft", "active", "paused", "completed")


class Campaign(Base):
    __tablename__ = "campaigns"
    __table_args__ = (
        CheckConstraint(
            "status IN ('draft','active','paused','completed')",
            name="campaigns_status_check",
        ),
        CheckConstraint(
            "coupon_type IS NULL OR coupon_type IN ('fixed','random')",
            name="campaigns_coupon_type_check",
        ),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    client_id: Mapped[Optional[int]] = mapped_column(
        BigInteger, ForeignKey("clients.id", ondelete="SET NULL"), nullable=True, index=True
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    location: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Only the status engine writes these two; is_active mirrors status == 'active'
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="draft")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    start_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    end_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    coupon_prefix: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    coupon_type: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    coupon_min_value: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    coupon_max_value: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    # Non-authoritative, bumped by the bottle-check gate
    total_scans: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )
