# bottlescan/models/coupon.py
from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from bottlescan.core.clock import utcnow
from bottlescan.core.db import Base, BigIntPK


class Coupon(Base):
    __tablename__ = "coupons"
    __table_args__ = (
        CheckConstraint("status IN ('active','redeemed')", name="coupons_status_check"),
        # Authoritative one-coupon-per-user-per-campaign guard
        UniqueConstraint("user_id", "campaign_id", name="uq_coupons_user_campaign"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    code: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)

    bottle_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("bottles.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    campaign_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("campaigns.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.id"), nullable=False)

    status: Mapped[str] = mapped_column(String(16), nullable=False, default="active")
    discount_value: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    generated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    redeemed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)


Index("ix_coupons_campaign_status", Coupon.campaign_id, Coupon.status)
