# bottlescan/services/campaign_status.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from bottlescan.core.clock import as_utc, utcnow
from bottlescan.models.campaign import CAMPAIGN_STATUSES, Campaign
from bottlescan.services.errors import (
    CampaignExpired,
    CampaignInactive,
    CampaignNotFound,
    InternalError,
    InvalidDateRange,
    InvalidInput,
    InvalidTransition,
    MissingDates,
)

logger = logging.getLogger(__name__)

# completed is terminal
ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    "draft": frozenset({"active"}),
    "active": frozenset({"paused", "completed"}),
    "paused": frozenset({"active", "completed"}),
    "completed": frozenset(),
}


@dataclass
class TransitionResult:
    campaign: Campaign
    previous: str
    changed: bool


def validate_activation(
    start_date: datetime | None,
    end_date: datetime | None,
    *,
    now: datetime | None = None,
) -> None:
    if start_date is None or end_date is None:
        raise MissingDates()

    start = as_utc(start_date)
    end = as_utc(end_date)
    if end <= start:
        raise InvalidDateRange()

    if end < (now or utcnow()):
        raise CampaignExpired("Cannot activate expired campaign.")


def check_transition(
    current: str,
    requested: str,
    *,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    now: datetime | None = None,
) -> bool:
    """
    Validate current -> requested. Returns False for the idempotent
    same-status request, True when a change is needed; raises otherwise.
    """
    if requested not in CAMPAIGN_STATUSES:
        raise InvalidInput("Invalid status value")

    if current == requested:
        return False

    if requested not in ALLOWED_TRANSITIONS.get(current, frozenset()):
        raise InvalidTransition(f"Invalid status transition from {current} to {requested}")

    if requested == "active":
        validate_activation(start_date, end_date, now=now)

    return True


async def set_campaign_status(
    db: AsyncSession,
    *,
    campaign_id: int,
    status: str,
    now: datetime | None = None,
) -> TransitionResult:
    res = await db.execute(select(Campaign).where(Campaign.id == campaign_id))
    campaign = res.scalar_one_or_none()
    if campaign is None:
        raise CampaignNotFound()

    current = campaign.status or "draft"
    changed = check_transition(
        current,
        status,
        start_date=campaign.start_date,
        end_date=campaign.end_date,
        now=now,
    )
    if not changed:
        return TransitionResult(campaign=campaign, previous=current, changed=False)

    # Conditional on the status we validated against, so two admins racing
    # on the same campaign cannot both apply a transition.
    try:
        result = await db.execute(
            update(Campaign)
            .where(Campaign.id == campaign_id, Campaign.status == current)
            .values(status=status, is_active=(status == "active"), updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            await db.rollback()
            raise InvalidTransition("Campaign status changed concurrently, reload and retry")
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error("campaign %s status update %s -> %s failed: %s", campaign_id, current, status, e)
        raise InternalError("Failed to update campaign status") from e

    await db.refresh(campaign)
    logger.info("campaign %s status %s -> %s", campaign_id, current, status)
    return TransitionResult(campaign=campaign, previous=current, changed=True)


def assert_campaign_redeemable(
    campaign: Campaign,
    *,
    now: datetime | None = None,
    require_started: bool = True,
) -> None:
    """
    Gate for new claims and in-store redemptions. Expiry wins over the
    status flags: an 'active' campaign past its end date is expired.
    """
    now = now or utcnow()
    start = as_utc(campaign.start_date)
    end = as_utc(campaign.end_date)

    if end is not None and end < now:
        raise CampaignExpired()

    if require_started and start is not None and start > now:
        raise CampaignInactive("Campaign has not started yet")

    if campaign.status != "active" or not campaign.is_active:
        raise CampaignInactive(f"Campaign is {campaign.status}")
