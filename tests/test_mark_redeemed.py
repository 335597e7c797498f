import asyncio
from datetime import timedelta

import pytest
from sqlalchemy import select, update

from bottlescan.models.campaign import Campaign
from bottlescan.models.coupon import Coupon
from bottlescan.models.redemption import Redemption
from bottlescan.services.errors import AlreadyRedeemed, CampaignExpired, CampaignInactive, InvalidCode, InvalidInput
from bottlescan.services.redemption import mark_redeemed
from tests.factories import make_campaign, make_coupon


async def test_mark_redeemed_spends_coupon_and_writes_audit_row(db):
    campaign = await make_campaign(db)
    coupon = await make_coupon(db, campaign=campaign, phone="+911234567890", code="AKUAFI-ABC123")

    spent = await mark_redeemed(db, code="akuafi-abc123 ")

    assert spent.id == coupon.id
    assert spent.status == "redeemed"
    assert spent.redeemed_at is not None

    audit = (await db.execute(select(Redemption).where(Redemption.coupon_id == coupon.id))).scalar_one()
    assert audit.redeemed_at is not None


async def test_mark_redeemed_twice(db):
    campaign = await make_campaign(db)
    await make_coupon(db, campaign=campaign, phone="+911234567890", code="AKUAFI-ABC123")

    await mark_redeemed(db, code="AKUAFI-ABC123")
    with pytest.raises(AlreadyRedeemed):
        await mark_redeemed(db, code="AKUAFI-ABC123")


async def test_mark_redeemed_unknown_code(db):
    with pytest.raises(InvalidCode):
        await mark_redeemed(db, code="AKUAFI-NOPE00")


async def test_mark_redeemed_empty_code(db):
    with pytest.raises(InvalidInput):
        await mark_redeemed(db, code="   ")


async def test_mark_redeemed_scoped_to_client(db, brand):
    campaign = await make_campaign(db, client_id=brand.id)
    await make_coupon(db, campaign=campaign, phone="+911234567890", code="AKUAFI-ABC123")

    with pytest.raises(InvalidCode):
        await mark_redeemed(db, code="AKUAFI-ABC123", client_id=brand.id + 100)

    spent = await mark_redeemed(db, code="AKUAFI-ABC123", client_id=brand.id)
    assert spent.status == "redeemed"


async def test_mark_redeemed_after_campaign_expiry(db):
    campaign = await make_campaign(db)
    await make_coupon(db, campaign=campaign, phone="+911234567890", code="AKUAFI-ABC123")

    await db.execute(
        update(Campaign).where(Campaign.id == campaign.id).values(end_date=campaign.start_date + timedelta(hours=1))
    )
    await db.commit()

    with pytest.raises(CampaignExpired):
        await mark_redeemed(db, code="AKUAFI-ABC123")


async def test_concurrent_mark_redeemed_single_winner(db, session_factory):
    campaign = await make_campaign(db)
    await make_coupon(db, campaign=campaign, phone="+911234567890", code="AKUAFI-ABC123")

    async def attempt():
        async with session_factory() as session:
            try:
                return await mark_redeemed(session, code="AKUAFI-ABC123")
            except AlreadyRedeemed as e:
                return e

    results = await asyncio.gather(*(attempt() for _ in range(6)))

    assert sum(not isinstance(r, AlreadyRedeemed) for r in results) == 1
    rows = (await db.execute(select(Redemption))).scalars().all()
    assert len(rows) == 1


@pytest.mark.parametrize("status", ["paused", "completed"])
async def test_mark_redeemed_on_stopped_campaign(db, status):
    campaign = await make_campaign(db, status=status)
    await make_coupon(db, campaign=campaign, phone="+911234567890", code="AKUAFI-ABC123")

    with pytest.raises(CampaignInactive):
        await mark_redeemed(db, code="AKUAFI-ABC123")

    res = await db.execute(select(Coupon.status).where(Coupon.code == "AKUAFI-ABC123"))
    assert res.scalar_one() == "active"


async def test_audit_row_failure_keeps_coupon_redeemed(db, app_logs):
    campaign = await make_campaign(db)
    coupon = await make_coupon(db, campaign=campaign, phone="+911234567890", code="AKUAFI-ABC123")
    # a stray audit row makes the second insert hit redemptions.coupon_id uniqueness
    db.add(Redemption(coupon_id=coupon.id))
    await db.commit()

    spent = await mark_redeemed(db, code="AKUAFI-ABC123")

    assert spent.status == "redeemed"
    res = await db.execute(select(Coupon.status).where(Coupon.id == coupon.id))
    assert res.scalar_one() == "redeemed"
    assert any(
        r.levelname == "WARNING" and "audit row was not written" in r.getMessage() for r in app_logs.records
    )
