import pytest
from sqlalchemy import select, update
from sqlalchemy.exc import OperationalError

from bottlescan.models.bottle import Bottle
from bottlescan.models.campaign import Campaign
from bottlescan.models.redemption import Redemption
from bottlescan.services import bottle_check
from bottlescan.services.bottle_check import USED_QR_MESSAGE, check_bottle
from bottlescan.services.errors import AlreadyUsed, BottleNotFound, InvalidInput
from tests.factories import make_bottle, make_campaign, make_coupon


async def _scans(db, campaign_id):
    res = await db.execute(select(Campaign.total_scans).where(Campaign.id == campaign_id))
    return res.scalar_one()


async def test_unused_bottle_passes_and_counts_scan(db):
    campaign = await make_campaign(db)
    bottle = await make_bottle(db, campaign, qr_token="T1")

    snapshot = await check_bottle(db, qr_token=" T1 ")

    assert snapshot["id"] == bottle.id
    assert snapshot["status"] == "unused"
    assert await _scans(db, campaign.id) == 1


async def test_used_bottle_is_rejected_with_ui_message(db):
    campaign = await make_campaign(db)
    await make_bottle(db, campaign, qr_token="T1", status="used")

    with pytest.raises(AlreadyUsed) as exc:
        await check_bottle(db, qr_token="T1")

    assert exc.value.message == USED_QR_MESSAGE == "Coupon redeemed from this QR"
    assert exc.value.status_code == 400
    assert await _scans(db, campaign.id) == 1


async def test_unknown_bottle(db):
    with pytest.raises(BottleNotFound):
        await check_bottle(db, qr_token="missing")


async def test_blank_token(db):
    with pytest.raises(InvalidInput) as exc:
        await check_bottle(db, qr_token="  ")
    assert exc.value.message == "QR Token is required"


async def test_check_does_not_claim(db):
    campaign = await make_campaign(db)
    await make_bottle(db, campaign, qr_token="T1")

    await check_bottle(db, qr_token="T1")
    await check_bottle(db, qr_token="T1")

    assert (await check_bottle(db, qr_token="T1"))["status"] == "unused"
    assert await _scans(db, campaign.id) == 3


async def test_redemption_row_marks_bottle_used(db):
    campaign = await make_campaign(db)
    coupon = await make_coupon(db, campaign=campaign, phone="+911234567890", code="AKUAFI-ABC123", status="redeemed")
    db.add(Redemption(coupon_id=coupon.id))
    # bottle status drifted back; the audit trail still says it was spent
    await db.execute(update(Bottle).where(Bottle.id == coupon.bottle_id).values(status="unused"))
    await db.commit()

    token = (await db.execute(select(Bottle.qr_token).where(Bottle.id == coupon.bottle_id))).scalar_one()

    with pytest.raises(AlreadyUsed) as exc:
        await check_bottle(db, qr_token=token)
    assert exc.value.message == USED_QR_MESSAGE


async def test_scan_counter_failure_does_not_fail_check(db, monkeypatch, app_logs):
    campaign = await make_campaign(db)
    await make_bottle(db, campaign, qr_token="T1")

    def broken_update(*args, **kwargs):
        raise OperationalError("UPDATE campaigns", {}, Exception("database is locked"))

    monkeypatch.setattr(bottle_check, "update", broken_update)

    snapshot = await check_bottle(db, qr_token="T1")

    assert snapshot["status"] == "unused"
    assert await _scans(db, campaign.id) == 0
    assert any(
        r.levelname == "WARNING" and "scan counter increment failed" in r.getMessage() for r in app_logs.records
    )
