import asyncio
import re
from datetime import timedelta

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from bottlescan.models.bottle import Bottle
from bottlescan.models.coupon import Coupon
from bottlescan.models.user import User
from bottlescan.services import redemption
from bottlescan.services.errors import (
    AlreadyRedeemedForCampaign,
    AlreadyUsed,
    BottleNotFound,
    CampaignExpired,
    CampaignInactive,
    InternalError,
    InvalidInput,
    InvalidOTP,
    InvalidPhone,
)
from bottlescan.services.redemption import generate_coupon_code, pick_discount_value, redeem
from tests.factories import VALID_OTP, FakeOtp, make_bottle, make_campaign, make_coupon

PHONE = "+911234567890"
CODE_RE = re.compile(r"^AKUAFI-[A-Z0-9]{6}$")


async def _bottle_status(db, token):
    res = await db.execute(select(Bottle.status).where(Bottle.qr_token == token).execution_options(populate_existing=True))
    return res.scalar_one()


async def _coupon_count(db):
    return (await db.execute(select(func.count(Coupon.id)))).scalar_one()


def test_generate_coupon_code_shape():
    for _ in range(50):
        assert CODE_RE.match(generate_coupon_code())
    assert re.match(r"^SUMMER-[A-Z0-9]{4}$", generate_coupon_code("summer", 4))


def test_pick_discount_value():
    from bottlescan.models.campaign import Campaign

    assert pick_discount_value(Campaign(coupon_type="fixed", coupon_min_value=50, coupon_max_value=100)) == 50
    assert pick_discount_value(Campaign(coupon_type=None, coupon_min_value=None, coupon_max_value=None)) is None
    for _ in range(50):
        v = pick_discount_value(Campaign(coupon_type="random", coupon_min_value=10, coupon_max_value=20))
        assert 10 <= v <= 20


async def test_redeem_issues_coupon_and_claims_bottle(db):
    campaign = await make_campaign(db)
    await make_bottle(db, campaign, qr_token="T1")

    result = await redeem(db, FakeOtp(), phone=PHONE, otp_code=VALID_OTP, qr_token="T1")

    assert CODE_RE.match(result.coupon_code)
    assert await _bottle_status(db, "T1") == "used"

    coupon = (await db.execute(select(Coupon).where(Coupon.code == result.coupon_code))).scalar_one()
    assert coupon.status == "active"
    assert coupon.campaign_id == campaign.id
    assert coupon.user_id == result.user_id

    user = (await db.execute(select(User).where(User.phone == PHONE))).scalar_one()
    assert user.name == "Anonymous"


async def test_redeem_uses_campaign_prefix_and_value(db):
    campaign = await make_campaign(db, coupon_prefix="SPLASH", coupon_type="fixed", coupon_min_value=25)
    await make_bottle(db, campaign, qr_token="T1")

    result = await redeem(db, FakeOtp(), phone=PHONE, otp_code=VALID_OTP, qr_token="T1", display_name=" Asha ")

    assert result.coupon_code.startswith("SPLASH-")
    assert result.value == 25
    user = (await db.execute(select(User).where(User.phone == PHONE))).scalar_one()
    assert user.name == "Asha"


async def test_redeem_normalizes_phone_before_otp_check(db):
    campaign = await make_campaign(db)
    await make_bottle(db, campaign, qr_token="T1")
    otp = FakeOtp()

    await redeem(db, otp, phone="98765 43210", otp_code=VALID_OTP, qr_token="T1")

    assert otp.calls == [("+919876543210", VALID_OTP)]


async def test_second_redeem_of_same_bottle_is_already_used(db):
    campaign = await make_campaign(db)
    await make_bottle(db, campaign, qr_token="T1")
    await redeem(db, FakeOtp(), phone=PHONE, otp_code=VALID_OTP, qr_token="T1")

    with pytest.raises(AlreadyUsed):
        await redeem(db, FakeOtp(), phone="+919999999999", otp_code=VALID_OTP, qr_token="T1")
    assert await _coupon_count(db) == 1


async def test_one_coupon_per_user_per_campaign(db):
    campaign = await make_campaign(db)
    await make_bottle(db, campaign, qr_token="T1")
    await make_bottle(db, campaign, qr_token="T2")

    await redeem(db, FakeOtp(), phone=PHONE, otp_code=VALID_OTP, qr_token="T1")

    with pytest.raises(AlreadyRedeemedForCampaign):
        await redeem(db, FakeOtp(), phone=PHONE, otp_code=VALID_OTP, qr_token="T2")
    assert await _bottle_status(db, "T2") == "unused"


async def test_same_user_may_redeem_in_another_campaign(db):
    first = await make_campaign(db)
    second = await make_campaign(db, name="Winter Chill")
    await make_bottle(db, first, qr_token="T1")
    await make_bottle(db, second, qr_token="T2")

    await redeem(db, FakeOtp(), phone=PHONE, otp_code=VALID_OTP, qr_token="T1")
    await redeem(db, FakeOtp(), phone=PHONE, otp_code=VALID_OTP, qr_token="T2")

    assert await _coupon_count(db) == 2


async def test_invalid_otp_leaves_bottle_untouched(db):
    campaign = await make_campaign(db)
    await make_bottle(db, campaign, qr_token="T1")

    with pytest.raises(InvalidOTP) as exc:
        await redeem(db, FakeOtp(), phone=PHONE, otp_code="000000", qr_token="T1")

    assert exc.value.message == "Invalid OTP"
    assert await _bottle_status(db, "T1") == "unused"


async def test_missing_fields(db):
    with pytest.raises(InvalidInput):
        await redeem(db, FakeOtp(), phone="", otp_code=VALID_OTP, qr_token="T1")
    with pytest.raises(InvalidInput):
        await redeem(db, FakeOtp(), phone=PHONE, otp_code=VALID_OTP, qr_token="")


async def test_bad_phone(db):
    with pytest.raises(InvalidPhone):
        await redeem(db, FakeOtp(), phone="12", otp_code=VALID_OTP, qr_token="T1")


async def test_unknown_token(db):
    with pytest.raises(BottleNotFound):
        await redeem(db, FakeOtp(), phone=PHONE, otp_code=VALID_OTP, qr_token="nope")


async def test_expired_campaign(db):
    campaign = await make_campaign(db, starts_in=timedelta(days=-10), ends_in=timedelta(days=-1))
    await make_bottle(db, campaign, qr_token="T1")

    with pytest.raises(CampaignExpired):
        await redeem(db, FakeOtp(), phone=PHONE, otp_code=VALID_OTP, qr_token="T1")
    assert await _bottle_status(db, "T1") == "unused"


@pytest.mark.parametrize("status", ["draft", "paused", "completed"])
async def test_inactive_campaign(db, status):
    campaign = await make_campaign(db, status=status)
    await make_bottle(db, campaign, qr_token="T1")

    with pytest.raises(CampaignInactive):
        await redeem(db, FakeOtp(), phone=PHONE, otp_code=VALID_OTP, qr_token="T1")
    assert await _bottle_status(db, "T1") == "unused"


async def test_not_started_campaign(db):
    campaign = await make_campaign(db, starts_in=timedelta(days=2), ends_in=timedelta(days=9))
    await make_bottle(db, campaign, qr_token="T1")

    with pytest.raises(CampaignInactive):
        await redeem(db, FakeOtp(), phone=PHONE, otp_code=VALID_OTP, qr_token="T1")


async def test_concurrent_redeems_of_one_bottle(db, session_factory):
    campaign = await make_campaign(db)
    await make_bottle(db, campaign, qr_token="T1")

    async def attempt(i):
        async with session_factory() as session:
            try:
                return await redeem(session, FakeOtp(), phone=f"+9190000000{i:02d}", otp_code=VALID_OTP, qr_token="T1")
            except AlreadyUsed as e:
                return e

    results = await asyncio.gather(*(attempt(i) for i in range(8)))

    winners = [r for r in results if not isinstance(r, AlreadyUsed)]
    assert len(winners) == 1
    assert sum(isinstance(r, AlreadyUsed) for r in results) == 7
    assert await _coupon_count(db) == 1


async def test_code_collision_is_retried(db, monkeypatch):
    campaign = await make_campaign(db)
    await make_coupon(db, campaign=campaign, phone="+919999999999", code="AKUAFI-TAKEN1")
    await make_bottle(db, campaign, qr_token="T1")

    codes = iter(["AKUAFI-TAKEN1", "AKUAFI-FRESH2"])
    monkeypatch.setattr(redemption, "generate_coupon_code", lambda prefix=None, length=None: next(codes))

    result = await redeem(db, FakeOtp(), phone=PHONE, otp_code=VALID_OTP, qr_token="T1")

    assert result.coupon_code == "AKUAFI-FRESH2"
    assert await _bottle_status(db, "T1") == "used"


async def test_code_retries_exhausted_rolls_back_claim(db, monkeypatch):
    campaign = await make_campaign(db)
    await make_coupon(db, campaign=campaign, phone="+919999999999", code="AKUAFI-TAKEN1")
    await make_bottle(db, campaign, qr_token="T1")

    monkeypatch.setattr(redemption, "generate_coupon_code", lambda prefix=None, length=None: "AKUAFI-TAKEN1")

    with pytest.raises(InternalError):
        await redeem(db, FakeOtp(), phone=PHONE, otp_code=VALID_OTP, qr_token="T1")

    assert await _bottle_status(db, "T1") == "unused"
    assert await _coupon_count(db) == 1


async def test_unique_constraint_guards_campaign_race(db, monkeypatch):
    """The advisory pre-check misses; the store constraint still rejects and the claim is undone."""
    campaign = await make_campaign(db)
    await make_coupon(db, campaign=campaign, phone=PHONE, code="AKUAFI-FIRST1")
    await make_bottle(db, campaign, qr_token="T2")

    real = redemption.has_campaign_coupon
    calls = {"n": 0}

    async def racing_check(session, *, user_id, campaign_id):
        calls["n"] += 1
        if calls["n"] == 1:
            return False
        return await real(session, user_id=user_id, campaign_id=campaign_id)

    monkeypatch.setattr(redemption, "has_campaign_coupon", racing_check)

    with pytest.raises(AlreadyRedeemedForCampaign):
        await redeem(db, FakeOtp(), phone=PHONE, otp_code=VALID_OTP, qr_token="T2")

    assert await _bottle_status(db, "T2") == "unused"
    assert await _coupon_count(db) == 1


async def test_otp_store_failure_is_a_system_error(db):
    campaign = await make_campaign(db)
    await make_bottle(db, campaign, qr_token="T1")

    class BrokenOtp:
        async def validate_otp(self, phone, code):
            raise OperationalError("SELECT otp_sessions", {}, Exception("database is locked"))

    with pytest.raises(InternalError):
        await redeem(db, BrokenOtp(), phone=PHONE, otp_code=VALID_OTP, qr_token="T1")

    assert await _bottle_status(db, "T1") == "unused"
