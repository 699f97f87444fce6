import asyncio
import re

import pytest

from fakes import FakeCooldown
from marketplace.api.deps import get_cooldown
from marketplace.core import redis as redis_module
from marketplace.core.config import settings
from marketplace.core.errors import InvalidOtpCode, RateLimited, ValidationError
from marketplace.crud.users import UserRepository
from marketplace.schemas.enums import OtpPurpose, UserRole
from marketplace.services.auth import AuthService


class _YieldingReads:
    """Collection wrapper whose reads hand control back to the loop before returning."""

    def __init__(self, coll):
        self._coll = coll

    async def find_one(self, *args, **kwargs):
        doc = await self._coll.find_one(*args, **kwargs)
        await asyncio.sleep(0)
        return doc

    def __getattr__(self, name):
        return getattr(self._coll, name)


@pytest.fixture
def auth(accounts, otp_manager, notifier):
    return AuthService(accounts, otp_manager, notifier, cooldown=FakeCooldown())


def _viewer(user):
    return {"user_id": str(user.id), "role": user.role.value}


def _wrong(code):
    return "000000" if code != "000000" else "111111"


# ---------------------------------------------------------------------------
# Ratings
# ---------------------------------------------------------------------------

async def test_rating_average_tracks_sum_and_count(accounts, make_partner, make_user):
    partner = await make_partner()
    for score in (5, 4, 4):
        out = await accounts.update_rating(partner.id, score)
    assert out.partner_info.rating == 4.33
    assert out.partner_info.rating_count == 3
    assert out.partner_info.rating_sum == 13.0

    customer = await make_user()
    assert await accounts.update_rating(customer.id, 5) is None


async def test_concurrent_ratings_both_count(db, make_partner):
    partner = await make_partner()
    accounts = UserRepository(db)
    accounts.coll = _YieldingReads(accounts.coll)

    await asyncio.gather(accounts.update_rating(partner.id, 5), accounts.update_rating(partner.id, 1))

    stored = await UserRepository(db).find_by_id(partner.id)
    assert stored.partner_info.rating_count == 2
    assert stored.partner_info.rating_sum == 6.0
    assert stored.partner_info.rating == 3.0


# ---------------------------------------------------------------------------
# Contact verification
# ---------------------------------------------------------------------------

async def test_email_verification_flow(auth, accounts, make_user, notifier):
    user = await make_user()
    out = await auth.request_contact_otp(_viewer(user), OtpPurpose.EMAIL_VERIFICATION)
    assert out.purpose == OtpPurpose.EMAIL_VERIFICATION
    assert out.order_id is None

    to, _, html = notifier.emails[-1]
    assert to == user.email
    code = re.search(r">(\d{6})<", html).group(1)

    with pytest.raises(InvalidOtpCode):
        await auth.verify_contact_otp(_viewer(user), OtpPurpose.EMAIL_VERIFICATION, _wrong(code))
    assert (await accounts.find_by_id(user.id)).email_verified is False

    result = await auth.verify_contact_otp(_viewer(user), OtpPurpose.EMAIL_VERIFICATION, code)
    assert result.success
    refreshed = await accounts.find_by_id(user.id)
    assert refreshed.email_verified is True
    assert refreshed.phone_verified is False


async def test_phone_verification_needs_a_number(auth, accounts, make_user, notifier):
    nophone = await make_user()
    with pytest.raises(ValidationError):
        await auth.request_contact_otp(_viewer(nophone), OtpPurpose.PHONE_VERIFICATION)
    assert notifier.sms == []

    user = await make_user(phone="+919876543210")
    await auth.request_contact_otp(_viewer(user), OtpPurpose.PHONE_VERIFICATION)
    to, body = notifier.sms[-1]
    assert to == "+919876543210"
    code = re.search(r"\d{6}", body).group(0)

    await auth.verify_contact_otp(_viewer(user), OtpPurpose.PHONE_VERIFICATION, code)
    refreshed = await accounts.find_by_id(user.id)
    assert refreshed.phone_verified is True
    assert refreshed.email_verified is False


async def test_order_purposes_are_not_contact_codes(auth, make_user):
    user = await make_user()
    with pytest.raises(ValidationError):
        await auth.request_contact_otp(_viewer(user), OtpPurpose.PICKUP)
    with pytest.raises(ValidationError):
        await auth.verify_contact_otp(_viewer(user), OtpPurpose.DELIVERY, "123456")


async def test_repeat_requests_hit_the_cooldown(auth, make_user, notifier):
    user = await make_user(UserRole.PARTNER)
    await auth.request_contact_otp(_viewer(user), OtpPurpose.EMAIL_VERIFICATION)
    with pytest.raises(RateLimited) as exc:
        await auth.request_contact_otp(_viewer(user), OtpPurpose.EMAIL_VERIFICATION)
    assert "42s" in exc.value.message
    assert len(notifier.emails) == 1


async def test_cooldown_reaches_redis_only_when_a_code_is_sent(monkeypatch):
    class _Redis:
        def __init__(self):
            self.keys = {}

        async def set(self, key, value, ex=None, nx=False):
            if nx and key in self.keys:
                return None
            self.keys[key] = ex
            return True

        async def ttl(self, key):
            return self.keys.get(key, -2)

    fake = _Redis()
    connects = []

    async def connect():
        connects.append(1)
        return fake

    monkeypatch.setattr(redis_module, "get_redis", connect)
    cooldown = get_cooldown()
    assert connects == []

    assert await cooldown.acquire("u1", "email_verification") is True
    assert await cooldown.acquire("u1", "email_verification") is False
    assert await cooldown.seconds_left("u1", "email_verification") == settings.OTP_RESEND_COOLDOWN_SECONDS
    assert connects == [1]
