from datetime import datetime, timedelta, timezone

import pytest
from mongomock_motor import AsyncMongoMockClient

from marketplace.crud.orders import OrderRepository
from marketplace.crud.otps import OtpRepository
from marketplace.crud.users import UserRepository
from marketplace.schemas.enums import UserRole
from marketplace.services.orders import OrderService
from marketplace.services.otp import OtpManager


class FixedClock:
    """Callable clock the services read `now` from; tests move it forward by hand."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta) -> datetime:
        self.now = self.now + timedelta(**delta)
        return self.now


class FakeNotifier:
    def __init__(self):
        self.emails = []
        self.sms = []

    async def send_email(self, to, subject, html):
        self.emails.append((to, subject, html))
        return True

    async def send_sms(self, to, body):
        self.sms.append((to, body))
        return True


@pytest.fixture
def db():
    return AsyncMongoMockClient()["marketplace_test"]


@pytest.fixture
def clock():
    return FixedClock(datetime(2026, 10, 17, 9, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def accounts(db):
    return UserRepository(db)


@pytest.fixture
def otp_repo(db):
    return OtpRepository(db)


@pytest.fixture
def otp_manager(otp_repo, clock):
    return OtpManager(otp_repo, max_attempts=3, clock=clock)


@pytest.fixture
def order_service(db, otp_manager, accounts, notifier, clock):
    return OrderService(OrderRepository(db), otp_manager, accounts, notifier, clock=clock)


@pytest.fixture
def make_user(accounts):
    counter = {"n": 0}

    async def _make(role=UserRole.CUSTOMER, **fields):
        counter["n"] += 1
        role = UserRole(role)
        doc = {
            "first_name": fields.pop("first_name", f"{role.value.title()}{counter['n']}"),
            "last_name": fields.pop("last_name", "Test"),
            "email": fields.pop("email", f"{role.value}{counter['n']}@example.com"),
            "password": "not-a-real-hash",
            "phone": fields.pop("phone", None),
            "role": role.value,
        }
        doc.update(fields)
        return await accounts.create(doc)

    return _make


@pytest.fixture
def make_partner(make_user, accounts):
    """Partner who passes every eligibility check (active, online, verified)."""

    async def _make(**fields):
        partner = await make_user(UserRole.PARTNER, **fields)
        return await accounts.set_fields(
            partner.id,
            {"partner_info.is_online": True, "partner_info.documents_verified": True},
        )

    return _make
