import re

import pytest
from bson import ObjectId
from fastapi.testclient import TestClient

from main import app
from marketplace.api.deps import get_cooldown, get_current_user, get_notifier
from marketplace.core.config import settings
from marketplace.core.database import get_database

P = settings.API_V1_PREFIX

ORDER_BODY = {
    "items": [{"name": "laptop", "weight": 2.5}],
    "origin": {"city": "Bengaluru", "coordinates": {"latitude": 12.9716, "longitude": 77.5946}},
    "destination": {"city": "Bengaluru", "coordinates": {"latitude": 12.9352, "longitude": 77.6245}},
    "service_type": "express",
    "payment_method": "upi",
}


@pytest.fixture
def client(db, notifier):
    # no lifespan: indexes and connection teardown target a real server
    app.dependency_overrides[get_database] = lambda: db
    app.dependency_overrides[get_notifier] = lambda: notifier
    app.dependency_overrides[get_cooldown] = lambda: None
    yield TestClient(app)
    app.dependency_overrides.clear()


def _signup(client, email, role="customer"):
    r = client.post(
        f"{P}/auth/register",
        json={"first_name": "Test", "last_name": role.title(), "email": email, "password": "s3cret-pass", "role": role},
    )
    assert r.status_code == 201, r.text
    r = client.post(f"{P}/auth/login", data={"username": email, "password": "s3cret-pass"})
    assert r.status_code == 200, r.text
    return {"Authorization": f"Bearer {r.json()['access_token']}"}


def test_root(client):
    r = client.get("/")
    assert r.status_code == 200
    assert settings.PROJECT_NAME in r.json()["message"]


def test_register_rejects_duplicates_and_admins(client):
    _signup(client, "dup@example.com")
    r = client.post(
        f"{P}/auth/register",
        json={"first_name": "Again", "email": "DUP@example.com", "password": "s3cret-pass"},
    )
    assert r.status_code == 409
    r = client.post(
        f"{P}/auth/register",
        json={"first_name": "Root", "email": "root@example.com", "password": "s3cret-pass", "role": "admin"},
    )
    assert r.status_code == 422


def test_login_with_wrong_password(client):
    _signup(client, "who@example.com")
    r = client.post(f"{P}/auth/login", data={"username": "who@example.com", "password": "nope-nope"})
    assert r.status_code == 401
    assert r.json()["detail"] == "Invalid credentials"


def test_me(client):
    headers = _signup(client, "me@example.com", role="partner")
    r = client.get(f"{P}/auth/me", headers=headers)
    assert r.status_code == 200
    body = r.json()
    assert body["role"] == "partner"
    assert body["partner_info"]["documents_verified"] is False
    assert "password" not in body


def test_protected_routes_need_a_token(client):
    assert client.get(f"{P}/orders/my").status_code == 401
    assert client.get(f"{P}/orders/my", headers={"Authorization": "Bearer junk"}).status_code == 401


def test_order_flow_over_http(client, notifier):
    customer = _signup(client, "buyer@example.com")
    partner = _signup(client, "rider@example.com", role="partner")
    stranger = _signup(client, "other@example.com")

    r = client.post(f"{P}/orders/quote", json=ORDER_BODY, headers=customer)
    assert r.status_code == 200
    quoted = r.json()["pricing"]["total_amount"]

    # partners cannot place orders
    assert client.post(f"{P}/orders/", json=ORDER_BODY, headers=partner).status_code == 403

    r = client.post(f"{P}/orders/", json=ORDER_BODY, headers=customer)
    assert r.status_code == 201, r.text
    order = r.json()
    assert order["status"] == "pending"
    assert order["pricing"]["total_amount"] == quoted
    order_id = order["_id"]

    pickup_code, delivery_code = re.findall(r">(\d{6})<", notifier.emails[-1][2])
    # codes travel by email only
    assert pickup_code not in r.text and delivery_code not in r.text

    assert [o["_id"] for o in client.get(f"{P}/orders/my", headers=customer).json()] == [order_id]
    assert client.get(f"{P}/orders/{order_id}", headers=stranger).status_code == 403

    r = client.post(f"{P}/orders/{order_id}/accept", headers=partner)
    assert r.status_code == 200
    assert r.json()["status"] == "confirmed"

    r = client.post(f"{P}/orders/{order_id}/verify-pickup", json={"code": "12ab"}, headers=partner)
    assert r.status_code == 422

    wrong = "000000" if pickup_code != "000000" else "111111"
    r = client.post(f"{P}/orders/{order_id}/verify-pickup", json={"code": wrong}, headers=partner)
    assert r.status_code == 400
    assert r.json()["remaining_attempts"] == 2

    r = client.post(f"{P}/orders/{order_id}/verify-pickup", json={"code": pickup_code}, headers=partner)
    assert r.status_code == 200
    assert r.json()["status"] == "picked_up"

    r = client.put(f"{P}/orders/{order_id}/status", json={"status": "delivered"}, headers=partner)
    assert r.status_code == 409

    r = client.post(f"{P}/orders/{order_id}/cancel", json={"reason": "nope"}, headers=stranger)
    assert r.status_code == 403


def test_unknown_order_is_404(client):
    headers = _signup(client, "lost@example.com")
    r = client.get(f"{P}/orders/{'0' * 24}", headers=headers)
    assert r.status_code == 404
    assert r.json()["detail"] == "Order not found"


def test_contact_verification_over_http(client, notifier):
    headers = _signup(client, "verify@example.com")

    r = client.post(f"{P}/auth/otp/request", json={"purpose": "pickup"}, headers=headers)
    assert r.status_code == 422

    r = client.post(f"{P}/auth/otp/request", json={"purpose": "email_verification"}, headers=headers)
    assert r.status_code == 201, r.text
    code = re.search(r">(\d{6})<", notifier.emails[-1][2]).group(1)
    assert code not in r.text

    r = client.post(f"{P}/auth/otp/verify", json={"purpose": "email_verification", "code": code}, headers=headers)
    assert r.status_code == 200
    assert r.json()["success"] is True
    assert client.get(f"{P}/auth/me", headers=headers).json()["email_verified"] is True


def test_admin_listing_and_code_cleanup(client):
    customer = _signup(client, "lister@example.com")
    order_id = client.post(f"{P}/orders/", json=ORDER_BODY, headers=customer).json()["_id"]
    client.post(f"{P}/orders/{order_id}/cancel", json={"reason": "duplicate"}, headers=customer)

    assert client.get(f"{P}/orders/", params={"status": "cancelled"}, headers=customer).status_code == 403
    assert client.delete(f"{P}/auth/otp/cleanup", headers=customer).status_code == 403

    app.dependency_overrides[get_current_user] = lambda: {"user_id": str(ObjectId()), "role": "admin"}
    r = client.get(f"{P}/orders/", params={"status": "cancelled"})
    assert r.status_code == 200
    assert [o["_id"] for o in r.json()] == [order_id]
    assert client.get(f"{P}/orders/", params={"status": "pending"}).json() == []

    r = client.delete(f"{P}/auth/otp/cleanup", params={"days_old": 1})
    assert r.status_code == 200
    # the order's codes expire in the future, so nothing is old enough yet
    assert r.json() == {"deleted": 0}
