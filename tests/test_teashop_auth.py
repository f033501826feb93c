from datetime import timedelta

from sqlalchemy import select

from apps.teashop.app.models import User
from apps.teashop.app.security import create_access_token


def test_signup_then_login_returns_admin_token(client):
    r = client.post(
        "/api/auth/signup-shop",
        json={"shopName": "Tea Hut", "ownerName": "A", "ownerEmail": "a@x.com", "ownerPassword": "pw"},
    )
    assert r.status_code == 201
    body = r.json()
    shop_id = body["shopId"]
    assert isinstance(shop_id, str) and len(shop_id) == 4 and shop_id.isdigit()
    assert body["shop"]["name"] == "Tea Hut"
    assert body["user"]["role"] == "admin"

    r = client.post("/api/auth/login", json={"shopId": shop_id, "email": "a@x.com", "password": "pw"})
    assert r.status_code == 200
    assert r.json()["token"]
    assert r.json()["user"]["role"] == "admin"
    assert r.json()["user"]["shopId"] == shop_id


def test_password_is_stored_hashed(client, session):
    client.post(
        "/api/auth/signup-shop",
        json={"shopName": "Tea Hut", "ownerName": "A", "ownerEmail": "hash@x.com", "ownerPassword": "plain-secret"},
    )
    u = session.execute(select(User).where(User.email == "hash@x.com")).scalar_one()
    assert u.password_hash != "plain-secret"
    assert u.password_hash.startswith("$2")


def test_signup_rejects_taken_email_and_missing_fields(client, shop):
    r = client.post(
        "/api/auth/signup-shop",
        json={"shopName": "Other", "ownerName": "B", "ownerEmail": shop.email.upper(), "ownerPassword": "whatever"},
    )
    assert r.status_code == 400
    assert r.json()["message"] == "User with this email already exists"

    r = client.post("/api/auth/signup-shop", json={"shopName": "Other", "ownerName": "B"})
    assert r.status_code == 400
    assert r.json()["message"] == "Validation failed"


def test_login_failures_are_indistinguishable(client, shop):
    wrong_pw = client.post("/api/auth/login", json={"shopId": shop.shop_id, "email": shop.email, "password": "nope"})
    wrong_shop = client.post("/api/auth/login", json={"shopId": "0000", "email": shop.email, "password": shop.password})
    assert wrong_pw.status_code == wrong_shop.status_code == 400
    assert wrong_pw.json()["message"] == wrong_shop.json()["message"] == "Invalid credentials"


def test_missing_and_invalid_tokens(client, shop):
    r = client.get("/api/auth/me")
    assert r.status_code == 401
    assert r.json()["message"] == "No token provided"

    r = client.get("/api/auth/me", headers={"Authorization": "Bearer not-a-jwt"})
    assert r.status_code == 401
    assert r.json()["message"] == "Invalid token"


def test_expired_token_is_rejected(client, shop, session):
    u = session.get(User, shop.user["id"])
    token = create_access_token(u, expires_delta=timedelta(seconds=-5))
    r = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 401


def test_legacy_auth_token_header(client, shop):
    r = client.get("/api/auth/me", headers={"auth-token": shop.token})
    assert r.status_code == 200
    body = r.json()
    assert body["email"] == shop.email
    assert "password" not in body and "passwordHash" not in body


def test_deactivated_user_loses_access(client, shop):
    staff_headers = shop.add_staff("clerk@example.com", [{"module": "orders", "actions": ["read"]}])
    staff_id = client.get("/api/auth/me", headers=staff_headers).json()["id"]

    r = client.delete(f"/api/staff/{staff_id}", headers=shop.headers())
    assert r.status_code == 200

    r = client.get("/api/auth/me", headers=staff_headers)
    assert r.status_code == 401
    assert r.json()["message"] == "Invalid token or inactive user"


def test_register_is_admin_only(client, shop):
    r = client.post(
        "/api/auth/register",
        json={"name": "Cashier", "email": "cash@example.com", "password": "cashpass", "role": "cashier"},
        headers=shop.headers(),
    )
    assert r.status_code == 201
    assert r.json()["user"]["shopId"] == shop.shop_id

    manager = shop.add_staff("mgr@example.com", [{"module": "staff", "actions": ["create"]}], role="manager")
    r = client.post(
        "/api/auth/register",
        json={"name": "X", "email": "x@example.com", "password": "xpass123"},
        headers=manager,
    )
    assert r.status_code == 403


def test_change_password(client, shop):
    r = client.put(
        "/api/auth/password",
        json={"currentPassword": "wrong", "newPassword": "newpass1"},
        headers=shop.headers(),
    )
    assert r.status_code == 400
    assert r.json()["message"] == "Current password is incorrect"

    r = client.put(
        "/api/auth/password",
        json={"currentPassword": shop.password, "newPassword": "newpass1"},
        headers=shop.headers(),
    )
    assert r.status_code == 200
    r = client.post("/api/auth/login", json={"shopId": shop.shop_id, "email": shop.email, "password": "newpass1"})
    assert r.status_code == 200


def test_update_profile(client, shop):
    r = client.put("/api/auth/profile", json={"name": "New Name", "phone": "555"}, headers=shop.headers())
    assert r.status_code == 200
    assert r.json()["name"] == "New Name"
    assert r.json()["phone"] == "555"
