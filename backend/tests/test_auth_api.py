from __future__ import annotations

from datetime import datetime, timedelta

from buildstate.models import Role
from buildstate.services.auth_service import create_access_token


def _register(client, **kw):
    body = {
        "email": "new.manager@test.local",
        "password": "long-enough-pw",
        "firstName": "Nora",
        "lastName": "Lane",
        "role": Role.PROPERTY_MANAGER,
    }
    body.update(kw)
    return client.post("/api/auth/register", json=body)


def test_register_starts_trial(client):
    r = _register(client)
    assert r.status_code == 201, r.text
    body = r.json()
    assert body["token"]
    assert body["user"]["subscriptionStatus"] == "TRIAL"
    assert "passwordHash" not in body["user"]

    trial_end = datetime.fromisoformat(body["user"]["trialEndDate"])
    assert timedelta(days=13) < trial_end - datetime.utcnow() <= timedelta(days=14)


def test_register_rejects_duplicate_email(client):
    assert _register(client).status_code == 201
    r = _register(client, email="NEW.manager@test.local")
    assert r.status_code == 400
    assert r.json() == {"error": "Email already registered"}


def test_register_refuses_admin(client):
    r = _register(client, role="ADMIN")
    assert r.status_code == 400
    assert "error" in r.json()


def test_login_and_me(client, make_user):
    user = make_user(Role.TENANT, email="tina@test.local", password="tenant-pass-1")
    r = client.post("/api/auth/login", json={"email": "tina@test.local", "password": "tenant-pass-1"})
    assert r.status_code == 200
    token = r.json()["token"]

    me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 200
    assert me.json()["id"] == user.id
    assert me.json()["role"] == Role.TENANT


def test_login_wrong_password(client, make_user):
    make_user(Role.TENANT, email="tina@test.local")
    r = client.post("/api/auth/login", json={"email": "tina@test.local", "password": "nope"})
    assert r.status_code == 401
    assert r.json()["error"] == "Invalid email or password"


def test_missing_and_bad_tokens(client):
    r = client.get("/api/auth/me")
    assert r.status_code == 401
    assert r.json()["error"] == "No token provided"

    r = client.get("/api/auth/me", headers={"Authorization": "Bearer not-a-jwt"})
    assert r.status_code == 401
    assert r.json()["error"] == "Invalid token. Please login again."


def test_expired_token(client, make_user):
    user = make_user(Role.TENANT)
    token = create_access_token(user_id=user.id, role=user.role, minutes=-5)
    r = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 401
    assert r.json()["error"] == "Token has expired. Please login again."


def test_deactivated_account(client, make_user, auth):
    user = make_user(Role.TENANT, is_active=False)
    r = client.get("/api/auth/me", headers=auth(user))
    assert r.status_code == 403
    assert r.json()["error"] == "Account has been deactivated"


def test_health(client):
    r = client.get("/api/health")
    assert r.status_code == 200
    assert r.json()["status"] == "ok"
