"""
Tests for login, session lookup and the application shell
"""
from datetime import datetime, timedelta

from jose import jwt

from partner_portal.config.settings import settings
from partner_portal.middleware.rate_limiter import RateLimiter

from conftest import auth_headers, make_admin


def test_login_and_me(client, owner, team):
    response = client.post("/api/auth/login", data={"username": "OWNER@nerds.io", "password": "secret123"})

    assert response.status_code == 200
    token = response.json()["access_token"]
    me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"}).json()
    assert me["email"] == "owner@nerds.io"
    assert me["team"]["role"] == "owner"
    assert me["partner"]["name"] == "Nerds Labs"
    assert me["pending"] is False


def test_login_wrong_password(client, owner):
    response = client.post("/api/auth/login", data={"username": "owner@nerds.io", "password": "wrong"})
    assert response.status_code == 401
    assert response.json()["error"] == "Incorrect email or password"


def test_expired_token(client, owner):
    token = jwt.encode(
        {"sub": owner.id, "exp": datetime.utcnow() - timedelta(minutes=1)},
        settings.SECRET_KEY,
        algorithm=settings.ALGORITHM,
    )
    response = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401
    assert response.json()["error"] == "Session has expired. Please login again."


def test_token_for_deleted_admin(client, db, owner):
    headers = auth_headers(owner)
    db.delete(owner)
    db.commit()
    assert client.get("/api/auth/me", headers=headers).status_code == 401


def test_me_for_pending_partner_admin(client, db):
    pending = make_admin(db, email="fresh@startup.io")
    body = client.get("/api/auth/me", headers=auth_headers(pending)).json()
    assert body["pending"] is True
    assert body["team"] is None


def test_root_and_health(client):
    assert client.get("/").json()["status"] == "operational"
    health = client.get("/api/health").json()
    assert health["version"] == settings.VERSION


def test_rate_limiter_window():
    limiter = RateLimiter(limit_per_minute=2)
    assert limiter.allow("1.2.3.4", now=100.0)
    assert limiter.allow("1.2.3.4", now=101.0)
    assert not limiter.allow("1.2.3.4", now=102.0)
    assert limiter.allow("5.6.7.8", now=102.0)
    assert limiter.allow("1.2.3.4", now=161.0)
