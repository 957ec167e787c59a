"""Tests covering authentication API endpoints."""

from __future__ import annotations

import uuid

from jose import jwt

from identity.core.config import settings
from identity.models.user import UserStatus
from identity.services.users import get_user_by_email
from tests.conftest import VALID_PASSWORD, SyncASGITestClient

DEVICE = {"device_id": "device-1", "platform": "ios"}


def _login(client: SyncASGITestClient, **overrides):
    payload = {"email": "a@x.com", "password": VALID_PASSWORD, "device": DEVICE, **overrides}
    return client.post("/api/v1/auth/login", json=payload)


def _bearer(tokens: dict) -> dict[str, str]:
    return {"Authorization": f"Bearer {tokens['access_token']}"}


def test_login_returns_tokens_and_sets_cookie(client: SyncASGITestClient, make_user) -> None:
    user = make_user()

    response = _login(client)

    assert response.status_code == 200
    data = response.json()
    assert data["user_id"] == str(user.id)
    assert data["status"] == "ACTIVE"
    tokens = data["tokens"]
    assert tokens["token_type"] == "bearer"
    decoded = jwt.decode(
        tokens["access_token"],
        settings.secret_key,
        algorithms=[settings.jwt_algorithm],
        issuer=settings.jwt_issuer,
    )
    assert decoded["sub"] == str(user.id)
    assert decoded["iin"] == "123456789012"
    assert decoded["sid"] == tokens["session_id"]

    set_cookie = response.headers["set-cookie"]
    assert set_cookie.startswith(f"refreshToken={tokens['refresh_token']}")
    assert "HttpOnly" in set_cookie
    assert "Path=/api/v1/auth" in set_cookie


def test_login_rejects_bad_password(client: SyncASGITestClient, make_user) -> None:
    make_user()

    response = _login(client, password="WrongPassword1")

    assert response.status_code == 401
    assert response.headers["WWW-Authenticate"] == "Bearer"
    assert response.json()["error"]["code"] == "invalid_credentials"


def test_login_blocked_and_pending(client: SyncASGITestClient, make_user) -> None:
    make_user(status=UserStatus.BLOCKED)
    make_user(email="p@x.com", national_id="210987654321", status=UserStatus.PENDING)

    blocked = _login(client)
    assert blocked.status_code == 403
    assert blocked.json()["error"]["code"] == "account_blocked"

    pending = _login(client, email="p@x.com")
    assert pending.status_code == 403
    assert pending.json()["error"]["code"] == "user_not_activated"


def test_login_by_national_id(client: SyncASGITestClient, make_user) -> None:
    make_user()

    response = client.post(
        "/api/v1/auth/login",
        json={"national_id": "123456789012", "password": VALID_PASSWORD, "device": DEVICE},
    )

    assert response.status_code == 200


def test_refresh_with_cookie_rotates(client: SyncASGITestClient, make_user) -> None:
    make_user()
    first = _login(client).json()["tokens"]

    refreshed = client.post("/api/v1/auth/refresh")

    assert refreshed.status_code == 200
    rotated = refreshed.json()
    assert rotated["session_id"] == first["session_id"]
    assert rotated["refresh_token"] != first["refresh_token"]
    assert client.cookies.get("refreshToken") == rotated["refresh_token"]


def test_refresh_replay_and_unknown_tokens(client: SyncASGITestClient, make_user) -> None:
    make_user()
    first = _login(client).json()["tokens"]["refresh_token"]
    client.post("/api/v1/auth/refresh", json={"refresh_token": first})

    replay = client.post("/api/v1/auth/refresh", json={"refresh_token": first})
    assert replay.status_code == 409
    assert replay.json()["error"]["code"] == "token_already_rotated"

    unknown = client.post("/api/v1/auth/refresh", json={"refresh_token": "rt_unknown"})
    assert unknown.status_code == 401
    assert unknown.json()["error"]["code"] == "invalid_refresh_token"


def test_refresh_from_other_device_returns_423(client: SyncASGITestClient, make_user) -> None:
    make_user()
    token = _login(client).json()["tokens"]["refresh_token"]

    response = client.post(
        "/api/v1/auth/refresh",
        json={"refresh_token": token, "device_id": "device-2"},
    )

    assert response.status_code == 423
    assert response.json()["error"]["code"] == "device_mismatch"


def test_logout_clears_cookie(client: SyncASGITestClient, make_user) -> None:
    make_user()
    token = _login(client).json()["tokens"]["refresh_token"]

    response = client.post("/api/v1/auth/logout")

    assert response.status_code == 204
    assert 'refreshToken=""' in response.headers["set-cookie"]

    again = client.post("/api/v1/auth/logout", json={"refresh_token": token})
    assert again.status_code == 401


def test_me_and_sessions(client: SyncASGITestClient, make_user) -> None:
    user = make_user()
    first = _login(client).json()["tokens"]
    _login(client, device={"device_id": "device-2", "platform": "web"})

    me = client.get("/api/v1/auth/me", headers=_bearer(first))
    assert me.status_code == 200
    assert me.json()["user"] == {
        "id": str(user.id),
        "email": "a@x.com",
        "national_id": "123456789012",
        "status": "active",
    }
    assert me.json()["avatar"]["id"] == str(user.avatar_id)

    sessions = client.get(
        "/api/v1/auth/sessions",
        headers={**_bearer(first), "X-Refresh-Token": first["refresh_token"]},
    )
    assert sessions.status_code == 200
    listed = {item["id"]: item["current"] for item in sessions.json()["sessions"]}
    assert len(listed) == 2
    assert listed[first["session_id"]] is True


def test_authenticated_routes_reject_bad_tokens(client: SyncASGITestClient) -> None:
    missing = client.get("/api/v1/auth/me")
    assert missing.status_code == 401

    forged = client.get("/api/v1/auth/me", headers={"Authorization": "Bearer not-a-jwt"})
    assert forged.status_code == 401
    assert forged.json()["error"]["code"] == "unauthorized"


def test_revoke_session(client: SyncASGITestClient, make_user) -> None:
    make_user()
    make_user(email="b@x.com", national_id="210987654321")
    own = _login(client).json()["tokens"]
    foreign = _login(client, email="b@x.com").json()["tokens"]

    cross_user = client.delete(f"/api/v1/auth/sessions/{foreign['session_id']}", headers=_bearer(own))
    assert cross_user.status_code == 404
    assert cross_user.json()["error"]["code"] == "session_not_found"

    missing = client.delete(f"/api/v1/auth/sessions/{uuid.uuid4()}", headers=_bearer(own))
    assert missing.status_code == 404

    revoked = client.delete(f"/api/v1/auth/sessions/{own['session_id']}", headers=_bearer(own))
    assert revoked.status_code == 204

    refresh = client.post("/api/v1/auth/refresh", json={"refresh_token": own["refresh_token"]})
    assert refresh.status_code == 401


def test_logout_all(client: SyncASGITestClient, make_user) -> None:
    make_user()
    first = _login(client).json()["tokens"]
    second = _login(client, device={"device_id": "device-2", "platform": "web"}).json()["tokens"]

    response = client.post("/api/v1/auth/logout-all", headers=_bearer(first))

    assert response.status_code == 204
    refresh = client.post("/api/v1/auth/refresh", json={"refresh_token": second["refresh_token"]})
    assert refresh.status_code == 401


def test_change_password(client: SyncASGITestClient, make_user) -> None:
    make_user()
    tokens = _login(client).json()["tokens"]

    reuse = client.post(
        "/api/v1/auth/password/change",
        json={"current_password": VALID_PASSWORD, "new_password": VALID_PASSWORD},
        headers=_bearer(tokens),
    )
    assert reuse.status_code == 409
    assert reuse.json()["error"]["code"] == "password_reuse_forbidden"

    changed = client.post(
        "/api/v1/auth/password/change",
        json={"current_password": VALID_PASSWORD, "new_password": "NewPassword2"},
        headers=_bearer(tokens),
    )
    assert changed.status_code == 204
    assert _login(client, password="NewPassword2").status_code == 200


def test_email_change(client: SyncASGITestClient, make_user, mailer, db_session) -> None:
    user = make_user()
    tokens = _login(client).json()["tokens"]

    requested = client.post(
        "/api/v1/auth/email/change",
        json={"new_email": "new@x.com"},
        headers=_bearer(tokens),
    )
    assert requested.status_code == 202
    mail = mailer.last("email_change")
    assert mail.recipient == "new@x.com"

    confirmed = client.post("/api/v1/auth/email/confirm", json={"token": mail.token})
    assert confirmed.status_code == 200
    assert confirmed.json() == {"user_id": str(user.id), "email": "new@x.com"}
    assert get_user_by_email(db_session, "new@x.com") is not None

    again = client.post("/api/v1/auth/email/confirm", json={"token": mail.token})
    assert again.status_code == 400
