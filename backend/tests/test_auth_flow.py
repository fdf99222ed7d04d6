from __future__ import annotations

from gatepass.models.refresh_token import RefreshToken
from gatepass.models.user import User


def _signup(client, email="new@example.com", password="Correct-Horse-42", **extra):
    body = {"email": email, "password": password, "first_name": "New", "last_name": "User"}
    body.update(extra)
    return client.post("/auth/signup", json=body)


def _refresh_with(client, raw: str):
    # An explicit Cookie header wins over the client's cookie jar.
    return client.post("/auth/refresh", headers={"Cookie": f"refresh_token={raw}"})


def test_signup_login_refresh_logout(client, db_session):
    res = _signup(client, roles=["GENERATOR"])
    assert res.status_code == 201
    body = res.json()
    assert isinstance(body["access_token"], str) and body["access_token"]
    assert body["token_type"] == "bearer"
    assert body["user"]["email"] == "new@example.com"
    assert body["user"]["roles"] == ["GENERATOR"]
    assert "refresh_token" not in body
    assert res.cookies.get("refresh_token")

    res2 = client.post("/auth/login", json={"email": "new@example.com", "password": "Correct-Horse-42"})
    assert res2.status_code == 200
    first_cookie = res2.cookies.get("refresh_token")
    assert first_cookie

    res3 = _refresh_with(client, first_cookie)
    assert res3.status_code == 200
    second_cookie = res3.cookies.get("refresh_token")
    assert second_cookie and second_cookie != first_cookie
    assert res3.json()["access_token"]

    res4 = client.post("/auth/logout", headers={"Cookie": f"refresh_token={second_cookie}"})
    assert res4.status_code == 204

    res5 = _refresh_with(client, second_cookie)
    assert res5.status_code == 401
    assert res5.json()["message"] == "Invalid refresh token"


def test_refresh_cookie_attributes(client):
    res = _signup(client)
    header = res.headers["set-cookie"].lower()
    assert "httponly" in header
    assert "path=/auth" in header
    assert "samesite=lax" in header
    assert "max-age=" in header
    # Not prod, so not Secure (dev runs on plain http).
    assert "secure" not in header


def test_signup_twice_same_email_fails(client, db_session):
    assert _signup(client).status_code == 201
    res = _signup(client, email="NEW@example.com")
    assert res.status_code == 400
    assert res.json()["error"] == "EMAIL_IN_USE"
    assert db_session.query(User).filter(User.email == "new@example.com").count() == 1


def test_signup_drops_privileged_roles(client):
    res = _signup(client, roles=["ADMIN", "RECEIVER"])
    assert res.status_code == 201
    assert res.json()["user"]["roles"] == ["RECEIVER"]


def test_signup_without_roles_defaults_to_user(client):
    res = _signup(client)
    assert res.json()["user"]["roles"] == ["USER"]


def test_signup_missing_fields_is_400(client):
    res = client.post("/auth/signup", json={"email": "x@example.com"})
    assert res.status_code == 400
    assert res.json()["error"] == "VALIDATION_ERROR"


def test_signup_weak_password_is_400(client):
    res = _signup(client, password="password")
    assert res.status_code == 400
    details = res.json()["details"]
    assert details["code"] == "WEAK_PASSWORD"
    assert "uppercase" in details["violations"]


def test_login_failures_are_indistinguishable(client, make_user, db_session):
    make_user("known@example.com")
    inactive = make_user("inactive@example.com")
    inactive.is_active = False
    db_session.commit()

    wrong_pw = client.post("/auth/login", json={"email": "known@example.com", "password": "Wrong-Horse-42"})
    unknown = client.post("/auth/login", json={"email": "nobody@example.com", "password": "Correct-Horse-42"})
    disabled = client.post("/auth/login", json={"email": "inactive@example.com", "password": "Correct-Horse-42"})

    for res in (wrong_pw, unknown, disabled):
        assert res.status_code == 400
        assert res.json() == {"error": "INVALID_CREDENTIALS", "message": "Invalid credentials"}
        assert not res.cookies.get("refresh_token")


def test_login_records_client_meta(client, make_user, db_session):
    user = make_user("meta@example.com")
    res = client.post(
        "/auth/login",
        json={"email": "meta@example.com", "password": "Correct-Horse-42"},
        headers={"User-Agent": "gate-scanner/1.0"},
    )
    assert res.status_code == 200
    rt = db_session.query(RefreshToken).filter(RefreshToken.user_id == user.id).one()
    assert rt.user_agent == "gate-scanner/1.0"
    assert rt.ip


def test_refresh_without_cookie_is_401(client):
    client.cookies.clear()
    res = client.post("/auth/refresh")
    assert res.status_code == 401
    assert res.json()["error"] == "UNAUTHORIZED"


def test_refresh_token_is_single_use(client, make_user):
    make_user("single@example.com")
    login = client.post("/auth/login", json={"email": "single@example.com", "password": "Correct-Horse-42"})
    raw = login.cookies.get("refresh_token")

    assert _refresh_with(client, raw).status_code == 200
    assert _refresh_with(client, raw).status_code == 401


def test_reusing_rotated_token_revokes_every_session(client, make_user, db_session):
    user = make_user("theft@example.com")
    login = client.post("/auth/login", json={"email": "theft@example.com", "password": "Correct-Horse-42"})
    stolen = login.cookies.get("refresh_token")

    rotated = _refresh_with(client, stolen).cookies.get("refresh_token")
    assert rotated

    # Replay of the already-rotated token.
    assert _refresh_with(client, stolen).status_code == 401
    # The legitimate holder's newer token is gone too.
    assert _refresh_with(client, rotated).status_code == 401

    active = (
        db_session.query(RefreshToken)
        .filter(RefreshToken.user_id == user.id, RefreshToken.revoked_at.is_(None))
        .count()
    )
    assert active == 0


def test_logout_without_cookie_is_204(client):
    client.cookies.clear()
    res = client.post("/auth/logout")
    assert res.status_code == 204


def test_me_requires_bearer_token(client):
    res = client.get("/auth/me")
    assert res.status_code == 401
    assert res.headers.get("www-authenticate") == "Bearer"


def test_me_returns_current_user(client_for, generator):
    with client_for(generator) as c:
        res = c.get("/auth/me")
    assert res.status_code == 200
    assert res.json()["email"] == "gen@example.com"
    assert res.json()["roles"] == ["GENERATOR"]


def test_me_rejects_garbage_token(client):
    res = client.get("/auth/me", headers={"Authorization": "Bearer not-a-jwt"})
    assert res.status_code == 401
    assert res.json()["message"] == "Invalid or expired token"
