from __future__ import annotations

from docgate.auth.gate import Role
from docgate.config import settings
from docgate.utils.security import unsign_session_cookie

from conftest import PASSWORD


def _login(client, username, password=PASSWORD):
    return client.post("/auth/login", json={"username": username, "password": password})


def test_login_sets_signed_http_only_cookie(client, make_user):
    user = make_user(Role.ADMIN)

    r = _login(client, user.username)
    assert r.status_code == 200
    assert r.json()["username"] == user.username
    assert "password_hash" not in r.json()

    set_cookie = r.headers["set-cookie"].lower()
    assert "httponly" in set_cookie
    assert "samesite=lax" in set_cookie
    assert f"max-age={7 * 24 * 3600}" in set_cookie
    assert unsign_session_cookie(r.cookies[settings.session_cookie_name]) is not None

    # the cookie alone authenticates follow-up requests
    me = client.get("/auth/user")
    assert me.status_code == 200
    assert me.json()["role"] == "admin"


def test_login_failures_look_the_same(client, make_user):
    user = make_user(Role.STAFF)
    wrong = _login(client, user.username, "not-the-password")
    unknown = _login(client, "ghost", "not-the-password")

    assert wrong.status_code == unknown.status_code == 401
    assert wrong.json() == unknown.json() == {"error": "unauthenticated", "detail": "Invalid credentials"}
    assert "set-cookie" not in wrong.headers


def test_corrupted_stored_hash_is_invalid_credentials(client, make_user, db):
    user = make_user(Role.STAFF)
    h = user.password_hash
    user.password_hash = h[:8] + "m" + h[9:]
    db.commit()

    r = _login(client, user.username)
    assert r.status_code == 401
    assert r.json() == {"error": "unauthenticated", "detail": "Invalid credentials"}


def test_login_body_is_validated(client):
    r = client.post("/auth/login", json={"username": "x"})
    assert r.status_code == 400
    assert r.json()["error"] == "validation_error"
    assert "password" in r.json()["detail"]


def test_user_endpoint_requires_session(client):
    assert client.get("/auth/user").status_code == 401


def test_logout_revokes_session(client, make_user):
    user = make_user(Role.ADMIN)
    _login(client, user.username)
    signed = client.cookies[settings.session_cookie_name]

    assert client.post("/auth/logout").status_code == 200
    assert client.get("/auth/user", headers={"Authorization": f"Bearer {signed}"}).status_code == 401
    # idempotent
    assert client.post("/auth/logout").status_code == 200


def test_password_change_revokes_old_sessions(client, make_user):
    user = make_user(Role.STAFF)
    old = _login(client, user.username).cookies[settings.session_cookie_name]
    other_device = f"Bearer {old}"

    r = client.post(
        "/auth/password",
        json={"current_password": PASSWORD, "new_password": "another-long-pass"},
        headers={"Authorization": other_device},
    )
    assert r.status_code == 204
    fresh = r.cookies[settings.session_cookie_name]
    assert fresh != old

    assert client.get("/auth/user", headers={"Authorization": other_device}).status_code == 401
    assert client.get("/auth/user", headers={"Authorization": f"Bearer {fresh}"}).status_code == 200
    assert _login(client, user.username, "another-long-pass").status_code == 200


def test_password_change_with_wrong_current(client, headers_for):
    r = client.post(
        "/auth/password",
        json={"current_password": "nope", "new_password": "another-long-pass"},
        headers=headers_for(Role.STAFF),
    )
    assert r.status_code == 401


def test_only_superadmin_creates_users(client, headers_for):
    body = {
        "username": "newstaff",
        "email": "newstaff@example.com",
        "full_name": "New Staff",
        "password": "long-enough-pass",
        "role": "staff",
    }
    r = client.post("/auth/users", json=body, headers=headers_for(Role.ADMIN))
    assert r.status_code == 403
    assert r.json()["detail"] == "Admin cannot modify users"

    r = client.post("/auth/users", json=body, headers=headers_for(Role.SUPERADMIN))
    assert r.status_code == 201
    assert r.json()["role"] == "staff"

    r = client.post("/auth/users", json=body, headers=headers_for(Role.SUPERADMIN))
    assert r.status_code == 400
