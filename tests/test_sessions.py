from __future__ import annotations

from datetime import timedelta

import pytest

from docgate.auth.gate import Role
from docgate.auth.service import (
    _utcnow,
    authenticate,
    change_password,
    create_user,
    ensure_seed_admin,
    issue_session,
    purge_expired_sessions,
    resolve_session,
    revoke_session,
)
from docgate.config import settings
from docgate.errors import Unauthenticated, ValidationError
from docgate.models.auth_session import AuthSession
from docgate.models.user import User
from docgate.utils.security import token_digest

from conftest import PASSWORD


def test_authenticate_success_and_generic_failures(db, make_user):
    user = make_user(Role.ADMIN)
    assert authenticate(db, user.username, PASSWORD).id == user.id

    with pytest.raises(Unauthenticated) as wrong:
        authenticate(db, user.username, PASSWORD + "x")
    with pytest.raises(Unauthenticated) as unknown:
        authenticate(db, "nobody", PASSWORD)
    assert wrong.value.detail == unknown.value.detail == "Invalid credentials"


def test_issue_then_resolve(db, make_user):
    user = make_user(Role.STAFF)
    token = issue_session(db, user)

    ctx = resolve_session(db, token)
    assert ctx is not None
    assert ctx.user_id == user.id
    assert ctx.role is Role.STAFF

    row = db.query(AuthSession).one()
    # only the digest is persisted
    assert row.token_digest == token_digest(token)
    assert row.token_digest != token
    assert row.expires_at - row.issued_at == timedelta(days=settings.session_expire_days)


@pytest.mark.parametrize("token", [None, "", "unknown-token"])
def test_resolve_unknown_token(db, token):
    assert resolve_session(db, token) is None


def test_expired_session_does_not_resolve(db, make_user):
    token = issue_session(db, make_user(Role.ADMIN))
    row = db.query(AuthSession).one()
    row.expires_at = _utcnow() - timedelta(seconds=1)
    db.commit()
    assert resolve_session(db, token) is None

    assert purge_expired_sessions(db) == 1
    assert db.query(AuthSession).count() == 0


def test_revoke_session(db, make_user):
    token = issue_session(db, make_user(Role.ADMIN))
    revoke_session(db, token)
    assert resolve_session(db, token) is None
    # idempotent
    revoke_session(db, token)
    revoke_session(db, None)


def test_password_change_revokes_all_sessions(db, make_user):
    user = make_user(Role.ADMIN)
    first = issue_session(db, user)
    second = issue_session(db, user)

    change_password(db, user, PASSWORD, "a-brand-new-password")

    assert resolve_session(db, first) is None
    assert resolve_session(db, second) is None
    assert resolve_session(db, issue_session(db, user)) is not None
    assert authenticate(db, user.username, "a-brand-new-password").id == user.id
    with pytest.raises(Unauthenticated):
        authenticate(db, user.username, PASSWORD)


def test_password_change_needs_current_password(db, make_user):
    user = make_user(Role.STAFF)
    token = issue_session(db, user)
    with pytest.raises(Unauthenticated):
        change_password(db, user, "wrong", "a-brand-new-password")
    assert resolve_session(db, token) is not None


def test_stale_generation_is_rejected(db, make_user):
    user = make_user(Role.STAFF)
    token = issue_session(db, user)
    user.session_generation += 1
    db.commit()
    assert resolve_session(db, token) is None


def test_role_change_invalidates_session(db, make_user):
    user = make_user(Role.ADMIN)
    token = issue_session(db, user)
    user.role = Role.STAFF.value
    db.commit()
    assert resolve_session(db, token) is None


def test_unknown_role_does_not_resolve(db, make_user):
    user = make_user(Role.STAFF)
    user.role = "janitor"
    db.commit()
    assert resolve_session(db, issue_session(db, user)) is None


def test_create_user_rejects_duplicates(db, make_user):
    user = make_user(Role.STAFF)
    with pytest.raises(ValidationError):
        create_user(db, user.username, "other@example.com", "Other", PASSWORD)
    with pytest.raises(ValidationError):
        create_user(db, "other", user.email, "Other", PASSWORD)


def test_seed_admin_only_when_empty(db, monkeypatch):
    monkeypatch.setattr(settings, "seed_admin_username", "root")
    monkeypatch.setattr(settings, "seed_admin_password", "seed-password-1")

    admin = ensure_seed_admin(db)
    assert admin is not None
    assert admin.role == Role.SUPERADMIN.value
    assert ensure_seed_admin(db) is None
    assert db.query(User).count() == 1


def test_seed_admin_disabled_without_credentials(db, monkeypatch):
    monkeypatch.setattr(settings, "seed_admin_username", "")
    assert ensure_seed_admin(db) is None
