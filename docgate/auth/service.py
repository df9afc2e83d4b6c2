
import logging
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from sqlalchemy import or_
from sqlalchemy.orm import Session
from docgate.config import settings
from docgate.auth.gate import Role, SessionContext
from docgate.errors import Unauthenticated, ValidationError
from docgate.models.user import User
from docgate.models.auth_session import AuthSession
from docgate.utils.security import hash_password, verify_password, new_session_token, token_digest

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    # stored naive UTC so sqlite and postgres compare the same way
    return datetime.now(timezone.utc).replace(tzinfo=None)


@lru_cache(maxsize=1)
def _dummy_hash() -> str:
    return hash_password(new_session_token())


def create_user(db: Session, username: str, email: str, full_name: str, password: str, role: Role = Role.USER) -> User:
    exists = db.query(User).filter(or_(User.username == username, User.email == email)).first()
    if exists:
        raise ValidationError("Username or email already exists")
    user = User(
        username=username,
        email=email,
        full_name=full_name,
        password_hash=hash_password(password),
        role=Role(role).value,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("created user %s with role %s", user.id, user.role)
    return user


def authenticate(db: Session, username: str, password: str) -> User:
    user = db.query(User).filter(User.username == username).first()
    if user is None:
        # same KDF cost as a real mismatch
        verify_password(password, _dummy_hash())
        raise Unauthenticated("Invalid credentials")
    if not verify_password(password, user.password_hash):
        raise Unauthenticated("Invalid credentials")
    return user


def issue_session(db: Session, user: User) -> str:
    token = new_session_token()
    now = _utcnow()
    db.add(AuthSession(
        token_digest=token_digest(token),
        user_id=user.id,
        role=user.role,
        generation=user.session_generation,
        issued_at=now,
        expires_at=now + timedelta(days=settings.session_expire_days),
    ))
    db.commit()
    return token


def resolve_session(db: Session, token: str | None) -> SessionContext | None:
    if not token:
        return None
    row = db.query(AuthSession).filter(AuthSession.token_digest == token_digest(token)).first()
    if row is None or row.expires_at <= _utcnow():
        return None
    user = db.get(User, row.user_id)
    if user is None or user.session_generation != row.generation:
        return None
    # a role change since login invalidates the session
    if user.role != row.role:
        return None
    try:
        role = Role(row.role)
    except ValueError:
        logger.warning("user %s has unknown role %r", user.id, row.role)
        return None
    return SessionContext(user_id=user.id, username=user.username, role=role, expires_at=row.expires_at)


def revoke_session(db: Session, token: str | None) -> None:
    if not token:
        return
    db.query(AuthSession).filter(AuthSession.token_digest == token_digest(token)).delete()
    db.commit()


def change_password(db: Session, user: User, current_password: str, new_password: str) -> None:
    if not verify_password(current_password, user.password_hash):
        raise Unauthenticated("Invalid credentials")
    user.password_hash = hash_password(new_password)
    user.session_generation = (user.session_generation or 0) + 1
    db.query(AuthSession).filter(AuthSession.user_id == user.id).delete()
    db.commit()
    logger.info("password changed for user %s, sessions revoked", user.id)


def purge_expired_sessions(db: Session) -> int:
    count = db.query(AuthSession).filter(AuthSession.expires_at <= _utcnow()).delete()
    db.commit()
    return count


def ensure_seed_admin(db: Session) -> User | None:
    if not (settings.seed_admin_username and settings.seed_admin_password):
        return None
    if db.query(User).first() is not None:
        return None
    return create_user(
        db,
        username=settings.seed_admin_username,
        email=f"{settings.seed_admin_username}@localhost",
        full_name="Administrator",
        password=settings.seed_admin_password,
        role=Role.SUPERADMIN,
    )
